import logging
import time
from collections import OrderedDict

import requests

from . import config
from .readings import Metric, format_fecha, from_millis, to_millis

log = logging.getLogger("loradash.fetcher")


def _sort_records(records):
    return sorted(records, key=lambda r: to_millis(r.get('fecha')) or 0)


class RangeFetcher:
    """Client for the read-only REST endpoints.

    Every request carries a timeout. A transport error or a non-2xx answer is
    logged and returned as an empty list, which means "no data right now".
    """

    def __init__(self, base_url=config.API_BASE_URL, session=None,
                 timeout=config.REQUEST_TIMEOUT_S, block_ms=config.BLOCK_MS,
                 block_pause=config.BLOCK_PAUSE_S, cache_size=config.RANGE_CACHE_SIZE,
                 clock=time.time):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.block_ms = block_ms
        self.block_pause = block_pause
        self.cache_size = cache_size
        self.clock = clock
        self._cache = OrderedDict()

    def _get(self, path, params=None):
        url = f'{self.base_url}{path}'
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            log.error("GET %s failed: %s", url, e)
            return None
        except ValueError as e:
            log.error("GET %s returned invalid JSON: %s", url, e)
            return None
        if not isinstance(data, list):
            log.error("GET %s returned %s instead of a list", url, type(data).__name__)
            return None
        return data

    def latest(self, limit=None):
        params = {'limit': limit} if limit else None
        return _sort_records(self._get('/api/data/latest', params) or [])

    def all(self):
        return _sort_records(self._get('/api/data/all') or [])

    def chunk(self, skip=0, limit=config.CHUNK_LIMIT):
        return _sort_records(self._get('/api/data/chunk', {'skip': skip, 'limit': limit}) or [])

    def range(self, metric, start, end):
        """Records of ``metric`` in ``[start, end)`` (epoch ms).

        Successful answers are cached, least recently used first out, unless
        the range reaches past the current time and may still grow.
        """
        metric = Metric.from_key(metric)
        key = (metric, start, end)
        if key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]
        params = {
            'var': metric.key,
            'start': format_fecha(from_millis(start)),
            'end': format_fecha(from_millis(end)),
        }
        data = self._get('/api/data/range', params)
        if data is None:
            return []
        records = _sort_records(data)
        if end <= self.clock() * 1000 and self.cache_size > 0:
            self._cache[key] = records
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return records

    def iter_blocks(self, metric, start, end):
        """Yield the records of ``[start, end)`` one ``block_ms`` block at a time.

        Sleeps ``block_pause`` between blocks so a long historical load does
        not monopolize the caller's thread.
        """
        block_start = start
        while block_start < end:
            block_end = min(block_start + self.block_ms, end)
            yield self.range(metric, block_start, block_end)
            block_start = block_end
            if block_start < end and self.block_pause:
                time.sleep(self.block_pause)

    def load_range(self, metric, start, end):
        records = []
        for block in self.iter_blocks(metric, start, end):
            records.extend(block)
        return records
