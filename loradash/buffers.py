import logging
from collections import deque

from . import config
from .readings import Metric, record_value, to_millis

log = logging.getLogger("loradash.buffers")


def _clean(points):
    """Sort by time and drop ``None`` values and repeated timestamps (first wins)."""
    seen = set()
    out = []
    for t, v in sorted(points, key=lambda p: p[0]):
        if v is None or t in seen:
            continue
        seen.add(t)
        out.append((t, v))
    return out


class SeriesBuffer:
    """Bounded, time-ordered ``(t_ms, value)`` series for one metric.

    Live appends evict from the head in O(1). Timestamps are unique within the
    buffer, so a pushed point and the same point arriving in a REST response
    are kept once.
    """

    def __init__(self, max_points=config.MAX_POINTS):
        if max_points < 1:
            raise ValueError("max_points must be positive")
        self.max_points = max_points
        self._points = deque()
        self._seen = set()
        self._sorted = True

    def __len__(self):
        return len(self._points)

    def _reset(self, points):
        self._points = deque(points)
        self._seen = {t for t, _ in points}
        self._sorted = True

    def append(self, t, v):
        """Add one live point. Returns False when it was ignored."""
        if v is None or t in self._seen:
            return False
        if len(self._points) >= self.max_points:
            if not self._sorted:
                self.snapshot()
            old_t, _ = self._points.popleft()
            self._seen.discard(old_t)
        if self._points and t < self._points[-1][0]:
            self._sorted = False
        self._points.append((t, v))
        self._seen.add(t)
        return True

    def replace(self, points):
        self._reset(_clean(points)[-self.max_points:])

    def merge(self, points):
        """Union with the current contents; the newest ``max_points`` are kept."""
        self._reset(_clean(list(self._points) + list(points))[-self.max_points:])

    def prepend(self, points):
        """Merge an older page; over capacity the newest points are dropped instead."""
        self._reset(_clean(list(self._points) + list(points))[:self.max_points])

    def clear(self):
        self._reset([])

    def snapshot(self):
        if not self._sorted:
            self._reset(sorted(self._points, key=lambda p: p[0]))
        return list(self._points)

    def window(self, start, end):
        return [p for p in self.snapshot() if start <= p[0] <= end]

    def since(self, start):
        return [p for p in self.snapshot() if p[0] >= start]

    @property
    def first_timestamp(self):
        points = self.snapshot()
        return points[0][0] if points else None

    @property
    def last_timestamp(self):
        points = self.snapshot()
        return points[-1][0] if points else None


def records_to_points(records, metric):
    points = []
    for record in records:
        t = to_millis(record.get('fecha'))
        if t is None:
            continue
        points.append((t, record_value(record, metric)))
    return points


class BufferManager:
    """One :class:`SeriesBuffer` per metric."""

    def __init__(self, max_points=config.MAX_POINTS, metrics=tuple(Metric)):
        self.max_points = max_points
        self._buffers = {Metric.from_key(m): SeriesBuffer(max_points) for m in metrics}

    @property
    def metrics(self):
        return tuple(self._buffers)

    def buffer(self, metric):
        return self._buffers[Metric.from_key(metric)]

    def append(self, metric, t, v):
        return self.buffer(metric).append(t, v)

    def append_reading(self, record):
        """Append every metric carried by one live record. Returns the metrics that changed."""
        t = to_millis(record.get('fecha'))
        if t is None:
            log.warning("Ignoring record without a usable fecha: %r", record)
            return []
        changed = []
        for metric, buf in self._buffers.items():
            if buf.append(t, record_value(record, metric)):
                changed.append(metric)
        return changed

    def replace_range(self, metric, records):
        self.buffer(metric).replace(records_to_points(records, metric))

    def merge_range(self, metric, records):
        self.buffer(metric).merge(records_to_points(records, metric))

    def prepend_range(self, metric, records):
        self.buffer(metric).prepend(records_to_points(records, metric))

    def series(self, metric):
        return self.buffer(metric).snapshot()
