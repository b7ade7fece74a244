import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

import socketio

from . import config
from .buffers import BufferManager
from .readings import Metric, to_float, to_millis
from .renderer import PlotlyRenderer
from .segmenter import segment
from .viewport import ViewportController, parse_relayout

log = logging.getLogger("loradash.dashboard")

NEW_READING_EVENT = 'nuevoDato'
HISTORY_EVENT = 'historico'


class Interaction(Enum):
    ZOOM = 'zoom'
    PAN = 'pan'
    SLIDER = 'slider'
    PAGE = 'page'
    LATEST = 'latest'


@dataclass
class ChartContext:
    metric: Metric
    viewport: ViewportController
    figure: Optional[Any] = None
    loaded: Optional[Tuple[int, int]] = None
    page_skip: int = 0
    stale: bool = False


class DashboardController:
    """Owns the buffers and one chart context per metric.

    Live pushes, history seeds and user interactions all go through this
    object. Handlers for pushed events run on the socket client's thread, so
    state changes are serialized with a lock.
    """

    def __init__(self, fetcher, renderer=None, metrics=tuple(Metric),
                 max_points=config.MAX_POINTS, gap_ms=config.GAP_MS,
                 trailing_points=None, initial_days=config.INITIAL_DAYS,
                 chunk_limit=config.CHUNK_LIMIT,
                 freshness_timeout=config.FRESHNESS_TIMEOUT_S,
                 debounce_s=config.RELAYOUT_DEBOUNCE_S, clock=time.time):
        self.fetcher = fetcher
        self.renderer = renderer or PlotlyRenderer()
        self.gap_ms = gap_ms
        self.initial_days = initial_days
        self.chunk_limit = chunk_limit
        self.freshness_timeout = freshness_timeout
        self.debounce_s = debounce_s
        self.flush_timer = None
        self.clock = clock
        self.buffers = BufferManager(max_points, metrics)
        self.charts = {
            m: ChartContext(m, ViewportController(trailing_points))
            for m in self.buffers.metrics
        }
        self.marker = None
        self.last_message_at = None
        self._lock = threading.RLock()
        self._handlers = {
            Interaction.ZOOM: self._navigate,
            Interaction.SLIDER: self._navigate,
            Interaction.PAN: self._pan,
            Interaction.PAGE: self._page_back,
            Interaction.LATEST: self._show_latest,
        }

    def chart(self, metric):
        return self.charts[Metric.from_key(metric)]

    def _now_ms(self):
        return int(self.clock() * 1000)

    # --- Rendering ---
    def render(self, metric):
        ctx = self.chart(metric)
        points = self.buffers.series(ctx.metric)
        if ctx.viewport.is_live:
            ctx.viewport.follow(points)
            points = ctx.viewport.visible_points(points)
        traces = segment(points, self.gap_ms)
        ctx.figure = self.renderer.render(ctx.metric, traces, ctx.viewport.window)
        ctx.stale = False
        return ctx.figure

    # --- Push channel ---
    def on_history(self, records):
        if not isinstance(records, list):
            log.warning("Ignoring history seed of type %s", type(records).__name__)
            return
        records = [r for r in records if isinstance(r, dict)]
        with self._lock:
            for metric in self.charts:
                self.buffers.merge_range(metric, records)
            for metric, ctx in self.charts.items():
                if ctx.viewport.is_live:
                    self.render(metric)
        log.info("History seed loaded (%d records)", len(records))

    def on_new_reading(self, record):
        """Append a pushed reading; only charts in live mode are redrawn."""
        if not isinstance(record, dict):
            log.warning("Dropping malformed live message: %r", record)
            return []
        with self._lock:
            self.last_message_at = self.clock()
            self._update_marker(record)
            changed = self.buffers.append_reading(record)
            for metric in changed:
                ctx = self.charts[metric]
                if ctx.viewport.is_live:
                    self.render(metric)
                else:
                    ctx.stale = True
        return changed

    def _update_marker(self, record):
        lat = to_float(record.get('latitud'))
        lon = to_float(record.get('longitud'))
        if lat is None or lon is None:
            return
        self.marker = (lat, lon)

    def is_live(self, now=None):
        """True while the last pushed reading is younger than the freshness timeout."""
        if self.last_message_at is None:
            return False
        now = self.clock() if now is None else now
        return now - self.last_message_at <= self.freshness_timeout

    # --- Historical loading ---
    def load_initial_window(self, days=None):
        """Load the last ``days`` for every metric, one block at a time.

        Blocks are fetched outside the lock; pushed readings are applied
        between them.
        """
        days = self.initial_days if days is None else days
        end = self._now_ms()
        start = end - days * config.DAY_MS
        for metric in self.charts:
            for block in self.fetcher.iter_blocks(metric, start, end):
                with self._lock:
                    self.buffers.merge_range(metric, block)
            with self._lock:
                self.charts[metric].loaded = (start, end)
                self.render(metric)

    def _coverage(self, ctx):
        """Loaded span, shrunk to the oldest point still held once the buffer is full."""
        if ctx.loaded is None:
            return None
        lo, hi = ctx.loaded
        buf = self.buffers.buffer(ctx.metric)
        if len(buf) >= buf.max_points:
            lo = max(lo, buf.first_timestamp)
        return lo, hi

    def _covers(self, ctx, start, end):
        coverage = self._coverage(ctx)
        return coverage is not None and coverage[0] <= start and end <= coverage[1]

    # --- Interactions ---
    def dispatch(self, metric, interaction, **kwargs):
        handler = self._handlers[Interaction(interaction)]
        return handler(self.chart(metric), **kwargs)

    def _navigate(self, ctx, start, end):
        if end < start:
            start, end = end, start
        with self._lock:
            bounds = None if self._covers(ctx, start, end) else ctx.viewport.fetch_bounds(start, end)
        records = self.fetcher.load_range(ctx.metric, *bounds) if bounds else None
        with self._lock:
            if records:
                self.buffers.replace_range(ctx.metric, records)
                ctx.loaded = bounds
            ctx.viewport.navigate(start, end, self.buffers.series(ctx.metric))
            return self.render(ctx.metric)

    def _pan(self, ctx, delta_ms):
        with self._lock:
            window = ctx.viewport.window
            if not window.has_x_range:
                window = ctx.viewport.follow(self.buffers.series(ctx.metric))
            if not window.has_x_range:
                return ctx.figure
        return self._navigate(ctx, window.start_time + delta_ms, window.end_time + delta_ms)

    def _page_back(self, ctx, limit=None):
        """Load the next older chunk; pages walk back from the newest record."""
        with self._lock:
            skip = ctx.page_skip
        records = self.fetcher.chunk(skip=skip, limit=limit or self.chunk_limit)
        if not records:
            return ctx.figure
        with self._lock:
            ctx.page_skip += len(records)
            self.buffers.prepend_range(ctx.metric, records)
            buf = self.buffers.buffer(ctx.metric)
            ctx.loaded = (buf.first_timestamp, buf.last_timestamp) if len(buf) else None
            page = [t for t in (to_millis(r.get('fecha')) for r in records) if t is not None]
            if not page:
                return ctx.figure
            ctx.viewport.navigate(min(page), max(page), self.buffers.series(ctx.metric))
            return self.render(ctx.metric)

    def _show_latest(self, ctx):
        end = self._now_ms()
        start = end - self.initial_days * config.DAY_MS
        records = self.fetcher.load_range(ctx.metric, start, end)
        with self._lock:
            buf = self.buffers.buffer(ctx.metric)
            if records:
                live_tail = buf.since(start)
                self.buffers.replace_range(ctx.metric, records)
                buf.merge(live_tail)
                ctx.loaded = (start, end)
            ctx.page_skip = 0
            ctx.viewport.show_latest(self.buffers.series(ctx.metric))
            return self.render(ctx.metric)

    # --- Plotly relayout events ---
    def relayout(self, metric, event, flush=False):
        """Queue a zoom/pan from a Plotly relayout event; only the newest one per chart is kept.

        With a positive ``debounce_s`` the first queued event arms a timer that
        calls :meth:`flush`; with ``debounce_s=None`` the caller flushes.
        """
        rng = parse_relayout(event)
        if rng is None:
            return False
        with self._lock:
            self.chart(metric).viewport.schedule(*rng)
            if self.debounce_s and not flush and self.flush_timer is None:
                self.flush_timer = threading.Timer(self.debounce_s, self.flush)
                self.flush_timer.daemon = True
                self.flush_timer.start()
        if flush:
            self.flush()
        return True

    def flush(self):
        with self._lock:
            if self.flush_timer is not None:
                self.flush_timer.cancel()
                self.flush_timer = None
            pending = [(metric, ctx, ctx.viewport.take_pending()) for metric, ctx in self.charts.items()]
        applied = []
        for metric, ctx, rng in pending:
            if rng is None:
                continue
            self._navigate(ctx, *rng)
            applied.append(metric)
        return applied

    # --- Socket.IO wiring ---
    def attach(self, sio):
        sio.on('connect', lambda: log.info("Socket connected"))
        sio.on('disconnect', lambda *args: log.info("Socket disconnected"))
        sio.on(NEW_READING_EVENT, self.on_new_reading)
        sio.on(HISTORY_EVENT, self.on_history)
        return sio

    def connect(self, url=config.API_BASE_URL):
        sio = socketio.Client()
        self.attach(sio)
        sio.connect(url)
        return sio
