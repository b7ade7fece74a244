from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from . import config
from .readings import to_millis

# Flat series still get a visible band of this height.
MIN_Y_SPAN = 1e-6


class Mode(Enum):
    LIVE = 'live'
    HISTORICAL = 'historical'


@dataclass(frozen=True)
class VisibleWindow:
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    y_min: Optional[float] = None
    y_max: Optional[float] = None

    @property
    def has_x_range(self):
        return self.start_time is not None and self.end_time is not None

    @property
    def has_y_range(self):
        return self.y_min is not None and self.y_max is not None

    def contains(self, t):
        return self.has_x_range and self.start_time <= t <= self.end_time


def y_autorange(points, start=None, end=None, pad_fraction=0.05):
    """Y bounds from the points inside ``[start, end]`` only.

    Returns ``(y_min, y_max)`` padded by ``pad_fraction`` of the span, or None
    when no point falls inside the window.
    """
    values = [
        v for t, v in points
        if v is not None and (start is None or t >= start) and (end is None or t <= end)
    ]
    if not values:
        return None
    lo, hi = min(values), max(values)
    span = hi - lo
    if span <= 0:
        span = max(abs(hi) * 0.1, MIN_Y_SPAN)
        return lo - span / 2, hi + span / 2
    pad = span * pad_fraction
    return lo - pad, hi + pad


def parse_relayout(event):
    """Extract the new X range from a Plotly ``relayout`` event, in epoch ms.

    Returns None for events that do not move the X axis (e.g. a Y-only zoom).
    """
    if not event:
        return None
    start = event.get('xaxis.range[0]')
    end = event.get('xaxis.range[1]')
    if (start is None or end is None) and event.get('xaxis.range'):
        start, end = event['xaxis.range'][:2]
    if start is None or end is None:
        return None
    start, end = to_millis(start), to_millis(end)
    if start is None or end is None or end <= start:
        return None
    return start, end


class ViewportController:
    """Per-chart Live/Historical state and the visible window.

    In ``LIVE`` the window follows the newest points (optionally only the last
    ``trailing_points``); any navigation freezes it in ``HISTORICAL`` until
    :meth:`show_latest` is called.
    """

    def __init__(self, trailing_points=None, pad_fraction=config.PAD_FRACTION,
                 max_pad_ms=config.MAX_PAD_MS):
        self.trailing_points = trailing_points
        self.pad_fraction = pad_fraction
        self.max_pad_ms = max_pad_ms
        self.mode = Mode.LIVE
        self.window = VisibleWindow()
        self._pending = None

    @property
    def is_live(self):
        return self.mode is Mode.LIVE

    def visible_points(self, points):
        if self.mode is Mode.LIVE:
            if self.trailing_points:
                return points[-self.trailing_points:]
            return list(points)
        if not self.window.has_x_range:
            return list(points)
        return [p for p in points if self.window.contains(p[0])]

    def follow(self, points):
        """Recenter on the newest points; only meaningful in ``LIVE``."""
        if self.mode is not Mode.LIVE:
            return self.window
        visible = self.visible_points(points)
        if not visible:
            self.window = VisibleWindow()
            return self.window
        start, end = visible[0][0], visible[-1][0]
        bounds = y_autorange(visible, start, end)
        self.window = VisibleWindow(start, end, *(bounds or (None, None)))
        return self.window

    def navigate(self, start, end, points=()):
        """User zoom/pan/slider: enter ``HISTORICAL`` pinned to ``[start, end]``."""
        if end < start:
            start, end = end, start
        self.mode = Mode.HISTORICAL
        self.window = VisibleWindow(start, end)
        return self.autorange(points)

    def autorange(self, points):
        """Recompute the Y range from the points inside the current X window."""
        bounds = y_autorange(points, self.window.start_time, self.window.end_time)
        if bounds is None:
            self.window = replace(self.window, y_min=None, y_max=None)
        else:
            self.window = replace(self.window, y_min=bounds[0], y_max=bounds[1])
        return self.window

    def show_latest(self, points):
        self.mode = Mode.LIVE
        self._pending = None
        return self.follow(points)

    def fetch_bounds(self, start, end):
        """Pad ``[start, end]`` on both sides so small pans stay inside loaded data."""
        pad = min((end - start) * self.pad_fraction, self.max_pad_ms)
        return max(0, int(start - pad)), int(end + pad)

    # --- Debounce ---
    def schedule(self, start, end):
        """Remember the newest requested range. True if nothing was pending yet."""
        first = self._pending is None
        self._pending = (start, end)
        return first

    def take_pending(self):
        pending, self._pending = self._pending, None
        return pending
