from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from . import config

SOLID = 'solid'
DOTTED = 'dot'


@dataclass(frozen=True)
class Trace:
    """One drawable line: a solid data segment or a dotted gap connector."""

    x: Tuple[int, ...]
    y: Tuple[Optional[float], ...]
    style: str = SOLID

    @property
    def is_connector(self):
        return self.style == DOTTED

    def __len__(self):
        return len(self.x)


def segment(points, gap_ms=config.GAP_MS):
    """Split ``(t_ms, value)`` points into solid segments joined by dotted connectors.

    A new segment starts wherever consecutive samples are more than ``gap_ms``
    apart; the boundary gets a two-point connector from the last point of the
    closed segment to the first point of the new one. The result always ends
    with a solid segment, and no points gives a single empty trace.
    """
    points = sorted(points, key=lambda p: p[0])
    if not points:
        return [Trace((), (), SOLID)]

    ts = np.fromiter((p[0] for p in points), dtype=np.float64, count=len(points))
    breaks = np.flatnonzero(np.diff(ts) > gap_ms) + 1

    traces = []
    start = 0
    for stop in breaks.tolist() + [len(points)]:
        run = points[start:stop]
        traces.append(Trace(tuple(p[0] for p in run), tuple(p[1] for p in run), SOLID))
        if stop < len(points):
            left, right = points[stop - 1], points[stop]
            traces.append(Trace((left[0], right[0]), (left[1], right[1]), DOTTED))
        start = stop
    return traces
