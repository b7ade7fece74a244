import pytest

from loradash.segmenter import DOTTED, SOLID, Trace, segment


def test_gap_splits_into_two_segments_and_one_connector():
    traces = segment([(0, 1.0), (1, 2.0), (2, 3.0), (100000, 4.0)], gap_ms=1000)
    assert traces == [
        Trace((0, 1, 2), (1.0, 2.0, 3.0), SOLID),
        Trace((2, 100000), (3.0, 4.0), DOTTED),
        Trace((100000,), (4.0,), SOLID),
    ]


def test_empty_input_gives_one_empty_trace():
    assert segment([], gap_ms=1000) == [Trace((), (), SOLID)]


def test_single_point():
    assert segment([(5, 1.0)], gap_ms=1000) == [Trace((5,), (1.0,), SOLID)]


def test_delta_equal_to_threshold_is_not_a_gap():
    traces = segment([(0, 1.0), (1000, 2.0)], gap_ms=1000)
    assert len(traces) == 1


def test_unsorted_input_is_sorted_first():
    traces = segment([(100000, 4.0), (0, 1.0), (1, 2.0)], gap_ms=1000)
    assert traces[0].x == (0, 1)
    assert traces[-1].x == (100000,)


@pytest.mark.parametrize('times, gap', [
    ([0, 10, 20, 5000, 5001, 9000, 20000, 20001, 20002], 1000),
    ([0, 2, 4, 6, 8], 1),
    (list(range(0, 100, 3)), 3),
    ([0, 3600000, 90000000, 90000001, 200000000], 24 * 3600000),
])
def test_segments_respect_threshold(times, gap):
    points = [(t, float(i)) for i, t in enumerate(times)]
    traces = segment(points, gap_ms=gap)
    solids = [t for t in traces if not t.is_connector]
    links = [t for t in traces if t.is_connector]
    boundaries = sum(1 for a, b in zip(times, times[1:]) if b - a > gap)

    assert len(links) == boundaries
    assert len(solids) == boundaries + 1
    assert traces[-1].style == SOLID
    for seg in solids:
        assert all(b - a <= gap for a, b in zip(seg.x, seg.x[1:]))
    assert sum(len(s) for s in solids) == len(points)
    for conn in links:
        assert len(conn) == 2 and conn.x[1] - conn.x[0] > gap
