from datetime import datetime, timedelta, timezone

import pytest

from bookings.time_range import TimeRange

T0 = datetime(2030, 5, 1, 10, 0, tzinfo=timezone.utc)


def rng(start_minutes, end_minutes):
    return TimeRange(T0 + timedelta(minutes=start_minutes), T0 + timedelta(minutes=end_minutes))


@pytest.mark.parametrize('a, b', [
    (rng(0, 60), rng(30, 90)),
    (rng(0, 60), rng(-30, 10)),
    (rng(0, 60), rng(15, 45)),
    (rng(0, 60), rng(0, 60)),
])
def test_overlapping_ranges_overlap_both_ways(a, b):
    assert a.overlaps(b)
    assert b.overlaps(a)


@pytest.mark.parametrize('a, b', [
    (rng(0, 60), rng(60, 120)),
    (rng(0, 60), rng(-60, 0)),
    (rng(0, 60), rng(90, 120)),
])
def test_adjoining_and_disjoint_ranges_do_not_overlap(a, b):
    assert not a.overlaps(b)
    assert not b.overlaps(a)


def test_range_overlaps_itself():
    a = rng(0, 1)
    assert a.overlaps(a)


@pytest.mark.parametrize('end_minutes', [0, -15])
def test_empty_or_inverted_range_is_rejected(end_minutes):
    with pytest.raises(ValueError):
        rng(0, end_minutes)


def test_contains_start_but_not_end():
    a = rng(0, 60)
    assert a.contains(a.start)
    assert not a.contains(a.end)
    assert a.duration == timedelta(hours=1)
