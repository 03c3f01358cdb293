import pytest

from uptime_score.windows import (
    DAY_MS,
    InvalidWindow,
    TimeWindow,
    last_full_utc_days,
    start_of_utc_day,
    to_millis,
    window_ending_at,
)

DAY0 = 1_700_006_400_000  # 2023-11-15T00:00:00Z


def test_window_ending_at_epoch_seconds():
    w = window_ending_at(anchor_ts="1700000000", window_minutes=10)
    assert w.end_ms == 1_700_000_000_000
    assert w.start_ms == 1_700_000_000_000 - 600_000
    assert w.minutes == 10


def test_window_ending_at_iso():
    w = window_ending_at(anchor_ts="2025-01-01T00:00:00Z", window_minutes=5)
    assert w.end.isoformat().startswith("2025-01-01T00:00:00")


def test_window_rejects_empty_or_reversed_bounds():
    with pytest.raises(InvalidWindow):
        TimeWindow(start_ms=DAY0, end_ms=DAY0)
    with pytest.raises(InvalidWindow):
        TimeWindow(start_ms=DAY0, end_ms=DAY0 - 1)


def test_to_millis_accepts_ms_ints_and_iso():
    assert to_millis(DAY0) == DAY0
    assert to_millis("2023-11-15T00:00:00Z") == DAY0
    assert to_millis("1700006400") == DAY0


def test_utc_days_clips_first_and_last_day():
    w = TimeWindow(start_ms=DAY0 + 12 * 3_600_000, end_ms=DAY0 + DAY_MS + 6 * 3_600_000)
    days = w.utc_days()
    assert [(d.start_ms, d.end_ms) for d in days] == [
        (DAY0 + 12 * 3_600_000, DAY0 + DAY_MS),
        (DAY0 + DAY_MS, DAY0 + DAY_MS + 6 * 3_600_000),
    ]
    assert start_of_utc_day(DAY0 + 5) == DAY0


def test_contains_is_half_open():
    w = TimeWindow(start_ms=DAY0, end_ms=DAY0 + 1000)
    assert w.contains(DAY0)
    assert not w.contains(DAY0 + 1000)


def test_last_full_utc_days_ends_at_midnight():
    w = last_full_utc_days(days=2, now="2023-11-15T13:45:00Z")
    assert w.end_ms == 1_700_006_400_000
    assert w.duration_ms == 2 * DAY_MS
    assert all(d.duration_ms == DAY_MS for d in w.utc_days())
