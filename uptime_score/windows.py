from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import List, Optional, Tuple, Union

DAY_MS = 86_400_000

Timestamp = Union[int, float, str, datetime]


class InvalidWindow(ValueError):
    pass


def _parse_ts(ts: Optional[Timestamp]) -> datetime:
    if ts is None or (isinstance(ts, str) and ts.strip() == ""):
        return datetime.now(tz=UTC)
    if isinstance(ts, datetime):
        if ts.tzinfo is None:
            return ts.replace(tzinfo=UTC)
        return ts.astimezone(UTC)
    if isinstance(ts, (int, float)):
        return _from_epoch(float(ts))
    s = str(ts).strip()
    # epoch seconds or milliseconds
    if s.isdigit():
        return _from_epoch(float(int(s)))
    # ISO-ish
    s = s.replace("Z", "+00:00")
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _from_epoch(v: float) -> datetime:
    if v > 10_000_000_000:  # ms
        return datetime.fromtimestamp(v / 1000.0, tz=UTC)
    return datetime.fromtimestamp(v, tz=UTC)


def to_millis(ts: Timestamp) -> int:
    """Epoch milliseconds for any accepted timestamp shape.

    Integers are taken as milliseconds as-is (the internal unit); strings of
    digits and floats go through the seconds/milliseconds heuristic.
    """
    if isinstance(ts, int) and not isinstance(ts, bool):
        return ts
    dt = _parse_ts(ts)
    return int(round(dt.timestamp() * 1000))


def ms_to_iso(ms: Optional[int]) -> Optional[str]:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000.0, tz=UTC).isoformat()


def start_of_utc_day(ms: int) -> int:
    return (int(ms) // DAY_MS) * DAY_MS


@dataclass(frozen=True)
class TimeWindow:
    """Half-open reporting window ``[start_ms, end_ms)`` in epoch milliseconds."""

    start_ms: int
    end_ms: int

    def __post_init__(self) -> None:
        for v in (self.start_ms, self.end_ms):
            if not isinstance(v, (int, float)) or not math.isfinite(v):
                raise InvalidWindow(f"window bounds must be finite numbers: start={self.start_ms} end={self.end_ms}")
        if self.end_ms <= self.start_ms:
            raise InvalidWindow(f"window end must be after start: start={self.start_ms} end={self.end_ms}")

    @staticmethod
    def between(start: Timestamp, end: Timestamp) -> "TimeWindow":
        return TimeWindow(start_ms=to_millis(start), end_ms=to_millis(end))

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    @property
    def minutes(self) -> float:
        return self.duration_ms / 60_000.0

    @property
    def start(self) -> datetime:
        return datetime.fromtimestamp(self.start_ms / 1000.0, tz=UTC)

    @property
    def end(self) -> datetime:
        return datetime.fromtimestamp(self.end_ms / 1000.0, tz=UTC)

    def contains(self, ts_ms: int) -> bool:
        return self.start_ms <= ts_ms < self.end_ms

    def clip(self, start_ms: int, end_ms: int) -> Optional[Tuple[int, int]]:
        s = max(start_ms, self.start_ms)
        e = min(end_ms, self.end_ms)
        if e <= s:
            return None
        return s, e

    def utc_days(self) -> List["TimeWindow"]:
        """Split into UTC calendar days; the first and last day are clipped to the window."""
        days: List[TimeWindow] = []
        day = start_of_utc_day(self.start_ms)
        while day < self.end_ms:
            s = max(day, self.start_ms)
            e = min(day + DAY_MS, self.end_ms)
            days.append(TimeWindow(start_ms=s, end_ms=e))
            day += DAY_MS
        return days

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
            "minutes": self.minutes,
        }


def window_ending_at(*, anchor_ts: Optional[Timestamp], window_minutes: int) -> TimeWindow:
    anchor = _parse_ts(anchor_ts)
    start = anchor - timedelta(minutes=int(window_minutes))
    return TimeWindow.between(start, anchor)


def last_full_utc_days(*, days: int, now: Optional[Timestamp] = None) -> TimeWindow:
    """Window covering the ``days`` completed UTC days before ``now``."""
    end = start_of_utc_day(to_millis(_parse_ts(now)))
    return TimeWindow(start_ms=end - int(days) * DAY_MS, end_ms=end)
