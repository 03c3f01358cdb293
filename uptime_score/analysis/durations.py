from __future__ import annotations

from typing import Dict, Iterable, List

from ..models import CheckStats, DailySummary, Durations, Incident, ResponseTimeBucket, Sample, is_online_label
from ..windows import TimeWindow, start_of_utc_day
from .segmentation import SeededRow

DURATION_EPSILON_MS = 1


def aggregate_durations(rows: List[SeededRow], window: TimeWindow) -> Durations:
    """Online/offline milliseconds inside the window for a seeded row sequence.

    Each row holds its state until the next row (or the window end). Any
    stretch before the first row is online, matching the unseeded default.
    """
    online = 0
    offline = 0
    if not rows or rows[0].timestamp_ms > window.start_ms:
        first_ts = rows[0].timestamp_ms if rows else window.end_ms
        online += max(0, min(first_ts, window.end_ms) - window.start_ms)

    for i, row in enumerate(rows):
        if row.timestamp_ms >= window.end_ms:
            break
        next_ts = rows[i + 1].timestamp_ms if i + 1 < len(rows) else window.end_ms
        start = max(row.timestamp_ms, window.start_ms)
        duration = max(0, min(next_ts, window.end_ms) - start)
        if row.is_offline:
            offline += duration
        else:
            online += duration

    return Durations(total_ms=window.duration_ms, online_ms=online, offline_ms=offline)


def durations_consistent(durations: Durations, epsilon_ms: int = DURATION_EPSILON_MS) -> bool:
    return abs(durations.drift_ms) <= epsilon_ms


def _positive_response_times(samples: Iterable[Sample]) -> List[float]:
    out: List[float] = []
    for s in samples:
        rt = s.response_time_ms
        if rt is None:
            continue
        try:
            v = float(rt)
        except (TypeError, ValueError):
            continue
        if v > 0:
            out.append(v)
    return out


def summarize_checks(samples: Iterable[Sample], window: TimeWindow) -> CheckStats:
    in_window = [s for s in samples if window.contains(int(s.timestamp_ms))]
    rts = _positive_response_times(in_window)
    return CheckStats(
        total_checks=len(in_window),
        online_checks=sum(1 for s in in_window if is_online_label(s.status)),
        offline_checks=sum(1 for s in in_window if s.is_offline),
        response_sample_count=len(rts),
        avg_response_time_ms=(sum(rts) / float(len(rts))) if rts else None,
        min_response_time_ms=min(rts) if rts else None,
        max_response_time_ms=max(rts) if rts else None,
    )


def response_time_buckets(samples: Iterable[Sample], window: TimeWindow, bucket_ms: int) -> List[ResponseTimeBucket]:
    if bucket_ms <= 0:
        raise ValueError(f"bucket_ms must be > 0, got {bucket_ms}")
    grouped: Dict[int, List[float]] = {}
    for s in samples:
        ts = int(s.timestamp_ms)
        if not window.contains(ts):
            continue
        vals = _positive_response_times([s])
        if not vals:
            continue
        grouped.setdefault((ts // bucket_ms) * bucket_ms, []).extend(vals)
    return [
        ResponseTimeBucket(bucket_start_ms=b, avg_response_time_ms=sum(v) / float(len(v)), sample_count=len(v))
        for b, v in sorted(grouped.items())
    ]


def daily_summaries(
    samples: Iterable[Sample],
    window: TimeWindow,
    incidents: List[Incident],
) -> List[DailySummary]:
    """One summary per UTC day touched by the window.

    ``issue_count`` is the number of offline intervals overlapping the day, so
    an outage spanning midnight counts on both days.
    """
    sample_list = [s for s in samples if window.contains(int(s.timestamp_ms))]
    out: List[DailySummary] = []
    for day in window.utc_days():
        day_samples = [s for s in sample_list if day.contains(int(s.timestamp_ms))]
        rts = _positive_response_times(day_samples)
        issues = 0
        for inc in incidents:
            end = inc.ended_at_ms if inc.ended_at_ms is not None else window.end_ms
            if day.clip(inc.started_at_ms, end) is not None:
                issues += 1
        out.append(
            DailySummary(
                day_start_ms=start_of_utc_day(day.start_ms),
                total_checks=len(day_samples),
                issue_count=issues,
                avg_response_time_ms=(sum(rts) / float(len(rts))) if rts else None,
            )
        )
    return out
