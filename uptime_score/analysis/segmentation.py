from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..models import Incident, Sample, Severity
from ..windows import TimeWindow


@dataclass(frozen=True)
class SeededRow:
    timestamp_ms: int
    is_offline: bool
    is_seed: bool = False


def seed_samples(
    samples: Iterable[Sample],
    window: TimeWindow,
    prior: Optional[Sample] = None,
) -> List[SeededRow]:
    """Build the ordered row sequence shared by segmentation and duration aggregation.

    Only samples inside ``[start, end)`` are kept. Samples sharing a timestamp
    collapse to the last one given. When ``prior`` (the most recent sample
    before the window) is known, its state is carried into the window as a
    seed row at ``start`` unless a real sample already sits there. Without a
    prior sample nothing is seeded and the window is taken to start online.
    """
    in_window = [s for s in samples if window.contains(int(s.timestamp_ms))]
    # stable sort keeps input order among equal timestamps
    in_window.sort(key=lambda s: int(s.timestamp_ms))

    rows: List[SeededRow] = []
    for s in in_window:
        row = SeededRow(timestamp_ms=int(s.timestamp_ms), is_offline=s.is_offline)
        if rows and rows[-1].timestamp_ms == row.timestamp_ms:
            rows[-1] = row
        else:
            rows.append(row)

    if prior is not None and (not rows or rows[0].timestamp_ms != window.start_ms):
        rows.insert(0, SeededRow(timestamp_ms=window.start_ms, is_offline=prior.is_offline, is_seed=True))
    return rows


def segment_rows(rows: List[SeededRow], window: TimeWindow) -> List[Incident]:
    """Offline intervals from an ordered row sequence, clipped to the window.

    A new segment starts whenever the offline flag changes. Each segment runs
    from its first row to the first row of the next segment (or the window
    end for the last one).
    """
    segment_starts: List[SeededRow] = []
    segment_ids: List[int] = []
    segment_id = 0
    prev_offline: Optional[bool] = None
    for row in rows:
        if row.timestamp_ms >= window.end_ms:
            break
        if prev_offline is None or row.is_offline != prev_offline:
            segment_id += 1
            segment_starts.append(row)
            segment_ids.append(segment_id)
        prev_offline = row.is_offline

    incidents: List[Incident] = []
    for i, first in enumerate(segment_starts):
        if not first.is_offline:
            continue
        end_ms = segment_starts[i + 1].timestamp_ms if i + 1 < len(segment_starts) else window.end_ms
        start_ms = max(first.timestamp_ms, window.start_ms)
        if end_ms <= start_ms:
            continue
        incidents.append(
            Incident(
                started_at_ms=start_ms,
                ended_at_ms=end_ms,
                severity=Severity.OTHER,
                planned=False,
                id=f"seg-{segment_ids[i]}",
            )
        )
    return incidents


def segment_incidents(
    samples: Iterable[Sample],
    window: TimeWindow,
    prior: Optional[Sample] = None,
) -> List[Incident]:
    return segment_rows(seed_samples(samples, window, prior), window)
