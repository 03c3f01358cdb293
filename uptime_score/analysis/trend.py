from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog

from ..models import DailyScore, Incident, ScoreInputs
from ..windows import TimeWindow, start_of_utc_day
from .scoring import score_reliability

logger = structlog.get_logger()

Point = Tuple[int, float]


def _check_alpha(alpha: float) -> float:
    a = float(alpha)
    if not (0.0 < a <= 1.0):
        raise ValueError(f"alpha must be in (0, 1], got {alpha}")
    return a


def ewma(points: List[Point], alpha: float) -> List[Point]:
    a = _check_alpha(alpha)
    out: List[Point] = []
    prev: Optional[float] = None
    for ts, value in points:
        prev = float(value) if prev is None else a * float(value) + (1.0 - a) * prev
        out.append((ts, prev))
    return out


def average_daily(points: Iterable[Point]) -> List[Point]:
    """Average pre-scored points per UTC calendar day, ascending by day."""
    by_day: Dict[int, List[float]] = {}
    for ts, value in points:
        by_day.setdefault(start_of_utc_day(ts), []).append(float(value))
    return [(day, sum(vals) / float(len(vals))) for day, vals in sorted(by_day.items())]


def _incidents_within(day: TimeWindow, incidents: Iterable[Incident], outer_end_ms: int) -> List[Incident]:
    out: List[Incident] = []
    for inc in incidents:
        end = inc.ended_at_ms if inc.ended_at_ms is not None else outer_end_ms
        if end < inc.started_at_ms:
            continue
        clipped = day.clip(inc.started_at_ms, end)
        if clipped is None:
            continue
        out.append(replace(inc, started_at_ms=clipped[0], ended_at_ms=clipped[1]))
    return out


def rollup_daily(inputs: ScoreInputs) -> List[DailyScore]:
    """Score each UTC calendar day of ``inputs.window`` on its own.

    Incidents and signal samples are split along day boundaries first so
    the scorer sees each day as a self-contained window.
    """
    out: List[DailyScore] = []
    for day in inputs.window.utc_days():
        day_inputs = replace(
            inputs,
            window=day,
            incidents=_incidents_within(day, inputs.incidents, inputs.window.end_ms),
            latency=[s for s in inputs.latency if day.contains(s.timestamp_ms)] if inputs.latency else None,
            error_rates=[s for s in inputs.error_rates if day.contains(s.timestamp_ms)] if inputs.error_rates else None,
        )
        result = score_reliability(day_inputs)
        out.append(DailyScore(day_start_ms=start_of_utc_day(day.start_ms), score=result.score, result=result))
    return out


@dataclass(frozen=True)
class TrendState:
    """Smoothed score for one monitored target.

    Callers own persistence and must serialize updates per target.
    """

    target_id: str
    smoothed: Optional[float] = None
    last_day_ms: Optional[int] = None
    observations: int = 0

    def update(self, day_start_ms: int, score: float, alpha: float) -> "TrendState":
        a = _check_alpha(alpha)
        day = start_of_utc_day(day_start_ms)
        if self.last_day_ms is not None and day <= self.last_day_ms:
            logger.warning(
                "trend_update_skipped",
                target_id=self.target_id,
                day_start_ms=day,
                last_day_ms=self.last_day_ms,
            )
            return self
        if self.smoothed is None:
            smoothed = float(score)
        else:
            smoothed = a * float(score) + (1.0 - a) * self.smoothed
        return TrendState(
            target_id=self.target_id,
            smoothed=smoothed,
            last_day_ms=day,
            observations=self.observations + 1,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "smoothed": self.smoothed,
            "last_day_ms": self.last_day_ms,
            "observations": self.observations,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "TrendState":
        smoothed = d.get("smoothed")
        last_day = d.get("last_day_ms")
        return TrendState(
            target_id=str(d["target_id"]),
            smoothed=None if smoothed is None else float(smoothed),
            last_day_ms=None if last_day is None else int(last_day),
            observations=int(d.get("observations") or 0),
        )


def smooth_daily(state: TrendState, daily: Iterable[DailyScore], alpha: float) -> TrendState:
    for d in sorted(daily, key=lambda x: x.day_start_ms):
        state = state.update(d.day_start_ms, d.score, alpha)
    return state
