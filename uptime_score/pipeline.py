from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import structlog

from .analysis.durations import (
    DURATION_EPSILON_MS,
    aggregate_durations,
    daily_summaries,
    durations_consistent,
    response_time_buckets,
    summarize_checks,
)
from .analysis.scoring import clip_incidents, score_reliability
from .analysis.segmentation import SeededRow, seed_samples, segment_rows
from .analysis.trend import TrendState, rollup_daily, smooth_daily
from .models import (
    CheckConfig,
    CheckStats,
    Durations,
    ErrorRateSample,
    Incident,
    LatencySample,
    Report,
    Sample,
    ScoreInputs,
    ScoreResult,
)
from .windows import DAY_MS, TimeWindow

logger = structlog.get_logger()

DEFAULT_BUCKET_MS = 3_600_000


class SampleProvider(Protocol):
    def fetch_samples(self, target_id: str, window: TimeWindow) -> List[Sample]: ...

    def fetch_prior_sample(self, target_id: str, before_ms: int) -> Optional[Sample]: ...


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


@dataclass(frozen=True)
class WindowAnalysis:
    window: TimeWindow
    rows: List[SeededRow]
    incidents: List[Incident]
    durations: Durations
    stats: CheckStats


def analyze_samples(
    samples: Sequence[Sample],
    window: TimeWindow,
    prior: Optional[Sample] = None,
    *,
    target_id: Optional[str] = None,
) -> WindowAnalysis:
    rows = seed_samples(samples, window, prior)
    incidents = segment_rows(rows, window)
    durations = aggregate_durations(rows, window)
    if not durations_consistent(durations):
        logger.warning(
            "durations_inconsistent",
            target_id=target_id,
            drift_ms=durations.drift_ms,
            epsilon_ms=DURATION_EPSILON_MS,
        )
    return WindowAnalysis(
        window=window,
        rows=rows,
        incidents=incidents,
        durations=durations,
        stats=summarize_checks(samples, window),
    )


def score_many(inputs_by_target: Mapping[str, ScoreInputs], max_workers: Optional[int] = None) -> Dict[str, ScoreResult]:
    """Score independent targets in parallel; scoring shares no state between targets."""
    if not inputs_by_target:
        return {}
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {target: pool.submit(score_reliability, inputs) for target, inputs in inputs_by_target.items()}
        return {target: f.result() for target, f in futures.items()}


def _full_days(window: TimeWindow) -> set:
    return {d.start_ms for d in window.utc_days() if d.duration_ms == DAY_MS}


def build_report(
    *,
    target_id: str,
    samples: Sequence[Sample],
    window: TimeWindow,
    check: CheckConfig,
    prior: Optional[Sample] = None,
    incidents: Optional[List[Incident]] = None,
    latency: Optional[List[LatencySample]] = None,
    error_rates: Optional[List[ErrorRateSample]] = None,
    multi_region_fail_fraction: Optional[float] = None,
    weights: Optional[Mapping[str, float]] = None,
    trend_state: Optional[TrendState] = None,
    alpha: float = 0.3,
    bucket_ms: int = DEFAULT_BUCKET_MS,
    source: str = "samples",
    meta: Optional[Mapping[str, Any]] = None,
) -> Report:
    """Analyze one target's window and score it.

    A precomputed incident log, when given, is clipped to the window and
    replaces the incidents derived from samples for scoring and for the
    report; durations and stats still come from samples.
    Only complete UTC days are folded into ``trend_state``.
    """
    analysis = analyze_samples(samples, window, prior, target_id=target_id)
    scored_incidents = clip_incidents(incidents, window) if incidents is not None else analysis.incidents

    inputs = ScoreInputs(
        window=window,
        check=check,
        incidents=scored_incidents,
        latency=latency,
        error_rates=error_rates,
        multi_region_fail_fraction=multi_region_fail_fraction,
        weights=weights,
    )
    result = score_reliability(inputs)
    daily_scores = rollup_daily(inputs)

    trend: Optional[Dict] = None
    if trend_state is not None:
        full = _full_days(window)
        new_state = smooth_daily(trend_state, [d for d in daily_scores if d.day_start_ms in full], alpha)
        trend = {"alpha": alpha, "state": new_state.to_dict()}

    summaries = {s.day_start_ms: s for s in daily_summaries(samples, window, analysis.incidents)}
    daily = []
    for d in daily_scores:
        row = d.to_dict()
        summary = summaries.get(d.day_start_ms)
        if summary is not None:
            row.update(
                total_checks=summary.total_checks,
                issue_count=summary.issue_count,
                has_issues=summary.has_issues,
                avg_response_time_ms=summary.avg_response_time_ms,
            )
        daily.append(row)

    logger.info(
        "window_scored",
        target_id=target_id,
        score=round(result.score, 4),
        incidents=len(scored_incidents),
        samples=analysis.stats.total_checks,
    )

    return Report(
        meta={
            "target_id": target_id,
            "source": source,
            "generated_at": _now_iso(),
            "check_interval_sec": check.check_interval_sec,
            "prior_sample": prior is not None,
            "precomputed_incidents": incidents is not None,
            **(meta or {}),
        },
        window=window.to_dict(),
        durations=analysis.durations.to_dict(),
        stats=asdict(analysis.stats),
        incidents=[i.to_dict() for i in scored_incidents],
        score=result.to_dict(),
        response_time_buckets=[asdict(b) for b in response_time_buckets(samples, window, bucket_ms)],
        daily=daily,
        trend=trend,
    )


def analyze_from_provider(
    *,
    provider: SampleProvider,
    target_id: str,
    window: TimeWindow,
    check: CheckConfig,
    **kwargs,
) -> Report:
    samples = provider.fetch_samples(target_id, window)
    prior = provider.fetch_prior_sample(target_id, window.start_ms)
    kwargs.setdefault("source", "api")
    return build_report(target_id=target_id, samples=samples, window=window, check=check, prior=prior, **kwargs)
