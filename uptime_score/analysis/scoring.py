from __future__ import annotations

import math
from typing import Dict, Iterable, List, Mapping, Optional

import structlog

from ..models import ErrorRateSample, Incident, LatencySample, ScoreInputs, ScoreResult, Severity
from ..windows import TimeWindow

logger = structlog.get_logger()

SEVERITY_WEIGHTS: Dict[Severity, float] = {
    Severity.TLS_DNS: 1.2,
    Severity.HTTP_5XX: 1.0,
    Severity.SLOW: 0.5,
    Severity.NETWORK: 1.0,
    Severity.OTHER: 1.0,
}

POWER_P = 1.3
PLANNED_PENALTY_FACTOR = 0.2
FREQUENCY_BETA = 1.0 / 3.0
MTTR_CAP_MINUTES = 60.0
CONFIDENCE_REFERENCE_SEC = 60.0
LATENCY_GAMMA = 2.0
ERROR_RATE_CAP = 0.01

DEFAULT_WEIGHTS: Dict[str, float] = {"A": 0.6, "F": 0.2, "R": 0.2}
OPTIONAL_WEIGHTS: Dict[str, float] = {"C": 0.15, "E": 0.10, "B": 0.10}
COMPONENT_ORDER = ("A", "F", "R", "C", "E", "B")


def clamp01(x: float) -> float:
    if not math.isfinite(x):
        return 0.0
    if x < 0:
        return 0.0
    if x > 1:
        return 1.0
    return float(x)


def clip_incident(incident: Incident, window: TimeWindow) -> Optional[Incident]:
    """Incident clipped to the window, or None when nothing of it remains.

    Ongoing incidents (no end) run to the window end. Reversed and
    out-of-window incidents are dropped with a warning rather than rejected.
    """
    end = incident.ended_at_ms if incident.ended_at_ms is not None else window.end_ms
    if end < incident.started_at_ms:
        logger.warning(
            "incident_reversed",
            incident_id=incident.id,
            started_at_ms=incident.started_at_ms,
            ended_at_ms=incident.ended_at_ms,
        )
        return None
    clipped = window.clip(incident.started_at_ms, end)
    if clipped is None:
        if end > incident.started_at_ms:
            logger.warning("incident_outside_window", incident_id=incident.id)
        return None
    start_ms, end_ms = clipped
    if (start_ms, end_ms) != (incident.started_at_ms, end):
        logger.warning("incident_clipped", incident_id=incident.id, started_at_ms=start_ms, ended_at_ms=end_ms)
    return Incident(
        started_at_ms=start_ms,
        ended_at_ms=end_ms,
        severity=incident.severity,
        planned=incident.planned,
        id=incident.id,
    )


def clip_incidents(incidents: Iterable[Incident], window: TimeWindow) -> List[Incident]:
    out: List[Incident] = []
    for inc in incidents:
        c = clip_incident(inc, window)
        if c is not None:
            out.append(c)
    return out


def _minutes(incident: Incident) -> float:
    return incident.duration_ms() / 60_000.0


def downtime_penalty(incidents: List[Incident], window_minutes: float) -> float:
    numerator = 0.0
    for inc in incidents:
        factor = PLANNED_PENALTY_FACTOR if inc.planned else 1.0
        weighted = SEVERITY_WEIGHTS[Severity.parse(inc.severity)] * factor * _minutes(inc)
        numerator += math.pow(weighted, POWER_P)
    return numerator / math.pow(window_minutes, POWER_P)


def availability_a(incidents: List[Incident], window_minutes: float) -> float:
    return clamp01(1.0 - downtime_penalty(incidents, window_minutes))


def frequency_f(incidents: List[Incident]) -> float:
    n = sum(1 for inc in incidents if not inc.planned)
    return 1.0 / (1.0 + FREQUENCY_BETA * n)


def recovery_r(incidents: List[Incident]) -> float:
    durations = [_minutes(inc) for inc in incidents if not inc.planned]
    if not durations:
        return 1.0
    mttr = sum(durations) / float(len(durations))
    return max(0.0, 1.0 - mttr / MTTR_CAP_MINUTES)


def confidence_k(check_interval_sec: float) -> float:
    return min(1.0, CONFIDENCE_REFERENCE_SEC / float(check_interval_sec))


def latency_c(samples: List[LatencySample]) -> float:
    ratios: List[float] = []
    for s in samples:
        if s.p50_ms <= 0:
            continue
        j = (s.p95_ms - s.p50_ms) / s.p50_ms
        if not math.isfinite(j) or j < 0:
            continue
        ratios.append(j)
    if not ratios:
        logger.warning("latency_samples_unusable", supplied=len(samples))
        return 1.0
    avg_j = sum(ratios) / float(len(ratios))
    return math.exp(-LATENCY_GAMMA * avg_j)


def error_quality_e(samples: List[ErrorRateSample]) -> float:
    total_req = 0
    total_err = 0
    for s in samples:
        req = max(0, s.requests)
        err = max(0, s.errors)
        if err > req or s.requests < 0 or s.errors < 0:
            logger.warning(
                "error_sample_clamped",
                timestamp_ms=s.timestamp_ms,
                requests=s.requests,
                errors=s.errors,
            )
            err = min(err, req)
        total_req += req
        total_err += err
    if total_req <= 0:
        return 1.0
    e = total_err / float(total_req)
    return 1.0 - min(1.0, e / ERROR_RATE_CAP)


def blast_radius_b(multi_region_fail_fraction: float) -> float:
    return 1.0 - clamp01(multi_region_fail_fraction)


def resolve_weights(active: Iterable[str], overrides: Optional[Mapping[str, float]] = None) -> Dict[str, float]:
    """Weights for the active components, normalized to sum to 1."""
    defaults = {**DEFAULT_WEIGHTS, **OPTIONAL_WEIGHTS}
    raw: Dict[str, float] = {}
    for k in active:
        w = float(overrides[k]) if overrides and k in overrides else defaults[k]
        if not math.isfinite(w) or w < 0:
            raise ValueError(f"weight for {k} must be a finite number >= 0, got {w}")
        raw[k] = w
    total = sum(raw.values())
    if total <= 0:
        raise ValueError("at least one active component needs a positive weight")
    return {k: w / total for k, w in raw.items()}


def combine_geometric(values: Mapping[str, float], weights: Mapping[str, float]) -> float:
    product = 1.0
    for k, w in weights.items():
        x = clamp01(values[k])
        if w == 0:
            continue
        if x == 0:
            return 0.0
        product *= math.pow(x, w)
    return product


def score_reliability(inputs: ScoreInputs) -> ScoreResult:
    """Composite 0-100 reliability score for one target over one window.

    Availability, frequency and recovery are always scored; latency
    consistency, error quality and blast radius join only when their signal
    is supplied, and the weight vector is renormalized over whatever is
    active. The result is scaled by sampling confidence.
    """
    window = inputs.window
    incidents = clip_incidents(inputs.incidents, window)

    parts: Dict[str, float] = {
        "A": availability_a(incidents, window.minutes),
        "F": frequency_f(incidents),
        "R": recovery_r(incidents),
    }
    if inputs.latency:
        parts["C"] = latency_c(list(inputs.latency))
    if inputs.error_rates:
        parts["E"] = error_quality_e(list(inputs.error_rates))
    if inputs.multi_region_fail_fraction is not None:
        parts["B"] = blast_radius_b(inputs.multi_region_fail_fraction)

    active = [k for k in COMPONENT_ORDER if k in parts]
    weights = resolve_weights(active, inputs.weights)
    s_base = combine_geometric(parts, weights)

    k = confidence_k(inputs.check.check_interval_sec)
    parts["K"] = k
    score = 100.0 * s_base * (0.5 + 0.5 * k)
    return ScoreResult(
        score=min(100.0, max(0.0, score)),
        parts=parts,
        s_base=s_base,
        weights=weights,
    )
