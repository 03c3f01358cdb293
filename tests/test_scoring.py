import math

import pytest
from structlog.testing import capture_logs

from uptime_score.analysis.scoring import (
    clip_incident,
    downtime_penalty,
    error_quality_e,
    latency_c,
    resolve_weights,
    score_reliability,
)
from uptime_score.models import (
    CheckConfig,
    ErrorRateSample,
    Incident,
    InvalidCheckConfig,
    LatencySample,
    ScoreInputs,
    Severity,
)
from uptime_score.windows import InvalidWindow, TimeWindow

DAY0 = 1_700_006_400_000
MIN = 60_000
DAY = TimeWindow(start_ms=DAY0, end_ms=DAY0 + 1440 * MIN)


def _inc(start_min, minutes, severity=Severity.OTHER, planned=False, id=None):
    return Incident(
        started_at_ms=DAY0 + start_min * MIN,
        ended_at_ms=DAY0 + (start_min + minutes) * MIN,
        severity=severity,
        planned=planned,
        id=id,
    )


def _inputs(incidents=(), interval=60, window=DAY, **kw):
    return ScoreInputs(window=window, check=CheckConfig(site_id="s1", check_interval_sec=interval), incidents=list(incidents), **kw)


def test_scenario_a_clean_day_with_minute_checks_scores_100():
    r = score_reliability(_inputs())
    assert r.parts["K"] == 1
    assert r.score == 100
    assert r.weights == pytest.approx({"A": 0.6, "F": 0.2, "R": 0.2})


def test_scenario_b_single_5xx_incident_matches_hand_computation():
    r = score_reliability(_inputs([_inc(100, 30, Severity.HTTP_5XX)], interval=300))
    a = 1 - (1.0 * 30) ** 1.3 / 1440**1.3
    assert r.parts["K"] == pytest.approx(0.2)
    assert r.parts["A"] == pytest.approx(a)
    assert r.parts["F"] == pytest.approx(0.75)
    assert r.parts["R"] == pytest.approx(0.5)
    expected = 100 * (a**0.6 * 0.75**0.2 * 0.5**0.2) * (0.5 + 0.5 * 0.2)
    assert round(r.score, 2) == round(expected, 2)
    assert r.score == pytest.approx(49.12, abs=0.01)


def test_scenario_c_planned_incident_excluded_from_frequency_and_mttr():
    incidents = [_inc(0, 60, Severity.OTHER, planned=True), _inc(600, 10, Severity.NETWORK)]
    r = score_reliability(_inputs(incidents))
    assert r.parts["F"] == pytest.approx(1 / (1 + 1 / 3))
    assert r.parts["R"] == pytest.approx(1 - 10 / 60)
    penalty = ((0.2 * 60) ** 1.3 + 10**1.3) / 1440**1.3
    assert r.parts["A"] == pytest.approx(1 - penalty)


def test_scenario_d_empty_hour_scales_with_confidence():
    window = TimeWindow(start_ms=DAY0, end_ms=DAY0 + 60 * MIN)
    r = score_reliability(_inputs(window=window, interval=120))
    assert r.parts["A"] == r.parts["F"] == r.parts["R"] == 1
    assert r.score == pytest.approx(100 * (0.5 + 0.5 * 0.5))


def test_longer_unplanned_incident_never_raises_score():
    scores = [score_reliability(_inputs([_inc(10, m, Severity.TLS_DNS)])).score for m in (1, 5, 30, 60, 240, 1000)]
    avail = [score_reliability(_inputs([_inc(10, m, Severity.TLS_DNS)])).parts["A"] for m in (1, 5, 30, 60, 240, 1000)]
    assert scores == sorted(scores, reverse=True)
    assert avail == sorted(avail, reverse=True)


def test_planned_incident_counts_a_fifth_of_its_weighted_minutes():
    planned = downtime_penalty([_inc(0, 45, Severity.HTTP_5XX, planned=True)], 1440)
    assert planned == pytest.approx(downtime_penalty([_inc(0, 9, Severity.HTTP_5XX)], 1440))
    assert planned == pytest.approx((0.2 * 1.0 * 45) ** 1.3 / 1440**1.3)
    planned_other = downtime_penalty([_inc(0, 60, Severity.OTHER, planned=True)], 1440)
    assert planned_other == pytest.approx(0.0019818207906235293)


def test_invalid_inputs_are_rejected():
    with pytest.raises(InvalidCheckConfig):
        CheckConfig(site_id="s", check_interval_sec=0)
    with pytest.raises(InvalidCheckConfig):
        CheckConfig(site_id="s", check_interval_sec=-30)
    with pytest.raises(InvalidWindow):
        TimeWindow(start_ms=DAY0, end_ms=DAY0)


def test_all_optional_signals_renormalize_weights():
    r = score_reliability(
        _inputs(
            latency=[LatencySample(timestamp_ms=DAY0, p50_ms=100, p95_ms=150)],
            error_rates=[ErrorRateSample(timestamp_ms=DAY0, requests=1000, errors=5)],
            multi_region_fail_fraction=0.25,
        )
    )
    assert set(r.weights) == {"A", "F", "R", "C", "E", "B"}
    assert sum(r.weights.values()) == pytest.approx(1.0)
    assert r.weights["C"] / r.weights["A"] == pytest.approx(0.15 / 0.6)
    assert r.parts["C"] == pytest.approx(math.exp(-2.0 * 0.5))
    assert r.parts["E"] == pytest.approx(0.5)
    assert r.parts["B"] == pytest.approx(0.75)
    expected_base = math.prod(r.parts[k] ** w for k, w in r.weights.items())
    assert r.s_base == pytest.approx(expected_base)
    assert r.score == pytest.approx(100 * expected_base)


def test_single_optional_signal_renormalizes_active_weights_only():
    weights = resolve_weights(["A", "F", "R", "C"])
    assert weights == pytest.approx({"A": 0.6 / 1.15, "F": 0.2 / 1.15, "R": 0.2 / 1.15, "C": 0.15 / 1.15})


def test_weight_overrides_apply_to_active_components():
    weights = resolve_weights(["A", "F", "R"], {"A": 0.4, "E": 5.0})
    assert weights == pytest.approx({"A": 0.5, "F": 0.25, "R": 0.25})
    with pytest.raises(ValueError):
        resolve_weights(["A", "F", "R"], {"F": -1})


def test_neutral_fallbacks_for_empty_signals():
    assert error_quality_e([ErrorRateSample(timestamp_ms=DAY0, requests=0, errors=0)]) == 1.0
    with capture_logs() as logs:
        assert latency_c([LatencySample(timestamp_ms=DAY0, p50_ms=0, p95_ms=10)]) == 1.0
    assert logs[0]["event"] == "latency_samples_unusable"


def test_errors_above_requests_are_clamped():
    with capture_logs() as logs:
        e = error_quality_e([ErrorRateSample(timestamp_ms=DAY0, requests=10, errors=50)])
    assert e == 0.0
    assert logs[0]["event"] == "error_sample_clamped"


def test_malformed_incidents_are_clipped_or_dropped_with_warnings():
    reversed_inc = Incident(started_at_ms=DAY0 + 10 * MIN, ended_at_ms=DAY0 + 5 * MIN, id="rev")
    outside = Incident(started_at_ms=DAY0 - 120 * MIN, ended_at_ms=DAY0 - 60 * MIN, id="old")
    spanning = Incident(started_at_ms=DAY0 - 30 * MIN, ended_at_ms=DAY0 + 30 * MIN, id="span")
    with capture_logs() as logs:
        assert clip_incident(reversed_inc, DAY) is None
        assert clip_incident(outside, DAY) is None
        clipped = clip_incident(spanning, DAY)
    assert [e["event"] for e in logs] == ["incident_reversed", "incident_outside_window", "incident_clipped"]
    assert all(e["log_level"] == "warning" for e in logs)
    assert (clipped.started_at_ms, clipped.ended_at_ms) == (DAY0, DAY0 + 30 * MIN)

    r = score_reliability(_inputs([reversed_inc, outside, spanning]))
    assert r.parts["R"] == pytest.approx(0.5)
    assert r.parts["F"] == pytest.approx(0.75)


def test_ongoing_incident_runs_to_window_end():
    ongoing = Incident(started_at_ms=DAY0 + 1410 * MIN, ended_at_ms=None, severity=Severity.SLOW)
    r = score_reliability(_inputs([ongoing]))
    assert r.parts["R"] == pytest.approx(0.5)
    assert r.parts["A"] == pytest.approx(1 - (0.5 * 30) ** 1.3 / 1440**1.3)


def test_score_stays_in_range_under_total_outage():
    r = score_reliability(_inputs([_inc(0, 1440, Severity.TLS_DNS)]))
    assert r.parts["A"] == 0.0
    assert r.parts["R"] == 0.0
    assert r.score == 0.0
    assert all(0.0 <= v <= 1.0 for v in r.parts.values())
