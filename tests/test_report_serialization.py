import json

import pytest

from uptime_score.models import Report
from uptime_score.render.report_json import write_report_json
from uptime_score.render.report_md import render_report_md


def _report(**overrides):
    fields = dict(
        meta={"target_id": "chk1", "source": "file"},
        window={"start": "2023-11-15T00:00:00+00:00", "end": "2023-11-16T00:00:00+00:00"},
        durations={"online_duration_ms": 86_340_000, "offline_duration_ms": 60_000, "uptime_percentage": 99.93},
        stats={"total_checks": 1440, "avg_response_time_ms": 123.4},
        incidents=[{"started_at": "a", "ended_at": "b", "duration_minutes": 1.0, "severity": "OTHER", "planned": False}],
        score={"score": 97.5, "parts": {"A": 0.99, "F": 0.75, "R": 0.98, "K": 1.0}, "weights": {"A": 0.6, "F": 0.2, "R": 0.2}},
        response_time_buckets=[],
        daily=[{"day": "2023-11-15T00:00:00+00:00", "score": 97.5, "issue_count": 1}],
    )
    fields.update(overrides)
    return Report(**fields)


def test_report_to_dict_has_expected_keys():
    d = _report().to_dict()
    assert set(d.keys()) == {"meta", "window", "durations", "stats", "incidents", "score", "response_time_buckets", "daily", "trend"}


def test_write_report_json_round_trips(tmp_path):
    path = write_report_json(_report().to_dict(), tmp_path / "out" / "report.json")
    assert json.loads(path.read_text(encoding="utf-8"))["score"]["score"] == 97.5


def test_write_report_json_refuses_nan(tmp_path):
    bad = _report(score={"score": float("nan"), "parts": {}, "weights": {}}).to_dict()
    with pytest.raises(ValueError):
        write_report_json(bad, tmp_path / "report.json")


def test_render_report_md_explains_components():
    md = render_report_md(_report(trend={"alpha": 0.3, "state": {"smoothed": 96.0, "observations": 4}}).to_dict())
    assert "### Reliability score" in md
    assert "97.50 / 100" in md
    assert "availability `A`: 0.9900 (weight 0.600)" in md
    assert "confidence `K`: 1.0000" in md
    assert "### Trend" in md
    assert "1 issue(s)" in md
