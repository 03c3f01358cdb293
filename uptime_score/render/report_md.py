from __future__ import annotations

from typing import Any, Dict, List, Optional

COMPONENT_LABELS = {
    "A": "availability",
    "F": "frequency",
    "R": "recovery",
    "K": "confidence",
    "C": "latency consistency",
    "E": "error quality",
    "B": "blast radius",
}


def _md_kv(k: str, v: Any) -> Optional[str]:
    if v is None:
        return None
    return f"- **{k}**: {v}"


def _fmt_minutes(ms: Any) -> str:
    try:
        return f"{float(ms) / 60000.0:.1f} min"
    except (TypeError, ValueError):
        return str(ms)


def render_report_md(report: Dict[str, Any]) -> str:
    meta = report.get("meta") or {}
    window = report.get("window") or {}
    durations = report.get("durations") or {}
    stats = report.get("stats") or {}
    incidents = report.get("incidents") or []
    score = report.get("score") or {}
    daily = report.get("daily") or []
    trend = report.get("trend")

    lines: List[Optional[str]] = []
    lines.append("## uptime-score report\n")

    lines.append("### Meta")
    for k in ("target_id", "check_name", "check_url", "source", "generated_at", "check_interval_sec"):
        lines.append(_md_kv(k, meta.get(k)))
    lines.append("")

    lines.append("### Window")
    lines.append(_md_kv("start", window.get("start")))
    lines.append(_md_kv("end", window.get("end")))
    lines.append("")

    lines.append("### Reliability score")
    if score.get("score") is not None:
        lines.append(f"- **score**: {float(score['score']):.2f} / 100")
    parts = score.get("parts") or {}
    weights = score.get("weights") or {}
    for k in ("A", "F", "R", "C", "E", "B", "K"):
        if k not in parts:
            continue
        w = weights.get(k)
        suffix = f" (weight {w:.3f})" if w is not None else ""
        lines.append(f"  - {COMPONENT_LABELS[k]} `{k}`: {parts[k]:.4f}{suffix}")
    lines.append("")

    lines.append("### Uptime")
    if durations.get("uptime_percentage") is not None:
        lines.append(f"- **uptime**: {durations['uptime_percentage']:.3f}%")
    lines.append(_md_kv("online", _fmt_minutes(durations.get("online_duration_ms"))))
    lines.append(_md_kv("offline", _fmt_minutes(durations.get("offline_duration_ms"))))
    lines.append(_md_kv("checks", stats.get("total_checks")))
    if stats.get("avg_response_time_ms") is not None:
        lines.append(f"- **avg response**: {stats['avg_response_time_ms']:.1f} ms")
    lines.append("")

    lines.append("### Incidents")
    if not incidents:
        lines.append("- none")
    for inc in incidents[:50]:
        if not isinstance(inc, dict):
            continue
        planned = " (planned)" if inc.get("planned") else ""
        lines.append(
            f"- **{inc.get('started_at')}** → {inc.get('ended_at')}: "
            f"{inc.get('duration_minutes', 0):.1f} min, {inc.get('severity')}{planned}"
        )
    lines.append("")

    if daily:
        lines.append("### Daily scores")
        for d in daily:
            issues = d.get("issue_count")
            extra = f", {issues} issue(s)" if issues else ""
            lines.append(f"- **{d.get('day')}**: {float(d.get('score') or 0):.2f}{extra}")
        lines.append("")

    if trend:
        state = trend.get("state") or {}
        lines.append("### Trend")
        lines.append(_md_kv("alpha", trend.get("alpha")))
        if state.get("smoothed") is not None:
            lines.append(f"- **smoothed**: {float(state['smoothed']):.2f}")
        lines.append(_md_kv("observations", state.get("observations")))
        lines.append("")

    return "\n".join([ln for ln in lines if ln is not None])
