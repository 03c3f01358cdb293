from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

import structlog

from .analysis.trend import TrendState
from .api_client import UptimeApiClient, parse_history_entry
from .config import Config
from .models import CheckConfig, ErrorRateSample, Incident, LatencySample, Sample
from .pipeline import analyze_from_provider, build_report
from .render.report_json import write_report_json
from .render.report_md import render_report_md
from .trend_store import load_states, save_states
from .windows import TimeWindow, last_full_utc_days, window_ending_at

T = TypeVar("T")

DEFAULT_CHECK_INTERVAL_SEC = 60.0

_NAME_TO_LEVEL = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "warn": 30,
    "error": 40,
    "critical": 50,
}


def _configure_logging(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_NAME_TO_LEVEL.get(level.lower(), 20)),
    )


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--start", default=None, help="Window start (ISO or epoch)")
    p.add_argument("--end", default=None, help="Window end (ISO or epoch)")
    p.add_argument("--anchor-ts", default=None, help="Window end when --start/--end are not given. Default: now")
    p.add_argument("--window-minutes", type=int, default=1440)
    p.add_argument("--last-days", type=int, default=None, help="Score the N completed UTC days before --anchor-ts")
    p.add_argument(
        "--check-interval-sec",
        type=float,
        default=None,
        help="Seconds between checks (default: the check's configured frequency, else 60)",
    )
    p.add_argument("--incidents", default=None, help="JSON file with a precomputed incident log")
    p.add_argument("--latency", default=None, help="JSON array of {timestamp, p50, p95} latency samples")
    p.add_argument("--error-rates", default=None, help="JSON array of {timestamp, requests, errors} samples")
    p.add_argument("--multi-region-fail-fraction", type=float, default=None)
    p.add_argument("--trend-state", default=None, help="JSON file holding per-target smoothed scores")
    p.add_argument("--alpha", type=float, default=0.3, help="EWMA smoothing factor in (0, 1] (default: 0.3)")
    p.add_argument(
        "--output-dir",
        default="uptime-score-out",
        help="Output directory for report.json/markdown (default: uptime-score-out)",
    )
    p.add_argument("--markdown", action="store_true", help="Also render report.md")
    p.add_argument("--log-level", default=None, help="debug|info|warning|error (default: env UPTIME_LOG_LEVEL or info)")


def _window_from_args(args: argparse.Namespace) -> TimeWindow:
    if args.start and args.end:
        return TimeWindow.between(str(args.start), str(args.end))
    if args.start or args.end:
        raise ValueError("--start and --end must be given together")
    if args.last_days:
        return last_full_utc_days(days=int(args.last_days), now=args.anchor_ts)
    return window_ending_at(anchor_ts=args.anchor_ts, window_minutes=int(args.window_minutes))


def _read_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _load_samples(path: str) -> List[Sample]:
    raw = _read_json(path)
    if isinstance(raw, dict):
        raw = raw.get("data") or []
    return [s for s in (parse_history_entry(e) for e in raw if isinstance(e, dict)) if s is not None]


def _load_entries(path: Optional[str], parse: Callable[[Dict[str, Any]], T]) -> Optional[List[T]]:
    if not path:
        return None
    raw = _read_json(path)
    if isinstance(raw, dict):
        raw = raw.get("data") or []
    return [parse(e) for e in raw if isinstance(e, dict)]


def _interval_from_check(info: Dict[str, Any]) -> float:
    # checkFrequency is in minutes
    freq = info.get("checkFrequency")
    try:
        minutes = float(freq)
    except (TypeError, ValueError):
        return DEFAULT_CHECK_INTERVAL_SEC
    return minutes * 60.0 if minutes > 0 else DEFAULT_CHECK_INTERVAL_SEC


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="uptime-score", description="Uptime statistics and reliability scores for monitored checks")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_api = sub.add_parser("from-api", help="Score a check using history from the public API")
    _add_common(p_api)
    p_api.add_argument("--check-id", required=True)

    p_file = sub.add_parser("from-file", help="Score a check from a local JSON file of samples")
    _add_common(p_file)
    p_file.add_argument("--samples", required=True, help="JSON array of check results")
    p_file.add_argument("--prior-sample", default=None, help="JSON object: last check result before the window")
    p_file.add_argument("--target-id", default="local")

    args = parser.parse_args(argv)

    cfg = Config.from_env(require_api_key=args.cmd == "from-api")
    _configure_logging(args.log_level or cfg.log_level)

    window = _window_from_args(args)
    target_id = str(args.check_id) if args.cmd == "from-api" else str(args.target_id)

    state_path = Path(str(args.trend_state)) if args.trend_state else None
    states = load_states(state_path) if state_path else {}
    trend_state = states.get(target_id, TrendState(target_id=target_id)) if state_path else None

    common = dict(
        incidents=_load_entries(args.incidents, Incident.from_dict),
        latency=_load_entries(args.latency, LatencySample.from_dict),
        error_rates=_load_entries(args.error_rates, ErrorRateSample.from_dict),
        multi_region_fail_fraction=args.multi_region_fail_fraction,
        trend_state=trend_state,
        alpha=float(args.alpha),
    )

    if args.cmd == "from-api":
        client = UptimeApiClient(cfg=cfg)
        info = client.get_check(target_id)
        interval = args.check_interval_sec if args.check_interval_sec is not None else _interval_from_check(info)
        check = CheckConfig(site_id=target_id, check_interval_sec=float(interval))
        meta = {"check_name": info.get("name"), "check_url": info.get("url")}
        report = analyze_from_provider(provider=client, target_id=target_id, window=window, check=check, meta=meta, **common)
    elif args.cmd == "from-file":
        interval = args.check_interval_sec if args.check_interval_sec is not None else DEFAULT_CHECK_INTERVAL_SEC
        check = CheckConfig(site_id=target_id, check_interval_sec=float(interval))
        prior = parse_history_entry(_read_json(args.prior_sample)) if args.prior_sample else None
        report = build_report(
            target_id=target_id,
            samples=_load_samples(args.samples),
            window=window,
            check=check,
            prior=prior,
            source="file",
            **common,
        )
    else:
        parser.error("Unknown command")
        return 2

    report_dict = report.to_dict()
    out_dir = Path(str(args.output_dir))
    write_report_json(report_dict, out_dir / "report.json")
    if args.markdown:
        (out_dir / "report.md").write_text(render_report_md(report_dict), encoding="utf-8")
    if state_path and report.trend:
        states[target_id] = TrendState.from_dict(report.trend["state"])
        save_states(state_path, states)
    return 0
