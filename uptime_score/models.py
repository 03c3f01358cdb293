from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .windows import TimeWindow, ms_to_iso, to_millis

OFFLINE_STATUSES = frozenset({"OFFLINE", "DOWN", "REACHABLE_WITH_ERROR"})
ONLINE_STATUSES = frozenset({"online", "UP", "REDIRECT"})


def classify_offline(status: Optional[str]) -> bool:
    if status is None:
        return False
    return str(status).strip().upper() in OFFLINE_STATUSES


def is_online_label(status: Optional[str]) -> bool:
    # exact match: the raw store counts online checks case-sensitively
    return status in ONLINE_STATUSES


class InvalidCheckConfig(ValueError):
    pass


class Severity(str, Enum):
    TLS_DNS = "TLS_DNS"
    HTTP_5XX = "HTTP_5XX"
    SLOW = "SLOW"
    NETWORK = "NETWORK"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class Sample:
    timestamp_ms: int
    status: str
    response_time_ms: Optional[float] = None
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_offline(self) -> bool:
        return classify_offline(self.status)


@dataclass(frozen=True)
class Incident:
    started_at_ms: int
    ended_at_ms: Optional[int] = None  # None = still ongoing
    severity: Severity = Severity.OTHER
    planned: bool = False
    id: Optional[str] = None

    def duration_ms(self) -> int:
        if self.ended_at_ms is None:
            return 0
        return max(0, self.ended_at_ms - self.started_at_ms)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "Incident":
        """Build from a precomputed incident log entry (``startedAt``/``endedAt`` or snake_case)."""
        started = d.get("startedAt", d.get("started_at_ms"))
        ended = d.get("endedAt", d.get("ended_at_ms"))
        if started is None:
            raise ValueError(f"incident without a start: {dict(d)}")
        return Incident(
            started_at_ms=to_millis(started),
            ended_at_ms=None if ended is None else to_millis(ended),
            severity=Severity.parse(d.get("severity") or Severity.OTHER),
            planned=bool(d.get("planned") or False),
            id=None if d.get("id") is None else str(d.get("id")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "started_at": ms_to_iso(self.started_at_ms),
            "ended_at": ms_to_iso(self.ended_at_ms),
            "started_at_ms": self.started_at_ms,
            "ended_at_ms": self.ended_at_ms,
            "duration_minutes": self.duration_ms() / 60_000.0,
            "severity": Severity.parse(self.severity).value,
            "planned": self.planned,
        }


@dataclass(frozen=True)
class CheckConfig:
    site_id: str
    check_interval_sec: float

    def __post_init__(self) -> None:
        v = self.check_interval_sec
        if not isinstance(v, (int, float)) or not math.isfinite(v) or v <= 0:
            raise InvalidCheckConfig(f"check_interval_sec must be > 0: site_id={self.site_id} got={v}")


@dataclass(frozen=True)
class LatencySample:
    timestamp_ms: int
    p50_ms: float
    p95_ms: float

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "LatencySample":
        return LatencySample(
            timestamp_ms=to_millis(d["timestamp"]),
            p50_ms=float(d.get("p50", d.get("p50_ms"))),
            p95_ms=float(d.get("p95", d.get("p95_ms"))),
        )


@dataclass(frozen=True)
class ErrorRateSample:
    timestamp_ms: int
    requests: int
    errors: int

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "ErrorRateSample":
        return ErrorRateSample(
            timestamp_ms=to_millis(d["timestamp"]),
            requests=int(d.get("requests") or 0),
            errors=int(d.get("errors") or 0),
        )


@dataclass(frozen=True)
class ScoreInputs:
    window: TimeWindow
    check: CheckConfig
    incidents: List[Incident] = field(default_factory=list)
    latency: Optional[List[LatencySample]] = None
    error_rates: Optional[List[ErrorRateSample]] = None
    multi_region_fail_fraction: Optional[float] = None
    # per-component weight overrides, e.g. {"A": 0.7}
    weights: Optional[Mapping[str, float]] = None


@dataclass(frozen=True)
class ScoreResult:
    score: float
    parts: Dict[str, float]
    s_base: float
    weights: Dict[str, float]

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "parts": dict(self.parts),
            "s_base": self.s_base,
            "weights": dict(self.weights),
        }


@dataclass(frozen=True)
class Durations:
    total_ms: int
    online_ms: int
    offline_ms: int

    @property
    def drift_ms(self) -> int:
        return self.total_ms - (self.online_ms + self.offline_ms)

    @property
    def uptime_percentage(self) -> float:
        if self.total_ms <= 0:
            return 0.0
        return (self.online_ms / float(self.total_ms)) * 100.0

    def to_dict(self) -> dict:
        return {
            "total_duration_ms": self.total_ms,
            "online_duration_ms": self.online_ms,
            "offline_duration_ms": self.offline_ms,
            "uptime_percentage": self.uptime_percentage,
        }


@dataclass(frozen=True)
class CheckStats:
    total_checks: int
    online_checks: int
    offline_checks: int
    response_sample_count: int
    avg_response_time_ms: Optional[float] = None
    min_response_time_ms: Optional[float] = None
    max_response_time_ms: Optional[float] = None


@dataclass(frozen=True)
class ResponseTimeBucket:
    bucket_start_ms: int
    avg_response_time_ms: float
    sample_count: int


@dataclass(frozen=True)
class DailySummary:
    day_start_ms: int
    total_checks: int
    issue_count: int
    avg_response_time_ms: Optional[float] = None

    @property
    def has_issues(self) -> bool:
        return self.issue_count > 0


@dataclass(frozen=True)
class DailyScore:
    day_start_ms: int
    score: float
    result: Optional[ScoreResult] = None

    def to_dict(self) -> dict:
        return {
            "day": ms_to_iso(self.day_start_ms),
            "day_start_ms": self.day_start_ms,
            "score": self.score,
        }


@dataclass
class Report:
    meta: Dict[str, Any]
    window: Dict[str, Any]
    durations: Dict[str, Any]
    stats: Dict[str, Any]
    incidents: List[Dict[str, Any]]
    score: Dict[str, Any]
    response_time_buckets: List[Dict[str, Any]]
    daily: List[Dict[str, Any]]
    trend: Optional[Dict[str, Any]] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        # keep stable keys
        return {
            "meta": d["meta"],
            "window": d["window"],
            "durations": d["durations"],
            "stats": d["stats"],
            "incidents": d["incidents"],
            "score": d["score"],
            "response_time_buckets": d["response_time_buckets"],
            "daily": d["daily"],
            "trend": d["trend"],
        }
