from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
import structlog

from .config import Config
from .models import Sample
from .windows import TimeWindow, to_millis

logger = structlog.get_logger()

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class ApiError(RuntimeError):
    pass


class _RetryableStatus(ApiError):
    pass


def _to_int(v: Any) -> Optional[int]:
    if v is None or v == "":
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def _to_float(v: Any) -> Optional[float]:
    if v is None or v == "":
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def parse_history_entry(entry: Dict[str, Any]) -> Optional[Sample]:
    ts = entry.get("timestamp")
    if ts is None:
        return None
    try:
        ts_ms = to_millis(ts)
    except (TypeError, ValueError):
        return None
    return Sample(
        timestamp_ms=ts_ms,
        status=str(entry.get("status") or "unknown"),
        response_time_ms=_to_float(entry.get("responseTime")),
        status_code=_to_int(entry.get("statusCode")),
        error=entry.get("error") or None,
    )


@dataclass
class UptimeApiClient:
    cfg: Config
    session: requests.Session = field(default_factory=requests.Session)

    def _headers(self) -> Dict[str, str]:
        return {
            "X-Api-Key": self.cfg.api_key,
            "Accept": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{self.cfg.api_base.rstrip('/')}/v1/public/{path.lstrip('/')}"

    def _request(self, method: str, url: str, *, params: Optional[dict] = None) -> Any:
        last_err = None
        for attempt in range(self.cfg.max_retries + 1):
            try:
                resp = self.session.request(
                    method=method,
                    url=url,
                    params=params,
                    headers=self._headers(),
                    timeout=self.cfg.timeout_seconds,
                )
                if resp.status_code in RETRYABLE_STATUSES:
                    raise _RetryableStatus(f"retryable status={resp.status_code} body={resp.text[:500]}")
                if resp.status_code >= 400:
                    raise ApiError(f"status={resp.status_code} body={resp.text[:1000]}")
                return resp.json()
            except (requests.RequestException, _RetryableStatus) as e:
                last_err = e
                if attempt >= self.cfg.max_retries:
                    break
                sleep_s = min(8.0, 0.5 * (2**attempt))
                logger.warning("api_request_retry", url=url, attempt=attempt + 1, sleep_s=sleep_s, error=str(e))
                time.sleep(sleep_s)
        raise ApiError(f"request failed: {method} {url}: {last_err}")

    def get_check(self, check_id: str) -> Dict[str, Any]:
        resp = self._request("GET", self._url(f"checks/{check_id}"))
        return resp.get("data") or {}

    def get_stats(self, check_id: str, *, from_ms: int, to_ms: int) -> Dict[str, Any]:
        resp = self._request("GET", self._url(f"checks/{check_id}/stats"), params={"from": from_ms, "to": to_ms})
        return resp.get("data") or {}

    def get_history(
        self,
        check_id: str,
        *,
        from_ms: Optional[int] = None,
        to_ms: Optional[int] = None,
        limit: int = 200,
        max_pages: int = 50,
    ) -> List[Dict[str, Any]]:
        url = self._url(f"checks/{check_id}/history")
        entries: List[Dict[str, Any]] = []
        for page in range(1, max_pages + 1):
            params: Dict[str, Any] = {"limit": min(int(limit), 200), "page": page}
            if from_ms is not None:
                params["from"] = int(from_ms)
            if to_ms is not None:
                params["to"] = int(to_ms)
            resp = self._request("GET", url, params=params)
            entries.extend(resp.get("data") or [])
            meta = resp.get("meta") or {}
            if not (isinstance(meta, dict) and meta.get("hasNext")):
                break
        else:
            logger.warning("history_truncated", check_id=check_id, max_pages=max_pages, entries=len(entries))
        return entries

    # SampleProvider

    def fetch_samples(self, target_id: str, window: TimeWindow) -> List[Sample]:
        # the history endpoint bounds are inclusive
        entries = self.get_history(target_id, from_ms=window.start_ms, to_ms=window.end_ms - 1)
        samples = [s for s in (parse_history_entry(e) for e in entries) if s is not None]
        samples.sort(key=lambda s: s.timestamp_ms)
        return samples

    def fetch_prior_sample(self, target_id: str, before_ms: int) -> Optional[Sample]:
        # history is served newest first
        url = self._url(f"checks/{target_id}/history")
        resp = self._request("GET", url, params={"limit": 1, "page": 1, "to": int(before_ms) - 1})
        for e in resp.get("data") or []:
            s = parse_history_entry(e)
            if s is not None and s.timestamp_ms < before_ms:
                return s
        return None
