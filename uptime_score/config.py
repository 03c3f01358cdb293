from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_API_BASE = "https://api.exit1.dev"


@dataclass(frozen=True)
class Config:
    api_key: str
    api_base: str = DEFAULT_API_BASE
    timeout_seconds: float = 20.0
    max_retries: int = 4
    log_level: str = "info"

    @staticmethod
    def from_env(*, require_api_key: bool = True) -> "Config":
        api_key = os.environ.get("UPTIME_API_KEY", "").strip()
        api_base = os.environ.get("UPTIME_API_BASE", DEFAULT_API_BASE).strip()
        log_level = os.environ.get("UPTIME_LOG_LEVEL", "info").strip().lower() or "info"
        if require_api_key and not api_key:
            raise ValueError("Missing UPTIME_API_KEY")
        if not api_base:
            api_base = DEFAULT_API_BASE
        try:
            timeout = float(os.environ.get("UPTIME_TIMEOUT_SECONDS", "20") or 20)
            retries = int(os.environ.get("UPTIME_MAX_RETRIES", "4") or 4)
        except ValueError as e:
            raise ValueError(f"Invalid UPTIME_TIMEOUT_SECONDS/UPTIME_MAX_RETRIES: {e}") from e
        return Config(
            api_key=api_key,
            api_base=api_base.rstrip("/"),
            timeout_seconds=timeout,
            max_retries=max(0, retries),
            log_level=log_level,
        )
