"""
Environment-based configuration.
All secrets come from environment variables — never hardcoded.

Either EVS_AUTH_TOKEN (an existing access token) or EVS_LOGIN_ID +
EVS_PASSWORD (login at startup) must be set.

Usage:
    from config.settings import settings
    print(settings.api_base_url)
"""

from __future__ import annotations
import os
from dataclasses import dataclass


def _require(key: str) -> str:
    val = os.environ.get(key)
    if not val:
        raise EnvironmentError(f"Required environment variable '{key}' is not set.")
    return val


def _optional(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


@dataclass(frozen=True)
class Settings:
    # --- Backend ---
    api_base_url: str                     # e.g. http://localhost:3001/api
    ws_url: str                           # e.g. ws://localhost:3001/api/
    auth_token: str                       # Empty when logging in with credentials
    login_id: str
    password: str

    # --- Reconnect / fallback ---
    reconnect_base_s: float               # First backoff delay, doubled per failure
    reconnect_max_s: float                # Backoff cap
    reconnect_jitter_s: float             # Uniform jitter added to every delay
    failures_before_polling: int          # Consecutive failures before REST polling
    poll_interval_s: float                # Snapshot re-fetch interval while polling

    # --- Live view ---
    tick_interval_s: float                # Duration counter cadence (1s in production)
    kpi_log_interval_s: float

    # --- Logging ---
    log_level: str


def load_settings() -> Settings:
    auth_token = _optional("EVS_AUTH_TOKEN")
    if auth_token:
        login_id = _optional("EVS_LOGIN_ID")
        password = _optional("EVS_PASSWORD")
    else:
        login_id = _require("EVS_LOGIN_ID")
        password = _require("EVS_PASSWORD")

    return Settings(
        api_base_url=_optional("EVS_API_BASE_URL", "http://localhost:3001/api"),
        ws_url=_optional("EVS_WS_URL", "ws://localhost:3001/api/"),
        auth_token=auth_token,
        login_id=login_id,
        password=password,
        reconnect_base_s=float(_optional("EVS_RECONNECT_BASE_S", "0.5")),
        reconnect_max_s=float(_optional("EVS_RECONNECT_MAX_S", "30")),
        reconnect_jitter_s=float(_optional("EVS_RECONNECT_JITTER_S", "0.5")),
        failures_before_polling=int(_optional("EVS_FAILURES_BEFORE_POLLING", "5")),
        poll_interval_s=float(_optional("EVS_POLL_INTERVAL_S", "15")),
        tick_interval_s=float(_optional("EVS_TICK_INTERVAL_S", "1.0")),
        kpi_log_interval_s=float(_optional("EVS_KPI_LOG_INTERVAL_S", "30")),
        log_level=_optional("EVS_LOG_LEVEL", "INFO"),
    )


# Module-level singleton, loaded once at startup
settings = load_settings()
