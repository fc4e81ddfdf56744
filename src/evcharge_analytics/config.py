"""Runtime configuration loaded from environment variables."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .rules import SuggestionRules

logger = logging.getLogger(__name__)

DEFAULT_ANALYTICS_URL = "http://localhost:8087/api/analytics"
DEFAULT_API_URL = "http://localhost:8080/api"


@dataclass
class Settings:
    """Runtime configuration for the report service."""

    analytics_url: str = DEFAULT_ANALYTICS_URL
    api_url: str = DEFAULT_API_URL
    api_token: str | None = None
    payments_file: Path | None = None
    sessions_file: Path | None = None
    stations_file: Path | None = None
    request_timeout: float = 30.0
    refresh_interval: int = 60
    auto_refresh: bool = True
    forecast_months: int = 3
    rules: SuggestionRules = field(default_factory=SuggestionRules)
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    debug: bool = False


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _parse_path(value: Optional[str]) -> Path | None:
    if value is None or not value.strip():
        return None
    return Path(value.strip())


def _parse_number(name: str, default: float, cast=float):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        logger.warning("Ignoring invalid value '%s' for %s", raw, name)
        return default


def load_settings() -> Settings:
    """Load service configuration from environment variables."""

    default_rules = SuggestionRules()
    rules = SuggestionRules(
        station_share_pct=_parse_number(
            "EVCHARGE_RULE_STATION_SHARE", default_rules.station_share_pct
        ),
        region_share_pct=_parse_number(
            "EVCHARGE_RULE_REGION_SHARE", default_rules.region_share_pct
        ),
        peak_hour_count=_parse_number(
            "EVCHARGE_RULE_PEAK_HOURS", default_rules.peak_hour_count, int
        ),
        long_session_hours=_parse_number(
            "EVCHARGE_RULE_LONG_SESSION_HOURS", default_rules.long_session_hours
        ),
    )

    cors_env = os.getenv("EVCHARGE_CORS_ORIGINS", "*")
    cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
    token = os.getenv("EVCHARGE_API_TOKEN")

    return Settings(
        analytics_url=os.getenv("EVCHARGE_ANALYTICS_URL", DEFAULT_ANALYTICS_URL),
        api_url=os.getenv("EVCHARGE_API_URL", DEFAULT_API_URL),
        api_token=token.strip() if token and token.strip() else None,
        payments_file=_parse_path(os.getenv("EVCHARGE_PAYMENTS_FILE")),
        sessions_file=_parse_path(os.getenv("EVCHARGE_SESSIONS_FILE")),
        stations_file=_parse_path(os.getenv("EVCHARGE_STATIONS_FILE")),
        request_timeout=_parse_number("EVCHARGE_REQUEST_TIMEOUT", 30.0),
        refresh_interval=_parse_number("EVCHARGE_REFRESH_INTERVAL", 60, int),
        auto_refresh=_parse_bool(os.getenv("EVCHARGE_AUTO_REFRESH"), True),
        forecast_months=_parse_number("EVCHARGE_FORECAST_MONTHS", 3, int),
        rules=rules,
        cors_origins=cors_origins or ["*"],
        debug=_parse_bool(os.getenv("EVCHARGE_DEBUG"), False),
    )
