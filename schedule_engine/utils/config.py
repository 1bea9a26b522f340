"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str

    schedule_target_trainer_hours: int
    schedule_max_trainer_hours: int
    schedule_min_days_off: int
    schedule_max_suggestions: int

    advisor_enabled: bool
    advisor_api_key: Optional[str]
    advisor_model: str
    advisor_base_url: str
    advisor_day_timeout_seconds: float
    advisor_week_timeout_seconds: float
    advisor_min_api_key_length: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; call ``get_settings.cache_clear()`` to reload."""
    api_key = os.getenv("ADVISOR_API_KEY") or None
    return Settings(
        app_name=_env_str("APP_NAME", "Studio Schedule Optimization Engine"),
        app_version=_env_str("APP_VERSION", "1.0.0"),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        schedule_target_trainer_hours=_env_int("SCHEDULE_TARGET_TRAINER_HOURS", 15),
        schedule_max_trainer_hours=_env_int("SCHEDULE_MAX_TRAINER_HOURS", 20),
        schedule_min_days_off=_env_int("SCHEDULE_MIN_DAYS_OFF", 2),
        schedule_max_suggestions=_env_int("SCHEDULE_MAX_SUGGESTIONS", 20),
        advisor_enabled=_env_bool("ADVISOR_ENABLED", True),
        advisor_api_key=api_key,
        advisor_model=_env_str("ADVISOR_MODEL", "gemini-2.0-flash-lite"),
        advisor_base_url=_env_str(
            "ADVISOR_BASE_URL",
            "https://generativelanguage.googleapis.com/v1beta",
        ),
        advisor_day_timeout_seconds=_env_float("ADVISOR_DAY_TIMEOUT_SECONDS", 30.0),
        advisor_week_timeout_seconds=_env_float("ADVISOR_WEEK_TIMEOUT_SECONDS", 45.0),
        advisor_min_api_key_length=20,
    )
