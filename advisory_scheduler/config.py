"""
Centralized configuration with environment variable overrides.

Scheduling windows, hold lifetimes, and grace periods are configurable
here. Nothing is hardcoded in the store or scheduling logic.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from advisory_scheduler.logging_context import LOG_FORMAT, install_request_id_filter

load_dotenv()

logger = logging.getLogger(__name__)

CONFLICT_MODES = ("overlap", "exact")


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class SchedulingConfig:
    """Slot generation and conflict resolution settings."""

    timezone: str = os.getenv("BUSINESS_TIMEZONE", "America/Montevideo")
    conflict_mode: str = os.getenv("CONFLICT_MODE", "overlap").lower()
    max_horizon_days: int = _safe_int("MAX_HORIZON_DAYS", "60")
    grace_minutes: int = _safe_int("GRACE_MINUTES", "30")
    day_start_hour: int = _safe_int("BUSINESS_DAY_START_HOUR", "8")
    day_end_hour: int = _safe_int("BUSINESS_DAY_END_HOUR", "20")
    suggestion_step_minutes: int = _safe_int("SUGGESTION_STEP_MINUTES", "30")
    max_suggestions: int = _safe_int("MAX_SUGGESTIONS", "5")

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@dataclass(frozen=True)
class HoldConfig:
    """Temporary hold lifetime and record retention."""

    ttl_minutes: int = _safe_int("HOLD_TTL_MINUTES", "15")
    compaction_interval_sec: float = _safe_float("COMPACTION_INTERVAL_SECONDS", "0")
    cancelled_retention_hours: int = _safe_int("CANCELLED_RETENTION_HOURS", "24")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    holds: HoldConfig = field(default_factory=HoldConfig)
    admin_api_key: str = os.getenv("ADMIN_API_KEY", "")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "advisory-scheduler")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    sched = config.scheduling
    try:
        ZoneInfo(sched.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"BUSINESS_TIMEZONE is not a known timezone: {sched.timezone!r}") from None
    if sched.conflict_mode not in CONFLICT_MODES:
        raise ValueError(
            f"CONFLICT_MODE must be one of {CONFLICT_MODES}, got {sched.conflict_mode!r}"
        )
    if sched.max_horizon_days < 1:
        raise ValueError(f"MAX_HORIZON_DAYS must be >= 1, got {sched.max_horizon_days}")
    if sched.grace_minutes < 0:
        raise ValueError(f"GRACE_MINUTES must be >= 0, got {sched.grace_minutes}")
    if not 0 <= sched.day_start_hour < sched.day_end_hour <= 24:
        raise ValueError(
            "BUSINESS_DAY_START_HOUR and BUSINESS_DAY_END_HOUR must satisfy "
            f"0 <= start < end <= 24, got {sched.day_start_hour} and {sched.day_end_hour}"
        )
    if sched.suggestion_step_minutes < 1:
        raise ValueError(
            f"SUGGESTION_STEP_MINUTES must be >= 1, got {sched.suggestion_step_minutes}"
        )
    if sched.max_suggestions < 0:
        raise ValueError(f"MAX_SUGGESTIONS must be >= 0, got {sched.max_suggestions}")

    holds = config.holds
    if holds.ttl_minutes < 1:
        raise ValueError(f"HOLD_TTL_MINUTES must be >= 1, got {holds.ttl_minutes}")
    if holds.compaction_interval_sec < 0:
        raise ValueError(
            "COMPACTION_INTERVAL_SECONDS must be >= 0, "
            f"got {holds.compaction_interval_sec}"
        )
    if holds.cancelled_retention_hours < 0:
        raise ValueError(
            f"CANCELLED_RETENTION_HOURS must be >= 0, got {holds.cancelled_retention_hours}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_request_id_filter()
    logger.info(
        "Configuration loaded for '%s' (timezone=%s, conflict_mode=%s)",
        config.app_name, config.scheduling.timezone, config.scheduling.conflict_mode,
    )
    return config


# Singleton instance
settings = load_config()
