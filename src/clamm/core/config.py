"""
clamm Configuration

All settings are read from environment variables at import time. Values that
fail validation raise ConfigurationError instead of silently falling back.
"""

from __future__ import annotations

import logging
import os
from enum import Enum

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Environment(Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _get_int(env_var: str, default: int, minimum: int = 0) -> int:
    """Read an integer setting, enforcing a lower bound."""
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{env_var} must be an integer, got {raw!r}",
            details={"env_var": env_var},
        ) from exc
    if value < minimum:
        raise ConfigurationError(
            f"{env_var} must be >= {minimum}, got {value}",
            details={"env_var": env_var},
        )
    return value


def _get_bool(env_var: str, default: bool) -> bool:
    raw = os.getenv(env_var, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(
        f"{env_var} must be a boolean flag, got {raw!r}",
        details={"env_var": env_var},
    )


def _get_environment(env_var: str) -> Environment:
    raw = os.getenv(env_var, Environment.DEVELOPMENT.value).strip().lower()
    try:
        return Environment(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{env_var} must be one of {[e.value for e in Environment]}, got {raw!r}",
            details={"env_var": env_var},
        ) from exc


ENVIRONMENT = _get_environment("CLAMM_ENVIRONMENT")

# Logging
LOG_LEVEL = os.getenv("CLAMM_LOG_LEVEL", "INFO").strip().upper()
if LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
    raise ConfigurationError(
        f"CLAMM_LOG_LEVEL is not a logging level: {LOG_LEVEL!r}",
        details={"env_var": "CLAMM_LOG_LEVEL"},
    )
LOG_FILE = os.getenv("CLAMM_LOG_FILE", "").strip()
LOG_JSON = _get_bool("CLAMM_LOG_JSON", True)

# Number of Mint/Swap records each pool keeps in memory (0 = unbounded)
EVENT_LOG_LIMIT = _get_int("CLAMM_EVENT_LOG_LIMIT", 10000)

METRICS_ENABLED = _get_bool("CLAMM_METRICS_ENABLED", True)


class PoolDefaults:
    """Defaults applied to every newly constructed pool."""

    EVENT_LOG_LIMIT = EVENT_LOG_LIMIT
    METRICS_ENABLED = METRICS_ENABLED


logger.debug(
    "Configuration loaded",
    extra={
        "event": "config.loaded",
        "environment": ENVIRONMENT.value,
        "log_level": LOG_LEVEL,
        "event_log_limit": EVENT_LOG_LIMIT,
    },
)
