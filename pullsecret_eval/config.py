"""Configuration loaded from environment variables."""

import math
import os
from dataclasses import dataclass
from typing import Optional

from .analyze import DEFAULT_ENTRY_OVERHEAD
from .errors import ConfigError

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass(frozen=True)
class Config:
    log_level: str = "INFO"
    kubeconfig: Optional[str] = None
    initial_sync_timeout: float = 60.0
    watch_timeout: int = 10
    duplicate_add_fatal: bool = False
    skip_undecodable: bool = False
    entry_overhead_bytes: int = DEFAULT_ENTRY_OVERHEAD
    metrics_port: int = 0


def _env_bool(key, default=False):
    value = os.environ.get(key)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _env_number(key, default, cast, min_val):
    value = os.environ.get(key)
    if value is None or value == "":
        return default
    try:
        number = cast(value)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got '{value}'")
    if not math.isfinite(number):
        raise ConfigError(f"{key} must be a finite number, got '{value}'")
    if number < min_val:
        raise ConfigError(f"{key} must be at least {min_val}, got {number}")
    return number


def load_config():
    """Build a Config from the environment. Invalid numbers raise ConfigError."""
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    if log_level not in VALID_LOG_LEVELS:
        log_level = "INFO"

    initial_sync_timeout = _env_number("INITIAL_SYNC_TIMEOUT", 60.0, float, 0)
    if initial_sync_timeout == 0:
        raise ConfigError("INITIAL_SYNC_TIMEOUT must be greater than 0")

    return Config(
        log_level=log_level,
        kubeconfig=os.environ.get("KUBECONFIG") or None,
        initial_sync_timeout=initial_sync_timeout,
        watch_timeout=_env_number("WATCH_TIMEOUT", 10, int, 1),
        duplicate_add_fatal=_env_bool("DUPLICATE_ADD_FATAL"),
        skip_undecodable=_env_bool("SKIP_UNDECODABLE"),
        entry_overhead_bytes=_env_number(
            "ENTRY_OVERHEAD_BYTES", DEFAULT_ENTRY_OVERHEAD, int, 0),
        metrics_port=_env_number("METRICS_PORT", 0, int, 0),
    )
