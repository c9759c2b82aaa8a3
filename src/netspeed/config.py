"""
Configuration for netspeed.

Values come from defaults, then an optional TOML file with a ``[netspeed]``
table, then command-line overrides.
"""

import logging
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from netspeed.errors import ConfigError
from netspeed.models import Scope

logger = logging.getLogger(__name__)

MIB = 1024 * 1024

DISPLAY_MODES = ("both", "upload", "download", "total")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True, frozen=True)
class MonitorConfig:
    """All tunables of the measurement engines and their pollers."""

    scope: Scope = Scope.PRIMARY
    slow_interval: float = 1.0
    fast_interval: float = 0.5
    fast_threshold: float = 1.1 * MIB
    slow_threshold: float = 0.9 * MIB
    window_capacity: int = 5
    high_rate_threshold: float = 1.0 * MIB
    high_rate_window: int = 1
    low_rate_window: int = 3
    process_interval: float = 2.0
    process_limit: int = 10
    nettop_paths: tuple[str, ...] = ("/usr/bin/nettop", "/usr/sbin/nettop", "/bin/nettop")
    nettop_timeout: float = 5.0
    fallback_prefixes: tuple[str, ...] = ("en", "pdp", "eth", "wl")
    display_mode: str = "both"
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.fast_interval <= 0 or self.slow_interval <= 0:
            raise ConfigError("poll intervals must be positive")
        if self.fast_interval > self.slow_interval:
            raise ConfigError("fast_interval must not exceed slow_interval")
        if self.slow_threshold > self.fast_threshold:
            raise ConfigError("slow_threshold must not exceed fast_threshold")
        if self.window_capacity < max(self.high_rate_window, self.low_rate_window):
            raise ConfigError("window_capacity must hold the largest smoothing window")
        if min(self.high_rate_window, self.low_rate_window) < 1:
            raise ConfigError("smoothing windows must hold at least one sample")
        if self.process_interval <= 0:
            raise ConfigError("process_interval must be positive")
        if self.process_limit < 0:
            raise ConfigError("process_limit must not be negative")
        if self.nettop_timeout <= 0:
            raise ConfigError("nettop_timeout must be positive")
        if self.display_mode not in DISPLAY_MODES:
            raise ConfigError(f"display_mode must be one of {', '.join(DISPLAY_MODES)}")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

    def with_overrides(self, **overrides: Any) -> "MonitorConfig":
        """Return a copy with every non-None override applied."""
        values = {key: value for key, value in overrides.items() if value is not None}
        return _coerce(values, base=self)


def _coerce(raw: dict[str, Any], base: MonitorConfig | None = None) -> MonitorConfig:
    known = {f.name for f in fields(MonitorConfig)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(sorted(unknown))}")

    values: dict[str, Any] = {}
    for key, value in raw.items():
        if key == "scope":
            try:
                value = value if isinstance(value, Scope) else Scope(str(value).lower())
            except ValueError:
                raise ConfigError(f"invalid scope: {value!r}") from None
        elif key in ("nettop_paths", "fallback_prefixes"):
            if isinstance(value, str) or not all(isinstance(v, str) for v in value):
                raise ConfigError(f"{key} must be a list of strings")
            value = tuple(value)
        elif key in ("window_capacity", "high_rate_window", "low_rate_window", "process_limit"):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{key} must be an integer")
        elif key in ("display_mode", "log_level"):
            if not isinstance(value, str):
                raise ConfigError(f"{key} must be a string")
        else:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{key} must be a number")
            value = float(value)
        values[key] = value

    return replace(base, **values) if base is not None else MonitorConfig(**values)


def load_config(path: Path | str | None = None) -> MonitorConfig:
    """
    Load configuration from a TOML file.

    Args:
        path: Path to the TOML file. None returns the defaults.

    Returns:
        The resulting MonitorConfig.

    Raises:
        ConfigError: If the file is missing, malformed, or holds invalid values.
    """
    if path is None:
        return MonitorConfig()

    path = Path(path)
    logger.info("Loading configuration from %s", path)
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(f"configuration file not found: {path}") from None
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"malformed configuration file {path}: {e}") from e

    table = data.get("netspeed", {})
    if not isinstance(table, dict):
        raise ConfigError("[netspeed] must be a table")
    return _coerce(table)
