"""Runtime settings.

Settings come from an optional TOML file with a ``[notecore]`` table and
are then overridden by ``NOTECORE_*`` environment variables::

    [notecore]
    auto_save_delay_ms = 800
    auto_lock_timeout_minutes = 15
    default_daily_template = "daily"
"""

import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path

from .autolock import DEFAULT_ACTIVITY_EVENTS
from .autosave import DEFAULT_AUTO_SAVE_DELAY_MS, MAX_AUTO_SAVE_DELAY_MS, MIN_AUTO_SAVE_DELAY_MS
from .sanitizer import DEFAULT_ASSET_PREFIXES
from .tabs import MAX_PINNED_TABS

ENV_PREFIX = "NOTECORE_"
CONFIG_TABLE = "notecore"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ConfigError(Exception):
    """Invalid or unreadable configuration."""
    pass


def _truthy(value: str) -> bool:
    return value.strip() not in {"", "0", "false", "False", "no", "off"}


@dataclass
class Settings:
    auto_save_delay_ms: int = DEFAULT_AUTO_SAVE_DELAY_MS
    auto_lock_timeout_minutes: int = 0
    activity_events: tuple[str, ...] = DEFAULT_ACTIVITY_EVENTS
    max_pinned_tabs: int = MAX_PINNED_TABS
    default_daily_template: str | None = None
    default_weekly_template: str | None = None
    asset_url_prefixes: tuple[str, ...] = DEFAULT_ASSET_PREFIXES
    preserve_link_aliases: bool = False
    log_level: str = "WARNING"
    bridge_command: list[str] = field(default_factory=list)

    def validate(self) -> "Settings":
        """Check value ranges. Returns self so calls can be chained."""
        if not MIN_AUTO_SAVE_DELAY_MS <= self.auto_save_delay_ms <= MAX_AUTO_SAVE_DELAY_MS:
            raise ConfigError(
                f"auto_save_delay_ms must be between {MIN_AUTO_SAVE_DELAY_MS} and {MAX_AUTO_SAVE_DELAY_MS}"
            )
        if self.auto_lock_timeout_minutes < 0:
            raise ConfigError("auto_lock_timeout_minutes must be 0 (off) or positive")
        if self.max_pinned_tabs < 0:
            raise ConfigError("max_pinned_tabs must not be negative")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ConfigError(f"Unknown log_level: {self.log_level}")
        return self


def _coerce(name: str, value, default):
    """Convert a raw TOML or environment value to the type of *default*."""
    try:
        if isinstance(default, bool):
            return _truthy(value) if isinstance(value, str) else bool(value)
        if isinstance(default, int):
            if isinstance(value, bool):
                raise ValueError(value)
            return int(value)
        if isinstance(default, (tuple, list)):
            if isinstance(value, str):
                items = value.split(",") if isinstance(default, tuple) else value.split()
            else:
                items = list(value)
            items = [str(item).strip() for item in items if str(item).strip()]
            return tuple(items) if isinstance(default, tuple) else items
        if value is None or value == "":
            return None
        return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e


def load_settings(path: str | Path | None = None, environ: dict[str, str] | None = None) -> Settings:
    """Build settings from defaults, an optional TOML file and the environment.

    Args:
        path: TOML file; missing tables are fine, a missing file is an error
        environ: Environment mapping (defaults to ``os.environ``)

    Raises:
        ConfigError: If the file cannot be read or a value is invalid
    """
    environ = os.environ if environ is None else environ
    defaults = Settings()
    values = {}

    if path is not None:
        try:
            with open(path, "rb") as fh:
                data = tomllib.load(fh)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}") from e

        table = data.get(CONFIG_TABLE, {})
        known = {f.name for f in fields(Settings)}
        unknown = sorted(set(table) - known)
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(unknown)}")
        values.update(table)

    for f in fields(Settings):
        raw = environ.get(ENV_PREFIX + f.name.upper())
        if raw is not None:
            values[f.name] = raw

    for name, raw in values.items():
        values[name] = _coerce(name, raw, getattr(defaults, name))

    return Settings(**values).validate()
