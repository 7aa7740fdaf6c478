"""Timeline view configuration loading and validation.

Reads timeline.toml from a config directory, parses all sections, and returns
a validated AggregatorConfig dataclass.  Every section is optional; a missing
section falls back to the dataclass defaults.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILENAME = "timeline.toml"

# Number of items requested from each source on a full reload.
DEFAULT_INITIAL_PAGE_SIZE = 20
# Number of items requested per source when paging further back.
DEFAULT_SUBSEQUENT_PAGE_SIZE = 40

DEFAULT_UNSUPPORTED_SCHEMES: tuple[str, ...] = ("settings", "webview-panel", "walkthrough")
DEFAULT_PATH_EQUIVALENT_SCHEMES: tuple[str, ...] = ("file", "git")

# Pattern matching ${VAR_NAME}; supports alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(Exception):
    """Raised when timeline configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [timeline.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class PagingConfig:
    """Page sizes from [timeline.paging] section."""

    initial_page_size: int = DEFAULT_INITIAL_PAGE_SIZE
    subsequent_page_size: int = DEFAULT_SUBSEQUENT_PAGE_SIZE


@dataclass
class RefreshConfig:
    """Refresh timing from [timeline.refresh] section.

    ``debounce_s`` is the window used to coalesce completions from several
    sources into one refresh.  ``loading_message_delay_s`` is how long a reset
    may run before the "Loading timeline..." message replaces the list; it is
    purely presentational.
    """

    debounce_s: float = 0.5
    loading_message_delay_s: float = 0.5


@dataclass
class ResourceConfig:
    """Resource handling from [timeline.resources] section."""

    unsupported_schemes: tuple[str, ...] = DEFAULT_UNSUPPORTED_SCHEMES
    path_equivalent_schemes: tuple[str, ...] = DEFAULT_PATH_EQUIVALENT_SCHEMES


@dataclass
class AggregatorConfig:
    """Parsed and validated timeline view configuration."""

    name: str = "timeline"
    excluded_sources: frozenset[str] = frozenset()
    paging: PagingConfig = field(default_factory=PagingConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    resources: ResourceConfig = field(default_factory=ResourceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _string_list(section: dict, key: str, path: str) -> list[str] | None:
    raw = section.get(key)
    if raw is None:
        return None
    if not isinstance(raw, list) or not all(isinstance(v, str) for v in raw):
        raise ConfigError(f"{path}.{key} must be a list of strings")
    return [v.strip() for v in raw if v.strip()]


def _positive_int(section: dict, key: str, default: int, path: str) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
        raise ConfigError(f"Invalid {path}.{key}: {raw!r}. Must be a positive integer.")
    return raw


def _delay_seconds(section: dict, key: str, default_s: float, path: str) -> float:
    raw = section.get(key)
    if raw is None:
        return default_s
    if isinstance(raw, bool) or not isinstance(raw, int | float) or raw < 0:
        raise ConfigError(f"Invalid {path}.{key}: {raw!r}. Must be a non-negative number.")
    return raw / 1000


def _parse_paging(timeline_section: dict) -> PagingConfig:
    section = timeline_section.get("paging", {})
    return PagingConfig(
        initial_page_size=_positive_int(
            section, "initial_page_size", DEFAULT_INITIAL_PAGE_SIZE, "timeline.paging"
        ),
        subsequent_page_size=_positive_int(
            section, "subsequent_page_size", DEFAULT_SUBSEQUENT_PAGE_SIZE, "timeline.paging"
        ),
    )


def _parse_refresh(timeline_section: dict) -> RefreshConfig:
    section = timeline_section.get("refresh", {})
    defaults = RefreshConfig()
    return RefreshConfig(
        debounce_s=_delay_seconds(section, "debounce_ms", defaults.debounce_s, "timeline.refresh"),
        loading_message_delay_s=_delay_seconds(
            section,
            "loading_message_delay_ms",
            defaults.loading_message_delay_s,
            "timeline.refresh",
        ),
    )


def _parse_resources(timeline_section: dict) -> ResourceConfig:
    section = timeline_section.get("resources", {})
    unsupported = _string_list(section, "unsupported_schemes", "timeline.resources")
    equivalent = _string_list(section, "path_equivalent_schemes", "timeline.resources")
    return ResourceConfig(
        unsupported_schemes=(
            tuple(unsupported) if unsupported is not None else DEFAULT_UNSUPPORTED_SCHEMES
        ),
        path_equivalent_schemes=(
            tuple(s.lower() for s in equivalent)
            if equivalent is not None
            else DEFAULT_PATH_EQUIVALENT_SCHEMES
        ),
    )


def _parse_logging(timeline_section: dict) -> LoggingConfig:
    section = timeline_section.get("logging", {})
    log_level = str(section.get("level", "INFO")).upper()
    log_format = str(section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(
            f"Invalid timeline.logging.format: {log_format!r}. Expected 'text' or 'json'."
        )
    return LoggingConfig(level=log_level, format=log_format, log_root=section.get("log_root"))


def parse_config(data: dict[str, Any]) -> AggregatorConfig:
    """Build an AggregatorConfig from already-decoded TOML data."""
    data = resolve_env_vars(data)

    timeline_section = data.get("timeline", {})
    if not isinstance(timeline_section, dict):
        raise ConfigError("[timeline] must be a TOML table")

    name = timeline_section.get("name", "timeline")
    if not isinstance(name, str) or not name.strip():
        raise ConfigError("timeline.name must be a non-empty string")

    excluded = _string_list(timeline_section, "excluded_sources", "timeline") or []

    return AggregatorConfig(
        name=name.strip(),
        excluded_sources=frozenset(excluded),
        paging=_parse_paging(timeline_section),
        refresh=_parse_refresh(timeline_section),
        resources=_parse_resources(timeline_section),
        logging=_parse_logging(timeline_section),
    )


def load_config(config_dir: Path) -> AggregatorConfig:
    """Load and validate a timeline.toml from *config_dir*.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or holds invalid values.
    """
    toml_path = Path(config_dir) / CONFIG_FILENAME

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
