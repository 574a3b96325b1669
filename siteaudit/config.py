"""Crawl configuration: YAML file, .env, environment overrides."""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from siteaudit.utils.validators import validate_crawl_limits, validate_url

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"
DEFAULT_ENV_PATH = ".env"

_ENV_OVERRIDES = {
    "SITEAUDIT_ENTRY_URL": "entry_url",
    "SITEAUDIT_MAX_PAGES": "max_pages",
    "SITEAUDIT_MAX_DEPTH": "max_depth",
    "SITEAUDIT_USER_AGENT": "user_agent",
}

TIER_LIMITS: dict[str, dict[str, int]] = {
    "starter": {"max_pages": 3, "max_depth": 2},
    "standard": {"max_pages": 20, "max_depth": 3},
    "advanced": {"max_pages": 50, "max_depth": 5},
}


def tier_limits(tier: str) -> dict[str, int]:
    """Return the page/depth budget for a named tier."""
    try:
        return dict(TIER_LIMITS[tier.strip().lower()])
    except KeyError:
        raise ValueError(
            f"Unknown tier {tier!r}. Choose one of: {', '.join(TIER_LIMITS)}"
        ) from None


@dataclass(frozen=True)
class CrawlConfig:
    """Flat, immutable settings for one crawl.

    Timeouts and backoffs are seconds; ``*_ms`` fields are in-page waits in
    milliseconds.
    """

    # crawl
    entry_url: str = ""
    max_pages: int = 50
    max_depth: int = 3
    user_agent: str = "SiteAuditBot/1.0"
    max_links_per_page: int = 20
    max_duration: Optional[float] = None
    respect_robots: bool = True

    # http
    request_timeout: float = 15.0
    max_redirects: int = 5

    # browser
    browser_enabled: bool = True
    headless: bool = True
    launch_attempts: int = 3
    launch_backoff: float = 1.0
    disconnect_debounce: float = 0.5
    health_timeout: float = 5.0
    navigation_timeout: float = 30.0
    evaluate_timeout: float = 15.0

    # render
    render_timeout: float = 120.0
    render_attempts: int = 2
    render_backoff: float = 1.0
    scroll_rounds: int = 3
    scroll_wait_ms: int = 1000
    load_more_rounds: int = 3
    load_more_wait_ms: int = 2000
    tab_limit: int = 5
    tab_wait_ms: int = 1500
    accordion_rounds: int = 2
    accordion_limit: int = 10
    accordion_wait_ms: int = 1500
    final_scroll_wait_ms: int = 2000
    title_polls: int = 5
    title_poll_interval_ms: int = 500
    metrics_wait_ms: int = 3000

    # logging
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        ok, err = validate_crawl_limits(self.max_pages, self.max_depth)
        if not ok:
            raise ValueError(err)
        if self.entry_url:
            ok, err = validate_url(self.entry_url)
            if not ok:
                raise ValueError(f"Invalid entry_url: {err}")
        if self.render_attempts < 1 or self.launch_attempts < 1:
            raise ValueError("render_attempts and launch_attempts must be at least 1.")
        if self.max_links_per_page < 0:
            raise ValueError("max_links_per_page must not be negative.")

    def with_overrides(self, **overrides: Any) -> "CrawlConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: _coerce(k, v) for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


_FIELD_DEFAULTS = {f.name: f.default for f in fields(CrawlConfig)}
_FLOAT_FIELDS = {"max_duration"}


def _coerce(name: str, value: Any) -> Any:
    if name not in _FIELD_DEFAULTS:
        raise ValueError(f"Unknown configuration key: {name}")
    default = _FIELD_DEFAULTS[name]
    if value is None:
        return None
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float) or name in _FLOAT_FIELDS:
        return float(value)
    return str(value)


def _flatten_sections(raw: dict[str, Any]) -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for section, values in raw.items():
        if not isinstance(values, dict):
            flat[section] = values
            continue
        for key, value in values.items():
            name = "log_level" if (section, key) == ("logging", "level") else key
            if section == "browser" and key == "enabled":
                name = "browser_enabled"
            flat[name] = value
    return flat


def _read_yaml(config_path: str) -> dict[str, Any]:
    config_file = Path(config_path)
    if not config_file.exists():
        logger.warning("Config file not found: %s -- using defaults.", config_path)
        return {}
    with open(config_file, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping.")
    logger.info("Configuration loaded from %s", config_path)
    return data


def load_config(
    config_path: Optional[str] = DEFAULT_CONFIG_PATH,
    env_path: Optional[str] = DEFAULT_ENV_PATH,
    **overrides: Any,
) -> CrawlConfig:
    """Build a :class:`CrawlConfig`.

    Precedence, lowest first: dataclass defaults, YAML file, environment
    variables (after loading *env_path*), explicit keyword overrides.

    Args:
        config_path: YAML settings file; None skips it.
        env_path: dotenv file; None or a missing file skips it.
        **overrides: Field values that win over everything else.

    Returns:
        The validated configuration.
    """
    if env_path and Path(env_path).exists():
        load_dotenv(env_path)
        logger.info("Loaded environment from %s", env_path)

    values: dict[str, Any] = {}
    if config_path:
        for name, value in _flatten_sections(_read_yaml(config_path)).items():
            if name not in _FIELD_DEFAULTS:
                logger.warning("Ignoring unknown configuration key: %s", name)
                continue
            values[name] = _coerce(name, value)

    for env_name, field_name in _ENV_OVERRIDES.items():
        env_value = os.getenv(env_name)
        if env_value:
            values[field_name] = _coerce(field_name, env_value)

    for name, value in overrides.items():
        if value is not None:
            values[name] = _coerce(name, value)

    return CrawlConfig(**values)
