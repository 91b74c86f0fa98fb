"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml.
The COACH_API_URL environment variable overrides the API base URL.

Usage:
    from coaching.config.app_config import load_app_config

    config = load_app_config()
    client = ApiClient(base_url=config.api.base_url, timeout=config.api.timeout)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")

API_URL_ENV = "COACH_API_URL"

DEFAULT_SLOT_TIMES = ["09:00", "11:00", "14:00", "16:00", "18:00"]


@dataclass
class ApiSettings:
    """Connection settings for the coaching backend."""

    base_url: str = "http://localhost:8000"
    timeout: float = 30.0


@dataclass
class SchedulingSettings:
    """Defaults for diagnostic test scheduling."""

    slot_times: list[str] = field(default_factory=lambda: list(DEFAULT_SLOT_TIMES))
    default_duration_minutes: int = 180
    default_total_questions: int = 200


@dataclass
class AppConfig:
    """Application-wide configuration."""

    api: ApiSettings = field(default_factory=ApiSettings)
    scheduling: SchedulingSettings = field(default_factory=SchedulingSettings)
    paths: dict[str, str] = field(default_factory=dict)

    @property
    def state_dir(self) -> Path:
        """Directory holding the persisted session (token, user, cache)."""
        return Path(self.paths.get("state_dir", "data/state"))

    @property
    def config_dir(self) -> Path:
        return Path(self.paths.get("config_dir", "data/config"))


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "api": {
            "base_url": "http://localhost:8000",
            "timeout": 30,
        },
        "scheduling": {
            "slot_times": list(DEFAULT_SLOT_TIMES),
            "default_duration_minutes": 180,
            "default_total_questions": 200,
        },
        "paths": {
            "state_dir": "data/state",
            "config_dir": "data/config",
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    api_data = data.get("api", {}) or {}
    api = ApiSettings(
        base_url=api_data.get("base_url", "http://localhost:8000"),
        timeout=float(api_data.get("timeout", 30)),
    )

    sched_data = data.get("scheduling", {}) or {}
    scheduling = SchedulingSettings(
        slot_times=list(sched_data.get("slot_times", DEFAULT_SLOT_TIMES)),
        default_duration_minutes=sched_data.get("default_duration_minutes", 180),
        default_total_questions=sched_data.get("default_total_questions", 200),
    )

    paths = {**_get_defaults()["paths"], **(data.get("paths", {}) or {})}

    return AppConfig(api=api, scheduling=scheduling, paths=paths)


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config, falling back to built-in defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data: dict[str, Any]

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    config = _parse_config(data)

    env_url = os.environ.get(API_URL_ENV)
    if env_url:
        config.api.base_url = env_url
        logger.debug("api_url_from_env", base_url=env_url)

    _cached_config = config
    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
