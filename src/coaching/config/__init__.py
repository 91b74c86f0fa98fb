"""Configuration package for the coaching client."""

from coaching.config.app_config import (
    ApiSettings,
    AppConfig,
    SchedulingSettings,
    clear_config_cache,
    load_app_config,
)

__all__ = [
    "ApiSettings",
    "AppConfig",
    "SchedulingSettings",
    "clear_config_cache",
    "load_app_config",
]
