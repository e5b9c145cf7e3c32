"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_env_var, require_env_var, require_env_vars
from .errors import ConfigurationError, InvalidConfigFileError, MissingConfigurationError
from .fusion import FUSION_CONFIG_ENV, get_fusion_config_path, load_fusion_config
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .platform import (
    NotificationConfig,
    PlatformConfig,
    get_notification_config,
    get_platform_config,
)
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "FUSION_CONFIG_ENV",
    "ConfigurationError",
    "DatabaseConfig",
    "InvalidConfigFileError",
    "MissingConfigurationError",
    "NotificationConfig",
    "PlatformConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "get_database_config",
    "get_fusion_config_path",
    "get_notification_config",
    "get_platform_config",
    "get_storage_config",
    "load_fusion_config",
    "optional_env_var",
    "require_env_var",
    "require_env_vars",
]
