"""Configuration management utilities."""

from maiakit.core.configs.loader import load_app_config, load_config, save_config
from maiakit.core.configs.schema import (
    DEFAULT_MODEL_URL,
    DEFAULT_RATINGS,
    AppConfig,
    LoggingConfig,
    PredictorConfig,
    StorageConfig,
    StreamerConfig,
    config_from_dict,
    config_to_dict,
)

__all__ = [
    "DEFAULT_MODEL_URL",
    "DEFAULT_RATINGS",
    "AppConfig",
    "LoggingConfig",
    "PredictorConfig",
    "StorageConfig",
    "StreamerConfig",
    "config_from_dict",
    "config_to_dict",
    "load_app_config",
    "load_config",
    "save_config",
]
