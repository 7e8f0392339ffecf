"""Configuration module for gitdeploy."""

from gitdeploy.config.loader import get_config_path, get_data_dir, load_config, save_config
from gitdeploy.config.schema import (
    ClientConfig,
    CommandConfig,
    Config,
    LoggingConfig,
    PollServiceConfig,
    RepositoryConfig,
    WebhookServiceConfig,
)

__all__ = [
    "ClientConfig",
    "CommandConfig",
    "Config",
    "LoggingConfig",
    "PollServiceConfig",
    "RepositoryConfig",
    "WebhookServiceConfig",
    "get_config_path",
    "get_data_dir",
    "load_config",
    "save_config",
]
