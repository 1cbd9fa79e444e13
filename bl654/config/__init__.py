"""Configuration management package.

Provides centralized configuration access with defaults, file loading,
and environment variable overrides.
"""

from bl654.config.config_manager import ConfigManager
from bl654.config.config_schema import ConfigSchema
from bl654.config.defaults import get_default_config
from bl654.config.config_models import (
    Config,
    SerialConfig,
    TimeoutConfig,
    ReaderConfig,
    LoggingConfig,
    LogLevel
)

__all__ = [
    'ConfigManager',
    'ConfigSchema',
    'get_default_config',
    'Config',
    'SerialConfig',
    'TimeoutConfig',
    'ReaderConfig',
    'LoggingConfig',
    'LogLevel',
]
