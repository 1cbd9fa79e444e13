"""Configuration manager for the BL654 interface.

Provides singleton access to the interface configuration with support for
defaults, YAML file loading and environment variable overrides.
"""

from pathlib import Path
from typing import Optional, Dict, Any, List
from copy import deepcopy
from dataclasses import fields, replace
from enum import Enum
import logging
import os

import yaml

from bl654.config.config_models import Config
from bl654.config.defaults import get_default_config
from bl654.config.config_schema import ConfigSchema

logger = logging.getLogger(__name__)

ENV_PREFIX = "BL654_"


def _section_values(config_dict: Dict[str, Any], section: str) -> Dict[str, Any]:
    values = config_dict.get(section)
    return values if isinstance(values, dict) else {}


class ConfigManager:
    """Singleton configuration manager.

    Layered loading:
    1. Load defaults
    2. Load from file (if exists)
    3. Apply environment variable overrides
    4. Validate configuration against JSON schema
    5. Return validated Config object
    """

    _instance: Optional['ConfigManager'] = None
    _config: Optional[Config] = None
    _config_source: Dict[str, str] = {}
    _config_path: Optional[Path] = None

    def __init__(self):
        """Private constructor. Use instance() or initialize() class methods."""
        if ConfigManager._instance is not None:
            raise RuntimeError("Use ConfigManager.instance() instead of constructor")

    @classmethod
    def instance(cls) -> 'ConfigManager':
        """Get singleton instance of ConfigManager.

        Raises:
            RuntimeError: If not yet initialized.
        """
        if cls._instance is None:
            raise RuntimeError("ConfigManager not initialized. Call initialize() first.")
        return cls._instance

    @classmethod
    def initialize(cls,
                   config_path: Optional[Path] = None,
                   skip_validation: bool = False) -> 'ConfigManager':
        """Initialize ConfigManager with configuration.

        Args:
            config_path: Optional path to a YAML file. If None, searches default paths.
            skip_validation: Skip schema validation.

        Returns:
            ConfigManager: Initialized singleton instance.

        Raises:
            ValueError: If the merged configuration fails validation.
        """
        if cls._instance is None:
            cls._instance = cls.__new__(cls)

        instance = cls._instance
        instance._config_source = {}
        instance._config_path = None

        config_dict = get_default_config().to_dict()
        instance._mark_source(config_dict, "default")

        if config_path is None:
            config_path = cls._search_config_paths()
        elif not isinstance(config_path, Path):
            config_path = Path(config_path)

        if config_path and config_path.exists():
            try:
                file_config = cls._load_from_file(config_path)
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Failed to load config from %s: %s; using defaults only", config_path, e)
            else:
                config_dict = cls._merge_configs(config_dict, file_config)
                instance._mark_source(file_config, "file")
                instance._config_path = config_path

        env_overrides = cls._apply_env_overrides()
        if env_overrides:
            config_dict = cls._merge_configs(config_dict, env_overrides)
            instance._mark_source(env_overrides, "env")

        config_dict = cls._normalize_enums(config_dict)

        if not skip_validation:
            is_valid, validation_errors = ConfigSchema.validate_config(config_dict, strict=False)
            if not is_valid:
                error_msg = "Configuration validation failed:\n" + "\n".join(
                    f"  - {error}" for error in validation_errors
                )
                raise ValueError(error_msg)

        instance._config = cls._dict_to_config(config_dict)
        return instance

    @staticmethod
    def _search_config_paths() -> Optional[Path]:
        """Search for a config file in standard locations.

        Search order:
            1. ./bl654.yaml (current directory)
            2. ~/.bl654/config.yaml (user home directory)
        """
        search_paths = [
            Path("./bl654.yaml"),
            Path.home() / ".bl654" / "config.yaml"
        ]

        for path in search_paths:
            if path.exists() and path.is_file():
                return path

        return None

    @staticmethod
    def _load_from_file(path: Path) -> Dict[str, Any]:
        with open(path, 'r', encoding='utf-8') as f:
            config_dict = yaml.safe_load(f)

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise yaml.YAMLError(f"Top level of {path} must be a mapping")

        return config_dict

    @staticmethod
    def _apply_env_overrides() -> Dict[str, Any]:
        """Collect environment variable overrides.

        Environment variables use format: BL654_SECTION_KEY
        Examples:
            BL654_SERIAL_PORT=/dev/ttyUSB0
            BL654_SERIAL_BAUD_RATE=9600
            BL654_TIMEOUTS_CONNECT=7.5
            BL654_LOGGING_TRACE_TRAFFIC=true
        """
        overrides: Dict[str, Dict[str, Any]] = {}

        for env_name, env_value in os.environ.items():
            if not env_name.startswith(ENV_PREFIX):
                continue

            # BL654_SERIAL_BAUD_RATE -> ["serial", "baud_rate"]
            parts = env_name[len(ENV_PREFIX):].lower().split('_', 1)
            if len(parts) != 2 or not parts[1]:
                continue

            section, key = parts
            overrides.setdefault(section, {})[key] = ConfigManager._parse_env_value(env_value)

        return overrides

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable value to bool, int, float or str."""
        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    @staticmethod
    def _merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Overlay ``override`` on ``base`` one section at a time."""
        merged = deepcopy(base)
        for section, values in override.items():
            current = merged.get(section)
            if isinstance(values, dict) and isinstance(current, dict):
                current.update(values)
            else:
                merged[section] = deepcopy(values)
        return merged

    def _mark_source(self, config: Dict[str, Any], source: str):
        self._config_source.update({
            f"{section}.{key}": source
            for section, values in config.items() if isinstance(values, dict)
            for key in values
        })

    @staticmethod
    def _normalize_enums(config_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Upper-case string values of enum fields so ``level: debug`` validates."""
        defaults = get_default_config()
        for f in fields(Config):
            values = _section_values(config_dict, f.name)
            section_defaults = getattr(defaults, f.name)
            for key, value in values.items():
                if isinstance(getattr(section_defaults, key, None), Enum) and isinstance(value, str):
                    values[key] = value.upper()
        return config_dict

    @staticmethod
    def _build_section(section_type, values: Dict[str, Any], default):
        """Replace the fields of ``default`` named in ``values``.

        Unknown keys are ignored (the permissive schema lets them through)
        and enum fields accept their value case-insensitively.
        """
        changes = {}
        for f in fields(section_type):
            if f.name not in values:
                continue
            value = values[f.name]
            current = getattr(default, f.name)
            if isinstance(current, Enum) and isinstance(value, str):
                try:
                    value = type(current)(value.upper())
                except ValueError:
                    logger.warning("Ignoring unknown %s value %r", f.name, value)
                    continue
            changes[f.name] = value
        return replace(default, **changes)

    @classmethod
    def _dict_to_config(cls, config_dict: Dict[str, Any]) -> Config:
        """Convert configuration dictionary to Config object."""
        defaults = get_default_config()
        sections = {
            f.name: cls._build_section(
                type(getattr(defaults, f.name)),
                _section_values(config_dict, f.name),
                getattr(defaults, f.name)
            )
            for f in fields(Config)
        }
        return Config(**sections)

    def get_config(self) -> Config:
        """Get current configuration.

        Raises:
            RuntimeError: If configuration not loaded.
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call initialize() first.")
        return self._config

    @property
    def config_path(self) -> Optional[Path]:
        """Path of the file the configuration was loaded from, if any."""
        return self._config_path

    def validate(self) -> List[str]:
        """Re-validate the current configuration, returning error messages."""
        if self._config is None:
            return ["Configuration not loaded"]
        _, errors = ConfigSchema.validate_config(self._config.to_dict(), strict=True)
        return errors

    def show_config(self) -> Dict[str, Any]:
        """Get configuration with the source of each value.

        Returns:
            Dictionary like::

                {"serial": {"baud_rate": {"value": 115200, "source": "default"}}}
        """
        config_dict = self.get_config().to_dict()

        result: Dict[str, Any] = {}
        for section, section_values in config_dict.items():
            result[section] = {}
            for key, value in section_values.items():
                result[section][key] = {
                    "value": value,
                    "source": self._config_source.get(f"{section}.{key}", "unknown")
                }
        return result

    @classmethod
    def reset(cls):
        """Reset singleton instance (for testing)."""
        cls._instance = None
