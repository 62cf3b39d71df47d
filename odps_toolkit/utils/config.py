"""
Configuration management for the ODPS toolkit.

Supports:
    - YAML configuration files
    - Environment variable overrides
    - Runtime overrides through set()
"""

import copy
import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CONFIG = {
    # Optical depth assembly
    'absorption': {
        'allow_optran': True,     # OPTRAN water vapor lines where trained
    },

    # Predictor computation
    'predictor': {
        'save_forward_variables': True,  # Keep forward values for TL/AD
    },
}

TRUE_STRINGS = ('1', 'true', 'yes', 'on')
FALSE_STRINGS = ('0', 'false', 'no', 'off')


def _parse_bool(env_var: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_STRINGS:
        return True
    if lowered in FALSE_STRINGS:
        return False
    raise ValueError(
        f"{env_var}={value!r} is not a boolean; use one of "
        f"{TRUE_STRINGS + FALSE_STRINGS}"
    )


class Config:
    """Configuration manager (process-wide singleton)."""

    _instance = None
    _config: Dict[str, Any] = {}

    def __new__(cls):
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._initialized = True
        self._load()

    def _load(self):
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self._load_config_file()
        self._apply_env_overrides()

    def _load_config_file(self):
        """Load configuration from YAML file if present."""
        config_paths = [
            Path.home() / '.odps_toolkit' / 'config.yaml',
            Path.home() / '.config' / 'odps_toolkit' / 'config.yaml',
            Path.cwd() / 'odps_config.yaml',
        ]

        for config_path in config_paths:
            if config_path.exists():
                try:
                    with open(config_path) as f:
                        user_config = yaml.safe_load(f) or {}
                    self._merge_config(user_config)
                    logger.info(f"Loaded config from: {config_path}")
                    return
                except (OSError, yaml.YAMLError, AttributeError) as e:
                    logger.warning(f"Failed to load {config_path}: {e}")

    def _merge_config(self, user_config: Dict):
        """Deep merge user config into default config."""
        def merge(base, override):
            for key, value in override.items():
                if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                    merge(base[key], value)
                else:
                    base[key] = value
        merge(self._config, user_config)

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
        env_mapping = {
            'ODPS_ALLOW_OPTRAN': ('absorption', 'allow_optran'),
            'ODPS_SAVE_FORWARD': ('predictor', 'save_forward_variables'),
        }

        for env_var, config_path in env_mapping.items():
            if env_var in os.environ:
                section, key = config_path
                value = _parse_bool(env_var, os.environ[env_var])
                self._config[section][key] = value
                logger.debug(f"Config override from {env_var}: {section}.{key} = {value}")

    def reset(self):
        """Re-read defaults, config file and environment, dropping set() overrides."""
        self._load()

    def get(self, *keys, default=None):
        """Get nested config value."""
        value = self._config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, *keys_and_value):
        """Set nested config value."""
        *keys, value = keys_and_value
        target = self._config
        for key in keys[:-1]:
            target = target.setdefault(key, {})
        target[keys[-1]] = value

    def save(self, path: Optional[Path] = None):
        """Save current config to YAML file."""
        if path is None:
            path = Path.home() / '.odps_toolkit' / 'config.yaml'
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.dump(self._config, f, default_flow_style=False)
        logger.info(f"Saved config to: {path}")

    @property
    def allow_optran(self) -> bool:
        return self._config['absorption']['allow_optran']

    @property
    def save_forward_variables(self) -> bool:
        return self._config['predictor']['save_forward_variables']

    def __repr__(self):
        return f"Config({self._config})"


# Singleton accessor
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
