"""Configuration loader for FaceSense"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Config:
    """Configuration manager for FaceSense

    Values are read from a YAML file and accessed with dot notation. The file is
    chosen in this order:

    1. The explicit ``config_path`` argument
    2. The ``FACESENSE_CONFIG`` environment variable
    3. ``config/config.<FACESENSE_ENV>.yaml`` when it exists
    4. ``config/config.yaml``

    An explicitly requested file must exist. When the default file is missing
    (e.g. an installed package without the project tree) the configuration is
    empty and every component falls back to its built-in defaults.
    """

    def __init__(self, config_path: Optional[str] = None):
        explicit = config_path is not None or bool(os.getenv('FACESENSE_CONFIG'))

        if config_path is None:
            config_path = os.getenv('FACESENSE_CONFIG')

        if config_path is None:
            env = os.getenv('FACESENSE_ENV', 'development')
            # Try environment-specific config first, fall back to default
            env_config = PROJECT_ROOT / 'config' / f'config.{env}.yaml'
            if env_config.exists():
                config_path = str(env_config)
            else:
                config_path = str(PROJECT_ROOT / 'config' / 'config.yaml')

        self.config_path = Path(config_path)
        self._config = self._load_config(required=explicit)

    def _load_config(self, required: bool = True) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        if not self.config_path.exists():
            if required:
                raise FileNotFoundError(f"Config file not found: {self.config_path}")
            logger.warning(f"Config file not found: {self.config_path}, using built-in defaults")
            return {}

        with open(self.config_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation

        Args:
            key: Configuration key in dot notation (e.g., 'identity.match_threshold')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def __getitem__(self, key: str) -> Any:
        """Allow dictionary-style access"""
        return self.get(key)

    def validate(self) -> None:
        """Validate configuration values

        Raises:
            ValueError: If a value is outside its allowed range
        """
        interval = self.get('sampling.interval')
        if interval is not None and interval <= 0:
            raise ValueError(f"Invalid sampling.interval: {interval}, must be > 0")

        threshold = self.get('identity.match_threshold')
        if threshold is not None and threshold <= 0:
            raise ValueError(f"Invalid match_threshold: {threshold}, must be > 0")

        for key in ('emotion.face_history_size', 'emotion.text_history_size'):
            size = self.get(key)
            if size is not None and size < 1:
                raise ValueError(f"Invalid {key}: {size}, must be >= 1")

        padding = self.get('enrollment.crop_padding')
        if padding is not None and padding < 0:
            raise ValueError(f"Invalid crop_padding: {padding}, must be >= 0")

        attempts = self.get('enrollment.max_face_attempts')
        if attempts is not None and attempts < 1:
            raise ValueError(f"Invalid max_face_attempts: {attempts}, must be >= 1")

        backend = self.get('persistence.backend', 'memory')
        if backend not in ('memory', 'redis'):
            raise ValueError(f"Unknown persistence backend: {backend}")

        if backend == 'redis' and not self.get('redis.url'):
            raise ValueError("Redis URL not configured")


# Global config instance
config = Config()
