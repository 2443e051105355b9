"""
Configuration Module for the Tiered Extraction System.

Tier order, acceptance thresholds, engine settings and batch limits are
all read from settings.yaml, not hard-coded. Credentials are never
stored here; settings only name the environment variables to read.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, Optional


class ConfigurationManager:
    """
    Process-wide settings loaded once from settings.yaml.

    Attributes:
        config_path (Path): Path to the configuration file.

    Example:
        >>> ConfigurationManager().get("routing.confidence_threshold")
        0.85
    """

    _instance: Optional['ConfigurationManager'] = None
    _config: Dict[str, Any] = {}

    def __new__(cls, config_path: Optional[str] = None) -> 'ConfigurationManager':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None) -> None:
        """
        Args:
            config_path: Optional path to configuration file.
                        Defaults to config/settings.yaml. Ignored once
                        the singleton is loaded.
        """
        if self._initialized:
            return

        if config_path is None:
            self.config_path = Path(__file__).parent / "settings.yaml"
        else:
            self.config_path = Path(config_path)

        self._load_config()
        self._initialized = True

    def _load_config(self) -> None:
        """
        Raises:
            FileNotFoundError: If configuration file doesn't exist.
            yaml.YAMLError: If configuration file is invalid.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}"
            )

        with open(self.config_path, 'r', encoding='utf-8') as f:
            self._config = yaml.safe_load(f) or {}

        self._resolve_paths()

    def _resolve_paths(self) -> None:
        """Resolve the relative log file path against the project root."""
        project_root = Path(__file__).parent.parent

        log_file = self._config.get('logging', {}).get('file', {})
        path = log_file.get('path')
        if path and not Path(path).is_absolute():
            log_file['path'] = str(project_root / path)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "batch.concurrency").
            default: Default value if key doesn't exist.

        Returns:
            Configuration value or default.
        """
        keys = key.split('.')
        value = self._config

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    @classmethod
    def reset(cls) -> None:
        """Drop the loaded settings; the next access reads the file again."""
        cls._instance = None


def get_config(key: str, default: Any = None) -> Any:
    """Shorthand for ``ConfigurationManager().get(key, default)``."""
    return ConfigurationManager().get(key, default)


__all__ = ['ConfigurationManager', 'get_config']
