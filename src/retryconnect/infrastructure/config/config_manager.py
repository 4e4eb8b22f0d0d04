"""Configuration manager for loading and validating .retry-connect.yml"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from retryconnect.domain.config import AppConfig, RetryConfig

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".retry-connect.yml"
VERBOSE_ENV = "RETRYCONNECT_VERBOSE"
TOTAL_DELAY_ENV = "RETRYCONNECT_TOTAL_DELAY"


class ConfigurationError(Exception):
    """Configuration validation error."""

    pass


def format_validation_error(error: ValidationError) -> str:
    """Render pydantic errors as one line per field"""
    lines = []
    for item in error.errors():
        field = ".".join(str(x) for x in item["loc"])
        lines.append(f"  - {field}: {item['msg']}")
    return "\n".join(lines)


def env_verbose(default: int = 0) -> int:
    """Read the process-wide verbosity from RETRYCONNECT_VERBOSE

    Args:
        default: Value used when the variable is unset or empty

    Returns:
        Verbosity level

    Raises:
        ConfigurationError: If the variable is not an integer
    """
    raw = os.getenv(VERBOSE_ENV)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{VERBOSE_ENV} must be an integer, got {raw!r}") from e


class ConfigManager:
    """Manages configuration from .retry-connect.yml and environment variables

    Loads configuration with validation using Pydantic models. Configuration priority:
    1. Default values (defined in Pydantic models)
    2. .retry-connect.yml file (searched from current directory)
    3. Environment variables (RETRYCONNECT_*)
    4. CLI arguments (handled by CLI layer)
    """

    DEFAULT_CONFIG = {
        "verbose": 0,
        "default": {},
        "targets": {},
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager

        Args:
            config_path: Path to .retry-connect.yml (searches from current dir if None)

        Raises:
            ConfigurationError: If configuration validation fails
        """
        if isinstance(config_path, str):
            config_path = Path(config_path)
        self.config_path = config_path or self._find_config_file()
        try:
            self.config: AppConfig = self._load_config()
        except ValidationError as e:
            raise ConfigurationError(
                "Configuration validation failed:\n" + format_validation_error(e)
            ) from e

    def _find_config_file(self) -> Optional[Path]:
        """Find .retry-connect.yml starting from current directory

        Returns:
            Path to config file or None if not found
        """
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            config_file = parent / CONFIG_FILE_NAME
            if config_file.exists():
                logger.info(f"Found config file: {config_file}")
                return config_file
        logger.debug(f"No {CONFIG_FILE_NAME} found, using defaults")
        return None

    def _load_config(self) -> AppConfig:
        """Load configuration from file and validate with Pydantic

        Raises:
            ValidationError: If configuration values are invalid
            ConfigurationError: If the file cannot be parsed
        """
        config_dict = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path and self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to read {self.config_path}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"{self.config_path} must contain a mapping")
            config_dict = self._merge_config(config_dict, file_config)
            logger.info(f"Loaded configuration from {self.config_path}")

        config_dict = self._apply_env_overrides(config_dict)

        return AppConfig(**config_dict)

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries"""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides

        RETRYCONNECT_TOTAL_DELAY applies to the default section and every target.
        """
        config["verbose"] = env_verbose(config.get("verbose", 0))

        total_delay = os.getenv(TOTAL_DELAY_ENV)
        if total_delay:
            sections = [config["default"]] + list((config.get("targets") or {}).values())
            for section in sections:
                if isinstance(section, dict):
                    section["total_delay"] = total_delay

        return config

    def get_verbose(self) -> int:
        """Get process-wide verbosity level"""
        return self.config.verbose

    def get_retry_config(self, target: Optional[str] = None) -> RetryConfig:
        """Get retry configuration

        Args:
            target: Target class name (default section if None or unknown)

        Returns:
            Retry configuration model
        """
        if target is None:
            return self.config.default
        return self.config.for_target(target)

