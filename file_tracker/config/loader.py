"""Load config/system.yaml into a validated SystemConfig."""

import os
import yaml
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from pydantic import ValidationError

from .models import SystemConfig

logger = logging.getLogger(__name__)

# Points at an alternative system.yaml
CONFIG_ENV_VAR = "FILE_TRACKER_CONFIG"


class ConfigLoadError(Exception):
    """The configuration file could not be read or parsed."""
    pass


class ConfigValidationError(ConfigLoadError):
    """The configuration file parsed but holds invalid values."""

    def __init__(self, errors: list, file_path: Path):
        self.errors = errors
        self.file_path = file_path
        bullets = [
            f"  • {'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in errors
        ]
        super().__init__("\n".join([f"Invalid configuration in {file_path}:"] + bullets))


class ConfigLoader:
    """
    Reads the system configuration.

    The file is ``<config_dir>/config/system.yaml`` unless FILE_TRACKER_CONFIG
    names another one. A relative ``paths.data`` is taken relative to
    ``config_dir``.
    """

    def __init__(self, config_dir: Path = Path(".")):
        self.config_dir = Path(config_dir)

    @property
    def system_config_path(self) -> Path:
        override = os.environ.get(CONFIG_ENV_VAR)
        if override:
            return Path(override)
        return self.config_dir / "config" / "system.yaml"

    def load_yaml(self, file_path: Path) -> Dict[str, Any]:
        """
        Raises:
            ConfigLoadError: Missing file, bad YAML, or a non-mapping document
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigLoadError(f"Configuration file not found: {file_path}")
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Invalid YAML in {file_path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigLoadError(f"Expected a mapping at the top of {file_path}")
        return data

    def load_system_config(self, file_path: Optional[Path] = None) -> SystemConfig:
        """
        Load and validate the system configuration.

        Returns built-in defaults when the file does not exist.

        Raises:
            ConfigLoadError: Unreadable file
            ConfigValidationError: Values fail validation
        """
        file_path = Path(file_path) if file_path else self.system_config_path

        if file_path.exists():
            data = self.load_yaml(file_path)
            source = str(file_path)
        else:
            logger.info(f"No system config at {file_path}, using defaults")
            data = {}
            source = "defaults"

        try:
            config = SystemConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigValidationError(e.errors(), file_path)

        if not config.paths.data.is_absolute():
            config.paths.data = self.config_dir / config.paths.data

        logger.info(f"Loaded system config from {source} (data: {config.paths.data})")
        return config
