"""Read config/system.yaml into a validated SystemConfig."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from .models import SystemConfig

logger = logging.getLogger(__name__)

SYSTEM_CONFIG_PATH = Path("config") / "system.yaml"


class ConfigLoadError(Exception):
    """Configuration file could not be read or parsed."""
    pass


class ConfigValidationError(ConfigLoadError):
    """Configuration file parsed but holds values SystemConfig rejects."""

    def __init__(self, errors: List[Dict[str, Any]], file_path: Path):
        self.errors = errors
        self.file_path = file_path
        details = "\n".join(
            f"  • {'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in errors
        )
        super().__init__(f"Configuration validation failed for {file_path}:\n{details}")


class ConfigLoader:
    """Locate and validate the codec configuration of a project directory."""

    def __init__(self, config_dir: Union[str, Path] = "."):
        self.config_dir = Path(config_dir)

    def load_system_config(self, file_path: Optional[Union[str, Path]] = None) -> SystemConfig:
        """
        Load system configuration.

        A missing file yields the defaults; an empty file counts as an empty mapping.

        Raises:
            ConfigLoadError: If the file cannot be read, is not YAML, or is not a mapping
            ConfigValidationError: If a value is rejected by SystemConfig
        """
        path = Path(file_path) if file_path else self.config_dir / SYSTEM_CONFIG_PATH
        if not path.exists():
            logger.info(f"No config at {path}, using defaults")
            return SystemConfig()

        try:
            document = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Invalid YAML in {path}: {e}") from e
        except OSError as e:
            raise ConfigLoadError(f"Could not read {path}: {e}") from e

        if document is None:
            document = {}
        if not isinstance(document, dict):
            raise ConfigLoadError(f"{path} must hold a mapping, not {type(document).__name__}")

        try:
            config = SystemConfig.model_validate(document)
        except ValidationError as e:
            raise ConfigValidationError(e.errors(), path) from e

        logger.info(f"Loaded config from {path}")
        return config
