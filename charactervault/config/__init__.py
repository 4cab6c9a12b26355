"""Configuration loading and validation."""

from .models import (
    SystemConfig,
    CodecConfig,
)
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "SystemConfig",
    "CodecConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
