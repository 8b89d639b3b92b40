"""Configuration loading and validation."""

from .models import (
    SystemConfig,
    PathsConfig,
    CardConfig,
    VisionConfig,
)
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "SystemConfig",
    "PathsConfig",
    "CardConfig",
    "VisionConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
