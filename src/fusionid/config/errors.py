"""Errors raised while loading fusionid settings from the environment or config files."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class ConfigurationError(RuntimeError):
    """Raised when environment or engine settings are unusable."""


class MissingConfigurationError(ConfigurationError):
    """Raised when a required environment variable or config file is absent."""


class InvalidConfigFileError(ConfigurationError):
    """Raised when the engine config file is not valid JSON or fails validation."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(message)
        self.path = path
