"""Configuration error definitions."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration values are absent or blank."""


class ConfigParseError(ConfigurationError):
    """Raised when a configuration file cannot be read as TOML."""


class StorageUnavailableError(ConfigurationError):
    """Raised when the base directory cannot be created or written."""
