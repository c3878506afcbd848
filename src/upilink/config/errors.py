"""Configuration error definitions."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when a configuration value is malformed or unsupported."""


class MissingConfigurationError(ConfigurationError):
    """Raised when required environment variables are absent or blank."""
