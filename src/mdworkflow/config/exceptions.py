"""Custom exceptions for configuration management."""


class ConfigError(Exception):
    """Raised when configuration data or project paths cannot be processed."""
