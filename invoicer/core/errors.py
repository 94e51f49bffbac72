from __future__ import annotations


class ConfigurationError(Exception):
    """Raised when a profile is missing or lacks inventory settings."""
