"""Custom exceptions for the cluster sizing model.

The sizing core itself never raises: it clamps and short-circuits instead.
These are raised by the layers around it (config loading, runner, CLI).
"""


class SizingError(Exception):
    """Base exception for cluster sizing errors."""
    pass


class ConfigurationError(SizingError, ValueError):
    """Raised when a sizing run config fails validation."""
    pass


class ProfileNotFoundError(SizingError, KeyError):
    """Raised when a requested node profile is not in the catalog."""

    def __init__(self, name: str, available=None):
        self.name = name
        self.available = list(available or [])
        super().__init__(name)

    def __str__(self) -> str:
        return f"Unknown node profile: {self.name}. Available: {self.available}"
