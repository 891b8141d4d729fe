class TargetError(Exception):
    """Base exception for target configuration errors."""


class TargetNotFoundError(TargetError):
    """Raised when no configuration exists for a target id."""


class InvalidTargetError(TargetError):
    """Raised when a stored configuration cannot be used."""
