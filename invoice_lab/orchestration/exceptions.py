class OrchestrationError(Exception):
    """Base exception for orchestration errors."""


class InvalidTransitionError(OrchestrationError):
    """Raised when a job that already reached a terminal state is changed again."""
