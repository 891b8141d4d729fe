from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Document:
    """A document ready for submission to a back-end."""

    filename: str
    content: bytes
    mime_type: str
    caller_metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class JobHandle:
    """Correlation token issued by a back-end on submit."""

    value: str
    kind: str = "task"


@dataclass(frozen=True)
class Pending:
    """Back-end is still working on the job."""

    status: str = ""


@dataclass(frozen=True)
class Done:
    """Back-end finished and returned its payload."""

    payload: Any = None


@dataclass(frozen=True)
class Failed:
    """Back-end declared the job failed."""

    reason: str = ""


CheckResult = Pending | Done | Failed


@dataclass(frozen=True)
class Completed:
    """Poll outcome: the job finished with a payload."""

    payload: Any
    attempts: int


@dataclass(frozen=True)
class ProviderFailed:
    """Poll outcome: the back-end reported a failure."""

    reason: str
    attempts: int


@dataclass(frozen=True)
class TimedOut:
    """Poll outcome: the attempt budget ran out.

    ``transport_errors`` counts the attempts that ended in a transport
    exception rather than a pending status; ``last_error`` keeps the final one.
    """

    attempts: int
    transport_errors: int = 0
    last_error: str | None = None


PollOutcome = Completed | ProviderFailed | TimedOut


@dataclass(frozen=True)
class ConnectionCheck:
    """Result of probing a back-end for reachability."""

    success: bool
    duration_ms: int = 0
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
