import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from invoice_lab.orchestration.exceptions import InvalidTransitionError


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PROCESSING


@dataclass(frozen=True)
class ProcessingJob:
    """Durable lifecycle record of one extraction request.

    ``result_payload`` is set only for ``completed`` (and holds an
    informational payload for ``timeout``); ``error_message`` only for
    ``failed``. ``completed_at`` and ``duration_ms`` are set on the single
    transition out of ``processing``.
    """

    id: str
    filename: str
    target_id: str
    status: JobStatus
    created_at: datetime
    caller_metadata: dict[str, Any] | None = None
    result_payload: Any = None
    error_message: str | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None

    @classmethod
    def start(
        cls,
        filename: str,
        target_id: str,
        created_at: datetime,
        caller_metadata: dict[str, Any] | None = None,
    ) -> "ProcessingJob":
        return cls(
            id=str(uuid.uuid4()),
            filename=filename,
            target_id=target_id,
            status=JobStatus.PROCESSING,
            created_at=created_at,
            caller_metadata=caller_metadata,
        )

    def complete(self, payload: Any, at: datetime) -> "ProcessingJob":
        return self._finish(JobStatus.COMPLETED, at, result_payload=payload)

    def fail(self, error_message: str, at: datetime) -> "ProcessingJob":
        return self._finish(JobStatus.FAILED, at, error_message=error_message)

    def time_out(self, info: dict[str, Any] | None, at: datetime) -> "ProcessingJob":
        return self._finish(JobStatus.TIMEOUT, at, result_payload=info)

    def _finish(self, status: JobStatus, at: datetime, **fields: Any) -> "ProcessingJob":
        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"Job {self.id} is already {self.status.value}; cannot move to {status.value}"
            )
        completed_at = max(at, self.created_at)
        duration = completed_at - self.created_at
        return replace(
            self,
            status=status,
            completed_at=completed_at,
            duration_ms=int(duration.total_seconds() * 1000),
            **fields,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "target_id": self.target_id,
            "caller_metadata": self.caller_metadata,
            "status": self.status.value,
            "result_payload": self.result_payload,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProcessingJob":
        completed_at = data.get("completed_at")
        return cls(
            id=data["id"],
            filename=data["filename"],
            target_id=data["target_id"],
            status=JobStatus(data["status"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            caller_metadata=data.get("caller_metadata"),
            result_payload=data.get("result_payload"),
            error_message=data.get("error_message"),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
            duration_ms=data.get("duration_ms"),
        )
