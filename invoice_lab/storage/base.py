from abc import ABC, abstractmethod

from invoice_lab.orchestration.models import ProcessingJob


class BaseResultStore(ABC):
    """Contract for durable job record storage."""

    @abstractmethod
    def upsert(self, job: ProcessingJob) -> None:
        """Write or fully replace the record for ``job.id`` and its filename index entry."""

    @abstractmethod
    def get(self, job_id: str) -> ProcessingJob | None:
        """Return the record for ``job_id`` or None."""

    @abstractmethod
    def list_by_filename(self, filename: str) -> list[ProcessingJob]:
        """Return records for one source file, newest first."""

    @abstractmethod
    def list_all(self) -> list[ProcessingJob]:
        """Return every record, newest first."""

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        """Remove a record and its index entries. Return False if it did not exist."""
