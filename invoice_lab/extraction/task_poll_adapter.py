"""Adapter for REST back-ends that hand out a task id and expose status/result endpoints."""

from typing import ClassVar

from invoice_lab.extraction.base import PollingAdapter
from invoice_lab.extraction.exceptions import TransportError
from invoice_lab.extraction.mime_types import TASK_POLL_TYPES
from invoice_lab.extraction.models import CheckResult, Document, Done, Failed, JobHandle, Pending


class TaskPollAdapter(PollingAdapter):
    """Multipart upload to ``/invoice/extract``, then poll ``/invoice/status/{id}``."""

    PROTOCOL: ClassVar[str] = "task_poll"
    SUPPORTED_TYPES: ClassVar[dict[str, str]] = TASK_POLL_TYPES

    def submit(self, document: Document) -> JobHandle:
        self._log.info(
            f"Submitting {document.filename} ({len(document.content)} bytes, "
            f"{document.mime_type})"
        )
        response = self._request(
            "Task API",
            "POST",
            "/invoice/extract",
            files={"file": (document.filename, document.content, document.mime_type)},
        )
        body = self._json("Task API", response)
        task_id = body.get("task_id") if isinstance(body, dict) else None
        if not task_id:
            raise TransportError(
                "Task API response has no task_id",
                status_code=response.status_code,
                body=response.text,
            )
        self._log.info(f"Task {task_id} accepted")
        return JobHandle(value=str(task_id), kind="task")

    def check(self, handle: JobHandle) -> CheckResult:
        response = self._request("Task status API", "GET", f"/invoice/status/{handle.value}")
        body = self._json("Task status API", response)
        status = str(body.get("status", "")).lower() if isinstance(body, dict) else ""

        if status == "completed":
            self._log.info(f"Task {handle.value} completed, fetching result")
            return Done(payload=self.fetch_result(handle))
        if status == "failed":
            return Failed(reason=str(body.get("error") or "Processing failed"))
        return Pending(status=status)

    def fetch_result(self, handle: JobHandle) -> object:
        response = self._request("Task result API", "GET", f"/invoice/{handle.value}/result")
        return self._json("Task result API", response)

    def _auth_headers(self) -> dict[str, str]:
        return {"X-API-Key": self._api_key}
