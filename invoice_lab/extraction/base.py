import threading
import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from invoice_lab.extraction.exceptions import TransportError
from invoice_lab.extraction.mime_types import resolve_mime_type
from invoice_lab.extraction.models import (
    CheckResult,
    ConnectionCheck,
    Document,
    JobHandle,
    PollOutcome,
)
from invoice_lab.logging.logger import BoundLog, Log, mask_secret
from invoice_lab.polling.backoff import BackoffPoller


class BaseExtractionAdapter(ABC):
    """Contract for all back-end protocol adapters."""

    PROTOCOL: ClassVar[str] = ""
    SUPPORTED_TYPES: ClassVar[dict[str, str]] = {}

    def __init__(self, poller: BackoffPoller, log: BoundLog | None = None) -> None:
        self._poller = poller
        self._log = log or Log.bind(adapter=self.PROTOCOL)

    def prepare(
        self,
        filename: str,
        content: bytes,
        caller_metadata: dict[str, Any] | None = None,
    ) -> Document:
        """Build a submittable document; validation happens before any I/O."""
        mime_type = self.validate(filename, caller_metadata)
        return Document(
            filename=filename,
            content=content,
            mime_type=mime_type,
            caller_metadata=caller_metadata,
        )

    def validate(self, filename: str, caller_metadata: dict[str, Any] | None = None) -> str:
        """Check a request without touching the network and return its MIME type.

        Raises:
            ExtractionValidationError: if the back-end cannot accept the request.
        """
        _ = caller_metadata
        return resolve_mime_type(filename, self.SUPPORTED_TYPES)

    @abstractmethod
    def submit(self, document: Document) -> JobHandle:
        """Send the document to the back-end. Never retried.

        Raises:
            TransportError: on any network or protocol failure.
        """

    @abstractmethod
    def await_completion(
        self,
        handle: JobHandle,
        *,
        cancel_event: threading.Event | None = None,
    ) -> PollOutcome:
        """Drive status/result calls until the job reaches an outcome."""

    @abstractmethod
    def check_connection(self, timeout_seconds: float) -> ConnectionCheck:
        """Check the back-end for reachability within ``timeout_seconds``."""

    def close(self) -> None:
        """Release network resources held by the adapter."""


class PollingAdapter(BaseExtractionAdapter):
    """Adapter whose completion is observed through repeated status checks."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: float,
        poller: BackoffPoller,
        client: httpx.Client | None = None,
        log: BoundLog | None = None,
    ) -> None:
        super().__init__(poller, log)
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client or httpx.Client(base_url=self._base_url, timeout=timeout_seconds)
        self._log.debug(f"Using {self._base_url} with credential {mask_secret(api_key)}")

    @abstractmethod
    def check(self, handle: JobHandle) -> CheckResult:
        """Ask the back-end once for the state of a job, fetching the result if done."""

    def await_completion(
        self,
        handle: JobHandle,
        *,
        cancel_event: threading.Event | None = None,
    ) -> PollOutcome:
        return self._poller.poll(lambda: self.check(handle), cancel_event=cancel_event)

    def check_connection(self, timeout_seconds: float = 5) -> ConnectionCheck:
        """GET ``/health``; fall back to ``HEAD`` on the base URL when it is missing."""
        started = time.monotonic()
        try:
            response = self._client.get(
                "/health", headers=self._auth_headers(), timeout=timeout_seconds
            )
            if response.status_code == 404:
                response = self._client.head(
                    "", headers=self._auth_headers(), timeout=timeout_seconds
                )
        except httpx.TimeoutException:
            return ConnectionCheck(
                success=False,
                duration_ms=_elapsed_ms(started),
                error="Request timeout",
                details={"errorType": "timeout"},
            )
        except httpx.HTTPError as exc:
            return ConnectionCheck(
                success=False,
                duration_ms=_elapsed_ms(started),
                error=f"Service unavailable: {exc}",
                details={"errorType": "network"},
            )

        if response.is_success:
            return ConnectionCheck(
                success=True,
                duration_ms=_elapsed_ms(started),
                details={"statusCode": response.status_code},
            )
        return ConnectionCheck(
            success=False,
            duration_ms=_elapsed_ms(started),
            error=f"API error: {response.status_code} {response.reason_phrase}",
            details={"statusCode": response.status_code, "errorType": "auth"},
        )

    def close(self) -> None:
        self._client.close()

    @abstractmethod
    def _auth_headers(self) -> dict[str, str]:
        """Credential headers for every request."""

    def _request(self, label: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and fold non-2xx answers into a TransportError."""
        headers = {**self._auth_headers(), **kwargs.pop("headers", {})}
        try:
            response = self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportError(f"{label} timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{label} network error: {exc}") from exc

        self._log.debug(f"{label} response: {response.status_code} {response.reason_phrase}")
        if not response.is_success:
            raise TransportError(
                f"{label} error: {response.status_code} {response.reason_phrase} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    @staticmethod
    def _json(label: str, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                f"{label} returned malformed JSON: {exc}",
                status_code=response.status_code,
                body=response.text,
            ) from exc


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
