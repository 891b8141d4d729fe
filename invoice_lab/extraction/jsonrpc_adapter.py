"""Adapter for JSON-RPC tool servers (``initialize`` then ``tools/call``)."""

import base64
import itertools
import threading
import time
import uuid
from typing import Any, ClassVar

import httpx

from invoice_lab.extraction.base import BaseExtractionAdapter
from invoice_lab.extraction.envelope import decode_envelope
from invoice_lab.extraction.exceptions import (
    JsonRpcError,
    MissingCallerMetadataError,
    TransportError,
)
from invoice_lab.extraction.mime_types import JSONRPC_TOOL_TYPES, resolve_mime_type
from invoice_lab.extraction.models import (
    ConnectionCheck,
    Document,
    Done,
    JobHandle,
    Pending,
    PollOutcome,
)
from invoice_lab.logging.logger import BoundLog, Log
from invoice_lab.polling.backoff import BackoffPoller

PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO = {"name": "invoice-lab", "version": "1.0.0"}
REQUIRED_CLIENT_FIELDS = ("businessId", "name", "country")


class JsonRpcSession:
    """One JSON-RPC conversation with a tool server.

    ``initialize`` runs once per session; request ids increase monotonically.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float,
        initialize_timeout_cap_seconds: float = 30,
        client: httpx.Client | None = None,
        log: BoundLog | None = None,
    ) -> None:
        self._url = url
        self._timeout_seconds = timeout_seconds
        self._initialize_timeout = min(timeout_seconds / 2, initialize_timeout_cap_seconds)
        self._client = client or httpx.Client()
        self._log = log or Log.bind(component="jsonrpc")
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._server_info: dict[str, Any] | None = None

    @property
    def initialized(self) -> bool:
        return self._server_info is not None

    @property
    def initialize_timeout(self) -> float:
        return self._initialize_timeout

    def initialize(self, timeout_seconds: float | None = None) -> dict[str, Any]:
        """Negotiate capabilities and return the server's ``result`` object."""
        message = self._send(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"roots": {"listChanged": True}, "sampling": {}},
                "clientInfo": CLIENT_INFO,
            },
            timeout=timeout_seconds if timeout_seconds is not None else self._initialize_timeout,
            label="MCP server",
        )
        result = message.get("result")
        if message.get("jsonrpc") != "2.0" or not isinstance(result, dict):
            raise TransportError("Invalid MCP server response")
        self._server_info = result
        self._log.info(
            f"Initialized session with {result.get('serverInfo', {}).get('name', 'unknown server')}"
        )
        return result

    def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """Invoke a tool and return the response ``result``.

        Raises:
            JsonRpcError: if the server answers with an error object.
            TransportError: on network or envelope failures.
        """
        with self._lock:
            if not self.initialized:
                self.initialize()
        message = self._send(
            "tools/call",
            {"name": name, "arguments": arguments},
            timeout=self._timeout_seconds,
            label="MCP tool call",
        )
        return message.get("result")

    def _next_id(self) -> int:
        return next(self._ids)

    def close(self) -> None:
        self._client.close()

    def _send(
        self,
        method: str,
        params: dict[str, Any],
        *,
        timeout: float,
        label: str,
    ) -> dict[str, Any]:
        request_id = self._next_id()
        try:
            response = self._client.post(
                self._url,
                json={"jsonrpc": "2.0", "id": request_id, "method": method, "params": params},
                headers={"Accept": "application/json, text/event-stream"},
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransportError(f"{label} timed out after {timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{label} network error: {exc}") from exc

        if not response.is_success:
            raise TransportError(
                f"{label} error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                body=response.text,
            )

        envelope = decode_envelope(response.text, response.headers.get("content-type", ""))
        message = envelope.message()
        error = message.get("error")
        if error:
            raise _to_jsonrpc_error(error)
        return message


class JsonRpcToolAdapter(BaseExtractionAdapter):
    """Submission and extraction happen in one ``tools/call``; no polling is needed."""

    PROTOCOL: ClassVar[str] = "jsonrpc_tool"
    SUPPORTED_TYPES: ClassVar[dict[str, str]] = JSONRPC_TOOL_TYPES
    TOOL_NAME: ClassVar[str] = "structurize_document"

    def __init__(
        self,
        *,
        session: JsonRpcSession,
        poller: BackoffPoller,
        log: BoundLog | None = None,
    ) -> None:
        super().__init__(poller, log)
        self._session = session
        self._results: dict[str, Any] = {}

    def validate(self, filename: str, caller_metadata: dict[str, Any] | None = None) -> str:
        mime_type = resolve_mime_type(filename, self.SUPPORTED_TYPES)
        if not caller_metadata:
            raise MissingCallerMetadataError(
                "Client information is required: businessId, name, country"
            )
        missing = [key for key in REQUIRED_CLIENT_FIELDS if not caller_metadata.get(key)]
        if missing:
            raise MissingCallerMetadataError(
                f"Missing required client info: {', '.join(missing)}"
            )
        return mime_type

    def submit(self, document: Document) -> JobHandle:
        arguments = {
            "client": document.caller_metadata,
            "data": base64.b64encode(document.content).decode("ascii"),
            "mimeType": document.mime_type,
        }
        self._log.info(f"Calling {self.TOOL_NAME} for {document.filename}")
        result = self._session.call_tool(self.TOOL_NAME, arguments)
        handle = JobHandle(value=uuid.uuid4().hex, kind="tool_call")
        self._results[handle.value] = result
        return handle

    def await_completion(
        self,
        handle: JobHandle,
        *,
        cancel_event: threading.Event | None = None,
    ) -> PollOutcome:
        def check() -> Done | Pending:
            if handle.value in self._results:
                return Done(payload=self._results.pop(handle.value))
            return Pending(status="unknown handle")

        return self._poller.poll(check, cancel_event=cancel_event)

    def check_connection(self, timeout_seconds: float = 15) -> ConnectionCheck:
        started = time.monotonic()
        try:
            result = self._session.initialize(timeout_seconds=timeout_seconds)
        except JsonRpcError as exc:
            return ConnectionCheck(
                success=False,
                duration_ms=_elapsed_ms(started),
                error=str(exc),
                details={"errorType": "auth", "jsonrpcError": {"code": exc.code}},
            )
        except TransportError as exc:
            error_type = "timeout" if "timed out" in str(exc) else "network"
            details: dict[str, Any] = {"errorType": error_type}
            if exc.status_code is not None:
                details["statusCode"] = exc.status_code
            return ConnectionCheck(
                success=False,
                duration_ms=_elapsed_ms(started),
                error=str(exc),
                details=details,
            )
        return ConnectionCheck(
            success=True,
            duration_ms=_elapsed_ms(started),
            details={
                "jsonrpc": True,
                "serverInfo": result.get("serverInfo"),
                "capabilities": result.get("capabilities"),
            },
        )

    def close(self) -> None:
        self._session.close()


def _to_jsonrpc_error(error: Any) -> JsonRpcError:
    if not isinstance(error, dict):
        return JsonRpcError(f"MCP error: {error}")
    code = error.get("code")
    return JsonRpcError(
        f"MCP error: {error.get('message', 'unknown error')} (code {code})",
        code=code,
        data=error.get("data"),
    )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
