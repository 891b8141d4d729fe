from collections.abc import Callable

import httpx
import pytest

from invoice_lab.extraction.exceptions import TransportError, UnsupportedFileTypeError
from invoice_lab.extraction.models import Completed, JobHandle, ProviderFailed, TimedOut
from invoice_lab.extraction.task_poll_adapter import TaskPollAdapter
from invoice_lab.polling.backoff import BackoffPoller, BackoffPolicy

BASE_URL = "https://tasks.example"


def _adapter(
    handler: Callable[[httpx.Request], httpx.Response],
    max_attempts: int = 5,
) -> TaskPollAdapter:
    return TaskPollAdapter(
        base_url=BASE_URL,
        api_key="ct-key-123",
        timeout_seconds=30,
        poller=BackoffPoller(BackoffPolicy(), max_attempts, sleep=lambda _delay: None),
        client=httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler)),
    )


def _status_sequence(*statuses: str) -> Callable[[httpx.Request], httpx.Response]:
    remaining = list(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/invoice/status/t-1":
            status = remaining.pop(0) if remaining else "processing"
            return httpx.Response(200, json={"task_id": "t-1", "status": status})
        if request.url.path == "/invoice/t-1/result":
            return httpx.Response(200, json={"total": 42.0})
        return httpx.Response(404)

    return handler


class TestSubmit:
    def test_uploads_multipart_with_api_key(self, sample_pdf_bytes: bytes) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"task_id": "t-1", "status": "queued"})

        adapter = _adapter(handler)
        document = adapter.prepare("inv-001.pdf", sample_pdf_bytes)

        handle = adapter.submit(document)

        assert handle == JobHandle(value="t-1", kind="task")
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/invoice/extract"
        assert request.headers["X-API-Key"] == "ct-key-123"
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'filename="inv-001.pdf"' in request.content
        assert b"application/pdf" in request.content

    def test_missing_task_id_raises(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(200, json={"status": "queued"}))
        with pytest.raises(TransportError, match="no task_id"):
            adapter.submit(adapter.prepare("inv-001.pdf", b"%PDF"))

    def test_http_error_carries_status_and_body(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(401, text="bad key"))

        with pytest.raises(TransportError, match="401 Unauthorized - bad key") as exc_info:
            adapter.submit(adapter.prepare("inv-001.pdf", b"%PDF"))

        assert exc_info.value.status_code == 401
        assert exc_info.value.body == "bad key"

    def test_network_error_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        adapter = _adapter(handler)
        with pytest.raises(TransportError, match="network error"):
            adapter.submit(adapter.prepare("inv-001.pdf", b"%PDF"))

    def test_rejects_unsupported_type_before_io(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        adapter = _adapter(handler)
        with pytest.raises(UnsupportedFileTypeError):
            adapter.prepare("notes.docx", b"data")


class TestAwaitCompletion:
    def test_completes_after_pending_statuses(self) -> None:
        adapter = _adapter(_status_sequence("processing", "processing", "completed"))

        outcome = adapter.await_completion(JobHandle("t-1"))

        assert outcome == Completed(payload={"total": 42.0}, attempts=3)

    def test_status_is_case_insensitive(self) -> None:
        adapter = _adapter(_status_sequence("COMPLETED"))
        assert adapter.await_completion(JobHandle("t-1")) == Completed(
            payload={"total": 42.0}, attempts=1
        )

    def test_failed_status_reports_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "failed", "error": "unreadable scan"})

        adapter = _adapter(handler)

        outcome = adapter.await_completion(JobHandle("t-1"))

        assert outcome == ProviderFailed(reason="unreadable scan", attempts=1)

    def test_error_object_becomes_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"status": "failed", "error": {"code": 7, "detail": "bad scan"}}
            )

        outcome = _adapter(handler).await_completion(JobHandle("t-1"))

        assert isinstance(outcome, ProviderFailed)
        assert isinstance(outcome.reason, str)
        assert "bad scan" in outcome.reason

    def test_server_errors_while_polling_are_retried(self) -> None:
        calls = {"status": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/invoice/status/t-1":
                calls["status"] += 1
                if calls["status"] == 1:
                    return httpx.Response(503, text="busy")
                return httpx.Response(200, json={"status": "completed"})
            return httpx.Response(200, json={"total": 42.0})

        adapter = _adapter(handler)

        assert adapter.await_completion(JobHandle("t-1")) == Completed(
            payload={"total": 42.0}, attempts=2
        )

    def test_times_out_when_never_completed(self) -> None:
        adapter = _adapter(_status_sequence(), max_attempts=3)

        outcome = adapter.await_completion(JobHandle("t-1"))

        assert outcome == TimedOut(attempts=3)


class TestCheckConnection:
    def test_health_endpoint_ok(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(200, json={"status": "ok"}))

        result = adapter.check_connection(5)

        assert result.success is True
        assert result.details == {"statusCode": 200}

    def test_falls_back_to_head_when_health_missing(self) -> None:
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            if request.url.path == "/health":
                return httpx.Response(404)
            return httpx.Response(200)

        adapter = _adapter(handler)

        assert adapter.check_connection(5).success is True
        assert methods == ["GET", "HEAD"]

    def test_rejected_credentials(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(403))

        result = adapter.check_connection(5)

        assert result.success is False
        assert result.error == "API error: 403 Forbidden"
        assert result.details["errorType"] == "auth"

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        result = _adapter(handler).check_connection(5)

        assert result.success is False
        assert result.error == "Request timeout"
        assert result.details == {"errorType": "timeout"}

    def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = _adapter(handler).check_connection(5)

        assert result.success is False
        assert result.details == {"errorType": "network"}
