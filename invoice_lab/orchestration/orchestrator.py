import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Protocol

from invoice_lab.config.settings import Settings
from invoice_lab.documents.loader import DocumentLoader
from invoice_lab.extraction.base import BaseExtractionAdapter
from invoice_lab.extraction.exceptions import ExtractionError, ProviderFailedError
from invoice_lab.extraction.factory import AdapterFactory
from invoice_lab.extraction.models import (
    Completed,
    ConnectionCheck,
    JobHandle,
    ProviderFailed,
    TimedOut,
)
from invoice_lab.logging.logger import BoundLog, Log
from invoice_lab.orchestration.models import ProcessingJob
from invoice_lab.storage.base import BaseResultStore
from invoice_lab.storage.factory import ResultStoreFactory
from invoice_lab.targets.models import Target
from invoice_lab.targets.registry import TargetRegistry

TIMEOUT_MESSAGE = "Invoice processing is not ready yet, please try again later."


class DocumentSource(Protocol):
    def read_document_bytes(self, filename: str) -> bytes: ...


class TargetResolver(Protocol):
    def resolve_target(self, target_id: str) -> Target: ...


class AdapterProvider(Protocol):
    def create(self, target: Target) -> BaseExtractionAdapter: ...

    def connection_check_timeout(self, target: Target) -> float: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Orchestrator:
    """Runs one extraction job from record creation to its terminal state.

    Lifecycle: resolve target -> validate -> persist ``processing`` ->
    read file -> submit -> poll -> persist terminal state.
    Retry policy lives entirely in the adapter's poller.
    """

    def __init__(
        self,
        *,
        documents: DocumentSource,
        targets: TargetResolver,
        adapters: AdapterProvider,
        store: BaseResultStore,
        log: BoundLog | None = None,
        clock: Callable[[], datetime] = utc_now,
        max_workers: int = 4,
    ) -> None:
        self._documents = documents
        self._targets = targets
        self._adapters = adapters
        self._store = store
        self._log = log or Log.bind(component="orchestrator")
        self._clock = clock
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()

    def submit_job(
        self,
        filename: str,
        target_id: str,
        caller_metadata: dict[str, Any] | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> ProcessingJob:
        """Run a job to completion and return its terminal record.

        Returns a ``completed`` or ``timeout`` record.

        Raises:
            TargetError, ExtractionValidationError: before any record is written.
            DocumentError, ExtractionError: after the record was persisted as ``failed``.
        """
        job, adapter = self._begin(filename, target_id, caller_metadata)
        return self._run(job, adapter, cancel_event)

    def start_job(
        self,
        filename: str,
        target_id: str,
        caller_metadata: dict[str, Any] | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> tuple[ProcessingJob, "Future[ProcessingJob]"]:
        """Persist the ``processing`` record now and run the rest in the background.

        The returned future resolves to the terminal record or raises the
        same errors as ``submit_job``.
        """
        job, adapter = self._begin(filename, target_id, caller_metadata)
        future = self._get_executor().submit(self._run, job, adapter, cancel_event)
        return job, future

    def get_job(self, job_id: str) -> ProcessingJob | None:
        return self._store.get(job_id)

    def list_jobs_for_filename(self, filename: str) -> list[ProcessingJob]:
        return self._store.list_by_filename(filename)

    def list_all_jobs(self) -> list[ProcessingJob]:
        return self._store.list_all()

    def delete_job(self, job_id: str) -> bool:
        return self._store.delete(job_id)

    def check_target(self, target_id: str) -> ConnectionCheck:
        """Check a target for reachability without creating a job."""
        target = self._targets.resolve_target(target_id)
        adapter = self._adapters.create(target)
        try:
            return adapter.check_connection(self._adapters.connection_check_timeout(target))
        finally:
            adapter.close()

    def shutdown(self, wait: bool = True) -> None:
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None

    def _begin(
        self,
        filename: str,
        target_id: str,
        caller_metadata: dict[str, Any] | None,
    ) -> tuple[ProcessingJob, BaseExtractionAdapter]:
        target = self._targets.resolve_target(target_id)
        adapter = self._adapters.create(target)
        try:
            adapter.validate(filename, caller_metadata)
        except ExtractionError:
            adapter.close()
            raise

        job = ProcessingJob.start(filename, target_id, self._clock(), caller_metadata)
        try:
            self._store.upsert(job)
        except Exception:
            adapter.close()
            raise
        self._log.info(f"Job {job.id} created for {filename} on target {target_id}")
        return job, adapter

    def _run(
        self,
        job: ProcessingJob,
        adapter: BaseExtractionAdapter,
        cancel_event: threading.Event | None,
    ) -> ProcessingJob:
        log = self._log.bind(job_id=job.id)
        handle: JobHandle | None = None
        try:
            content = self._documents.read_document_bytes(job.filename)
            log.info(f"Loaded {len(content)} bytes from {job.filename}")

            document = adapter.prepare(job.filename, content, job.caller_metadata)
            handle = adapter.submit(document)
            log.info(f"Submitted as {handle.kind} {handle.value}")

            outcome = adapter.await_completion(handle, cancel_event=cancel_event)
        except Exception as exc:
            log.error(f"Job failed: {exc}")
            self._record_failure(job, str(exc), log)
            raise
        finally:
            adapter.close()

        if isinstance(outcome, Completed):
            finished = job.complete(outcome.payload, self._clock())
            self._finish(finished, log)
            log.info(f"Job completed in {finished.duration_ms}ms")
            return finished

        if isinstance(outcome, ProviderFailed):
            log.error(f"Back-end reported failure: {outcome.reason}")
            self._record_failure(job, outcome.reason, log)
            raise ProviderFailedError(outcome.reason)

        finished = job.time_out(self._timeout_info(handle, outcome), self._clock())
        self._finish(finished, log)
        log.warning(f"Job timed out after {outcome.attempts} attempts")
        return finished

    def _finish(self, job: ProcessingJob, log: BoundLog) -> None:
        self._store.upsert(job)
        log.debug(f"Persisted terminal state {job.status.value}")

    def _record_failure(self, job: ProcessingJob, error_message: str, log: BoundLog) -> None:
        """Persist the failed state; store errors are logged, not raised."""
        try:
            self._finish(job.fail(error_message, self._clock()), log)
        except Exception as store_exc:
            log.error(f"Could not persist failed state: {store_exc}")

    @staticmethod
    def _timeout_info(handle: JobHandle | None, outcome: TimedOut) -> dict[str, Any]:
        return {
            "status": "timeout",
            "message": TIMEOUT_MESSAGE,
            "handle": handle.value if handle else None,
            "attempts": outcome.attempts,
            "transportErrors": outcome.transport_errors,
            "lastError": outcome.last_error,
        }

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="orchestrator"
                )
            return self._executor


def build_orchestrator(settings: Settings) -> Orchestrator:
    """Build an Orchestrator with all required collaborators."""
    return Orchestrator(
        documents=DocumentLoader(settings.files_root),
        targets=TargetRegistry(settings.targets_dir),
        adapters=AdapterFactory(settings),
        store=ResultStoreFactory.create(settings),
        max_workers=settings.max_concurrent_jobs,
    )
