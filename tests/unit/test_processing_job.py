from datetime import datetime, timedelta, timezone

import pytest

from invoice_lab.orchestration.exceptions import InvalidTransitionError
from invoice_lab.orchestration.models import JobStatus, ProcessingJob

CREATED = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _job() -> ProcessingJob:
    return ProcessingJob.start("inv-001.pdf", "ct", CREATED, {"name": "Acme Corp"})


class TestStart:
    def test_starts_processing(self) -> None:
        job = _job()
        assert job.status is JobStatus.PROCESSING
        assert job.completed_at is None
        assert job.duration_ms is None
        assert job.result_payload is None
        assert job.error_message is None

    def test_ids_are_unique(self) -> None:
        assert _job().id != _job().id


class TestTransitions:
    def test_complete(self) -> None:
        done = _job().complete({"total": 42.0}, CREATED + timedelta(seconds=2.5))
        assert done.status is JobStatus.COMPLETED
        assert done.result_payload == {"total": 42.0}
        assert done.completed_at == CREATED + timedelta(seconds=2.5)
        assert done.duration_ms == 2500

    def test_fail(self) -> None:
        failed = _job().fail("File not found", CREATED + timedelta(milliseconds=10))
        assert failed.status is JobStatus.FAILED
        assert failed.error_message == "File not found"
        assert failed.result_payload is None
        assert failed.duration_ms == 10

    def test_time_out_keeps_info(self) -> None:
        timed_out = _job().time_out({"attempts": 15}, CREATED + timedelta(seconds=75))
        assert timed_out.status is JobStatus.TIMEOUT
        assert timed_out.result_payload == {"attempts": 15}
        assert timed_out.error_message is None

    def test_completed_at_never_before_created_at(self) -> None:
        done = _job().complete("x", CREATED - timedelta(seconds=5))
        assert done.completed_at == CREATED
        assert done.duration_ms == 0

    def test_original_record_is_unchanged(self) -> None:
        job = _job()
        job.complete("x", CREATED)
        assert job.status is JobStatus.PROCESSING

    @pytest.mark.parametrize("status", ["complete", "fail", "time_out"])
    def test_terminal_records_cannot_move_again(self, status: str) -> None:
        finished = _job().fail("boom", CREATED)
        with pytest.raises(InvalidTransitionError, match="already failed"):
            getattr(finished, status)(None, CREATED)


class TestSerialization:
    def test_round_trip(self) -> None:
        job = _job().complete({"total": 42.0}, CREATED + timedelta(seconds=1))
        assert ProcessingJob.from_dict(job.to_dict()) == job

    def test_to_dict_uses_iso_timestamps(self) -> None:
        data = _job().to_dict()
        assert data["status"] == "processing"
        assert data["created_at"] == "2026-03-01T12:00:00+00:00"
        assert data["completed_at"] is None


class TestJobStatus:
    def test_terminal_states(self) -> None:
        assert not JobStatus.PROCESSING.is_terminal
        assert all(s.is_terminal for s in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMEOUT))
