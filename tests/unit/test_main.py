import argparse
import json
from collections.abc import Callable, Generator
from concurrent.futures import Future
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from invoice_lab.config.settings import Settings
from invoice_lab.extraction.models import ConnectionCheck
from invoice_lab.main import build_parser, main, run
from invoice_lab.orchestration.models import ProcessingJob
from invoice_lab.targets.exceptions import TargetNotFoundError

CREATED = ProcessingJob.start("inv-001.pdf", "ct", datetime(2026, 3, 1, tzinfo=timezone.utc))


def _args(*argv: str) -> argparse.Namespace:
    return build_parser().parse_args(list(argv))


class TestRun:
    def test_submit_passes_metadata(self) -> None:
        orchestrator = MagicMock()
        orchestrator.submit_job.return_value = CREATED

        output = run(
            _args("submit", "inv-001.pdf", "mcp", "--metadata", '{"name": "Acme"}'),
            orchestrator,
            Settings(),
        )

        orchestrator.submit_job.assert_called_once_with("inv-001.pdf", "mcp", {"name": "Acme"})
        assert output["id"] == CREATED.id

    def test_start_returns_processing_record(self) -> None:
        orchestrator = MagicMock()
        orchestrator.start_job.return_value = (CREATED, MagicMock())

        output = run(_args("start", "inv-001.pdf", "ct"), orchestrator, Settings())

        orchestrator.start_job.assert_called_once_with("inv-001.pdf", "ct", None)
        assert output["status"] == "processing"

    def test_get_missing_job(self) -> None:
        orchestrator = MagicMock()
        orchestrator.get_job.return_value = None
        assert run(_args("get", "nope"), orchestrator, Settings()) is None

    def test_list_by_filename(self) -> None:
        orchestrator = MagicMock()
        orchestrator.list_jobs_for_filename.return_value = [CREATED]

        output = run(_args("list", "--filename", "inv-001.pdf"), orchestrator, Settings())

        orchestrator.list_jobs_for_filename.assert_called_once_with("inv-001.pdf")
        orchestrator.list_all_jobs.assert_not_called()
        assert [item["id"] for item in output] == [CREATED.id]

    def test_list_all(self) -> None:
        orchestrator = MagicMock()
        orchestrator.list_all_jobs.return_value = []
        assert run(_args("list"), orchestrator, Settings()) == []

    def test_delete(self) -> None:
        orchestrator = MagicMock()
        orchestrator.delete_job.return_value = True
        assert run(_args("delete", "j-1"), orchestrator, Settings()) == {"success": True}

    def test_targets(self, targets_dir: Path, write_target: Callable[..., Path]) -> None:
        write_target("ct", name="Task API", method="API", url="https://ct.example", apiKey="k")

        output = run(_args("targets"), MagicMock(), Settings(targets_dir=targets_dir))

        assert output == [
            {
                "id": "ct",
                "name": "Task API",
                "method": "API",
                "url": "https://ct.example",
                "timeout": None,
            }
        ]

    def test_check_target(self) -> None:
        orchestrator = MagicMock()
        orchestrator.check_target.return_value = ConnectionCheck(success=True, duration_ms=12)

        output = run(_args("check-target", "ct"), orchestrator, Settings())

        assert output == {"success": True, "duration_ms": 12, "error": None, "details": {}}


class TestMain:
    @pytest.fixture(autouse=True)
    def mock_log(self) -> Generator[MagicMock, None, None]:
        with patch("invoice_lab.main.Log") as mock_log:
            yield mock_log

    @patch("invoice_lab.main.build_orchestrator")
    def test_prints_json_and_returns_zero(
        self, mock_build: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        mock_build.return_value.delete_job.return_value = False

        code = main(["delete", "j-1"])

        assert code == 0
        assert json.loads(capsys.readouterr().out) == {"success": False}
        mock_build.return_value.shutdown.assert_called_once_with(wait=True)

    @patch("invoice_lab.main.build_orchestrator")
    def test_errors_return_one(
        self, mock_build: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        mock_build.return_value.submit_job.side_effect = TargetNotFoundError(
            "Target 'nope' not found"
        )

        code = main(["submit", "inv-001.pdf", "nope"])

        assert code == 1
        assert json.loads(capsys.readouterr().out) == {
            "success": False,
            "error": "Target 'nope' not found",
        }

    @patch("invoice_lab.main.build_orchestrator")
    def test_start_prints_record_and_logs_background_failure(
        self,
        mock_build: MagicMock,
        mock_log: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        future: Future[ProcessingJob] = Future()
        future.set_exception(RuntimeError("boom"))
        mock_build.return_value.start_job.return_value = (CREATED, future)

        code = main(["start", "inv-001.pdf", "ct"])

        assert code == 0
        assert json.loads(capsys.readouterr().out)["status"] == "processing"
        mock_log.error.assert_called_once_with("Background job failed: boom")

    @patch("invoice_lab.main.close_pool")
    @patch("invoice_lab.main.PostgresResultStore")
    @patch("invoice_lab.main.init_pool")
    @patch("invoice_lab.main.build_orchestrator")
    def test_postgres_backend_opens_and_closes_pool(
        self,
        mock_build: MagicMock,
        mock_init_pool: MagicMock,
        mock_store: MagicMock,
        mock_close_pool: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("RESULT_STORE_BACKEND", "postgres")
        mock_build.return_value.list_all_jobs.return_value = []

        assert main(["list"]) == 0

        mock_init_pool.assert_called_once()
        mock_store.return_value.ensure_schema.assert_called_once()
        mock_close_pool.assert_called_once()
