from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from invoice_lab.database.connection import get_connection
from invoice_lab.orchestration.models import JobStatus, ProcessingJob
from invoice_lab.storage.base import BaseResultStore

_COLUMNS = """
    id, filename, target_id, caller_metadata, status, result_payload,
    error_message, created_at, completed_at, duration_ms
"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS processing_jobs (
    id TEXT PRIMARY KEY,
    filename TEXT NOT NULL,
    target_id TEXT NOT NULL,
    caller_metadata JSONB,
    status TEXT NOT NULL,
    result_payload JSONB,
    error_message TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    completed_at TIMESTAMPTZ,
    duration_ms INTEGER
);
CREATE INDEX IF NOT EXISTS processing_jobs_filename_created_idx
    ON processing_jobs (filename, created_at DESC);
"""


class PostgresResultStore(BaseResultStore):
    """Database operations for the processing_jobs table."""

    def ensure_schema(self) -> None:
        """Create the table and filename index if they do not exist."""
        with get_connection() as conn:
            conn.execute(SCHEMA_SQL)
            conn.commit()

    def upsert(self, job: ProcessingJob) -> None:
        """Insert the record or replace every column of an existing one."""
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO processing_jobs (
                    id, filename, target_id, caller_metadata, status, result_payload,
                    error_message, created_at, completed_at, duration_ms
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    filename = EXCLUDED.filename,
                    target_id = EXCLUDED.target_id,
                    caller_metadata = EXCLUDED.caller_metadata,
                    status = EXCLUDED.status,
                    result_payload = EXCLUDED.result_payload,
                    error_message = EXCLUDED.error_message,
                    created_at = EXCLUDED.created_at,
                    completed_at = EXCLUDED.completed_at,
                    duration_ms = EXCLUDED.duration_ms
                """,
                (
                    job.id,
                    job.filename,
                    job.target_id,
                    _jsonb(job.caller_metadata),
                    job.status.value,
                    _jsonb(job.result_payload),
                    job.error_message,
                    job.created_at,
                    job.completed_at,
                    job.duration_ms,
                ),
            )
            conn.commit()

    def get(self, job_id: str) -> ProcessingJob | None:
        rows = self._fetch(f"SELECT {_COLUMNS} FROM processing_jobs WHERE id = %s", (job_id,))
        return rows[0] if rows else None

    def list_by_filename(self, filename: str) -> list[ProcessingJob]:
        return self._fetch(
            f"""
            SELECT {_COLUMNS} FROM processing_jobs
            WHERE filename = %s
            ORDER BY created_at DESC
            """,
            (filename,),
        )

    def list_all(self) -> list[ProcessingJob]:
        return self._fetch(f"SELECT {_COLUMNS} FROM processing_jobs ORDER BY created_at DESC", ())

    def delete(self, job_id: str) -> bool:
        with get_connection() as conn:
            cur = conn.execute("DELETE FROM processing_jobs WHERE id = %s", (job_id,))
            deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def _fetch(self, query: str, params: tuple[Any, ...]) -> list[ProcessingJob]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        return [_row_to_job(row) for row in rows]


def _jsonb(value: Any) -> Jsonb | None:
    return None if value is None else Jsonb(value)


def _row_to_job(row: dict[str, Any]) -> ProcessingJob:
    return ProcessingJob(
        id=row["id"],
        filename=row["filename"],
        target_id=row["target_id"],
        status=JobStatus(row["status"]),
        created_at=row["created_at"],
        caller_metadata=row["caller_metadata"],
        result_payload=row["result_payload"],
        error_message=row["error_message"],
        completed_at=row["completed_at"],
        duration_ms=row["duration_ms"],
    )
