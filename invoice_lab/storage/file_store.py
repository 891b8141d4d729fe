"""Result store backed by JSON files.

Layout under ``results_dir``::

    processing-<id>.json   one record per job
    index.json             {filename: [{"id": ..., "created_at": ...}, ...]}

Index buckets hold ids only, newest first; records are hydrated from the
per-id files on read. All mutations for one directory go through a single
lock and every file is replaced atomically.
"""

import json
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from invoice_lab.logging.logger import BoundLog, Log
from invoice_lab.orchestration.models import ProcessingJob
from invoice_lab.storage.base import BaseResultStore
from invoice_lab.storage.exceptions import ResultStoreError

INDEX_FILENAME = "index.json"

_dir_locks: dict[Path, threading.RLock] = {}
_dir_locks_guard = threading.Lock()


def _lock_for(directory: Path) -> threading.RLock:
    key = directory.resolve()
    with _dir_locks_guard:
        lock = _dir_locks.get(key)
        if lock is None:
            lock = _dir_locks[key] = threading.RLock()
        return lock


def record_file_path(results_dir: Path, job_id: str) -> Path:
    """Build path to a record file: {results_dir}/processing-{job_id}.json"""
    return results_dir / f"processing-{job_id}.json"


class FileResultStore(BaseResultStore):
    """Per-job JSON files plus a filename index, written by a single writer."""

    def __init__(self, results_dir: Path, log: BoundLog | None = None) -> None:
        self._results_dir = results_dir
        self._log = log or Log.bind(component="file_store")
        self._results_dir.mkdir(parents=True, exist_ok=True)
        self._lock = _lock_for(results_dir)

    @property
    def index_path(self) -> Path:
        return self._results_dir / INDEX_FILENAME

    def upsert(self, job: ProcessingJob) -> None:
        with self._lock:
            self._write_json(record_file_path(self._results_dir, job.id), job.to_dict())
            index = self._read_index()
            self._remove_from_index(index, job.id)
            bucket = index.setdefault(job.filename, [])
            bucket.append({"id": job.id, "created_at": job.created_at.isoformat()})
            bucket.sort(key=lambda entry: datetime.fromisoformat(entry["created_at"]), reverse=True)
            self._write_json(self.index_path, index)
        self._log.debug(f"Stored job {job.id} ({job.status.value})")

    def get(self, job_id: str) -> ProcessingJob | None:
        if not _is_safe_id(job_id):
            return None
        path = record_file_path(self._results_dir, job_id)
        if not path.exists():
            return None
        try:
            return ProcessingJob.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError) as exc:
            raise ResultStoreError(f"Cannot read job {job_id}: {exc}") from exc

    def list_by_filename(self, filename: str) -> list[ProcessingJob]:
        bucket = self._read_index().get(filename, [])
        return self._hydrate(entry["id"] for entry in bucket)

    def list_all(self) -> list[ProcessingJob]:
        index = self._read_index()
        return self._hydrate(entry["id"] for bucket in index.values() for entry in bucket)

    def delete(self, job_id: str) -> bool:
        if not _is_safe_id(job_id):
            return False
        with self._lock:
            path = record_file_path(self._results_dir, job_id)
            existed = path.exists()
            if existed:
                path.unlink()
            index = self._read_index()
            if self._remove_from_index(index, job_id):
                self._write_json(self.index_path, index)
        if existed:
            self._log.info(f"Deleted job {job_id}")
        return existed

    def _hydrate(self, job_ids: Any) -> list[ProcessingJob]:
        jobs: list[ProcessingJob] = []
        for job_id in job_ids:
            try:
                job = self.get(job_id)
            except ResultStoreError as exc:
                self._log.warning(str(exc))
                continue
            if job is not None:
                jobs.append(job)
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return jobs

    @staticmethod
    def _remove_from_index(index: dict[str, list[dict[str, str]]], job_id: str) -> bool:
        """Drop ``job_id`` from every bucket and remove emptied buckets."""
        changed = False
        for filename in list(index):
            kept = [entry for entry in index[filename] if entry["id"] != job_id]
            if len(kept) != len(index[filename]):
                changed = True
            if kept:
                index[filename] = kept
            else:
                del index[filename]
                changed = True
        return changed

    def _read_index(self) -> dict[str, list[dict[str, str]]]:
        if not self.index_path.exists():
            return {}
        try:
            index = json.loads(self.index_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ResultStoreError(f"Cannot read results index: {exc}") from exc
        if not isinstance(index, dict):
            raise ResultStoreError("Results index must be an object")
        return index

    def _write_json(self, path: Path, data: object) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self._results_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, default=str)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _is_safe_id(job_id: str) -> bool:
    return bool(job_id) and "/" not in job_id and "\\" not in job_id and ".." not in job_id
