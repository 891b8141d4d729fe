from invoice_lab.config.settings import Settings
from invoice_lab.storage.base import BaseResultStore
from invoice_lab.storage.file_store import FileResultStore
from invoice_lab.storage.postgres_store import PostgresResultStore


class ResultStoreFactory:
    """Creates the configured result store."""

    BACKENDS: tuple[str, ...] = ("file", "postgres")

    @classmethod
    def create(cls, settings: Settings) -> BaseResultStore:
        backend = settings.result_store_backend.lower()
        if backend == "file":
            return FileResultStore(settings.results_dir)
        if backend == "postgres":
            return PostgresResultStore()
        raise ValueError(
            f"Unknown result store backend '{backend}'. Choose from: {list(cls.BACKENDS)}"
        )
