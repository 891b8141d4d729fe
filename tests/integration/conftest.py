import os
from collections.abc import Generator

import pytest

from invoice_lab.config.settings import Settings
from invoice_lab.database.connection import close_pool, get_connection, init_pool
from invoice_lab.storage.postgres_store import PostgresResultStore


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "invoice_lab_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        PostgresResultStore().ensure_schema()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run.")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def postgres_store(integration_pool: None) -> PostgresResultStore:
    return PostgresResultStore()


@pytest.fixture
def integration_cleanup(integration_pool: None) -> Generator[list[str], None, None]:
    cleanup: list[str] = []
    yield cleanup
    if not cleanup:
        return
    with get_connection() as conn:
        for job_id in cleanup:
            conn.execute("DELETE FROM processing_jobs WHERE id = %s", (job_id,))
        conn.commit()
