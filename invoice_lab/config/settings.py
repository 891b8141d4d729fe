from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", env_parse_none_str="None")

    app_env: str = "dev"
    log_level: str = "INFO"

    files_root: Path = Path("data/invoices")
    results_dir: Path = Path("data/results")
    targets_dir: Path = Path("data/configs")

    result_store_backend: str = "file"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "invoice_lab"
    db_username: str = "invoice_lab"
    db_password: str = "secret"

    poll_max_attempts: int = Field(default=15, ge=1)
    poll_base_delay_seconds: float = Field(default=3.0, ge=0)
    poll_ramp_start_attempt: int = Field(default=5, ge=1)
    poll_delay_step_seconds: float = Field(default=1.0, ge=0)
    poll_cap_from_attempt: int | None = 9
    poll_max_delay_seconds: float = Field(default=10.0, ge=0)

    request_timeout_seconds: int = 30
    jsonrpc_timeout_seconds: int = 60
    jsonrpc_initialize_timeout_cap_seconds: int = 30
    connection_check_timeout_seconds: int = 5
    jsonrpc_connection_check_timeout_seconds: int = 15

    max_concurrent_jobs: int = Field(default=4, ge=1)
