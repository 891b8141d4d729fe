import argparse
import json
import sys
from concurrent.futures import Future
from dataclasses import asdict
from typing import Any

from invoice_lab.config.settings import Settings
from invoice_lab.database.connection import close_pool, init_pool
from invoice_lab.logging.logger import Log
from invoice_lab.orchestration.models import ProcessingJob
from invoice_lab.orchestration.orchestrator import Orchestrator, build_orchestrator
from invoice_lab.storage.postgres_store import PostgresResultStore
from invoice_lab.targets.registry import TargetRegistry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="invoice-lab")
    commands = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("submit", "run a job and wait for its terminal state"),
        ("start", "print the processing record, then wait for the job"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("filename")
        command.add_argument("target_id")
        command.add_argument("--metadata", help="caller metadata as a JSON object")

    get_cmd = commands.add_parser("get", help="show one job")
    get_cmd.add_argument("job_id")

    list_cmd = commands.add_parser("list", help="list jobs, newest first")
    list_cmd.add_argument("--filename")

    delete_cmd = commands.add_parser("delete", help="delete one job")
    delete_cmd.add_argument("job_id")

    commands.add_parser("targets", help="list configured targets")

    check_cmd = commands.add_parser("check-target", help="check a target for reachability")
    check_cmd.add_argument("target_id")
    return parser


def run(args: argparse.Namespace, orchestrator: Orchestrator, settings: Settings) -> Any:
    """Dispatch one CLI command and return its JSON-serializable output."""
    if args.command in ("submit", "start"):
        metadata = json.loads(args.metadata) if args.metadata else None
        if args.command == "submit":
            return orchestrator.submit_job(args.filename, args.target_id, metadata).to_dict()
        job, future = orchestrator.start_job(args.filename, args.target_id, metadata)
        future.add_done_callback(_log_background_failure)
        return job.to_dict()
    if args.command == "get":
        job = orchestrator.get_job(args.job_id)
        return job.to_dict() if job else None
    if args.command == "list":
        jobs = (
            orchestrator.list_jobs_for_filename(args.filename)
            if args.filename
            else orchestrator.list_all_jobs()
        )
        return [job.to_dict() for job in jobs]
    if args.command == "delete":
        return {"success": orchestrator.delete_job(args.job_id)}
    if args.command == "targets":
        registry = TargetRegistry(settings.targets_dir)
        return [
            {"id": c.id, "name": c.name, "method": c.method, "url": c.url, "timeout": c.timeout}
            for c in registry.list_targets()
        ]
    return asdict(orchestrator.check_target(args.target_id))


def _log_background_failure(future: "Future[ProcessingJob]") -> None:
    exc = future.exception()
    if exc is not None:
        Log.error(f"Background job failed: {exc}")


def main(argv: list[str] | None = None) -> int:
    """Entry point: load settings -> build dependencies -> run one command."""
    args = build_parser().parse_args(argv)
    settings = Settings()
    Log.configure(settings.log_level)

    uses_postgres = settings.result_store_backend.lower() == "postgres"
    if uses_postgres:
        init_pool(settings)
    orchestrator = build_orchestrator(settings)
    try:
        if uses_postgres:
            PostgresResultStore().ensure_schema()
        output = run(args, orchestrator, settings)
        print(json.dumps(output, indent=2, default=str))
    except Exception as exc:
        Log.error(f"{args.command} failed: {exc}")
        print(json.dumps({"success": False, "error": str(exc)}, indent=2))
        return 1
    finally:
        orchestrator.shutdown(wait=True)
        if uses_postgres:
            close_pool()
    return 0


if __name__ == "__main__":
    sys.exit(main())
