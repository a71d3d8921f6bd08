"""Command line entry point: sqlmove run | rollback | validate."""

import argparse
import asyncio
import os
import sys
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from dotenv import load_dotenv

from .constants import RUN_ID_FORMAT
from .core.config_loader import load_job_async
from .core.context import RunContext
from .core.exceptions import SqlMoveError
from .core.file_mover import FileMover
from .core.ledger import LedgerStore
from .core.service_control import ServiceController
from .core.settings import SqlMoveSettings, get_settings
from .core.subprocess_manager import SubprocessManager
from .core.transfer import RobocopyTransfer
from .core.volume import VolumeRelabeler
from .services import MigrationOrchestrator, RollbackProcedure


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="sqlmove", description="Relocate SQL Server storage to new volumes"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: LOG_LEVEL setting)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run a migration job")
    run.add_argument("job", help="YAML job description")
    run.add_argument(
        "--dry-run", action="store_true", help="Validate the job and run preflight checks only"
    )

    rollback = commands.add_parser("rollback", help="Apply a rollback ledger")
    rollback.add_argument("ledger", help="Rollback ledger file")
    rollback.add_argument(
        "--service",
        dest="services",
        action="append",
        required=True,
        help="Protected service to restart afterwards (repeatable, stop order)",
    )

    validate = commands.add_parser("validate", help="Validate a job description and exit")
    validate.add_argument("job", help="YAML job description")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    load_dotenv()
    args = parse_args(argv)
    settings = get_settings()
    if args.log_level is None:
        args.log_level = settings.log_level.upper()
    run_id = datetime.now(UTC).strftime(RUN_ID_FORMAT)

    log_dir = _setup_log_directory(settings)
    logger = _setup_logging_system(args, log_dir, run_id)

    try:
        if args.command == "validate":
            exit_code = asyncio.run(_validate(args, settings, logger))
        elif args.command == "run":
            exit_code = asyncio.run(_run(args, settings, run_id, log_dir, logger))
        else:
            exit_code = asyncio.run(_rollback(args, settings, logger))
    except KeyboardInterrupt:
        logger.warning("Interrupted by operator")
        exit_code = 130

    sys.exit(exit_code)


def _setup_log_directory(settings: SqlMoveSettings) -> str | None:
    """Setup log directory with fallback options."""
    log_dir_candidates = [
        settings.log_dir,
        str(Path.home() / ".local" / "share" / "sqlmove" / "logs"),
        str(Path(tempfile.gettempdir()) / "sqlmove-logs"),
    ]

    for candidate in log_dir_candidates:
        if candidate:
            try:
                candidate_path = Path(candidate)
                candidate_path.mkdir(parents=True, exist_ok=True)
                if candidate_path.is_dir() and os.access(candidate_path, os.W_OK):
                    return str(candidate_path)
            except OSError:
                continue

    print("Warning: Unable to create log directory, using console-only logging")
    return None


def _setup_logging_system(args, log_dir: str | None, run_id: str):
    """Setup logging system with error handling."""
    from .core.logging_config import get_run_logger, setup_logging

    try:
        max_file_size_mb = int(os.getenv("LOG_FILE_SIZE_MB", "10"))
        if max_file_size_mb < 1 or max_file_size_mb > 100:
            max_file_size_mb = 10
    except ValueError:
        max_file_size_mb = 10

    try:
        setup_logging(
            log_dir=log_dir or tempfile.gettempdir(),
            log_level=args.log_level,
            max_file_size_mb=max_file_size_mb,
            run_id=run_id,
        )
        return get_run_logger(run_id).bind(command=args.command)
    except OSError as e:
        print(f"Logging setup failed ({e}), using basic console logging")
        import logging

        logging.basicConfig(
            level=getattr(logging, args.log_level.upper(), logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        return logging.getLogger("sqlmove")


def _build_catalog(settings: SqlMoveSettings):
    """Catalog over a live ODBC executor; pyodbc is only loaded here."""
    from .core.catalog import SqlCatalog
    from .core.query import QueryExecutor

    return SqlCatalog(QueryExecutor(settings))


async def _validate(args, settings: SqlMoveSettings, logger) -> int:
    try:
        job = await load_job_async(args.job, settings.default_temp_letter)
    except SqlMoveError as e:
        logger.error("Job description invalid", job=args.job, error=str(e))
        print(f"Invalid: {e}")
        return 1

    logger.info("Job description valid", job=args.job)
    print(job.model_dump_json(indent=2))
    return 0


async def _run(args, settings: SqlMoveSettings, run_id: str, log_dir: str | None, logger) -> int:
    try:
        job = await load_job_async(args.job, settings.default_temp_letter)
    except SqlMoveError as e:
        logger.error("Job description invalid", job=args.job, error=str(e))
        print(f"Invalid: {e}")
        return 1

    subprocess_manager = SubprocessManager()
    ctx = RunContext.create(settings.ledger_dir, run_id=run_id)
    robocopy_log = str(Path(log_dir) / f"robocopy_{run_id}.log") if log_dir else None

    orchestrator = MigrationOrchestrator(
        job,
        ctx,
        catalog=_build_catalog(settings),
        service_controller=ServiceController(subprocess_manager, settings.service_timeout),
        copier=RobocopyTransfer(
            subprocess_manager,
            threads=settings.robocopy_threads,
            retries=settings.robocopy_retries,
            wait_seconds=settings.robocopy_wait,
            timeout=settings.copy_timeout,
            log_file=robocopy_log,
        ),
        relabeler=VolumeRelabeler(subprocess_manager, settings.powershell_timeout),
        file_mover=FileMover(),
    )
    try:
        report = await orchestrator.run(dry_run=args.dry_run)
    finally:
        await subprocess_manager.cleanup_all()

    print(report.model_dump_json(indent=2))
    return report.exit_code


async def _rollback(args, settings: SqlMoveSettings, logger) -> int:
    subprocess_manager = SubprocessManager()
    procedure = RollbackProcedure(
        _build_catalog(settings),
        ServiceController(subprocess_manager, settings.service_timeout),
        LedgerStore(Path(args.ledger).parent),
        FileMover(),
    )
    logger.info("Rollback requested", ledger=args.ledger, services=args.services)
    try:
        report = await procedure.run(args.ledger, args.services)
    finally:
        await subprocess_manager.cleanup_all()

    print(report.model_dump_json(indent=2))
    return report.exit_code


if __name__ == "__main__":
    main()
