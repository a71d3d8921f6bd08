"""Logging configuration for sqlmove with dual output (console + run log file)."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog


def setup_logging(
    log_dir: Path | str = Path("logs"),
    log_level: str | None = None,
    max_file_size_mb: int = 10,
    run_id: str | None = None,
) -> Path:
    """Setup dual logging system: console + append-only run log file.

    Creates one log file per run:
    - migration_<run_id>.log: every step attempted and its outcome, JSON lines

    Args:
        log_dir: Directory for log files
        log_level: Log level (defaults to LOG_LEVEL env var or INFO)
        max_file_size_mb: Max file size before rollover
        run_id: Run identifier bound to every event and used in the file name

    Returns:
        Path of the run log file
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    log_level_num = getattr(logging, log_level.upper(), logging.INFO)
    max_bytes = max_file_size_mb * 1024 * 1024
    run_log_path = log_dir / (f"migration_{run_id}.log" if run_id else "migration.log")

    # Clear any existing handlers to prevent duplicates
    logging.getLogger().handlers.clear()

    # Keep rolled-over segments: the run log is the audit trail of the run
    run_file_handler = RotatingFileHandler(
        run_log_path,
        maxBytes=max_bytes,
        backupCount=5,
        encoding="utf-8",
    )
    run_file_handler.setLevel(log_level_num)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level_num)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level_num)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(run_file_handler)

    from structlog.stdlib import BoundLogger, LoggerFactory, ProcessorFormatter

    renderer = (
        structlog.dev.ConsoleRenderer()
        if sys.stdout.isatty()
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=True,
    )
    console_handler.setFormatter(ProcessorFormatter(processor=renderer))
    run_file_handler.setFormatter(
        ProcessorFormatter(processor=structlog.processors.JSONRenderer())
    )

    if run_id:
        structlog.contextvars.bind_contextvars(run_id=run_id)

    logger = structlog.get_logger("sqlmove")
    logger.info(
        "Logging system initialized",
        log_dir=str(log_dir.absolute()),
        log_level=log_level,
        max_file_size_mb=max_file_size_mb,
        run_log=str(run_log_path),
    )
    return run_log_path


def get_run_logger(run_id: str) -> Any:
    """Get a logger bound to one migration run."""
    return structlog.get_logger("sqlmove").bind(run_id=run_id)
