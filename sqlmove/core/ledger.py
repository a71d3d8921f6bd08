"""Rollback ledger: the durable undo record of one migration run."""

import asyncio
import json
import os
from datetime import UTC, datetime
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from ..constants import LEDGER_ARCHIVE_DIR, LEDGER_PREFIX, RUN_ID_FORMAT
from ..models import FileRecord
from .exceptions import LedgerError

logger = structlog.get_logger()


class RollbackLedger(BaseModel):
    """Undo record with validation and schema guarantees."""

    run_timestamp: str = Field(description="Run identifier the ledger belongs to")
    per_database_original_files: dict[str, list[FileRecord]] = Field(
        default_factory=dict, description="Files of each database before it was touched"
    )
    successfully_moved_databases: list[str] = Field(
        default_factory=list, description="Databases verified reattached and mode-restored"
    )
    original_default_data_path: str | None = Field(
        default=None, description="Instance default data path before the run"
    )
    original_default_log_path: str | None = Field(
        default=None, description="Instance default log path before the run"
    )

    @classmethod
    def new(cls, run_timestamp: str | None = None) -> "RollbackLedger":
        return cls(run_timestamp=run_timestamp or datetime.now(UTC).strftime(RUN_ID_FORMAT))

    def record_original_files(self, database: str, files: list[FileRecord]) -> None:
        """Snapshot a database's files before any mutation.

        A snapshot is written once per run; a second one would hold moved paths.

        Raises:
            LedgerError: If the database already has a snapshot in this ledger
        """
        for recorded in self.per_database_original_files:
            if recorded.lower() == database.lower():
                raise LedgerError(f"Original files for {database} already recorded in this run")
        self.per_database_original_files[database] = list(files)

    def mark_moved(self, database: str) -> None:
        """Record that a database is reattached and back in multi-user mode."""
        if database not in self.per_database_original_files:
            raise LedgerError(f"No original files recorded for {database}")
        if database not in self.successfully_moved_databases:
            self.successfully_moved_databases.append(database)

    def record_default_paths(self, data_path: str | None, log_path: str | None) -> None:
        self.original_default_data_path = data_path
        self.original_default_log_path = log_path

    @property
    def has_changes(self) -> bool:
        """Whether the ledger records anything a rollback could act on."""
        return bool(
            self.per_database_original_files
            or self.original_default_data_path
            or self.original_default_log_path
        )


class LedgerStore:
    """Persists, loads and archives ledger files in one directory."""

    def __init__(self, ledger_dir: str | Path):
        self.ledger_dir = Path(ledger_dir)
        self.logger = logger.bind(component="ledger_store")

    def path_for(self, run_timestamp: str) -> Path:
        return self.ledger_dir / f"{LEDGER_PREFIX}{run_timestamp}.json"

    async def save(self, ledger: RollbackLedger) -> Path:
        """Write the ledger durably, replacing any earlier checkpoint of the same run."""
        path = self.path_for(ledger.run_timestamp)
        try:
            await asyncio.to_thread(self._write_atomic, path, ledger.model_dump_json(indent=2))
        except OSError as e:
            raise LedgerError(f"Failed to persist ledger {path}: {e}") from e

        self.logger.info(
            "Ledger persisted",
            path=str(path),
            databases_recorded=len(ledger.per_database_original_files),
            databases_moved=len(ledger.successfully_moved_databases),
        )
        return path

    @staticmethod
    def _write_atomic(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)

    async def load(self, path: str | Path) -> RollbackLedger:
        """Load a ledger file.

        Raises:
            LedgerError: If the file is missing or not a valid ledger
        """
        path = Path(path)
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return RollbackLedger.model_validate(json.loads(content))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise LedgerError(f"Failed to load ledger {path}: {e}") from e

    async def archive(self, path: str | Path) -> Path:
        """Move an applied ledger out of the way so it cannot be replayed twice."""
        path = Path(path)
        stamp = datetime.now(UTC).strftime(RUN_ID_FORMAT)
        archive_path = path.parent / LEDGER_ARCHIVE_DIR / f"{path.stem}.applied_{stamp}{path.suffix}"
        try:
            await asyncio.to_thread(archive_path.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(os.replace, path, archive_path)
        except OSError as e:
            raise LedgerError(f"Failed to archive ledger {path}: {e}") from e

        self.logger.info("Ledger archived", path=str(path), archive=str(archive_path))
        return archive_path
