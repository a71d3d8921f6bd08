"""Run-scoped context passed to every relocation component."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from ..constants import RUN_ID_FORMAT
from .ledger import LedgerStore, RollbackLedger


@dataclass
class RunContext:
    """Ledger, ledger store and run-bound logger for one migration run."""

    run_id: str
    ledger: RollbackLedger
    ledger_store: LedgerStore
    logger: Any = None
    ledger_path: Path | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.logger is None:
            self.logger = structlog.get_logger("sqlmove").bind(run_id=self.run_id)

    @classmethod
    def create(cls, ledger_dir: str | Path, run_id: str | None = None) -> "RunContext":
        run_id = run_id or datetime.now(UTC).strftime(RUN_ID_FORMAT)
        return cls(
            run_id=run_id,
            ledger=RollbackLedger.new(run_id),
            ledger_store=LedgerStore(ledger_dir),
        )

    def bind(self, **kwargs: Any) -> Any:
        """Logger bound to this run plus extra fields."""
        return self.logger.bind(**kwargs)

    async def checkpoint(self, reason: str) -> Path:
        """Persist the ledger now."""
        self.ledger_path = await self.ledger_store.save(self.ledger)
        self.logger.info("Ledger checkpoint", reason=reason, path=str(self.ledger_path))
        return self.ledger_path
