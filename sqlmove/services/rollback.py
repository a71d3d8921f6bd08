"""Operator-invoked rollback of the databases recorded in a run ledger."""

from pathlib import Path

import structlog

from ..core.catalog import SqlCatalog
from ..core.exceptions import DatabaseRelocationError
from ..core.file_mover import FileMover
from ..core.ledger import LedgerStore, RollbackLedger
from ..core.results import best_effort
from ..core.service_control import ServiceController
from ..models import DatabaseOutcome, DatabaseRelocationResult, FileRecord, RollbackReport
from .protection import ProtectedServices

logger = structlog.get_logger()


class RollbackProcedure:
    """Puts every database a run moved back at its recorded original paths.

    The ledger is archived only after every database, the default paths and the
    service restart went through, so a partial rollback can be invoked again.
    """

    def __init__(
        self,
        catalog: SqlCatalog,
        service_controller: ServiceController,
        ledger_store: LedgerStore,
        file_mover: FileMover | None = None,
    ):
        self.catalog = catalog
        self.service_controller = service_controller
        self.ledger_store = ledger_store
        self.file_mover = file_mover or FileMover()
        self.logger = logger.bind(component="rollback")

    async def run(self, ledger_path: str | Path, services: list[str]) -> RollbackReport:
        """Apply a ledger and report the outcome; never raises for rollback failures."""
        report = RollbackReport(ledger_path=str(ledger_path))

        try:
            ledger = await self.ledger_store.load(ledger_path)
            log = self.logger.bind(run_id=ledger.run_timestamp)
            log.info(
                "Rollback started",
                ledger=str(ledger_path),
                databases=ledger.successfully_moved_databases,
            )

            for database in ledger.successfully_moved_databases:
                result = await self._restore_database(ledger, database, log)
                if result is not None:
                    report.databases.append(result)

            report.default_paths_restored = await self._restore_default_paths(ledger, log)

            protection = ProtectedServices(self.service_controller, services, log)
            try:
                async with protection:
                    log.info("Restarting protected services", services=services)
            finally:
                report.service_restore = list(protection.restore_results)

            failed = [r.operation for r in report.service_restore if not r.succeeded]
            if failed:
                report.error = f"Services not restarted: {', '.join(failed)}"
                log.error("Rollback incomplete, ledger kept", failed=failed)
                return report

            report.archived_path = str(await self.ledger_store.archive(ledger_path))
            log.info("Rollback completed", archived=report.archived_path)

        except Exception as e:
            report.error = str(e)
            self.logger.error(
                "Rollback failed, ledger kept for another attempt",
                ledger=str(ledger_path),
                error=str(e),
                error_type=type(e).__name__,
            )

        return report

    async def _restore_database(
        self, ledger: RollbackLedger, database: str, log
    ) -> DatabaseRelocationResult | None:
        log = log.bind(database=database)
        originals = ledger.per_database_original_files.get(database)
        if not originals:
            log.warning("No original files recorded, skipping")
            return None

        current_files = await self.catalog.get_database_files(database)
        if not current_files:
            log.warning("Database not found in catalog, skipping")
            return DatabaseRelocationResult(database=database, outcome=DatabaseOutcome.NOT_FOUND)

        original_by_name = {f.logical_name: f for f in originals}
        restored_files: list[FileRecord] = []
        for file in current_files:
            original = original_by_name.get(file.logical_name)
            if original is None:
                log.warning(
                    "File has no recorded original, leaving in place",
                    file=file.logical_name,
                    path=file.physical_path,
                )
                restored_files.append(file)
            else:
                restored_files.append(original)

        try:
            await self.catalog.set_single_user(database)
            await self.catalog.detach(database)
            for current, restored in zip(current_files, restored_files):
                await self.file_mover.move(current.physical_path, restored.physical_path)
            await self.catalog.attach(database, [f.physical_path for f in restored_files])
            await self.catalog.set_multi_user(database)
        except Exception as e:
            log.error("Database rollback failed", error=str(e), error_type=type(e).__name__)
            await best_effort(
                f"restore multi-user mode on {database}",
                lambda: self.catalog.set_multi_user(database),
                log,
            )
            raise DatabaseRelocationError(database, f"rollback failed: {e}") from e

        log.info("Database restored to original paths", files=len(restored_files))
        return DatabaseRelocationResult(
            database=database, outcome=DatabaseOutcome.RESTORED, files=restored_files
        )

    async def _restore_default_paths(self, ledger: RollbackLedger, log) -> bool:
        if not (ledger.original_default_data_path or ledger.original_default_log_path):
            return False
        await self.catalog.set_default_paths(
            ledger.original_default_data_path, ledger.original_default_log_path
        )
        log.info(
            "Default paths restored",
            data_path=ledger.original_default_data_path,
            log_path=ledger.original_default_log_path,
        )
        return True
