"""Database relocation unit: detach, move files, reattach, restore access mode."""

from ..constants import SYSTEM_DATABASES
from ..core.catalog import SqlCatalog
from ..core.context import RunContext
from ..core.exceptions import (
    DatabaseLeftDetached,
    DatabaseNotFound,
    DatabaseRelocationError,
    LedgerError,
)
from ..core.file_mover import FileMover
from ..core.results import best_effort
from ..models import DatabaseOutcome, DatabaseRelocationResult, FileKind
from ..utils import relocated_path


class DatabaseRelocationUnit:
    """Relocates the files of user databases to new data and log directories.

    Databases are processed one at a time. Each one is snapshotted into the run
    ledger before it is touched, so that the rollback procedure can put it back.
    """

    def __init__(self, catalog: SqlCatalog, file_mover: FileMover, ctx: RunContext):
        self.catalog = catalog
        self.file_mover = file_mover
        self.ctx = ctx
        self.logger = ctx.bind(component="database_relocation")

    async def relocate(
        self, database: str, data_directory: str, log_directory: str
    ) -> DatabaseRelocationResult:
        """Relocate one database.

        Args:
            database: Database name
            data_directory: Destination for DATA files
            log_directory: Destination for LOG files

        Returns:
            Result with the new file locations, or a skip for system databases

        Raises:
            DatabaseNotFound: The database has no files in the catalog
            DatabaseRelocationError: Any step failed; the database may need rollback
            DatabaseLeftDetached: A step failed after detach; the database is detached
        """
        log = self.logger.bind(database=database)

        if database.lower() in SYSTEM_DATABASES:
            log.info("System database excluded from relocation")
            return DatabaseRelocationResult(database=database, outcome=DatabaseOutcome.SKIPPED)

        original_files = await self.catalog.get_database_files(database)
        if not original_files:
            log.warning("Database not found in catalog")
            raise DatabaseNotFound(f"Database {database} not found")

        moved_files = [
            file.model_copy(
                update={
                    "physical_path": relocated_path(
                        file.physical_path,
                        log_directory if file.kind == FileKind.LOG else data_directory,
                    )
                }
            )
            for file in original_files
        ]

        for original, moved in zip(original_files, moved_files):
            if original.physical_path != moved.physical_path and await self.file_mover.exists(
                moved.physical_path
            ):
                log.error("Destination file already exists", path=moved.physical_path)
                raise DatabaseRelocationError(
                    database, f"destination file already exists: {moved.physical_path}"
                )

        try:
            self.ctx.ledger.record_original_files(database, original_files)
        except LedgerError as e:
            raise DatabaseRelocationError(database, str(e)) from e
        await self.ctx.checkpoint(f"snapshot {database}")

        detached = False
        try:
            log.info("Setting single-user mode")
            await self.catalog.set_single_user(database)

            log.info("Detaching database")
            await self.catalog.detach(database)
            detached = True

            for original, moved in zip(original_files, moved_files):
                await self.file_mover.move(original.physical_path, moved.physical_path)

            log.info("Reattaching database", files=[f.physical_path for f in moved_files])
            try:
                await self.catalog.attach(database, [f.physical_path for f in moved_files])
            except Exception as e:
                raise DatabaseLeftDetached(
                    database, f"reattach failed, database left detached: {e}"
                ) from e
            detached = False

            await self.catalog.set_multi_user(database)
            log.info("Multi-user mode restored")

        except Exception as e:
            log.error(
                "Database relocation failed",
                error=str(e),
                error_type=type(e).__name__,
                detached=detached,
            )
            await best_effort(
                f"restore multi-user mode on {database}",
                lambda: self.catalog.set_multi_user(database),
                log,
            )
            await best_effort("persist ledger", lambda: self.ctx.checkpoint("database failure"), log)
            if isinstance(e, DatabaseRelocationError):
                raise
            if detached:
                raise DatabaseLeftDetached(
                    database, f"{e}; database left detached, files may be split"
                ) from e
            raise DatabaseRelocationError(database, str(e)) from e

        self.ctx.ledger.mark_moved(database)
        await self.ctx.checkpoint(f"moved {database}")
        log.info("Database relocated", files=len(moved_files))
        return DatabaseRelocationResult(
            database=database, outcome=DatabaseOutcome.MOVED, files=moved_files
        )

    async def relocate_all(
        self,
        databases: list[str],
        data_directory: str,
        log_directory: str,
        results: list[DatabaseRelocationResult] | None = None,
    ) -> list[DatabaseRelocationResult]:
        """Relocate databases sequentially.

        A missing database is recorded and skipped; any other failure aborts the
        remaining databases and propagates. Already-completed databases are left
        as they are. ``results`` receives every finished unit, including those
        completed before an abort.
        """
        results = results if results is not None else []
        for database in databases:
            try:
                result = await self.relocate(database, data_directory, log_directory)
            except DatabaseNotFound:
                result = DatabaseRelocationResult(
                    database=database, outcome=DatabaseOutcome.NOT_FOUND
                )
            results.append(result)
        return results
