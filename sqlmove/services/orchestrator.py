"""Migration orchestrator: tempdb, concurrent volume units, databases, service restore."""

import asyncio

from ..core.catalog import SqlCatalog
from ..core.config_loader import MigrationJob
from ..core.context import RunContext
from ..core.exceptions import PartitionMissingOrConfigInvalid, VolumeError
from ..core.file_mover import FileMover
from ..core.results import best_effort
from ..core.service_control import ServiceController
from ..core.transfer import BaseTransfer
from ..core.volume import VolumeRelabeler
from ..models import (
    OrchestratorState,
    RemovalRecord,
    RunReport,
    VolumeRelocationResult,
)
from ..utils import display_letter
from .database import DatabaseRelocationUnit
from .protection import ProtectedServices
from .tempdb import TempDBRelocation
from .volume import VolumeRelocationUnit


class MigrationOrchestrator:
    """Drives one migration run.

    Phases, in order:
    1. Preflight: every configured volume letter resolves, every temporary letter is free
    2. TempDB redirection, serially, before any service is touched
    3. Volume phase: stop the protected services, run one unit per disk pair
       concurrently, join all of them, record removal candidates, restart services
    4. Database phase, with the engine running, when the volume phase had no failures

    The protected services are restarted on every exit path of the volume phase.
    """

    def __init__(
        self,
        job: MigrationJob,
        ctx: RunContext,
        *,
        catalog: SqlCatalog,
        service_controller: ServiceController,
        copier: BaseTransfer,
        relabeler: VolumeRelabeler,
        file_mover: FileMover | None = None,
    ):
        self.job = job
        self.ctx = ctx
        self.catalog = catalog
        self.service_controller = service_controller
        self.copier = copier
        self.relabeler = relabeler
        self.file_mover = file_mover or FileMover()
        self.logger = ctx.bind(component="migration_orchestrator")
        self.state = OrchestratorState.IDLE
        self.history: list[OrchestratorState] = [OrchestratorState.IDLE]

    def _transition(self, state: OrchestratorState) -> None:
        self.logger.info("State transition", from_state=self.state.value, to_state=state.value)
        self.state = state
        self.history.append(state)

    async def run(self, dry_run: bool = False) -> RunReport:
        """Run the whole migration and report the outcome; never raises for run failures."""
        report = RunReport(run_id=self.ctx.run_id, dry_run=dry_run)
        self.logger.info(
            "Migration run started",
            disks=len(self.job.disks),
            tempdb=self.job.tempdb is not None,
            databases=self.job.databases is not None,
            services=self.job.services,
            dry_run=dry_run,
        )

        try:
            await self._preflight()
            if dry_run:
                self.logger.info("Dry run complete, no changes made")
                self._transition(OrchestratorState.DONE)
                return report

            await best_effort("read engine service inventory", self._log_service_inventory, self.logger)

            if self.job.tempdb is not None:
                report.tempdb = await TempDBRelocation(
                    self.catalog, self.relabeler, self.file_mover, self.ctx
                ).relocate(self.job.tempdb)

            if self.job.disks:
                await self._run_volume_phase(report)

            failed_pairs = [r for r in report.volumes if not r.succeeded]
            if failed_pairs:
                message = f"{len(failed_pairs)} of {len(report.volumes)} volume pair(s) failed"
                report.error = f"{report.error}; {message}" if report.error else message
                self.logger.error(
                    "Volume phase had failures",
                    failed=[f"{r.source_volume}->{r.destination_volume}" for r in failed_pairs],
                )
            if report.error:
                if self.job.databases is not None:
                    self.logger.warning("Database phase skipped because the volume phase failed")
                self._transition(OrchestratorState.FAILED)
                return report

            if self.job.databases is not None:
                await self._run_database_phase(report)

            self._transition(OrchestratorState.DONE)

        except Exception as e:
            report.error = str(e)
            self.logger.error(
                "Migration run failed",
                error=str(e),
                error_type=type(e).__name__,
                state=self.state.value,
            )
            if self.state != OrchestratorState.FAILED:
                self._transition(OrchestratorState.FAILED)

        finally:
            if self.ctx.ledger.has_changes:
                persisted = await best_effort(
                    "persist ledger", lambda: self.ctx.checkpoint("run end"), self.logger
                )
                if not persisted.succeeded and report.error is None:
                    report.error = f"Ledger could not be persisted: {persisted.error}"
            report.ledger_path = str(self.ctx.ledger_path) if self.ctx.ledger_path else None
            report.state = self.state
            self.logger.info(
                "Migration run finished",
                state=self.state.value,
                succeeded=report.succeeded,
                error=report.error,
                ledger=report.ledger_path,
            )

        return report

    async def _preflight(self) -> None:
        """Fail before any service is touched when a volume is missing or a temp letter is taken."""
        if self.job.disks:
            available, reason = await self.copier.validate_requirements()
            if not available:
                raise PartitionMissingOrConfigInvalid(
                    f"{self.copier.get_transfer_type()} copy unavailable: {reason}"
                )
        for pair in self.job.disks:
            for letter in (pair.source_volume, pair.destination_volume):
                if await self.relabeler.resolve_partition(letter) is None:
                    raise PartitionMissingOrConfigInvalid(
                        f"Volume {display_letter(letter)} does not resolve to a partition"
                    )
            temporary = self.job.temporary_volume_for(pair)
            if await self.relabeler.resolve_partition(temporary) is not None:
                raise PartitionMissingOrConfigInvalid(
                    f"Temporary volume {display_letter(temporary)} is already in use"
                )
        self.logger.info("Preflight checks passed", disks=len(self.job.disks))

    async def _log_service_inventory(self) -> None:
        for service in await self.catalog.get_service_inventory():
            self.logger.info(
                "Engine service",
                service=service.service_name,
                status=service.status,
                service_account=service.service_account,
                instant_file_initialization=service.instant_file_initialization,
            )

    async def _run_volume_phase(self, report: RunReport) -> None:
        protection = ProtectedServices(self.service_controller, self.job.services, self.logger)
        try:
            async with protection:
                self._transition(OrchestratorState.SERVICES_STOPPED)
                try:
                    self._transition(OrchestratorState.VOLUMES_MIGRATING)
                    report.volumes = await self._migrate_volumes()
                    self._transition(OrchestratorState.VOLUMES_MIGRATED)
                    report.removal_records = await self._record_removals(report.volumes)
                except BaseException:
                    self._transition(OrchestratorState.FAILED)
                    raise
                finally:
                    self._transition(OrchestratorState.SERVICES_RESTORING)
        except BaseException:
            if self.state != OrchestratorState.SERVICES_RESTORING:
                self._transition(OrchestratorState.FAILED)
                if protection.stopped:
                    # Quiesce failed; the services stopped so far were already restarted
                    self._transition(OrchestratorState.SERVICES_RESTORING)
            raise
        finally:
            report.service_restore = list(protection.restore_results)

        failed = [r.operation for r in protection.restore_results if not r.succeeded]
        if failed:
            report.error = f"Services not restarted: {', '.join(failed)}"

    async def _migrate_volumes(self) -> list[VolumeRelocationResult]:
        """One concurrent unit per disk pair; waits for every unit before returning."""
        units = [
            VolumeRelocationUnit(
                self.copier,
                self.relabeler,
                self.ctx,
                pair.source_volume,
                pair.destination_volume,
                self.job.temporary_volume_for(pair),
            )
            for pair in self.job.disks
        ]
        outcomes = await asyncio.gather(*(unit.run() for unit in units), return_exceptions=True)

        results: list[VolumeRelocationResult] = []
        for unit, outcome in zip(units, outcomes):
            if isinstance(outcome, BaseException):
                unit.logger.error(
                    "Volume unit aborted",
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                outcome = unit._result(False, error=f"{type(outcome).__name__}: {outcome}")
            results.append(outcome)

        self.logger.info(
            "All volume units finished",
            succeeded=sum(1 for r in results if r.succeeded),
            failed=sum(1 for r in results if not r.succeeded),
        )
        return results

    async def _record_removals(self, results: list[VolumeRelocationResult]) -> list[RemovalRecord]:
        """Resolve the old disk (now carrying the destination's letter) of each success."""
        records = []
        for result in results:
            if not result.succeeded:
                continue
            try:
                partition = await self.relabeler.resolve_partition(result.destination_volume)
                if partition is None:
                    self.logger.warning(
                        "Removal candidate not resolvable", volume=result.destination_volume
                    )
                    continue
                disk = await self.relabeler.resolve_disk(partition.disk_number)
            except VolumeError as e:
                self.logger.warning(
                    "Removal candidate lookup failed",
                    volume=result.destination_volume,
                    error=str(e),
                )
                continue

            record = RemovalRecord(
                source_volume=result.source_volume,
                destination_volume=result.destination_volume,
                drive_letter=result.destination_volume,
                disk=disk,
            )
            self.logger.info(
                "Removal candidate",
                drive_letter=record.drive_letter,
                disk_number=disk.disk_number,
                location=disk.location,
                serial_number=disk.serial_number,
            )
            records.append(record)
        return records

    async def _run_database_phase(self, report: RunReport) -> None:
        target = self.job.databases
        databases = (
            list(target.include) if target.include else await self.catalog.list_user_databases()
        )
        self.logger.info("Database phase started", databases=databases)

        if target.update_default_paths:
            data_path, log_path = await self.catalog.get_default_paths()
            self.ctx.ledger.record_default_paths(data_path, log_path)
            await self.ctx.checkpoint("default paths recorded")

        unit = DatabaseRelocationUnit(self.catalog, self.file_mover, self.ctx)
        await unit.relocate_all(
            databases, target.data_directory, target.log_directory, report.databases
        )

        if target.update_default_paths:
            await self.catalog.set_default_paths(target.data_directory, target.log_directory)
            self.logger.info(
                "Default paths updated, effective after the next engine restart",
                data_path=target.data_directory,
                log_path=target.log_directory,
            )
