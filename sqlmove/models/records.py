"""Relocation records and results."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import CopyOutcome, DatabaseOutcome, FileKind, OrchestratorState


class FileRecord(BaseModel):
    """One database file as known to the engine catalog."""

    model_config = ConfigDict(frozen=True)

    logical_name: str
    kind: FileKind
    physical_path: str


class PartitionInfo(BaseModel):
    """Partition a drive letter resolves to."""

    drive_letter: str
    disk_number: int
    partition_number: int | None = None


class DiskLocation(BaseModel):
    """Physical storage unit behind a partition."""

    disk_number: int
    friendly_name: str | None = None
    serial_number: str | None = None
    location: str | None = None


class VolumeSpace(BaseModel):
    """Capacity information for a volume."""

    drive_letter: str
    size_bytes: int
    free_bytes: int


class ServiceInfo(BaseModel):
    """Engine service inventory row from sys.dm_server_services."""

    service_name: str
    startup_type: str | None = None
    status: str | None = None
    startup_time: str | None = None
    service_account: str | None = None
    instant_file_initialization: bool | None = None


class BestEffortResult(BaseModel):
    """Outcome of a cleanup action whose failure is recorded but never raised."""

    operation: str
    succeeded: bool
    error: str | None = None


class CopyResult(BaseModel):
    """Result of one mirror copy."""

    source: str
    destination: str
    exit_code: int
    outcome: CopyOutcome
    stats: dict[str, dict[str, int]] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.outcome != CopyOutcome.FAILURE


class VolumeRelocationResult(BaseModel):
    """Result of one volume relocation unit, visible only once the unit finished."""

    source_volume: str
    destination_volume: str
    temporary_volume: str | None = None
    succeeded: bool
    error: str | None = None
    copy_result: CopyResult | None = None


class RemovalRecord(BaseModel):
    """Old disk an operator may detach after a successful volume relocation."""

    source_volume: str
    destination_volume: str
    drive_letter: str
    disk: DiskLocation
    recorded_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())


class DatabaseRelocationResult(BaseModel):
    """Result of one database relocation or rollback unit."""

    database: str
    outcome: DatabaseOutcome
    files: list[FileRecord] = Field(default_factory=list)


class TempDBRelocationResult(BaseModel):
    """Result of redirecting tempdb files to a new volume."""

    destination_volume: str
    directory: str
    required_bytes: int
    free_bytes: int
    files: list[FileRecord] = Field(default_factory=list)


class RunReport(BaseModel):
    """Summary of one migration run."""

    run_id: str
    state: OrchestratorState = OrchestratorState.IDLE
    dry_run: bool = False
    tempdb: TempDBRelocationResult | None = None
    volumes: list[VolumeRelocationResult] = Field(default_factory=list)
    databases: list[DatabaseRelocationResult] = Field(default_factory=list)
    removal_records: list[RemovalRecord] = Field(default_factory=list)
    service_restore: list[BestEffortResult] = Field(default_factory=list)
    ledger_path: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return (
            self.state == OrchestratorState.DONE
            and self.error is None
            and all(result.succeeded for result in self.volumes)
            and all(result.succeeded for result in self.service_restore)
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1


class RollbackReport(BaseModel):
    """Summary of one rollback procedure."""

    ledger_path: str
    databases: list[DatabaseRelocationResult] = Field(default_factory=list)
    default_paths_restored: bool = False
    service_restore: list[BestEffortResult] = Field(default_factory=list)
    archived_path: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return (
            self.error is None
            and self.archived_path is not None
            and all(result.succeeded for result in self.service_restore)
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1
