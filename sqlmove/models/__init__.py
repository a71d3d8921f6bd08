"""Data models for sqlmove."""

from .enums import (  # noqa: F401
    CopyOutcome,
    DatabaseOutcome,
    FileKind,
    OrchestratorState,
)
from .records import (  # noqa: F401
    BestEffortResult,
    CopyResult,
    DatabaseRelocationResult,
    DiskLocation,
    FileRecord,
    PartitionInfo,
    RemovalRecord,
    RollbackReport,
    RunReport,
    ServiceInfo,
    TempDBRelocationResult,
    VolumeRelocationResult,
    VolumeSpace,
)

__all__ = [
    # Enums
    "CopyOutcome",
    "DatabaseOutcome",
    "FileKind",
    "OrchestratorState",
    # Records
    "BestEffortResult",
    "CopyResult",
    "DatabaseRelocationResult",
    "DiskLocation",
    "FileRecord",
    "PartitionInfo",
    "RemovalRecord",
    "RollbackReport",
    "RunReport",
    "ServiceInfo",
    "TempDBRelocationResult",
    "VolumeRelocationResult",
    "VolumeSpace",
]
