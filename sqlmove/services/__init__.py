"""Relocation units, orchestrator and rollback procedure."""

from .database import DatabaseRelocationUnit
from .orchestrator import MigrationOrchestrator
from .protection import ProtectedServices
from .rollback import RollbackProcedure
from .tempdb import TempDBRelocation
from .volume import StandaloneVolumeRelocation, VolumeRelocationUnit, rotation_plan

__all__ = [
    "DatabaseRelocationUnit",
    "MigrationOrchestrator",
    "ProtectedServices",
    "RollbackProcedure",
    "StandaloneVolumeRelocation",
    "TempDBRelocation",
    "VolumeRelocationUnit",
    "rotation_plan",
]
