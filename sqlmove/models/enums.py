"""Enum definitions for sqlmove."""

from enum import Enum


class FileKind(str, Enum):
    """Kind of a database file."""

    DATA = "DATA"
    LOG = "LOG"


class CopyOutcome(str, Enum):
    """Classification of a bulk copy exit status."""

    SUCCESS = "success"
    WARNING = "warning"
    FAILURE = "failure"


class DatabaseOutcome(str, Enum):
    """Outcome of one database relocation unit."""

    MOVED = "moved"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    RESTORED = "restored"


class OrchestratorState(str, Enum):
    """States of a migration run."""

    IDLE = "Idle"
    SERVICES_STOPPED = "ServicesStopped"
    VOLUMES_MIGRATING = "VolumesMigrating"
    VOLUMES_MIGRATED = "VolumesMigrated"
    SERVICES_RESTORING = "ServicesRestoring"
    DONE = "Done"
    FAILED = "Failed"
