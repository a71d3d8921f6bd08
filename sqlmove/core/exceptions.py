"""Core exceptions for sqlmove storage relocation."""


class SqlMoveError(Exception):
    """Base exception for sqlmove operations."""


class ConfigurationError(SqlMoveError):
    """Configuration validation or loading failed."""


class PartitionMissingOrConfigInvalid(ConfigurationError):
    """Job description is malformed or names a volume that does not exist."""


class CommandError(SqlMoveError):
    """External command execution failed."""


class EngineError(SqlMoveError):
    """Database engine interaction failed."""


class EngineUnreachable(EngineError):
    """Could not connect or authenticate to the database engine."""


class StatementFailed(EngineError):
    """The engine rejected a statement."""

    def __init__(self, message: str, statement: str | None = None):
        super().__init__(message)
        self.statement = statement


class DatabaseNotFound(SqlMoveError):
    """Requested database is absent from the engine catalog."""


class DatabaseRelocationError(SqlMoveError):
    """Relocation of a database failed; remaining databases are not processed."""

    def __init__(self, database: str, message: str):
        super().__init__(f"{database}: {message}")
        self.database = database


class DatabaseLeftDetached(DatabaseRelocationError):
    """A step failed while the database was detached; it needs manual or rollback intervention."""


class FileMoveError(SqlMoveError):
    """Moving a database file failed."""


class CopyFailed(SqlMoveError):
    """Bulk copy tool reported a hard failure."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


class VolumeError(SqlMoveError):
    """Volume identifier operation failed."""


class VolumeNotFound(VolumeError):
    """Drive letter does not resolve to a partition."""


class RelabelFailed(VolumeError):
    """Drive letter reassignment failed."""


class InsufficientSpace(SqlMoveError):
    """Destination volume lacks the required headroom."""

    def __init__(self, message: str, required_bytes: int = 0, free_bytes: int = 0):
        super().__init__(message)
        self.required_bytes = required_bytes
        self.free_bytes = free_bytes


class ServiceControlError(SqlMoveError):
    """Starting or stopping an OS service failed."""


class LedgerError(SqlMoveError):
    """Rollback ledger could not be read, written or archived."""
