"""Engine catalog operations expressed as T-SQL over the query executor."""

from typing import Any, Protocol

import structlog

from ..constants import (
    DEFAULT_DATA_VALUE,
    DEFAULT_LOG_VALUE,
    DEFAULT_PATH_REGISTRY_HIVE,
    DEFAULT_PATH_REGISTRY_KEY,
    FILE_TYPE_LOG,
    PAGE_SIZE_BYTES,
    SYSTEM_DATABASES,
    TEMPDB,
)
from ..models import FileKind, FileRecord, ServiceInfo
from ..utils import quote_identifier, quote_literal

logger = structlog.get_logger()


class StatementRunner(Protocol):
    async def execute(self, statement: str) -> list[dict[str, Any]]: ...


def file_kind(type_desc: str | None) -> FileKind:
    """Map sys.master_files.type_desc to a file kind; non-log files count as data."""
    return FileKind.LOG if (type_desc or "").upper() == FILE_TYPE_LOG else FileKind.DATA


class SqlCatalog:
    """Reads and changes the engine catalog for relocation purposes."""

    def __init__(self, executor: StatementRunner):
        self.executor = executor
        self.logger = logger.bind(component="sql_catalog")

    async def list_user_databases(self) -> list[str]:
        """Names of all online user databases, excluding snapshots, in name order."""
        rows = await self.executor.execute(
            "SELECT name FROM sys.databases "
            "WHERE database_id > 4 AND source_database_id IS NULL AND state_desc = 'ONLINE' "
            "ORDER BY name;"
        )
        return [row["name"] for row in rows if row["name"] not in SYSTEM_DATABASES]

    async def get_database_files(self, database: str) -> list[FileRecord]:
        """Current files of a database; empty when the database is unknown."""
        rows = await self.executor.execute(
            "SELECT name, type_desc, physical_name FROM sys.master_files "
            f"WHERE database_id = DB_ID({quote_literal(database)}) "
            "ORDER BY file_id;"
        )
        return [
            FileRecord(
                logical_name=row["name"],
                kind=file_kind(row["type_desc"]),
                physical_path=row["physical_name"],
            )
            for row in rows
        ]

    async def set_single_user(self, database: str) -> None:
        """Restrict a database to one session, rolling back open transactions."""
        await self.executor.execute(
            f"ALTER DATABASE {quote_identifier(database)} SET SINGLE_USER WITH ROLLBACK IMMEDIATE;"
        )

    async def set_multi_user(self, database: str) -> None:
        await self.executor.execute(
            f"ALTER DATABASE {quote_identifier(database)} SET MULTI_USER;"
        )

    async def detach(self, database: str) -> None:
        await self.executor.execute(
            f"EXEC master.dbo.sp_detach_db @dbname = {quote_literal(database)};"
        )

    async def attach(self, database: str, paths: list[str]) -> None:
        """Reattach a database by declaring all of its file locations in one statement."""
        file_specs = ", ".join(f"(FILENAME = {quote_literal(path)})" for path in paths)
        await self.executor.execute(
            f"CREATE DATABASE {quote_identifier(database)} ON {file_specs} FOR ATTACH;"
        )

    async def tempdb_size_bytes(self) -> int:
        """Current total size of all tempdb files."""
        rows = await self.executor.execute(
            "SELECT SUM(CAST(size AS BIGINT)) AS pages FROM tempdb.sys.database_files;"
        )
        pages = rows[0]["pages"] if rows and rows[0].get("pages") is not None else 0
        return int(pages) * PAGE_SIZE_BYTES

    async def modify_tempdb_file(self, logical_name: str, new_path: str) -> None:
        """Redirect one tempdb file; takes effect on next engine start."""
        await self.executor.execute(
            f"ALTER DATABASE {quote_identifier(TEMPDB)} MODIFY FILE "
            f"(NAME = {quote_literal(logical_name)}, FILENAME = {quote_literal(new_path)});"
        )

    async def get_default_paths(self) -> tuple[str | None, str | None]:
        """Instance default data and log paths."""
        rows = await self.executor.execute(
            "SELECT CAST(SERVERPROPERTY('InstanceDefaultDataPath') AS NVARCHAR(512)) AS data_path, "
            "CAST(SERVERPROPERTY('InstanceDefaultLogPath') AS NVARCHAR(512)) AS log_path;"
        )
        if not rows:
            return None, None
        return rows[0].get("data_path"), rows[0].get("log_path")

    async def set_default_paths(self, data_path: str | None, log_path: str | None) -> None:
        """Write the instance default paths to the registry; effective after restart."""
        for value_name, path in ((DEFAULT_DATA_VALUE, data_path), (DEFAULT_LOG_VALUE, log_path)):
            if not path:
                continue
            await self.executor.execute(
                "EXEC master.dbo.xp_instance_regwrite "
                f"{quote_literal(DEFAULT_PATH_REGISTRY_HIVE)}, "
                f"{quote_literal(DEFAULT_PATH_REGISTRY_KEY)}, "
                f"{quote_literal(value_name)}, REG_SZ, {quote_literal(path)};"
            )
            self.logger.info("Default path written", value=value_name, path=path)

    async def get_service_inventory(self) -> list[ServiceInfo]:
        """Engine services with their accounts and instant file initialization state."""
        rows = await self.executor.execute(
            "SELECT servicename AS ServiceName, startup_type_desc AS StartupType, "
            "status_desc AS ServiceStatus, last_startup_time AS StartupTime, "
            "service_account AS ServiceAccount, "
            "instant_file_initialization_enabled AS IsIFIEnabled "
            "FROM sys.dm_server_services;"
        )
        return [
            ServiceInfo(
                service_name=row["ServiceName"],
                startup_type=row.get("StartupType"),
                status=row.get("ServiceStatus"),
                startup_time=str(row["StartupTime"]) if row.get("StartupTime") else None,
                service_account=row.get("ServiceAccount"),
                instant_file_initialization=_flag(row.get("IsIFIEnabled")),
            )
            for row in rows
        ]


def _flag(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().upper() in ("Y", "YES", "TRUE", "1")
    return bool(value)
