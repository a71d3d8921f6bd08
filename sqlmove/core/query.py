"""Query executor: runs statements against the database engine over ODBC."""

import asyncio
from typing import Any

import pyodbc
import structlog

from .exceptions import EngineUnreachable, StatementFailed
from .settings import SqlMoveSettings

logger = structlog.get_logger()


class QueryExecutor:
    """Executes queries and administrative statements on one engine instance.

    Every call opens an autocommit connection; statements such as ALTER
    DATABASE, sp_detach_db and CREATE DATABASE ... FOR ATTACH cannot run inside
    a user transaction. Nothing is retried.
    """

    def __init__(self, settings: SqlMoveSettings):
        self.settings = settings
        self.instance = settings.instance
        self.logger = logger.bind(component="query_executor", instance=settings.instance)

    async def execute(self, statement: str) -> list[dict[str, Any]]:
        """Run a statement and return its rows.

        Args:
            statement: T-SQL text

        Returns:
            Rows of the last result set as dictionaries (empty for statements without one)

        Raises:
            EngineUnreachable: Connection or authentication failed
            StatementFailed: The engine rejected the statement
        """
        return await asyncio.to_thread(self._execute_sync, statement)

    def _connect(self) -> "pyodbc.Connection":
        try:
            return pyodbc.connect(
                self.settings.connection_string(),
                autocommit=True,
                timeout=self.settings.query_timeout,
            )
        except pyodbc.Error as e:
            self.logger.error("Engine connection failed", error=str(e))
            raise EngineUnreachable(f"Cannot connect to {self.instance}: {e}") from e

    def _execute_sync(self, statement: str) -> list[dict[str, Any]]:
        conn = self._connect()
        cursor = None
        try:
            cursor = conn.cursor()
            if self.settings.query_timeout:
                conn.timeout = self.settings.query_timeout

            self.logger.debug("Executing statement", statement=statement)
            cursor.execute(statement)

            rows: list[dict[str, Any]] = []
            while True:
                if cursor.description is not None:
                    columns = [column[0] for column in cursor.description]
                    rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
                if not cursor.nextset():
                    break
            return rows

        except pyodbc.Error as e:
            self.logger.error("Statement failed", statement=statement, error=str(e))
            raise StatementFailed(f"Statement failed on {self.instance}: {e}", statement) from e
        finally:
            if cursor is not None:
                cursor.close()
            conn.close()
