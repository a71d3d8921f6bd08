"""Tests for the rollback procedure."""

from pathlib import Path

import pytest

from sqlmove.core.exceptions import StatementFailed
from sqlmove.core.ledger import LedgerStore
from sqlmove.models import DatabaseOutcome, FileKind, FileRecord
from sqlmove.services import DatabaseRelocationUnit, RollbackProcedure
from tests.fakes import db_files


@pytest.fixture
def procedure(catalog, services, ledger_dir, file_mover):
    return RollbackProcedure(catalog, services, LedgerStore(ledger_dir), file_mover)


async def _migrate(catalog, file_mover, ctx, *names) -> Path:
    """Relocate databases and return the persisted ledger."""
    for name in names:
        catalog.add_database(name, db_files(name))
    ctx.ledger.record_default_paths(*catalog.default_paths)
    await DatabaseRelocationUnit(catalog, file_mover, ctx).relocate_all(list(names), "X:\\data", "Y:\\log")
    await catalog.set_default_paths("X:\\data", "Y:\\log")
    return await ctx.checkpoint("test")


@pytest.mark.asyncio
class TestRollbackProcedure:
    """Test putting moved databases back."""

    async def test_round_trip_restores_original_paths(self, procedure, catalog, file_mover, ctx, services):
        """Test original -> moved -> rolled back equals original."""
        ledger_path = await _migrate(catalog, file_mover, ctx, "db1", "db2")
        assert catalog.attached["db1"] != db_files("db1")

        report = await procedure.run(ledger_path, ["MSSQLSERVER"])

        assert report.exit_code == 0, report.error
        assert catalog.attached["db1"] == db_files("db1")
        assert catalog.attached["db2"] == db_files("db2")
        assert catalog.modes == {"db1": "MULTI_USER", "db2": "MULTI_USER"}
        assert [(r.database, r.outcome) for r in report.databases] == [
            ("db1", DatabaseOutcome.RESTORED),
            ("db2", DatabaseOutcome.RESTORED),
        ]
        assert report.default_paths_restored
        assert catalog.default_paths == ("D:\\data\\", "L:\\log\\")
        assert services.calls("stop") == ["MSSQLSERVER"]
        assert services.calls("start") == ["MSSQLSERVER"]

    async def test_ledger_archived_and_not_replayable(self, procedure, catalog, file_mover, ctx):
        ledger_path = await _migrate(catalog, file_mover, ctx, "db1")

        report = await procedure.run(ledger_path, ["MSSQLSERVER"])

        assert not ledger_path.exists()
        assert Path(report.archived_path).exists()

        second = await procedure.run(ledger_path, ["MSSQLSERVER"])
        assert second.exit_code == 1
        assert "Failed to load ledger" in second.error

    async def test_snapshot_without_move_is_ignored(self, procedure, catalog, file_mover, ctx):
        """Test only databases recorded as moved are rolled back."""
        catalog.add_database("db1", db_files("db1"))
        ctx.ledger.record_original_files("db1", db_files("db1"))
        ledger_path = await ctx.checkpoint("snapshot only")

        report = await procedure.run(ledger_path, ["MSSQLSERVER"])

        assert report.exit_code == 0
        assert report.databases == []
        assert catalog.statements == []

    async def test_missing_database_is_skipped(self, procedure, catalog, file_mover, ctx):
        ledger_path = await _migrate(catalog, file_mover, ctx, "db1")
        del catalog.attached["db1"]

        report = await procedure.run(ledger_path, ["MSSQLSERVER"])

        assert report.exit_code == 0
        assert report.databases[0].outcome == DatabaseOutcome.NOT_FOUND

    async def test_file_added_after_move_stays_in_place(self, procedure, catalog, file_mover, ctx):
        ledger_path = await _migrate(catalog, file_mover, ctx, "db1")
        extra = FileRecord(logical_name="db1_extra", kind=FileKind.DATA, physical_path="X:\\data\\db1_extra.ndf")
        catalog.attached["db1"].append(extra)
        file_mover.files.add(extra.physical_path)

        report = await procedure.run(ledger_path, ["MSSQLSERVER"])

        assert report.exit_code == 0
        paths = [f.physical_path for f in catalog.attached["db1"]]
        assert paths == ["D:\\data\\db1.mdf", "L:\\log\\db1_log.ldf", "X:\\data\\db1_extra.ndf"]

    async def test_failure_keeps_ledger(self, procedure, catalog, file_mover, ctx, services):
        ledger_path = await _migrate(catalog, file_mover, ctx, "db1")
        catalog.fail_on[("detach", "db1")] = StatementFailed("database in use")

        report = await procedure.run(ledger_path, ["MSSQLSERVER"])

        assert report.exit_code == 1
        assert "rollback failed" in report.error
        assert ledger_path.exists()
        assert report.archived_path is None
        assert catalog.modes["db1"] == "MULTI_USER"
        assert services.events == []

    async def test_service_restart_failure_keeps_ledger(self, procedure, catalog, file_mover, ctx, services):
        ledger_path = await _migrate(catalog, file_mover, ctx, "db1")
        services.fail_start.add("MSSQLSERVER")

        report = await procedure.run(ledger_path, ["MSSQLSERVER"])

        assert report.exit_code == 1
        assert ledger_path.exists()
        assert catalog.attached["db1"] == db_files("db1")
