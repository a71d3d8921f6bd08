"""Tests for the migration orchestrator."""

from unittest.mock import AsyncMock

import pytest

from sqlmove.core.config_loader import parse_job
from sqlmove.models import DatabaseOutcome, OrchestratorState
from sqlmove.services import MigrationOrchestrator
from tests.fakes import FakeCopier, db_files


def _orchestrator(job_data, ctx, catalog, services, copier, volumes, file_mover):
    return MigrationOrchestrator(
        parse_job(job_data),
        ctx,
        catalog=catalog,
        service_controller=services,
        copier=copier,
        relabeler=volumes,
        file_mover=file_mover,
    )


@pytest.fixture
def build(ctx, catalog, services, copier, volumes, file_mover):
    def build(job_data, copier_override=None):
        return _orchestrator(
            job_data, ctx, catalog, services, copier_override or copier, volumes, file_mover
        )

    return build


TWO_PAIRS = {
    "disks": [
        {"source_volume": "E:", "destination_volume": "F:", "temporary_volume": "W:"},
        {"source_volume": "G:", "destination_volume": "H:", "temporary_volume": "Z:"},
    ],
    "services": ["MSSQLSERVER", "SQLSERVERAGENT"],
}


@pytest.mark.asyncio
class TestVolumePhase:
    """Test the services-stopped window around the concurrent volume units."""

    async def test_single_pair_scenario(self, build, services, copier, volumes):
        """Test ENGINE is stopped once, E: is copied to F: once, letters swap, exit code 0."""
        orchestrator = build(
            {"disks": [{"source_volume": "E:", "destination_volume": "F:"}], "services": ["ENGINE"]}
        )

        report = await orchestrator.run()

        assert report.exit_code == 0
        assert report.state == OrchestratorState.DONE
        assert services.calls("stop") == ["ENGINE"]
        assert services.calls("start") == ["ENGINE"]
        assert copier.calls == [("E:\\", "F:\\")]
        assert volumes.letters["E"] == 2
        assert volumes.letters["F"] == 1
        assert report.ledger_path is None
        assert orchestrator.history == [
            OrchestratorState.IDLE,
            OrchestratorState.SERVICES_STOPPED,
            OrchestratorState.VOLUMES_MIGRATING,
            OrchestratorState.VOLUMES_MIGRATED,
            OrchestratorState.SERVICES_RESTORING,
            OrchestratorState.DONE,
        ]

    async def test_removal_candidate_is_old_disk(self, build):
        report = await build(
            {"disks": [{"source_volume": "E:", "destination_volume": "F:"}], "services": ["ENGINE"]}
        ).run()

        [record] = report.removal_records
        assert record.drive_letter == "F:"
        assert record.disk.disk_number == 1
        assert record.disk.serial_number == "SN0001"

    async def test_services_stopped_for_whole_phase(self, build, events):
        """Test all stops precede the first copy and all starts follow the last unit."""
        copier = FakeCopier(events, delay=0.01)

        report = await build(TWO_PAIRS, copier).run()

        assert report.succeeded
        kinds = [e[0] for e in events]
        first_copy = kinds.index("copy_start")
        last_unit_step = max(i for i, kind in enumerate(kinds) if kind in ("copy_end", "relabel"))
        assert kinds[:first_copy] == ["stop", "stop"]
        assert kinds[last_unit_step + 1:] == ["start", "start"]
        assert [e[1] for e in events if e[0] == "start"] == ["SQLSERVERAGENT", "MSSQLSERVER"]

    async def test_units_run_concurrently(self, build, events):
        copier = FakeCopier(events, delay=0.05)

        await build(TWO_PAIRS, copier).run()

        kinds = [e[0] for e in events if e[0].startswith("copy")]
        assert kinds[:2] == ["copy_start", "copy_start"]

    async def test_join_all_keeps_every_result(self, build, events, services, volumes):
        """Test a failing pair neither cancels nor hides its sibling."""
        copier = FakeCopier(events, exit_codes={"E:\\": 8}, delay=0.01)

        report = await build(TWO_PAIRS, copier).run()

        assert [(r.source_volume, r.succeeded) for r in report.volumes] == [("E:", False), ("G:", True)]
        assert volumes.letters["E"] == 1
        assert volumes.letters["G"] == 4
        assert report.state == OrchestratorState.FAILED
        assert report.exit_code == 1
        assert "1 of 2 volume pair(s) failed" in report.error
        assert services.calls("start") == ["SQLSERVERAGENT", "MSSQLSERVER"]
        assert len(report.removal_records) == 1

    async def test_unit_crash_becomes_failed_result(self, build, volumes, services):
        async def broken_relabel(from_letter, to_letter):
            raise RuntimeError("storage service crashed")

        volumes.relabel = broken_relabel

        report = await build(
            {"disks": [{"source_volume": "E:", "destination_volume": "F:"}], "services": ["ENGINE"]}
        ).run()

        [result] = report.volumes
        assert not result.succeeded
        assert "RuntimeError" in result.error
        assert services.calls("start") == ["ENGINE"]

    async def test_service_stop_failure_aborts_before_copy(self, build, services, copier):
        services.fail_stop.add("SQLSERVERAGENT")

        orchestrator = build(TWO_PAIRS)
        report = await orchestrator.run()

        assert report.exit_code == 1
        assert copier.calls == []
        assert services.calls("start") == ["SQLSERVERAGENT", "MSSQLSERVER"]
        assert report.state == OrchestratorState.FAILED
        assert orchestrator.history == [
            OrchestratorState.IDLE,
            OrchestratorState.FAILED,
            OrchestratorState.SERVICES_RESTORING,
            OrchestratorState.FAILED,
        ]

    async def test_service_restart_failure_fails_run(self, build, services):
        services.fail_start.add("MSSQLSERVER")

        report = await build(TWO_PAIRS).run()

        assert report.exit_code == 1
        assert all(r.succeeded for r in report.volumes)
        assert [r.succeeded for r in report.service_restore] == [True, False]
        assert "MSSQLSERVER" in report.error

    async def test_preflight_missing_volume(self, build, services, copier):
        report = await build(
            {"disks": [{"source_volume": "E:", "destination_volume": "Q:"}], "services": ["ENGINE"]}
        ).run()

        assert report.exit_code == 1
        assert "Q: does not resolve" in report.error
        assert services.events == []
        assert copier.calls == []

    async def test_preflight_copy_tool_missing(self, build, services, copier):
        copier.validate_requirements = AsyncMock(return_value=(False, "robocopy not available on this machine"))

        report = await build(TWO_PAIRS).run()

        assert report.exit_code == 1
        assert "fake copy unavailable" in report.error
        assert services.events == []

    async def test_preflight_temporary_letter_taken(self, build, services):
        report = await build(
            {
                "disks": [{"source_volume": "E:", "destination_volume": "F:", "temporary_volume": "T:"}],
                "services": ["ENGINE"],
            }
        ).run()

        assert "T: is already in use" in report.error
        assert services.events == []

    async def test_dry_run_changes_nothing(self, build, services, copier, catalog):
        report = await build(TWO_PAIRS).run(dry_run=True)

        assert report.dry_run
        assert report.exit_code == 0
        assert services.events == []
        assert copier.calls == []
        assert catalog.statements == []


@pytest.mark.asyncio
class TestTempDBAndDatabasePhases:
    """Test the phases around the services window."""

    async def test_insufficient_tempdb_space_touches_no_service(self, build, catalog, volumes, services, copier):
        catalog.tempdb_pages = 10 * 131072
        volumes.free_bytes["T"] = 1024**3
        job = dict(TWO_PAIRS, tempdb={"destination_volume": "T:"})

        report = await build(job).run()

        assert report.exit_code == 1
        assert "tempdb needs" in report.error
        assert catalog.statements == []
        assert services.events == []
        assert copier.calls == []

    async def test_full_run(self, build, catalog, file_mover, ctx):
        """Test tempdb, volumes and databases in one run, with default paths recorded."""
        catalog.add_database("db1", db_files("db1"))
        catalog.add_database("db2", db_files("db2"))
        job = dict(
            TWO_PAIRS,
            tempdb={"destination_volume": "T:"},
            databases={
                "data_directory": "X:\\data",
                "log_directory": "Y:\\log",
                "update_default_paths": True,
            },
        )

        report = await build(job).run()

        assert report.succeeded, report.error
        assert report.tempdb.directory == "T:\\TempDB"
        assert [(r.database, r.outcome) for r in report.databases] == [
            ("db1", DatabaseOutcome.MOVED),
            ("db2", DatabaseOutcome.MOVED),
        ]
        assert ctx.ledger.original_default_data_path == "D:\\data\\"
        assert catalog.default_paths == ("X:\\data", "Y:\\log")
        assert report.ledger_path == str(ctx.ledger_path)
        assert ctx.ledger_path.exists()

    async def test_databases_skipped_after_volume_failure(self, build, events, catalog):
        catalog.add_database("db1", db_files("db1"))
        copier = FakeCopier(events, exit_codes={"G:\\": 9})
        job = dict(TWO_PAIRS, databases={"data_directory": "X:\\data", "log_directory": "Y:\\log"})

        report = await build(job, copier).run()

        assert report.databases == []
        assert catalog.attached["db1"] == db_files("db1")
        assert report.exit_code == 1

    async def test_database_failure_persists_ledger(self, build, catalog, ctx):
        from sqlmove.core.exceptions import StatementFailed

        catalog.add_database("db1", db_files("db1"))
        catalog.add_database("db2", db_files("db2"))
        catalog.fail_on[("attach", "db2")] = StatementFailed("file activation failure")
        job = {
            "databases": {"data_directory": "X:\\data", "log_directory": "Y:\\log", "include": ["db1", "db2"]},
            "services": ["MSSQLSERVER"],
        }

        report = await build(job).run()

        assert report.exit_code == 1
        assert "left detached" in report.error
        assert [r.database for r in report.databases] == ["db1"]
        assert report.ledger_path is not None
        assert ctx.ledger.successfully_moved_databases == ["db1"]
        assert set(ctx.ledger.per_database_original_files) == {"db1", "db2"}
