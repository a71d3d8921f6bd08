"""Shared pytest fixtures for sqlmove tests."""

from pathlib import Path

import pytest

from sqlmove.core.context import RunContext
from tests.fakes import (
    FakeCatalog,
    FakeCopier,
    FakeServiceController,
    FakeVolumes,
    RecordingFileMover,
)


@pytest.fixture
def events() -> list:
    """Ordered record of service, copy and relabel calls shared by the fakes."""
    return []


@pytest.fixture
def ledger_dir(tmp_path: Path) -> Path:
    return tmp_path / "ledgers"


@pytest.fixture
def ctx(ledger_dir: Path) -> RunContext:
    """Run context with a fixed run id writing ledgers under tmp_path."""
    return RunContext.create(ledger_dir, run_id="20240101_120000")


@pytest.fixture
def file_mover() -> RecordingFileMover:
    return RecordingFileMover()


@pytest.fixture
def catalog(file_mover: RecordingFileMover) -> FakeCatalog:
    return FakeCatalog(file_mover)


@pytest.fixture
def volumes(events: list) -> FakeVolumes:
    """E: and G: are old disks, F: and H: their replacements, T: holds tempdb."""
    return FakeVolumes({"E": 1, "F": 2, "G": 3, "H": 4, "T": 5}, events)


@pytest.fixture
def copier(events: list) -> FakeCopier:
    return FakeCopier(events)


@pytest.fixture
def services(events: list) -> FakeServiceController:
    return FakeServiceController(events)
