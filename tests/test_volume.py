"""Tests for drive letter resolution and reassignment."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from sqlmove.core.exceptions import CommandError, RelabelFailed, VolumeError, VolumeNotFound
from sqlmove.core.subprocess_manager import SubprocessResult
from sqlmove.core.volume import VolumeRelabeler, parse_powershell_json


def _result(stdout: str = "") -> SubprocessResult:
    return SubprocessResult(returncode=0, stdout=stdout, stderr="", cmd=[])


@pytest.fixture
def manager():
    manager = MagicMock()
    manager.run_powershell = AsyncMock(return_value=_result())
    return manager


@pytest.fixture
def relabeler(manager):
    return VolumeRelabeler(manager, timeout=30)


def _script(manager, index: int = -1) -> str:
    return manager.run_powershell.await_args_list[index].args[0]


def test_parse_powershell_json():
    assert parse_powershell_json("") is None
    assert parse_powershell_json('{"DiskNumber": 1}') == {"DiskNumber": 1}

    with pytest.raises(VolumeError, match="Unexpected PowerShell output"):
        parse_powershell_json("Get-Partition : access denied")


@pytest.mark.asyncio
class TestVolumeRelabeler:
    """Test PowerShell scripts and output mapping."""

    async def test_resolve_partition(self, relabeler, manager):
        manager.run_powershell.return_value = _result('{"DiskNumber":2,"PartitionNumber":3,"DriveLetter":"E"}')

        partition = await relabeler.resolve_partition("e:")

        assert partition.drive_letter == "E"
        assert partition.disk_number == 2
        assert partition.partition_number == 3
        assert "Get-Partition -DriveLetter E" in _script(manager)
        assert manager.run_powershell.await_args.kwargs["timeout"] == 30

    async def test_resolve_free_letter(self, relabeler):
        assert await relabeler.resolve_partition("Z") is None

    async def test_resolve_disk(self, relabeler, manager):
        manager.run_powershell.return_value = _result(
            '{"Number":2,"FriendlyName":"Samsung SSD","SerialNumber":" S4EV ","Location":"PCIROOT(0)#PCI(1D00)"}'
        )

        disk = await relabeler.resolve_disk(2)

        assert disk.friendly_name == "Samsung SSD"
        assert disk.serial_number == "S4EV"
        assert disk.location == "PCIROOT(0)#PCI(1D00)"

    async def test_resolve_missing_disk(self, relabeler):
        with pytest.raises(VolumeNotFound):
            await relabeler.resolve_disk(9)

    async def test_get_space(self, relabeler, manager):
        manager.run_powershell.return_value = _result('[{"Size":1000,"SizeRemaining":400}]')

        space = await relabeler.get_space("T")

        assert space.size_bytes == 1000
        assert space.free_bytes == 400

    async def test_relabel(self, relabeler, manager):
        manager.run_powershell.side_effect = [
            _result('{"DiskNumber":1,"PartitionNumber":2,"DriveLetter":"E"}'),
            _result(),
        ]

        await relabeler.relabel("E:", "z")

        assert "Set-Partition -NewDriveLetter Z" in _script(manager, 1)
        assert "Get-Partition -DriveLetter E" in _script(manager, 1)

    async def test_relabel_unresolved_letter(self, relabeler, manager):
        with pytest.raises(VolumeNotFound):
            await relabeler.relabel("E", "Z")

        assert manager.run_powershell.await_count == 1

    async def test_relabel_failure(self, relabeler, manager):
        manager.run_powershell.side_effect = [
            _result('{"DiskNumber":1,"PartitionNumber":2,"DriveLetter":"E"}'),
            CommandError("Command failed with exit code 1: access denied"),
        ]

        with pytest.raises(RelabelFailed, match="E: -> Z: failed"):
            await relabeler.relabel("E", "Z")

    async def test_query_timeout_is_volume_error(self, relabeler, manager):
        manager.run_powershell.side_effect = asyncio.TimeoutError("timed out")

        with pytest.raises(VolumeError):
            await relabeler.resolve_partition("E")
