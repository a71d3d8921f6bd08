"""Drive letter resolution and reassignment through the Windows storage cmdlets."""

import asyncio
import json
from typing import Any

import structlog

from ..models import DiskLocation, PartitionInfo, VolumeSpace
from ..utils import normalize_drive_letter
from .exceptions import CommandError, RelabelFailed, VolumeError, VolumeNotFound
from .subprocess_manager import SubprocessManager

logger = structlog.get_logger()


def parse_powershell_json(output: str) -> Any:
    """Parse ConvertTo-Json output; empty output means no object."""
    payload = output.strip()
    if not payload:
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise VolumeError(f"Unexpected PowerShell output: {payload[:200]}") from e


def _first(data: Any) -> Any:
    if isinstance(data, list):
        return data[0] if data else None
    return data


class VolumeRelabeler:
    """Reads and reassigns drive letters and resolves volumes to physical disks."""

    def __init__(self, subprocess_manager: SubprocessManager | None = None, timeout: int = 60):
        self.subprocess_manager = subprocess_manager or SubprocessManager()
        self.timeout = timeout
        self.logger = logger.bind(component="volume_relabeler")

    async def _query(self, script: str) -> Any:
        try:
            result = await self.subprocess_manager.run_powershell(script, timeout=self.timeout)
        except (CommandError, asyncio.TimeoutError) as e:
            raise VolumeError(str(e)) from e
        return _first(parse_powershell_json(result.stdout))

    async def resolve_partition(self, letter: str) -> PartitionInfo | None:
        """Partition currently carrying ``letter``, or None when the letter is free."""
        letter = normalize_drive_letter(letter)
        data = await self._query(
            f"Get-Partition -DriveLetter {letter} -ErrorAction SilentlyContinue | "
            "Select-Object DiskNumber, PartitionNumber, DriveLetter | ConvertTo-Json -Compress"
        )
        if not data:
            return None
        return PartitionInfo(
            drive_letter=letter,
            disk_number=int(data["DiskNumber"]),
            partition_number=data.get("PartitionNumber"),
        )

    async def resolve_disk(self, disk_number: int) -> DiskLocation:
        """Physical storage unit with the given disk number.

        Raises:
            VolumeNotFound: If no such disk exists
        """
        data = await self._query(
            f"Get-Disk -Number {int(disk_number)} -ErrorAction SilentlyContinue | "
            "Select-Object Number, FriendlyName, SerialNumber, Location | ConvertTo-Json -Compress"
        )
        if not data:
            raise VolumeNotFound(f"Disk {disk_number} not found")
        return DiskLocation(
            disk_number=int(data.get("Number", disk_number)),
            friendly_name=data.get("FriendlyName"),
            serial_number=(data.get("SerialNumber") or "").strip() or None,
            location=data.get("Location"),
        )

    async def get_space(self, letter: str) -> VolumeSpace:
        """Size and free space of the volume carrying ``letter``.

        Raises:
            VolumeNotFound: If the letter does not resolve to a volume
        """
        letter = normalize_drive_letter(letter)
        data = await self._query(
            f"Get-Volume -DriveLetter {letter} -ErrorAction SilentlyContinue | "
            "Select-Object Size, SizeRemaining | ConvertTo-Json -Compress"
        )
        if not data:
            raise VolumeNotFound(f"Volume {letter}: not found")
        return VolumeSpace(
            drive_letter=letter,
            size_bytes=int(data.get("Size") or 0),
            free_bytes=int(data.get("SizeRemaining") or 0),
        )

    async def relabel(self, from_letter: str, to_letter: str) -> None:
        """Move the partition carrying ``from_letter`` to ``to_letter``.

        Raises:
            VolumeNotFound: If ``from_letter`` does not resolve to a partition
            RelabelFailed: If the letter could not be reassigned
        """
        from_letter = normalize_drive_letter(from_letter)
        to_letter = normalize_drive_letter(to_letter)

        partition = await self.resolve_partition(from_letter)
        if partition is None:
            raise VolumeNotFound(f"Volume {from_letter}: does not resolve to a partition")

        self.logger.info(
            "Reassigning drive letter",
            from_letter=f"{from_letter}:",
            to_letter=f"{to_letter}:",
            disk_number=partition.disk_number,
        )
        try:
            await self.subprocess_manager.run_powershell(
                f"Get-Partition -DriveLetter {from_letter} -ErrorAction Stop | "
                f"Set-Partition -NewDriveLetter {to_letter} -ErrorAction Stop",
                timeout=self.timeout,
            )
        except (CommandError, asyncio.TimeoutError) as e:
            self.logger.error(
                "Drive letter reassignment failed",
                from_letter=f"{from_letter}:",
                to_letter=f"{to_letter}:",
                error=str(e),
            )
            raise RelabelFailed(f"{from_letter}: -> {to_letter}: failed: {e}") from e
