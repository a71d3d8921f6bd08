"""Volume relocation unit: mirror an old disk onto a new one and swap their letters."""

from ..core.context import RunContext
from ..core.exceptions import CopyFailed, RelabelFailed, VolumeError
from ..core.service_control import ServiceController
from ..core.transfer import BaseTransfer
from ..core.volume import VolumeRelabeler
from ..models import VolumeRelocationResult
from ..utils import display_letter, volume_root
from .protection import ProtectedServices


def rotation_plan(source: str, destination: str, temporary: str) -> list[tuple[str, str]]:
    """Relabel calls that give the destination the source's letter.

    The order never lets two volumes share a letter: the source steps aside to
    the free temporary letter, the destination takes the source's letter, and
    the old disk finally takes the destination's letter, freeing the temporary one.
    """
    return [(source, temporary), (destination, source), (temporary, destination)]


class VolumeRelocationUnit:
    """Relocates one old-disk/new-disk pair.

    Service quiescence is not handled here; the caller must keep the protected
    services stopped for the whole run of the unit.
    """

    def __init__(
        self,
        copier: BaseTransfer,
        relabeler: VolumeRelabeler,
        ctx: RunContext,
        source_volume: str,
        destination_volume: str,
        temporary_volume: str,
    ):
        self.copier = copier
        self.relabeler = relabeler
        self.ctx = ctx
        self.source_volume = source_volume
        self.destination_volume = destination_volume
        self.temporary_volume = temporary_volume
        self.logger = ctx.bind(
            component="volume_relocation",
            source_volume=display_letter(source_volume),
            destination_volume=display_letter(destination_volume),
            temporary_volume=display_letter(temporary_volume),
        )

    def _result(self, succeeded: bool, **kwargs) -> VolumeRelocationResult:
        return VolumeRelocationResult(
            source_volume=display_letter(self.source_volume),
            destination_volume=display_letter(self.destination_volume),
            temporary_volume=display_letter(self.temporary_volume),
            succeeded=succeeded,
            **kwargs,
        )

    async def run(self) -> VolumeRelocationResult:
        """Copy, then rotate letters; a failed copy never reaches the rotation.

        Returns:
            Result of the unit; copy and relabel failures are reported in it
        """
        self.logger.info("Volume relocation started")

        try:
            copy_result = await self.copier.mirror(
                volume_root(self.source_volume), volume_root(self.destination_volume)
            )
        except CopyFailed as e:
            self.logger.error("Copy failed, volume letters left unchanged", error=str(e))
            return self._result(False, error=str(e))

        try:
            await self.rotate()
        except VolumeError as e:
            self.logger.error(
                "Volume letter rotation failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return self._result(False, error=str(e), copy_result=copy_result)

        self.logger.info("Volume relocation completed", copy_outcome=copy_result.outcome.value)
        return self._result(True, copy_result=copy_result)

    async def rotate(self) -> None:
        """Three-way letter rotation source -> temp, destination -> source, temp -> destination.

        Raises:
            VolumeNotFound: A letter did not resolve to a partition
            RelabelFailed: The temporary letter is taken or a reassignment failed
        """
        if await self.relabeler.resolve_partition(self.temporary_volume) is not None:
            raise RelabelFailed(
                f"Temporary volume {display_letter(self.temporary_volume)} is already in use"
            )

        for step, (from_letter, to_letter) in enumerate(
            rotation_plan(self.source_volume, self.destination_volume, self.temporary_volume),
            start=1,
        ):
            self.logger.info(
                "Rotation step",
                step=step,
                from_letter=display_letter(from_letter),
                to_letter=display_letter(to_letter),
            )
            await self.relabeler.relabel(from_letter, to_letter)


class StandaloneVolumeRelocation:
    """Runs a single volume unit inside its own services-stopped window."""

    def __init__(
        self,
        unit: VolumeRelocationUnit,
        service_controller: ServiceController,
        services: list[str],
    ):
        self.unit = unit
        self.protection = ProtectedServices(service_controller, services, unit.logger)

    async def run(self) -> VolumeRelocationResult:
        async with self.protection:
            return await self.unit.run()

