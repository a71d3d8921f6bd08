"""TempDB relocation: redirect tempdb files to a new volume for the next engine start."""

import ntpath

from ..constants import TEMPDB
from ..core.catalog import SqlCatalog
from ..core.config_loader import TempDBTarget
from ..core.context import RunContext
from ..core.exceptions import InsufficientSpace, VolumeNotFound
from ..core.file_mover import FileMover
from ..core.volume import VolumeRelabeler
from ..models import TempDBRelocationResult
from ..utils import display_letter, format_size, relocated_path, volume_root


class TempDBRelocation:
    """Points every tempdb file at a directory on the destination volume.

    tempdb cannot be detached; the engine recreates its files at the declared
    locations when it next starts, so nothing is copied here.
    """

    def __init__(
        self,
        catalog: SqlCatalog,
        relabeler: VolumeRelabeler,
        file_mover: FileMover,
        ctx: RunContext,
    ):
        self.catalog = catalog
        self.relabeler = relabeler
        self.file_mover = file_mover
        self.ctx = ctx
        self.logger = ctx.bind(component="tempdb_relocation")

    async def relocate(self, target: TempDBTarget) -> TempDBRelocationResult:
        """Check headroom, then issue one MODIFY FILE per tempdb file.

        Raises:
            VolumeNotFound: The destination volume does not exist
            InsufficientSpace: Current tempdb size plus margin exceeds free space
        """
        letter = display_letter(target.destination_volume)
        log = self.logger.bind(destination_volume=letter)

        if await self.relabeler.resolve_partition(target.destination_volume) is None:
            raise VolumeNotFound(f"tempdb destination volume {letter} does not exist")

        current_size = await self.catalog.tempdb_size_bytes()
        required = current_size + target.safety_margin_bytes
        space = await self.relabeler.get_space(target.destination_volume)
        log.info(
            "tempdb headroom check",
            current_size=format_size(current_size),
            required=format_size(required),
            free=format_size(space.free_bytes),
        )
        if space.free_bytes < required:
            raise InsufficientSpace(
                f"{letter} has {format_size(space.free_bytes)} free, "
                f"tempdb needs {format_size(required)}",
                required_bytes=required,
                free_bytes=space.free_bytes,
            )

        directory = ntpath.join(volume_root(target.destination_volume), target.directory)
        files = await self.catalog.get_database_files(TEMPDB)
        await self.file_mover.ensure_directory(directory)

        moved = []
        for file in files:
            new_path = relocated_path(file.physical_path, directory)
            log.info("Redirecting tempdb file", file=file.logical_name, new_path=new_path)
            await self.catalog.modify_tempdb_file(file.logical_name, new_path)
            moved.append(file.model_copy(update={"physical_path": new_path}))

        log.info("tempdb files redirected, effective on next engine start", files=len(moved))
        return TempDBRelocationResult(
            destination_volume=letter,
            directory=directory,
            required_bytes=required,
            free_bytes=space.free_bytes,
            files=moved,
        )
