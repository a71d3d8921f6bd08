"""Plain file moves for detached database files."""

import asyncio
import os
import shutil

import structlog

from .exceptions import FileMoveError

logger = structlog.get_logger()


class FileMover:
    """Moves database files between directories on the engine host."""

    def __init__(self):
        self.logger = logger.bind(component="file_mover")

    async def move(self, source: str, destination: str) -> str:
        """Move one file (or FILESTREAM directory), creating the destination directory.

        Raises:
            FileMoveError: If the source is missing, the destination exists, or the move fails
        """
        if os.path.normcase(source) == os.path.normcase(destination):
            self.logger.info("File already in place", path=source)
            return destination

        try:
            await asyncio.to_thread(self._move_sync, source, destination)
        except OSError as e:
            raise FileMoveError(f"Failed to move {source} to {destination}: {e}") from e

        self.logger.info("File moved", source=source, destination=destination)
        return destination

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(os.path.exists, path)

    async def ensure_directory(self, directory: str) -> None:
        try:
            await asyncio.to_thread(os.makedirs, directory, exist_ok=True)
        except OSError as e:
            raise FileMoveError(f"Failed to create directory {directory}: {e}") from e

    @staticmethod
    def _move_sync(source: str, destination: str) -> None:
        if not os.path.exists(source):
            raise FileNotFoundError(f"Source does not exist: {source}")
        if os.path.exists(destination):
            raise FileExistsError(f"Destination already exists: {destination}")
        parent = os.path.dirname(destination)
        if parent:
            os.makedirs(parent, exist_ok=True)
        shutil.move(source, destination)
