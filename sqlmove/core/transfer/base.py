"""Abstract base class for bulk copy methods."""

from abc import ABC, abstractmethod

import structlog

from ...models import CopyResult

logger = structlog.get_logger()


class BaseTransfer(ABC):
    """Abstract base class for all bulk copy methods."""

    def __init__(self):
        self.logger = logger.bind(component=self.__class__.__name__.lower())

    @abstractmethod
    async def mirror(self, source_dir: str, dest_dir: str) -> CopyResult:
        """Make ``dest_dir`` an exact replica of ``source_dir``, including deletions.

        Args:
            source_dir: Directory tree to copy
            dest_dir: Directory tree to overwrite

        Returns:
            Copy result with the classified exit status

        Raises:
            CopyFailed: If the copy tool reported a hard failure
        """
        pass

    @abstractmethod
    async def validate_requirements(self) -> tuple[bool, str]:
        """Validate that this copy method can be used on this machine.

        Returns:
            Tuple of (is_valid: bool, error_message: str)
        """
        pass

    @abstractmethod
    def get_transfer_type(self) -> str:
        """Get the name/type of this copy method."""
        pass
