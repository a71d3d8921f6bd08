"""Bulk copy modules for volume relocation."""

from .base import BaseTransfer  # noqa: F401
from .robocopy import RobocopyTransfer, classify_exit_code  # noqa: F401

__all__ = [
    "BaseTransfer",
    "RobocopyTransfer",
    "classify_exit_code",
]
