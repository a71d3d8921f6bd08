"""Robocopy mirror copy of one volume tree onto another."""

import asyncio
import re
import shutil
from typing import Any

import structlog

from ...constants import (
    ROBOCOPY,
    ROBOCOPY_EXCLUDED_DIRS,
    ROBOCOPY_FAILURE_THRESHOLD,
    ROBOCOPY_WARNING_THRESHOLD,
)
from ...models import CopyOutcome, CopyResult
from ..exceptions import CopyFailed
from ..subprocess_manager import SubprocessManager
from .base import BaseTransfer

logger = structlog.get_logger()

_SUMMARY_COLUMNS = ("total", "copied", "skipped", "mismatch", "failed", "extras")
_SUMMARY_ROW_RE = re.compile(r"^\s*(Dirs|Files)\s*:\s*((?:\d+\s*){6})\s*$", re.IGNORECASE)


def classify_exit_code(exit_code: int) -> CopyOutcome:
    """Classify a robocopy exit status.

    0-3 are informational (nothing to do, files copied, extras found),
    4-7 report mismatches without a failed copy, 8 and above mean at least one
    file or directory could not be copied.
    """
    if exit_code < 0 or exit_code >= ROBOCOPY_FAILURE_THRESHOLD:
        return CopyOutcome.FAILURE
    if exit_code >= ROBOCOPY_WARNING_THRESHOLD:
        return CopyOutcome.WARNING
    return CopyOutcome.SUCCESS


class RobocopyTransfer(BaseTransfer):
    """Mirror directory trees with robocopy /MIR."""

    def __init__(
        self,
        subprocess_manager: SubprocessManager | None = None,
        threads: int = 16,
        retries: int = 3,
        wait_seconds: int = 5,
        timeout: int = 0,
        log_file: str | None = None,
    ):
        super().__init__()
        self.subprocess_manager = subprocess_manager or SubprocessManager()
        self.threads = threads
        self.retries = retries
        self.wait_seconds = wait_seconds
        self.timeout = timeout
        self.log_file = log_file
        self.logger = logger.bind(component="robocopy_transfer")

    def get_transfer_type(self) -> str:
        return "robocopy"

    async def validate_requirements(self) -> tuple[bool, str]:
        """Validate that robocopy is on the PATH."""
        if await asyncio.to_thread(shutil.which, ROBOCOPY):
            return True, ""
        return False, "robocopy not available on this machine"

    def build_command(self, source_dir: str, dest_dir: str) -> list[str]:
        cmd = [
            ROBOCOPY,
            source_dir,
            dest_dir,
            "/MIR",
            "/COPYALL",
            "/DCOPY:DAT",
            f"/MT:{self.threads}",
            f"/R:{self.retries}",
            f"/W:{self.wait_seconds}",
            "/NP",
            "/XD",
            *ROBOCOPY_EXCLUDED_DIRS,
        ]
        if self.log_file:
            cmd.append(f"/LOG+:{self.log_file}")
        return cmd

    async def mirror(self, source_dir: str, dest_dir: str) -> CopyResult:
        """Mirror ``source_dir`` onto ``dest_dir``.

        Raises:
            CopyFailed: Exit status 8 or above, or the copy could not be run
        """
        cmd = self.build_command(source_dir, dest_dir)
        self.logger.info(
            "Starting mirror copy",
            source=source_dir,
            destination=dest_dir,
            threads=self.threads,
        )

        try:
            result = await self.subprocess_manager.run_command(
                cmd, timeout=self.timeout, check=False
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise CopyFailed(f"Mirror copy {source_dir} -> {dest_dir} could not run: {e}") from e

        outcome = classify_exit_code(result.returncode)
        if outcome == CopyOutcome.FAILURE:
            self.logger.error(
                "Mirror copy failed",
                source=source_dir,
                destination=dest_dir,
                exit_code=result.returncode,
            )
            raise CopyFailed(
                f"Mirror copy {source_dir} -> {dest_dir} failed (exit {result.returncode}): "
                f"{result.error_text()}",
                exit_code=result.returncode,
            )

        copy_result = CopyResult(
            source=source_dir,
            destination=dest_dir,
            exit_code=result.returncode,
            outcome=outcome,
            stats=self._parse_stats(result.stdout),
        )
        log = self.logger.warning if outcome == CopyOutcome.WARNING else self.logger.info
        log(
            "Mirror copy finished",
            source=source_dir,
            destination=dest_dir,
            exit_code=result.returncode,
            outcome=outcome.value,
            stats=copy_result.stats,
        )
        return copy_result

    def _parse_stats(self, output: str) -> dict[str, dict[str, Any]]:
        """Parse the Dirs/Files rows of the robocopy summary table."""
        stats: dict[str, dict[str, Any]] = {}
        for line in output.splitlines():
            match = _SUMMARY_ROW_RE.match(line)
            if match:
                values = [int(value) for value in match.group(2).split()]
                stats[match.group(1).lower()] = dict(zip(_SUMMARY_COLUMNS, values))
        return stats
