"""Tests for the robocopy mirror copy."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from sqlmove.core.exceptions import CopyFailed
from sqlmove.core.subprocess_manager import SubprocessResult
from sqlmove.core.transfer import RobocopyTransfer, classify_exit_code
from sqlmove.models import CopyOutcome

SUMMARY = """
------------------------------------------------------------------------------

               Total    Copied   Skipped  Mismatch    FAILED    Extras
    Dirs :        12         3         9         0         0         1
   Files :       240        17       223         0         0         4
   Bytes :   1.204 g   120.4 m   1.083 g         0         0    12.0 k
"""


@pytest.mark.parametrize(
    "exit_code, outcome",
    [
        (0, CopyOutcome.SUCCESS),
        (1, CopyOutcome.SUCCESS),
        (3, CopyOutcome.SUCCESS),
        (4, CopyOutcome.WARNING),
        (7, CopyOutcome.WARNING),
        (8, CopyOutcome.FAILURE),
        (16, CopyOutcome.FAILURE),
        (-1, CopyOutcome.FAILURE),
    ],
)
def test_classify_exit_code(exit_code, outcome):
    assert classify_exit_code(exit_code) == outcome


def _transfer(returncode: int = 1, stdout: str = SUMMARY, **kwargs) -> RobocopyTransfer:
    manager = MagicMock()
    manager.run_command = AsyncMock(
        return_value=SubprocessResult(returncode=returncode, stdout=stdout, stderr="", cmd=[])
    )
    return RobocopyTransfer(manager, **kwargs)


def test_build_command():
    transfer = _transfer(threads=8, retries=2, wait_seconds=10, log_file="C:\\logs\\robocopy.log")

    cmd = transfer.build_command("E:\\", "F:\\")

    assert cmd[:4] == ["robocopy.exe", "E:\\", "F:\\", "/MIR"]
    assert "/MT:8" in cmd
    assert "/R:2" in cmd
    assert "/W:10" in cmd
    assert "System Volume Information" in cmd
    assert cmd[-1] == "/LOG+:C:\\logs\\robocopy.log"


@pytest.mark.asyncio
class TestRobocopyMirror:
    """Test mirror classification and statistics."""

    async def test_success_with_stats(self):
        transfer = _transfer(returncode=1)

        result = await transfer.mirror("E:\\", "F:\\")

        assert result.success
        assert result.outcome == CopyOutcome.SUCCESS
        assert result.stats["dirs"]["total"] == 12
        assert result.stats["files"] == {
            "total": 240,
            "copied": 17,
            "skipped": 223,
            "mismatch": 0,
            "failed": 0,
            "extras": 4,
        }
        call = transfer.subprocess_manager.run_command.await_args
        assert call.kwargs["check"] is False

    async def test_warning_is_not_a_failure(self):
        result = await _transfer(returncode=5).mirror("E:\\", "F:\\")

        assert result.success
        assert result.outcome == CopyOutcome.WARNING

    async def test_hard_failure_raises(self):
        transfer = _transfer(returncode=8, stdout="ERROR 5 (0x00000005) Access is denied.")

        with pytest.raises(CopyFailed) as exc_info:
            await transfer.mirror("E:\\", "F:\\")

        assert exc_info.value.exit_code == 8
        assert "Access is denied" in str(exc_info.value)

    async def test_timeout_raises_copy_failed(self):
        transfer = _transfer()
        transfer.subprocess_manager.run_command.side_effect = asyncio.TimeoutError("timed out")

        with pytest.raises(CopyFailed, match="could not run"):
            await transfer.mirror("E:\\", "F:\\")

    async def test_missing_tool_raises_copy_failed(self):
        transfer = _transfer()
        transfer.subprocess_manager.run_command.side_effect = FileNotFoundError("robocopy.exe")

        with pytest.raises(CopyFailed):
            await transfer.mirror("E:\\", "F:\\")
