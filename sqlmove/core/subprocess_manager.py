"""Centralized subprocess management with proper resource handling."""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog

from sqlmove.constants import POWERSHELL
from sqlmove.core.exceptions import CommandError

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 30  # Default timeout in seconds
KILL_TIMEOUT = 5  # Time to wait after SIGTERM before SIGKILL


class SubprocessManager:
    """Manages subprocess execution with proper resource cleanup."""

    def __init__(self):
        self._active_processes: set[asyncio.subprocess.Process] = set()
        self._cleanup_lock = asyncio.Lock()

    async def run_command(
        self,
        cmd: list[str],
        *,
        timeout: Optional[float] = None,
        check: bool = True,
        cwd: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
    ) -> "SubprocessResult":
        """
        Run a command asynchronously with proper resource management.

        Args:
            cmd: Command and arguments as a list
            timeout: Timeout in seconds (default: DEFAULT_TIMEOUT, 0 disables the timeout)
            check: Raise exception if command fails
            cwd: Working directory for the command
            env: Environment variables

        Returns:
            SubprocessResult with returncode, stdout, and stderr

        Raises:
            CommandError: If check=True and command fails
            asyncio.TimeoutError: If command times out
        """
        if timeout is None:
            timeout = DEFAULT_TIMEOUT
        wait_timeout = timeout or None

        logger.debug(
            "Executing command",
            command=" ".join(cmd),
            timeout=timeout,
            cwd=cwd,
        )

        kwargs: dict[str, Any] = {
            "cwd": cwd,
            "env": env or os.environ.copy(),
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
        }

        process = None
        try:
            process = await asyncio.create_subprocess_exec(*cmd, **kwargs)

            async with self._cleanup_lock:
                self._active_processes.add(process)

            try:
                stdout_bytes, stderr_bytes = await asyncio.wait_for(
                    process.communicate(), timeout=wait_timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Command timed out, terminating process",
                    command=" ".join(cmd),
                    timeout=timeout,
                    pid=process.pid,
                )

                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=KILL_TIMEOUT)
                except asyncio.TimeoutError:
                    logger.warning(
                        "Process did not terminate gracefully, sending SIGKILL",
                        pid=process.pid,
                    )
                    process.kill()
                    await process.wait()

                raise asyncio.TimeoutError(
                    f"Command timed out after {timeout} seconds: {' '.join(cmd)}"
                ) from None

            result = SubprocessResult(
                returncode=process.returncode or 0,
                stdout=stdout_bytes.decode(errors="replace") if stdout_bytes else "",
                stderr=stderr_bytes.decode(errors="replace") if stderr_bytes else "",
                cmd=cmd,
            )

            if check:
                result.check_returncode()

            return result

        finally:
            if process is not None:
                async with self._cleanup_lock:
                    self._active_processes.discard(process)

                if process.returncode is None:
                    try:
                        process.terminate()
                        await asyncio.wait_for(process.wait(), timeout=KILL_TIMEOUT)
                    except asyncio.TimeoutError:
                        process.kill()
                        await process.wait()
                    except ProcessLookupError:
                        pass

    async def run_powershell(
        self,
        script: str,
        *,
        timeout: Optional[float] = None,
        check: bool = True,
    ) -> "SubprocessResult":
        """Run a PowerShell script non-interactively.

        Args:
            script: Script text passed to -Command
            timeout: Timeout in seconds
            check: Raise exception if the script exits non-zero

        Returns:
            SubprocessResult with script output
        """
        cmd = [
            POWERSHELL,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-Command",
            script,
        ]
        return await self.run_command(cmd, timeout=timeout, check=check)

    async def cleanup_all(self):
        """Cleanup all active processes."""
        async with self._cleanup_lock:
            processes = list(self._active_processes)

        if not processes:
            return

        logger.info(f"Cleaning up {len(processes)} active processes")

        for process in processes:
            if process.returncode is None:
                try:
                    process.terminate()
                except ProcessLookupError:
                    pass

        await asyncio.sleep(KILL_TIMEOUT)

        for process in processes:
            if process.returncode is None:
                try:
                    process.kill()
                    await process.wait()
                except ProcessLookupError:
                    pass

        async with self._cleanup_lock:
            self._active_processes.clear()


class SubprocessResult:
    """Result of a subprocess execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        cmd: list[str],
    ):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.cmd = cmd

    @property
    def success(self) -> bool:
        """Check if the command succeeded."""
        return self.returncode == 0

    def error_text(self, limit: int = 500) -> str:
        """Bounded error text for messages."""
        text = self.stderr.strip() or self.stdout.strip() or "Command failed"
        return text[:limit]

    def check_returncode(self):
        """Raise an exception if the command failed."""
        if self.returncode != 0:
            raise CommandError(
                f"Command failed with exit code {self.returncode}: {self.error_text()}"
            )


@asynccontextmanager
async def managed_subprocess():
    """Context manager for subprocess management with automatic cleanup."""
    manager = SubprocessManager()
    try:
        yield manager
    finally:
        await manager.cleanup_all()
