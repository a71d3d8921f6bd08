"""OS service start/stop for quiescing the database engine."""

import asyncio

import structlog

from ..constants import PS_NOT_FOUND, PS_OK
from ..utils import ps_quote
from .exceptions import CommandError, ServiceControlError
from .subprocess_manager import SubprocessManager

logger = structlog.get_logger()


class ServiceController:
    """Starts and stops named Windows services through PowerShell.

    Both operations are idempotent: a service that does not exist is a
    successful no-op, and stopping a stopped service (or starting a running
    one) changes nothing.
    """

    def __init__(self, subprocess_manager: SubprocessManager | None = None, timeout: int = 120):
        self.subprocess_manager = subprocess_manager or SubprocessManager()
        self.timeout = timeout
        self.logger = logger.bind(component="service_controller")

    async def stop(self, name: str) -> bool:
        """Stop a service and wait until it is stopped.

        Returns:
            True if the service exists (and is now stopped), False if it is absent

        Raises:
            ServiceControlError: If the service could not be stopped
        """
        return await self._control(name, "Stop-Service -Force", "Stopped")

    async def start(self, name: str) -> bool:
        """Start a service and wait until it is running.

        Returns:
            True if the service exists (and is now running), False if it is absent

        Raises:
            ServiceControlError: If the service could not be started
        """
        return await self._control(name, "Start-Service", "Running")

    async def _control(self, name: str, cmdlet: str, target_status: str) -> bool:
        quoted = ps_quote(name)
        script = (
            f"$svc = Get-Service -Name {quoted} -ErrorAction SilentlyContinue; "
            f"if ($null -eq $svc) {{ Write-Output '{PS_NOT_FOUND}'; exit 0 }}; "
            f"{cmdlet} -Name {quoted} -ErrorAction Stop; "
            f"$svc.WaitForStatus('{target_status}', [TimeSpan]::FromSeconds({self.timeout})); "
            f"Write-Output '{PS_OK}'"
        )

        self.logger.info("Service action requested", service=name, action=cmdlet.split()[0])
        try:
            result = await self.subprocess_manager.run_powershell(
                script, timeout=self.timeout + 30
            )
        except (CommandError, OSError, asyncio.TimeoutError) as e:
            self.logger.error("Service action failed", service=name, action=cmdlet, error=str(e))
            raise ServiceControlError(f"{cmdlet} {name} failed: {e}") from e

        if PS_NOT_FOUND in result.stdout:
            self.logger.info("Service not installed, nothing to do", service=name)
            return False

        self.logger.info("Service reached status", service=name, status=target_status)
        return True
