"""Services-stopped window around disk-level operations."""

from typing import Any

import structlog

from ..core.results import best_effort
from ..core.service_control import ServiceController
from ..models import BestEffortResult

logger = structlog.get_logger()


class ProtectedServices:
    """Async context manager holding the protected services stopped.

    Entering stops every service in order; a failure to stop any one of them is
    fatal, and the services already stopped are started again before the error
    propagates. Leaving, on every exit path, starts every service in reverse
    order, best-effort, exactly once.
    """

    def __init__(self, controller: ServiceController, services: list[str], log: Any = None):
        self.controller = controller
        self.services = list(services)
        self.logger = (log or logger).bind(component="protected_services")
        self.stopped: list[str] = []
        self.restore_results: list[BestEffortResult] = []
        self._restored = False

    async def __aenter__(self) -> "ProtectedServices":
        for name in self.services:
            try:
                await self.controller.stop(name)
            except BaseException as e:
                self.logger.error(
                    "Failed to stop service, aborting quiesce",
                    service=name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                # The failed service may be half-stopped; restore it with the others
                self.stopped.append(name)
                await self.restore()
                raise
            self.stopped.append(name)
        self.logger.info("Protected services stopped", services=self.services)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            self.logger.error(
                "Leaving services-stopped window after failure",
                error=str(exc),
                error_type=exc_type.__name__ if exc_type else None,
            )
        await self.restore()
        return False

    async def restore(self) -> list[BestEffortResult]:
        """Start every stopped service in reverse order; runs at most once."""
        if self._restored:
            return self.restore_results
        self._restored = True

        for name in reversed(self.stopped):
            result = await best_effort(
                f"start service {name}",
                lambda name=name: self.controller.start(name),
                self.logger,
                service=name,
            )
            self.restore_results.append(result)

        failed = [r.operation for r in self.restore_results if not r.succeeded]
        if failed:
            self.logger.error("Some services could not be restarted", failed=failed)
        else:
            self.logger.info("Protected services restored", services=list(reversed(self.stopped)))
        return self.restore_results
