"""Best-effort execution for cleanup paths.

Cleanup actions (restoring multi-user mode after a failed move, restarting
services on the way out of a run) must never mask the primary failure. They run
through best_effort(), which records the outcome as a BestEffortResult and logs
it instead of raising.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from ..models import BestEffortResult

logger = structlog.get_logger()


async def best_effort(
    operation: str,
    action: Callable[[], Awaitable[Any]],
    log: Any = None,
    **log_context: Any,
) -> BestEffortResult:
    """Run ``action`` and record, but never propagate, its failure.

    Args:
        operation: Short description used in the result and log events
        action: Zero-argument coroutine function to run
        log: Bound logger to use (defaults to the module logger)
        **log_context: Extra fields for the log events

    Returns:
        BestEffortResult describing the outcome
    """
    log = log or logger
    try:
        await action()
    except Exception as e:
        log.warning(
            "Best-effort action failed",
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
            **log_context,
        )
        return BestEffortResult(operation=operation, succeeded=False, error=str(e))

    log.debug("Best-effort action succeeded", operation=operation, **log_context)
    return BestEffortResult(operation=operation, succeeded=True)
