"""Re-issue a mutation until it stops matching records."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from rolegraph.common.logging import log_context
from rolegraph.core.rbac.errors import ConvergenceError

logger = logging.getLogger(__name__)

Step = Callable[[], Awaitable[int]]


async def converge(step: Step, *, operation: str, max_iterations: int) -> int:
    """Run ``step`` until it reports zero affected records.

    A single filtered update may miss records that a concurrent writer matches
    into place while it runs, so callers loop on it. Returns the total number
    of records affected across all iterations.
    """

    total = 0
    for iteration in range(1, max_iterations + 1):
        affected = await step()
        if not affected:
            logger.debug(
                "rbac.converge.stable",
                extra=log_context(operation=operation, iterations=iteration, affected=total),
            )
            return total
        total += affected

    logger.error(
        "rbac.converge.exhausted",
        extra=log_context(operation=operation, iterations=max_iterations, affected=total),
    )
    raise ConvergenceError(operation, max_iterations)


__all__ = ["Step", "converge"]
