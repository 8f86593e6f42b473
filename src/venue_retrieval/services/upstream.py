"""Timeout and retry policy for collaborator calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from venue_retrieval.errors import TransientUpstreamFailure

logger = logging.getLogger(__name__)

R = TypeVar("R")

MAX_ATTEMPTS = 2


async def call_upstream(
    service: str,
    call: Callable[[], Awaitable[R]],
    timeout: float,
    attempts: int = MAX_ATTEMPTS,
) -> R:
    """Run a collaborator call with a per-attempt timeout and one immediate retry.

    Timeouts and ``TransientUpstreamFailure`` are retried without delay; any
    other ``UpstreamError`` propagates at once.

    Args:
        service: Collaborator name used in errors and logs
        call: Zero-argument coroutine factory, invoked once per attempt
        timeout: Seconds allowed for each attempt
        attempts: Total attempts (default 2: the call and one retry)

    Returns:
        The collaborator's result

    Raises:
        TransientUpstreamFailure: If every attempt timed out or failed transiently
        UpstreamError: If the collaborator rejected the call
        ValueError: If ``attempts`` is less than 1
    """
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(call(), timeout)
        except asyncio.TimeoutError:
            error = TransientUpstreamFailure(service, f"timed out after {timeout}s")
        except TransientUpstreamFailure as exc:
            error = exc
        if attempt == attempts:
            raise error
        logger.info("%s call failed (%s), retrying", service, error)

    raise ValueError(f"attempts must be at least 1, got {attempts}")
