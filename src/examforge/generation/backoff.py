"""Bounded exponential backoff for transient transport failures.

Transient failures (overloaded, unavailable, rate limited) are retried in
place, within one escalation step, before the orchestrator sees them.
Timeouts are converted into TransportError and are never retried here.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from examforge.exceptions import TransientTransportError, TransportError
from examforge.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    base_seconds: float,
    jitter_seconds: float,
    rng: random.Random | None = None,
) -> float:
    """Compute the delay before retry number ``attempt``.

    Args:
        attempt: 1-based number of the failed try.
        base_seconds: Delay after the first failure.
        jitter_seconds: Upper bound of the uniform random jitter.
        rng: Random source for the jitter.

    Returns:
        ``base_seconds * 2 ** (attempt - 1)`` plus jitter, in seconds.
    """
    jitter = (rng or random).uniform(0.0, jitter_seconds) if jitter_seconds else 0.0
    return base_seconds * 2 ** (attempt - 1) + jitter


async def call_with_backoff(
    call: Callable[[], Awaitable[T]],
    retries: int = 3,
    base_seconds: float = 1.0,
    jitter_seconds: float = 1.0,
    timeout: float | None = None,
    rng: random.Random | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    log: logging.Logger | logging.LoggerAdapter | None = None,  # type: ignore[type-arg]
) -> T:
    """Await a transport call, retrying transient failures.

    Args:
        call: Zero-argument coroutine factory; invoked once per try.
        retries: Maximum number of tries.
        base_seconds: First backoff delay.
        jitter_seconds: Upper bound of the random jitter.
        timeout: Per-try timeout in seconds, None for no limit.
        rng: Random source for the jitter.
        sleep: Awaitable sleep, injectable for tests.
        log: Logger to report retries on; the module logger by default.

    Returns:
        Result of the first successful try.

    Raises:
        TransientTransportError: If every try failed transiently.
        TransportError: On timeout or non-transient failure.
    """
    log = log or logger

    for attempt in range(1, retries + 1):
        try:
            if timeout is None:
                return await call()
            return await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError as e:
            log.warning("Generation call timed out: timeout_s=%.1f", timeout)
            raise TransportError(f"Generation call timed out after {timeout}s") from e
        except TransientTransportError as e:
            if attempt == retries:
                log.error(
                    "Transient failures exhausted: tries=%d, status=%s",
                    attempt,
                    e.status_code,
                )
                raise
            delay = backoff_delay(attempt, base_seconds, jitter_seconds, rng)
            log.warning(
                "Transient transport failure, retrying: try=%d/%d, status=%s, "
                "delay_s=%.2f",
                attempt,
                retries,
                e.status_code,
                delay,
            )
            log.debug("Transient failure details: %s", e, exc_info=True)
            await sleep(delay)

    raise TransportError(f"No generation call made (retries={retries})")
