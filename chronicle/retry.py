"""Bounded retries for transient store failures."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .domain.exceptions import CommitRetriesExhaustedError, TransientStoreError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseSettings):
    """Retry budget for operations that may fail transiently.

    Delays grow exponentially from `base_delay` and are capped at
    `max_delay`. With jitter enabled the actual delay is drawn uniformly
    between zero and the capped value, so writers that failed together do not
    retry together.

    All settings can be configured via environment variables with the
    CHRONICLE_RETRY_ prefix, e.g. CHRONICLE_RETRY_MAX_ATTEMPTS=8.

    Attributes:
        max_attempts: Total attempts, the first one included.
        base_delay: Delay in seconds before the second attempt.
        max_delay: Upper bound in seconds for any single delay.
        jitter: Whether to randomize delays.
    """

    max_attempts: int = Field(default=5, ge=1)
    base_delay: float = Field(default=0.05, ge=0)
    max_delay: float = Field(default=2.0, ge=0)
    jitter: bool = True

    model_config = SettingsConfigDict(env_prefix="CHRONICLE_RETRY_")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given failed attempt (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay = random.uniform(0, delay)
        return delay


async def retry_transient(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str,
) -> T:
    """Run an operation, retrying it while it fails with TransientStoreError.

    Any other exception propagates immediately.

    Args:
        operation: Zero-argument coroutine function to run.
        policy: The retry budget.
        description: Name of the operation used in logs and errors.

    Returns:
        The result of the first successful attempt.

    Raises:
        CommitRetriesExhaustedError: If every attempt failed transiently.
            The last transient error is chained as its cause.
    """
    last_error: TransientStoreError | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except TransientStoreError as e:
            last_error = e
            LOGGER.warning(
                f"Transient failure on attempt {attempt}/{policy.max_attempts}: {e}",
                extra={"operation": description, "attempt": attempt},
            )
            # Don't sleep after the last attempt
            if attempt < policy.max_attempts:
                await asyncio.sleep(policy.delay_for(attempt))

    LOGGER.error(
        f"Giving up after {policy.max_attempts} attempts",
        extra={"operation": description},
    )
    raise CommitRetriesExhaustedError(description, policy.max_attempts) from last_error
