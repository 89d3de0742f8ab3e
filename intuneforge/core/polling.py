"""Bounded exponential-backoff polling for server-assigned state.

The management service fills in some fields asynchronously (the storage
URI of a content file, the outcome of a commit).  ``poll_until`` re-fetches
a resource until a predicate accepts it, sleeping between attempts with
exponential backoff, and gives up with ``PublishTimeoutError`` once either
the attempt budget or the time budget is spent.

Sleeps are ``asyncio.sleep`` so a cancelled caller stops polling at once.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field

from intuneforge.config import PublishSettings
from intuneforge.core.errors import PublishTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollPolicy(BaseModel):
    """Budget and pacing for one polling loop."""

    model_config = ConfigDict(frozen=True)

    timeout_seconds: float = Field(default=60.0, gt=0)
    max_attempts: int | None = Field(default=None, ge=1)
    initial_delay_seconds: float = Field(default=1.0, ge=0)
    max_delay_seconds: float = Field(default=10.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)

    def delays(self):
        """Yield the delay before each retry: d, d*f, d*f^2, ... capped."""
        delay = self.initial_delay_seconds
        while True:
            yield min(delay, self.max_delay_seconds)
            delay *= self.backoff_factor

    @classmethod
    def for_uri(cls, settings: PublishSettings) -> PollPolicy:
        return cls(
            timeout_seconds=settings.uri_poll_timeout_seconds,
            initial_delay_seconds=settings.poll_initial_delay_seconds,
            max_delay_seconds=settings.poll_max_delay_seconds,
            backoff_factor=settings.poll_backoff_factor,
        )

    @classmethod
    def for_commit(cls, settings: PublishSettings) -> PollPolicy:
        return cls(
            timeout_seconds=settings.commit_poll_timeout_seconds,
            max_attempts=settings.commit_poll_max_attempts,
            initial_delay_seconds=settings.poll_initial_delay_seconds,
            max_delay_seconds=settings.poll_max_delay_seconds,
            backoff_factor=settings.poll_backoff_factor,
        )


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    accept: Callable[[T], bool],
    *,
    policy: PollPolicy,
    what: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Fetch until ``accept(value)`` is true and return that value.

    ``accept`` may raise to end polling early on a terminal failure state;
    the exception propagates unchanged.  ``fetch`` errors propagate too.

    Raises
    ------
    PublishTimeoutError
        If the attempt or time budget runs out first.
    """
    started = clock()
    attempts = 0
    delays = policy.delays()

    while True:
        value = await fetch()
        attempts += 1
        if accept(value):
            logger.debug("%s ready after %d attempt(s)", what, attempts)
            return value

        elapsed = clock() - started
        delay = next(delays)
        if policy.max_attempts is not None and attempts >= policy.max_attempts:
            raise PublishTimeoutError(
                f"Gave up waiting for {what} after {attempts} attempts",
                attempts=attempts,
                elapsed_seconds=elapsed,
            )
        if elapsed + delay > policy.timeout_seconds:
            raise PublishTimeoutError(
                f"Gave up waiting for {what} after {elapsed:.1f}s "
                f"(budget {policy.timeout_seconds:.1f}s)",
                attempts=attempts,
                elapsed_seconds=elapsed,
            )

        logger.debug("%s not ready (attempt %d), retrying in %.2fs", what, attempts, delay)
        await sleep(delay)
