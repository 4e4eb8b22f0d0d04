"""Backoff state for a single sequence of connect attempts.

A BackoffState is created on the first failed connect of a call and lives
until that call returns. Each pause takes a jittered delay drawn uniformly
from [next_delay/2, next_delay), charges it against the remaining budget and
grows next_delay by the backoff factor. Once the budget reaches zero the state
is exhausted and pause reports False without sleeping.

The budget is charged with the delay actually taken, so total time spent
retrying is approximate: it may overshoot by up to one max_delay plus the
duration of the connect attempts themselves.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Optional

from retryconnect.domain.config.retry import DEFAULT_START_DELAY, RetryConfig
from retryconnect.domain.models.call_context import CallContext

logger = logging.getLogger(__name__)


class BackoffState:
    """Mutable retry counters plus the immutable limits they run against"""

    def __init__(
        self,
        config: RetryConfig,
        call_context: CallContext,
        *,
        default_verbose: int = 0,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], None]] = None,
        async_sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """Initialize from a resolved configuration

        Args:
            config: Retry configuration picked by the registry
            call_context: Arguments of the connect call, used for logging
            default_verbose: Verbosity used when the config leaves it unset
            rng: Random source for jitter (injectable for testing)
            sleep: Blocking sleep function (defaults to time.sleep)
            async_sleep: Coroutine sleep function (defaults to asyncio.sleep)
        """
        self._remaining_budget: float = config.total_delay
        self._next_delay: float = config.start_delay
        self._max_delay = config.effective_max_delay
        self._backoff_factor = config.backoff_factor
        self._verbose = config.verbose if config.verbose is not None else default_verbose
        self._call_context = call_context
        self._rng = rng or random
        self._sleep = sleep or time.sleep
        self._async_sleep = async_sleep or asyncio.sleep
        self._exhausted = False

        if self._verbose >= 2:
            logger.info(
                f"Retry state for {call_context} with {call_context.safe_kwargs()}: "
                f"total_delay={self._remaining_budget}, "
                f"start_delay={self._next_delay}, max_delay={self._max_delay}, "
                f"backoff_factor={self._backoff_factor}, verbose={self._verbose}"
            )

    @property
    def remaining_budget(self) -> float:
        """Seconds of retry budget left"""
        return self._remaining_budget

    @property
    def next_delay(self) -> float:
        """Undamped delay for the next pause, before cap and jitter"""
        return self._next_delay

    @property
    def max_delay(self) -> float:
        return self._max_delay

    @property
    def backoff_factor(self) -> float:
        return self._backoff_factor

    @property
    def verbose(self) -> int:
        return self._verbose

    @property
    def call_context(self) -> CallContext:
        return self._call_context

    @property
    def exhausted(self) -> bool:
        """True once a pause found no budget left"""
        return self._exhausted

    def calculate_next_delay(self, error: str = "") -> Optional[float]:
        """Advance the counters and return the delay to sleep for

        Args:
            error: Description of the connect failure, for logging

        Returns:
            Delay in seconds, or None when the budget is exhausted
        """
        if self._exhausted or self._remaining_budget <= 0:
            self._exhausted = True
            if self._verbose >= 2:
                logger.warning(f"Giving up connect to {self._call_context} after error: {error}")
            return None

        if self._next_delay > self._max_delay:
            self._next_delay = self._max_delay

        # half the delay is fixed, half is random
        half = self._next_delay / 2
        this_delay = half + self._rng.random() * half

        if self._verbose >= 3:
            extra = ""
            if self._verbose >= 4:
                extra = f" [delay {self._next_delay:.1f}s, remaining {self._remaining_budget:.1f}s]"
            logger.warning(
                f"Retrying connect to {self._call_context}: sleeping for {this_delay:.2g}s "
                f"after error: {error}{extra}"
            )
        elif self._verbose >= 2:
            logger.warning(f"Connect to {self._call_context} failed: {error}")

        self._remaining_budget -= this_delay
        self._next_delay *= self._backoff_factor
        if self._next_delay <= 0:
            # zero start delay: one immediate retry, then the default schedule
            self._next_delay = DEFAULT_START_DELAY

        return this_delay

    def pause(self, error: str = "") -> bool:
        """Sleep before the next attempt

        Args:
            error: Description of the connect failure, for logging

        Returns:
            True if a pause was performed, False if the budget is exhausted
        """
        this_delay = self.calculate_next_delay(error)
        if this_delay is None:
            return False
        self._sleep(this_delay)
        return True

    async def pause_async(self, error: str = "") -> bool:
        """Non-blocking variant of pause for coroutine connects"""
        this_delay = self.calculate_next_delay(error)
        if this_delay is None:
            return False
        await self._async_sleep(this_delay)
        return True
