"""Bounded-attempt retry with a fixed delay between attempts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from ...domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryState:
    """Progress of one retried operation."""

    max_attempts: int
    attempt: int = 0
    last_error: BaseException | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


@dataclass
class BoundedRetry:
    """Run an operation up to `max_attempts` times, waiting `delay_seconds` between tries.

    An attempt fails when the operation raises one of `retry_on`, or when it
    returns None and `retry_on_none` is set. `sleep` is injectable so tests run
    without real delays.
    """

    max_attempts: int = 3
    delay_seconds: float = 1.0
    sleep: Sleep = field(default=asyncio.sleep)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str = "operation",
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        retry_on_none: bool = False,
        should_retry: Callable[[BaseException], bool] | None = None,
    ) -> T:
        """Return the first successful result.

        Raises:
            The last error once every attempt failed. If the last attempt
            returned None with `retry_on_none`, None is returned.
        """
        state = RetryState(max_attempts=self.max_attempts)
        result: T | None = None

        while not state.exhausted:
            state.attempt += 1
            try:
                result = await operation()
            except retry_on as exc:
                if should_retry is not None and not should_retry(exc):
                    raise
                state.last_error = exc
                logger.debug(
                    LogTemplates.RETRY_ATTEMPT_FAILED, label, state.attempt, state.max_attempts, exc
                )
                if state.exhausted:
                    logger.debug(LogTemplates.RETRY_EXHAUSTED, label, state.attempt)
                    raise
            else:
                if result is not None or not retry_on_none:
                    return result
                logger.debug(
                    LogTemplates.RETRY_ATTEMPT_FAILED,
                    label,
                    state.attempt,
                    state.max_attempts,
                    "not found",
                )

            if not state.exhausted:
                await self.sleep(self.delay_seconds)

        logger.debug(LogTemplates.RETRY_EXHAUSTED, label, state.attempt)
        return result  # type: ignore[return-value]
