# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Timing jitter for notification side effects.

A DM receipt or channel notification sent at a fixed offset after a
submission lets an observer match the two. Every such side effect is
delayed by a fresh uniform draw from ``[min_delay_ms, max_delay_ms]``.

Two entry points:
- ``await_with_jitter``: sleep, run the task, return its result.
- ``schedule_with_jitter``: fire-and-forget. Runs detached from the caller
  (an asyncio task on the running loop, or a daemon thread with its own
  loop when there is none). Failures are logged by exception type only and
  are never retried. Tasks still waiting at process exit are lost.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
import threading
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ..core.config import get_config
from ..core.exceptions import ValidationException

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A task is a zero-argument callable returning a value or an awaitable
JitterTask = Callable[[], Any]
SleepFunc = Callable[[float], Awaitable[None]]


def _validate_bounds(min_delay_ms: int, max_delay_ms: int) -> tuple[int, int]:
    if min_delay_ms < 0:
        raise ValidationException(
            "min_delay_ms cannot be negative", field="min_delay_ms", value=min_delay_ms
        )
    if max_delay_ms < min_delay_ms:
        raise ValidationException(
            "max_delay_ms must be >= min_delay_ms", field="max_delay_ms", value=max_delay_ms
        )
    return int(min_delay_ms), int(max_delay_ms)


class JitterScheduler:
    """Runs tasks after a random delay.

    Args:
        min_delay_ms: Default lower bound (config ``jitter_min_ms``)
        max_delay_ms: Default upper bound (config ``jitter_max_ms``)
        rng: Random source with ``randint``; defaults to SystemRandom
        sleep: Async sleep function; injectable for tests
    """

    def __init__(
        self,
        min_delay_ms: int | None = None,
        max_delay_ms: int | None = None,
        rng: random.Random | None = None,
        sleep: SleepFunc | None = None,
    ):
        config_min, config_max = get_config().jitter_bounds
        self.min_delay_ms, self.max_delay_ms = _validate_bounds(
            config_min if min_delay_ms is None else min_delay_ms,
            config_max if max_delay_ms is None else max_delay_ms,
        )
        self._rng = rng or random.SystemRandom()
        self._sleep = sleep or asyncio.sleep
        self._tasks: set[asyncio.Task[None]] = set()
        self._pending = 0
        self._idle = threading.Condition()

    @property
    def pending(self) -> int:
        """Number of scheduled tasks that have not finished yet."""
        with self._idle:
            return self._pending

    def draw_delay_ms(self, min_delay_ms: int | None = None, max_delay_ms: int | None = None) -> int:
        """Draw a delay uniformly from the inclusive integer range."""
        low, high = _validate_bounds(
            self.min_delay_ms if min_delay_ms is None else min_delay_ms,
            self.max_delay_ms if max_delay_ms is None else max_delay_ms,
        )
        return self._rng.randint(low, high)

    async def await_with_jitter(
        self,
        task: Callable[[], Awaitable[T] | T],
        min_delay_ms: int | None = None,
        max_delay_ms: int | None = None,
    ) -> T:
        """Sleep for a random delay, then run task and return its result.

        Exceptions from task propagate to the caller.
        """
        delay_ms = self.draw_delay_ms(min_delay_ms, max_delay_ms)
        logger.debug("Delaying task by %ds to prevent timing correlation", round(delay_ms / 1000))
        await self._sleep(delay_ms / 1000)
        result = task()
        if inspect.isawaitable(result):
            result = await result
        return result

    def schedule_with_jitter(
        self,
        task: JitterTask,
        min_delay_ms: int | None = None,
        max_delay_ms: int | None = None,
    ) -> None:
        """Run task after a random delay without blocking the caller.

        Bounds are validated here so a bad call fails in the request, not in
        the background.
        """
        self.draw_delay_ms(min_delay_ms, max_delay_ms)
        with self._idle:
            self._pending += 1

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop: run on a daemon thread with its own loop
            thread = threading.Thread(
                target=lambda: asyncio.run(self._run_detached(task, min_delay_ms, max_delay_ms)),
                name="murmur-jitter",
                daemon=True,
            )
            thread.start()
            return

        background = loop.create_task(self._run_detached(task, min_delay_ms, max_delay_ms))
        self._tasks.add(background)
        background.add_done_callback(self._tasks.discard)

    async def _run_detached(
        self,
        task: JitterTask,
        min_delay_ms: int | None,
        max_delay_ms: int | None,
    ) -> None:
        try:
            await self.await_with_jitter(task, min_delay_ms, max_delay_ms)
        except Exception as exc:
            # Never log the exception message; it may carry content
            logger.error(
                "Jittered background task failed",
                extra={"extra_data": {"error_type": type(exc).__name__}},
            )
        finally:
            with self._idle:
                self._pending -= 1
                self._idle.notify_all()

    async def drain(self) -> None:
        """Wait for tasks scheduled on the running loop to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no scheduled task is pending. Not for use on a loop.

        Returns:
            True if idle, False on timeout
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)


# Global scheduler instance
_default_scheduler: JitterScheduler | None = None


def get_scheduler() -> JitterScheduler:
    """Get the default jitter scheduler."""
    global _default_scheduler
    if _default_scheduler is None:
        _default_scheduler = JitterScheduler()
    return _default_scheduler


def schedule_with_jitter(
    task: JitterTask,
    min_delay_ms: int | None = None,
    max_delay_ms: int | None = None,
) -> None:
    """Fire-and-forget task after a jittered delay (default 5-30s)."""
    get_scheduler().schedule_with_jitter(task, min_delay_ms, max_delay_ms)


async def await_with_jitter(
    task: Callable[[], Awaitable[T] | T],
    min_delay_ms: int | None = None,
    max_delay_ms: int | None = None,
) -> T:
    """Run task after a jittered delay and return its result."""
    return await get_scheduler().await_with_jitter(task, min_delay_ms, max_delay_ms)
