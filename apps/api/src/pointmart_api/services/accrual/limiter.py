"""Token-bucket limiter whose rate can be changed while callers are waiting."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Callable

from loguru import logger


class RateLimiterCancelledError(RuntimeError):
    """Raised when a wait is abandoned because its cancel event was set."""


def _validate(interval_seconds: float, burst: int) -> None:
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be positive")
    if burst < 1:
        raise ValueError("burst must be at least 1")


class DynamicRateLimiter:
    """Grants one token every ``interval_seconds`` up to ``burst`` stored tokens.

    Rate changes are queued through :meth:`update` and applied by a single
    applier task, which wakes sleeping waiters so they re-evaluate against
    the new rate. The bucket starts full.
    """

    def __init__(
        self,
        interval_seconds: float,
        burst: int = 1,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        _validate(interval_seconds, burst)
        self._interval = float(interval_seconds)
        self._burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last_refill = clock()
        self._commands: asyncio.Queue[tuple[float, int]] = asyncio.Queue()
        self._rate_changed = asyncio.Event()
        self._applier: asyncio.Task | None = None
        self._closed = False

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def burst(self) -> int:
        return self._burst

    def allow(self) -> bool:
        """Take a token if one is available right now."""

        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    async def wait(self, cancel_event: asyncio.Event | None = None) -> None:
        """Block until a token is granted.

        Raises :class:`RateLimiterCancelledError` once ``cancel_event`` is set.
        """

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise RateLimiterCancelledError("rate limiter wait cancelled")
            if self.allow():
                return
            delay = (1 - self._tokens) * self._interval
            await self._sleep(delay, cancel_event)

    def update(self, interval_seconds: float, burst: int) -> None:
        """Queue a rate change; it takes effect once the applier picks it up."""

        _validate(interval_seconds, burst)
        if self._closed:
            raise RuntimeError("rate limiter is closed")
        self._commands.put_nowait((float(interval_seconds), burst))
        if self._applier is None or self._applier.done():
            self._applier = asyncio.create_task(self._apply_commands())

    async def settle(self) -> None:
        """Wait until every queued rate change has been applied."""

        await self._commands.join()

    async def close(self) -> None:
        self._closed = True
        if self._applier is None:
            return
        self._applier.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._applier
        self._applier = None

    async def _apply_commands(self) -> None:
        while True:
            interval_seconds, burst = await self._commands.get()
            try:
                self._refill()
                previous = self._interval
                self._interval = interval_seconds
                self._burst = burst
                self._tokens = min(self._tokens, float(burst))
                logger.debug(
                    "Accrual rate limit updated",
                    previous_interval_seconds=previous,
                    interval_seconds=interval_seconds,
                    burst=burst,
                )
                changed, self._rate_changed = self._rate_changed, asyncio.Event()
                changed.set()
            finally:
                self._commands.task_done()

    async def _sleep(self, delay: float, cancel_event: asyncio.Event | None) -> None:
        waiters = [asyncio.ensure_future(self._rate_changed.wait())]
        if cancel_event is not None:
            waiters.append(asyncio.ensure_future(cancel_event.wait()))
        try:
            await asyncio.wait(waiters, timeout=delay, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(float(self._burst), self._tokens + elapsed / self._interval)
        self._last_refill = now


__all__ = ["DynamicRateLimiter", "RateLimiterCancelledError"]
