"""Paginated producer of orders still waiting for a final accrual status."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence

from loguru import logger

from pointmart_api.models.order import Order
from pointmart_api.services.orders.repository import OrdersNotFoundError

FetchBatch = Callable[[int, int], Awaitable[Sequence[Order]]]

_END_OF_FEED = object()


class UnprocessedOrderSource:
    """Feeds non-terminal orders to a single consumer through an unbounded queue.

    The producer side (:meth:`poll_once` / :meth:`run`) walks the pending
    orders with an ``offset`` cursor and starts again from the front once a
    page comes back empty. :meth:`run` only polls when the consumer has
    emptied the queue.
    """

    def __init__(
        self,
        fetch_batch: FetchBatch,
        *,
        limit: int = 50,
        poll_interval_seconds: float = 10.0,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._fetch_batch = fetch_batch
        self._limit = limit
        self._poll_interval = poll_interval_seconds
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self.offset = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize() - (1 if self._closed else 0)

    async def poll_once(self) -> int:
        """Fetch one page at the current offset and enqueue it."""

        try:
            orders = await self._fetch_batch(self._limit, self.offset)
        except OrdersNotFoundError:
            if self.offset:
                logger.debug("Unprocessed order feed exhausted; rewinding", offset=self.offset)
            self.offset = 0
            return 0
        except Exception as exc:
            logger.warning("Unprocessed order poll failed", offset=self.offset, error=str(exc))
            return 0

        self.offset += len(orders)
        for order in orders:
            self._queue.put_nowait(order)
        return len(orders)

    async def run(self, stop_event: asyncio.Event) -> None:
        try:
            while not stop_event.is_set():
                if self._queue.empty():
                    await self.poll_once()
                else:
                    # Consumer still busy; a rewound offset would queue the same orders again.
                    logger.debug("Unprocessed order feed backlogged; skipping poll", pending=self.pending)
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self._poll_interval)
                except asyncio.TimeoutError:
                    continue
        finally:
            self._close()

    async def next_order(self, stop_event: asyncio.Event) -> Order | None:
        """Return the next queued order, or ``None`` once the feed is closed or stopped."""

        if stop_event.is_set():
            return None

        getter = asyncio.ensure_future(self._queue.get())
        stopper = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait({getter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not getter.done():
                getter.cancel()

        if not getter.done() or getter.cancelled():
            return None
        item = getter.result()
        if item is _END_OF_FEED:
            self._queue.put_nowait(item)
            return None
        if stop_event.is_set():
            # Dropped orders stay pending in the store and are offered again.
            return None
        return item  # type: ignore[return-value]

    def drain(self) -> list[Order]:
        """Pop every order queued so far without waiting."""

        orders: list[Order] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is _END_OF_FEED:
                self._queue.put_nowait(item)
                break
            orders.append(item)  # type: ignore[arg-type]
        return orders

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END_OF_FEED)


__all__ = ["FetchBatch", "UnprocessedOrderSource"]
