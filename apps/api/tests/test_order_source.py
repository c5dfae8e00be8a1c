import asyncio
from types import SimpleNamespace

import pytest

from pointmart_api.services.accrual.order_source import UnprocessedOrderSource
from pointmart_api.services.orders.repository import OrdersNotFoundError


class PagedStore:
    def __init__(self, numbers: list[str]) -> None:
        self.orders = [SimpleNamespace(id=index + 1, number=number) for index, number in enumerate(numbers)]
        self.calls: list[tuple[int, int]] = []
        self.failure: Exception | None = None

    async def fetch(self, limit: int, offset: int):
        self.calls.append((limit, offset))
        if self.failure is not None:
            raise self.failure
        page = self.orders[offset : offset + limit]
        if not page:
            raise OrdersNotFoundError("nothing pending")
        return page


@pytest.mark.asyncio
async def test_poll_once_advances_offset_and_queues_orders() -> None:
    store = PagedStore(["1", "2", "3"])
    source = UnprocessedOrderSource(store.fetch, limit=2, poll_interval_seconds=1.0)

    assert await source.poll_once() == 2
    assert source.offset == 2
    assert await source.poll_once() == 1
    assert source.offset == 3

    assert [order.number for order in source.drain()] == ["1", "2", "3"]
    assert store.calls == [(2, 0), (2, 2)]


@pytest.mark.asyncio
async def test_offset_resets_when_feed_is_exhausted() -> None:
    store = PagedStore(["1", "2"])
    source = UnprocessedOrderSource(store.fetch, limit=2, poll_interval_seconds=1.0)

    await source.poll_once()
    assert source.offset == 2

    assert await source.poll_once() == 0
    assert source.offset == 0
    assert store.calls[-1] == (2, 2)


@pytest.mark.asyncio
async def test_store_failures_keep_offset() -> None:
    store = PagedStore(["1", "2", "3"])
    source = UnprocessedOrderSource(store.fetch, limit=2, poll_interval_seconds=1.0)
    await source.poll_once()

    store.failure = RuntimeError("database unavailable")
    assert await source.poll_once() == 0

    assert source.offset == 2
    assert source.pending == 2


@pytest.mark.asyncio
async def test_run_feeds_consumer_and_closes_on_stop() -> None:
    store = PagedStore(["1", "2"])
    source = UnprocessedOrderSource(store.fetch, limit=10, poll_interval_seconds=0.05)
    stop_event = asyncio.Event()

    producer = asyncio.create_task(source.run(stop_event))
    first = await asyncio.wait_for(source.next_order(stop_event), timeout=1.0)
    second = await asyncio.wait_for(source.next_order(stop_event), timeout=1.0)

    stop_event.set()
    await asyncio.wait_for(producer, timeout=1.0)

    assert (first.number, second.number) == ("1", "2")
    assert source.closed
    assert await source.next_order(asyncio.Event()) is None


@pytest.mark.asyncio
async def test_run_does_not_requeue_orders_while_consumer_is_stalled() -> None:
    store = PagedStore(["79927398713"])
    source = UnprocessedOrderSource(store.fetch, limit=10, poll_interval_seconds=0.01)
    stop_event = asyncio.Event()

    producer = asyncio.create_task(source.run(stop_event))
    await asyncio.sleep(0.3)
    stop_event.set()
    await asyncio.wait_for(producer, timeout=1.0)

    assert [order.number for order in source.drain()] == ["79927398713"]
    assert store.calls == [(10, 0)]


@pytest.mark.asyncio
async def test_run_polls_again_once_backlog_is_consumed() -> None:
    store = PagedStore(["79927398713"])
    source = UnprocessedOrderSource(store.fetch, limit=10, poll_interval_seconds=0.01)
    stop_event = asyncio.Event()

    producer = asyncio.create_task(source.run(stop_event))
    first = await asyncio.wait_for(source.next_order(stop_event), timeout=1.0)
    second = await asyncio.wait_for(source.next_order(stop_event), timeout=1.0)
    stop_event.set()
    await asyncio.wait_for(producer, timeout=1.0)

    assert first.number == second.number == "79927398713"
    assert (10, 1) in store.calls


@pytest.mark.asyncio
async def test_next_order_returns_none_once_stopped() -> None:
    source = UnprocessedOrderSource(PagedStore([]).fetch, limit=10, poll_interval_seconds=1.0)
    stop_event = asyncio.Event()

    consumer = asyncio.create_task(source.next_order(stop_event))
    await asyncio.sleep(0.01)
    assert not consumer.done()
    stop_event.set()

    assert await asyncio.wait_for(consumer, timeout=1.0) is None


@pytest.mark.asyncio
async def test_cancelled_producer_still_closes_the_feed() -> None:
    source = UnprocessedOrderSource(PagedStore([]).fetch, limit=10, poll_interval_seconds=10.0)
    stop_event = asyncio.Event()

    producer = asyncio.create_task(source.run(stop_event))
    await asyncio.sleep(0.01)
    producer.cancel()
    with pytest.raises(asyncio.CancelledError):
        await producer

    assert source.closed
    assert await asyncio.wait_for(source.next_order(stop_event), timeout=1.0) is None
