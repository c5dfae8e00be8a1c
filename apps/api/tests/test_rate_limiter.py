import asyncio

import pytest

from pointmart_api.services.accrual.limiter import DynamicRateLimiter, RateLimiterCancelledError


def test_limiter_rejects_invalid_parameters() -> None:
    with pytest.raises(ValueError):
        DynamicRateLimiter(0, 1)
    with pytest.raises(ValueError):
        DynamicRateLimiter(1.0, 0)

    limiter = DynamicRateLimiter(1.0, 1)
    with pytest.raises(ValueError):
        limiter.update(-1.0, 1)
    with pytest.raises(ValueError):
        limiter.update(1.0, 0)


def test_limiter_refills_at_steady_rate() -> None:
    now = [0.0]
    limiter = DynamicRateLimiter(1.0, burst=2, clock=lambda: now[0])

    assert limiter.allow()
    assert limiter.allow()
    assert not limiter.allow()

    now[0] = 0.5
    assert not limiter.allow()

    now[0] = 1.0
    assert limiter.allow()
    assert not limiter.allow()

    now[0] = 10.0
    assert limiter.allow()
    assert limiter.allow()
    assert not limiter.allow()


@pytest.mark.asyncio
async def test_wait_returns_immediately_while_tokens_remain() -> None:
    limiter = DynamicRateLimiter(30.0, burst=1)
    await asyncio.wait_for(limiter.wait(), timeout=0.5)
    assert not limiter.allow()


@pytest.mark.asyncio
async def test_wait_raises_when_cancel_event_is_set() -> None:
    limiter = DynamicRateLimiter(30.0, burst=1)
    assert limiter.allow()
    cancel_event = asyncio.Event()

    task = asyncio.create_task(limiter.wait(cancel_event))
    await asyncio.sleep(0.01)
    assert not task.done()
    cancel_event.set()

    with pytest.raises(RateLimiterCancelledError):
        await asyncio.wait_for(task, timeout=1.0)


@pytest.mark.asyncio
async def test_wait_with_preset_cancel_event_never_takes_a_token() -> None:
    limiter = DynamicRateLimiter(30.0, burst=1)
    cancel_event = asyncio.Event()
    cancel_event.set()

    with pytest.raises(RateLimiterCancelledError):
        await limiter.wait(cancel_event)
    assert limiter.allow()


@pytest.mark.asyncio
async def test_task_cancellation_propagates_from_wait() -> None:
    limiter = DynamicRateLimiter(30.0, burst=1)
    assert limiter.allow()

    task = asyncio.create_task(limiter.wait())
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_update_wakes_waiters_with_the_new_rate() -> None:
    limiter = DynamicRateLimiter(30.0, burst=1)
    assert limiter.allow()

    waiter = asyncio.create_task(limiter.wait())
    await asyncio.sleep(0.01)
    assert not waiter.done()

    limiter.update(0.01, 1)
    await limiter.settle()
    await asyncio.wait_for(waiter, timeout=1.0)

    assert limiter.interval == pytest.approx(0.01)
    await limiter.close()


@pytest.mark.asyncio
async def test_updates_are_applied_in_order() -> None:
    limiter = DynamicRateLimiter(1.0, burst=1)

    limiter.update(2.0, 2)
    limiter.update(3.0, 4)
    assert limiter.interval == pytest.approx(1.0)

    await limiter.settle()
    assert limiter.interval == pytest.approx(3.0)
    assert limiter.burst == 4

    await limiter.close()
    with pytest.raises(RuntimeError):
        limiter.update(1.0, 1)


@pytest.mark.asyncio
async def test_concurrent_waiters_all_complete_after_update() -> None:
    limiter = DynamicRateLimiter(30.0, burst=1)
    assert limiter.allow()

    waiters = [asyncio.create_task(limiter.wait()) for _ in range(3)]
    await asyncio.sleep(0.01)
    limiter.update(0.01, 1)

    await asyncio.wait_for(asyncio.gather(*waiters), timeout=2.0)
    await limiter.close()
