from __future__ import annotations

import asyncio
import gc

import pytest

from kpi_core.cache import ReadThroughCache
from kpi_core.errors import UpstreamError


class CountingFetcher:
    def __init__(self):
        self.calls = 0
        self.fail = False
        self.release = None

    async def __call__(self):
        self.calls += 1
        if self.release is not None:
            await self.release.wait()
        else:
            await asyncio.sleep(0)
        if self.fail:
            raise UpstreamError("upstream down")
        return {"version": self.calls}


def test_concurrent_requests_share_one_upstream_fetch(fake_clock):
    cache = ReadThroughCache(60_000, 600_000, clock=fake_clock)
    fetch = CountingFetcher()

    async def scenario():
        fetch.release = asyncio.Event()
        waiters = [asyncio.ensure_future(cache.get("2025", fetch)) for _ in range(10)]
        await asyncio.sleep(0)
        assert cache.in_flight("2025")
        fetch.release.set()
        return await asyncio.gather(*waiters)

    results = asyncio.run(scenario())
    assert fetch.calls == 1
    assert all(r is results[0] for r in results)
    assert not cache.in_flight("2025")


def test_fresh_entry_is_served_without_upstream_call(fake_clock):
    cache = ReadThroughCache(60_000, 600_000, clock=fake_clock)
    fetch = CountingFetcher()

    async def scenario():
        first = await cache.get("k", fetch)
        fake_clock.advance(59)
        second = await cache.get("k", fetch)
        return first, second

    first, second = asyncio.run(scenario())
    assert first is second
    assert fetch.calls == 1


def test_expired_entry_is_refreshed(fake_clock):
    cache = ReadThroughCache(60_000, 600_000, clock=fake_clock)
    fetch = CountingFetcher()

    async def scenario():
        await cache.get("k", fetch)
        fake_clock.advance(61)
        return await cache.get("k", fetch)

    assert asyncio.run(scenario()) == {"version": 2}
    assert cache.peek("k").fetched_at == fake_clock.now


def test_force_bypasses_fresh_entry(fake_clock):
    cache = ReadThroughCache(60_000, 600_000, clock=fake_clock)
    fetch = CountingFetcher()

    async def scenario():
        await cache.get("k", fetch)
        return await cache.get("k", fetch, force=True)

    assert asyncio.run(scenario()) == {"version": 2}


def test_force_still_coalesces(fake_clock):
    cache = ReadThroughCache(60_000, 600_000, clock=fake_clock)
    fetch = CountingFetcher()

    async def scenario():
        fetch.release = asyncio.Event()
        waiters = [asyncio.ensure_future(cache.get("k", fetch, force=True)) for _ in range(3)]
        await asyncio.sleep(0)
        fetch.release.set()
        return await asyncio.gather(*waiters)

    asyncio.run(scenario())
    assert fetch.calls == 1


def test_failure_within_stale_ttl_serves_previous_payload(fake_clock):
    cache = ReadThroughCache(60_000, 600_000, clock=fake_clock)
    fetch = CountingFetcher()

    async def scenario():
        first = await cache.get("k", fetch)
        fake_clock.advance(120)
        fetch.fail = True
        second = await cache.get("k", fetch)
        return first, second

    first, second = asyncio.run(scenario())
    assert second is first
    assert fetch.calls == 2
    assert not cache.in_flight("k")


def test_failure_past_stale_ttl_propagates(fake_clock):
    cache = ReadThroughCache(60_000, 600_000, clock=fake_clock)
    fetch = CountingFetcher()

    async def scenario():
        await cache.get("k", fetch)
        fake_clock.advance(601)
        fetch.fail = True
        await cache.get("k", fetch)

    with pytest.raises(UpstreamError):
        asyncio.run(scenario())
    assert not cache.in_flight("k")


def test_failure_without_entry_reaches_every_waiter(fake_clock):
    cache = ReadThroughCache(60_000, 600_000, clock=fake_clock)
    fetch = CountingFetcher()
    fetch.fail = True

    async def scenario():
        return await asyncio.gather(*(cache.get("k", fetch) for _ in range(4)), return_exceptions=True)

    results = asyncio.run(scenario())
    assert fetch.calls == 1
    assert all(isinstance(r, UpstreamError) for r in results)


def test_next_request_after_failure_starts_a_new_fetch(fake_clock):
    cache = ReadThroughCache(60_000, 600_000, clock=fake_clock)
    fetch = CountingFetcher()
    fetch.fail = True

    async def scenario():
        with pytest.raises(UpstreamError):
            await cache.get("k", fetch)
        fetch.fail = False
        return await cache.get("k", fetch)

    assert asyncio.run(scenario()) == {"version": 2}


def test_keys_fetch_independently(fake_clock):
    cache = ReadThroughCache(60_000, 600_000, clock=fake_clock)
    fetch = CountingFetcher()

    async def scenario():
        return await asyncio.gather(cache.get("2025", fetch), cache.get("2026", fetch))

    a, b = asyncio.run(scenario())
    assert fetch.calls == 2
    assert a != b


def test_failed_refresh_after_all_callers_cancelled_is_not_reported_as_unretrieved(fake_clock):
    cache = ReadThroughCache(60_000, 600_000, clock=fake_clock)
    fetch = CountingFetcher()
    fetch.fail = True

    async def scenario():
        reported = []
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: reported.append(context))
        fetch.release = asyncio.Event()
        waiter = asyncio.ensure_future(cache.get("k", fetch))
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        fetch.release.set()
        while cache.in_flight("k"):
            await asyncio.sleep(0)
        await asyncio.sleep(0)
        gc.collect()
        return reported

    assert asyncio.run(scenario()) == []
    assert fetch.calls == 1


def test_negative_ttl_is_rejected():
    with pytest.raises(ValueError):
        ReadThroughCache(-1, 10)
