# tests/adapters/test_cache.py
import asyncio

import pytest

from orderflow.shared.cache import SingleFlightCache


class ManualClock:
    def __init__(self):
        self.value = 100.0

    def __call__(self):
        return self.value


@pytest.mark.asyncio
class TestSingleFlightCache:

    async def test_concurrent_callers_share_one_load(self):
        """
        Scenario: 50 requests ask for the catalog while it is being computed.
        Expected: The loader runs once and every caller gets its result.
        """
        # Arrange
        cache = SingleFlightCache(ttl_seconds=5)
        calls = 0
        gate = asyncio.Event()

        async def loader():
            nonlocal calls
            calls += 1
            await gate.wait()
            return ["catalog"]

        # Act
        tasks = [asyncio.create_task(cache.get_or_load("catalog", loader)) for _ in range(50)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks)

        # Assert
        assert calls == 1
        assert all(r == ["catalog"] for r in results)

    async def test_cancelled_first_caller_does_not_fail_others(self):
        """
        Scenario: The request that started the load disconnects mid-load.
        Expected: The load keeps running and the other caller gets the value.
        """
        # Arrange
        cache = SingleFlightCache(ttl_seconds=5)
        calls = 0
        gate = asyncio.Event()

        async def loader():
            nonlocal calls
            calls += 1
            await gate.wait()
            return ["catalog"]

        first = asyncio.create_task(cache.get_or_load("catalog", loader))
        await asyncio.sleep(0)
        second = asyncio.create_task(cache.get_or_load("catalog", loader))
        await asyncio.sleep(0)

        # Act
        first.cancel()
        await asyncio.sleep(0)
        gate.set()

        # Assert
        assert await second == ["catalog"]
        with pytest.raises(asyncio.CancelledError):
            await first
        assert calls == 1
        assert await cache.get_or_load("catalog", loader) == ["catalog"]
        assert calls == 1

    async def test_expiry_triggers_reload(self):
        clock = ManualClock()
        cache = SingleFlightCache(ttl_seconds=5, clock=clock)
        values = iter([1, 2])

        async def loader():
            return next(values)

        assert await cache.get_or_load("k", loader) == 1
        clock.value += 4
        assert await cache.get_or_load("k", loader) == 1
        clock.value += 2
        assert await cache.get_or_load("k", loader) == 2

    async def test_failures_are_not_cached(self):
        """
        Scenario: The first load fails.
        Expected: The error propagates and the next call loads again.
        """
        cache = SingleFlightCache(ttl_seconds=5)
        attempts = 0

        async def loader():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RuntimeError("db down")
            return "ok"

        with pytest.raises(RuntimeError):
            await cache.get_or_load("k", loader)
        assert await cache.get_or_load("k", loader) == "ok"
        assert attempts == 2

    async def test_invalidate(self):
        cache = SingleFlightCache(ttl_seconds=60)
        values = iter(["a", "b"])

        async def loader():
            return next(values)

        await cache.get_or_load("k", loader)
        cache.invalidate("k")

        assert await cache.get_or_load("k", loader) == "b"
