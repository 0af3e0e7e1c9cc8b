# orderflow/shared/cache.py
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import structlog

logger = structlog.get_logger()


def _retrieve_outcome(task: asyncio.Task) -> None:
    # Every caller may have gone away before a failed load finishes.
    if not task.cancelled():
        task.exception()


class SingleFlightCache:
    """
    Short-TTL read cache with single-flight loading.

    While a key is missing or expired, the first caller starts the loader in
    its own task and every concurrent caller, the first one included, awaits
    that task through a shield, so the backing query runs once per expiry
    window and a cancelled caller never cancels the load for the others. A
    failed load is not cached: the error propagates to all waiters and the
    next call starts a fresh load.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._values: Dict[str, Tuple[float, Any]] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        cached = self._values.get(key)
        if cached is not None and cached[0] > self._clock():
            return cached[1]

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, loader))
            task.add_done_callback(_retrieve_outcome)
            self._inflight[key] = task
        return await asyncio.shield(task)

    async def _load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        try:
            value = await loader()
        except Exception as exc:
            logger.warning("cache_load_failed", key=key, error=str(exc))
            raise
        else:
            self._values[key] = (self._clock() + self.ttl_seconds, value)
            return value
        finally:
            self._inflight.pop(key, None)

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            self._values.clear()
        else:
            self._values.pop(key, None)
