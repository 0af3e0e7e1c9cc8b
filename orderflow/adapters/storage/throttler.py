# orderflow/adapters/storage/throttler.py
import asyncio
from collections import deque
from typing import Deque

import structlog

from orderflow.core.domain.models import UploadResult
from orderflow.core.ports.object_storage import IObjectStorage, IUploadThrottler

logger = structlog.get_logger()


class UploadThrottler(IUploadThrottler):
    """
    Caps the number of concurrent object-storage uploads.

    Excess requests park on a future in an explicit queue and a released slot
    is handed straight to the oldest one, so admission is FIFO and none is
    dropped. The slot is held until the storage call returns or raises;
    timeouts belong to the storage client, so an abandoned call can never keep
    running outside the cap. Failures are not retried.
    """

    def __init__(self, storage: IObjectStorage, max_concurrency: int = 8):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.storage = storage
        self.max_concurrency = max_concurrency
        self._free = max_concurrency
        self._queue: Deque[asyncio.Future] = deque()
        self._in_flight = 0
        self._waiting = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def waiting(self) -> int:
        return self._waiting

    async def _acquire(self) -> None:
        if self._free > 0 and not self._queue:
            self._free -= 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._queue.append(waiter)
        self._waiting += 1
        try:
            await waiter
        except asyncio.CancelledError:
            # Slot already handed over before the cancel landed: pass it on.
            if not waiter.cancelled():
                self._release()
            raise
        finally:
            self._waiting -= 1

    def _release(self) -> None:
        while self._queue:
            waiter = self._queue.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._free += 1

    async def submit(self, data: bytes, folder: str, filename: str = "", content_type: str = "") -> UploadResult:
        await self._acquire()

        self._in_flight += 1
        try:
            logger.debug("upload_started", folder=folder, in_flight=self._in_flight, waiting=self._waiting)
            return await self.storage.upload(data, folder, filename=filename, content_type=content_type)
        finally:
            self._in_flight -= 1
            self._release()
