# orderflow/adapters/storage/fake_storage.py
import asyncio
import uuid
from typing import Dict

import structlog

from orderflow.core.domain.models import UploadResult
from orderflow.core.ports.object_storage import IObjectStorage

logger = structlog.get_logger()


class FakeObjectStorage(IObjectStorage):
    """
    In-memory image store for local development and tests.
    Objects live only as long as the process.
    """

    def __init__(self, base_url: str = "memory://uploads", latency_sec: float = 0.0):
        self.base_url = base_url.rstrip("/")
        self.latency_sec = latency_sec
        self.objects: Dict[str, bytes] = {}

    async def upload(self, data: bytes, folder: str, filename: str = "", content_type: str = "") -> UploadResult:
        if self.latency_sec:
            await asyncio.sleep(self.latency_sec)
        storage_id = f"{folder.strip('/')}/{uuid.uuid4().hex}"
        self.objects[storage_id] = data
        logger.debug("fake_upload_stored", storage_id=storage_id, size=len(data))
        return UploadResult(url=f"{self.base_url}/{storage_id}", storage_id=storage_id)

    async def delete(self, storage_id: str) -> None:
        self.objects.pop(storage_id, None)

    async def health_check(self) -> bool:
        return True
