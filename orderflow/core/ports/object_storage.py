# orderflow/core/ports/object_storage.py
from typing import Protocol

from orderflow.core.domain.models import UploadResult


class IObjectStorage(Protocol):
    """
    Port for the image store (payment screenshots, food photos, QR codes).
    """

    async def upload(self, data: bytes, folder: str, filename: str = "", content_type: str = "") -> UploadResult:
        """
        Stores the bytes and returns the public URL and the storage id.
        Raises on any failure; implementations do not retry.
        """
        ...

    async def delete(self, storage_id: str) -> None:
        ...

    async def health_check(self) -> bool:
        ...


class IUploadThrottler(Protocol):
    """
    Bounded-concurrency gateway in front of IObjectStorage.upload.
    """

    async def submit(self, data: bytes, folder: str, filename: str = "", content_type: str = "") -> UploadResult:
        """Waits (FIFO) for a free slot, then uploads. Errors propagate unchanged."""
        ...
