# orderflow/adapters/storage/s3_storage.py
import asyncio
import mimetypes
import uuid
from typing import Optional

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import ClientError

from orderflow.core.domain.models import UploadResult
from orderflow.core.ports.object_storage import IObjectStorage
from orderflow.shared.telemetry import get_tracer

logger = structlog.get_logger()
tracer = get_tracer(__name__)


class S3ObjectStorage(IObjectStorage):
    """
    Production image store backed by an S3 bucket.

    Calls run in the thread pool. botocore's own retries are switched off and
    connect/read timeouts are bounded so the upload throttler can rely on
    every call finishing.
    """

    def __init__(
        self,
        bucket: str,
        region: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        public_base_url: Optional[str] = None,
        timeout_sec: int = 60,
    ):
        # boto3 falls back to the standard AWS credential chain when keys are None
        self.s3_client = boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            endpoint_url=endpoint_url,
            config=Config(
                connect_timeout=min(timeout_sec, 10),
                read_timeout=timeout_sec,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )
        self.bucket = bucket
        self.region = region
        self.public_base_url = (public_base_url or f"https://{bucket}.s3.{region}.amazonaws.com").rstrip("/")

    async def upload(self, data: bytes, folder: str, filename: str = "", content_type: str = "") -> UploadResult:
        key = self._build_key(folder, filename, content_type)

        with tracer.start_as_current_span("s3_upload") as span:
            span.set_attribute("s3.bucket", self.bucket)
            span.set_attribute("s3.key", key)
            span.set_attribute("s3.bytes", len(data))

            await asyncio.to_thread(self._upload_sync, key, data, content_type)

        logger.info("s3_upload_done", key=key, size=len(data))
        return UploadResult(url=f"{self.public_base_url}/{key}", storage_id=key)

    async def delete(self, storage_id: str) -> None:
        if not storage_id:
            return
        with tracer.start_as_current_span("s3_delete") as span:
            span.set_attribute("s3.key", storage_id)
            await asyncio.to_thread(self.s3_client.delete_object, Bucket=self.bucket, Key=storage_id)

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self.s3_client.head_bucket, Bucket=self.bucket)
            return True
        except ClientError as e:
            logger.warning("s3_health_check_failed", error=str(e))
            return False

    # --- Synchronous Helpers (executed in thread pool) ---

    def _upload_sync(self, key: str, data: bytes, content_type: str):
        self.s3_client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )

    def _build_key(self, folder: str, filename: str, content_type: str) -> str:
        """e.g. 'cb-kare-food-portal/payments/3f9c...e1.png'"""
        extension = ""
        if filename and "." in filename:
            extension = "." + filename.rsplit(".", 1)[1].lower()
        elif content_type:
            extension = mimetypes.guess_extension(content_type) or ""
        return f"{folder.strip('/')}/{uuid.uuid4().hex}{extension}"
