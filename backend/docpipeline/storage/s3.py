"""
S3-compatible document store (AWS S3, MinIO).

boto3 is blocking; every call is pushed to a worker thread so the
engine's event loop keeps serving progress checkpoints.
"""

from __future__ import annotations

import asyncio
import io

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from docpipeline.core.logging import get_logger
from docpipeline.pipeline.errors import StorageError
from docpipeline.storage.base import DocumentStore

logger = get_logger(__name__)


class S3DocumentStore(DocumentStore):

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str | None = None,
    ) -> None:
        kwargs: dict = {}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if access_key and secret_key:
            kwargs["aws_access_key_id"] = access_key
            kwargs["aws_secret_access_key"] = secret_key
        if region:
            kwargs["region_name"] = region

        self._s3 = boto3.client("s3", **kwargs)
        self._bucket = bucket

    async def download(self, path: str) -> bytes:
        def _get() -> bytes:
            buffer = io.BytesIO()
            self._s3.download_fileobj(self._bucket, path, buffer)
            return buffer.getvalue()

        try:
            data = await asyncio.to_thread(_get)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to download '{path}': {exc}") from exc

        logger.debug("Object downloaded", bucket=self._bucket, key=path, size=len(data))
        return data

    async def upload(self, path: str, data: bytes, content_type: str | None = None) -> str:
        extra = {"ContentType": content_type} if content_type else {}

        def _put() -> None:
            self._s3.put_object(Bucket=self._bucket, Key=path, Body=data, **extra)

        try:
            await asyncio.to_thread(_put)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload '{path}': {exc}") from exc

        logger.info("Object uploaded", bucket=self._bucket, key=path, size=len(data))
        return path
