"""
Storage package — object storage backends for documents.

`build_document_store(settings)` picks the backend from STORAGE_BACKEND.
"""

from docpipeline.core.config import Settings
from docpipeline.storage.base import DocumentStore
from docpipeline.storage.local import LocalDocumentStore
from docpipeline.storage.s3 import S3DocumentStore


def build_document_store(settings: Settings) -> DocumentStore:
    if settings.STORAGE_BACKEND == "local":
        return LocalDocumentStore(settings.STORAGE_LOCAL_ROOT)
    return S3DocumentStore(
        settings.STORAGE_BUCKET_NAME,
        endpoint_url=settings.STORAGE_ENDPOINT,
        access_key=settings.STORAGE_ACCESS_KEY,
        secret_key=settings.STORAGE_SECRET_KEY,
        region=settings.STORAGE_REGION,
    )


__all__ = [
    "DocumentStore",
    "LocalDocumentStore",
    "S3DocumentStore",
    "build_document_store",
]
