"""
IntermediateDocumentStore — immutable per-stage output artifacts.

Every save uploads a new object under
`{prefix}/{pipeline_job_id}/{index}_{operation}_{timestamp_ms}{suffix}`
and inserts a new row; nothing is ever overwritten, so a re-apply of
the same stage simply yields another artifact.
"""

from __future__ import annotations

import time
from pathlib import PurePosixPath
from typing import Any

from docpipeline.core.config import PipelineConfig
from docpipeline.core.constants import OperationKind
from docpipeline.core.logging import get_logger
from docpipeline.pipeline.models import IntermediateDocumentRecord
from docpipeline.pipeline.store import PipelineStore
from docpipeline.storage.base import DocumentStore

logger = get_logger(__name__)


class IntermediateDocumentStore:

    def __init__(self, store: PipelineStore, documents: DocumentStore, config: PipelineConfig) -> None:
        self.store = store
        self.documents = documents
        self.config = config

    def build_path(
        self,
        pipeline_job_id: str,
        operation_index: int,
        operation: OperationKind,
        suffix: str,
        *,
        timestamp_ms: int | None = None,
    ) -> str:
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        name = f"{operation_index}_{operation.value}_{timestamp_ms}{suffix}"
        return str(PurePosixPath(self.config.intermediate_prefix, pipeline_job_id, name))

    async def save(
        self,
        *,
        pipeline_job_id: str,
        operation_index: int,
        operation: OperationKind,
        data: bytes,
        suffix: str,
        content_type: str | None = None,
        operation_job_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> IntermediateDocumentRecord:
        """Upload the stage output and record it."""
        path = self.build_path(pipeline_job_id, operation_index, operation, suffix)
        stored_path = await self.documents.upload(path, data, content_type)
        record = await self.store.add_intermediate_document(
            pipeline_job_id=pipeline_job_id,
            operation_index=operation_index,
            operation_name=operation,
            storage_path=stored_path,
            file_size_bytes=len(data),
            operation_job_id=operation_job_id,
            metadata=metadata or {},
        )
        logger.info(
            "Intermediate document saved",
            pipeline_job_id=pipeline_job_id,
            operation_index=operation_index,
            operation=operation.value,
            storage_path=stored_path,
            size_bytes=len(data),
        )
        return record

    async def list_for_job(self, pipeline_job_id: str) -> list[IntermediateDocumentRecord]:
        return await self.store.list_intermediate_documents(pipeline_job_id)

    async def latest_for_stage(
        self,
        pipeline_job_id: str,
        operation_index: int,
    ) -> IntermediateDocumentRecord | None:
        """Newest artifact for one stage, or None."""
        matches = [
            doc for doc in await self.list_for_job(pipeline_job_id)
            if doc.operation_index == operation_index
        ]
        return matches[-1] if matches else None
