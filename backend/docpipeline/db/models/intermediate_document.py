"""
IntermediateDocument — immutable output artifact of one applied stage.

Rows are only ever inserted.  A re-apply of the same stage produces a
new row and a new storage object; readers take the latest per index.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from docpipeline.db.models.base import Base, generate_uuid, utcnow


class IntermediateDocument(Base):
    __tablename__ = "pipeline_intermediate_documents"

    id = Column(UUID(as_uuid=True), primary_key=True, default=generate_uuid)
    pipeline_job_id = Column(UUID(as_uuid=True), ForeignKey("pipeline_jobs.id", ondelete="CASCADE"), nullable=False, index=True)

    # ── Stage identity ────────────────────────
    operation_index = Column(Integer, nullable=False)
    operation_name = Column(String(50), nullable=False)

    # ── Artifact ──────────────────────────────
    storage_path = Column(String(1000), nullable=False)
    file_size_bytes = Column(BigInteger, nullable=False)

    # ── Producer ──────────────────────────────
    operation_job_id = Column(UUID(as_uuid=True), ForeignKey("operation_jobs.id", ondelete="SET NULL"), nullable=True)
    metadata_ = Column("metadata", JSONB, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    pipeline_job = relationship("PipelineJob", back_populates="intermediate_documents")

    def __repr__(self) -> str:
        return f"<IntermediateDocument {self.id} job={self.pipeline_job_id} stage={self.operation_index}:{self.operation_name}>"
