"""
PipelineJob — one row per multi-stage pipeline run.

`selected_operations` and `operation_configs` are written once at
creation.  `operation_results` is an append-only JSONB array, one entry
per stage, in stage order.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from docpipeline.db.models.base import Base, generate_uuid, utcnow


class PipelineJob(Base):
    __tablename__ = "pipeline_jobs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=generate_uuid)
    document_id = Column(UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)

    # ── Configuration (immutable) ─────────────
    selected_operations = Column(JSONB, nullable=False)
    operation_configs = Column(JSONB, nullable=False, default=dict)

    # ── State machine ─────────────────────────
    status = Column(String(50), nullable=False, default="pending", index=True)
    current_operation_index = Column(Integer, nullable=False, default=0)

    # ── Results ───────────────────────────────
    operation_results = Column(JSONB, nullable=False, default=list)
    final_document_path = Column(String(1000), nullable=True)

    # ── Accounting ────────────────────────────
    total_cost_usd = Column(Float, nullable=False, default=0.0)
    total_duration_seconds = Column(Float, nullable=False, default=0.0)

    # ── Error ─────────────────────────────────
    error_message = Column(Text, nullable=True)

    # ── Timing (UTC) ─────────────────────────
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # ── Relationships ─────────────────────────
    document = relationship("Document", back_populates="pipeline_jobs")
    intermediate_documents = relationship(
        "IntermediateDocument",
        back_populates="pipeline_job",
        cascade="all, delete-orphan",
        order_by="IntermediateDocument.created_at",
    )

    def __repr__(self) -> str:
        return f"<PipelineJob {self.id} status={self.status} stage={self.current_operation_index}/{len(self.selected_operations or [])}>"
