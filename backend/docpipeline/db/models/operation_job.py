"""
OperationJob — the per-stage sub-operation tracking record.

One table serves all five operation kinds (discriminated by
`operation`).  Executors checkpoint progress here between batches so
the status endpoint can report mid-stage progress without touching the
engine.  `result` holds the operation's payload (suggestions, norm
references, translated chunk count...).
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID

from docpipeline.db.models.base import Base, generate_uuid, utcnow


class OperationJob(Base):
    __tablename__ = "operation_jobs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=generate_uuid)
    operation = Column(String(50), nullable=False, index=True)
    document_id = Column(UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    pipeline_job_id = Column(UUID(as_uuid=True), ForeignKey("pipeline_jobs.id", ondelete="CASCADE"), nullable=True, index=True)

    # ── Status / Progress ────────────────────
    status = Column(String(50), nullable=False, default="pending", index=True)
    current_section = Column(Integer, nullable=False, default=0)
    total_sections = Column(Integer, nullable=False, default=0)
    progress_percentage = Column(Integer, nullable=False, default=0)
    progress_message = Column(String(255), nullable=True)

    # ── Config + output ───────────────────────
    config = Column(JSONB, default=dict)
    result = Column(JSONB, default=dict)

    # ── Error ─────────────────────────────────
    error_message = Column(Text, nullable=True)

    # ── Timing (UTC) ─────────────────────────
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<OperationJob {self.id} {self.operation} status={self.status} {self.progress_percentage}%>"
