"""
Document — a source document uploaded by a user.

Only the metadata lives here; the bytes are in object storage at
`storage_path`.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from docpipeline.db.models.base import Base, generate_uuid, utcnow


class Document(Base):
    __tablename__ = "documents"

    id = Column(UUID(as_uuid=True), primary_key=True, default=generate_uuid)
    filename = Column(String(500), nullable=False)
    storage_path = Column(String(1000), nullable=False)
    content_type = Column(String(255), nullable=True)
    size_bytes = Column(BigInteger, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    pipeline_jobs = relationship("PipelineJob", back_populates="document")

    def __repr__(self) -> str:
        return f"<Document {self.id} filename={self.filename}>"
