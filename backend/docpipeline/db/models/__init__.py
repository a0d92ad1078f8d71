"""
Models package — re-exports Base and all models.

Import models here so Alembic's `target_metadata = Base.metadata`
picks up every table automatically.

When adding a new model:
    1. Create `docpipeline/db/models/<table_name>.py`
    2. Import it here
"""

from docpipeline.db.models.base import Base
from docpipeline.db.models.document import Document
from docpipeline.db.models.intermediate_document import IntermediateDocument
from docpipeline.db.models.operation_job import OperationJob
from docpipeline.db.models.pipeline_job import PipelineJob

__all__ = [
    "Base",
    "Document",
    "IntermediateDocument",
    "OperationJob",
    "PipelineJob",
]
