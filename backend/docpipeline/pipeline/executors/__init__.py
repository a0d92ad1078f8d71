"""
Executors package — one OperationExecutor per operation kind.

Each executor extracts the document structure, walks it in fixed-size
batches with one provider call per batch, and checkpoints progress on
its sub-operation record.
"""

from docpipeline.pipeline.executors.base import OperationExecutor
from docpipeline.pipeline.executors.registry import build_executors, executor_for

__all__ = ["OperationExecutor", "build_executors", "executor_for"]
