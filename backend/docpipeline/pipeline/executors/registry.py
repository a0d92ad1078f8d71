"""Maps every operation kind to its executor."""

from __future__ import annotations

from docpipeline.core.constants import OperationKind
from docpipeline.pipeline.executors.adapt import AdaptExecutor
from docpipeline.pipeline.executors.adjust import AdjustExecutor
from docpipeline.pipeline.executors.base import OperationExecutor
from docpipeline.pipeline.executors.improve import ImproveExecutor
from docpipeline.pipeline.executors.translate import TranslateExecutor
from docpipeline.pipeline.executors.update import UpdateExecutor


def executor_for(operation: OperationKind) -> OperationExecutor:
    match operation:
        case OperationKind.ADJUST:
            return AdjustExecutor()
        case OperationKind.UPDATE:
            return UpdateExecutor()
        case OperationKind.IMPROVE:
            return ImproveExecutor()
        case OperationKind.ADAPT:
            return AdaptExecutor()
        case OperationKind.TRANSLATE:
            return TranslateExecutor()
    raise ValueError(f"No executor for operation: {operation}")


def build_executors() -> dict[OperationKind, OperationExecutor]:
    return {operation: executor_for(operation) for operation in OperationKind}
