"""Shared constants and enums used across the application."""

from dataclasses import dataclass
from enum import StrEnum


class JobStatus(StrEnum):
    """Pipeline job state machine."""

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    AWAITING_APPROVAL = "awaiting_approval"
    APPLYING_CHANGES = "applying_changes"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
CANCELLABLE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.RUNNING, JobStatus.PAUSED})


class OperationKind(StrEnum):
    """Document transformation a stage performs."""

    ADJUST = "adjust"
    UPDATE = "update"
    IMPROVE = "improve"
    ADAPT = "adapt"
    TRANSLATE = "translate"


class StageStatus(StrEnum):
    """Status recorded on an OperationResult."""

    COMPLETED = "completed"
    FAILED = "failed"
    AWAITING_APPROVAL = "awaiting_approval"


class ApprovalStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SubJobStatus(StrEnum):
    """Status of a sub-operation tracking record."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    ADJUSTING = "adjusting"
    ADAPTING = "adapting"
    TRANSLATING = "translating"
    COMPLETED = "completed"
    ERROR = "error"


# Statuses in which a sub-job is still producing progress
ACTIVE_SUB_JOB_STATUSES = frozenset({
    SubJobStatus.ANALYZING,
    SubJobStatus.ADJUSTING,
    SubJobStatus.ADAPTING,
    SubJobStatus.TRANSLATING,
})


class ErrorKind(StrEnum):
    """Closed classification of provider call failures."""

    RATE_LIMITED = "rate_limited"
    TRANSIENT_TIMEOUT = "transient_timeout"
    EMPTY_RESPONSE = "empty_response"
    FATAL = "fatal"


class Provider(StrEnum):
    """External text-generation providers."""

    OPENAI = "openai"
    GEMINI = "gemini"
    GROK = "grok"


class AdaptStyle(StrEnum):
    ACADEMIC = "academic"
    PROFESSIONAL = "professional"
    SIMPLIFIED = "simplified"
    CUSTOM = "custom"


class DownloadType(StrEnum):
    FINAL = "final"
    INTERMEDIATE = "intermediate"


class PauseAction(StrEnum):
    PAUSE = "pause"
    RESUME = "resume"


@dataclass(frozen=True)
class OperationInfo:
    """Static catalogue entry for an operation kind."""

    name: str
    description: str
    estimated_minutes: int
    requires_approval: bool


OPERATION_CATALOG: dict[OperationKind, OperationInfo] = {
    OperationKind.ADJUST: OperationInfo("Adjust", "Apply custom instructions", 3, True),
    OperationKind.UPDATE: OperationInfo("Update", "Update laws, norms and regulations", 5, True),
    OperationKind.IMPROVE: OperationInfo("Improve", "Suggest writing and clarity improvements", 4, True),
    OperationKind.ADAPT: OperationInfo("Adapt", "Adapt style for the target audience", 3, True),
    OperationKind.TRANSLATE: OperationInfo("Translate", "Translate into another language", 6, False),
}
