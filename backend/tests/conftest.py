"""Shared test fixtures for the pipeline unit tests.

Provides an in-memory PipelineStore, a filesystem DocumentStore rooted
in a temp directory, a scripted text generator standing in for the
providers and a dispatcher that only records what was enqueued.
No database, broker or provider is contacted.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from docpipeline.core.config import PipelineConfig
from docpipeline.core.constants import ACTIVE_SUB_JOB_STATUSES, JobStatus, SubJobStatus
from docpipeline.llm.base import Generation, ProviderSession, TextGenerator
from docpipeline.llm.retry import RetryableCaller
from docpipeline.pipeline.dispatch import TaskDispatcher
from docpipeline.pipeline.engine import PipelineEngine
from docpipeline.pipeline.models import (
    DocumentRecord,
    IntermediateDocumentRecord,
    OperationJobRecord,
    PipelineJobRecord,
)
from docpipeline.pipeline.service import PipelineService
from docpipeline.pipeline.store import PipelineStore
from docpipeline.storage.local import LocalDocumentStore


SAMPLE_DOCUMENT = """# Introduction

The contract was signed in 2020.

Payments are due monthly.

# Terms

Lei nº 8.666/1993 governs the procurement.
"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


# === In-memory store ===


class InMemoryPipelineStore(PipelineStore):
    """Dict-backed PipelineStore with the same conditional-update semantics as SQL."""

    def __init__(self) -> None:
        self.documents: dict[str, DocumentRecord] = {}
        self.jobs: dict[str, PipelineJobRecord] = {}
        self.operation_jobs: dict[str, OperationJobRecord] = {}
        self.intermediates: list[IntermediateDocumentRecord] = []
        self.operation_job_updates: list[dict[str, Any]] = []

    def add_document(self, storage_path: str, filename: str | None = None) -> DocumentRecord:
        document = DocumentRecord(
            id=str(uuid.uuid4()),
            filename=filename or storage_path.rsplit("/", 1)[-1],
            storage_path=storage_path,
            created_at=_now(),
        )
        self.documents[document.id] = document
        return document

    def set_status(self, job_id: str, status: JobStatus) -> None:
        self.jobs[job_id] = self.jobs[job_id].model_copy(update={"status": status})

    async def get_document(self, document_id):
        return self.documents.get(document_id)

    async def create_job(self, document_id, operations, configs):
        job = PipelineJobRecord(
            id=str(uuid.uuid4()),
            document_id=document_id,
            selected_operations=list(operations),
            operation_configs=dict(configs),
            status=JobStatus.PENDING,
            created_at=_now(),
        )
        self.jobs[job.id] = job
        return job.model_copy(deep=True)

    async def get_job(self, job_id):
        job = self.jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    async def list_jobs(self, *, document_id=None, status=None, offset=0, limit=50):
        jobs = [
            job for job in reversed(list(self.jobs.values()))
            if (document_id is None or job.document_id == document_id)
            and (status is None or job.status == status)
        ]
        return jobs[offset:offset + limit]

    async def update_job_if_status(self, job_id, expected_statuses, **values):
        job = self.jobs.get(job_id)
        if job is None or job.status not in set(expected_statuses):
            return False
        self.jobs[job_id] = job.model_copy(update=values)
        return True

    async def add_intermediate_document(self, **fields):
        record = IntermediateDocumentRecord(id=str(uuid.uuid4()), created_at=_now(), **fields)
        self.intermediates.append(record)
        return record

    async def list_intermediate_documents(self, job_id):
        return [doc for doc in self.intermediates if doc.pipeline_job_id == job_id]

    async def create_operation_job(self, *, operation, document_id, pipeline_job_id, config):
        record = OperationJobRecord(
            id=str(uuid.uuid4()),
            operation=operation,
            document_id=document_id,
            pipeline_job_id=pipeline_job_id,
            status=SubJobStatus.PENDING,
            result={},
            created_at=_now(),
        )
        self.operation_jobs[record.id] = record
        return record

    async def get_operation_job(self, op_job_id):
        return self.operation_jobs.get(op_job_id)

    async def update_operation_job(self, op_job_id, **values):
        self.operation_job_updates.append(dict(values))
        record = self.operation_jobs[op_job_id]
        self.operation_jobs[op_job_id] = record.model_copy(update=values)

    async def find_active_operation_job(self, document_id, operation):
        matches = [
            record for record in self.operation_jobs.values()
            if record.document_id == document_id
            and record.operation == operation
            and record.status in ACTIVE_SUB_JOB_STATUSES
        ]
        return matches[-1] if matches else None


# === Scripted provider ===


class ScriptedGenerator(TextGenerator):
    """
    Answers prompts from a queue.

    Each entry is a response text, an exception to raise, or a callable
    called before answering (returning the text), which lets a test change
    job state in the middle of a stage.
    """

    provider = "openai"

    def __init__(self, responses: list[Any] | None = None, model: str = "gpt-4o-mini") -> None:
        super().__init__(model)
        self.responses = list(responses or [])
        self.prompts: list[str] = []
        self.calls: list[dict[str, Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def generate(self, prompt, *, system=None, temperature=0.3, json_mode=True):
        self.prompts.append(prompt)
        self.calls.append({"temperature": temperature, "json_mode": json_mode})
        if not self.responses:
            raise AssertionError(f"Unexpected provider call #{len(self.prompts)}")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response()
        return Generation(text=response, model=self.model, input_tokens=1000, output_tokens=500)


class RecordingSleep:
    """Async sleep replacement that records delays and can run a hook."""

    def __init__(self, on_sleep: Callable[[], None] | None = None) -> None:
        self.delays: list[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep()


class RecordingDispatcher(TaskDispatcher):

    def __init__(self) -> None:
        self.runs: list[str] = []
        self.applies: list[str] = []

    async def enqueue_run(self, job_id):
        self.runs.append(job_id)

    async def enqueue_apply(self, job_id):
        self.applies.append(job_id)


# === FIXTURES ===


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(pause_poll_interval_seconds=0.01)


@pytest.fixture
def store() -> InMemoryPipelineStore:
    return InMemoryPipelineStore()


@pytest.fixture
def documents(tmp_path) -> LocalDocumentStore:
    return LocalDocumentStore(tmp_path / "storage")


@pytest.fixture
def source_document(store, documents) -> DocumentRecord:
    """The sample markdown document, stored and registered."""
    path = documents.root / "uploads" / "contract.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(SAMPLE_DOCUMENT, encoding="utf-8")
    return store.add_document("uploads/contract.md")


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def provider_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def session_builder(generator, provider_sleep):
    """Builds sessions around the shared scripted generator (no real backoff)."""

    def build(provider, model, config):
        caller = RetryableCaller(
            config.retry_policy_for(provider),
            provider=str(provider),
            sleep=provider_sleep,
        )
        return ProviderSession(generator, caller, config)

    return build


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def make_engine(store, documents, pipeline_config, session_builder):
    """Engine factory; `on_pause_poll` runs every time a paused job is polled."""

    def build(on_pause_poll: Callable[[], None] | None = None) -> PipelineEngine:
        return PipelineEngine(
            store,
            documents,
            pipeline_config,
            session_builder=session_builder,
            sleep=RecordingSleep(on_pause_poll),
        )

    return build


@pytest.fixture
def engine(make_engine) -> PipelineEngine:
    return make_engine()


@pytest.fixture
def service(store, documents, dispatcher, pipeline_config) -> PipelineService:
    return PipelineService(store, documents, dispatcher, pipeline_config)


@pytest.fixture
def adjust_config() -> dict[str, Any]:
    return {
        "model": "gpt-4o-mini",
        "provider": "openai",
        "instructions": "Use a more formal register",
        "creativity": 4,
    }


@pytest.fixture
def translate_config() -> dict[str, Any]:
    return {"model": "gpt-4o-mini", "provider": "openai", "target_language": "pt-BR"}
