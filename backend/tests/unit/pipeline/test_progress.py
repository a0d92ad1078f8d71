"""Tests for pipeline/progress.py."""

from __future__ import annotations

import pytest

from docpipeline.core.constants import JobStatus, OperationKind, SubJobStatus
from docpipeline.pipeline.models import Suggestion, TranslateConfig
from docpipeline.pipeline.progress import ProgressAggregator, ProgressReporter


async def _sub_job(store, operation=OperationKind.TRANSLATE, document_id="doc-1"):
    return await store.create_operation_job(
        operation=operation, document_id=document_id, pipeline_job_id=None, config={},
    )


class TestProgressReporter:

    @pytest.mark.asyncio
    async def test_default_percentage_and_message(self, store):
        op_job = await _sub_job(store)
        reporter = ProgressReporter(store, op_job.id, unit="Chunk")

        await reporter.report(3, 4)

        record = await store.get_operation_job(op_job.id)
        assert record.progress_percentage == 75
        assert record.progress_message == "Chunk 3 of 4"
        assert (record.current_section, record.total_sections) == (3, 4)

    @pytest.mark.asyncio
    async def test_percentage_is_clamped(self, store):
        op_job = await _sub_job(store)
        reporter = ProgressReporter(store, op_job.id)

        await reporter.report(1, 1, percentage=140)
        assert (await store.get_operation_job(op_job.id)).progress_percentage == 100

        await reporter.report(0, 1, percentage=-5)
        assert (await store.get_operation_job(op_job.id)).progress_percentage == 0

    @pytest.mark.asyncio
    async def test_partial_suggestions_are_saved(self, store):
        op_job = await _sub_job(store)
        reporter = ProgressReporter(store, op_job.id)
        found = [Suggestion(original_text="a", proposed_text="b")]

        await reporter.report(1, 2, suggestions=found)

        record = await store.get_operation_job(op_job.id)
        assert [s.id for s in record.suggestions()] == [found[0].id]


class TestProgressAggregator:

    async def _job(self, store, source_document):
        config = TranslateConfig(model="gpt-4o-mini", provider="openai", target_language="es")
        job = await store.create_job(
            source_document.id, [OperationKind.TRANSLATE], {OperationKind.TRANSLATE: config},
        )
        return job.id

    @pytest.mark.asyncio
    async def test_reads_active_sub_job_of_running_stage(self, store, source_document):
        job_id = await self._job(store, source_document)
        store.set_status(job_id, JobStatus.RUNNING)
        op_job = await _sub_job(store, document_id=source_document.id)
        await store.update_operation_job(
            op_job.id, status=SubJobStatus.TRANSLATING, progress_percentage=40, progress_message="Chunk 2 of 5",
        )

        progress = await ProgressAggregator(store).current_progress(await store.get_job(job_id))

        assert progress.operation == "translate"
        assert progress.percentage == 40
        assert progress.message == "Chunk 2 of 5"

    @pytest.mark.asyncio
    async def test_none_when_not_running(self, store, source_document):
        job_id = await self._job(store, source_document)
        await _sub_job(store, document_id=source_document.id)

        assert await ProgressAggregator(store).current_progress(await store.get_job(job_id)) is None

    @pytest.mark.asyncio
    async def test_none_without_active_sub_job(self, store, source_document):
        job_id = await self._job(store, source_document)
        store.set_status(job_id, JobStatus.RUNNING)
        op_job = await _sub_job(store, document_id=source_document.id)
        await store.update_operation_job(op_job.id, status=SubJobStatus.COMPLETED)

        assert await ProgressAggregator(store).current_progress(await store.get_job(job_id)) is None
