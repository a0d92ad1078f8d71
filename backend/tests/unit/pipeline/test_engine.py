"""Tests for pipeline/engine.py — stage loop, approval gate, apply, pause/cancel."""

from __future__ import annotations

import json

import pytest

from docpipeline.core.constants import ApprovalStatus, JobStatus, OperationKind, StageStatus, SubJobStatus
from docpipeline.pipeline.errors import InvalidStateError


TRANSLATED_DOCUMENT = """# Introdução

O contrato foi assinado em 2020.

Os pagamentos são mensais.

# Termos

A Lei nº 8.666/1993 rege a licitação.
"""

TRANSLATE_BATCH_1 = json.dumps({"translations": [
    {"index": 0, "text": "Introdução"},
    {"index": 1, "text": "O contrato foi assinado em 2020."},
    {"index": 2, "text": "Os pagamentos são mensais."},
]})
TRANSLATE_BATCH_2 = json.dumps({"translations": [
    {"index": 0, "text": "Termos"},
    {"index": 1, "text": "A Lei nº 8.666/1993 rege a licitação."},
]})

ADJUST_BATCH_1 = json.dumps({"adjustments": [
    {
        "paragraphIndex": 0,
        "originalText": "O contrato foi assinado em 2020.",
        "adjustedText": "O contrato foi celebrado em 2020.",
        "reason": "Registro formal",
    },
    {
        "paragraphIndex": 1,
        "originalText": "Os pagamentos são mensais.",
        "adjustedText": "Os pagamentos serão efetuados mensalmente.",
        "reason": "Registro formal",
    },
]})
ADJUST_BATCH_2 = json.dumps({"adjustments": [
    {
        "paragraphIndex": 0,
        "originalText": "rege a licitação",
        "adjustedText": "disciplina o procedimento licitatório",
        "reason": "Terminologia jurídica",
    },
]})


async def _read(documents, path: str) -> str:
    return (await documents.download(path)).decode("utf-8")


class TestAutoAdvancingPipeline:

    @pytest.mark.asyncio
    async def test_translate_only_runs_to_completion(
        self, service, engine, store, documents, generator, source_document, translate_config,
    ):
        generator.queue(TRANSLATE_BATCH_1, TRANSLATE_BATCH_2)
        job = await service.create_pipeline(source_document.id, ["translate"], {"translate": translate_config})

        await engine.run(job.id)

        done = await store.get_job(job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.current_operation_index == 1
        assert done.started_at is not None and done.completed_at is not None
        assert len(done.operation_results) == 1

        result = done.operation_results[0]
        assert result.status == StageStatus.COMPLETED
        assert result.requires_approval is False
        assert result.metadata.total_chunks == 2
        assert result.metadata.items_processed == 5
        assert done.final_document_path == result.output_document_path
        assert done.total_cost_usd > 0

        assert await _read(documents, done.final_document_path) == TRANSLATED_DOCUMENT

    @pytest.mark.asyncio
    async def test_intermediate_path_layout(
        self, service, engine, store, generator, source_document, translate_config,
    ):
        generator.queue(TRANSLATE_BATCH_1, TRANSLATE_BATCH_2)
        job = await service.create_pipeline(source_document.id, ["translate"], {"translate": translate_config})

        await engine.run(job.id)

        [intermediate] = await store.list_intermediate_documents(job.id)
        assert intermediate.operation_index == 0
        assert intermediate.operation_name == OperationKind.TRANSLATE
        assert intermediate.storage_path.startswith(f"pipeline-outputs/{job.id}/0_translate_")
        assert intermediate.storage_path.endswith(".md")

    @pytest.mark.asyncio
    async def test_headings_are_sent_with_body_text(
        self, service, engine, generator, source_document, translate_config,
    ):
        generator.queue(TRANSLATE_BATCH_1, TRANSLATE_BATCH_2)
        job = await service.create_pipeline(source_document.id, ["translate"], {"translate": translate_config})

        await engine.run(job.id)

        assert '"text": "Introduction"' in generator.prompts[0]
        assert '"text": "Terms"' in generator.prompts[1]


class TestApprovalGate:

    async def _run_to_gate(self, service, engine, generator, source_document, translate_config, adjust_config):
        generator.queue(TRANSLATE_BATCH_1, TRANSLATE_BATCH_2, ADJUST_BATCH_1, ADJUST_BATCH_2)
        job = await service.create_pipeline(
            source_document.id,
            ["translate", "adjust"],
            {"translate": translate_config, "adjust": adjust_config},
        )
        await engine.run(job.id)
        return job

    @pytest.mark.asyncio
    async def test_halts_after_suggestion_stage(
        self, service, engine, store, generator, source_document, translate_config, adjust_config,
    ):
        job = await self._run_to_gate(service, engine, generator, source_document, translate_config, adjust_config)

        halted = await store.get_job(job.id)
        assert halted.status == JobStatus.AWAITING_APPROVAL
        assert halted.current_operation_index == 1
        assert [r.status for r in halted.operation_results] == [
            StageStatus.COMPLETED,
            StageStatus.AWAITING_APPROVAL,
        ]

        pending = halted.operation_results[1]
        assert pending.approval_status == ApprovalStatus.PENDING
        assert pending.output_document_path is None
        assert pending.metadata.items_generated == 3

        op_job = await store.get_operation_job(pending.operation_job_id)
        assert op_job.status == SubJobStatus.COMPLETED
        assert len(op_job.suggestions()) == 3

    @pytest.mark.asyncio
    async def test_adjust_reads_previous_stage_output(
        self, service, engine, generator, source_document, translate_config, adjust_config,
    ):
        await self._run_to_gate(service, engine, generator, source_document, translate_config, adjust_config)

        assert "O contrato foi assinado em 2020." in generator.prompts[2]
        assert "The contract was signed" not in generator.prompts[2]
        # creativity 4 -> temperature 0.4
        assert generator.calls[2]["temperature"] == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_partial_approval_applies_only_selected_items(
        self, service, engine, store, documents, dispatcher, generator, source_document,
        translate_config, adjust_config,
    ):
        job = await self._run_to_gate(service, engine, generator, source_document, translate_config, adjust_config)
        halted = await store.get_job(job.id)
        first, second, third = (await store.get_operation_job(halted.operation_results[1].operation_job_id)).suggestions()

        approving = await service.approve_stage(job.id, [first.id, third.id])
        assert approving.status == JobStatus.APPLYING_CHANGES
        assert dispatcher.applies == [job.id]

        await engine.apply_and_resume(job.id)

        done = await store.get_job(job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.current_operation_index == 2

        applied = done.operation_results[1]
        assert applied.status == StageStatus.COMPLETED
        assert applied.approval_status == ApprovalStatus.APPROVED
        assert applied.approved_items == [first.id, third.id]
        assert applied.metadata.items_processed == 2
        assert applied.metadata.applied_at is not None

        final = await _read(documents, done.final_document_path)
        assert "O contrato foi celebrado em 2020." in final
        assert "disciplina o procedimento licitatório" in final
        assert "Os pagamentos são mensais." in final
        assert second.proposed_text not in final

        intermediates = await store.list_intermediate_documents(job.id)
        assert [doc.operation_index for doc in intermediates] == [0, 1]
        assert done.final_document_path == intermediates[-1].storage_path

    @pytest.mark.asyncio
    async def test_empty_approval_rejects_all_and_continues(
        self, service, engine, store, documents, generator, source_document, adjust_config,
    ):
        generator.queue(ADJUST_BATCH_1, ADJUST_BATCH_2)
        job = await service.create_pipeline(source_document.id, ["adjust"], {"adjust": adjust_config})
        await engine.run(job.id)

        await service.approve_stage(job.id, [])
        await engine.apply_and_resume(job.id)

        done = await store.get_job(job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.operation_results[0].approval_status == ApprovalStatus.REJECTED
        assert done.operation_results[0].metadata.items_processed == 0
        original = await _read(documents, source_document.storage_path)
        assert await _read(documents, done.final_document_path) == original

    @pytest.mark.asyncio
    async def test_run_while_awaiting_approval_is_a_no_op(
        self, service, engine, store, generator, source_document, translate_config, adjust_config,
    ):
        job = await self._run_to_gate(service, engine, generator, source_document, translate_config, adjust_config)
        calls = len(generator.prompts)

        await engine.run(job.id)

        assert len(generator.prompts) == calls
        assert (await store.get_job(job.id)).status == JobStatus.AWAITING_APPROVAL

    @pytest.mark.asyncio
    async def test_second_approval_is_rejected_without_changes(
        self, service, engine, store, dispatcher, generator, source_document, translate_config, adjust_config,
    ):
        job = await self._run_to_gate(service, engine, generator, source_document, translate_config, adjust_config)
        halted = await store.get_job(job.id)
        [first, *_] = (await store.get_operation_job(halted.operation_results[1].operation_job_id)).suggestions()
        approving = await service.approve_stage(job.id, [first.id])

        with pytest.raises(InvalidStateError):
            await service.approve_stage(job.id, [])

        unchanged = await store.get_job(job.id)
        assert unchanged.status == JobStatus.APPLYING_CHANGES
        assert unchanged.operation_results == approving.operation_results
        assert unchanged.current_operation_index == 1
        assert dispatcher.applies == [job.id]

    @pytest.mark.asyncio
    async def test_apply_outside_applying_changes_is_a_no_op(
        self, service, engine, store, generator, source_document, translate_config, adjust_config,
    ):
        job = await self._run_to_gate(service, engine, generator, source_document, translate_config, adjust_config)

        await engine.apply_and_resume(job.id)

        halted = await store.get_job(job.id)
        assert halted.status == JobStatus.AWAITING_APPROVAL
        assert halted.current_operation_index == 1


class TestFailures:

    @pytest.mark.asyncio
    async def test_fatal_provider_error_on_first_stage_fails_job(
        self, service, engine, store, generator, source_document, translate_config, adjust_config,
    ):
        generator.queue("this is not json")
        improve_config = {"model": "gpt-4o-mini", "provider": "openai"}
        job = await service.create_pipeline(
            source_document.id,
            ["translate", "adjust", "improve"],
            {"translate": translate_config, "adjust": adjust_config, "improve": improve_config},
        )

        await engine.run(job.id)

        failed = await store.get_job(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.current_operation_index == 0
        assert failed.operation_results == []
        assert "malformed JSON" in failed.error_message
        assert failed.completed_at is not None
        assert await store.list_intermediate_documents(job.id) == []

        [op_job] = store.operation_jobs.values()
        assert op_job.status == SubJobStatus.ERROR
        assert op_job.error_message

    @pytest.mark.asyncio
    async def test_apply_failure_fails_job(
        self, service, engine, store, documents, generator, source_document, translate_config, adjust_config,
    ):
        generator.queue(TRANSLATE_BATCH_1, TRANSLATE_BATCH_2, ADJUST_BATCH_1, ADJUST_BATCH_2)
        job = await service.create_pipeline(
            source_document.id,
            ["translate", "adjust"],
            {"translate": translate_config, "adjust": adjust_config},
        )
        await engine.run(job.id)
        halted = await store.get_job(job.id)
        [first, *_] = (await store.get_operation_job(halted.operation_results[1].operation_job_id)).suggestions()
        await service.approve_stage(job.id, [first.id])
        # The adjust stage reads the translated document, which is now gone
        (documents.root / halted.operation_results[0].output_document_path).unlink()

        await engine.apply_and_resume(job.id)

        failed = await store.get_job(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.error_message.startswith("Failed to apply changes")
        assert failed.current_operation_index == 1
        assert failed.final_document_path is None
        assert [doc.operation_index for doc in await store.list_intermediate_documents(job.id)] == [0]

    @pytest.mark.asyncio
    async def test_missing_source_document_fails_job(
        self, service, engine, store, documents, generator, source_document, translate_config,
    ):
        job = await service.create_pipeline(source_document.id, ["translate"], {"translate": translate_config})
        (documents.root / source_document.storage_path).unlink()

        await engine.run(job.id)

        failed = await store.get_job(job.id)
        assert failed.status == JobStatus.FAILED
        assert "Failed to download" in failed.error_message
        assert generator.prompts == []


class TestExecutionControl:

    @pytest.mark.asyncio
    async def test_cancelled_job_is_never_started(
        self, service, engine, store, generator, source_document, translate_config,
    ):
        job = await service.create_pipeline(source_document.id, ["translate"], {"translate": translate_config})
        await service.cancel_pipeline(job.id)

        await engine.run(job.id)

        cancelled = await store.get_job(job.id)
        assert cancelled.status == JobStatus.CANCELLED
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_cancel_mid_stage_stops_at_next_batch(
        self, service, engine, store, generator, source_document, translate_config, adjust_config,
    ):
        job = await service.create_pipeline(
            source_document.id,
            ["translate", "adjust"],
            {"translate": translate_config, "adjust": adjust_config},
        )

        def cancel_then_answer():
            store.set_status(job.id, JobStatus.CANCELLED)
            return TRANSLATE_BATCH_1

        generator.queue(cancel_then_answer, TRANSLATE_BATCH_2)

        await engine.run(job.id)

        cancelled = await store.get_job(job.id)
        assert cancelled.status == JobStatus.CANCELLED
        assert cancelled.current_operation_index == 0
        assert cancelled.operation_results == []
        assert len(generator.prompts) == 1

        [op_job] = store.operation_jobs.values()
        assert op_job.status == SubJobStatus.ERROR
        assert op_job.error_message == "Cancelled"

    @pytest.mark.asyncio
    async def test_pause_waits_until_resumed(
        self, service, make_engine, store, generator, source_document, translate_config,
    ):
        job = await service.create_pipeline(source_document.id, ["translate"], {"translate": translate_config})

        def pause_then_answer():
            store.set_status(job.id, JobStatus.PAUSED)
            return TRANSLATE_BATCH_1

        generator.queue(pause_then_answer, TRANSLATE_BATCH_2)
        engine = make_engine(on_pause_poll=lambda: store.set_status(job.id, JobStatus.RUNNING))

        await engine.run(job.id)

        done = await store.get_job(job.id)
        assert done.status == JobStatus.COMPLETED
        assert len(generator.prompts) == 2
        assert engine._sleep.delays == [0.01]

    @pytest.mark.asyncio
    async def test_cancel_after_last_batch_does_not_advance(
        self, service, engine, store, generator, source_document, translate_config,
    ):
        job = await service.create_pipeline(source_document.id, ["translate"], {"translate": translate_config})

        def cancel_then_answer():
            store.set_status(job.id, JobStatus.CANCELLED)
            return TRANSLATE_BATCH_2

        generator.queue(TRANSLATE_BATCH_1, cancel_then_answer)

        await engine.run(job.id)

        cancelled = await store.get_job(job.id)
        assert cancelled.status == JobStatus.CANCELLED
        assert cancelled.current_operation_index == 0
        assert cancelled.operation_results == []
        assert cancelled.final_document_path is None
        assert len(generator.prompts) == 2

    @pytest.mark.asyncio
    async def test_cancelled_job_status_is_stable(
        self, service, engine, store, generator, source_document, translate_config,
    ):
        job = await service.create_pipeline(source_document.id, ["translate"], {"translate": translate_config})
        await service.cancel_pipeline(job.id)
        generator.queue(TRANSLATE_BATCH_1, TRANSLATE_BATCH_2)

        for _ in range(3):
            # A stale task picking the job up again changes nothing
            await engine.run(job.id)
            status = await service.get_pipeline_status(job.id)
            assert status.job.status == JobStatus.CANCELLED
            assert status.job.current_operation_index == 0
            assert status.current_operation_progress is None

        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_redelivered_run_of_paused_job_waits_for_resume(
        self, service, make_engine, store, generator, source_document, translate_config,
    ):
        job = await service.create_pipeline(source_document.id, ["translate"], {"translate": translate_config})
        store.set_status(job.id, JobStatus.RUNNING)
        await service.pause_resume(job.id, "pause")
        generator.queue(TRANSLATE_BATCH_1, TRANSLATE_BATCH_2)
        engine = make_engine(on_pause_poll=lambda: store.set_status(job.id, JobStatus.RUNNING))

        await engine.run(job.id)

        done = await store.get_job(job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.current_operation_index == 1
        assert len(generator.prompts) == 2
        assert engine._sleep.delays == [0.01]
