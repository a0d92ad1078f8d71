"""
Pipeline package — the multi-stage document transformation engine.

    engine.py        PipelineEngine, the job state machine
    service.py       PipelineService, the request-time operations
    executors/       one OperationExecutor per operation kind
    store.py         PipelineStore, the relational-store interface
    intermediate.py  immutable per-stage output documents
    progress.py      sub-operation progress checkpoints and aggregation
    dispatch.py      background execution (Celery or in-process)
"""
