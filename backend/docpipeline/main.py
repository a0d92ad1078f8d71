"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docpipeline.api.v1 import pipelines
from docpipeline.core.config import get_settings
from docpipeline.core.logging import get_logger, setup_logging
from docpipeline.core.tracing import setup_tracing
from docpipeline.db.session import create_session_factory
from docpipeline.pipeline.dispatch import CeleryDispatcher, InlineDispatcher
from docpipeline.pipeline.engine import PipelineEngine
from docpipeline.pipeline.errors import (
    InvalidStateError,
    NotFoundError,
    PipelineError,
    ValidationError,
)
from docpipeline.pipeline.service import PipelineService
from docpipeline.pipeline.store import SqlPipelineStore
from docpipeline.storage import build_document_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    settings = get_settings()
    setup_logging(settings.log_level, json_output=settings.APP_ENV != "development")
    setup_tracing(settings)
    logger = get_logger("startup")

    db_engine, session_factory = create_session_factory(settings.DATABASE_URL)
    store = SqlPipelineStore(session_factory)
    documents = build_document_store(settings)
    config = settings.to_pipeline_config()

    if settings.PIPELINE_DISPATCH_MODE == "inline":
        dispatcher = InlineDispatcher(lambda: PipelineEngine(store, documents, config))
    else:
        dispatcher = CeleryDispatcher()

    app.state.pipeline_service = PipelineService(store, documents, dispatcher, config)
    logger.info(
        "Application starting",
        env=settings.APP_ENV,
        dispatch_mode=settings.PIPELINE_DISPATCH_MODE,
        storage_backend=settings.STORAGE_BACKEND,
    )
    yield

    if isinstance(dispatcher, InlineDispatcher):
        await dispatcher.stop()
    await db_engine.dispose()
    logger.info("Application shutting down")


app = FastAPI(
    title="Document Pipeline API",
    description="Multi-stage AI document transformation pipelines",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

API_PREFIX = "/api/v1"
app.include_router(pipelines.router, prefix=API_PREFIX)


# ─── Domain error → HTTP mapping ──────────────────────────
_ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_409_CONFLICT),
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    body = {"detail": str(exc)}
    if exc.details:
        body["errors"] = exc.details
    return JSONResponse(status_code=status_code, content=body)


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Public health-check endpoint."""
    return {"status": "ok", "env": get_settings().APP_ENV}
