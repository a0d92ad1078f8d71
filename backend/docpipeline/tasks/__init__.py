"""
Celery application factory.
"""

from celery import Celery
from celery.signals import worker_process_init

celery_app = Celery(
    "docpipeline",
    include=["docpipeline.tasks.pipeline_tasks"],
)
celery_app.config_from_object("celeryconfig")


@worker_process_init.connect
def _configure_worker(**_kwargs) -> None:
    """Logging and tracing are per process; prefork children start bare."""
    from docpipeline.core.config import get_settings
    from docpipeline.core.logging import setup_logging
    from docpipeline.core.tracing import setup_tracing

    settings = get_settings()
    setup_logging(settings.log_level, json_output=settings.APP_ENV != "development")
    setup_tracing(settings)
