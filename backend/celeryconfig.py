"""
Celery configuration for the document pipeline workers.

Loaded by `celery_app.config_from_object("celeryconfig")` in
docpipeline/tasks/__init__.py.  Broker/result-backend URLs come from
environment variables, defaulting to localhost for local dev.
"""

import os

# ═══════════════════════════════════════════════════════════
#  Broker & Result Backend
# ═══════════════════════════════════════════════════════════

broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# ═══════════════════════════════════════════════════════════
#  Serialization: JSON only
# ═══════════════════════════════════════════════════════════

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

timezone = "UTC"
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Task Execution
# ═══════════════════════════════════════════════════════════

# Acknowledge after completion; a redelivered run only proceeds from
# pending/running and a redelivered apply only from applying_changes
task_acks_late = True
task_reject_on_worker_lost = True

# One stage run at a time per worker process
worker_prefetch_multiplier = 1

# A run covers every stage up to the next approval gate, provider
# backoff included, plus any time spent paused
task_soft_time_limit = 4 * 3600
task_time_limit = 4 * 3600 + 60

# Stage failures are recorded on the job; Celery never retries them
task_max_retries = 0

result_expires = 86400

# ═══════════════════════════════════════════════════════════
#  Worker Settings
# ═══════════════════════════════════════════════════════════

# Restart worker after N tasks (provider SDKs hold on to memory)
worker_max_tasks_per_child = 50

worker_send_task_events = False
task_send_sent_event = False

# ═══════════════════════════════════════════════════════════
#  Task Routes
# ═══════════════════════════════════════════════════════════
#   celery -A docpipeline.tasks worker -Q pipeline

task_routes = {
    "docpipeline.tasks.pipeline_tasks.*": {"queue": "pipeline"},
}

task_default_queue = "default"
