"""
Celery Application Configuration for StudyHub.

Background jobs (currently file embedding generation) run on Celery
workers. Job status is persisted as task records (task_records.py);
Celery's own result backend only carries progress updates.

Architecture:
    FastAPI Backend -> Redis (Message Broker) -> Celery Workers

Usage:
    celery -A studyhub.celery_app worker --loglevel=info --concurrency=2
"""

from celery import Celery

from .config import settings
from .constants import TASK_SOFT_TIME_LIMIT_SECONDS, TASK_TIME_LIMIT_SECONDS

# =============================================================================
# Celery App Instance
# =============================================================================

celery_app = Celery(
    "studyhub",
    broker=settings.effective_celery_broker_url,
    backend=settings.effective_celery_result_backend,
    include=["studyhub.tasks"]
)

# =============================================================================
# Celery Configuration
# =============================================================================

celery_app.conf.update(
    # JSON only (no pickle)
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    result_expires=3600,

    task_track_started=True,
    task_time_limit=TASK_TIME_LIMIT_SECONDS,
    task_soft_time_limit=TASK_SOFT_TIME_LIMIT_SECONDS,

    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Inline execution for development without a worker
    task_always_eager=settings.celery_task_always_eager,
    task_eager_propagates=False,

    timezone="UTC",
    enable_utc=True,
)
