"""
Celery app shared by the API (enqueue side) and the worker.

Only post-generation enrichment runs here; nothing on the generation
path waits on a task.
"""
from celery import Celery

from core.config import settings

celery_app = Celery(
    "workout_engine",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_routes={"tasks.generate_audio_scripts": {"queue": "enrichment"}},
    task_default_queue="default",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    result_expires=24 * 3600,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
)

from . import audio_script_tasks  # noqa: E402,F401

__all__ = ["celery_app"]
