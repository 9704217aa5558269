"""
Celery worker entry point.

Run with:
    celery -A main worker -Q default,enrichment --loglevel=info

The API tree is mounted at /api in the worker image; API_PATH overrides it.
"""
import os
import sys

sys.path.insert(0, os.environ.get("API_PATH", "/api"))

from core.logging import setup_logging  # noqa: E402
from tasks import celery_app  # noqa: E402

setup_logging()

app = celery_app


@celery_app.task(name="worker.ping")
def ping() -> dict:
    return {"status": "ok"}
