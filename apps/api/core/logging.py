"""
Logging setup for the API and the worker.

Production emits one JSON object per line. Workout and generation code
passes ids through `extra=` so they land as top-level keys.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from core.config import settings

# Keys lifted from `extra=` into the JSON payload.
CONTEXT_FIELDS = ("user_id", "workout_id", "request_id", "split_plan_id", "task_id")

NOISY_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "urllib3": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "google_genai": logging.WARNING,
    "celery": logging.INFO,
}


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = str(value)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def _use_json() -> bool:
    return settings.LOG_FORMAT.lower() == "json" or settings.ENVIRONMENT == "production"


def setup_logging() -> logging.Logger:
    """Install a single stdout handler on the root logger."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if _use_json():
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    return root
