#!/usr/bin/env python3
"""
Container entrypoint step: wait for the database, then `alembic upgrade head`.

Exits non-zero when the database never comes up or a migration fails, so
the API never starts against an unknown schema.
"""

import logging
import os
import sys
import time

from dotenv import load_dotenv

load_dotenv()

from core.logging import setup_logging  # noqa: E402

logger = logging.getLogger("run_migrations")

MAX_ATTEMPTS = 30
RETRY_DELAY_S = 1.0


def wait_for_database(attempts: int = MAX_ATTEMPTS, delay_s: float = RETRY_DELAY_S) -> bool:
    from core.database import check_db_connection

    for attempt in range(1, attempts + 1):
        if check_db_connection():
            return True
        logger.info(f"Database unavailable, retrying ({attempt}/{attempts})")
        time.sleep(delay_s)
    return False


def alembic_config():
    from alembic.config import Config

    here = os.path.dirname(os.path.abspath(__file__))
    cfg = Config(os.path.join(here, "alembic.ini"))
    cfg.set_main_option("script_location", os.path.join(here, "alembic"))
    return cfg


def main() -> int:
    setup_logging()
    if not wait_for_database():
        logger.error(f"Database not ready after {MAX_ATTEMPTS} attempts")
        return 1

    from alembic import command

    try:
        command.upgrade(alembic_config(), "head")
    except Exception as e:
        logger.error(f"Alembic upgrade failed: {e}")
        return 1
    logger.info("Migrations applied")
    return 0


if __name__ == "__main__":
    sys.exit(main())
