"""
Database connection management with connection pooling.

Postgres in deployment, sqlite when DATABASE_URL points at it (tests,
local scripts).
"""
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from core.config import settings
import logging
import time

logger = logging.getLogger(__name__)


def _database_url() -> str:
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    return (
        f"postgresql://{settings.POSTGRES_USER}:"
        f"{settings.POSTGRES_PASSWORD}@"
        f"{settings.POSTGRES_HOST}:"
        f"{settings.POSTGRES_PORT}/"
        f"{settings.POSTGRES_DB}"
    )


DATABASE_URL = _database_url()


def build_engine(url: str):
    """Create an engine; pool options only apply to server databases."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=settings.DEBUG,
        )
    return create_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,  # Verify connections before using
        echo=settings.DEBUG,
    )


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Prevent lazy loading issues
)

Base = declarative_base()


@event.listens_for(engine, "checkout")
def receive_checkout(dbapi_conn, connection_record, connection_proxy):
    """Log when connection is checked out from pool."""
    logger.debug("Connection checked out from pool")


def get_db() -> Session:
    """
    Dependency for FastAPI to get database session.

    Commits when the request handler returns, rolls back on any error.
    """
    db = None
    max_retries = 3
    retry_delay = 0.1  # 100ms initial delay

    for attempt in range(max_retries):
        try:
            db = SessionLocal()
            db.execute(text("SELECT 1"))
            break
        except Exception as e:
            if db:
                db.close()
            if attempt == max_retries - 1:
                logger.error(f"Failed to establish database connection after {max_retries} attempts: {e}")
                raise
            logger.warning(f"Database connection attempt {attempt + 1} failed, retrying...")
            time.sleep(retry_delay * (2 ** attempt))

    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        from fastapi import HTTPException
        if not isinstance(e, HTTPException):
            logger.error(f"Database transaction error: {e}")
        raise
    finally:
        if db:
            db.close()


def get_db_sync() -> Session:
    """
    Synchronous database session getter for use in scripts and background tasks.

    Note: This does NOT auto-commit or auto-rollback.
    Caller must manage transactions explicitly.
    """
    return SessionLocal()


def check_db_connection() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def get_session_factory() -> sessionmaker:
    """
    Dependency for work that outlives the request (streamed responses).

    Callers open and close their own sessions from the returned factory.
    """
    return SessionLocal
