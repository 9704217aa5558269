"""
FastAPI application entry point.

This module sets up the FastAPI application with middleware, routers,
exception handlers and the process-wide generation services.
"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from routers import profile, split_plans, workouts
from core.config import settings
from core.database import check_db_connection
from core.logging import setup_logging
from core.exceptions import (
    APIException,
    OracleError,
    OracleTimeoutError,
    WorkoutConfigurationError,
)
from services.exercise_oracle import ExerciseOracle
from services.generation_cache import GenerationCache
from services.workout_generator import WorkoutGenerator
from tasks.audio_script_tasks import enqueue_audio_scripts
import logging
import time

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Workout Engine API",
    description="Workout generation, split-plan cycles and in-session tracking",
    version="1.0.0",
    docs_url="/docs" if (settings.DEBUG or settings.EXPOSE_API_DOCS) else None,
    redoc_url="/redoc" if (settings.DEBUG or settings.EXPOSE_API_DOCS) else None,
)

# Process-wide services. The generation cache is in-memory, so every
# instance behind a load balancer has its own.
oracle = ExerciseOracle.from_settings()
app.state.generation_cache = GenerationCache()
app.state.workout_generator = WorkoutGenerator(oracle, enqueue_audio_scripts=enqueue_audio_scripts)


@app.on_event("shutdown")
async def shutdown_oracle():
    oracle.shutdown()


# CORS middleware
# Production: set CORS_ORIGINS env var (comma-separated)
# Development: DEBUG=True allows all origins
if settings.DEBUG:
    allowed_origins = ["*"]
elif settings.CORS_ORIGINS:
    allowed_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",")]
else:
    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing information."""
    start_time = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"Request failed: {request.method} {request.url.path}",
            exc_info=True,
            extra={
                "extra_fields": {
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                }
            }
        )
        raise

    process_time = time.time() - start_time
    logger.info(
        f"Response: {request.method} {request.url.path} - {response.status_code}",
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time_ms": round(process_time * 1000, 2),
            }
        }
    )
    response.headers["X-Process-Time"] = str(process_time)
    return response


# Error handlers
@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code},
        headers=exc.headers,
    )


@app.exception_handler(WorkoutConfigurationError)
async def configuration_error_handler(request: Request, exc: WorkoutConfigurationError):
    """Terminal precondition failures; the message is shown to the user as-is."""
    logger.info(f"Configuration error on {request.url.path}: {exc.error_code} {exc}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "error_code": exc.error_code},
    )


@app.exception_handler(OracleError)
async def oracle_error_handler(request: Request, exc: OracleError):
    timed_out = isinstance(exc, OracleTimeoutError)
    logger.error(f"Oracle error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE if timed_out else status.HTTP_502_BAD_GATEWAY,
        content={
            "detail": str(exc),
            "error_code": "ORACLE_TIMEOUT" if timed_out else "ORACLE_ERROR",
            "retryable": True,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
            }
        }
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/health")
async def health():
    """
    Simple health check for load balancers and uptime monitors.

    Returns:
        - 200: Core systems operational
        - 503: Database unavailable
    """
    if not check_db_connection():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "database": "unavailable",
            }
        )
    return {
        "status": "healthy",
        "timestamp": time.time(),
    }


app.include_router(profile.router)
app.include_router(split_plans.router)
app.include_router(workouts.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
