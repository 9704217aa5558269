"""
Workouts API Router

Generation (streamed + pollable), draft pre-generation, and the workout
lifecycle: start, log/edit sets, save in-session edits, complete.
In-session views (resume state, hydration and warmup-skip advice, rest
limits) are read-only and derived from the set log.
"""

import asyncio
import json
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from core.auth import get_current_user_id
from core.database import get_db, get_session_factory
from core.exceptions import (
    NotFoundError,
    OracleError,
    OracleTimeoutError,
    WorkoutConfigurationError,
)
from schemas import (
    CompletedSet,
    DraftWorkoutRequest,
    GenerateWorkoutRequest,
    GenerationStatusResponse,
    HydrationAdviceResponse,
    RestLimitsResponse,
    SaveProgressRequest,
    SetLogResponse,
    SetLogUpdate,
    WarmupSkipAdviceResponse,
    WorkoutCompleteRequest,
    WorkoutCompleteResponse,
    WorkoutResponse,
    WorkoutSessionState,
)
from services import user_profile_service, workout_service
from services.generation_cache import GenerationCache
from services.workout_generator import WorkoutGenerator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/workouts", tags=["Workouts"])

HEARTBEAT_INTERVAL_S = 2.0
GENERIC_GENERATION_ERROR = "Workout generation failed. Please try again."


def get_workout_generator(request: Request) -> WorkoutGenerator:
    return request.app.state.workout_generator


def get_generation_cache(request: Request) -> GenerationCache:
    return request.app.state.generation_cache


def _event(name: str, data: Dict[str, Any]) -> bytes:
    return f"event: {name}\ndata: ".encode("utf-8") + json.dumps({"type": name, **data}).encode("utf-8") + b"\n\n"


def _error_fields(exc: Exception) -> Tuple[str, str]:
    """(error_code, user-facing message) for a failed generation."""
    if isinstance(exc, WorkoutConfigurationError):
        return exc.error_code, str(exc)
    if isinstance(exc, OracleTimeoutError):
        return "ORACLE_TIMEOUT", str(exc)
    if isinstance(exc, OracleError):
        return "ORACLE_ERROR", str(exc)
    return "INTERNAL_ERROR", GENERIC_GENERATION_ERROR


def _load_workout(db: Session, user_id: UUID, workout_id: UUID):
    workout = workout_service.get_workout(db, user_id, workout_id)
    if not workout:
        raise NotFoundError("Workout", str(workout_id))
    return workout


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

@router.post("/generate")
async def generate_workout_stream(
    body: GenerateWorkoutRequest,
    user_id: UUID = Depends(get_current_user_id),
    generator: WorkoutGenerator = Depends(get_workout_generator),
    cache: GenerationCache = Depends(get_generation_cache),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Generate a workout, streaming progress as SSE.

    The outcome is also recorded under body.request_id, so a client that
    drops the stream can poll GET /generate/{request_id} instead of
    generating again.
    """
    request_id = body.request_id
    cache.start(user_id, request_id)
    loop = asyncio.get_running_loop()
    progress: asyncio.Queue = asyncio.Queue()

    def _on_progress(phase: str, percent: int, message: str) -> None:
        cache.report_progress(user_id, request_id, percent, phase, message)
        loop.call_soon_threadsafe(
            progress.put_nowait, {"phase": phase, "percent": percent, "message": message}
        )

    def _run() -> Dict[str, Any]:
        db = session_factory()
        try:
            workout = generator.generate(
                db,
                user_id,
                target_cycle_day=body.target_cycle_day,
                status=body.status,
                on_progress=_on_progress,
            )
            payload = WorkoutResponse.model_validate(workout).model_dump(mode="json")
            cache.complete(user_id, request_id, payload)
            return payload
        except Exception as e:
            db.rollback()
            error_code, message = _error_fields(e)
            if error_code == "INTERNAL_ERROR":
                logger.exception(f"Workout generation {request_id} failed for user {user_id}")
            cache.error(user_id, request_id, message, error_code)
            raise
        finally:
            db.close()

    async def _gen() -> AsyncIterator[bytes]:
        task = asyncio.ensure_future(asyncio.to_thread(_run))
        yield _event("meta", {"request_id": request_id})

        while not task.done() or not progress.empty():
            try:
                update = await asyncio.wait_for(progress.get(), timeout=HEARTBEAT_INTERVAL_S)
            except asyncio.TimeoutError:
                if not task.done():
                    yield _event("heartbeat", {})
                continue
            yield _event("progress", update)

        try:
            workout = await task
        except Exception as e:
            error_code, message = _error_fields(e)
            yield _event("error", {"error_code": error_code, "message": message})
            return
        yield _event("complete", {"workout": workout})

    return StreamingResponse(
        _gen(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            # Nginx / some proxies buffer by default; disable buffering when present.
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/generate/{request_id}", response_model=GenerationStatusResponse)
def get_generation_status(
    request_id: str,
    user_id: UUID = Depends(get_current_user_id),
    cache: GenerationCache = Depends(get_generation_cache),
):
    """Poll a generation; unknown, expired or other users' ids report status "not_found"."""
    entry = cache.get(user_id, request_id)
    if entry is None:
        return GenerationStatusResponse(request_id=request_id, status="not_found")
    return GenerationStatusResponse(
        request_id=request_id,
        status=entry.status.value,
        progress=cache.estimated_progress(user_id, request_id),
        phase=entry.phase,
        message=entry.message,
        workout=entry.workout,
        error=entry.error,
        error_code=entry.error_code,
    )


@router.post("/drafts", response_model=WorkoutResponse, status_code=201)
def create_draft_workout(
    body: DraftWorkoutRequest,
    user_id: UUID = Depends(get_current_user_id),
    generator: WorkoutGenerator = Depends(get_workout_generator),
    db: Session = Depends(get_db),
):
    """Pre-generate a future cycle day of the active split plan."""
    return generator.generate_draft_workout(db, user_id, body.target_cycle_day)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@router.get("/in-progress", response_model=Optional[WorkoutResponse])
def get_in_progress_workout(
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return workout_service.get_in_progress(db, user_id)


@router.get("/history", response_model=List[WorkoutResponse])
def list_completed_workouts(
    limit: int = 20,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return workout_service.get_completed(db, user_id, limit=min(max(limit, 1), 100))


@router.get("/{workout_id}", response_model=WorkoutResponse)
def get_workout(
    workout_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return _load_workout(db, user_id, workout_id)


@router.post("/{workout_id}/start", response_model=WorkoutResponse)
def start_workout(
    workout_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    workout = _load_workout(db, user_id, workout_id)
    return workout_service.mark_started(db, workout)


@router.put("/{workout_id}/exercises", response_model=WorkoutResponse)
def save_workout_progress(
    workout_id: UUID,
    body: SaveProgressRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Persist the exercise list after in-session edits (add, substitute, reorder)."""
    workout = _load_workout(db, user_id, workout_id)
    return workout_service.save_progress(db, workout, body.exercises, index_map=body.index_map)


@router.get("/{workout_id}/sets", response_model=List[SetLogResponse])
def list_workout_sets(
    workout_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    workout = _load_workout(db, user_id, workout_id)
    return workout_service.list_sets(db, workout.id)


@router.post("/{workout_id}/sets", response_model=SetLogResponse, status_code=201)
def log_set(
    workout_id: UUID,
    body: CompletedSet,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    workout = _load_workout(db, user_id, workout_id)
    return workout_service.append_set(db, workout, body)


@router.put("/{workout_id}/sets/{set_id}", response_model=SetLogResponse)
def edit_set(
    workout_id: UUID,
    set_id: UUID,
    body: SetLogUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    workout = _load_workout(db, user_id, workout_id)
    entry = workout_service.edit_set(db, workout, set_id, body)
    if not entry:
        raise NotFoundError("Set", str(set_id))
    return entry


@router.post("/{workout_id}/complete", response_model=WorkoutCompleteResponse)
def complete_workout(
    workout_id: UUID,
    body: Optional[WorkoutCompleteRequest] = None,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Complete and advance the split cycle; a failed advance comes back as `warning`."""
    workout = _load_workout(db, user_id, workout_id)
    result = workout_service.complete_with_stats(db, workout, body)
    return WorkoutCompleteResponse(
        workout=WorkoutResponse.model_validate(result.workout),
        warning=result.warning,
    )


# ---------------------------------------------------------------------------
# In-session views
# ---------------------------------------------------------------------------

@router.get("/{workout_id}/session", response_model=WorkoutSessionState)
def get_session_state(
    workout_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Resume point for a client reconnecting mid-workout, rebuilt from the set log."""
    workout = _load_workout(db, user_id, workout_id)
    return workout_service.resume_session(db, workout).summary()


@router.get("/{workout_id}/advice/hydration", response_model=HydrationAdviceResponse)
def get_hydration_advice(
    workout_id: UUID,
    last_dismissed_at: Optional[datetime] = None,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    workout = _load_workout(db, user_id, workout_id)
    return workout_service.hydration_advice(db, workout, last_dismissed_at=last_dismissed_at)


@router.get("/{workout_id}/advice/warmup-skip", response_model=WarmupSkipAdviceResponse)
def get_warmup_skip_advice(
    workout_id: UUID,
    exercise_index: Optional[int] = None,
    mental_readiness: Optional[int] = Query(None, ge=1, le=5),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    workout = _load_workout(db, user_id, workout_id)
    profile = user_profile_service.get_profile(db, user_id)
    idx, suggestion = workout_service.warmup_skip_advice(
        db,
        workout,
        exercise_index=exercise_index,
        mesocycle_phase=profile.mesocycle_phase if profile else None,
        mental_readiness=mental_readiness,
    )
    return WarmupSkipAdviceResponse(exercise_index=idx, **asdict(suggestion))


@router.get("/{workout_id}/rest-limits", response_model=RestLimitsResponse)
def get_rest_limits(
    workout_id: UUID,
    exercise_index: Optional[int] = None,
    current_rest_seconds: Optional[int] = Query(None, ge=0),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Rest bounds for the workout's approach and where the current setting sits in them."""
    workout = _load_workout(db, user_id, workout_id)
    idx, limits = workout_service.rest_limits(
        db, workout, exercise_index=exercise_index, current_rest_seconds=current_rest_seconds
    )
    return RestLimitsResponse(exercise_index=idx, **asdict(limits))
