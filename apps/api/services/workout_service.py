"""
Workout lifecycle and set log.

    draft | ready --(first set / explicit start)--> in_progress --> completed

Status never moves backwards. Completion is idempotent and is the only
caller of split_plan_service.advance_cycle. The workout row is committed
before the cycle advances, so an advance failure never undoes a
completion; it comes back as a warning instead.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import WorkoutStateError
from models import SetLog, Workout
from schemas import CompletedSet, LearnedTargetWeight, SetLogUpdate, WorkoutCompleteRequest
from services import split_plan_service
from services.exercise_oracle import normalize_exercise
from services.rest_timer_limits import RestTimerLimits
from services.workout_advisors import (
    HydrationInput,
    HydrationSuggestion,
    WarmupSkipSuggestion,
    suggest_hydration,
    suggest_warmup_skip,
)
from services.workout_execution import WorkoutSession

logger = logging.getLogger(__name__)


NON_TERMINAL_STATUSES = ("draft", "ready", "in_progress")
STARTABLE_STATUSES = ("draft", "ready")
CYCLE_ADVANCE_WARNING = (
    "Workout saved, but your split plan could not move to the next day. "
    "It will be corrected on your next workout."
)


@dataclass
class CompletionStats:
    total_volume: float
    total_sets: int
    duration_seconds: Optional[int]
    mental_readiness_overall: Optional[float]


@dataclass
class CompletionResult:
    workout: Workout
    warning: Optional[str] = None
    next_cycle_day: Optional[int] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_workout(db: Session, user_id: UUID, workout_id: UUID) -> Optional[Workout]:
    return (
        db.query(Workout)
        .filter(Workout.id == workout_id, Workout.user_id == user_id)
        .first()
    )


def get_completed(db: Session, user_id: UUID, limit: int = 20) -> List[Workout]:
    return (
        db.query(Workout)
        .filter(Workout.user_id == user_id, Workout.status == "completed")
        .order_by(Workout.completed_at.desc())
        .limit(limit)
        .all()
    )


def get_in_progress(db: Session, user_id: UUID) -> Optional[Workout]:
    """Most recently started in-progress workout, if any."""
    return (
        db.query(Workout)
        .filter(Workout.user_id == user_id, Workout.status == "in_progress")
        .order_by(Workout.started_at.desc())
        .first()
    )


def list_sets(db: Session, workout_id: UUID) -> List[SetLog]:
    return (
        db.query(SetLog)
        .filter(SetLog.workout_id == workout_id)
        .order_by(SetLog.exercise_index, SetLog.created_at, SetLog.set_number)
        .all()
    )


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def _start(workout: Workout, now: datetime) -> bool:
    changed = False
    if workout.started_at is None:
        workout.started_at = now
        changed = True
    if workout.status in STARTABLE_STATUSES:
        workout.status = "in_progress"
        changed = True
    return changed


def mark_started(db: Session, workout: Workout, now: Optional[datetime] = None) -> Workout:
    """Idempotent; started_at is written once."""
    if workout.status == "completed":
        return workout
    if _start(workout, now or _utcnow()):
        db.commit()
        db.refresh(workout)
        logger.info(f"Workout {workout.id} started")
    return workout


def _validate_index_map(index_map: Dict[int, int], old_count: int, new_count: int) -> None:
    if len(set(index_map.values())) != len(index_map):
        raise WorkoutStateError("Exercise index map sends two exercises to the same slot")
    for old, new in index_map.items():
        if not 0 <= old < old_count or not 0 <= new < new_count:
            raise WorkoutStateError(f"Exercise index map entry {old} -> {new} is out of range")


def save_progress(
    db: Session,
    workout: Workout,
    exercises: List[Dict[str, Any]],
    index_map: Optional[Dict[int, int]] = None,
) -> Workout:
    """
    Persist the in-session exercise list (after add / substitute / reorder).

    index_map is old slot -> new slot (WorkoutSession.index_remap()). Logged
    sets are moved with it so they stay attached to their exercise; slots
    missing from the map keep their sets where they are.
    """
    if workout.status == "completed":
        raise WorkoutStateError("Cannot modify a completed workout")

    plans = [normalize_exercise(e).model_dump() for e in exercises]
    moves = {old: new for old, new in (index_map or {}).items() if old != new}
    if moves:
        _validate_index_map(index_map, len(workout.exercises or []), len(plans))
        for entry in db.query(SetLog).filter(SetLog.workout_id == workout.id).all():
            if entry.exercise_index in moves:
                entry.exercise_index = moves[entry.exercise_index]
        logger.info(f"Workout {workout.id}: moved logged sets {moves}")

    workout.exercises = plans
    db.commit()
    db.refresh(workout)
    return workout


def append_set(db: Session, workout: Workout, data: CompletedSet, now: Optional[datetime] = None) -> SetLog:
    """Append one set. The first logged set also starts the workout."""
    if workout.status == "completed":
        raise WorkoutStateError("Cannot log sets on a completed workout")

    exercises = workout.exercises or []
    if data.exercise_index >= len(exercises):
        raise WorkoutStateError(
            f"Exercise index {data.exercise_index} out of range ({len(exercises)} exercises)"
        )
    plan = exercises[data.exercise_index]

    now = now or _utcnow()
    entry = SetLog(
        workout_id=workout.id,
        exercise_index=data.exercise_index,
        exercise_name=data.exercise_name or plan.get("exercise_name"),
        set_number=data.set_index,
        set_type=data.set_type,
        weight_target=plan.get("target_weight"),
        weight_actual=data.weight_actual,
        reps_target=(plan.get("target_reps") or [None])[0],
        reps_actual=data.reps_actual,
        rir_actual=data.rir_actual,
        mental_readiness=data.mental_readiness,
        skipped=data.skipped,
        notes=data.notes,
        created_at=now,
    )
    db.add(entry)
    _start(workout, now)
    db.commit()
    db.refresh(entry)
    return entry


def edit_set(db: Session, workout: Workout, set_id: UUID, data: SetLogUpdate) -> Optional[SetLog]:
    """Rewrite exactly one logged set; None when it doesn't belong to the workout."""
    entry = (
        db.query(SetLog)
        .filter(SetLog.id == set_id, SetLog.workout_id == workout.id)
        .first()
    )
    if not entry:
        return None

    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(entry, key, value)
    db.commit()
    db.refresh(entry)
    return entry


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------

def _working(sets: List[SetLog]) -> List[SetLog]:
    return [s for s in sets if s.set_type == "working" and not s.skipped]


def compute_stats(workout: Workout, sets: List[SetLog], completed_at: datetime) -> CompletionStats:
    working = _working(sets)
    volume = sum((s.weight_actual or 0) * (s.reps_actual or 0) for s in working)

    duration = None
    started = _as_utc(workout.started_at)
    if started is not None:
        duration = max(0, int((completed_at - started).total_seconds()))

    readiness = [s.mental_readiness for s in sets if s.mental_readiness is not None]
    avg_readiness = round(sum(readiness) / len(readiness), 2) if readiness else None

    return CompletionStats(
        total_volume=round(volume, 2),
        total_sets=len(working),
        duration_seconds=duration,
        mental_readiness_overall=avg_readiness,
    )


def compute_learned_weights(sets: List[SetLog], now: datetime) -> List[Dict[str, Any]]:
    """
    One entry per exercise: the load of its last working set.

    Confidence is high when RIR was logged on at least two working sets of
    that exercise, medium otherwise.
    """
    by_exercise: Dict[str, List[SetLog]] = {}
    for s in _working(sets):
        if not s.weight_actual or s.weight_actual <= 0:
            continue
        by_exercise.setdefault(s.exercise_name, []).append(s)

    learned = []
    for name, logged in by_exercise.items():
        last = logged[-1]
        rir_logged = sum(1 for s in logged if s.rir_actual is not None)
        learned.append(LearnedTargetWeight(
            exercise_name=name,
            target_weight=last.weight_actual,
            confidence="high" if rir_logged >= 2 else "medium",
            updated_at=now,
        ).model_dump(mode="json"))
    return learned


def complete_with_stats(
    db: Session,
    workout: Workout,
    stats: Optional[WorkoutCompleteRequest] = None,
    now: Optional[datetime] = None,
) -> CompletionResult:
    """
    Complete a workout, then advance the split cycle once.

    Already-completed workouts are returned untouched (no second advance).
    """
    if workout.status == "completed":
        logger.warning(f"Workout {workout.id} already completed")
        return CompletionResult(workout=workout)

    stats = stats or WorkoutCompleteRequest()
    completed_at = _as_utc(stats.completed_at) or now or _utcnow()
    sets = list_sets(db, workout.id)
    computed = compute_stats(workout, sets, completed_at)

    workout.status = "completed"
    workout.completed_at = completed_at
    if workout.started_at is None:
        workout.started_at = completed_at
    workout.total_volume = stats.total_volume if stats.total_volume is not None else computed.total_volume
    workout.total_sets = stats.total_sets if stats.total_sets is not None else computed.total_sets
    workout.duration_seconds = (
        stats.duration_seconds if stats.duration_seconds is not None else computed.duration_seconds
    )
    workout.mental_readiness_overall = (
        stats.mental_readiness_overall
        if stats.mental_readiness_overall is not None
        else computed.mental_readiness_overall
    )
    workout.learned_target_weights = compute_learned_weights(sets, completed_at) or None

    db.commit()
    db.refresh(workout)
    logger.info(
        f"Workout {workout.id} completed: {workout.total_sets} sets, volume {workout.total_volume}"
    )

    result = CompletionResult(workout=workout)
    if workout.split_plan_id:
        try:
            result.next_cycle_day = split_plan_service.advance_cycle(
                db, workout.user_id, completed_day=workout.cycle_day
            )
        except Exception as e:
            db.rollback()
            logger.error(
                f"Cycle advance failed after completing workout {workout.id} "
                f"(user {workout.user_id}, plan {workout.split_plan_id}): {e}",
                extra={"user_id": workout.user_id, "workout_id": workout.id, "split_plan_id": workout.split_plan_id},
            )
            result.warning = CYCLE_ADVANCE_WARNING

    return result


# ---------------------------------------------------------------------------
# In-session views
# ---------------------------------------------------------------------------

def resume_session(db: Session, workout: Workout) -> WorkoutSession:
    return WorkoutSession.resume_from_workout(workout, list_sets(db, workout.id))


def _exercise_index(session: WorkoutSession, exercise_index: Optional[int]) -> int:
    idx = session.current_index if exercise_index is None else exercise_index
    if not 0 <= idx < len(session.exercises):
        raise WorkoutStateError(f"Workout {session.workout_id} has no exercise at index {idx}")
    return idx


def _latest(sets: List[SetLog]) -> Optional[SetLog]:
    done = [s for s in sets if not s.skipped]
    if not done:
        return None
    return max(done, key=lambda s: (_as_utc(s.created_at), s.exercise_index, s.set_number))


def hydration_advice(
    db: Session,
    workout: Workout,
    last_dismissed_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> HydrationSuggestion:
    """Hydration check from the set log; elapsed time runs from started_at."""
    now = now or _utcnow()
    sets = list_sets(db, workout.id)
    started_at = _as_utc(workout.started_at)
    last = _latest(sets)
    return suggest_hydration(HydrationInput(
        workout_duration_s=max(0.0, (now - started_at).total_seconds()) if started_at else 0.0,
        total_sets_completed=sum(1 for s in sets if not s.skipped),
        exercise_name=last.exercise_name if last else None,
        last_set_rir=last.rir_actual if last else None,
        mental_readiness=last.mental_readiness if last else None,
        last_dismissed_at=_as_utc(last_dismissed_at),
        now=now,
    ))


def warmup_skip_advice(
    db: Session,
    workout: Workout,
    exercise_index: Optional[int] = None,
    mesocycle_phase: Optional[str] = None,
    mental_readiness: Optional[int] = None,
) -> Tuple[int, WarmupSkipSuggestion]:
    """
    (exercise index, suggestion) for one exercise, the session's current
    one by default. Readiness falls back to the most recently logged value.
    """
    sets = list_sets(db, workout.id)
    session = WorkoutSession.resume_from_workout(workout, sets)
    idx = _exercise_index(session, exercise_index)
    if mental_readiness is None:
        rated = [s for s in sets if s.mental_readiness is not None]
        last = _latest(rated)
        mental_readiness = last.mental_readiness if last else None
    return idx, suggest_warmup_skip(
        session.exercise_dicts(),
        idx,
        mesocycle_phase=mesocycle_phase,
        mental_readiness=mental_readiness,
    )


def rest_limits(
    db: Session,
    workout: Workout,
    exercise_index: Optional[int] = None,
    current_rest_seconds: Optional[int] = None,
) -> Tuple[int, RestTimerLimits]:
    session = resume_session(db, workout)
    idx = _exercise_index(session, exercise_index)
    return idx, session.rest_limits(
        approach_name=workout.approach_id,
        index=idx,
        current_rest_seconds=current_rest_seconds,
    )
