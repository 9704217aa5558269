"""
Workout Generation Orchestrator

    generate(user_id, target_cycle_day?, status?, on_progress?) -> Workout

Steps, strictly in order:
    1. profile + prerequisites          (ProfileNotFound, NoApproachSelected)
    2. session: target day / next split session / rotation fallback
                                        (rest day -> RestDayGenerationError)
    3. context: recent exercises, insights, memories, cycle stats
                (best effort), stagnation
    4. oracle exercise selection        (timeout -> retry message)
    5. per-exercise targets, in parallel (overload or estimation chain)
    6. taxonomy + persist
    7. enqueue audio-script enrichment  (failure logged only)

Progress checkpoints (5, 15, 30, 45..59 ramp, 60, 70, 85, 95, 100) go to
an optional callback and are safe to ignore.

DB access stays on the calling thread. Everything step 5 needs is loaded
up front so the worker pool only does arithmetic and oracle calls.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import (
    DraftWorkoutConflictError,
    InvalidCycleDayError,
    NoActiveSplitPlanError,
    NoApproachSelectedError,
    NoSessionForCycleDayError,
    ORACLE_TIMEOUT_USER_MESSAGE,
    OracleTimeoutError,
    ProfileNotFoundError,
    RestDayGenerationError,
)
from models import SetLog, SplitPlan, UserInsight, UserMemory, UserProfile, Workout
from schemas import ExercisePlan
from services import split_plan_service
from services.cycle_stats import calculate_cycle_stats
from services.exercise_oracle import ExerciseOracle, ExerciseSelectionRequest
from services.exercise_stagnation import get_stagnation_data
from services.muscle_groups import (
    classify_workout_type,
    exercise_name_of,
    next_workout_type,
    target_muscle_groups,
    workout_display_name,
)
from services.progressive_overload import (
    SetSnapshot,
    calculate_progressive_target,
    merge_with_learned,
    round_to_step,
    snapshot_from_log,
)
from services.weight_estimation import (
    EstimationContext,
    LearnedWeight,
    first_estimate,
    load_learned_weights,
)
from services.workout_service import NON_TERMINAL_STATUSES

logger = logging.getLogger(__name__)


RECENT_WORKOUTS_LIMIT = 3
HISTORY_SETS_LIMIT = 5
MIN_INSIGHT_RELEVANCE = 0.3
MIN_MEMORY_CONFIDENCE = 0.6
WARMUP_WEIGHT_STEP = 0.5

RAMP_START = 45
RAMP_END = 59
RAMP_INTERVAL_S = 2.0

ProgressCallback = Callable[[str, int, str], None]


@dataclass
class SessionContext:
    workout_type: str
    split_plan_id: Optional[UUID] = None
    cycle_day: Optional[int] = None
    variation: Optional[str] = None
    focus: List[str] = field(default_factory=list)
    target_volume: Dict[str, int] = field(default_factory=dict)
    principles: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Target resolution (runs on worker threads)
# ---------------------------------------------------------------------------

def resolve_exercise_target(
    plan: ExercisePlan,
    history: List[SetSnapshot],
    ctx: EstimationContext,
) -> ExercisePlan:
    """
    Fill target_weight / planned_reps / warmup weights for one exercise.

    With history: progressive overload, blended with a high-confidence
    learned weight. Without: the estimation chain.
    """
    resolved = plan.model_copy(deep=True)

    if history:
        target = calculate_progressive_target(history, resolved.target_reps)
        learned: Optional[LearnedWeight] = ctx.learned_weights.get(ctx.lower_name)
        weight = merge_with_learned(
            target.weight,
            learned.target_weight if learned else None,
            learned.confidence if learned else None,
        )
        if learned and weight != target.weight:
            logger.info(
                f"Blended learned weight for {plan.exercise_name}: "
                f"calculated {target.weight}, learned {learned.target_weight} -> {weight}"
            )
        resolved.target_weight = weight
        resolved.planned_reps = target.reps
    else:
        estimate = first_estimate(ctx)
        resolved.target_weight = estimate.weight
        resolved.planned_reps = resolved.rep_min

    for warmup in resolved.warmup_sets:
        warmup.weight = round_to_step(warmup.weight_percentage / 100 * resolved.target_weight, WARMUP_WEIGHT_STEP)

    if resolved.ai_recommended_sets is None:
        resolved.ai_recommended_sets = resolved.target_sets
    return resolved


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class WorkoutGenerator:
    """
    Usage:
        generator = WorkoutGenerator(oracle, enqueue_audio_scripts=enqueue)
        workout = generator.generate(db, user_id, on_progress=cb)

    One instance can serve many requests; it holds no per-request state.
    """

    def __init__(
        self,
        oracle: ExerciseOracle,
        enqueue_audio_scripts: Optional[Callable[[UUID], Any]] = None,
        max_workers: int = settings.TARGET_RESOLUTION_WORKERS,
        ramp_interval_s: float = RAMP_INTERVAL_S,
    ):
        self.oracle = oracle
        self.enqueue_audio_scripts = enqueue_audio_scripts
        self.max_workers = max(1, max_workers)
        self.ramp_interval_s = ramp_interval_s

    # ==================================================================
    # Progress
    # ==================================================================

    @staticmethod
    def _emit(on_progress: Optional[ProgressCallback], phase: str, percent: int, message: str) -> None:
        if on_progress is None:
            return
        try:
            on_progress(phase, percent, message)
        except Exception as e:
            logger.warning(f"Progress callback failed at {phase}/{percent}: {e}")

    def _start_ramp(self, on_progress: Optional[ProgressCallback]) -> Optional[Callable[[], None]]:
        """
        +1% every ramp interval from 45 up to 59 while the oracle works.

        Returns a stop function that blocks until the ramp thread has exited,
        so no ramp value can be emitted after the caller moves on to 60.
        """
        if on_progress is None:
            return None

        stop = threading.Event()

        def _ramp():
            current = RAMP_START
            while current < RAMP_END and not stop.wait(self.ramp_interval_s):
                current += 1
                self._emit(on_progress, "ai", current, "AI analyzing and selecting exercises")

        thread = threading.Thread(target=_ramp, name="generation-progress", daemon=True)
        thread.start()

        def _stop() -> None:
            stop.set()
            thread.join()

        return _stop

    # ==================================================================
    # Step 1-2
    # ==================================================================

    @staticmethod
    def _load_profile(db: Session, user_id: UUID) -> UserProfile:
        profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
        if not profile:
            raise ProfileNotFoundError()
        if not profile.approach_id:
            raise NoApproachSelectedError()
        return profile

    @staticmethod
    def _session_from_definition(plan: SplitPlan, session: Dict[str, Any], cycle_day: int) -> SessionContext:
        if split_plan_service.is_rest_session(session) or not session.get("workout_type"):
            raise RestDayGenerationError(cycle_day)
        return SessionContext(
            workout_type=session["workout_type"],
            split_plan_id=plan.id,
            cycle_day=cycle_day,
            variation=session.get("variation"),
            focus=list(session.get("focus") or []),
            target_volume=dict(session.get("target_volume") or {}),
            principles=list(session.get("principles") or []),
        )

    def resolve_session(
        self,
        db: Session,
        profile: UserProfile,
        recent: List[Workout],
        target_cycle_day: Optional[int] = None,
    ) -> SessionContext:
        if target_cycle_day is not None and profile.active_split_plan_id:
            plan = db.query(SplitPlan).filter(SplitPlan.id == profile.active_split_plan_id).first()
            if not plan:
                raise NoActiveSplitPlanError()
            session = split_plan_service.session_for_day(plan, target_cycle_day)
            if session is None:
                raise NoSessionForCycleDayError(target_cycle_day)
            return self._session_from_definition(plan, session, target_cycle_day)

        upcoming = split_plan_service.next_session(db, profile)
        if upcoming is not None:
            return self._session_from_definition(upcoming.plan, upcoming.session, upcoming.cycle_day)

        last_type = None
        if recent:
            last_type = recent[0].workout_type or classify_workout_type(recent[0].exercises or [])
        return SessionContext(workout_type=next_workout_type(last_type, profile.preferred_split))

    # ==================================================================
    # Step 3
    # ==================================================================

    @staticmethod
    def _recent_workouts(db: Session, user_id: UUID) -> List[Workout]:
        return (
            db.query(Workout)
            .filter(Workout.user_id == user_id, Workout.status == "completed")
            .order_by(Workout.completed_at.desc())
            .limit(RECENT_WORKOUTS_LIMIT)
            .all()
        )

    @staticmethod
    def _recent_exercise_names(recent: List[Workout]) -> List[str]:
        names: List[str] = []
        for workout in recent:
            for exercise in workout.exercises or []:
                name = exercise_name_of(exercise)
                if name and name not in names:
                    names.append(name)
        return names

    @staticmethod
    def _active_insights(db: Session, user_id: UUID) -> List[Dict[str, Any]]:
        rows = (
            db.query(UserInsight)
            .filter(
                UserInsight.user_id == user_id,
                UserInsight.status == "active",
                UserInsight.relevance_score >= MIN_INSIGHT_RELEVANCE,
            )
            .order_by(UserInsight.relevance_score.desc())
            .all()
        )
        return [
            {
                "id": str(r.id),
                "type": r.insight_type,
                "severity": r.severity,
                "exercise_name": r.exercise_name,
                "user_note": r.user_note,
                "metadata": r.insight_metadata,
            }
            for r in rows
        ]

    @staticmethod
    def _active_memories(db: Session, user_id: UUID) -> List[Dict[str, Any]]:
        rows = (
            db.query(UserMemory)
            .filter(
                UserMemory.user_id == user_id,
                UserMemory.status == "active",
                UserMemory.confidence_score >= MIN_MEMORY_CONFIDENCE,
            )
            .order_by(UserMemory.confidence_score.desc())
            .all()
        )
        return [
            {
                "id": str(r.id),
                "category": r.memory_category,
                "title": r.title,
                "description": r.description,
                "confidence_score": r.confidence_score,
                "related_exercises": r.related_exercises or [],
                "related_muscles": r.related_muscles or [],
            }
            for r in rows
        ]

    @staticmethod
    def _cycle_progress(db: Session, profile: UserProfile) -> Optional[Dict[str, Any]]:
        if not profile.active_split_plan_id:
            return None
        try:
            return calculate_cycle_stats(db, profile).to_oracle_context()
        except Exception as e:
            db.rollback()
            logger.warning(f"Cycle progress unavailable for user {profile.user_id}, continuing without it: {e}")
            return None

    @staticmethod
    def _exercise_history(db: Session, user_id: UUID, exercise_name: str, rep_min: int) -> List[SetSnapshot]:
        rows = (
            db.query(SetLog)
            .join(Workout, Workout.id == SetLog.workout_id)
            .filter(
                Workout.user_id == user_id,
                SetLog.exercise_name.ilike(exercise_name),
                SetLog.set_type == "working",
                SetLog.skipped.is_(False),
            )
            .order_by(SetLog.created_at.desc())
            .limit(HISTORY_SETS_LIMIT)
            .all()
        )
        return [snapshot_from_log(r, rep_min) for r in rows]

    # ==================================================================
    # Public API
    # ==================================================================

    def generate(
        self,
        db: Session,
        user_id: UUID,
        target_cycle_day: Optional[int] = None,
        status: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Workout:
        self._emit(on_progress, "profile", 5, "Loading user profile and preferences")
        profile = self._load_profile(db, user_id)

        self._emit(on_progress, "profile", 15, "Loading recent workout history")
        recent = self._recent_workouts(db, user_id)
        session = self.resolve_session(db, profile, recent, target_cycle_day)

        self._emit(on_progress, "split", 30, "Planning workout split and muscle groups")
        recent_names = self._recent_exercise_names(recent)
        custom_ids = [e.get("id") for e in (profile.custom_equipment or []) if e.get("id")]
        request = ExerciseSelectionRequest(
            user_id=str(user_id),
            workout_type=session.workout_type,
            approach_id=profile.approach_id,
            weak_points=list(profile.weak_points or []),
            available_equipment=list(profile.available_equipment or []) + custom_ids,
            recent_exercises=recent_names,
            exercise_history_context=[r.to_dict() for r in get_stagnation_data(db, user_id, recent_names)],
            session_focus=session.focus,
            target_volume=session.target_volume,
            session_principles=session.principles,
            age=profile.age,
            gender=profile.gender,
            bodyweight=profile.weight,
            experience_years=profile.experience_years,
            mesocycle_week=profile.current_mesocycle_week,
            mesocycle_phase=profile.mesocycle_phase,
            caloric_phase=profile.caloric_phase,
            caloric_intake_kcal=profile.caloric_intake_kcal,
            active_insights=self._active_insights(db, user_id),
            active_memories=self._active_memories(db, user_id),
            current_cycle_progress=self._cycle_progress(db, profile),
            previous_response_id=recent[0].ai_response_id if recent else None,
        )

        self._emit(on_progress, "ai", RAMP_START, "AI analyzing and selecting exercises")
        stop_ramp = self._start_ramp(on_progress)
        try:
            selection = self.oracle.select_exercises(request)
        except OracleTimeoutError as e:
            logger.error(f"Exercise selection timed out for user {user_id}: {e}")
            raise OracleTimeoutError(ORACLE_TIMEOUT_USER_MESSAGE) from e
        finally:
            if stop_ramp is not None:
                stop_ramp()
        self._emit(on_progress, "ai", 60, "AI exercise selection complete")

        self._emit(on_progress, "optimization", 70, "Calculating progressive overload targets")
        learned = load_learned_weights(db, user_id)
        histories = [
            self._exercise_history(db, user_id, plan.exercise_name, plan.rep_min)
            for plan in selection.exercises
        ]
        contexts = [
            EstimationContext(
                exercise_name=plan.exercise_name,
                gender=profile.gender,
                bodyweight=profile.weight,
                age=profile.age,
                experience_years=profile.experience_years,
                equipment=plan.equipment_variant,
                strength_baseline=dict(profile.strength_baseline or {}),
                learned_weights=learned,
                oracle=self.oracle,
            )
            for plan in selection.exercises
        ]
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="targets") as pool:
            exercises = list(pool.map(resolve_exercise_target, selection.exercises, histories, contexts))
        self._emit(on_progress, "optimization", 85, "Analyzing performance history")

        groups = target_muscle_groups(exercises)
        workout = Workout(
            user_id=user_id,
            approach_id=profile.approach_id,
            split_plan_id=session.split_plan_id,
            cycle_day=session.cycle_day,
            variation=session.variation,
            split_type=profile.preferred_split,
            workout_type=session.workout_type,
            workout_name=workout_display_name(session.workout_type, groups),
            target_muscle_groups=groups,
            exercises=[e.model_dump() for e in exercises],
            status=status or "ready",
            planned_at=datetime.now(timezone.utc).date(),
            ai_response_id=selection.response_id,
            workout_rationale=selection.workout_rationale,
            insight_influenced_changes=selection.insight_influenced_changes or None,
        )
        db.add(workout)
        db.commit()
        db.refresh(workout)
        logger.info(
            f"Generated {workout.workout_type} workout {workout.id} for user {user_id} "
            f"({len(exercises)} exercises, status {workout.status}, cycle day {workout.cycle_day})",
            extra={"user_id": user_id, "workout_id": workout.id},
        )
        self._emit(on_progress, "finalize", 95, "Finalizing workout details")

        self._enqueue_enrichment(workout)
        self._emit(on_progress, "complete", 100, "Workout ready!")
        return workout

    def _enqueue_enrichment(self, workout: Workout) -> None:
        if self.enqueue_audio_scripts is None:
            return
        try:
            self.enqueue_audio_scripts(workout.id)
        except Exception as e:
            logger.warning(f"Could not enqueue audio scripts for workout {workout.id}: {e}")

    def generate_draft_workout(
        self,
        db: Session,
        user_id: UUID,
        target_cycle_day: int,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Workout:
        """
        Pre-generate a future cycle day as a draft.

        Rejects today or earlier, users without an active plan, and slots
        that already hold a draft / ready / in-progress workout.
        """
        profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
        if not profile:
            raise ProfileNotFoundError()

        current_day = profile.current_cycle_day or 1
        if target_cycle_day <= current_day:
            raise InvalidCycleDayError(
                f"Cannot pre-generate cycle day {target_cycle_day}: "
                f"it must come after the current day ({current_day})"
            )

        plan = split_plan_service.get_active_split_plan(db, user_id)
        if not plan or plan.id != profile.active_split_plan_id:
            raise NoActiveSplitPlanError("No active split plan. Draft workouts need a split plan.")
        if target_cycle_day > plan.cycle_days:
            raise InvalidCycleDayError(
                f"Cycle day {target_cycle_day} is outside this plan ({plan.cycle_days} days)"
            )

        existing = (
            db.query(Workout)
            .filter(
                Workout.split_plan_id == plan.id,
                Workout.cycle_day == target_cycle_day,
                Workout.status.in_(NON_TERMINAL_STATUSES),
            )
            .first()
        )
        if existing:
            raise DraftWorkoutConflictError(target_cycle_day, existing.status)

        return self.generate(
            db,
            user_id,
            target_cycle_day=target_cycle_day,
            status="draft",
            on_progress=on_progress,
        )
