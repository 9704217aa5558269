"""
In-Session Execution

One WorkoutSession per active workout on a client connection. Holds the
exercise cursor, per-exercise completed sets, the rest timer and the
caches that in-session modifications need. Nothing here touches the
database; callers persist through workout_service.save_progress /
append_set.

Per exercise:   warmups remaining -> working sets remaining -> complete
Per session:    not_started -> in_progress -> complete

The rest timer is anchored to a wall-clock start time. Remaining time is
recomputed from the anchor on every read, so a suspended process comes
back with the right value instead of a stale countdown.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.config import settings
from core.exceptions import OracleError
from models import SetLog, Workout
from schemas import CompletedSet, ExercisePlan
from services.exercise_oracle import ExerciseOracle, ProgressionSuggestion, normalize_exercise
from services.progressive_overload import SetSnapshot, calculate_progressive_target
from services.rest_timer_limits import (
    ADJUST_STEP_SECONDS,
    RestTimerLimits,
    adjust_rest_seconds,
    calculate_rest_timer_limits,
    rest_exercise_type,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


# ---------------------------------------------------------------------------
# Rest timer
# ---------------------------------------------------------------------------

class RestTimer:
    """
    Countdown anchored by (started_at, duration_s).

    remaining() = max(0, duration - (now - started_at)); reaching zero ends
    the rest period. adjust() changes the duration and leaves the elapsed
    time alone.
    """

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self.started_at: Optional[float] = None
        self.duration_s: float = 0

    def start(self, duration_s: float) -> None:
        self.started_at = self._clock()
        self.duration_s = max(0, duration_s)

    def remaining(self) -> float:
        if self.started_at is None:
            return 0
        left = max(0.0, self.duration_s - (self._clock() - self.started_at))
        if left == 0:
            self.started_at = None
        return left

    @property
    def is_resting(self) -> bool:
        return self.remaining() > 0

    def adjust(self, delta_s: float = ADJUST_STEP_SECONDS) -> float:
        if self.started_at is None:
            return 0
        self.duration_s = adjust_rest_seconds(self.duration_s, delta_s)
        return self.remaining()

    def skip(self) -> None:
        self.started_at = None
        self.duration_s = 0


# ---------------------------------------------------------------------------
# Per-exercise state
# ---------------------------------------------------------------------------

@dataclass
class ExerciseState:
    plan: ExercisePlan
    completed_sets: List[CompletedSet] = field(default_factory=list)
    # Slot its logged sets use in the database; None until first saved.
    persisted_index: Optional[int] = None

    def count(self, set_type: str) -> int:
        return sum(1 for s in self.completed_sets if s.set_type == set_type)

    @property
    def warmups_remaining(self) -> int:
        return max(0, len(self.plan.warmup_sets) - self.count("warmup"))

    @property
    def working_remaining(self) -> int:
        return max(0, self.plan.target_sets - self.count("working"))

    @property
    def is_complete(self) -> bool:
        return self.warmups_remaining == 0 and self.working_remaining == 0

    @property
    def next_set_type(self) -> Optional[str]:
        if self.warmups_remaining:
            return "warmup"
        if self.working_remaining:
            return "working"
        return None

    @property
    def last_working_set(self) -> Optional[CompletedSet]:
        for s in reversed(self.completed_sets):
            if s.set_type == "working" and not s.skipped:
                return s
        return None


@dataclass
class ModificationResult:
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class WorkoutSession:
    """
    Usage:
        session = WorkoutSession(workout.id, user_id, plans, oracle=oracle)
        logged = session.complete_set(weight=60, reps=10, rir=2)
        suggestion = session.request_progression_suggestion()
    """

    def __init__(
        self,
        workout_id: Any,
        user_id: Any,
        exercises: List[ExercisePlan],
        oracle: Optional[ExerciseOracle] = None,
        clock: Clock = time.time,
        validate_modifications: bool = False,
        max_user_added_exercises: int = settings.MAX_USER_ADDED_EXERCISES,
    ):
        self.workout_id = workout_id
        self.user_id = user_id
        self.exercises = [ExerciseState(plan=p, persisted_index=i) for i, p in enumerate(exercises)]
        self.oracle = oracle
        self.clock = clock
        self.validate_modifications = validate_modifications
        self.max_user_added_exercises = max_user_added_exercises

        self.current_index = 0
        self.status = "not_started"
        self.rest_timer = RestTimer(clock)
        self.narrative: Optional[str] = None

        self._progression_requested = False
        self._validation_cache: Dict[Tuple[str, int, int, str], Any] = {}

    # ==================================================================
    # Resume
    # ==================================================================

    @classmethod
    def resume_from_workout(
        cls,
        workout: Workout,
        sets: List[SetLog],
        oracle: Optional[ExerciseOracle] = None,
        clock: Clock = time.time,
    ) -> "WorkoutSession":
        """Rebuild from a persisted workout and its logged sets."""
        plans = [normalize_exercise(e) for e in workout.exercises or []]
        session = cls(workout.id, workout.user_id, plans, oracle=oracle, clock=clock)
        session.narrative = workout.workout_rationale

        for entry in sets:
            if entry.exercise_index >= len(session.exercises):
                logger.warning(
                    f"Workout {workout.id}: set {entry.id} points at missing exercise {entry.exercise_index}"
                )
                continue
            session.exercises[entry.exercise_index].completed_sets.append(CompletedSet(
                exercise_index=entry.exercise_index,
                set_index=entry.set_number,
                exercise_name=entry.exercise_name,
                weight_actual=entry.weight_actual,
                reps_actual=entry.reps_actual,
                rir_actual=entry.rir_actual,
                mental_readiness=entry.mental_readiness,
                set_type=entry.set_type,
                skipped=entry.skipped,
                notes=entry.notes,
            ))

        if workout.status == "completed":
            session.status = "complete"
        elif sets or workout.status == "in_progress":
            session.status = "in_progress"
        session.current_index = session._first_incomplete()
        return session

    # ==================================================================
    # Cursor
    # ==================================================================

    @property
    def current(self) -> Optional[ExerciseState]:
        if 0 <= self.current_index < len(self.exercises):
            return self.exercises[self.current_index]
        return None

    def _first_incomplete(self) -> int:
        for i, state in enumerate(self.exercises):
            if not state.is_complete:
                return i
        return len(self.exercises)

    def plans(self) -> List[ExercisePlan]:
        return [s.plan for s in self.exercises]

    def exercise_dicts(self) -> List[Dict[str, Any]]:
        """Exercise list in the shape workout_service.save_progress persists."""
        return [s.plan.model_dump() for s in self.exercises]

    def index_remap(self) -> Dict[int, int]:
        """
        Persisted slot -> current slot for every saved exercise.

        Sent with exercise_dicts() so save_progress can move logged sets
        along with their exercise after add_exercise or reorder.
        """
        return {
            s.persisted_index: i
            for i, s in enumerate(self.exercises)
            if s.persisted_index is not None
        }

    def mark_saved(self) -> None:
        for i, s in enumerate(self.exercises):
            s.persisted_index = i

    def summary(self) -> Dict[str, Any]:
        """Cursor and per-exercise progress, as served to a resuming client."""
        current = self.current
        return {
            "workout_id": self.workout_id,
            "status": self.status,
            "current_index": self.current_index,
            "current_exercise": current.plan.exercise_name if current else None,
            "next_set_type": current.next_set_type if current else None,
            "rest_remaining_s": self.rest_timer.remaining(),
            "narrative": self.narrative,
            "exercises": [
                {
                    "index": i,
                    "exercise_name": s.plan.exercise_name,
                    "warmups_remaining": s.warmups_remaining,
                    "working_remaining": s.working_remaining,
                    "completed_sets": len(s.completed_sets),
                    "is_complete": s.is_complete,
                }
                for i, s in enumerate(self.exercises)
            ],
        }

    def rest_limits(
        self,
        approach_name: Optional[str] = None,
        index: Optional[int] = None,
        current_rest_seconds: Optional[int] = None,
    ) -> Optional[RestTimerLimits]:
        """
        Approach bounds and status for an exercise's rest period.

        The current setting defaults to the running timer's duration, else
        the planned rest. None when the index is past the last exercise.
        """
        idx = self.current_index if index is None else index
        if not 0 <= idx < len(self.exercises):
            return None
        plan = self.exercises[idx].plan
        planned = plan.rest_seconds or settings.DEFAULT_REST_SECONDS
        if current_rest_seconds is None:
            running = self.rest_timer.started_at is not None and idx == self.current_index
            current_rest_seconds = int(self.rest_timer.duration_s) if running else planned
        return calculate_rest_timer_limits(
            current_rest_seconds,
            planned,
            approach_name=approach_name,
            exercise_type=rest_exercise_type(plan.exercise_name),
        )

    # ==================================================================
    # Sets
    # ==================================================================

    def complete_set(
        self,
        weight: Optional[float] = None,
        reps: Optional[int] = None,
        rir: Optional[int] = None,
        mental_readiness: Optional[int] = None,
        skipped: bool = False,
        notes: Optional[str] = None,
    ) -> CompletedSet:
        state = self.current
        if state is None or state.next_set_type is None:
            raise ValueError("No remaining sets in this workout")

        set_type = state.next_set_type
        logged = CompletedSet(
            exercise_index=self.current_index,
            set_index=state.count(set_type) + 1,
            exercise_name=state.plan.exercise_name,
            weight_actual=weight,
            reps_actual=reps,
            rir_actual=rir,
            mental_readiness=mental_readiness,
            set_type=set_type,
            skipped=skipped,
            notes=notes,
        )
        state.completed_sets.append(logged)
        self.status = "in_progress"
        self._progression_requested = False

        if not state.is_complete:
            self.rest_timer.start(state.plan.rest_seconds or settings.DEFAULT_REST_SECONDS)
        else:
            self.rest_timer.skip()
            self.current_index = self._first_incomplete()
            if self.current_index >= len(self.exercises):
                self.status = "complete"
        return logged

    def request_progression_suggestion(self) -> Optional[ProgressionSuggestion]:
        """
        Next-set suggestion for the exercise just worked. At most one request
        per logged set; oracle failures come back as None.
        """
        if self._progression_requested or self.oracle is None:
            return None

        state = self._last_touched()
        last = state.last_working_set if state else None
        if last is None or last.weight_actual is None or last.reps_actual is None:
            return None

        self._progression_requested = True
        plan = state.plan
        target = calculate_progressive_target(
            [SetSnapshot(weight=last.weight_actual, reps=last.reps_actual, rir=last.rir_actual)],
            plan.target_reps,
        )
        try:
            return self.oracle.suggest_progression(
                plan.exercise_name,
                last.model_dump(),
                target.weight,
                target.reps,
                plan.target_reps,
            )
        except OracleError as e:
            logger.warning(f"Progression suggestion failed for {plan.exercise_name}: {e}")
            return None

    def _last_touched(self) -> Optional[ExerciseState]:
        current = self.current
        if current is not None and current.completed_sets:
            return current
        previous = self.current_index - 1
        for i in range(min(previous, len(self.exercises) - 1), -1, -1):
            if self.exercises[i].completed_sets:
                return self.exercises[i]
        return None

    # ==================================================================
    # Modifications
    # ==================================================================

    def _validate(self, kind: str, exercise_name: str, before: int, after: int, details: Dict[str, Any]):
        key = (exercise_name.lower(), before, after, str(self.user_id))
        if key in self._validation_cache:
            return self._validation_cache[key]
        validation = self.oracle.validate_modification(kind, str(self.user_id), details)
        self._validation_cache[key] = validation
        return validation

    def add_set(self) -> ModificationResult:
        state = self.current
        if state is None:
            return ModificationResult(False, "no_current_exercise", "No exercise in progress")

        before = state.plan.target_sets
        after = before + 1
        warnings: List[str] = []
        if self.validate_modifications and self.oracle is not None:
            try:
                validation = self._validate(
                    "add_set",
                    state.plan.exercise_name,
                    before,
                    after,
                    {"exerciseName": state.plan.exercise_name, "currentSets": before, "proposedSets": after},
                )
            except OracleError as e:
                logger.warning(f"Add-set validation unavailable, allowing change: {e}")
            else:
                if not validation.approved:
                    return ModificationResult(
                        False, "not_recommended", validation.rationale, list(validation.warnings)
                    )
                warnings = list(validation.warnings)

        state.plan.target_sets = after
        state.plan.user_added_sets = (state.plan.user_added_sets or 0) + 1
        return ModificationResult(True, warnings=warnings)

    def add_exercise(self, plan: ExercisePlan) -> ModificationResult:
        user_added = sum(1 for s in self.exercises if s.plan.ai_recommended_sets is None)
        if user_added >= self.max_user_added_exercises:
            return ModificationResult(
                False,
                "max_exercises_reached",
                f"You can add up to {self.max_user_added_exercises} exercises per workout",
            )

        added = plan.model_copy(deep=True)
        added.ai_recommended_sets = None
        position = min(self.current_index + 1, len(self.exercises))
        self.exercises.insert(position, ExerciseState(plan=added))
        self._reindex_from(position)
        if self.status == "complete":
            self.status = "in_progress"
            self.current_index = position
        return ModificationResult(True)

    def substitute(self, index: int, plan: ExercisePlan) -> ModificationResult:
        if not 0 <= index < len(self.exercises):
            return ModificationResult(False, "invalid_index", f"No exercise at position {index}")

        state = self.exercises[index]
        replacement = plan.model_copy(deep=True)
        replacement.ai_recommended_sets = state.plan.ai_recommended_sets
        state.plan = replacement
        for s in state.completed_sets:
            s.exercise_name = replacement.exercise_name
        self.narrative = None
        return ModificationResult(True)

    def reorder(self, order: List[int]) -> ModificationResult:
        """order[i] is the old index of the exercise that moves to slot i."""
        if sorted(order) != list(range(len(self.exercises))):
            return ModificationResult(False, "invalid_order", "Order must list every exercise once")

        if self.validate_modifications and self.oracle is not None:
            names = [self.exercises[i].plan.exercise_name for i in order]
            try:
                validation = self.oracle.validate_modification(
                    "reorder", str(self.user_id), {"proposedOrder": names}
                )
            except OracleError as e:
                logger.warning(f"Reorder validation unavailable, allowing change: {e}")
            else:
                if not validation.approved:
                    return ModificationResult(
                        False, "not_recommended", validation.rationale, list(validation.warnings)
                    )

        current = self.current
        self.exercises = [self.exercises[i] for i in order]
        self._reindex_from(0)
        if current is not None:
            self.current_index = self.exercises.index(current)
        self.narrative = None
        return ModificationResult(True)

    def _reindex_from(self, start: int) -> None:
        for i in range(start, len(self.exercises)):
            for s in self.exercises[i].completed_sets:
                s.exercise_index = i
