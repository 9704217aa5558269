"""
Cycle statistics for the active split plan.

Sets per muscle group, workouts completed, and average mental readiness
since the current cycle began. Fed to the oracle as fatigue context;
callers treat a failure here as "no context", never as a generation error.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from models import UserProfile, Workout
from services.muscle_groups import exercise_name_of, muscle_groups_for

logger = logging.getLogger(__name__)


@dataclass
class CycleStats:
    workouts_completed: int = 0
    total_sets: int = 0
    total_volume: float = 0.0
    total_duration_seconds: int = 0
    avg_mental_readiness: Optional[float] = None
    sets_by_muscle: Dict[str, int] = field(default_factory=dict)
    workouts_by_type: Dict[str, int] = field(default_factory=dict)

    def to_oracle_context(self) -> Dict[str, Any]:
        return {
            "volume_by_muscle": self.sets_by_muscle,
            "workouts_completed": self.workouts_completed,
            "avg_mental_readiness": self.avg_mental_readiness,
        }


def _exercise_muscles(exercise: Dict[str, Any]) -> list:
    primary = exercise.get("primary_muscles") or []
    if primary:
        return [m.lower() for m in primary]
    return muscle_groups_for(exercise_name_of(exercise))


def calculate_cycle_stats(db: Session, profile: UserProfile) -> CycleStats:
    """Stats for completed workouts of the active plan in the current cycle."""
    stats = CycleStats()
    if not profile.active_split_plan_id:
        return stats

    query = db.query(Workout).filter(
        Workout.user_id == profile.user_id,
        Workout.split_plan_id == profile.active_split_plan_id,
        Workout.status == "completed",
    )
    if profile.current_cycle_started_at is not None:
        query = query.filter(Workout.completed_at >= profile.current_cycle_started_at)
    workouts = query.order_by(Workout.completed_at.asc()).all()

    readiness = []
    for workout in workouts:
        stats.workouts_completed += 1
        stats.total_sets += workout.total_sets or 0
        stats.total_volume += workout.total_volume or 0
        stats.total_duration_seconds += workout.duration_seconds or 0
        if workout.mental_readiness_overall is not None:
            readiness.append(workout.mental_readiness_overall)
        if workout.workout_type:
            stats.workouts_by_type[workout.workout_type] = stats.workouts_by_type.get(workout.workout_type, 0) + 1

        for exercise in workout.exercises or []:
            sets = int(exercise.get("target_sets") or 0)
            for muscle in _exercise_muscles(exercise):
                stats.sets_by_muscle[muscle] = stats.sets_by_muscle.get(muscle, 0) + sets

    if readiness:
        stats.avg_mental_readiness = round(sum(readiness) / len(readiness), 2)
    return stats
