from sqlalchemy import Column, Integer, Boolean, Float, Date, DateTime, ForeignKey, Text, Index, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base
import uuid
from datetime import datetime, timezone

# JSONB on Postgres, plain JSON elsewhere (sqlite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserProfile(Base):
    """
    One row per user. Upserted, never deleted.

    current_cycle_day / active_split_plan_id are written only by the split
    plan cycle manager; phase tags are consumed, not computed, here.
    """
    __tablename__ = "user_profile"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Demographics
    first_name = Column(Text, nullable=True)
    age = Column(Integer, nullable=True)
    weight = Column(Float, nullable=True)  # Bodyweight in kg
    height = Column(Float, nullable=True)  # cm
    gender = Column(Text, nullable=True)  # 'male', 'female', 'other'
    experience_years = Column(Float, nullable=True)

    # Methodology (opaque foreign key into the approaches catalog)
    approach_id = Column(Text, nullable=True)
    preferred_split = Column(Text, default="push_pull_legs", nullable=False)
    preferred_language = Column(Text, default="en", nullable=False)
    training_focus = Column(Text, nullable=True)  # 'upper_body', 'lower_body', 'balanced'
    body_type = Column(Text, nullable=True)

    weak_points = Column(JSONType, nullable=False, default=list)  # [muscle group]
    available_equipment = Column(JSONType, nullable=False, default=list)  # [equipment id]
    # [{id, name, category, example_exercises}]
    custom_equipment = Column(JSONType, nullable=False, default=list)
    # {exercise name: {weight, reps, rir}}
    strength_baseline = Column(JSONType, nullable=True)

    # Split plan linkage (no FK: split_plan also points back at user)
    active_split_plan_id = Column(Uuid, nullable=True)
    current_cycle_day = Column(Integer, default=1, nullable=False)
    current_cycle_started_at = Column(DateTime(timezone=True), nullable=True)

    # Periodization / nutrition context
    current_mesocycle_week = Column(Integer, nullable=True)
    mesocycle_phase = Column(Text, nullable=True)  # 'accumulation', 'intensification', 'deload', 'transition'
    caloric_phase = Column(Text, nullable=True)  # 'bulk', 'cut', 'maintenance'
    caloric_intake_kcal = Column(Integer, nullable=True)


class SplitPlan(Base):
    """
    Ordered cycle of sessions owned by one user.

    sessions: [{day, name, workout_type, variation, focus, target_volume, principles}]
    with day values covering 1..cycle_days exactly once.
    At most one active plan per user.
    """
    __tablename__ = "split_plan"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    name = Column(Text, nullable=True)
    split_type = Column(Text, nullable=False, default="custom")
    cycle_days = Column(Integer, nullable=False)
    sessions = Column(JSONType, nullable=False, default=list)
    active = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("ix_split_plan_user_active", "user_id", "active"),
    )


class Workout(Base):
    """
    One generated / executed session.

    status: 'draft' | 'ready' | 'in_progress' | 'completed', never regresses.
    exercises holds canonical ExercisePlan dicts (see schemas.ExercisePlan).
    """
    __tablename__ = "workout"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    approach_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Split plan context
    split_plan_id = Column(Uuid, ForeignKey("split_plan.id", ondelete="SET NULL"), nullable=True)
    cycle_day = Column(Integer, nullable=True)
    variation = Column(Text, nullable=True)  # 'A', 'B'
    split_type = Column(Text, nullable=True)

    workout_type = Column(Text, nullable=False)  # 'push', 'pull', 'legs', 'upper', 'lower', 'full_body', ...
    workout_name = Column(Text, nullable=True)
    target_muscle_groups = Column(JSONType, nullable=False, default=list)
    exercises = Column(JSONType, nullable=False, default=list)

    status = Column(Text, default="ready", nullable=False)
    planned_at = Column(Date, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Aggregates (written on completion)
    total_volume = Column(Float, nullable=True)
    total_sets = Column(Integer, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    mental_readiness_overall = Column(Float, nullable=True)

    # [{exercise_name, target_weight, confidence, updated_at}], written only on completion
    learned_target_weights = Column(JSONType, nullable=True)

    # Oracle bookkeeping
    ai_response_id = Column(Text, nullable=True)
    workout_rationale = Column(Text, nullable=True)
    insight_influenced_changes = Column(JSONType, nullable=True)
    audio_scripts = Column(JSONType, nullable=True)

    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_workout_user_status", "user_id", "status"),
        Index("ix_workout_plan_day", "split_plan_id", "cycle_day"),
        Index("ix_workout_completed_at", "completed_at"),
    )


class SetLog(Base):
    """
    Append-only record of a performed set.

    Rows are only rewritten through the explicit edit-set action.
    """
    __tablename__ = "set_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workout_id = Column(Uuid, ForeignKey("workout.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    exercise_index = Column(Integer, nullable=False)
    exercise_name = Column(Text, nullable=False)
    set_number = Column(Integer, nullable=False)
    set_type = Column(Text, default="working", nullable=False)  # 'warmup' | 'working'

    weight_target = Column(Float, nullable=True)
    weight_actual = Column(Float, nullable=True)
    reps_target = Column(Integer, nullable=True)
    reps_actual = Column(Integer, nullable=True)
    rir_actual = Column(Integer, nullable=True)
    mental_readiness = Column(Integer, nullable=True)  # 1-5
    skipped = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_set_log_workout", "workout_id"),
        Index("ix_set_log_exercise_name", "exercise_name"),
        Index("ix_set_log_created_at", "created_at"),
    )


class UserInsight(Base):
    """
    User-reported limitation or observation (pain, equipment issue, preference).

    Passed through to the oracle untouched.
    """
    __tablename__ = "user_insight"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    insight_type = Column(Text, nullable=False)  # 'pain', 'injury', 'preference', 'equipment', ...
    severity = Column(Text, nullable=True)  # 'info', 'warning', 'critical'
    exercise_name = Column(Text, nullable=True)
    user_note = Column(Text, nullable=True)
    insight_metadata = Column("metadata", JSONType, nullable=True)
    relevance_score = Column(Float, default=1.0, nullable=False)
    status = Column(Text, default="active", nullable=False)  # 'active', 'resolved'

    __table_args__ = (
        Index("ix_user_insight_user_status", "user_id", "status"),
    )


class UserMemory(Base):
    """Consolidated long-lived preference or pattern learned about the user."""
    __tablename__ = "user_memory"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    memory_category = Column(Text, nullable=False)  # 'preference', 'pattern', 'limitation', ...
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    confidence_score = Column(Float, default=0.5, nullable=False)
    related_exercises = Column(JSONType, nullable=False, default=list)
    related_muscles = Column(JSONType, nullable=False, default=list)
    status = Column(Text, default="active", nullable=False)

    __table_args__ = (
        Index("ix_user_memory_user_status", "user_id", "status"),
    )
