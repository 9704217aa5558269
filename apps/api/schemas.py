from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Dict, Any


# ============ Embedded exercise shapes ============

class WarmupSet(BaseModel):
    set_number: int = 1
    weight_percentage: float  # % of working weight (e.g., 50, 65)
    weight: float = 0.0  # Filled in from target_weight at assembly time
    reps: int = 8
    rir: Optional[int] = None
    rest_seconds: Optional[int] = None
    technical_focus: Optional[str] = None


class SetGuidance(BaseModel):
    set_number: int  # 1-based, working sets only
    technical_focus: Optional[str] = None
    mental_focus: Optional[str] = None


class ExercisePlan(BaseModel):
    """
    Canonical exercise entry stored in Workout.exercises.

    ai_recommended_sets is set for oracle-selected exercises and left None
    for exercises the user added mid-session.
    """
    exercise_name: str
    equipment_variant: Optional[str] = None
    target_sets: int = 3
    target_reps: List[int] = Field(default_factory=lambda: [8, 12])  # [min, max]
    target_weight: float = 0.0
    planned_reps: Optional[int] = None  # This session's rep target inside target_reps
    rest_seconds: int = 90
    tempo: Optional[str] = None
    warmup_sets: List[WarmupSet] = Field(default_factory=list)
    set_guidance: List[SetGuidance] = Field(default_factory=list)
    technical_cues: List[str] = Field(default_factory=list)
    alternatives: List[str] = Field(default_factory=list)
    rationale: Optional[str] = None
    primary_muscles: List[str] = Field(default_factory=list)
    secondary_muscles: List[str] = Field(default_factory=list)
    ai_recommended_sets: Optional[int] = None
    user_added_sets: Optional[int] = None

    @property
    def rep_min(self) -> int:
        return self.target_reps[0]

    @property
    def rep_max(self) -> int:
        return self.target_reps[-1]


class SessionDefinition(BaseModel):
    day: int = Field(..., ge=1)
    name: Optional[str] = None
    workout_type: str
    variation: Optional[str] = None  # 'A' | 'B'
    focus: List[str] = Field(default_factory=list)
    target_volume: Dict[str, int] = Field(default_factory=dict)  # muscle -> sets
    principles: List[str] = Field(default_factory=list)


class LearnedTargetWeight(BaseModel):
    exercise_name: str
    target_weight: float
    confidence: str  # 'low' | 'medium' | 'high'
    updated_at: datetime


class CompletedSet(BaseModel):
    exercise_index: int = Field(..., ge=0)
    set_index: int = Field(..., ge=1)
    exercise_name: Optional[str] = None
    weight_actual: Optional[float] = None
    reps_actual: Optional[int] = None
    rir_actual: Optional[int] = Field(None, ge=0, le=10)
    mental_readiness: Optional[int] = Field(None, ge=1, le=5)
    set_type: str = "working"  # 'warmup' | 'working'
    skipped: bool = False
    notes: Optional[str] = None


# ============ Profile ============

class CustomEquipmentCreate(BaseModel):
    name: str
    category: str
    example_exercises: List[str] = Field(default_factory=list)


class UserProfileUpsert(BaseModel):
    first_name: Optional[str] = None
    age: Optional[int] = Field(None, ge=10, le=100)
    weight: Optional[float] = Field(None, gt=0)
    height: Optional[float] = Field(None, gt=0)
    gender: Optional[str] = None
    experience_years: Optional[float] = Field(None, ge=0)
    approach_id: Optional[str] = None
    preferred_split: Optional[str] = None
    training_focus: Optional[str] = None
    weak_points: Optional[List[str]] = None
    available_equipment: Optional[List[str]] = None
    strength_baseline: Optional[Dict[str, Dict[str, float]]] = None
    mesocycle_phase: Optional[str] = None
    current_mesocycle_week: Optional[int] = None
    caloric_phase: Optional[str] = None
    caloric_intake_kcal: Optional[int] = None


class UserProfileResponse(BaseModel):
    id: UUID
    user_id: UUID
    first_name: Optional[str] = None
    age: Optional[int] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    gender: Optional[str] = None
    experience_years: Optional[float] = None
    approach_id: Optional[str] = None
    preferred_split: str
    training_focus: Optional[str] = None
    weak_points: List[str] = Field(default_factory=list)
    available_equipment: List[str] = Field(default_factory=list)
    custom_equipment: List[Dict[str, Any]] = Field(default_factory=list)
    strength_baseline: Optional[Dict[str, Any]] = None
    active_split_plan_id: Optional[UUID] = None
    current_cycle_day: int
    mesocycle_phase: Optional[str] = None
    current_mesocycle_week: Optional[int] = None
    caloric_phase: Optional[str] = None
    caloric_intake_kcal: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


# ============ Split plans ============

class SplitPlanCreate(BaseModel):
    name: Optional[str] = None
    split_type: str = "custom"
    cycle_days: int = Field(..., gt=0)
    sessions: List[SessionDefinition]


class SplitPlanUpdate(BaseModel):
    name: Optional[str] = None
    cycle_days: Optional[int] = Field(None, gt=0)
    sessions: Optional[List[SessionDefinition]] = None


class SplitPlanResponse(BaseModel):
    id: UUID
    user_id: UUID
    name: Optional[str] = None
    split_type: str
    cycle_days: int
    sessions: List[Dict[str, Any]]
    active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============ Workouts ============

class WorkoutResponse(BaseModel):
    id: UUID
    user_id: UUID
    approach_id: Optional[str] = None
    split_plan_id: Optional[UUID] = None
    cycle_day: Optional[int] = None
    variation: Optional[str] = None
    workout_type: str
    workout_name: Optional[str] = None
    target_muscle_groups: List[str] = Field(default_factory=list)
    exercises: List[Dict[str, Any]]
    status: str
    planned_at: Optional[date] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_volume: Optional[float] = None
    total_sets: Optional[int] = None
    duration_seconds: Optional[int] = None
    mental_readiness_overall: Optional[float] = None
    learned_target_weights: Optional[List[Dict[str, Any]]] = None
    workout_rationale: Optional[str] = None
    audio_scripts: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class SetLogResponse(BaseModel):
    id: UUID
    workout_id: UUID
    exercise_index: int
    exercise_name: str
    set_number: int
    set_type: str
    weight_target: Optional[float] = None
    weight_actual: Optional[float] = None
    reps_target: Optional[int] = None
    reps_actual: Optional[int] = None
    rir_actual: Optional[int] = None
    mental_readiness: Optional[int] = None
    skipped: bool
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SetLogUpdate(BaseModel):
    weight_actual: Optional[float] = None
    reps_actual: Optional[int] = None
    rir_actual: Optional[int] = Field(None, ge=0, le=10)
    mental_readiness: Optional[int] = Field(None, ge=1, le=5)
    skipped: Optional[bool] = None
    notes: Optional[str] = None


class WorkoutCompleteRequest(BaseModel):
    """Client-side totals; anything omitted is computed from the set log."""
    total_volume: Optional[float] = None
    total_sets: Optional[int] = None
    duration_seconds: Optional[int] = None
    mental_readiness_overall: Optional[float] = None
    completed_at: Optional[datetime] = None


class WorkoutCompleteResponse(BaseModel):
    workout: WorkoutResponse
    warning: Optional[str] = None


# ============ In-session views ============

class SessionExerciseState(BaseModel):
    index: int
    exercise_name: str
    warmups_remaining: int
    working_remaining: int
    completed_sets: int
    is_complete: bool


class WorkoutSessionState(BaseModel):
    """Where a resumed session stands, rebuilt from the set log."""
    workout_id: UUID
    status: str  # 'not_started' | 'in_progress' | 'complete'
    current_index: int
    current_exercise: Optional[str] = None
    next_set_type: Optional[str] = None
    rest_remaining_s: float = 0
    narrative: Optional[str] = None
    exercises: List[SessionExerciseState]


class HydrationAdviceResponse(BaseModel):
    should_suggest: bool
    reason: str
    message_type: str
    urgency: str
    water_amount: str
    next_check_in_minutes: int

    model_config = ConfigDict(from_attributes=True)


class WarmupSkipAdviceResponse(BaseModel):
    exercise_index: int
    should_suggest: bool
    reason: str
    confidence: str
    reason_code: Optional[str] = None


class RestLimitsResponse(BaseModel):
    exercise_index: int
    min: int
    max: int
    recommended: int
    status: str  # 'optimal' | 'acceptable' | 'warning' | 'critical'


class SaveProgressRequest(BaseModel):
    exercises: List[Dict[str, Any]]
    # Previous slot -> new slot, for moving already-logged sets.
    index_map: Optional[Dict[int, int]] = None


class GenerateWorkoutRequest(BaseModel):
    request_id: str = Field(..., min_length=1, max_length=128)
    target_cycle_day: Optional[int] = Field(None, ge=1)
    status: Optional[str] = None


class DraftWorkoutRequest(BaseModel):
    target_cycle_day: int = Field(..., ge=1)


class GenerationStatusResponse(BaseModel):
    request_id: str
    status: str  # 'pending' | 'complete' | 'error' | 'not_found'
    progress: Optional[int] = None
    phase: Optional[str] = None
    message: Optional[str] = None
    workout: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class NextSessionResponse(BaseModel):
    split_plan_id: UUID
    cycle_day: int
    cycle_days: int
    session: Dict[str, Any]
