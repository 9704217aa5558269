"""
In-session advisors: hydration reminders and warmup-skip suggestions.

Both are stateless rule evaluators. Throttling (how often to ask) belongs
to the caller.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from services.muscle_groups import exercise_name_of, infer_exercise_type, muscle_groups_for


# ---------------------------------------------------------------------------
# Hydration
# ---------------------------------------------------------------------------

HYDRATION_INTERVAL_MINUTES = 15
HYDRATION_INTERVAL_SETS = 6
DISMISS_COOLDOWN_MINUTES = 10

COMPOUND_LEG_PATTERNS = (
    "squat", "leg press", "hack squat", "deadlift", "romanian deadlift", "rdl",
    "bulgarian split squat", "front squat", "back squat", "good morning",
)
LEG_MUSCLES = ("quads", "glutes", "hamstrings")


@dataclass
class HydrationSuggestion:
    should_suggest: bool
    reason: str
    message_type: str = "normal"  # 'normal' | 'smallSipsOnly'
    urgency: str = "normal"  # 'normal' | 'important'
    water_amount: str = "200-250ml"
    next_check_in_minutes: int = HYDRATION_INTERVAL_MINUTES


@dataclass
class HydrationInput:
    workout_duration_s: float
    total_sets_completed: int
    exercise_name: Optional[str] = None
    last_set_rir: Optional[int] = None
    mental_readiness: Optional[int] = None
    last_dismissed_at: Optional[datetime] = None
    now: Optional[datetime] = None


def is_heavy_compound_leg(exercise_name: Optional[str]) -> bool:
    lower = (exercise_name or "").lower()
    if infer_exercise_type(lower) != "compound":
        return False
    if not any(m in LEG_MUSCLES for m in muscle_groups_for(lower)):
        return False
    return any(p in lower for p in COMPOUND_LEG_PATTERNS)


def suggest_hydration(data: HydrationInput) -> HydrationSuggestion:
    if data.total_sets_completed <= 0:
        return HydrationSuggestion(False, "No sets logged yet")

    # Minutes since the last reminder was dismissed, else since the start.
    minutes_since = data.workout_duration_s / 60
    if data.last_dismissed_at is not None:
        now = data.now or datetime.now(timezone.utc)
        minutes_since = (now - data.last_dismissed_at).total_seconds() / 60
        if minutes_since < DISMISS_COOLDOWN_MINUTES:
            return HydrationSuggestion(
                False,
                f"Reminder dismissed {int(minutes_since)} minutes ago",
                next_check_in_minutes=max(1, DISMISS_COOLDOWN_MINUTES - int(minutes_since)),
            )

    sets = data.total_sets_completed
    if minutes_since >= HYDRATION_INTERVAL_MINUTES:
        reason = f"You've been training for {int(data.workout_duration_s // 60)} minutes"
    elif sets % HYDRATION_INTERVAL_SETS == 0:
        reason = f"Take a quick drink after {sets} sets"
    else:
        return HydrationSuggestion(False, "No hydration trigger reached")

    suggestion = HydrationSuggestion(True, reason)
    if is_heavy_compound_leg(data.exercise_name):
        suggestion.message_type = "smallSipsOnly"
        suggestion.water_amount = "50-100ml (small sips)"

    low_rir = data.last_set_rir is not None and data.last_set_rir <= 1
    drained = data.mental_readiness is not None and data.mental_readiness <= 2
    if low_rir or drained:
        suggestion.urgency = "important"
    return suggestion


# ---------------------------------------------------------------------------
# Warmup skip
# ---------------------------------------------------------------------------

@dataclass
class WarmupSkipSuggestion:
    should_suggest: bool
    reason: str
    confidence: str  # 'low' | 'medium' | 'high'
    reason_code: Optional[str] = None


def primary_muscle_group(exercise_name: str) -> Optional[str]:
    lower = exercise_name.lower()
    if "bench" in lower or ("press" in lower and ("chest" in lower or "pec" in lower)):
        return "chest"
    if "row" in lower or ("pull" in lower and "pulldown" not in lower) or "deadlift" in lower:
        return "back"
    if "squat" in lower or "leg press" in lower or "lunge" in lower:
        return "legs"
    if ("shoulder" in lower or "overhead" in lower) and "press" in lower:
        return "shoulders"
    return None


def _has_warmups(exercise: Dict[str, Any]) -> bool:
    return bool(exercise.get("warmup_sets"))


def _similar_compound_before(exercises: List[Dict[str, Any]], index: int) -> bool:
    current = exercises[index]
    group = primary_muscle_group(exercise_name_of(current))
    if not group:
        return False
    for previous in exercises[:index]:
        if _has_warmups(previous) and primary_muscle_group(exercise_name_of(previous)) == group:
            return True
    return False


def suggest_warmup_skip(
    exercises: List[Dict[str, Any]],
    exercise_index: int,
    mesocycle_phase: Optional[str] = None,
    mental_readiness: Optional[int] = None,
) -> WarmupSkipSuggestion:
    exercise = exercises[exercise_index]
    if not _has_warmups(exercise):
        return WarmupSkipSuggestion(False, "No warmup sets for this exercise", "high")
    if exercise_index == 0:
        return WarmupSkipSuggestion(False, "First exercise of workout, warmup recommended", "high")

    if mesocycle_phase == "deload":
        return WarmupSkipSuggestion(
            True,
            "Deload week: muscles already activated, reduced volume recommended",
            "high",
            "ai_suggested_deload",
        )
    if _similar_compound_before(exercises, exercise_index):
        return WarmupSkipSuggestion(
            True,
            "Similar compound exercise already performed, muscles activated",
            "high",
            "ai_suggested_second_compound",
        )
    if exercise_index >= 2 and mental_readiness is not None and mental_readiness <= 2:
        return WarmupSkipSuggestion(
            True,
            "Muscles already activated from previous exercises",
            "medium",
            "ai_suggested_late_exercise",
        )
    return WarmupSkipSuggestion(False, "Warmup recommended for performance and safety", "high")


def skip_reason_code(suggestion: WarmupSkipSuggestion) -> str:
    return suggestion.reason_code or "ai_suggested_general"
