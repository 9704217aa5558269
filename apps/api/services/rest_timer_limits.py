"""
Rest-timer bounds per training approach and exercise type, plus a status
for how far the current rest setting sits from the planned one.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from services.muscle_groups import infer_exercise_type

ADJUST_STEP_SECONDS = 15

OPTIMAL_DEVIATION_S = 15
WARNING_DEVIATION_S = 30

DEFAULT_LIMITS = {"compound": (90, 180), "other": (45, 90)}

# approach keyword -> {exercise type -> (min, max)}; "other" covers the rest
APPROACH_LIMITS = {
    "fst-7": {"fst7": (30, 45), "compound": (90, 180), "other": (60, 90)},
    "y3t": {"compound": (90, 240), "other": (30, 120)},
    "mountain dog": {
        "activation": (45, 60),
        "explosive": (180, 240),
        "pump": (30, 60),
        "compound": (120, 180),
        "other": (60, 90),
    },
}

PHASE_MARKERS = ("activation", "explosive", "pump")


@dataclass
class RestTimerLimits:
    min: int
    max: int
    recommended: int
    status: str  # 'optimal' | 'acceptable' | 'warning' | 'critical'


def rest_exercise_type(exercise_name: Optional[str], guidance_type: Optional[str] = None) -> str:
    """Approach-specific markers first, then the shared compound/isolation inference."""
    lower = (exercise_name or "").lower()
    if "fst-7" in lower or "fst7" in lower:
        return "fst7"
    for marker in PHASE_MARKERS:
        if guidance_type == marker or marker in lower:
            return marker
    return infer_exercise_type(lower)


def limits_for(approach_name: Optional[str], exercise_type: str) -> Tuple[int, int]:
    lower = (approach_name or "").lower()
    table = DEFAULT_LIMITS
    for keyword, limits in APPROACH_LIMITS.items():
        if keyword in lower:
            table = limits
            break
    return table.get(exercise_type, table["other"])


def rest_status(current: int, low: int, high: int, recommended: int) -> str:
    deviation = abs(current - recommended)
    if low <= current <= high:
        return "optimal" if deviation <= OPTIMAL_DEVIATION_S else "acceptable"
    return "warning" if deviation <= WARNING_DEVIATION_S else "critical"


def calculate_rest_timer_limits(
    current_rest_seconds: int,
    original_rest_seconds: int,
    approach_name: Optional[str] = None,
    exercise_type: Optional[str] = None,
) -> RestTimerLimits:
    low, high = limits_for(approach_name, exercise_type or "isolation")
    return RestTimerLimits(
        min=low,
        max=high,
        recommended=original_rest_seconds,
        status=rest_status(current_rest_seconds, low, high, original_rest_seconds),
    )


def adjust_rest_seconds(current: int, delta: int) -> int:
    """Apply a ±15 s style adjustment; never below zero."""
    return max(0, current + delta)
