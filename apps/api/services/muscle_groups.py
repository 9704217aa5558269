"""
Muscle / Workout Taxonomy

Maps exercise names to muscle groups and workout types, builds display
names, and rotates the workout type through a split sequence when the
user has no active split plan.

Pure functions, no I/O. Anything unrecognized falls back to a default,
never raises.
"""

from typing import Any, Dict, Iterable, List, Optional


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

MUSCLE_GROUPS = (
    "chest", "shoulders", "triceps",
    "back", "lats", "traps", "biceps", "forearms",
    "quads", "hamstrings", "glutes", "calves",
    "abs", "obliques", "lower_back",
)

# Substring -> muscle group. Every matching pattern contributes.
EXERCISE_PATTERNS: Dict[str, str] = {
    # Chest
    "bench": "chest",
    "press": "chest",
    "fly": "chest",
    "pec": "chest",
    "chest": "chest",
    # Shoulders
    "shoulder": "shoulders",
    "overhead": "shoulders",
    "military": "shoulders",
    "lateral": "shoulders",
    "rear delt": "shoulders",
    # Triceps
    "tricep": "triceps",
    "pushdown": "triceps",
    "dip": "triceps",
    "skull crusher": "triceps",
    # Back
    "row": "back",
    "pull": "back",
    "lat": "lats",
    "pulldown": "lats",
    "deadlift": "back",
    "trap": "traps",
    "shrug": "traps",
    # Biceps
    "curl": "biceps",
    "bicep": "biceps",
    # Legs
    "squat": "quads",
    "leg press": "quads",
    "lunge": "quads",
    "quad": "quads",
    "leg extension": "quads",
    "leg curl": "hamstrings",
    "hamstring": "hamstrings",
    "romanian": "hamstrings",
    "glute": "glutes",
    "hip thrust": "glutes",
    "calf": "calves",
    # Core
    "crunch": "abs",
    "plank": "abs",
    "ab": "abs",
    "sit": "abs",
}

# Checked in order against the first exercise; first hit wins.
WORKOUT_TYPE_KEYWORDS = (
    ("push", ("bench", "press", "dip", "chest", "shoulder", "tricep")),
    ("pull", ("row", "pull", "lat", "back", "bicep", "curl")),
    ("legs", ("squat", "leg", "lunge", "deadlift", "glute", "calf")),
    ("upper", ("upper",)),
    ("lower", ("lower",)),
)

DEFAULT_WORKOUT_TYPE = "push"

SPLIT_SEQUENCES: Dict[str, List[str]] = {
    "push_pull_legs": ["push", "pull", "legs"],
    "upper_lower": ["upper", "lower"],
    "full_body": ["full_body"],
    "bro_split": ["chest", "back", "shoulders", "arms", "legs"],
    # Session order lives in the split plan; without one, train everything.
    "weak_point_focus": ["full_body"],
}

WORKOUT_TYPE_NAMES: Dict[str, str] = {
    "push": "Push",
    "pull": "Pull",
    "legs": "Legs",
    "upper": "Upper Body",
    "lower": "Lower Body",
    "full_body": "Full Body",
    "chest": "Chest",
    "back": "Back",
    "shoulders": "Shoulders",
    "arms": "Arms",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def exercise_name_of(exercise: Any) -> str:
    """
    Name of an exercise given as a plan object, a dict in any of the
    legacy key spellings, or a bare string.
    """
    if isinstance(exercise, str):
        return exercise
    if isinstance(exercise, dict):
        for key in ("exercise_name", "exerciseName", "name"):
            value = exercise.get(key)
            if value:
                return str(value)
        return ""
    return getattr(exercise, "exercise_name", "") or ""


def muscle_groups_for(exercise_name: str) -> List[str]:
    """
    Muscle groups hit by an exercise, in table order.

    Falls back to a coarse push/pull/leg guess when no pattern matches;
    empty only when the name gives nothing to go on.
    """
    lower = (exercise_name or "").lower()
    groups: List[str] = []

    for pattern, group in EXERCISE_PATTERNS.items():
        if pattern in lower and group not in groups:
            groups.append(group)

    if not groups:
        if "push" in lower or "press" in lower:
            groups.append("chest")
        elif "pull" in lower:
            groups.append("back")
        elif "leg" in lower:
            groups.append("quads")

    return groups


def target_muscle_groups(exercises: Iterable[Any]) -> List[str]:
    """Union of muscle groups across a workout, first-seen order."""
    result: List[str] = []
    for exercise in exercises:
        name = exercise_name_of(exercise)
        if not name:
            continue
        for group in muscle_groups_for(name):
            if group not in result:
                result.append(group)
    return result


def classify_workout_type(exercises: List[Any]) -> str:
    """Workout type inferred from the first exercise's name."""
    if not exercises:
        return DEFAULT_WORKOUT_TYPE

    first = exercise_name_of(exercises[0]).lower()
    for workout_type, keywords in WORKOUT_TYPE_KEYWORDS:
        if any(k in first for k in keywords):
            return workout_type

    return DEFAULT_WORKOUT_TYPE


def next_workout_type(last_type: Optional[str], split_style: Optional[str]) -> str:
    """
    Next type in the split's fixed rotation.

    Unknown split styles (including 'custom') rotate push/pull/legs.
    An absent or off-sequence last_type restarts the sequence.
    """
    sequence = SPLIT_SEQUENCES.get(split_style or "", SPLIT_SEQUENCES["push_pull_legs"])
    if not last_type or last_type not in sequence:
        return sequence[0]
    return sequence[(sequence.index(last_type) + 1) % len(sequence)]


def workout_display_name(workout_type: str, muscle_groups: List[str]) -> str:
    """e.g. 'Push: chest, shoulders, triceps' (at most three groups)."""
    base = WORKOUT_TYPE_NAMES.get(workout_type, "Workout")
    if not muscle_groups:
        return base
    return f"{base}: {', '.join(muscle_groups[:3])}"


COMPOUND_KEYWORDS = (
    "squat", "deadlift", "bench press", "overhead press", "military press",
    "row", "pull-up", "chin-up", "dip", "lunge", "leg press",
)

ISOLATION_KEYWORDS = (
    "curl", "extension", "raise", "fly", "flye", "kickback",
    "pulldown", "pushdown", "calf", "crunch", "ab",
)


def infer_exercise_type(exercise_name: str) -> str:
    """'compound' | 'isolation' | 'accessory' by keyword; compound wins ties."""
    lower = (exercise_name or "").lower()
    if any(k in lower for k in COMPOUND_KEYWORDS):
        return "compound"
    if any(k in lower for k in ISOLATION_KEYWORDS):
        return "isolation"
    return "accessory"
