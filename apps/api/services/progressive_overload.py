"""
Progressive Overload Calculator

Turns the most recent working set for an exercise into the next
session's target. RIR (reps in reserve) and the rep range drive it:

    rir < 2 or reps >= max  -> add load, reset reps to range min
    reps < max              -> same load, one more rep
    otherwise               -> small load bump, reset reps

Load increments are 2.5 at >= 40 and 1.25 below, rounded to the nearest
quarter. With no history the caller gets weight 0 and must estimate.
"""

import math
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence


DEFAULT_RIR = 3
HEAVY_THRESHOLD = 40.0
HEAVY_INCREMENT = 2.5
LIGHT_INCREMENT = 1.25
WEIGHT_STEP = 0.25


@dataclass
class SetSnapshot:
    """The fields of a logged set that progression looks at."""
    weight: float
    reps: int
    rir: Optional[int] = None


@dataclass
class ProgressionTarget:
    weight: float
    reps: int


def round_to_step(value: float, step: float) -> float:
    """Round half-up to a multiple of step (0.25 -> quarter units)."""
    return math.floor(value / step + 0.5) * step


def snapshot_from_log(entry: Any, rep_min: int) -> SetSnapshot:
    """
    Read a SetLog row (or dict with the same keys).

    Actual values win over targets; missing reps fall back to the range min.
    """
    get = entry.get if isinstance(entry, dict) else lambda k: getattr(entry, k, None)
    weight = get("weight_actual")
    if weight is None:
        weight = get("weight_target")
    reps = get("reps_actual")
    if reps is None:
        reps = get("reps_target")
    return SetSnapshot(
        weight=float(weight or 0),
        reps=int(reps) if reps is not None else rep_min,
        rir=get("rir_actual"),
    )


def calculate_progressive_target(
    history: Sequence[SetSnapshot],
    rep_range: List[int],
) -> ProgressionTarget:
    """
    Next (weight, reps) from history ordered most recent first.

    Total: never raises, an empty history yields (0, rep_min).
    """
    rep_min, rep_max = rep_range[0], rep_range[-1]
    if not history:
        return ProgressionTarget(weight=0.0, reps=rep_min)

    last = history[0]
    rir = DEFAULT_RIR if last.rir is None else last.rir

    if rir < 2 or last.reps >= rep_max:
        increment = HEAVY_INCREMENT if last.weight >= HEAVY_THRESHOLD else LIGHT_INCREMENT
        return ProgressionTarget(
            weight=round_to_step(last.weight + increment, WEIGHT_STEP),
            reps=rep_min,
        )

    if last.reps < rep_max:
        return ProgressionTarget(weight=last.weight, reps=min(last.reps + 1, rep_max))

    # Not reachable through the first branch's reps >= max test; kept as a
    # second guard in case that condition is ever narrowed.
    return ProgressionTarget(
        weight=round_to_step(last.weight + LIGHT_INCREMENT, WEIGHT_STEP),
        reps=rep_min,
    )


def merge_with_learned(
    calculated_weight: float,
    learned_weight: Optional[float],
    learned_confidence: Optional[str],
) -> float:
    """
    Blend a progression weight with a high-confidence learned weight.

    More than 10% apart -> the rounded mean of the two; otherwise the
    calculated value stands.
    """
    if learned_weight is None or learned_confidence != "high":
        return calculated_weight
    if calculated_weight <= 0:
        return learned_weight
    if abs(learned_weight - calculated_weight) / calculated_weight > 0.1:
        return round_to_step((calculated_weight + learned_weight) / 2, 1.0)
    return calculated_weight
