"""
Weight Estimation Chain

Starting load for an exercise the user has never logged. Stages run in
order and the first one that produces an Estimate wins:

    1. learned weight     (recent completed workouts, last 30 days)
    2. strength baseline  (85% of the self-reported lift)
    3. bodyweight ratio   (exercise family x bodyweight x gender)
    4. static table       (fixed starting loads x gender)
    5. oracle estimate    (only when 4 is zero or implausibly low)

ESTIMATION_STAGES is the order; tests and callers can pass their own list.
Stage functions never touch the database: learned weights are preloaded
into the EstimationContext so stages are safe to run from worker threads.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import OracleError
from models import Workout
from services.muscle_groups import infer_exercise_type
from services.progressive_overload import round_to_step

logger = logging.getLogger(__name__)


LEARNED_WEIGHT_WINDOW_DAYS = 30
LEARNED_WEIGHT_MAX_WORKOUTS = 10
BASELINE_FACTOR = 0.85
FEMALE_MULTIPLIER = 0.6
IMPLAUSIBLY_LOW = 10

# (required substrings, ratio of bodyweight). Most specific compounds first.
BODYWEIGHT_RATIOS = (
    (("bench",), 0.5),
    (("squat",), 0.6),
    (("deadlift",), 0.8),
    (("leg", "press"), 0.7),
    (("row",), 0.4),
    (("press", "shoulder"), 0.3),
)

STATIC_STARTING_WEIGHTS = (
    (("bench",), 40),
    (("squat",), 50),
    (("deadlift",), 60),
    (("leg", "press"), 70),
    (("row",), 30),
    (("press", "shoulder"), 20),
    (("curl",), 15),
    (("extension",), 15),
    (("raise",), 10),
    (("fly",), 15),
)
STATIC_DEFAULT_WEIGHT = 20


@dataclass
class LearnedWeight:
    target_weight: float
    confidence: str
    updated_at: Optional[str] = None


@dataclass
class Estimate:
    weight: float
    source: str  # 'learned' | 'baseline' | 'bodyweight' | 'static' | 'oracle'
    confidence: str  # 'low' | 'medium' | 'high'


@dataclass
class EstimationContext:
    exercise_name: str
    gender: Optional[str] = None
    bodyweight: Optional[float] = None
    age: Optional[int] = None
    experience_years: Optional[float] = None
    equipment: Optional[str] = None
    strength_baseline: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    learned_weights: Dict[str, LearnedWeight] = field(default_factory=dict)
    oracle: Any = None

    @property
    def lower_name(self) -> str:
        return self.exercise_name.lower()

    @property
    def gender_multiplier(self) -> float:
        return FEMALE_MULTIPLIER if (self.gender or "").lower() == "female" else 1.0


Stage = Callable[[EstimationContext], Optional[Estimate]]


# ---------------------------------------------------------------------------
# Preloading
# ---------------------------------------------------------------------------

def load_learned_weights(
    db: Session,
    user_id: UUID,
    now: Optional[datetime] = None,
) -> Dict[str, LearnedWeight]:
    """
    Learned weights from the user's recent completed workouts, keyed by
    lowercased exercise name. The most recent workout wins per name.
    """
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=LEARNED_WEIGHT_WINDOW_DAYS)

    workouts = (
        db.query(Workout)
        .filter(
            Workout.user_id == user_id,
            Workout.status == "completed",
            Workout.learned_target_weights.isnot(None),
            Workout.completed_at >= since,
        )
        .order_by(Workout.completed_at.desc())
        .limit(LEARNED_WEIGHT_MAX_WORKOUTS)
        .all()
    )

    learned: Dict[str, LearnedWeight] = {}
    for workout in workouts:
        for entry in workout.learned_target_weights or []:
            name = (entry.get("exercise_name") or "").lower()
            if not name or name in learned:
                continue
            learned[name] = LearnedWeight(
                target_weight=float(entry.get("target_weight") or 0),
                confidence=entry.get("confidence") or "medium",
                updated_at=entry.get("updated_at"),
            )
    return learned


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def _family_match(lower_name: str, table) -> Optional[float]:
    for keywords, value in table:
        if all(k in lower_name for k in keywords):
            return value
    return None


def static_weight_for(ctx: EstimationContext) -> float:
    base = _family_match(ctx.lower_name, STATIC_STARTING_WEIGHTS)
    if base is None:
        base = STATIC_DEFAULT_WEIGHT
    return round_to_step(base * ctx.gender_multiplier, 1.0)


def learned_weight_stage(ctx: EstimationContext) -> Optional[Estimate]:
    learned = ctx.learned_weights.get(ctx.lower_name)
    if not learned:
        return None
    return Estimate(weight=learned.target_weight, source="learned", confidence=learned.confidence)


def strength_baseline_stage(ctx: EstimationContext) -> Optional[Estimate]:
    """Substring match either way ('bench press' <-> 'Bench Press (Barbell)')."""
    first_word = ctx.lower_name.split(" ")[0]
    for baseline_name, data in (ctx.strength_baseline or {}).items():
        key = baseline_name.lower()
        if key in ctx.lower_name or first_word in key:
            weight = (data or {}).get("weight")
            if not weight:
                continue
            return Estimate(
                weight=round_to_step(float(weight) * BASELINE_FACTOR, 1.0),
                source="baseline",
                confidence="medium",
            )
    return None


def bodyweight_ratio_stage(ctx: EstimationContext) -> Optional[Estimate]:
    if not ctx.bodyweight or ctx.bodyweight <= 0:
        return None
    ratio = _family_match(ctx.lower_name, BODYWEIGHT_RATIOS)
    if ratio is None:
        return None
    return Estimate(
        weight=round_to_step(ctx.bodyweight * ratio * ctx.gender_multiplier, 1.0),
        source="bodyweight",
        confidence="low",
    )


def _needs_oracle(ctx: EstimationContext, fallback: float) -> bool:
    if fallback == 0:
        return True
    has_context = bool(ctx.bodyweight) or bool(ctx.strength_baseline)
    return fallback <= IMPLAUSIBLY_LOW and not has_context


def static_table_stage(ctx: EstimationContext) -> Optional[Estimate]:
    """Falls through to the oracle when the table value is not credible."""
    fallback = static_weight_for(ctx)
    if _needs_oracle(ctx, fallback) and ctx.oracle is not None:
        return None
    return Estimate(weight=fallback, source="static", confidence="low")


def oracle_stage(ctx: EstimationContext) -> Optional[Estimate]:
    """Last resort; any oracle failure degrades to the static value."""
    fallback = static_weight_for(ctx)
    if ctx.oracle is None:
        return Estimate(weight=fallback, source="static", confidence="low")

    try:
        result = ctx.oracle.estimate_initial_weight(
            exercise_name=ctx.exercise_name,
            exercise_type=infer_exercise_type(ctx.exercise_name),
            gender="male" if (ctx.gender or "other") == "other" else ctx.gender,
            bodyweight=ctx.bodyweight,
            age=ctx.age,
            experience_years=ctx.experience_years,
            equipment=ctx.equipment,
        )
    except OracleError as e:
        logger.warning(f"Oracle weight estimate failed for {ctx.exercise_name}, using {fallback}: {e}")
        return Estimate(weight=fallback, source="static", confidence="low")

    return Estimate(
        weight=float(result.estimated_weight),
        source="oracle",
        confidence=result.confidence or "low",
    )


ESTIMATION_STAGES: List[Stage] = [
    learned_weight_stage,
    strength_baseline_stage,
    bodyweight_ratio_stage,
    static_table_stage,
    oracle_stage,
]


def first_estimate(ctx: EstimationContext, stages: Sequence[Stage] = ESTIMATION_STAGES) -> Estimate:
    """Run stages in order, returning the first Estimate produced."""
    for stage in stages:
        estimate = stage(ctx)
        if estimate is not None:
            logger.debug(
                f"Estimated {ctx.exercise_name}: {estimate.weight} via {estimate.source} "
                f"({estimate.confidence})"
            )
            return estimate
    # Only reachable with a custom stage list that omits the oracle stage.
    return Estimate(weight=static_weight_for(ctx), source="static", confidence="low")
