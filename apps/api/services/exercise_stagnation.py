"""
Exercise Stagnation Analyzer

Flags exercises whose working load has stalled so the oracle can rotate
them out. Window is the trailing 8 weeks of working, non-skipped sets
from completed workouts, bucketed by ISO week:

    weeks_used         distinct ISO weeks with at least one set
    avg_weight_change  % change from the earliest week's mean load to
                       the latest week's mean load (1 decimal)
    is_plateaued       weeks_used >= 4 and |change| < 2.5

Advisory only: no logs or no names -> empty list, DB failures are
logged and also yield an empty list.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import SetLog, Workout

logger = logging.getLogger(__name__)


WINDOW_DAYS = 56
PLATEAU_MIN_WEEKS = 4
PLATEAU_MAX_CHANGE_PCT = 2.5


@dataclass
class StagnationResult:
    name: str
    weeks_used: int
    is_plateaued: bool
    avg_weight_change: float

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "weeks_used": self.weeks_used,
            "is_plateaued": self.is_plateaued,
            "avg_weight_change": self.avg_weight_change,
        }


def _week_key(when: datetime) -> Tuple[int, int]:
    iso = when.isocalendar()
    return (iso[0], iso[1])


def analyze_stagnation(
    logs: Iterable[Tuple[str, Optional[float], datetime]],
    exercise_names: List[str],
) -> List[StagnationResult]:
    """
    Pure core over (exercise_name, weight_actual, logged_at) rows.

    Names match case-insensitively; results use the caller's spelling and
    keep the caller's order.
    """
    if not exercise_names:
        return []

    wanted = {name.lower(): name for name in exercise_names}
    buckets: Dict[str, Dict[Tuple[int, int], List[float]]] = {}

    for exercise_name, weight, logged_at in logs:
        if not exercise_name or weight is None or logged_at is None:
            continue
        name = wanted.get(exercise_name.lower())
        if name is None:
            continue
        buckets.setdefault(name, {}).setdefault(_week_key(logged_at), []).append(float(weight))

    results = []
    for name in exercise_names:
        weeks = buckets.get(name)
        if not weeks:
            continue

        ordered = [weeks[k] for k in sorted(weeks)]
        change = 0.0
        if len(ordered) >= 2:
            first_avg = sum(ordered[0]) / len(ordered[0])
            last_avg = sum(ordered[-1]) / len(ordered[-1])
            if first_avg > 0:
                change = (last_avg - first_avg) / first_avg * 100

        weeks_used = len(ordered)
        results.append(StagnationResult(
            name=name,
            weeks_used=weeks_used,
            is_plateaued=weeks_used >= PLATEAU_MIN_WEEKS and abs(change) < PLATEAU_MAX_CHANGE_PCT,
            avg_weight_change=round(change, 1),
        ))

    return results


def get_stagnation_data(
    db: Session,
    user_id: UUID,
    exercise_names: List[str],
    now: Optional[datetime] = None,
) -> List[StagnationResult]:
    if not exercise_names:
        return []

    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=WINDOW_DAYS)

    try:
        rows = (
            db.query(SetLog.exercise_name, SetLog.weight_actual, SetLog.created_at)
            .join(Workout, Workout.id == SetLog.workout_id)
            .filter(
                Workout.user_id == user_id,
                Workout.status == "completed",
                SetLog.set_type == "working",
                SetLog.skipped.is_(False),
                SetLog.created_at >= since,
            )
            .order_by(SetLog.created_at.asc())
            .all()
        )
    except SQLAlchemyError as e:
        # Leave the shared session usable for the rest of generation.
        db.rollback()
        logger.warning(f"Stagnation lookup failed for user {user_id}: {e}")
        return []

    results = analyze_stagnation(rows, exercise_names)
    plateaued = sum(1 for r in results if r.is_plateaued)
    logger.info(f"Stagnation: {len(results)} exercises analyzed, {plateaued} plateaued (user {user_id})")
    return results
