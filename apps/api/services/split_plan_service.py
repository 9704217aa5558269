"""
Split-Plan Cycle Manager

Owns (active_split_plan_id, current_cycle_day) on UserProfile and the
`active` flag on SplitPlan.

    activate      deactivate the user's other plans, activate one, day -> 1
    next_session  session whose day == current_cycle_day
    advance       day -> 1 after the last day, else day + 1

advance() must run once per completed split-linked workout; only
workout_service.complete_with_stats calls it.

Deactivate-then-activate is two statements, not a lock: two concurrent
activations for the same user can race. Acceptable for a human-paced
settings action.
"""

import logging
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import (
    InvalidSplitPlanError,
    NoActiveSplitPlanError,
    NoSessionForCycleDayError,
    ProfileNotFoundError,
)
from models import SplitPlan, UserProfile
from schemas import SessionDefinition, SplitPlanCreate, SplitPlanUpdate

logger = logging.getLogger(__name__)


REST_WORKOUT_TYPE = "rest"


@dataclass
class NextSession:
    plan: SplitPlan
    session: Dict[str, Any]
    cycle_day: int


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_sessions(cycle_days: int, sessions: List[SessionDefinition]) -> None:
    """Session days must be exactly {1..cycle_days}."""
    if cycle_days <= 0:
        raise InvalidSplitPlanError("cycle_days must be greater than 0")

    days = [s.day for s in sessions]
    if len(days) != len(set(days)):
        raise InvalidSplitPlanError("Each cycle day may only have one session")
    if sorted(days) != list(range(1, cycle_days + 1)):
        raise InvalidSplitPlanError(
            f"Sessions must cover days 1..{cycle_days} exactly once (got {sorted(days)})"
        )


def _load_profile(db: Session, user_id: UUID) -> UserProfile:
    profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
    if not profile:
        raise ProfileNotFoundError()
    return profile


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_active_split_plan(db: Session, user_id: UUID) -> Optional[SplitPlan]:
    return (
        db.query(SplitPlan)
        .filter(SplitPlan.user_id == user_id, SplitPlan.active.is_(True))
        .first()
    )


def list_split_plans(db: Session, user_id: UUID) -> List[SplitPlan]:
    return (
        db.query(SplitPlan)
        .filter(SplitPlan.user_id == user_id)
        .order_by(SplitPlan.created_at.desc())
        .all()
    )


def get_split_plan(db: Session, user_id: UUID, plan_id: UUID) -> Optional[SplitPlan]:
    return (
        db.query(SplitPlan)
        .filter(SplitPlan.id == plan_id, SplitPlan.user_id == user_id)
        .first()
    )


def session_for_day(plan: SplitPlan, cycle_day: int) -> Optional[Dict[str, Any]]:
    for session in plan.sessions or []:
        if session.get("day") == cycle_day:
            return session
    return None


def is_rest_session(session: Dict[str, Any]) -> bool:
    return (session.get("workout_type") or "").lower() == REST_WORKOUT_TYPE


def next_session(db: Session, profile: UserProfile) -> Optional[NextSession]:
    """
    The session for the profile's current cycle day.

    None when the user has no active plan. A plan without a session for
    the current day violates the plan invariant and raises
    NoSessionForCycleDayError.
    """
    if not profile.active_split_plan_id:
        return None

    plan = (
        db.query(SplitPlan)
        .filter(SplitPlan.id == profile.active_split_plan_id, SplitPlan.user_id == profile.user_id)
        .first()
    )
    if not plan:
        logger.warning(
            f"Profile {profile.user_id} points at missing split plan {profile.active_split_plan_id}"
        )
        return None

    cycle_day = profile.current_cycle_day or 1
    session = session_for_day(plan, cycle_day)
    if session is None:
        logger.error(f"No session for cycle day {cycle_day} in split plan {plan.id}")
        raise NoSessionForCycleDayError(cycle_day)

    return NextSession(plan=plan, session=session, cycle_day=cycle_day)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

def _deactivate_all(db: Session, user_id: UUID) -> None:
    (
        db.query(SplitPlan)
        .filter(SplitPlan.user_id == user_id, SplitPlan.active.is_(True))
        .update({SplitPlan.active: False}, synchronize_session="fetch")
    )


def _link_profile(profile: UserProfile, plan: SplitPlan) -> None:
    profile.active_split_plan_id = plan.id
    profile.current_cycle_day = 1
    profile.current_cycle_started_at = datetime.now(timezone.utc)
    profile.preferred_split = plan.split_type or profile.preferred_split


def create_split_plan(db: Session, user_id: UUID, data: SplitPlanCreate) -> SplitPlan:
    """Create a plan and make it the user's only active plan."""
    validate_sessions(data.cycle_days, data.sessions)
    profile = _load_profile(db, user_id)

    _deactivate_all(db, user_id)
    plan = SplitPlan(
        user_id=user_id,
        name=data.name,
        split_type=data.split_type,
        cycle_days=data.cycle_days,
        sessions=[s.model_dump() for s in sorted(data.sessions, key=lambda s: s.day)],
        active=True,
    )
    db.add(plan)
    db.flush()

    _link_profile(profile, plan)
    db.commit()
    db.refresh(plan)

    logger.info(f"Created split plan {plan.id} ({plan.cycle_days} days) for user {user_id}")
    return plan


def activate_split_plan(db: Session, user_id: UUID, plan_id: UUID) -> SplitPlan:
    plan = get_split_plan(db, user_id, plan_id)
    if not plan:
        raise NoActiveSplitPlanError(f"Split plan not found: {plan_id}")
    profile = _load_profile(db, user_id)

    _deactivate_all(db, user_id)
    plan.active = True
    _link_profile(profile, plan)
    db.commit()
    db.refresh(plan)

    logger.info(f"Activated split plan {plan.id} for user {user_id}")
    return plan


def update_split_plan(db: Session, user_id: UUID, plan_id: UUID, data: SplitPlanUpdate) -> SplitPlan:
    plan = get_split_plan(db, user_id, plan_id)
    if not plan:
        raise NoActiveSplitPlanError(f"Split plan not found: {plan_id}")

    cycle_days = data.cycle_days if data.cycle_days is not None else plan.cycle_days
    if data.sessions is not None:
        sessions = data.sessions
    else:
        sessions = [SessionDefinition(**s) for s in plan.sessions or []]
    validate_sessions(cycle_days, sessions)

    if data.name is not None:
        plan.name = data.name
    plan.cycle_days = cycle_days
    plan.sessions = [s.model_dump() for s in sorted(sessions, key=lambda s: s.day)]

    if plan.active:
        profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
        if profile and (profile.current_cycle_day or 1) > cycle_days:
            # Plan got shorter than where the user stands.
            profile.current_cycle_day = 1
            profile.current_cycle_started_at = datetime.now(timezone.utc)

    db.commit()
    db.refresh(plan)
    return plan


def delete_split_plan(db: Session, user_id: UUID, plan_id: UUID) -> bool:
    plan = get_split_plan(db, user_id, plan_id)
    if not plan:
        return False

    profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
    if profile and profile.active_split_plan_id == plan.id:
        profile.active_split_plan_id = None
        profile.current_cycle_day = 1
        profile.current_cycle_started_at = None

    db.delete(plan)
    db.commit()
    logger.info(f"Deleted split plan {plan_id} for user {user_id}")
    return True


def advance_cycle(db: Session, user_id: UUID, completed_day: Optional[int] = None) -> int:
    """
    Move the user to the day after completed_day, wrapping to 1.

    completed_day defaults to the profile's current day. Returns the new day.
    """
    profile = _load_profile(db, user_id)
    if not profile.active_split_plan_id:
        raise NoActiveSplitPlanError()

    plan = db.query(SplitPlan).filter(SplitPlan.id == profile.active_split_plan_id).first()
    if not plan:
        raise NoActiveSplitPlanError()

    day = completed_day if completed_day is not None else (profile.current_cycle_day or 1)
    next_day = 1 if day >= plan.cycle_days else day + 1

    profile.current_cycle_day = next_day
    if next_day == 1:
        profile.current_cycle_started_at = datetime.now(timezone.utc)
    db.commit()

    logger.info(f"Advanced user {user_id} from cycle day {day} to {next_day} (plan {plan.id})")
    return next_day
