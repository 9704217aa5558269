"""
Split Plans API Router

A user has at most one active plan; creating or activating a plan resets
the cycle to day 1.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from core.auth import get_current_profile, get_current_user_id
from core.database import get_db
from core.exceptions import NotFoundError
from models import UserProfile
from schemas import NextSessionResponse, SplitPlanCreate, SplitPlanResponse, SplitPlanUpdate
from services import split_plan_service

router = APIRouter(prefix="/v1/split-plans", tags=["Split Plans"])


@router.post("", response_model=SplitPlanResponse, status_code=201)
def create_split_plan(
    body: SplitPlanCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return split_plan_service.create_split_plan(db, user_id, body)


@router.get("", response_model=List[SplitPlanResponse])
def list_split_plans(
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return split_plan_service.list_split_plans(db, user_id)


@router.get("/active", response_model=Optional[SplitPlanResponse])
def get_active_split_plan(
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return split_plan_service.get_active_split_plan(db, user_id)


@router.get("/next-session", response_model=Optional[NextSessionResponse])
def get_next_session(
    profile: UserProfile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    """Session for the current cycle day; null without an active plan."""
    upcoming = split_plan_service.next_session(db, profile)
    if upcoming is None:
        return None
    return NextSessionResponse(
        split_plan_id=upcoming.plan.id,
        cycle_day=upcoming.cycle_day,
        cycle_days=upcoming.plan.cycle_days,
        session=upcoming.session,
    )


@router.post("/{plan_id}/activate", response_model=SplitPlanResponse)
def activate_split_plan(
    plan_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return split_plan_service.activate_split_plan(db, user_id, plan_id)


@router.patch("/{plan_id}", response_model=SplitPlanResponse)
def update_split_plan(
    plan_id: UUID,
    body: SplitPlanUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return split_plan_service.update_split_plan(db, user_id, plan_id, body)


@router.delete("/{plan_id}", status_code=204)
def delete_split_plan(
    plan_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if not split_plan_service.delete_split_plan(db, user_id, plan_id):
        raise NotFoundError("Split plan", str(plan_id))
    return Response(status_code=204)
