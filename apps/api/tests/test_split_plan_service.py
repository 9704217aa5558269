"""
Tests for split-plan activation, session lookup and cycle advancement.
"""

import pytest

from core.exceptions import (
    InvalidSplitPlanError,
    NoActiveSplitPlanError,
    NoSessionForCycleDayError,
    ProfileNotFoundError,
)
from models import SplitPlan
from schemas import SessionDefinition, SplitPlanCreate, SplitPlanUpdate
from services import split_plan_service
from tests.workout_test_helpers import make_sessions


class TestValidation:

    def test_days_must_cover_cycle(self):
        with pytest.raises(InvalidSplitPlanError):
            split_plan_service.validate_sessions(3, make_sessions(["push", "pull"]))

    def test_duplicate_days(self):
        sessions = [
            SessionDefinition(day=1, workout_type="push"),
            SessionDefinition(day=1, workout_type="pull"),
        ]
        with pytest.raises(InvalidSplitPlanError):
            split_plan_service.validate_sessions(2, sessions)

    def test_valid(self):
        split_plan_service.validate_sessions(3, make_sessions(["push", "pull", "legs"]))


class TestActivation:

    def test_create_activates_and_resets_day(self, db_session, profile, make_plan):
        profile.current_cycle_day = 3
        db_session.commit()

        plan = make_plan()
        db_session.refresh(profile)

        assert plan.active is True
        assert profile.active_split_plan_id == plan.id
        assert profile.current_cycle_day == 1
        assert profile.current_cycle_started_at is not None
        assert [s["day"] for s in plan.sessions] == [1, 2, 3, 4]

    def test_only_one_active_plan(self, db_session, profile, make_plan):
        first = make_plan(name="First")
        second = make_plan(name="Second")

        active = (
            db_session.query(SplitPlan)
            .filter(SplitPlan.user_id == profile.user_id, SplitPlan.active.is_(True))
            .all()
        )
        assert [p.id for p in active] == [second.id]

        split_plan_service.activate_split_plan(db_session, profile.user_id, first.id)
        db_session.refresh(second)
        db_session.refresh(profile)
        assert second.active is False
        assert profile.active_split_plan_id == first.id
        assert split_plan_service.get_active_split_plan(db_session, profile.user_id).id == first.id

    def test_create_without_profile(self, db_session, user_id):
        with pytest.raises(ProfileNotFoundError):
            split_plan_service.create_split_plan(
                db_session,
                user_id,
                SplitPlanCreate(cycle_days=1, sessions=make_sessions(["push"])),
            )

    def test_activate_unknown_plan(self, db_session, profile):
        from uuid import uuid4
        with pytest.raises(NoActiveSplitPlanError):
            split_plan_service.activate_split_plan(db_session, profile.user_id, uuid4())


class TestNextSession:

    def test_session_for_current_day(self, db_session, profile, make_plan):
        plan = make_plan(["push", "pull", "legs"])
        profile.current_cycle_day = 2
        db_session.commit()

        nxt = split_plan_service.next_session(db_session, profile)
        assert nxt.plan.id == plan.id
        assert nxt.cycle_day == 2
        assert nxt.session["workout_type"] == "pull"

    def test_no_active_plan(self, db_session, profile):
        assert split_plan_service.next_session(db_session, profile) is None

    def test_missing_day_raises(self, db_session, profile, make_plan):
        make_plan(["push", "pull"])
        profile.current_cycle_day = 5
        db_session.commit()
        with pytest.raises(NoSessionForCycleDayError):
            split_plan_service.next_session(db_session, profile)


class TestAdvanceCycle:

    @pytest.mark.parametrize("completed_day,expected", [(1, 2), (2, 3), (3, 4), (4, 1)])
    def test_wraps_after_last_day(self, db_session, profile, make_plan, completed_day, expected):
        make_plan(["push", "pull", "legs", "rest"])
        assert split_plan_service.advance_cycle(db_session, profile.user_id, completed_day) == expected
        db_session.refresh(profile)
        assert profile.current_cycle_day == expected

    def test_defaults_to_current_day(self, db_session, profile, make_plan):
        make_plan(["push", "pull", "legs"])
        profile.current_cycle_day = 2
        db_session.commit()
        assert split_plan_service.advance_cycle(db_session, profile.user_id) == 3

    def test_without_active_plan(self, db_session, profile):
        with pytest.raises(NoActiveSplitPlanError):
            split_plan_service.advance_cycle(db_session, profile.user_id)


class TestUpdateAndDelete:

    def test_shrinking_plan_resets_day(self, db_session, profile, make_plan):
        plan = make_plan(["push", "pull", "legs", "rest"])
        profile.current_cycle_day = 4
        db_session.commit()

        split_plan_service.update_split_plan(
            db_session,
            profile.user_id,
            plan.id,
            SplitPlanUpdate(cycle_days=2, sessions=make_sessions(["upper", "lower"])),
        )
        db_session.refresh(profile)
        assert profile.current_cycle_day == 1

    def test_update_revalidates(self, db_session, profile, make_plan):
        plan = make_plan(["push", "pull", "legs"])
        with pytest.raises(InvalidSplitPlanError):
            split_plan_service.update_split_plan(
                db_session, profile.user_id, plan.id, SplitPlanUpdate(cycle_days=4)
            )

    def test_delete_active_plan_unlinks_profile(self, db_session, profile, make_plan):
        plan = make_plan()
        assert split_plan_service.delete_split_plan(db_session, profile.user_id, plan.id) is True
        db_session.refresh(profile)
        assert profile.active_split_plan_id is None
        assert split_plan_service.delete_split_plan(db_session, profile.user_id, plan.id) is False
