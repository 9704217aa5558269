"""
Tests for exercise stagnation detection.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from models import SetLog, Workout
from services.exercise_stagnation import analyze_stagnation, get_stagnation_data


# A Monday, so +7 day steps land in distinct ISO weeks.
MONDAY = datetime(2026, 9, 7, 18, 0, tzinfo=timezone.utc)


def _weekly(name, weights, start=MONDAY):
    return [(name, w, start + timedelta(weeks=i)) for i, w in enumerate(weights)]


class TestAnalyzeStagnation:

    def test_flat_five_weeks_is_plateaued(self):
        """50 -> 50.5 over five weeks is a 1% change: plateau."""
        logs = _weekly("Bench Press", [50, 50, 50.5, 50, 50.5])
        [result] = analyze_stagnation(logs, ["Bench Press"])
        assert result.weeks_used == 5
        assert result.avg_weight_change == 1.0
        assert result.is_plateaued is True

    def test_progressing_lift_is_not_plateaued(self):
        logs = _weekly("Squat", [80, 82.5, 85, 87.5])
        [result] = analyze_stagnation(logs, ["Squat"])
        assert result.avg_weight_change == 9.4
        assert result.is_plateaued is False

    def test_too_few_weeks(self):
        logs = _weekly("Squat", [80, 80, 80])
        [result] = analyze_stagnation(logs, ["Squat"])
        assert result.weeks_used == 3
        assert result.is_plateaued is False

    def test_same_week_sets_are_averaged(self):
        logs = [
            ("Row", 40, MONDAY),
            ("Row", 50, MONDAY + timedelta(days=2)),
            ("Row", 45, MONDAY + timedelta(weeks=1)),
        ]
        [result] = analyze_stagnation(logs, ["Row"])
        assert result.weeks_used == 2
        assert result.avg_weight_change == 0.0

    def test_case_insensitive_names_keep_caller_spelling_and_order(self):
        logs = _weekly("bench press", [50, 52]) + _weekly("SQUAT", [100, 100])
        results = analyze_stagnation(logs, ["Squat", "Bench Press", "Curl"])
        assert [r.name for r in results] == ["Squat", "Bench Press"]

    def test_no_names(self):
        assert analyze_stagnation(_weekly("Squat", [80]), []) == []

    def test_to_dict(self):
        [result] = analyze_stagnation(_weekly("Squat", [80]), ["Squat"])
        assert result.to_dict() == {
            "name": "Squat",
            "weeks_used": 1,
            "is_plateaued": False,
            "avg_weight_change": 0.0,
        }


class TestGetStagnationData:

    def test_reads_only_completed_working_sets(self, db_session, user_id):
        now = datetime.now(timezone.utc)
        completed = Workout(user_id=user_id, workout_type="push", status="completed", completed_at=now)
        abandoned = Workout(user_id=user_id, workout_type="push", status="in_progress")
        db_session.add_all([completed, abandoned])
        db_session.flush()

        for week in range(5):
            logged_at = now - timedelta(weeks=week)
            db_session.add(SetLog(
                workout_id=completed.id, exercise_index=0, exercise_name="Bench Press",
                set_number=1, set_type="working", weight_actual=50.0, created_at=logged_at,
            ))
            db_session.add(SetLog(
                workout_id=completed.id, exercise_index=0, exercise_name="Bench Press",
                set_number=0, set_type="warmup", weight_actual=20.0, created_at=logged_at,
            ))
            db_session.add(SetLog(
                workout_id=abandoned.id, exercise_index=0, exercise_name="Bench Press",
                set_number=1, set_type="working", weight_actual=90.0, created_at=logged_at,
            ))
        db_session.commit()

        [result] = get_stagnation_data(db_session, user_id, ["Bench Press"], now=now + timedelta(minutes=1))
        assert result.weeks_used == 5
        assert result.avg_weight_change == 0.0
        assert result.is_plateaued is True

    def test_empty_names_skip_the_query(self, db_session, user_id):
        assert get_stagnation_data(db_session, user_id, []) == []

    def test_query_failure_rolls_back_and_returns_empty(self, user_id):
        db = MagicMock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("current transaction is aborted"))

        assert get_stagnation_data(db, user_id, ["Bench Press"]) == []
        db.rollback.assert_called_once()
