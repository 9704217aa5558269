"""
Tests for in-session advice: rest-timer bounds, hydration reminders and
warmup-skip suggestions.
"""

from datetime import datetime, timedelta, timezone

import pytest

from services.rest_timer_limits import (
    adjust_rest_seconds,
    calculate_rest_timer_limits,
    limits_for,
    rest_exercise_type,
)
from services.workout_advisors import (
    HydrationInput,
    is_heavy_compound_leg,
    skip_reason_code,
    suggest_hydration,
    suggest_warmup_skip,
)


NOW = datetime(2026, 10, 12, 18, 0, tzinfo=timezone.utc)


class TestRestTimerLimits:

    @pytest.mark.parametrize("approach,exercise_type,expected", [
        (None, "compound", (90, 180)),
        (None, "isolation", (45, 90)),
        ("FST-7 Hypertrophy", "fst7", (30, 45)),
        ("FST-7 Hypertrophy", "isolation", (60, 90)),
        ("Y3T", "compound", (90, 240)),
        ("Mountain Dog Training", "explosive", (180, 240)),
        ("Mountain Dog Training", "pump", (30, 60)),
    ])
    def test_limits(self, approach, exercise_type, expected):
        assert limits_for(approach, exercise_type) == expected

    @pytest.mark.parametrize("name,guidance,expected", [
        ("FST-7 Cable Fly", None, "fst7"),
        ("Box Jump (explosive)", None, "explosive"),
        ("Leg Extension", "activation", "activation"),
        ("Back Squat", None, "compound"),
        ("Cable Curl", None, "isolation"),
    ])
    def test_exercise_type(self, name, guidance, expected):
        assert rest_exercise_type(name, guidance) == expected

    def test_status_bands(self):
        assert calculate_rest_timer_limits(120, 120, exercise_type="compound").status == "optimal"
        assert calculate_rest_timer_limits(150, 120, exercise_type="compound").status == "acceptable"
        assert calculate_rest_timer_limits(75, 90, exercise_type="compound").status == "warning"
        assert calculate_rest_timer_limits(30, 120, exercise_type="compound").status == "critical"

    def test_recommended_is_the_planned_rest(self):
        limits = calculate_rest_timer_limits(90, 120, approach_name="Y3T", exercise_type="compound")
        assert (limits.min, limits.max, limits.recommended) == (90, 240, 120)

    def test_adjust_never_negative(self):
        assert adjust_rest_seconds(90, 15) == 105
        assert adjust_rest_seconds(10, -15) == 0


class TestHydration:

    def test_nothing_before_first_set(self):
        assert suggest_hydration(HydrationInput(workout_duration_s=1800, total_sets_completed=0)).should_suggest is False

    def test_time_trigger(self):
        result = suggest_hydration(HydrationInput(workout_duration_s=16 * 60, total_sets_completed=4))
        assert result.should_suggest is True
        assert "16 minutes" in result.reason
        assert result.water_amount == "200-250ml"

    def test_set_count_trigger(self):
        result = suggest_hydration(HydrationInput(workout_duration_s=8 * 60, total_sets_completed=6))
        assert result.should_suggest is True
        assert "6 sets" in result.reason

    def test_no_trigger(self):
        result = suggest_hydration(HydrationInput(workout_duration_s=8 * 60, total_sets_completed=5))
        assert result.should_suggest is False

    def test_recent_dismissal_suppresses(self):
        result = suggest_hydration(HydrationInput(
            workout_duration_s=40 * 60,
            total_sets_completed=12,
            last_dismissed_at=NOW - timedelta(minutes=4),
            now=NOW,
        ))
        assert result.should_suggest is False
        assert result.next_check_in_minutes == 6

    def test_time_since_dismissal_drives_the_trigger(self):
        result = suggest_hydration(HydrationInput(
            workout_duration_s=40 * 60,
            total_sets_completed=13,
            last_dismissed_at=NOW - timedelta(minutes=12),
            now=NOW,
        ))
        assert result.should_suggest is False

    def test_heavy_leg_compound_gets_small_sips(self):
        result = suggest_hydration(HydrationInput(
            workout_duration_s=20 * 60, total_sets_completed=7, exercise_name="Back Squat",
        ))
        assert result.message_type == "smallSipsOnly"
        assert result.water_amount == "50-100ml (small sips)"

    def test_hard_set_is_important(self):
        result = suggest_hydration(HydrationInput(
            workout_duration_s=20 * 60, total_sets_completed=7, last_set_rir=0,
        ))
        assert result.urgency == "important"

    @pytest.mark.parametrize("name,expected", [
        ("Back Squat", True),
        ("Leg Press", True),
        ("Leg Extension", False),
        ("Bench Press", False),
    ])
    def test_heavy_compound_leg(self, name, expected):
        assert is_heavy_compound_leg(name) is expected


def _exercise(name, warmups=True):
    return {
        "exercise_name": name,
        "warmup_sets": [{"weight_percentage": 50, "reps": 10}] if warmups else [],
    }


class TestWarmupSkip:

    def test_first_exercise_keeps_warmup(self):
        result = suggest_warmup_skip([_exercise("Bench Press")], 0, mesocycle_phase="deload")
        assert result.should_suggest is False

    def test_exercise_without_warmups(self):
        result = suggest_warmup_skip([_exercise("Bench Press"), _exercise("Fly", warmups=False)], 1)
        assert result.should_suggest is False
        assert result.confidence == "high"

    def test_deload(self):
        result = suggest_warmup_skip([_exercise("Bench Press"), _exercise("Curl")], 1, mesocycle_phase="deload")
        assert result.should_suggest is True
        assert skip_reason_code(result) == "ai_suggested_deload"

    def test_second_compound_same_muscle(self):
        exercises = [_exercise("Barbell Bench Press"), _exercise("Incline Bench Press")]
        result = suggest_warmup_skip(exercises, 1)
        assert result.should_suggest is True
        assert result.reason_code == "ai_suggested_second_compound"

    def test_late_exercise_low_readiness(self):
        exercises = [_exercise("Bench Press"), _exercise("Barbell Row"), _exercise("Lateral Raise")]
        result = suggest_warmup_skip(exercises, 2, mental_readiness=2)
        assert result.should_suggest is True
        assert result.confidence == "medium"
        assert result.reason_code == "ai_suggested_late_exercise"

    def test_default_keeps_warmup(self):
        exercises = [_exercise("Bench Press"), _exercise("Back Squat")]
        result = suggest_warmup_skip(exercises, 1, mental_readiness=4)
        assert result.should_suggest is False
        assert skip_reason_code(result) == "ai_suggested_general"
