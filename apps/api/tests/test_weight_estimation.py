"""
Tests for the starting-weight estimation chain.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from core.exceptions import OracleTimeoutError
from models import Workout
from services.exercise_oracle import WeightEstimateResult
from services.weight_estimation import (
    ESTIMATION_STAGES,
    EstimationContext,
    LearnedWeight,
    bodyweight_ratio_stage,
    first_estimate,
    load_learned_weights,
    static_table_stage,
    static_weight_for,
    strength_baseline_stage,
)


def _oracle(weight=12.0, confidence="medium"):
    oracle = MagicMock()
    oracle.estimate_initial_weight.return_value = WeightEstimateResult(
        estimated_weight=weight, confidence=confidence
    )
    return oracle


class TestStageOrder:

    def test_order(self):
        names = [s.__name__ for s in ESTIMATION_STAGES]
        assert names == [
            "learned_weight_stage",
            "strength_baseline_stage",
            "bodyweight_ratio_stage",
            "static_table_stage",
            "oracle_stage",
        ]

    def test_learned_weight_beats_baseline(self):
        """Baseline alone would give 68; the learned 70 wins."""
        ctx = EstimationContext(
            exercise_name="Bench Press",
            bodyweight=80,
            strength_baseline={"bench press": {"weight": 80, "reps": 5}},
            learned_weights={"bench press": LearnedWeight(target_weight=70, confidence="high")},
        )
        estimate = first_estimate(ctx)
        assert estimate.weight == 70
        assert estimate.source == "learned"
        assert estimate.confidence == "high"

    def test_baseline_is_85_percent(self):
        ctx = EstimationContext(
            exercise_name="Bench Press",
            bodyweight=80,
            strength_baseline={"bench press": {"weight": 80, "reps": 5}},
        )
        estimate = first_estimate(ctx)
        assert estimate.weight == 68
        assert estimate.source == "baseline"

    def test_custom_stage_list(self):
        ctx = EstimationContext(exercise_name="Barbell Squat", bodyweight=100)
        estimate = first_estimate(ctx, stages=[static_table_stage])
        assert estimate.source == "static"
        assert estimate.weight == 50


class TestStrengthBaseline:

    def test_matches_decorated_exercise_name(self):
        ctx = EstimationContext(
            exercise_name="Bench Press (Barbell)",
            strength_baseline={"bench press": {"weight": 100}},
        )
        assert strength_baseline_stage(ctx).weight == 85

    def test_empty_baseline_entry_is_skipped(self):
        ctx = EstimationContext(
            exercise_name="Bench Press",
            strength_baseline={"bench press": {"weight": 0}},
        )
        assert strength_baseline_stage(ctx) is None

    def test_unrelated_baseline(self):
        ctx = EstimationContext(
            exercise_name="Lateral Raise",
            strength_baseline={"squat": {"weight": 120}},
        )
        assert strength_baseline_stage(ctx) is None


class TestBodyweightRatio:

    @pytest.mark.parametrize("name,gender,expected", [
        ("Barbell Bench Press", "male", 40),
        ("Back Squat", "male", 48),
        ("Conventional Deadlift", "male", 64),
        ("Leg Press", "male", 56),
        ("Barbell Row", "female", 19),
    ])
    def test_family_ratios(self, name, gender, expected):
        ctx = EstimationContext(exercise_name=name, gender=gender, bodyweight=80)
        assert bodyweight_ratio_stage(ctx).weight == expected

    def test_no_bodyweight(self):
        ctx = EstimationContext(exercise_name="Bench Press")
        assert bodyweight_ratio_stage(ctx) is None

    def test_unknown_family(self):
        ctx = EstimationContext(exercise_name="Cable Crossover", bodyweight=80)
        assert bodyweight_ratio_stage(ctx) is None


class TestStaticTableAndOracle:

    def test_static_values(self):
        assert static_weight_for(EstimationContext(exercise_name="Bench Press")) == 40
        assert static_weight_for(EstimationContext(exercise_name="Hack Squat")) == 50
        assert static_weight_for(EstimationContext(exercise_name="Pec Deck")) == 20
        assert static_weight_for(EstimationContext(exercise_name="Bench Press", gender="female")) == 24

    def test_low_static_value_without_context_asks_oracle(self):
        oracle = _oracle(weight=8.0)
        ctx = EstimationContext(exercise_name="Lateral Raise", gender="female", oracle=oracle)
        estimate = first_estimate(ctx)
        assert estimate.source == "oracle"
        assert estimate.weight == 8.0
        oracle.estimate_initial_weight.assert_called_once()

    def test_low_static_value_with_bodyweight_stays_static(self):
        oracle = _oracle()
        ctx = EstimationContext(exercise_name="Lateral Raise", bodyweight=70, oracle=oracle)
        estimate = first_estimate(ctx)
        assert estimate.source == "static"
        assert estimate.weight == 10
        oracle.estimate_initial_weight.assert_not_called()

    def test_oracle_failure_degrades_to_static(self):
        oracle = MagicMock()
        oracle.estimate_initial_weight.side_effect = OracleTimeoutError("slow")
        ctx = EstimationContext(exercise_name="Lateral Raise", oracle=oracle)
        estimate = first_estimate(ctx)
        assert estimate.source == "static"
        assert estimate.weight == 10

    def test_other_gender_is_sent_as_male(self):
        oracle = _oracle()
        ctx = EstimationContext(exercise_name="Lateral Raise", gender="other", oracle=oracle)
        first_estimate(ctx)
        assert oracle.estimate_initial_weight.call_args.kwargs["gender"] == "male"


class TestLoadLearnedWeights:

    def test_most_recent_workout_wins(self, db_session, user_id):
        now = datetime.now(timezone.utc)
        for days_ago, weight in ((10, 60.0), (2, 65.0)):
            db_session.add(Workout(
                user_id=user_id,
                workout_type="push",
                status="completed",
                completed_at=now - timedelta(days=days_ago),
                learned_target_weights=[
                    {"exercise_name": "Bench Press", "target_weight": weight, "confidence": "high"},
                ],
            ))
        db_session.commit()

        learned = load_learned_weights(db_session, user_id, now=now)
        assert learned["bench press"].target_weight == 65.0
        assert learned["bench press"].confidence == "high"

    def test_ignores_old_and_incomplete_workouts(self, db_session, user_id):
        now = datetime.now(timezone.utc)
        db_session.add(Workout(
            user_id=user_id,
            workout_type="push",
            status="completed",
            completed_at=now - timedelta(days=45),
            learned_target_weights=[{"exercise_name": "Bench Press", "target_weight": 60}],
        ))
        db_session.add(Workout(
            user_id=user_id,
            workout_type="push",
            status="in_progress",
            learned_target_weights=[{"exercise_name": "Squat", "target_weight": 90}],
        ))
        db_session.commit()

        assert load_learned_weights(db_session, user_id, now=now) == {}
