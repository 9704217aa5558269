"""
Tests for the Gemini-backed exercise oracle.

The google-genai client is replaced with a MagicMock whose
generate_content returns canned candidates.
"""

import json
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from core.exceptions import OracleError, OracleResponseError, OracleTimeoutError
from schemas import ExercisePlan
from services.exercise_oracle import (
    ExerciseOracle,
    ExerciseSelectionRequest,
    normalize_exercise,
)


def _response(payload, response_id="resp-42"):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    part = SimpleNamespace(text=text)
    candidate = SimpleNamespace(content=SimpleNamespace(parts=[part]))
    return SimpleNamespace(candidates=[candidate], response_id=response_id)


def _oracle(payload=None, side_effect=None, **kwargs):
    client = MagicMock()
    if side_effect is not None:
        client.models.generate_content.side_effect = side_effect
    else:
        client.models.generate_content.return_value = _response(payload)
    return ExerciseOracle(gemini_client=client, **kwargs), client


@pytest.fixture
def selection_request():
    return ExerciseSelectionRequest(user_id="u1", workout_type="push", weak_points=["shoulders"])


class TestNormalizeExercise:

    def test_camel_case_oracle_output(self):
        plan = normalize_exercise({
            "name": "Bench Press",
            "sets": 4,
            "repRange": [6, 10],
            "restSeconds": 150,
            "warmupSets": [{"weightPercentage": 50, "reps": 10}],
            "rationaleForSelection": "Main press",
        })
        assert plan.exercise_name == "Bench Press"
        assert plan.target_sets == 4
        assert plan.target_reps == [6, 10]
        assert plan.rest_seconds == 150
        assert plan.warmup_sets[0].weight_percentage == 50
        assert plan.warmup_sets[0].set_number == 1
        assert plan.rationale == "Main press"

    def test_legacy_scalar_target_reps(self):
        plan = normalize_exercise({"exerciseName": "Row", "repRange": [8, 12], "targetReps": 10})
        assert plan.target_reps == [8, 12]
        assert plan.planned_reps == 10

    def test_rep_range_string(self):
        plan = normalize_exercise({"name": "Curl", "repRange": "12-8"})
        assert plan.target_reps == [8, 12]

    def test_round_trips_stored_plan(self):
        stored = normalize_exercise({"name": "Squat", "targetWeight": 100}).model_dump()
        assert normalize_exercise(stored).target_weight == 100

    def test_passes_plans_through(self):
        plan = ExercisePlan(exercise_name="Dip")
        assert normalize_exercise(plan) is plan

    @pytest.mark.parametrize("raw", [{"sets": 3}, {"name": "   "}, "Bench Press"])
    def test_rejects_nameless_entries(self, raw):
        with pytest.raises(OracleResponseError):
            normalize_exercise(raw)


class TestSelectExercises:

    def test_parses_selection(self, selection_request):
        oracle, client = _oracle({
            "exercises": [
                {"name": "Bench Press", "sets": 4, "repRange": [8, 12]},
                {"name": "Lateral Raise", "sets": 3, "repRange": [12, 15], "aiRecommendedSets": 2},
            ],
            "workoutRationale": "Press heavy, raise light",
            "insightInfluencedChanges": [{"source": "insight", "action": "swap"}],
        })
        result = oracle.select_exercises(selection_request)

        assert [e.exercise_name for e in result.exercises] == ["Bench Press", "Lateral Raise"]
        assert result.exercises[0].ai_recommended_sets == 4
        assert result.exercises[1].ai_recommended_sets == 2
        assert result.workout_rationale == "Press heavy, raise light"
        assert result.insight_influenced_changes == [{"source": "insight", "action": "swap"}]
        assert result.response_id == "resp-42"
        client.models.generate_content.assert_called_once()

    def test_fenced_json_is_accepted(self, selection_request):
        oracle, _ = _oracle('```json\n{"exercises": [{"name": "Dip"}]}\n```')
        result = oracle.select_exercises(selection_request)
        assert result.exercises[0].exercise_name == "Dip"

    def test_empty_exercise_list_is_an_error(self, selection_request):
        oracle, _ = _oracle({"exercises": []})
        with pytest.raises(OracleResponseError):
            oracle.select_exercises(selection_request)

    def test_invalid_json_is_an_error(self, selection_request):
        oracle, _ = _oracle("not json at all")
        with pytest.raises(OracleResponseError):
            oracle.select_exercises(selection_request)

    def test_client_errors_keep_their_message(self, selection_request):
        oracle, _ = _oracle(side_effect=RuntimeError("quota exhausted"))
        with pytest.raises(OracleError, match="quota exhausted"):
            oracle.select_exercises(selection_request)

    def test_deadline(self, selection_request):
        def slow(*args, **kwargs):
            time.sleep(0.5)
            return _response({"exercises": [{"name": "Dip"}]})

        oracle, _ = _oracle(side_effect=slow, timeout_s=0.05)
        with pytest.raises(OracleTimeoutError):
            oracle.select_exercises(selection_request)

    def test_unconfigured_oracle_fails_every_call(self, selection_request):
        oracle = ExerciseOracle(gemini_client=None)
        with pytest.raises(OracleError):
            oracle.select_exercises(selection_request)


class TestOtherCapabilities:

    def test_weight_estimate(self):
        oracle, client = _oracle({"estimatedWeight": "17.5", "confidence": "medium"})
        result = oracle.estimate_initial_weight("Lateral Raise", "isolation", gender="female")
        assert result.estimated_weight == 17.5
        assert result.confidence == "medium"

    def test_non_positive_weight_is_rejected(self):
        oracle, _ = _oracle({"estimatedWeight": 0})
        with pytest.raises(OracleResponseError):
            oracle.estimate_initial_weight("Lateral Raise", "isolation")

    def test_validate_modification(self):
        oracle, _ = _oracle({"approved": False, "warnings": ["Too much volume"]})
        result = oracle.validate_modification("add_set", "u1", {"exerciseName": "Squat"})
        assert result.approved is False
        assert result.warnings == ["Too much volume"]

    def test_progression_keeps_numbers(self):
        oracle, _ = _oracle({"rationale": "Add a rep"})
        result = oracle.suggest_progression("Squat", {"weight": 100, "reps": 8}, 100, 9, [8, 12])
        assert (result.weight, result.reps, result.rationale) == (100, 9, "Add a rep")
