"""
Tests for the workout generation orchestrator.

The oracle is a MagicMock (see conftest.fake_oracle); everything else runs
against the real services on the test database.
"""

import time
from datetime import datetime, timedelta, timezone
from unittest.mock import DEFAULT, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from core.exceptions import (
    DraftWorkoutConflictError,
    InvalidCycleDayError,
    NoActiveSplitPlanError,
    NoApproachSelectedError,
    ORACLE_TIMEOUT_USER_MESSAGE,
    OracleTimeoutError,
    ProfileNotFoundError,
    RestDayGenerationError,
)
from models import SetLog, UserInsight, UserMemory, Workout
from schemas import ExercisePlan, WarmupSet
from services.progressive_overload import SetSnapshot
from services.weight_estimation import EstimationContext, LearnedWeight
from services.workout_generator import WorkoutGenerator, resolve_exercise_target


@pytest.fixture
def generator(fake_oracle):
    # Long ramp interval: no ramp ticks during a test.
    return WorkoutGenerator(fake_oracle, enqueue_audio_scripts=MagicMock(), ramp_interval_s=60)


def _completed_bench_workout(db_session, user_id, weight=42.5, reps=12, rir=1, **kwargs):
    now = datetime.now(timezone.utc)
    workout = Workout(
        user_id=user_id,
        workout_type="push",
        status="completed",
        completed_at=now - timedelta(days=2),
        exercises=[{"exercise_name": "Bench Press", "target_sets": 3, "target_reps": [8, 12]}],
        **kwargs,
    )
    db_session.add(workout)
    db_session.flush()
    db_session.add(SetLog(
        workout_id=workout.id, exercise_index=0, exercise_name="Bench Press", set_number=1,
        set_type="working", weight_actual=weight, reps_actual=reps, rir_actual=rir,
        created_at=now - timedelta(days=2),
    ))
    db_session.commit()
    return workout


class TestResolveExerciseTarget:

    def _plan(self):
        return ExercisePlan(
            exercise_name="Bench Press",
            target_sets=4,
            target_reps=[8, 12],
            warmup_sets=[WarmupSet(weight_percentage=50, reps=10), WarmupSet(weight_percentage=75, reps=5)],
        )

    def test_history_uses_progressive_overload(self):
        resolved = resolve_exercise_target(
            self._plan(),
            [SetSnapshot(weight=42.5, reps=12, rir=1)],
            EstimationContext(exercise_name="Bench Press"),
        )
        assert resolved.target_weight == 45.0
        assert resolved.planned_reps == 8
        assert [w.weight for w in resolved.warmup_sets] == [22.5, 34.0]
        assert resolved.ai_recommended_sets == 4

    def test_high_confidence_learned_weight_is_blended(self):
        ctx = EstimationContext(
            exercise_name="Bench Press",
            learned_weights={"bench press": LearnedWeight(target_weight=60, confidence="high")},
        )
        resolved = resolve_exercise_target(self._plan(), [SetSnapshot(weight=42.5, reps=12, rir=1)], ctx)
        assert resolved.target_weight == 53.0

    def test_no_history_uses_estimation_chain(self):
        ctx = EstimationContext(
            exercise_name="Bench Press",
            strength_baseline={"bench press": {"weight": 80}},
        )
        resolved = resolve_exercise_target(self._plan(), [], ctx)
        assert resolved.target_weight == 68
        assert resolved.planned_reps == 8
        assert [w.weight for w in resolved.warmup_sets] == [34.0, 51.0]

    def test_input_plan_is_not_mutated(self):
        plan = self._plan()
        resolve_exercise_target(plan, [SetSnapshot(weight=42.5, reps=12, rir=1)], EstimationContext(exercise_name="Bench Press"))
        assert plan.target_weight == 0.0


class TestPreconditions:

    def test_missing_profile(self, db_session, generator, user_id):
        with pytest.raises(ProfileNotFoundError):
            generator.generate(db_session, user_id)

    def test_missing_approach(self, db_session, generator, profile):
        profile.approach_id = None
        db_session.commit()
        with pytest.raises(NoApproachSelectedError):
            generator.generate(db_session, profile.user_id)
        generator.oracle.select_exercises.assert_not_called()


class TestSessionResolution:

    def test_active_plan_current_day(self, db_session, generator, profile, make_plan):
        plan = make_plan(["push", "pull", "legs", "rest"])
        workout = generator.generate(db_session, profile.user_id)

        assert workout.split_plan_id == plan.id
        assert workout.cycle_day == 1
        assert workout.workout_type == "push"

    def test_explicit_target_day(self, db_session, generator, profile, make_plan):
        make_plan(["push", "pull", "legs", "rest"])
        workout = generator.generate(db_session, profile.user_id, target_cycle_day=3)
        assert workout.cycle_day == 3
        assert workout.workout_type == "legs"

    def test_rest_day_is_refused(self, db_session, generator, profile, make_plan):
        make_plan(["push", "pull", "legs", "rest"])
        profile.current_cycle_day = 4
        db_session.commit()
        with pytest.raises(RestDayGenerationError):
            generator.generate(db_session, profile.user_id)
        generator.oracle.select_exercises.assert_not_called()

    def test_rotation_without_plan(self, db_session, generator, profile):
        _completed_bench_workout(db_session, profile.user_id)
        workout = generator.generate(db_session, profile.user_id)
        assert workout.split_plan_id is None
        assert workout.cycle_day is None
        assert workout.workout_type == "pull"

    def test_rotation_first_workout(self, db_session, generator, profile):
        workout = generator.generate(db_session, profile.user_id)
        assert workout.workout_type == "push"


class TestGenerate:

    def test_persists_ready_workout(self, db_session, generator, profile):
        workout = generator.generate(db_session, profile.user_id)

        assert workout.status == "ready"
        assert workout.approach_id == "kuba-method"
        assert workout.ai_response_id == "resp-1"
        assert workout.workout_rationale == "Push focus with extra shoulder volume"
        assert [e["exercise_name"] for e in workout.exercises] == ["Bench Press", "Lateral Raise"]
        assert workout.workout_name.startswith("Push: chest")
        assert "chest" in workout.target_muscle_groups
        assert db_session.query(Workout).filter(Workout.id == workout.id).count() == 1

    def test_cold_start_targets(self, db_session, generator, profile):
        """80kg male: bench from bodyweight ratio, raise from the static table."""
        workout = generator.generate(db_session, profile.user_id)
        bench, raise_ = workout.exercises
        assert bench["target_weight"] == 40
        assert bench["planned_reps"] == 8
        assert [w["weight"] for w in bench["warmup_sets"]] == [20.0, 30.0]
        assert raise_["target_weight"] == 10
        generator.oracle.estimate_initial_weight.assert_not_called()

    def test_history_targets(self, db_session, generator, profile):
        _completed_bench_workout(db_session, profile.user_id, weight=42.5, reps=12, rir=1)
        workout = generator.generate(db_session, profile.user_id)
        assert workout.exercises[0]["target_weight"] == 45.0
        assert workout.exercises[0]["planned_reps"] == 8

    def test_progress_checkpoints_in_order(self, db_session, generator, profile):
        events = []
        generator.generate(db_session, profile.user_id, on_progress=lambda *e: events.append(e))

        assert [p for _, p, _ in events] == [5, 15, 30, 45, 60, 70, 85, 95, 100]
        assert events[-1][0] == "complete"

    def test_ramp_never_emits_after_selection_completes(self, db_session, profile, fake_oracle):
        events = []

        def on_progress(phase, percent, message):
            if 45 < percent < 60:
                # Slow consumer widens the window between wake-up and emit.
                time.sleep(0.02)
            events.append(percent)

        def slow_select(request):
            time.sleep(0.1)
            return DEFAULT

        fake_oracle.select_exercises.side_effect = slow_select
        generator = WorkoutGenerator(fake_oracle, enqueue_audio_scripts=MagicMock(), ramp_interval_s=0.01)
        generator.generate(db_session, profile.user_id, on_progress=on_progress)

        assert any(45 < p < 60 for p in events)
        assert events == sorted(events)

    def test_failing_progress_callback_is_ignored(self, db_session, generator, profile):
        def boom(*args):
            raise RuntimeError("client went away")

        workout = generator.generate(db_session, profile.user_id, on_progress=boom)
        assert workout.id is not None

    def test_selection_request_context(self, db_session, generator, profile):
        profile.custom_equipment = [{"id": "custom_sled", "name": "Sled", "category": "other"}]
        db_session.add(UserInsight(user_id=profile.user_id, insight_type="pain", exercise_name="Dip",
                                   relevance_score=0.9))
        db_session.add(UserInsight(user_id=profile.user_id, insight_type="pain", relevance_score=0.1))
        db_session.add(UserMemory(user_id=profile.user_id, memory_category="preference",
                                  title="Likes cables", confidence_score=0.8))
        db_session.add(UserMemory(user_id=profile.user_id, memory_category="pattern",
                                  title="Maybe skips legs", confidence_score=0.4))
        db_session.commit()
        _completed_bench_workout(db_session, profile.user_id, ai_response_id="resp-0")

        generator.generate(db_session, profile.user_id)
        request = generator.oracle.select_exercises.call_args.args[0]

        assert request.available_equipment == ["barbell", "dumbbells", "cables", "custom_sled"]
        assert request.weak_points == ["shoulders"]
        assert request.recent_exercises == ["Bench Press"]
        assert request.previous_response_id == "resp-0"
        assert [i["exercise_name"] for i in request.active_insights] == ["Dip"]
        assert [m["title"] for m in request.active_memories] == ["Likes cables"]
        assert request.exercise_history_context[0]["name"] == "Bench Press"

    def test_timeout_surfaces_retry_message(self, db_session, generator, profile):
        generator.oracle.select_exercises.side_effect = OracleTimeoutError("deadline")
        with pytest.raises(OracleTimeoutError) as exc:
            generator.generate(db_session, profile.user_id)
        assert str(exc.value) == ORACLE_TIMEOUT_USER_MESSAGE
        assert db_session.query(Workout).filter(Workout.user_id == profile.user_id).count() == 0

    def test_stagnation_failure_does_not_fail_generation(self, db_session, generator, profile, monkeypatch):
        _completed_bench_workout(db_session, profile.user_id)
        real_query = db_session.query
        rollbacks = []
        real_rollback = db_session.rollback

        def query(*entities, **kwargs):
            if entities and entities[0] is SetLog.exercise_name:
                raise OperationalError("SELECT", {}, Exception("current transaction is aborted"))
            return real_query(*entities, **kwargs)

        def rollback():
            rollbacks.append(True)
            real_rollback()

        monkeypatch.setattr(db_session, "query", query)
        monkeypatch.setattr(db_session, "rollback", rollback)

        workout = generator.generate(db_session, profile.user_id)

        assert workout.status == "ready"
        assert rollbacks
        request = generator.oracle.select_exercises.call_args.args[0]
        assert request.exercise_history_context == []
        assert request.recent_exercises == ["Bench Press"]

    def test_enqueues_audio_scripts(self, db_session, generator, profile):
        workout = generator.generate(db_session, profile.user_id)
        generator.enqueue_audio_scripts.assert_called_once_with(workout.id)

    def test_enqueue_failure_does_not_fail_generation(self, db_session, generator, profile):
        generator.enqueue_audio_scripts.side_effect = ConnectionError("broker down")
        workout = generator.generate(db_session, profile.user_id)
        assert workout.status == "ready"


class TestDraftWorkouts:

    def test_rejects_current_day(self, db_session, generator, profile, make_plan):
        make_plan(["push", "pull", "legs", "rest"])
        with pytest.raises(InvalidCycleDayError):
            generator.generate_draft_workout(db_session, profile.user_id, 1)

    def test_rejects_day_past_cycle(self, db_session, generator, profile, make_plan):
        make_plan(["push", "pull", "legs", "rest"])
        with pytest.raises(InvalidCycleDayError):
            generator.generate_draft_workout(db_session, profile.user_id, 5)

    def test_requires_active_plan(self, db_session, generator, profile):
        with pytest.raises(NoActiveSplitPlanError):
            generator.generate_draft_workout(db_session, profile.user_id, 2)

    def test_creates_draft_for_future_day(self, db_session, generator, profile, make_plan):
        plan = make_plan(["push", "pull", "legs", "rest"])
        workout = generator.generate_draft_workout(db_session, profile.user_id, 2)

        assert workout.status == "draft"
        assert workout.split_plan_id == plan.id
        assert workout.cycle_day == 2
        assert workout.workout_type == "pull"
        db_session.refresh(profile)
        assert profile.current_cycle_day == 1

    def test_one_pending_workout_per_slot(self, db_session, generator, profile, make_plan):
        make_plan(["push", "pull", "legs", "rest"])
        generator.generate_draft_workout(db_session, profile.user_id, 2)
        with pytest.raises(DraftWorkoutConflictError):
            generator.generate_draft_workout(db_session, profile.user_id, 2)

    def test_rest_day_draft(self, db_session, generator, profile, make_plan):
        make_plan(["push", "pull", "legs", "rest"])
        with pytest.raises(RestDayGenerationError):
            generator.generate_draft_workout(db_session, profile.user_id, 4)
