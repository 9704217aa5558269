"""
Pytest configuration and fixtures

IMPORTANT: All tests use transactional rollback isolation.
Nothing created during tests persists to the database, even when the
code under test calls session.commit().
"""
import os
import sys
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock
from uuid import uuid4

# Must be set before core.config is imported anywhere.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-at-least-32-chars")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from core.database import Base  # noqa: E402
from models import SplitPlan, UserProfile, Workout  # noqa: E402
from schemas import SplitPlanCreate  # noqa: E402
from services import split_plan_service  # noqa: E402
from tests.workout_test_helpers import SAMPLE_EXERCISES, make_sessions  # noqa: E402
from services.exercise_oracle import (  # noqa: E402
    ExerciseOracle,
    ExerciseSelectionResult,
    WeightEstimateResult,
    normalize_exercise,
)

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite manages transactions itself and breaks SAVEPOINT; let
# SQLAlchemy emit BEGIN instead.
@event.listens_for(test_engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(test_engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


Base.metadata.create_all(test_engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Session bound to an outer transaction that is rolled back after the test.

    Application commits only release savepoints.
    """
    connection = test_engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )

    yield session

    session.close()
    transaction.rollback()
    connection.close()


# ============================================================================
# Factories
# ============================================================================

@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def profile(db_session, user_id):
    """A profile that satisfies every generation precondition."""
    p = UserProfile(
        user_id=user_id,
        first_name="Test",
        age=30,
        weight=80.0,
        gender="male",
        experience_years=3,
        approach_id="kuba-method",
        preferred_split="push_pull_legs",
        weak_points=["shoulders"],
        available_equipment=["barbell", "dumbbells", "cables"],
        custom_equipment=[],
        strength_baseline={},
        current_cycle_day=1,
    )
    db_session.add(p)
    db_session.commit()
    db_session.refresh(p)
    return p


@pytest.fixture
def make_plan(db_session, profile):
    """Create (and activate) a split plan for the profile's user."""
    def _make(workout_types: Optional[List[str]] = None, name: str = "Test Split") -> SplitPlan:
        types = workout_types or ["push", "pull", "legs", "rest"]
        return split_plan_service.create_split_plan(
            db_session,
            profile.user_id,
            SplitPlanCreate(name=name, split_type="push_pull_legs", cycle_days=len(types), sessions=make_sessions(types)),
        )
    return _make


@pytest.fixture
def make_workout(db_session):
    def _make(user_id, **kwargs: Any) -> Workout:
        values: Dict[str, Any] = {
            "workout_type": "push",
            "status": "ready",
            "exercises": [
                normalize_exercise({
                    "name": "Bench Press",
                    "sets": 3,
                    "repRange": [8, 12],
                    "targetWeight": 60,
                    "warmupSets": [{"weightPercentage": 50, "reps": 10}],
                    "aiRecommendedSets": 3,
                }).model_dump(),
                normalize_exercise({
                    "name": "Lateral Raise",
                    "sets": 3,
                    "repRange": [12, 15],
                    "targetWeight": 10,
                    "aiRecommendedSets": 3,
                }).model_dump(),
            ],
        }
        values.update(kwargs)
        workout = Workout(user_id=user_id, **values)
        db_session.add(workout)
        db_session.commit()
        db_session.refresh(workout)
        return workout
    return _make


# ============================================================================
# Oracle
# ============================================================================

@pytest.fixture
def fake_oracle():
    """MagicMock standing in for the Gemini-backed oracle."""
    oracle = MagicMock(spec=ExerciseOracle)
    oracle.select_exercises.return_value = ExerciseSelectionResult(
        exercises=[
            normalize_exercise({**e, "aiRecommendedSets": e["sets"]}) for e in SAMPLE_EXERCISES
        ],
        workout_rationale="Push focus with extra shoulder volume",
        insight_influenced_changes=[],
        response_id="resp-1",
    )
    oracle.estimate_initial_weight.return_value = WeightEstimateResult(estimated_weight=12.0, confidence="medium")
    return oracle


# ============================================================================
# API
# ============================================================================

@pytest.fixture
def auth_headers(user_id):
    from core.security import create_access_token
    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db_session, fake_oracle):
    """
    TestClient whose requests (including streamed generation) share the
    rolled-back test session and use the fake oracle.
    """
    from fastapi.testclient import TestClient

    from core.database import get_db, get_session_factory
    from main import app
    from services.generation_cache import GenerationCache
    from services.workout_generator import WorkoutGenerator

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: (lambda: db_session)

    saved_state = (app.state.workout_generator, app.state.generation_cache)
    app.state.workout_generator = WorkoutGenerator(
        fake_oracle, enqueue_audio_scripts=MagicMock(), ramp_interval_s=60
    )
    app.state.generation_cache = GenerationCache()

    yield TestClient(app)

    app.dependency_overrides.clear()
    app.state.workout_generator, app.state.generation_cache = saved_state
