"""
Audio-script enrichment for generated workouts.

Enqueued once the workout row is committed. The client may fetch the
workout before scripts exist and must cope with audio_scripts = None.
Failures are logged and never touch the workout itself.
"""

import logging
from typing import Dict, Optional
from uuid import UUID

from celery import Task
from sqlalchemy.orm import Session

from core.database import get_db_sync
from core.exceptions import OracleError
from models import UserProfile, Workout
from services.exercise_oracle import ExerciseOracle, normalize_exercise
from tasks import celery_app

logger = logging.getLogger(__name__)


def build_audio_scripts(db: Session, workout_id: UUID, oracle: ExerciseOracle) -> Optional[Dict]:
    """Generate and store scripts; None when the workout is gone."""
    workout = db.query(Workout).filter(Workout.id == workout_id).first()
    if not workout:
        logger.warning(f"Audio scripts skipped, workout {workout_id} not found")
        return None

    profile = db.query(UserProfile).filter(UserProfile.user_id == workout.user_id).first()
    language = profile.preferred_language if profile else "en"

    plans = [normalize_exercise(e) for e in workout.exercises or []]
    scripts = oracle.generate_audio_scripts(workout.workout_type, plans, language)
    workout.audio_scripts = scripts
    db.commit()
    return scripts


@celery_app.task(name="tasks.generate_audio_scripts", bind=True)
def generate_audio_scripts_task(self: Task, workout_id: str) -> Dict:
    db: Optional[Session] = None
    oracle: Optional[ExerciseOracle] = None
    try:
        db = get_db_sync()
        oracle = ExerciseOracle.from_settings()
        scripts = build_audio_scripts(db, UUID(workout_id), oracle)
        if scripts is None:
            return {"status": "skipped", "reason": "workout_not_found"}
        logger.info(f"Audio scripts stored for workout {workout_id}")
        return {"status": "success"}
    except OracleError as e:
        logger.error(
            f"Audio script generation failed for workout {workout_id}: {e}",
            extra={"workout_id": workout_id, "task_id": self.request.id},
        )
        return {"status": "error", "error": str(e)}
    except Exception as e:
        if db:
            db.rollback()
        logger.error(f"Audio script task failed for workout {workout_id}: {e}")
        return {"status": "error", "error": str(e)}
    finally:
        if oracle:
            oracle.shutdown()
        if db:
            db.close()


def enqueue_audio_scripts(workout_id: UUID) -> None:
    """Fire-and-forget; the generator logs enqueue failures."""
    generate_audio_scripts_task.delay(str(workout_id))
    logger.info(f"Audio scripts enqueued for workout {workout_id}")
