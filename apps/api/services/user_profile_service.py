"""
User profile upsert and custom equipment.

Custom equipment input is user-typed; bad input comes back as a
CustomEquipmentResult with success=False rather than an exception.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from core.exceptions import ProfileNotFoundError
from models import UserProfile
from schemas import CustomEquipmentCreate, UserProfileUpsert

logger = logging.getLogger(__name__)


EQUIPMENT_CATEGORIES = (
    "free_weights", "machines", "cables", "bodyweight", "bands", "cardio", "other",
)
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 60
MAX_EXAMPLE_EXERCISES = 10
CUSTOM_ID_PREFIX = "custom_"


@dataclass
class CustomEquipmentResult:
    success: bool
    equipment: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    message: Optional[str] = None


def get_profile(db: Session, user_id: UUID) -> Optional[UserProfile]:
    return db.query(UserProfile).filter(UserProfile.user_id == user_id).first()


def upsert_profile(db: Session, user_id: UUID, data: UserProfileUpsert) -> UserProfile:
    """Create the profile on first call; afterwards only set fields change."""
    profile = get_profile(db, user_id)
    created = profile is None
    if created:
        profile = UserProfile(user_id=user_id, weak_points=[], available_equipment=[], custom_equipment=[])
        db.add(profile)

    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(profile, key, value)

    db.commit()
    db.refresh(profile)
    logger.info(f"{'Created' if created else 'Updated'} profile for user {user_id}")
    return profile


def slugify_equipment(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")
    return f"{CUSTOM_ID_PREFIX}{slug}"


def validate_custom_equipment(raw: Dict[str, Any]) -> CustomEquipmentResult:
    try:
        data = CustomEquipmentCreate.model_validate(raw)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        return CustomEquipmentResult(False, error="invalid_input", message=f"Invalid fields: {fields}")

    name = data.name.strip()
    if not MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
        return CustomEquipmentResult(
            False,
            error="invalid_name",
            message=f"Name must be {MIN_NAME_LENGTH}-{MAX_NAME_LENGTH} characters",
        )
    if data.category not in EQUIPMENT_CATEGORIES:
        return CustomEquipmentResult(
            False,
            error="invalid_category",
            message=f"Category must be one of: {', '.join(EQUIPMENT_CATEGORIES)}",
        )

    examples = [e.strip() for e in data.example_exercises if e and e.strip()]
    if len(examples) > MAX_EXAMPLE_EXERCISES:
        return CustomEquipmentResult(
            False,
            error="too_many_examples",
            message=f"At most {MAX_EXAMPLE_EXERCISES} example exercises",
        )

    slug = slugify_equipment(name)
    if slug == CUSTOM_ID_PREFIX:
        return CustomEquipmentResult(False, error="invalid_name", message="Name needs letters or digits")

    return CustomEquipmentResult(True, equipment={
        "id": slug,
        "name": name,
        "category": data.category,
        "example_exercises": examples,
    })


def add_custom_equipment(db: Session, user_id: UUID, raw: Dict[str, Any]) -> CustomEquipmentResult:
    profile = get_profile(db, user_id)
    if not profile:
        raise ProfileNotFoundError()

    result = validate_custom_equipment(raw)
    if not result.success:
        logger.info(f"Rejected custom equipment for user {user_id}: {result.error}")
        return result

    existing = list(profile.custom_equipment or [])
    if any(e.get("id") == result.equipment["id"] for e in existing):
        return CustomEquipmentResult(
            False,
            error="duplicate",
            message=f"'{result.equipment['name']}' is already in your equipment",
        )

    # Reassign so the JSON column registers the change.
    profile.custom_equipment = existing + [result.equipment]
    db.commit()
    db.refresh(profile)
    logger.info(f"Added custom equipment {result.equipment['id']} for user {user_id}")
    return result
