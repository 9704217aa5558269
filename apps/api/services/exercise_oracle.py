"""
Exercise Recommendation Oracle

Thin client over Gemini for every model-backed decision the workout
engine makes. The engine treats it as a black box with five calls:

    select_exercises         exercise list + rationale for a session
    estimate_initial_weight  cold-start load when nothing else applies
    generate_audio_scripts   narrative coaching cues (background task)
    validate_modification    sanity check for add-set / reorder / add-exercise
    suggest_progression      wording around a computed next-set target

Every call asks for JSON, runs under a deadline, and fails with an
OracleError subclass:

    OracleTimeoutError   deadline exceeded
    OracleResponseError  unparseable JSON or an empty exercise list
    OracleError          anything else from the client (original message kept)

normalize_exercise() is the one place raw exercise dicts (oracle output or
legacy rows using name / exerciseName / exercise_name) become ExercisePlan.
"""

import json
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from google import genai
from google.genai import types as genai_types
from pydantic import BaseModel, Field

from core.config import settings
from core.exceptions import OracleError, OracleResponseError, OracleTimeoutError
from schemas import ExercisePlan, SetGuidance, WarmupSet

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SELECTION_SYSTEM_PROMPT = """You are a strength coach selecting exercises for one gym session.
Respect the available equipment, the user's weak points, active insights
(injuries, pain, preferences) and memories. Rotate out exercises flagged as
plateaued. Avoid repeating the most recent exercises unless they are staples.

Answer with JSON only:
{"exercises": [{"name", "equipmentVariant", "sets", "repRange": [min, max],
  "restSeconds", "tempo", "rationaleForSelection", "alternatives": [],
  "primaryMuscles": [], "secondaryMuscles": [], "technicalCues": [],
  "warmupSets": [{"setNumber", "weightPercentage", "reps", "rir", "restSeconds"}],
  "setGuidance": [{"setNumber", "technicalFocus", "mentalFocus"}]}],
 "workoutRationale": "...",
 "insightInfluencedChanges": [{"source", "sourceId", "action", "reason"}]}"""

WEIGHT_SYSTEM_PROMPT = """You estimate a safe starting working weight in kg for a
lifter with no logged history on an exercise. Be conservative.
Answer with JSON only: {"estimatedWeight": number, "confidence": "low"|"medium"|"high", "rationale": "..."}"""

AUDIO_SYSTEM_PROMPT = """You write short spoken coaching scripts for a workout.
Answer with JSON only: {"workoutIntro": "...", "exercises": [{"exerciseName", "intro",
"setCues": ["..."]}], "workoutOutro": "..."}"""

VALIDATION_SYSTEM_PROMPT = """You review a mid-session change to a strength workout
(adding sets, adding an exercise, reordering) for fatigue and safety.
Answer with JSON only: {"approved": bool, "warnings": ["..."], "rationale": "...", "suggestions": ["..."]}"""

PROGRESSION_SYSTEM_PROMPT = """You explain the next-set target to a lifter in one or two
sentences. Keep the numbers given to you unchanged.
Answer with JSON only: {"rationale": "..."}"""


# ---------------------------------------------------------------------------
# Request / result shapes
# ---------------------------------------------------------------------------

class ExerciseSelectionRequest(BaseModel):
    user_id: str
    workout_type: str
    approach_id: Optional[str] = None
    weak_points: List[str] = Field(default_factory=list)
    available_equipment: List[str] = Field(default_factory=list)
    recent_exercises: List[str] = Field(default_factory=list)
    exercise_history_context: List[Dict[str, Any]] = Field(default_factory=list)
    session_focus: List[str] = Field(default_factory=list)
    target_volume: Dict[str, int] = Field(default_factory=dict)
    session_principles: List[str] = Field(default_factory=list)
    # Demographics
    age: Optional[int] = None
    gender: Optional[str] = None
    bodyweight: Optional[float] = None
    experience_years: Optional[float] = None
    # Periodization context (consumed as-is)
    mesocycle_week: Optional[int] = None
    mesocycle_phase: Optional[str] = None
    caloric_phase: Optional[str] = None
    caloric_intake_kcal: Optional[int] = None
    active_insights: List[Dict[str, Any]] = Field(default_factory=list)
    active_memories: List[Dict[str, Any]] = Field(default_factory=list)
    current_cycle_progress: Optional[Dict[str, Any]] = None
    previous_response_id: Optional[str] = None


@dataclass
class ExerciseSelectionResult:
    exercises: List[ExercisePlan]
    workout_rationale: Optional[str] = None
    insight_influenced_changes: List[Dict[str, Any]] = field(default_factory=list)
    response_id: Optional[str] = None


@dataclass
class WeightEstimateResult:
    estimated_weight: float
    confidence: str = "low"
    rationale: Optional[str] = None


@dataclass
class ModificationValidation:
    approved: bool
    warnings: List[str] = field(default_factory=list)
    rationale: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)


@dataclass
class ProgressionSuggestion:
    exercise_name: str
    weight: float
    reps: int
    rationale: Optional[str] = None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _pick(raw: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return default


def _rep_range(value: Any) -> List[int]:
    if isinstance(value, (list, tuple)) and value:
        low = int(value[0])
        high = int(value[-1])
        return [min(low, high), max(low, high)]
    if isinstance(value, (int, float)):
        return [int(value), int(value)]
    if isinstance(value, str):
        numbers = [int(n) for n in re.findall(r"\d+", value)]
        if numbers:
            return [min(numbers), max(numbers)]
    return [8, 12]


def _normalize_warmup(raw: Dict[str, Any], position: int) -> WarmupSet:
    return WarmupSet(
        set_number=int(_pick(raw, "set_number", "setNumber", default=position)),
        weight_percentage=float(_pick(raw, "weight_percentage", "weightPercentage", default=50)),
        weight=float(_pick(raw, "weight", default=0)),
        reps=int(_pick(raw, "reps", default=8)),
        rir=_pick(raw, "rir"),
        rest_seconds=_pick(raw, "rest_seconds", "restSeconds"),
        technical_focus=_pick(raw, "technical_focus", "technicalFocus"),
    )


def _normalize_guidance(raw: Dict[str, Any], position: int) -> SetGuidance:
    return SetGuidance(
        set_number=int(_pick(raw, "set_number", "setNumber", default=position)),
        technical_focus=_pick(raw, "technical_focus", "technicalFocus"),
        mental_focus=_pick(raw, "mental_focus", "mentalFocus"),
    )


def normalize_exercise(raw: Any) -> ExercisePlan:
    """
    Canonical ExercisePlan from any exercise-shaped input.

    Raises OracleResponseError when no name can be found.
    """
    if isinstance(raw, ExercisePlan):
        return raw
    if not isinstance(raw, dict):
        raise OracleResponseError(f"Exercise entry is not an object: {raw!r}")

    name = _pick(raw, "exercise_name", "exerciseName", "name")
    if not name or not str(name).strip():
        raise OracleResponseError("Exercise entry has no name")

    sets = int(_pick(raw, "target_sets", "targetSets", "sets", default=3))
    warmups = _pick(raw, "warmup_sets", "warmupSets", default=[]) or []
    guidance = _pick(raw, "set_guidance", "setGuidance", default=[]) or []

    # Legacy rows carry the range in repRange and a scalar targetReps.
    reps = _pick(raw, "target_reps", "targetReps")
    if isinstance(reps, (list, tuple)):
        rep_range = _rep_range(reps)
        planned_reps = _pick(raw, "planned_reps", "plannedReps")
    else:
        rep_range = _rep_range(_pick(raw, "repRange", "rep_range", default=reps))
        planned_reps = _pick(raw, "planned_reps", "plannedReps", default=reps)

    return ExercisePlan(
        exercise_name=str(name).strip(),
        equipment_variant=_pick(raw, "equipment_variant", "equipmentVariant", "equipment"),
        target_sets=sets,
        target_reps=rep_range,
        planned_reps=int(planned_reps) if isinstance(planned_reps, (int, float)) else None,
        target_weight=float(_pick(raw, "target_weight", "targetWeight", default=0) or 0),
        rest_seconds=int(_pick(raw, "rest_seconds", "restSeconds", default=settings.DEFAULT_REST_SECONDS)),
        tempo=_pick(raw, "tempo"),
        warmup_sets=[_normalize_warmup(w, i + 1) for i, w in enumerate(warmups) if isinstance(w, dict)],
        set_guidance=[_normalize_guidance(g, i + 1) for i, g in enumerate(guidance) if isinstance(g, dict)],
        technical_cues=list(_pick(raw, "technical_cues", "technicalCues", default=[]) or []),
        alternatives=list(_pick(raw, "alternatives", default=[]) or []),
        rationale=_pick(raw, "rationale", "rationaleForSelection", "rationale_for_selection"),
        primary_muscles=list(_pick(raw, "primary_muscles", "primaryMuscles", default=[]) or []),
        secondary_muscles=list(_pick(raw, "secondary_muscles", "secondaryMuscles", default=[]) or []),
        ai_recommended_sets=_pick(raw, "ai_recommended_sets", "aiRecommendedSets"),
        user_added_sets=_pick(raw, "user_added_sets", "userAddedSets"),
    )


def _parse_json(text: str) -> Dict[str, Any]:
    cleaned = (text or "").strip()
    # Models sometimes wrap JSON in a fenced block despite the mime type.
    fenced = re.match(r"^```(?:json)?\s*(.*?)\s*```$", cleaned, re.DOTALL)
    if fenced:
        cleaned = fenced.group(1)
    if not cleaned:
        raise OracleResponseError("Oracle returned an empty response")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise OracleResponseError(f"Oracle returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise OracleResponseError("Oracle response is not a JSON object")
    return data


# ---------------------------------------------------------------------------
# Oracle
# ---------------------------------------------------------------------------

class ExerciseOracle:
    """
    Usage:
        oracle = ExerciseOracle.from_settings()
        result = oracle.select_exercises(request)

    Thread-safe: the engine calls estimate_initial_weight from several
    worker threads at once.
    """

    def __init__(
        self,
        gemini_client=None,
        model: str = settings.ORACLE_MODEL,
        timeout_s: float = settings.ORACLE_TIMEOUT_S,
        fast_timeout_s: float = settings.ORACLE_FAST_TIMEOUT_S,
        max_workers: int = 4,
    ):
        """
        Args:
            gemini_client: google.genai.Client (None = every call raises OracleError)
        """
        self.client = gemini_client
        self.model = model
        self.timeout_s = timeout_s
        self.fast_timeout_s = fast_timeout_s
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="oracle")

    @classmethod
    def from_settings(cls) -> "ExerciseOracle":
        client = None
        if settings.GOOGLE_API_KEY:
            client = genai.Client(api_key=settings.GOOGLE_API_KEY)
        else:
            logger.warning("GOOGLE_API_KEY not set; oracle calls will fail")
        return cls(gemini_client=client)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)

    # ==================================================================
    # Transport
    # ==================================================================

    def _call_llm(self, system_prompt: str, payload: Dict[str, Any]) -> Tuple[str, Optional[str]]:
        """Blocking Gemini call. Returns (text, response_id)."""
        response = self.client.models.generate_content(
            model=self.model,
            contents=[
                genai_types.Content(
                    role="user",
                    parts=[genai_types.Part(text=json.dumps(payload, default=str))],
                ),
            ],
            config=genai_types.GenerateContentConfig(
                system_instruction=system_prompt,
                max_output_tokens=settings.ORACLE_MAX_TOKENS,
                temperature=settings.ORACLE_TEMPERATURE,
                response_mime_type="application/json",
            ),
        )

        text = ""
        if response.candidates:
            candidate = response.candidates[0]
            if candidate.content and candidate.content.parts:
                text = candidate.content.parts[0].text or ""
        return text, getattr(response, "response_id", None)

    def _with_deadline(self, fn: Callable[[], Any], timeout_s: float, label: str) -> Any:
        if self.client is None:
            raise OracleError("Exercise oracle is not configured (missing GOOGLE_API_KEY)")

        start = time.monotonic()
        future = self._executor.submit(fn)
        try:
            result = future.result(timeout=timeout_s)
        except FutureTimeoutError as e:
            # The worker thread keeps running; its result is discarded.
            logger.error(f"Oracle {label} exceeded {timeout_s}s deadline")
            raise OracleTimeoutError(f"Oracle {label} timed out after {timeout_s}s") from e
        except OracleError:
            raise
        except Exception as e:
            logger.error(f"Oracle {label} failed: {e}")
            raise OracleError(str(e)) from e

        logger.info(f"Oracle {label} completed in {int((time.monotonic() - start) * 1000)}ms")
        return result

    def _generate_json(
        self,
        system_prompt: str,
        payload: Dict[str, Any],
        timeout_s: float,
        label: str,
    ) -> Tuple[Dict[str, Any], Optional[str]]:
        text, response_id = self._with_deadline(
            lambda: self._call_llm(system_prompt, payload), timeout_s, label
        )
        return _parse_json(text), response_id

    # ==================================================================
    # Capabilities
    # ==================================================================

    def select_exercises(self, request: ExerciseSelectionRequest) -> ExerciseSelectionResult:
        data, response_id = self._generate_json(
            SELECTION_SYSTEM_PROMPT,
            request.model_dump(exclude_none=True),
            self.timeout_s,
            "exercise selection",
        )

        raw_exercises = data.get("exercises") or []
        if not isinstance(raw_exercises, list) or not raw_exercises:
            raise OracleResponseError("Oracle returned no exercises; a workout cannot be built")

        exercises = [normalize_exercise(e) for e in raw_exercises]
        for exercise in exercises:
            if exercise.ai_recommended_sets is None:
                exercise.ai_recommended_sets = exercise.target_sets

        return ExerciseSelectionResult(
            exercises=exercises,
            workout_rationale=_pick(data, "workoutRationale", "workout_rationale"),
            insight_influenced_changes=list(
                _pick(data, "insightInfluencedChanges", "insight_influenced_changes", default=[]) or []
            ),
            response_id=response_id or _pick(data, "responseId", "response_id"),
        )

    def estimate_initial_weight(
        self,
        exercise_name: str,
        exercise_type: str,
        gender: Optional[str] = None,
        bodyweight: Optional[float] = None,
        age: Optional[int] = None,
        experience_years: Optional[float] = None,
        equipment: Optional[str] = None,
    ) -> WeightEstimateResult:
        payload = {
            "exerciseName": exercise_name,
            "exerciseType": exercise_type,
            "equipment": equipment,
            "userProfile": {
                "gender": gender,
                "bodyWeight": bodyweight,
                "age": age,
                "experienceYears": experience_years,
            },
        }
        data, _ = self._generate_json(WEIGHT_SYSTEM_PROMPT, payload, self.fast_timeout_s, "weight estimate")

        weight = _pick(data, "estimatedWeight", "estimated_weight")
        try:
            weight = float(weight)
        except (TypeError, ValueError) as e:
            raise OracleResponseError(f"Oracle weight estimate is not a number: {weight!r}") from e
        if weight <= 0:
            raise OracleResponseError(f"Oracle weight estimate is not positive: {weight}")

        return WeightEstimateResult(
            estimated_weight=weight,
            confidence=_pick(data, "confidence", "confidenceLevel", default="low"),
            rationale=data.get("rationale"),
        )

    def generate_audio_scripts(
        self,
        workout_type: str,
        exercises: List[ExercisePlan],
        language: str = "en",
    ) -> Dict[str, Any]:
        payload = {
            "workoutType": workout_type,
            "language": language,
            "exercises": [e.model_dump(exclude_none=True) for e in exercises],
        }
        data, _ = self._generate_json(AUDIO_SYSTEM_PROMPT, payload, self.timeout_s, "audio scripts")
        return data

    def validate_modification(
        self,
        kind: str,
        user_id: str,
        details: Dict[str, Any],
    ) -> ModificationValidation:
        payload = {"modification": kind, "userId": user_id, **details}
        data, _ = self._generate_json(VALIDATION_SYSTEM_PROMPT, payload, self.fast_timeout_s, f"{kind} validation")
        return ModificationValidation(
            approved=bool(data.get("approved", False)),
            warnings=list(data.get("warnings") or []),
            rationale=data.get("rationale"),
            suggestions=list(data.get("suggestions") or []),
        )

    def suggest_progression(
        self,
        exercise_name: str,
        last_set: Dict[str, Any],
        target_weight: float,
        target_reps: int,
        rep_range: List[int],
    ) -> ProgressionSuggestion:
        payload = {
            "exerciseName": exercise_name,
            "lastSet": last_set,
            "repRange": rep_range,
            "nextTarget": {"weight": target_weight, "reps": target_reps},
        }
        data, _ = self._generate_json(PROGRESSION_SYSTEM_PROMPT, payload, self.fast_timeout_s, "progression")
        return ProgressionSuggestion(
            exercise_name=exercise_name,
            weight=target_weight,
            reps=target_reps,
            rationale=data.get("rationale"),
        )
