"""
Custom exception classes and error handling.

Two families live here:
- APIException and friends: HTTP-shaped errors raised from routers.
- Domain errors raised by the generation core. Routers translate them
  through the handlers registered in main.py.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )


class UnauthorizedError(APIException):
    """Authentication required."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(APIException):
    """Access denied."""

    def __init__(self, detail: str = "Access denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN"
        )


class ConflictError(APIException):
    """Resource conflict (e.g., duplicate entry)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------

class WorkoutConfigurationError(Exception):
    """
    Terminal, non-retryable precondition failure.

    The message is user-facing and is surfaced verbatim.
    """

    error_code = "CONFIGURATION_ERROR"


class ProfileNotFoundError(WorkoutConfigurationError):
    error_code = "PROFILE_NOT_FOUND"

    def __init__(self, message: str = "User profile not found. Please create a profile first."):
        super().__init__(message)


class NoApproachSelectedError(WorkoutConfigurationError):
    error_code = "NO_APPROACH_SELECTED"

    def __init__(self, message: str = "No training approach selected. Please select a training approach in your profile."):
        super().__init__(message)


class NoSessionForCycleDayError(WorkoutConfigurationError):
    error_code = "NO_SESSION_FOR_CYCLE_DAY"

    def __init__(self, cycle_day: int):
        super().__init__(f"No session found for cycle day {cycle_day}")
        self.cycle_day = cycle_day


class RestDayGenerationError(WorkoutConfigurationError):
    error_code = "REST_DAY"

    def __init__(self, cycle_day: Optional[int]):
        super().__init__(
            f"Session for cycle day {cycle_day} is a REST day. "
            "Cannot generate workout for rest days."
        )
        self.cycle_day = cycle_day


class NoActiveSplitPlanError(WorkoutConfigurationError):
    error_code = "NO_ACTIVE_SPLIT_PLAN"

    def __init__(self, message: str = "No active split plan found."):
        super().__init__(message)


class InvalidSplitPlanError(WorkoutConfigurationError):
    """Session days must cover 1..cycle_days exactly once."""
    error_code = "INVALID_SPLIT_PLAN"


class InvalidCycleDayError(WorkoutConfigurationError):
    error_code = "INVALID_CYCLE_DAY"


class DraftWorkoutConflictError(WorkoutConfigurationError):
    error_code = "DRAFT_CONFLICT"

    def __init__(self, cycle_day: int, existing_status: str):
        super().__init__(
            f"A workout already exists for cycle day {cycle_day} (status: {existing_status})"
        )
        self.cycle_day = cycle_day
        self.existing_status = existing_status


class WorkoutStateError(WorkoutConfigurationError):
    """Action not allowed in the workout's current lifecycle state."""
    error_code = "INVALID_WORKOUT_STATE"


class OracleError(Exception):
    """The exercise recommendation oracle failed. Callers may offer a manual retry."""


class OracleTimeoutError(OracleError):
    """The oracle call exceeded its deadline."""


class OracleResponseError(OracleError):
    """The oracle answered with something a workout cannot be built from."""


ORACLE_TIMEOUT_USER_MESSAGE = (
    "AI exercise selection took too long. This may be due to high system load "
    "or complex workout constraints. Please try again in a few moments."
)
