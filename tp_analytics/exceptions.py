"""
Exceptions raised by single-workout analysis and the activity file pipeline.

Absence (cache miss, lap-less file, missing file inside a batch) is never an
exception. These classes cover the two failure kinds that are surfaced to the
immediate caller:

- input insufficiency: the decoded activity lacks the data an analysis needs
- upstream failure: the workout or its file cannot be obtained or decoded

Batch operations catch them per workout and turn them into warnings.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Stable codes for programmatic handling and JSON output."""

    INTERNAL_ERROR = "INTERNAL_ERROR"

    WORKOUT_NOT_FOUND = "WORKOUT_NOT_FOUND"
    ACTIVITY_FILE_NOT_FOUND = "ACTIVITY_FILE_NOT_FOUND"
    FIT_DECODING_ERROR = "FIT_DECODING_ERROR"

    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    NO_RECORD_DATA = "NO_RECORD_DATA"
    NO_POWER_DATA = "NO_POWER_DATA"
    NO_HEART_RATE_DATA = "NO_HEART_RATE_DATA"
    NO_VALID_DATA = "NO_VALID_DATA"


class AnalyticsError(Exception):
    """
    Base exception for the analytics package.

    Attributes:
        message: Human-readable error message
        code: Error code from ErrorCode enum
        details: Optional dictionary with additional context
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"error": self.code.value, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class WorkoutNotFoundError(AnalyticsError):
    def __init__(self, workout_id: int) -> None:
        super().__init__(
            f"Workout {workout_id} not found",
            code=ErrorCode.WORKOUT_NOT_FOUND,
            details={"workout_id": workout_id},
        )


class ActivityFileNotFoundError(AnalyticsError):
    def __init__(self, workout_id: int) -> None:
        super().__init__(
            f"No activity file available for workout {workout_id}",
            code=ErrorCode.ACTIVITY_FILE_NOT_FOUND,
            details={"workout_id": workout_id},
        )


class ActivityDecodeError(AnalyticsError):
    """Raised when activity file bytes cannot be decoded."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=ErrorCode.FIT_DECODING_ERROR, details=details)


class InsufficientDataError(AnalyticsError):
    """The decoded activity does not carry the data the analysis needs."""

    default_message = "Insufficient data for analysis"
    default_code = ErrorCode.INSUFFICIENT_DATA

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message or self.default_message, code=self.default_code, details=details)


class NoRecordDataError(InsufficientDataError):
    default_message = "No record data found in activity file"
    default_code = ErrorCode.NO_RECORD_DATA


class NoPowerDataError(InsufficientDataError):
    default_message = "No power data found in workout records"
    default_code = ErrorCode.NO_POWER_DATA


class NoHeartRateDataError(InsufficientDataError):
    default_message = "No heart rate data found in workout records"
    default_code = ErrorCode.NO_HEART_RATE_DATA


class NoValidDataError(InsufficientDataError):
    default_message = "No valid records after filtering zeros"
    default_code = ErrorCode.NO_VALID_DATA
