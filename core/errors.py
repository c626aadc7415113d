from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence


class AttendanceError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "attendance_error"

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": str(self)}


class ValidationError(AttendanceError):
    code = "validation_error"


class ExtractionFailure(str, Enum):
    NO_FACE_DETECTED = "no_face_detected"
    MULTIPLE_FACES_DETECTED = "multiple_faces_detected"
    INVALID_IMAGE = "invalid_image"


class ExtractionError(AttendanceError):
    code = "extraction_error"

    def __init__(self, reason: ExtractionFailure, message: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(message or reason.value.replace("_", " "))

    def to_dict(self) -> dict:
        return {"error": self.code, "reason": self.reason.value, "detail": str(self)}


class DimensionMismatch(AttendanceError):
    code = "dimension_mismatch"

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected embedding of dimension {expected}, got {actual}")


class AmbiguousMatch(AttendanceError):
    code = "ambiguous_match"

    def __init__(self, student_ids: Sequence[str], distance: float) -> None:
        self.student_ids = list(student_ids)
        self.distance = distance
        super().__init__(
            f"{len(self.student_ids)} students tied at distance {distance:.4f}"
        )


class StorageUnavailable(AttendanceError):
    """Transient storage failure; the whole attempt may be retried."""

    code = "storage_unavailable"


class NotFound(AttendanceError):
    code = "not_found"
