from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Tuple

import numpy as np


class AttendanceStatus(str, Enum):
    PRESENT = "Present"
    LATE = "Late"
    ABSENT = "Absent"


@dataclass(frozen=True)
class StudentProfile:
    name: str
    roll_number: str
    class_name: str


@dataclass(frozen=True, eq=False)
class Student:
    """
    An enrolled student and its reference embeddings.

    ``embeddings`` is a read-only (n, D) array; a new Student is built for
    every change so snapshots handed to the matcher never move under it.
    """

    id: str
    name: str
    roll_number: str
    class_name: str
    embeddings: np.ndarray
    registered_at: datetime
    active: bool = True

    @property
    def dimension(self) -> int:
        return int(self.embeddings.shape[1])

    @property
    def eligible(self) -> bool:
        return self.active and len(self.embeddings) > 0

    def with_embeddings(self, embeddings: np.ndarray) -> "Student":
        return replace(self, embeddings=freeze_embeddings(embeddings))

    def deactivated(self) -> "Student":
        return replace(self, active=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "roll_number": self.roll_number,
            "class_name": self.class_name,
            "embeddings": self.embeddings.tolist(),
            "registered_at": self.registered_at.isoformat(),
            "active": self.active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Student":
        return cls(
            id=data["id"],
            name=data["name"],
            roll_number=data["roll_number"],
            class_name=data["class_name"],
            embeddings=freeze_embeddings(data["embeddings"]),
            registered_at=datetime.fromisoformat(data["registered_at"]),
            active=data.get("active", True),
        )


@dataclass(frozen=True)
class AttendanceRecord:
    id: str
    student_id: str
    date: date
    timestamp: datetime
    status: AttendanceStatus
    confidence: float
    student_name: str = ""
    roll_number: str = ""
    class_name: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "date": self.date.isoformat(),
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "confidence": self.confidence,
            "student_name": self.student_name,
            "roll_number": self.roll_number,
            "class_name": self.class_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AttendanceRecord":
        return cls(
            id=data["id"],
            student_id=data["student_id"],
            date=date.fromisoformat(data["date"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            status=AttendanceStatus(data["status"]),
            confidence=float(data["confidence"]),
            student_name=data.get("student_name", ""),
            roll_number=data.get("roll_number", ""),
            class_name=data.get("class_name", ""),
        )


@dataclass(frozen=True)
class RecordOutcome:
    """Result of ``record_if_absent``: the stored record and whether this call created it."""

    record: AttendanceRecord
    created: bool

    @property
    def already_present(self) -> bool:
        return not self.created


def as_vector(embedding) -> np.ndarray:
    vector = np.asarray(embedding, dtype=np.float64)
    if vector.ndim != 1 or vector.size == 0:
        raise ValueError("Embedding must be a non-empty 1-D vector")
    if not np.all(np.isfinite(vector)):
        raise ValueError("Embedding contains NaN or infinite values")
    return vector


def freeze_embeddings(embeddings) -> np.ndarray:
    array = np.array(embeddings, dtype=np.float64)
    if array.ndim == 1:
        array = array.reshape(1, -1)
    array.setflags(write=False)
    return array


Candidate = Tuple[str, np.ndarray]
