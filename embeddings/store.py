"""
Enrollment store: student metadata plus reference embeddings.

``EnrollmentStore`` holds the rules shared by every backend (uniform
embedding dimension, metadata validation, identity resolution on enroll).
``LocalEnrollmentStore`` keeps students in memory and writes them through to a
JSON file. Readers work on an immutable snapshot that writers replace
wholesale, so a match in progress never sees a half-updated student.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Iterator, List, Mapping, Optional

import numpy as np

from core.errors import DimensionMismatch, NotFound, StorageUnavailable, ValidationError
from core.models import Candidate, Student, StudentProfile, as_vector, freeze_embeddings

logger = logging.getLogger(__name__)


def new_student_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EnrollmentStore:
    def __init__(self, dimension: Optional[int] = None) -> None:
        self.dimension = dimension

    def enroll(self, profile: StudentProfile, embedding, student_id: Optional[str] = None) -> str:
        raise NotImplementedError

    def re_enroll(self, student_id: str, embedding) -> str:
        raise NotImplementedError

    def list_candidates(self) -> Iterator[Candidate]:
        raise NotImplementedError

    def remove(self, student_id: str) -> None:
        raise NotImplementedError

    def get(self, student_id: str) -> Student:
        raise NotImplementedError

    def list_students(self, include_removed: bool = False) -> List[Student]:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def _prepare_embedding(self, embedding) -> np.ndarray:
        try:
            vector = as_vector(embedding)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if self.dimension is not None and vector.size != self.dimension:
            raise DimensionMismatch(self.dimension, vector.size)
        return vector

    def _accept_dimension(self, vector: np.ndarray) -> None:
        if self.dimension is None:
            self.dimension = int(vector.size)
            logger.info("Enrollment store dimension fixed at %d", self.dimension)

    @staticmethod
    def _validate_profile(profile: StudentProfile) -> StudentProfile:
        cleaned = StudentProfile(
            name=profile.name.strip(),
            roll_number=profile.roll_number.strip(),
            class_name=profile.class_name.strip(),
        )
        if not cleaned.name:
            raise ValidationError("Student name is required")
        if not cleaned.roll_number:
            raise ValidationError("Roll number is required")
        if not cleaned.class_name:
            raise ValidationError("Class name is required")
        return cleaned

    @staticmethod
    def _find_by_roll(students, profile: StudentProfile) -> Optional[Student]:
        for student in students:
            if (
                student.active
                and student.class_name == profile.class_name
                and student.roll_number == profile.roll_number
            ):
                return student
        return None


class LocalEnrollmentStore(EnrollmentStore):
    def __init__(self, storage_path: Optional[str] = None, dimension: Optional[int] = None) -> None:
        super().__init__(dimension)
        self.storage_path = Path(storage_path) if storage_path else None
        self._lock = threading.Lock()
        self._students: Mapping[str, Student] = MappingProxyType({})
        if self.storage_path and self.storage_path.exists():
            self._load()

    def enroll(self, profile: StudentProfile, embedding, student_id: Optional[str] = None) -> str:
        profile = self._validate_profile(profile)
        vector = self._prepare_embedding(embedding)
        with self._lock:
            # re-check under the lock: the first enrollment fixes the dimension
            vector = self._prepare_embedding(vector)
            students = dict(self._students)
            if student_id is not None:
                existing = students.get(student_id)
                if existing is None or not existing.active:
                    raise NotFound(f"Unknown student '{student_id}'")
            else:
                existing = self._find_by_roll(students.values(), profile)

            if existing is not None:
                student = existing.with_embeddings(np.vstack([existing.embeddings, vector]))
                logger.info(
                    "Appended reference embedding to %s (%d total)", student.id, len(student.embeddings)
                )
            else:
                student = Student(
                    id=new_student_id(),
                    name=profile.name,
                    roll_number=profile.roll_number,
                    class_name=profile.class_name,
                    embeddings=freeze_embeddings(vector),
                    registered_at=utcnow(),
                )
                logger.info("Enrolled %s (%s, roll %s)", student.id, student.class_name, student.roll_number)
            students[student.id] = student
            self._commit(students, int(vector.size))
            self._accept_dimension(vector)
        return student.id

    def re_enroll(self, student_id: str, embedding) -> str:
        vector = self._prepare_embedding(embedding)
        with self._lock:
            vector = self._prepare_embedding(vector)
            students = dict(self._students)
            existing = students.get(student_id)
            if existing is None or not existing.active:
                raise NotFound(f"Unknown student '{student_id}'")
            students[student_id] = existing.with_embeddings(vector)
            self._commit(students, int(vector.size))
            self._accept_dimension(vector)
        logger.info("Replaced reference embeddings of %s", student_id)
        return student_id

    def list_candidates(self) -> Iterator[Candidate]:
        snapshot = self._students
        for student in snapshot.values():
            if student.eligible:
                yield student.id, student.embeddings

    def remove(self, student_id: str) -> None:
        with self._lock:
            students = dict(self._students)
            existing = students.get(student_id)
            if existing is None or not existing.active:
                raise NotFound(f"Unknown student '{student_id}'")
            students[student_id] = existing.deactivated()
            self._commit(students)
        logger.info("Removed %s from match candidacy", student_id)

    def get(self, student_id: str) -> Student:
        student = self._students.get(student_id)
        if student is None:
            raise NotFound(f"Unknown student '{student_id}'")
        return student

    def list_students(self, include_removed: bool = False) -> List[Student]:
        students = [s for s in self._students.values() if include_removed or s.active]
        return sorted(students, key=lambda s: s.registered_at)

    def close(self) -> None:
        with self._lock:
            self._save(self._students, self.dimension)

    def _commit(self, students: dict, dimension: Optional[int] = None) -> None:
        """Persist first, then publish the new snapshot."""
        self._save(students, self.dimension if dimension is None else dimension)
        self._students = MappingProxyType(students)

    def _load(self) -> None:
        with self.storage_path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
        students = {}
        for item in payload.get("students", []):
            student = Student.from_dict(item)
            students[student.id] = student
        if self.dimension is None:
            self.dimension = payload.get("dimension")
        self._students = MappingProxyType(students)
        logger.info("Loaded %d students from %s", len(students), self.storage_path)

    def _save(self, students: Mapping[str, Student], dimension: Optional[int]) -> None:
        if self.storage_path is None:
            return
        tmp_path = self.storage_path.with_suffix(self.storage_path.suffix + ".tmp")
        payload = {
            "dimension": dimension,
            "students": [student.to_dict() for student in students.values()],
        }
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.storage_path)
        except OSError as exc:
            raise StorageUnavailable(f"Could not write {self.storage_path}: {exc}") from exc
