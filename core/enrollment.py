from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from core.models import Student, StudentProfile
from embeddings.store import EnrollmentStore
from recognition.extractor import EmbeddingExtractor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrollmentResult:
    student_id: str
    embeddings: int


class EnrollmentService:
    """Extracts reference embeddings from face images and stores them."""

    def __init__(self, extractor: EmbeddingExtractor, store: EnrollmentStore) -> None:
        self.extractor = extractor
        self.store = store

    async def enroll(
        self,
        profile: StudentProfile,
        image: bytes,
        student_id: Optional[str] = None,
    ) -> EnrollmentResult:
        embedding = await asyncio.to_thread(self.extractor.extract, image)
        student_id = await asyncio.to_thread(self.store.enroll, profile, embedding, student_id)
        return await asyncio.to_thread(self._result, student_id)

    async def re_enroll(self, student_id: str, image: bytes) -> EnrollmentResult:
        embedding = await asyncio.to_thread(self.extractor.extract, image)
        await asyncio.to_thread(self.store.re_enroll, student_id, embedding)
        return await asyncio.to_thread(self._result, student_id)

    def remove(self, student_id: str) -> None:
        self.store.remove(student_id)

    def get(self, student_id: str) -> Student:
        return self.store.get(student_id)

    def list_students(self, include_removed: bool = False) -> List[Student]:
        return self.store.list_students(include_removed=include_removed)

    def _result(self, student_id: str) -> EnrollmentResult:
        student = self.store.get(student_id)
        return EnrollmentResult(student_id=student_id, embeddings=len(student.embeddings))
