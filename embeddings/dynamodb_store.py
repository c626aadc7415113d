"""
DynamoDB-backed enrollment store.

One item per student in the faces table, keyed by ``student_id``. Updates
are read-modify-write guarded by a ``revision`` attribute so concurrent
enrollments of the same student never drop an embedding.

Roll numbers are kept unique per class by a claim item keyed
``roll#<class>#<roll>`` that names its owning student. A new student and its
claim are written in one transaction, so two enrollments racing on the same
roll number cannot both create a student.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
from botocore.exceptions import ClientError

from aws.dynamodb import (
    from_decimal_matrix,
    get_table,
    is_conditional_failure,
    put_all,
    scan_all,
    storage_errors,
    to_decimal_matrix,
)
from core.errors import NotFound, StorageUnavailable
from core.models import Candidate, Student, StudentProfile, freeze_embeddings
from embeddings.store import EnrollmentStore, new_student_id, utcnow

logger = logging.getLogger(__name__)

MAX_UPDATE_ATTEMPTS = 5
ROLL_CLAIM = "roll_claim"


def roll_claim_key(profile: StudentProfile) -> str:
    return f"roll#{profile.class_name}#{profile.roll_number}"


class DynamoDBEnrollmentStore(EnrollmentStore):
    def __init__(self, table_name: str, dimension: Optional[int] = None, table=None) -> None:
        super().__init__(dimension)
        self.table_name = table_name
        self.table = table if table is not None else get_table(table_name)
        if self.dimension is None:
            self.dimension = self._stored_dimension()

    def enroll(self, profile: StudentProfile, embedding, student_id: Optional[str] = None) -> str:
        profile = self._validate_profile(profile)
        vector = self._prepare_embedding(embedding)

        if student_id is None:
            student_id, created = self._create_or_resolve(profile, vector)
            if created:
                return student_id

        def append(student: Student) -> np.ndarray:
            return np.vstack([student.embeddings, vector])

        self._update_embeddings(student_id, append)
        logger.info("Appended reference embedding to %s", student_id)
        return student_id

    def re_enroll(self, student_id: str, embedding) -> str:
        vector = self._prepare_embedding(embedding)
        self._update_embeddings(student_id, lambda student: vector)
        logger.info("Replaced reference embeddings of %s", student_id)
        return student_id

    def list_candidates(self) -> Iterator[Candidate]:
        for student in self._iter_students():
            if student.eligible:
                yield student.id, student.embeddings

    def remove(self, student_id: str) -> None:
        for _ in range(MAX_UPDATE_ATTEMPTS):
            item = self._get_item(student_id)
            if item is None or not item.get("active", True):
                raise NotFound(f"Unknown student '{student_id}'")
            item["active"] = False
            if self._put_revision(item):
                logger.info("Removed %s from match candidacy", student_id)
                return
        raise StorageUnavailable(f"Too many concurrent updates of student '{student_id}'")

    def get(self, student_id: str) -> Student:
        item = self._get_item(student_id)
        if item is None:
            raise NotFound(f"Unknown student '{student_id}'")
        return _student_from_item(item)

    def list_students(self, include_removed: bool = False) -> List[Student]:
        students = [s for s in self._iter_students() if include_removed or s.active]
        return sorted(students, key=lambda s: s.registered_at)

    def _create_or_resolve(self, profile: StudentProfile, vector: np.ndarray) -> Tuple[str, bool]:
        """Find the active student holding this roll number, or create one."""
        claim_key = roll_claim_key(profile)
        for _ in range(MAX_UPDATE_ATTEMPTS):
            claim = self._get_raw_item(claim_key)
            if claim is not None:
                owner = self._get_item(claim["owner"])
                if owner is not None and owner.get("active", True):
                    return owner["student_id"], False
            student_id = self._create(profile, vector, claim_key, claim)
            if student_id is not None:
                return student_id, True
            logger.debug("Roll %s claimed concurrently, retrying", claim_key)
        raise StorageUnavailable(f"Too many concurrent enrollments of {claim_key}")

    def _create(
        self,
        profile: StudentProfile,
        vector: np.ndarray,
        claim_key: str,
        stale_claim: Optional[Dict],
    ) -> Optional[str]:
        student_id = new_student_id()
        item = {
            "student_id": student_id,
            "name": profile.name,
            "roll_number": profile.roll_number,
            "class_name": profile.class_name,
            "embeddings": to_decimal_matrix([vector]),
            "dimension": int(vector.size),
            "registered_at": utcnow().isoformat(),
            "active": True,
            "revision": 1,
        }
        claim_put = {"Item": {"student_id": claim_key, "kind": ROLL_CLAIM, "owner": student_id}}
        if stale_claim is None:
            claim_put["ConditionExpression"] = "attribute_not_exists(student_id)"
        else:
            # take over from a removed student, unless someone already did
            claim_put["ConditionExpression"] = "#owner = :owner"
            claim_put["ExpressionAttributeNames"] = {"#owner": "owner"}
            claim_put["ExpressionAttributeValues"] = {":owner": stale_claim["owner"]}
        try:
            with storage_errors("create student"):
                put_all(
                    self.table,
                    [claim_put, {"Item": item, "ConditionExpression": "attribute_not_exists(student_id)"}],
                )
        except ClientError as exc:
            if is_conditional_failure(exc):
                return None
            raise
        self._accept_dimension(vector)
        logger.info("Enrolled %s (%s, roll %s)", student_id, profile.class_name, profile.roll_number)
        return student_id

    def _update_embeddings(self, student_id: str, change) -> None:
        for _ in range(MAX_UPDATE_ATTEMPTS):
            item = self._get_item(student_id)
            if item is None or not item.get("active", True):
                raise NotFound(f"Unknown student '{student_id}'")
            embeddings = change(_student_from_item(item))
            item["embeddings"] = to_decimal_matrix(np.atleast_2d(embeddings))
            item["dimension"] = int(np.atleast_2d(embeddings).shape[1])
            item["updated_at"] = utcnow().isoformat()
            if self._put_revision(item):
                self._accept_dimension(np.atleast_2d(embeddings)[0])
                return
            logger.debug("Concurrent update of %s, retrying", student_id)
        raise StorageUnavailable(f"Too many concurrent updates of student '{student_id}'")

    def _put_revision(self, item: Dict) -> bool:
        """Write ``item`` only if nobody changed it since it was read."""
        expected = int(item.get("revision", 0))
        item["revision"] = expected + 1
        try:
            with storage_errors("update student"):
                self.table.put_item(
                    Item=item,
                    ConditionExpression="revision = :revision",
                    ExpressionAttributeValues={":revision": expected},
                )
        except ClientError as exc:
            if is_conditional_failure(exc):
                return False
            raise
        return True

    def _get_item(self, student_id: str) -> Optional[Dict]:
        item = self._get_raw_item(student_id)
        if item is None or item.get("kind") == ROLL_CLAIM:
            return None
        return item

    def _get_raw_item(self, key: str) -> Optional[Dict]:
        with storage_errors("read student"):
            response = self.table.get_item(Key={"student_id": key}, ConsistentRead=True)
        return response.get("Item")

    def _iter_students(self) -> Iterator[Student]:
        with storage_errors("scan students"):
            for item in scan_all(self.table):
                if item.get("kind") == ROLL_CLAIM:
                    continue
                if not item.get("embeddings"):
                    logger.warning("Skipping item without embedding: %s", item.get("student_id"))
                    continue
                yield _student_from_item(item)

    def _stored_dimension(self) -> Optional[int]:
        with storage_errors("scan students"):
            for item in scan_all(self.table):
                if item.get("dimension"):
                    return int(item["dimension"])
        return None


def _student_from_item(item: Dict) -> Student:
    return Student(
        id=item["student_id"],
        name=item.get("name", ""),
        roll_number=item.get("roll_number", ""),
        class_name=item.get("class_name", ""),
        embeddings=freeze_embeddings(from_decimal_matrix(item.get("embeddings"))),
        registered_at=datetime.fromisoformat(item["registered_at"]),
        active=bool(item.get("active", True)),
    )
