from __future__ import annotations

from datetime import datetime, timezone

import pytest

from attendance.ledger import LocalAttendanceLedger
from core.errors import ExtractionFailure
from core.models import StudentProfile
from core.system import AttendanceService
from embeddings.store import LocalEnrollmentStore
from recognition.matcher import MatcherConfig
from tests.fakes import FakeExtractor

FIXED_NOW = datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def faces():
    return {
        b"alice": [1.0, 0.0, 0.0],
        b"alice-again": [0.99, 0.01, 0.0],
        b"bob": [0.0, 1.0, 0.0],
        b"stranger": [0.0, 0.0, 1.0],
        b"group": ExtractionFailure.MULTIPLE_FACES_DETECTED,
        b"wall": ExtractionFailure.NO_FACE_DETECTED,
    }


@pytest.fixture
def extractor(faces):
    return FakeExtractor(faces)


@pytest.fixture
def store():
    return LocalEnrollmentStore()


@pytest.fixture
def ledger():
    return LocalAttendanceLedger()


@pytest.fixture
def matcher_config():
    return MatcherConfig(threshold=0.1, metric="euclidean")


@pytest.fixture
def service(extractor, store, ledger, matcher_config, fixed_now):
    return AttendanceService(
        extractor,
        store,
        ledger,
        matcher_config=matcher_config,
        record_retry_backoff=0,
        clock=lambda: fixed_now,
    )


@pytest.fixture
def alice_profile():
    return StudentProfile(name="Alice Nguyen", roll_number="07", class_name="10A")


@pytest.fixture
def bob_profile():
    return StudentProfile(name="Bob Tran", roll_number="12", class_name="10A")
