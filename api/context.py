from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Request

from attendance.ledger import AttendanceLedger, LocalAttendanceLedger
from configs.settings import Settings
from core.enrollment import EnrollmentService
from core.reports import ReportService
from core.system import AttendanceService
from embeddings.store import EnrollmentStore, LocalEnrollmentStore
from recognition.extractor import EmbeddingExtractor
from recognition.matcher import MatcherConfig

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    enrollment_store: EnrollmentStore
    ledger: AttendanceLedger
    enrollment: EnrollmentService
    attendance: AttendanceService
    reports: ReportService
    startup_time: datetime

    def close(self) -> None:
        self.enrollment_store.close()
        self.ledger.close()


def build_stores(settings: Settings):
    if settings.storage_type == "dynamodb":
        from attendance.dynamodb_ledger import DynamoDBAttendanceLedger
        from embeddings.dynamodb_store import DynamoDBEnrollmentStore

        store = DynamoDBEnrollmentStore(settings.faces_table, dimension=settings.embedding_dimension)
        ledger = DynamoDBAttendanceLedger(settings.attendance_table)
    elif settings.storage_type == "local":
        store = LocalEnrollmentStore(settings.students_file, dimension=settings.embedding_dimension)
        ledger = LocalAttendanceLedger(settings.attendance_file)
    else:
        raise ValueError(f"Unsupported storage_type: {settings.storage_type}")
    return store, ledger


def build_context(
    settings: Settings,
    extractor: Optional[EmbeddingExtractor] = None,
    enrollment_store: Optional[EnrollmentStore] = None,
    ledger: Optional[AttendanceLedger] = None,
) -> AppContext:
    if extractor is None:
        from recognition.face_recognizer import FaceRecognizer

        extractor = FaceRecognizer()
    if enrollment_store is None or ledger is None:
        enrollment_store, ledger = build_stores(settings)

    tz = ZoneInfo(settings.timezone)
    matcher_config = MatcherConfig(
        threshold=settings.match_threshold,
        metric=settings.match_metric,
        normalize=settings.match_normalize,
        tie_epsilon=settings.match_tie_epsilon,
        max_distance=settings.match_max_distance,
    )
    attendance = AttendanceService(
        extractor,
        enrollment_store,
        ledger,
        matcher_config=matcher_config,
        tz=tz,
        late_after=settings.late_after,
        record_retries=settings.record_retries,
        record_retry_backoff=settings.record_retry_backoff,
    )
    logger.info(
        "Attendance service ready (storage=%s, metric=%s, threshold=%.3f, tz=%s)",
        settings.storage_type,
        matcher_config.metric,
        matcher_config.threshold,
        settings.timezone,
    )
    return AppContext(
        settings=settings,
        enrollment_store=enrollment_store,
        ledger=ledger,
        enrollment=EnrollmentService(extractor, enrollment_store),
        attendance=attendance,
        reports=ReportService(ledger, enrollment_store, tz=tz),
        startup_time=datetime.now(timezone.utc),
    )


def get_context(request: Request) -> AppContext:
    return request.app.state.context
