from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone, tzinfo
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from attendance.ledger import AttendanceLedger
from core.errors import AttendanceError, NotFound, StorageUnavailable
from core.models import AttendanceRecord, AttendanceStatus, RecordOutcome
from embeddings.store import EnrollmentStore
from recognition.extractor import EmbeddingExtractor
from recognition.matcher import Ambiguous, Matched, MatchDecision, MatcherConfig, NoMatch, match

logger = logging.getLogger(__name__)


class VerificationState(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    MATCHING = "matching"
    RECORDING = "recording"
    DONE = "done"
    REJECTED = "rejected"
    FAILED = "failed"


TRANSITIONS = {
    VerificationState.IDLE: {VerificationState.EXTRACTING},
    VerificationState.EXTRACTING: {VerificationState.MATCHING, VerificationState.FAILED},
    VerificationState.MATCHING: {
        VerificationState.RECORDING,
        VerificationState.REJECTED,
        VerificationState.FAILED,
    },
    VerificationState.RECORDING: {VerificationState.DONE, VerificationState.FAILED},
}


class VerificationAttempt:
    """State of a single verification; a re-submitted image is a new attempt."""

    def __init__(self) -> None:
        self.state = VerificationState.IDLE
        self.history: List[VerificationState] = [self.state]

    def advance(self, state: VerificationState) -> None:
        if state not in TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Invalid transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    @property
    def finished(self) -> bool:
        return self.state in (VerificationState.DONE, VerificationState.REJECTED, VerificationState.FAILED)


@dataclass
class VerificationResult:
    state: VerificationState
    decision: str
    match: Optional[MatchDecision] = None
    record: Optional[AttendanceRecord] = None
    already_marked: bool = False
    reason: Optional[str] = None
    history: List[VerificationState] = field(default_factory=list)

    @property
    def student_id(self) -> Optional[str]:
        if isinstance(self.match, Matched):
            return self.match.student_id
        return None

    @property
    def confidence(self) -> Optional[float]:
        if isinstance(self.match, Matched):
            return self.match.confidence
        return None

    @property
    def distance(self) -> Optional[float]:
        if isinstance(self.match, Matched):
            return self.match.distance
        if isinstance(self.match, Ambiguous):
            return self.match.distance
        if isinstance(self.match, NoMatch):
            return self.match.best_distance
        return None

    @property
    def candidates(self) -> List[str]:
        if isinstance(self.match, Ambiguous):
            return list(self.match.student_ids)
        if isinstance(self.match, NoMatch) and self.match.best_student_id:
            return [self.match.best_student_id]
        return []


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttendanceService:
    """
    Verification pipeline: extract a probe, match it against the current
    enrollment snapshot and mark attendance for the matched student.

    Reads the enrollment store, writes only the ledger.
    """

    def __init__(
        self,
        extractor: EmbeddingExtractor,
        enrollment_store: EnrollmentStore,
        ledger: AttendanceLedger,
        matcher_config: Optional[MatcherConfig] = None,
        tz: tzinfo = timezone.utc,
        late_after: Optional[time] = None,
        record_retries: int = 3,
        record_retry_backoff: float = 0.2,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.extractor = extractor
        self.enrollment_store = enrollment_store
        self.ledger = ledger
        self.matcher_config = matcher_config or MatcherConfig()
        self.tz = tz
        self.late_after = late_after
        self.record_retries = max(1, record_retries)
        self.record_retry_backoff = record_retry_backoff
        self.clock = clock

    async def verify(self, image: bytes, attempt: Optional[VerificationAttempt] = None) -> VerificationResult:
        attempt = attempt or VerificationAttempt()
        captured_at = self.clock()

        attempt.advance(VerificationState.EXTRACTING)
        try:
            probe = await asyncio.to_thread(self.extractor.extract, image)
        except AttendanceError as exc:
            attempt.advance(VerificationState.FAILED)
            logger.info("Verification failed during extraction: %s", exc)
            raise

        attempt.advance(VerificationState.MATCHING)
        try:
            decision = await asyncio.to_thread(self.identify, probe)
        except AttendanceError:
            attempt.advance(VerificationState.FAILED)
            raise

        if not isinstance(decision, Matched):
            attempt.advance(VerificationState.REJECTED)
            logger.info("Verification rejected: %s", decision)
            return self._result(attempt, decision.kind, decision)

        try:
            student = await asyncio.to_thread(self.enrollment_store.get, decision.student_id)
        except NotFound:
            student = None
        except AttendanceError:
            attempt.advance(VerificationState.FAILED)
            raise
        if student is None or not student.active:
            attempt.advance(VerificationState.REJECTED)
            logger.info("Matched %s but the student was removed", decision.student_id)
            return self._result(attempt, "rejected", decision, reason="student_removed")

        attempt.advance(VerificationState.RECORDING)
        local_time = captured_at.astimezone(self.tz)
        try:
            outcome = await self._record_with_retry(
                student_id=student.id,
                day=local_time.date(),
                confidence=decision.confidence,
                status=self.status_for(local_time),
                timestamp=captured_at,
                student_name=student.name,
                roll_number=student.roll_number,
                class_name=student.class_name,
            )
        except AttendanceError:
            attempt.advance(VerificationState.FAILED)
            raise

        attempt.advance(VerificationState.DONE)
        if outcome.already_present:
            logger.info("%s already marked on %s", student.id, outcome.record.date.isoformat())
        return self._result(
            attempt,
            decision.kind,
            decision,
            record=outcome.record,
            already_marked=outcome.already_present,
        )

    def identify(self, probe: np.ndarray) -> MatchDecision:
        """Match a probe against the enrolled students without recording anything."""
        return match(probe, self.enrollment_store.list_candidates(), self.matcher_config)

    def status_for(self, local_time: datetime) -> AttendanceStatus:
        if self.late_after is not None and local_time.time() > self.late_after:
            return AttendanceStatus.LATE
        return AttendanceStatus.PRESENT

    def today(self) -> date:
        return self.clock().astimezone(self.tz).date()

    async def _record_with_retry(self, **kwargs) -> RecordOutcome:
        for attempt_no in range(1, self.record_retries + 1):
            try:
                return await asyncio.to_thread(self.ledger.record_if_absent, **kwargs)
            except StorageUnavailable as exc:
                if attempt_no == self.record_retries:
                    logger.error("Giving up on attendance write after %d attempts: %s", attempt_no, exc)
                    raise
                logger.warning("Attendance write failed (attempt %d), retrying: %s", attempt_no, exc)
                await asyncio.sleep(self.record_retry_backoff * attempt_no)

    @staticmethod
    def _result(attempt: VerificationAttempt, decision: str, match_decision, **kwargs) -> VerificationResult:
        return VerificationResult(
            state=attempt.state,
            decision=decision,
            match=match_decision,
            history=list(attempt.history),
            **kwargs,
        )
