"""
Attendance ledger: append-only, at most one record per student per day.
"""

from __future__ import annotations

import csv
import logging
import threading
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from core.errors import StorageUnavailable
from core.models import AttendanceRecord, AttendanceStatus, RecordOutcome

logger = logging.getLogger(__name__)

FIELDNAMES = [
    "id",
    "student_id",
    "date",
    "timestamp",
    "status",
    "confidence",
    "student_name",
    "roll_number",
    "class_name",
]


def new_record(
    student_id: str,
    day: date,
    confidence: float,
    status: AttendanceStatus,
    timestamp: datetime,
    student_name: str = "",
    roll_number: str = "",
    class_name: str = "",
) -> AttendanceRecord:
    return AttendanceRecord(
        id=uuid.uuid4().hex,
        student_id=student_id,
        date=day,
        timestamp=timestamp,
        status=status,
        confidence=round(float(confidence), 6),
        student_name=student_name,
        roll_number=roll_number,
        class_name=class_name,
    )


def in_range(record: AttendanceRecord, start_date: Optional[date], end_date: Optional[date]) -> bool:
    if start_date and record.date < start_date:
        return False
    if end_date and record.date > end_date:
        return False
    return True


class AttendanceLedger:
    def record_if_absent(
        self,
        student_id: str,
        day: date,
        confidence: float,
        status: AttendanceStatus,
        timestamp: datetime,
        student_name: str = "",
        roll_number: str = "",
        class_name: str = "",
    ) -> RecordOutcome:
        """
        Store a record for (student_id, day) unless one already exists.

        Returns:
            RecordOutcome with created=True for the new record, or the existing
            record with created=False.
        """
        raise NotImplementedError

    def query(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        student_id: Optional[str] = None,
    ) -> Iterator[AttendanceRecord]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class LocalAttendanceLedger(AttendanceLedger):
    """
    In-memory ledger appended to a CSV file.

    Check-and-insert is serialised per (student_id, date) key; unrelated keys
    only share the short file append.
    """

    def __init__(self, storage_path: Optional[str] = None) -> None:
        self.storage_path = Path(storage_path) if storage_path else None
        self._records: Dict[Tuple[str, date], AttendanceRecord] = {}
        self._key_locks: Dict[Tuple[str, date], threading.Lock] = {}
        self._guard = threading.Lock()
        self._file_lock = threading.Lock()
        if self.storage_path and self.storage_path.exists():
            self._load()

    def record_if_absent(
        self,
        student_id: str,
        day: date,
        confidence: float,
        status: AttendanceStatus,
        timestamp: datetime,
        student_name: str = "",
        roll_number: str = "",
        class_name: str = "",
    ) -> RecordOutcome:
        key = (student_id, day)
        existing = self._records.get(key)
        if existing is not None:
            return RecordOutcome(existing, created=False)
        with self._lock_for(key):
            existing = self._records.get(key)
            if existing is not None:
                return RecordOutcome(existing, created=False)
            record = new_record(
                student_id, day, confidence, status, timestamp, student_name, roll_number, class_name
            )
            self._append(record)
            self._records[key] = record
        # the stored record now answers every later call for this key
        with self._guard:
            self._key_locks.pop(key, None)
        logger.info("Marked %s %s for %s", student_id, status.value, day.isoformat())
        return RecordOutcome(record, created=True)

    def query(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        student_id: Optional[str] = None,
    ) -> Iterator[AttendanceRecord]:
        rows: List[AttendanceRecord] = [
            record
            for record in list(self._records.values())
            if (student_id is None or record.student_id == student_id)
            and in_range(record, start_date, end_date)
        ]
        rows.sort(key=lambda r: r.timestamp)
        yield from rows

    def _lock_for(self, key: Tuple[str, date]) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def _append(self, record: AttendanceRecord) -> None:
        if self.storage_path is None:
            return
        with self._file_lock:
            try:
                self.storage_path.parent.mkdir(parents=True, exist_ok=True)
                write_header = not self.storage_path.exists()
                with self.storage_path.open("a", newline="", encoding="utf-8") as f:
                    writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
                    if write_header:
                        writer.writeheader()
                    writer.writerow(record.to_dict())
            except OSError as exc:
                raise StorageUnavailable(f"Could not append to {self.storage_path}: {exc}") from exc

    def _load(self) -> None:
        with self.storage_path.open("r", newline="", encoding="utf-8") as f:
            for row in csv.DictReader(f):
                record = AttendanceRecord.from_dict(row)
                self._records.setdefault((record.student_id, record.date), record)
        logger.info("Loaded %d attendance records from %s", len(self._records), self.storage_path)
