"""
Read-side views over the attendance ledger: filtered record listings, the
daily summary shown on the dashboard and the CSV export.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, timezone, tzinfo
from typing import Dict, Iterator, List, Optional

from attendance.ledger import AttendanceLedger
from core.models import AttendanceRecord, AttendanceStatus
from embeddings.store import EnrollmentStore

EXPORT_FIELDS = ["date", "name", "roll", "time", "status", "confidence"]


@dataclass(frozen=True)
class DailySummary:
    date: date
    total_students: int
    present: int
    late: int
    absent: int

    @property
    def attendance_rate(self) -> float:
        if not self.total_students:
            return 0.0
        return round((self.present + self.late) / self.total_students * 100, 1)


class ReportService:
    def __init__(
        self,
        ledger: AttendanceLedger,
        enrollment_store: EnrollmentStore,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self.ledger = ledger
        self.enrollment_store = enrollment_store
        self.tz = tz

    def records(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        student_id: Optional[str] = None,
    ) -> Iterator[AttendanceRecord]:
        return self.ledger.query(start_date, end_date, student_id)

    def daily_summary(self, day: date) -> DailySummary:
        active_ids = {student.id for student in self.enrollment_store.list_students()}
        counts: Dict[AttendanceStatus, int] = {AttendanceStatus.PRESENT: 0, AttendanceStatus.LATE: 0}
        for record in self.ledger.query(day, day):
            if record.student_id in active_ids and record.status in counts:
                counts[record.status] += 1
        marked = counts[AttendanceStatus.PRESENT] + counts[AttendanceStatus.LATE]
        return DailySummary(
            date=day,
            total_students=len(active_ids),
            present=counts[AttendanceStatus.PRESENT],
            late=counts[AttendanceStatus.LATE],
            absent=len(active_ids) - marked,
        )

    def export_rows(self, records) -> List[Dict[str, str]]:
        return [
            {
                "date": record.date.isoformat(),
                "name": record.student_name,
                "roll": record.roll_number,
                "time": record.timestamp.astimezone(self.tz).strftime("%H:%M:%S"),
                "status": record.status.value,
                "confidence": f"{record.confidence:.2f}",
            }
            for record in records
        ]

    def to_csv(self, records) -> str:
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=EXPORT_FIELDS)
        writer.writeheader()
        writer.writerows(self.export_rows(records))
        return output.getvalue()
