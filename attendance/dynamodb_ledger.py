"""
DynamoDB-based attendance ledger.

Records live in the Attendance table keyed by ``session_id`` (the ISO
calendar day) and ``student_id``. A conditional put on that key makes
``record_if_absent`` atomic: of two concurrent writers for the same student
and day exactly one succeeds, the other reads back the winner's record.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterator, List, Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from attendance.ledger import AttendanceLedger, in_range, new_record
from aws.dynamodb import get_table, is_conditional_failure, query_all, scan_all, storage_errors, to_decimal
from core.errors import StorageUnavailable
from core.models import AttendanceRecord, AttendanceStatus, RecordOutcome

logger = logging.getLogger(__name__)


class DynamoDBAttendanceLedger(AttendanceLedger):
    def __init__(self, table_name: str, table=None) -> None:
        self.table_name = table_name
        self.table = table if table is not None else get_table(table_name)

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
        record = new_record(
            student_id, day, confidence, status, timestamp, student_name, roll_number, class_name
        )
        try:
            with storage_errors("write attendance"):
                self.table.put_item(
                    Item=_to_item(record),
                    ConditionExpression="attribute_not_exists(student_id)",
                )
        except ClientError as exc:
            if not is_conditional_failure(exc):
                raise
            # Already logged for this session (day)
            existing = self.get(student_id, day)
            if existing is None:
                raise StorageUnavailable(
                    f"Attendance for {student_id} on {day} exists but could not be read"
                ) from exc
            return RecordOutcome(existing, created=False)
        logger.info("Marked %s %s for %s", student_id, status.value, day.isoformat())
        return RecordOutcome(record, created=True)

    def get(self, student_id: str, day: date) -> Optional[AttendanceRecord]:
        with storage_errors("read attendance"):
            response = self.table.get_item(
                Key={"session_id": day.isoformat(), "student_id": student_id},
                ConsistentRead=True,
            )
        item = response.get("Item")
        return _from_item(item) if item else None

    def query(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        student_id: Optional[str] = None,
    ) -> Iterator[AttendanceRecord]:
        rows: List[AttendanceRecord] = []
        with storage_errors("query attendance"):
            if start_date and end_date:
                items = self._items_by_day(start_date, end_date, student_id)
            else:
                items = scan_all(self.table)
            for item in items:
                record = _from_item(item)
                if student_id and record.student_id != student_id:
                    continue
                if in_range(record, start_date, end_date):
                    rows.append(record)
        rows.sort(key=lambda r: r.timestamp)
        yield from rows

    def _items_by_day(self, start_date: date, end_date: date, student_id: Optional[str]) -> Iterator[Dict]:
        day = start_date
        while day <= end_date:
            condition = Key("session_id").eq(day.isoformat())
            if student_id:
                condition = condition & Key("student_id").eq(student_id)
            yield from query_all(self.table, KeyConditionExpression=condition)
            day += timedelta(days=1)


def _to_item(record: AttendanceRecord) -> Dict:
    item = record.to_dict()
    item["session_id"] = item.pop("date")
    item["confidence"] = to_decimal(record.confidence)
    return item


def _from_item(item: Dict) -> AttendanceRecord:
    data = dict(item)
    data["date"] = data.pop("session_id")
    data["confidence"] = float(data.get("confidence", 0))
    return AttendanceRecord.from_dict(data)
