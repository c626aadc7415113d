from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone

import pytest

from attendance.dynamodb_ledger import DynamoDBAttendanceLedger
from attendance.ledger import LocalAttendanceLedger
from core.errors import StorageUnavailable
from core.models import AttendanceStatus
from tests.fakes import FakeTable

DAY = date(2026, 3, 2)
MORNING = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _dynamodb_ledger(page_size=None):
    return DynamoDBAttendanceLedger("Attendance", table=FakeTable(["session_id", "student_id"], page_size))


@pytest.fixture(params=["local", "dynamodb"])
def any_ledger(request):
    if request.param == "local":
        return LocalAttendanceLedger()
    return _dynamodb_ledger(page_size=2)


def _record(ledger, student_id, day=DAY, at=MORNING, confidence=0.9, status=AttendanceStatus.PRESENT):
    return ledger.record_if_absent(student_id, day, confidence, status, at, student_name=student_id.title())


def test_second_record_same_day_is_noop(any_ledger):
    first = _record(any_ledger, "alice", confidence=0.95)
    second = _record(any_ledger, "alice", at=MORNING + timedelta(hours=1), confidence=0.5, status=AttendanceStatus.LATE)

    assert first.created
    assert second.already_present
    assert second.record == first.record
    records = list(any_ledger.query(DAY, DAY))
    assert len(records) == 1
    assert records[0].confidence == pytest.approx(0.95)
    assert records[0].status is AttendanceStatus.PRESENT


def test_next_day_creates_new_record(any_ledger):
    _record(any_ledger, "alice")
    outcome = _record(any_ledger, "alice", day=DAY + timedelta(days=1), at=MORNING + timedelta(days=1))

    assert outcome.created
    assert len(list(any_ledger.query(student_id="alice"))) == 2


def test_query_orders_by_timestamp_and_filters(any_ledger):
    _record(any_ledger, "bob", at=MORNING + timedelta(minutes=30))
    _record(any_ledger, "alice", at=MORNING + timedelta(minutes=5))
    _record(any_ledger, "carol", at=MORNING + timedelta(minutes=10))
    _record(any_ledger, "alice", day=DAY + timedelta(days=1), at=MORNING + timedelta(days=1))

    day_records = list(any_ledger.query(DAY, DAY))
    assert [r.student_id for r in day_records] == ["alice", "carol", "bob"]

    alice = list(any_ledger.query(DAY, DAY + timedelta(days=1), student_id="alice"))
    assert [r.date for r in alice] == [DAY, DAY + timedelta(days=1)]

    assert list(any_ledger.query(DAY - timedelta(days=3), DAY - timedelta(days=1))) == []


def test_query_is_restartable(any_ledger):
    _record(any_ledger, "alice")
    first = list(any_ledger.query())

    _record(any_ledger, "bob", at=MORNING + timedelta(minutes=1))

    assert len(first) == 1
    assert len(list(any_ledger.query())) == 2


def test_concurrent_writers_one_wins():
    ledger = LocalAttendanceLedger()

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(lambda _: _record(ledger, "alice"), range(16)))

    assert sum(o.created for o in outcomes) == 1
    assert len({o.record.id for o in outcomes}) == 1
    assert ledger._key_locks == {}


def test_local_ledger_persists_to_csv(tmp_path):
    path = tmp_path / "attendance.csv"
    ledger = LocalAttendanceLedger(str(path))
    created = _record(ledger, "alice", confidence=0.87654321).record

    reloaded = LocalAttendanceLedger(str(path))

    assert list(reloaded.query()) == [created]
    assert _record(reloaded, "alice").already_present
    assert path.read_text(encoding="utf-8").splitlines()[0].startswith("id,student_id,date")


def test_local_write_failure_is_storage_unavailable(tmp_path):
    blocker = tmp_path / "data"
    blocker.write_text("not a directory")
    ledger = LocalAttendanceLedger(str(blocker / "attendance.csv"))

    with pytest.raises(StorageUnavailable):
        _record(ledger, "alice")
    assert list(ledger.query()) == []

    blocker.unlink()
    assert _record(ledger, "alice").created


def test_dynamodb_write_failure_is_storage_unavailable():
    ledger = _dynamodb_ledger()
    ledger.table.failing_puts = 1

    with pytest.raises(StorageUnavailable):
        _record(ledger, "alice")
    assert _record(ledger, "alice").created


def test_dynamodb_item_layout():
    ledger = _dynamodb_ledger()
    record = _record(ledger, "alice").record

    item = ledger.table.items[("2026-03-02", "alice")]
    assert item["id"] == record.id
    assert item["status"] == "Present"
    assert "date" not in item
    assert ledger.get("alice", DAY) == record
