# api/models/schemas.py
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from core.models import AttendanceRecord, Student


class EnrollResponse(BaseModel):
    student_id: str
    embeddings: int = Field(..., ge=1)


class StudentInfo(BaseModel):
    id: str
    name: str
    roll_number: str
    class_name: str
    registered_at: datetime
    embeddings: int = Field(..., ge=0)
    active: bool

    @classmethod
    def from_student(cls, student: Student) -> "StudentInfo":
        return cls(
            id=student.id,
            name=student.name,
            roll_number=student.roll_number,
            class_name=student.class_name,
            registered_at=student.registered_at,
            embeddings=len(student.embeddings),
            active=student.active,
        )


class StudentsResponse(BaseModel):
    students: List[StudentInfo]


class AttendanceRecordModel(BaseModel):
    id: str
    student_id: str
    date: date
    timestamp: datetime
    status: str
    confidence: float = Field(..., ge=0, le=1)
    student_name: str = ""
    roll_number: str = ""
    class_name: str = ""

    @classmethod
    def from_record(cls, record: AttendanceRecord) -> "AttendanceRecordModel":
        return cls(**{**record.to_dict(), "date": record.date, "timestamp": record.timestamp})


class AttendanceResponse(BaseModel):
    records: List[AttendanceRecordModel]


class VerifyResponse(BaseModel):
    decision: str
    state: str
    student_id: Optional[str] = None
    confidence: Optional[float] = None
    distance: Optional[float] = None
    already_marked: bool = False
    record: Optional[AttendanceRecordModel] = None
    reason: Optional[str] = None
    candidates: List[str] = []


class DailyReportResponse(BaseModel):
    date: date
    total_students: int
    present: int
    late: int
    absent: int
    attendance_rate: float


class HealthResponse(BaseModel):
    status: str
    uptime_seconds: float
    storage_type: str
    known_students: int
