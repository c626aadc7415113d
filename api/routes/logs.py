# api/routes/logs.py
from __future__ import annotations

import io
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from api.context import AppContext, get_context
from api.models.schemas import AttendanceRecordModel, AttendanceResponse, DailyReportResponse

router = APIRouter()


def _date_range(day: Optional[date], start_date: Optional[date], end_date: Optional[date]):
    if day is not None:
        if start_date or end_date:
            raise HTTPException(status_code=400, detail="Use either date or start_date/end_date")
        return day, day
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")
    return start_date, end_date


@router.get("/attendance", response_model=AttendanceResponse)
def get_attendance(
    day: Optional[date] = Query(None, alias="date"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    student_id: Optional[str] = Query(None),
    ctx: AppContext = Depends(get_context),
) -> AttendanceResponse:
    start, end = _date_range(day, start_date, end_date)
    records = ctx.reports.records(start, end, student_id)
    return AttendanceResponse(records=[AttendanceRecordModel.from_record(r) for r in records])


@router.get("/attendance/export")
def export_attendance(
    day: Optional[date] = Query(None, alias="date"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    student_id: Optional[str] = Query(None),
    ctx: AppContext = Depends(get_context),
):
    start, end = _date_range(day, start_date, end_date)
    content = ctx.reports.to_csv(ctx.reports.records(start, end, student_id))
    label = day.isoformat() if day else "all"
    return StreamingResponse(
        io.BytesIO(content.encode("utf-8")),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=Attendance_{label}.csv"},
    )


@router.get("/reports/daily", response_model=DailyReportResponse)
def daily_report(
    day: Optional[date] = Query(None, alias="date"),
    ctx: AppContext = Depends(get_context),
) -> DailyReportResponse:
    summary = ctx.reports.daily_summary(day or ctx.attendance.today())
    return DailyReportResponse(
        date=summary.date,
        total_students=summary.total_students,
        present=summary.present,
        late=summary.late,
        absent=summary.absent,
        attendance_rate=summary.attendance_rate,
    )
