# api/routes/users.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from api.context import AppContext, get_context
from api.models.schemas import StudentInfo, StudentsResponse

router = APIRouter()


@router.get("/students", response_model=StudentsResponse)
def list_students(
    include_removed: bool = Query(False),
    ctx: AppContext = Depends(get_context),
) -> StudentsResponse:
    students = ctx.enrollment.list_students(include_removed=include_removed)
    return StudentsResponse(students=[StudentInfo.from_student(s) for s in students])


@router.get("/students/{student_id}", response_model=StudentInfo)
def get_student(student_id: str, ctx: AppContext = Depends(get_context)) -> StudentInfo:
    return StudentInfo.from_student(ctx.enrollment.get(student_id))


@router.delete("/students/{student_id}", status_code=204)
def remove_student(student_id: str, ctx: AppContext = Depends(get_context)) -> Response:
    ctx.enrollment.remove(student_id)
    return Response(status_code=204)
