# api/routes/register.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from api.context import AppContext, get_context
from api.models.schemas import EnrollResponse
from api.uploads import read_image
from core.models import StudentProfile

router = APIRouter()


@router.post("/enroll", response_model=EnrollResponse)
async def enroll(
    name: str = Form(...),
    roll_number: str = Form(...),
    class_name: str = Form(...),
    student_id: Optional[str] = Form(None),
    image: UploadFile = File(...),
    ctx: AppContext = Depends(get_context),
) -> EnrollResponse:
    content = await read_image(image)
    profile = StudentProfile(name=name, roll_number=roll_number, class_name=class_name)
    result = await ctx.enrollment.enroll(profile, content, student_id=student_id or None)
    return EnrollResponse(student_id=result.student_id, embeddings=result.embeddings)


@router.post("/students/{student_id}/re-enroll", response_model=EnrollResponse)
async def re_enroll(
    student_id: str,
    image: UploadFile = File(...),
    ctx: AppContext = Depends(get_context),
) -> EnrollResponse:
    content = await read_image(image)
    result = await ctx.enrollment.re_enroll(student_id, content)
    return EnrollResponse(student_id=result.student_id, embeddings=result.embeddings)
