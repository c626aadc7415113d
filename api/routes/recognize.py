# api/routes/recognize.py
from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from api.context import AppContext, get_context
from api.models.schemas import AttendanceRecordModel, VerifyResponse
from api.uploads import read_image

router = APIRouter()


@router.post("/verify", response_model=VerifyResponse)
async def verify(
    image: UploadFile = File(...),
    ctx: AppContext = Depends(get_context),
) -> VerifyResponse:
    content = await read_image(image)
    result = await ctx.attendance.verify(content)
    return VerifyResponse(
        decision=result.decision,
        state=result.state.value,
        student_id=result.student_id,
        confidence=result.confidence,
        distance=result.distance,
        already_marked=result.already_marked,
        record=AttendanceRecordModel.from_record(result.record) if result.record else None,
        reason=result.reason,
        candidates=result.candidates,
    )
