from __future__ import annotations

from fastapi import HTTPException, UploadFile

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png"}


async def read_image(image: UploadFile) -> bytes:
    ext = (image.filename or "").rsplit(".", 1)[-1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Image must be jpg, jpeg, or png")
    content = await image.read()
    if not content:
        raise HTTPException(status_code=400, detail="Image is empty")
    return content
