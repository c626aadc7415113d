from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from configs.logging_config import setup_logging
from configs.settings import Settings
from core.errors import (
    AmbiguousMatch,
    AttendanceError,
    DimensionMismatch,
    ExtractionError,
    NotFound,
    StorageUnavailable,
    ValidationError,
)

from .context import AppContext, build_context, get_context
from .models.schemas import HealthResponse
from .routes import logs, recognize, register, users

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ExtractionError: 422,
    DimensionMismatch: 422,
    ValidationError: 400,
    AmbiguousMatch: 409,
    NotFound: 404,
    StorageUnavailable: 503,
}


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the API. Without a context one is created from the environment at
    startup and closed at shutdown; a supplied context stays owned by the caller.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if context is not None:
            yield
            return
        settings = Settings.from_env()
        setup_logging(settings.log_level, settings.log_file)
        app.state.context = build_context(settings)
        try:
            yield
        finally:
            app.state.context.close()
            logger.info("Storage flushed, shutting down")

    app = FastAPI(
        title="Face Attendance API",
        version="1.0.0",
        description="Face enrollment and attendance verification service.",
        lifespan=lifespan,
    )
    if context is not None:
        app.state.context = context

    @app.exception_handler(AttendanceError)
    async def attendance_error_handler(request: Request, exc: AttendanceError) -> JSONResponse:
        status_code = next(
            (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
            500,
        )
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.get("/health", response_model=HealthResponse)
    def health(ctx: AppContext = Depends(get_context)) -> HealthResponse:
        """
        Return system status and uptime, and how many students can be matched.
        """
        uptime = (datetime.now(timezone.utc) - ctx.startup_time).total_seconds()
        return HealthResponse(
            status="ok",
            uptime_seconds=uptime,
            storage_type=ctx.settings.storage_type,
            known_students=len(ctx.enrollment.list_students()),
        )

    app.include_router(register.router, prefix="", tags=["enrollment"])
    app.include_router(users.router, prefix="", tags=["students"])
    app.include_router(recognize.router, prefix="", tags=["verification"])
    app.include_router(logs.router, prefix="", tags=["attendance"])
    return app


app = create_app()
