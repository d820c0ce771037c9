"""Application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.core.app_state import AppState
from app.core.errors import AutomationError, ErrorCode, TenantNotFoundError
from app.infra.logging_config import LoggingConfig, get_logger
from app.routers import events_router, sync_router, system

logger = get_logger("main")


def create_app(state: Optional[AppState] = None) -> FastAPI:
    settings = get_settings()
    LoggingConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.automation.shutdown()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.automation = state or AppState()

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        missing = [
            ".".join(str(part) for part in e.get("loc", ())[1:])
            for e in errors
            if e.get("type") == "missing"
        ]
        if missing:
            code = ErrorCode.MISSING_FIELD
            message = f"Missing required fields: {', '.join(missing)}"
        else:
            code = ErrorCode.VALIDATION_ERROR
            message = "Request validation failed"
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": {
                    "code": code.value,
                    "message": message,
                    "details": {"errors": jsonable_encoder(errors)},
                },
            },
        )

    @app.exception_handler(AutomationError)
    async def automation_error_handler(
        request: Request, exc: AutomationError
    ) -> JSONResponse:
        status_code = 404 if isinstance(exc, TenantNotFoundError) else 400
        logger.warning("Request failed: path=%s error=%s", request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": exc.to_dict()},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error: path=%s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": {
                    "code": ErrorCode.INTERNAL_ERROR.value,
                    "message": "Internal server error",
                },
            },
        )

    app.include_router(system.router)
    app.include_router(events_router.router)
    app.include_router(sync_router.router)
    return app
