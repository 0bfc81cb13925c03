"""FastAPI application factory."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.v1 import router as api_router
from core.config import get_settings
from core.errors import AuthError, ErrorKind, ErrorResponse

logger = logging.getLogger(__name__)


async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
    if exc.kind is ErrorKind.CONFIGURATION:
        logger.error(
            "Configuration error",
            extra={"path": request.url.path, "detail": exc.message},
        )
    else:
        logger.warning(
            "Request rejected",
            extra={"path": request.url.path, "kind": exc.kind.value},
        )

    body = exc.to_response()
    headers: dict[str, str] = {}
    if exc.kind is ErrorKind.TOO_MANY_REQUESTS:
        headers["Retry-After"] = str(body.errors["retryAfter"])
    return JSONResponse(body.model_dump(), status_code=exc.status_code, headers=headers)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    field_errors: dict[str, str] = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = location[-1] if location else "body"
        field_errors.setdefault(field, str(error.get("msg", "Invalid value")))

    logger.warning(
        "Request validation failed",
        extra={"path": request.url.path, "fields": sorted(field_errors)},
    )
    body = ErrorResponse(
        code=ErrorKind.BAD_REQUEST.value,
        message="Validation failed",
        errors={"fieldErrors": field_errors},
    )
    return JSONResponse(body.model_dump(), status_code=ErrorKind.BAD_REQUEST.status_code)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    application = FastAPI(title="authcore")
    application.add_exception_handler(AuthError, handle_auth_error)  # type: ignore[arg-type]
    application.add_exception_handler(RequestValidationError, handle_validation_error)  # type: ignore[arg-type]
    application.include_router(api_router)
    return application


app = create_app()
