from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mockcrm.context import get_correlation_id
from mockcrm.core.config import get_settings
from mockcrm.platform.security.errors import CRMError, Unauthenticated


logger = logging.getLogger("mockcrm.errors")

_BEARER_STRATEGIES = {"local", "remote"}


def _correlation_id(request: Request) -> str | None:
    return get_correlation_id() or getattr(request.state, "correlation_id", None)


def error_envelope(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    correlation_id = _correlation_id(request)
    response_headers = dict(headers or {})
    if correlation_id:
        response_headers["x-correlation-id"] = correlation_id
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            {
                "code": code,
                "message": message,
                "details": details,
                "correlation_id": correlation_id,
            }
        ),
        headers=response_headers,
    )


async def crm_error_handler(request: Request, exc: CRMError) -> JSONResponse:
    if isinstance(exc, Unauthenticated):
        headers: dict[str, str] = {}
        if get_settings().auth_strategy.lower() in _BEARER_STRATEGIES:
            headers["WWW-Authenticate"] = "Bearer"
        # The rejection reason stays in the auth log; every 401 body is identical per subclass.
        return error_envelope(
            request,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.public_message,
            headers=headers,
        )

    return error_envelope(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = "not_found" if exc.status_code == 404 else "http_error"
    return error_envelope(
        request,
        status_code=exc.status_code,
        code=code,
        message=str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_envelope(
        request,
        status_code=400,
        code="validation_error",
        message="Request validation failed",
        details=exc.errors(),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "http.unhandled_exception",
        exc_info=exc,
        extra={"method": request.method, "path": request.url.path, "error": type(exc).__name__},
    )
    return error_envelope(
        request,
        status_code=500,
        code="internal_error",
        message="Internal server error",
    )


def register_error_handlers(app: FastAPI) -> FastAPI:
    app.add_exception_handler(CRMError, crm_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
    return app
