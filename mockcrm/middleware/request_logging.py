from __future__ import annotations

import logging
import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from mockcrm.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("mockcrm.request")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One access log line and one HTTP metrics sample per request."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            _record(request, 500, started, level=logging.ERROR, message="http.error", exc_info=True)
            raise
        _record(request, response.status_code, started)
        return response


def _record(
    request: Request,
    status_code: int,
    started: float,
    *,
    level: int = logging.INFO,
    message: str = "http.request",
    exc_info: bool = False,
) -> None:
    duration = time.perf_counter() - started
    # Resolved after the call so the matched route template is available.
    path = resolve_http_path_label(request)
    observe_http_request(method=request.method, path=path, status=status_code, duration=duration)

    fields: dict[str, Any] = {
        "method": request.method,
        "path": path,
        "status_code": status_code,
        "duration_ms": round(duration * 1000, 2),
    }
    context = getattr(request.state, "context", None)
    if context is not None and context.user_id is not None:
        fields["account_id"] = context.account_id
        fields["user_id"] = context.user_id
    logger.log(level, message, exc_info=exc_info, extra=fields)
