from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from mockcrm.context import bound_correlation_id


CORRELATION_HEADER = "x-correlation-id"
REQUEST_ID_HEADER = "x-request-id"
_MAX_CORRELATION_ID_LENGTH = 128


@dataclass
class RequestContext:
    correlation_id: str
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    # Filled in by get_current_principal once the request is authenticated.
    user_id: int | None = None
    account_id: int | None = None


def inbound_correlation_id(request: Request) -> str:
    value = request.headers.get(CORRELATION_HEADER, "").strip()
    if value and len(value) <= _MAX_CORRELATION_ID_LENGTH:
        return value
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach a ``RequestContext`` to ``request.state`` and echo its ids on the response."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        context = RequestContext(correlation_id=inbound_correlation_id(request))
        request.state.context = context
        request.state.correlation_id = context.correlation_id

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", context.correlation_id)

        with bound_correlation_id(context.correlation_id):
            response = await call_next(request)

        response.headers[CORRELATION_HEADER] = context.correlation_id
        response.headers[REQUEST_ID_HEADER] = context.request_id
        return response
