from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from mockcrm.api.errors import register_error_handlers
from mockcrm.api.routes import router as api_router
from mockcrm.core.auth import build_customer_policy, get_authenticator
from mockcrm.core.config import get_settings
from mockcrm.logging import configure_logging
from mockcrm.middleware.request_context import RequestContextMiddleware
from mockcrm.middleware.request_logging import RequestLoggingMiddleware
from mockcrm.otel import correlation_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("mockcrm.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    # Misconfigured strategies or policies stop the process before it serves traffic.
    authenticator = get_authenticator()
    customer_policy = build_customer_policy(settings)
    logger.info(
        "system.started",
        extra={"auth_strategy": authenticator.strategy, "customer_policy": str(customer_policy)},
    )
    yield


app = FastAPI(title="MockCRM API", version="0.1.0", lifespan=lifespan)
register_error_handlers(app)
app.add_middleware(RequestLoggingMiddleware)
# Outermost, so the access log and every handler see the correlation id.
app.add_middleware(RequestContextMiddleware)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel("mockcrm-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=correlation_request_hook)
