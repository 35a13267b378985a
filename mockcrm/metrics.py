from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

authn_failures_total = Counter(
    "authn_failures_total",
    "Rejected authentication attempts by strategy",
    ["strategy"],
)

authz_decisions_total = Counter(
    "authz_decisions_total",
    "Authorization decisions by resource, operation and outcome",
    ["resource", "operation", "decision"],
)

jwks_fetch_total = Counter(
    "jwks_fetch_total",
    "Signing key set fetches by outcome",
    ["outcome"],
)

principal_provisioned_total = Counter(
    "principal_provisioned_total",
    "Accounts and users created on first identity-provider login",
)


_INT_RE = re.compile(r"/\d+\b")


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    route_path = getattr(route, "path_format", None) or getattr(route, "path", None)
    if isinstance(route_path, str) and route_path:
        return route_path
    return _INT_RE.sub("/{id}", request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_authn_failure(strategy: str) -> None:
    authn_failures_total.labels(strategy=strategy).inc()


def observe_authz_decision(resource: str, operation: str, decision: str) -> None:
    authz_decisions_total.labels(resource=resource, operation=operation, decision=decision).inc()


def observe_jwks_fetch(outcome: str) -> None:
    jwks_fetch_total.labels(outcome=outcome).inc()


def observe_principal_provisioned() -> None:
    principal_provisioned_total.inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
