from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from opentelemetry import trace

from mockcrm.metrics import observe_jwks_fetch
from mockcrm.platform.security.errors import Unauthenticated


logger = logging.getLogger("mockcrm.auth")
tracer = trace.get_tracer("mockcrm.auth")


@dataclass(slots=True)
class _CachedKey:
    jwk: dict[str, Any]
    fetched_at: float


class JwksKeyCache:
    """Identity-provider signing keys keyed by ``kid``.

    Entries expire after ``ttl_seconds``; at most ``max_entries`` are kept and
    the oldest inserted is evicted first. Every fetch failure, including a
    timeout, surfaces as ``Unauthenticated`` so verification fails closed.

    The lock guards only the in-memory entries. The HTTP fetch runs outside
    it, at most one at a time, and no more often than once per
    ``min_refresh_interval_seconds``; lookups that miss while a fetch is in
    flight wait for that fetch instead of starting their own.
    """

    def __init__(
        self,
        jwks_url: str,
        *,
        ttl_seconds: float = 600,
        max_entries: int = 5,
        timeout_seconds: float = 5.0,
        min_refresh_interval_seconds: float = 30.0,
        http_client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._jwks_url = jwks_url
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._timeout = httpx.Timeout(timeout_seconds)
        # connect, read and pool phases each get the full timeout.
        self._wait_seconds = timeout_seconds * 3
        self._min_refresh_interval = min_refresh_interval_seconds
        self._client = http_client or httpx.Client()
        self._clock = clock
        self._entries: OrderedDict[str, _CachedKey] = OrderedDict()
        self._lock = threading.Lock()
        self._refresh_done: threading.Event | None = None
        self._last_refresh_at: float | None = None

    def get_key(self, kid: str) -> dict[str, Any]:
        while True:
            with self._lock:
                cached = self._live_entry(kid)
                if cached is not None:
                    return cached.jwk
                in_flight = self._refresh_done
                if in_flight is None:
                    if self._refresh_throttled():
                        raise Unauthenticated("signing key not found")
                    in_flight = self._refresh_done = threading.Event()
                    self._last_refresh_at = self._clock()
                    break

            if not in_flight.wait(self._wait_seconds):
                raise Unauthenticated("signing key fetch timed out")

        try:
            keys = self._fetch()
            with self._lock:
                self._store(keys, kid)
                cached = self._live_entry(kid)
        finally:
            with self._lock:
                self._refresh_done = None
            in_flight.set()

        if cached is None:
            raise Unauthenticated("signing key not found")
        return cached.jwk

    def cached_kids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._last_refresh_at = None

    def _live_entry(self, kid: str) -> _CachedKey | None:
        cached = self._entries.get(kid)
        if cached is None or self._clock() - cached.fetched_at >= self._ttl_seconds:
            return None
        return cached

    def _refresh_throttled(self) -> bool:
        if self._last_refresh_at is None:
            return False
        return self._clock() - self._last_refresh_at < self._min_refresh_interval

    def _fetch(self) -> list[dict[str, Any]]:
        with tracer.start_as_current_span("jwks.fetch"):
            try:
                response = self._client.get(self._jwks_url, timeout=self._timeout)
                response.raise_for_status()
                payload = response.json()
            except httpx.TimeoutException as exc:
                observe_jwks_fetch("timeout")
                logger.warning("jwks.fetch_timeout", extra={"error": str(exc)})
                raise Unauthenticated("signing key fetch timed out") from exc
            except (httpx.HTTPError, ValueError) as exc:
                observe_jwks_fetch("error")
                logger.warning("jwks.fetch_failed", extra={"error": str(exc)})
                raise Unauthenticated("signing key fetch failed") from exc

        keys = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(keys, list):
            observe_jwks_fetch("error")
            raise Unauthenticated("signing key set malformed")
        observe_jwks_fetch("success")
        return [jwk for jwk in keys if isinstance(jwk, dict) and isinstance(jwk.get("kid"), str) and jwk["kid"]]

    def _store(self, keys: list[dict[str, Any]], wanted_kid: str) -> None:
        now = self._clock()
        for kid in [kid for kid, cached in self._entries.items() if now - cached.fetched_at >= self._ttl_seconds]:
            del self._entries[kid]

        # The requested key goes in last so overflow eviction cannot drop it.
        keys.sort(key=lambda jwk: jwk["kid"] == wanted_kid)
        for jwk in keys:
            self._entries.pop(jwk["kid"], None)
            self._entries[jwk["kid"]] = _CachedKey(jwk=jwk, fetched_at=now)

        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
