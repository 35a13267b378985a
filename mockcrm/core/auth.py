from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Protocol

from fastapi import Depends
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session
from starlette.requests import Request
from starlette.responses import Response

from mockcrm.core.config import Settings, get_settings
from mockcrm.core.database import get_db
from mockcrm.core.jwks import JwksKeyCache
from mockcrm.core.principals import PrincipalResolver
from mockcrm.core.sessions import create_session, delete_session, lookup_session
from mockcrm.core.tokens import create_access_token, decode_access_token
from mockcrm.crm.repositories import SqlResourceStore
from mockcrm.metrics import observe_authn_failure
from mockcrm.platform.security.context import Principal
from mockcrm.platform.security.errors import Unauthenticated
from mockcrm.platform.security.policies import AuthorizationEngine, CustomerMutationPolicy


logger = logging.getLogger("mockcrm.auth")

REMOTE_TOKEN_ALGORITHM = "RS256"


class Authenticator(Protocol):
    """Produces a principal from an inbound request and manages the artifact lifecycle."""

    strategy: str
    # Whether a password login can hand out this strategy's artifact.
    issues_credentials: bool

    def authenticate(self, request: Request, db: Session) -> Principal:
        ...

    def issue(self, response: Response, db: Session, principal: Principal) -> dict[str, Any]:
        ...

    def revoke(self, request: Request, response: Response, db: Session) -> None:
        ...


def bearer_token(request: Request) -> str:
    header = request.headers.get("authorization")
    if not header:
        raise Unauthenticated("authorization header missing")
    parts = header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        raise Unauthenticated("authorization header malformed")
    return parts[1]


class LocalTokenAuthenticator:
    """HS256 bearer tokens signed with a local shared secret."""

    strategy = "local"
    issues_credentials = True

    def __init__(self, *, secret: str, algorithm: str = "HS256", expire_minutes: int = 60) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._expire_minutes = expire_minutes

    def authenticate(self, request: Request, db: Session) -> Principal:
        user_id = decode_access_token(bearer_token(request), secret=self._secret, algorithm=self._algorithm)
        return PrincipalResolver(db).load(user_id)

    def issue(self, response: Response, db: Session, principal: Principal) -> dict[str, Any]:
        token = create_access_token(
            principal.user_id,
            secret=self._secret,
            algorithm=self._algorithm,
            expire_minutes=self._expire_minutes,
        )
        return {"access_token": token, "token_type": "bearer", "expires_in": self._expire_minutes * 60}

    def revoke(self, request: Request, response: Response, db: Session) -> None:
        # Stateless: the client discards the token.
        return None


class RemoteTokenAuthenticator:
    """RS256 identity-provider tokens verified against the provider's JWKS."""

    strategy = "remote"
    issues_credentials = False

    def __init__(self, *, key_cache: JwksKeyCache, issuer: str, audience: str | None = None) -> None:
        self._key_cache = key_cache
        self._issuer = issuer
        self._audience = audience

    def authenticate(self, request: Request, db: Session) -> Principal:
        token = bearer_token(request)
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise Unauthenticated("token header malformed") from exc

        if header.get("alg") != REMOTE_TOKEN_ALGORITHM:
            raise Unauthenticated("token algorithm not allowed")
        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise Unauthenticated("token key id missing")

        key = self._key_cache.get_key(kid)
        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                key,
                algorithms=[REMOTE_TOKEN_ALGORITHM],
                issuer=self._issuer,
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except ExpiredSignatureError as exc:
            raise Unauthenticated("token expired") from exc
        except JWTError as exc:
            raise Unauthenticated("token invalid") from exc

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise Unauthenticated("token subject missing")
        # Only identity claims are passed on; role and account come from the store.
        identity_claims = {key: claims.get(key) for key in ("name", "email")}
        return PrincipalResolver(db).resolve_external(subject.strip(), identity_claims)

    def issue(self, response: Response, db: Session, principal: Principal) -> dict[str, Any]:
        raise NotImplementedError("identity-provider tokens are issued by the provider")

    def revoke(self, request: Request, response: Response, db: Session) -> None:
        return None


class SessionAuthenticator:
    """Opaque session cookie mapped to a server-side session row."""

    strategy = "session"
    issues_credentials = True

    def __init__(self, *, cookie_name: str, ttl_minutes: int, secure: bool = True) -> None:
        self._cookie_name = cookie_name
        self._ttl_minutes = ttl_minutes
        self._secure = secure

    def authenticate(self, request: Request, db: Session) -> Principal:
        token = request.cookies.get(self._cookie_name)
        if not token:
            raise Unauthenticated("session cookie missing")
        row = lookup_session(db, token)
        if row is None:
            raise Unauthenticated("session unknown or expired")
        return PrincipalResolver(db).load(row.user_id)

    def issue(self, response: Response, db: Session, principal: Principal) -> dict[str, Any]:
        token = create_session(db, principal.user_id, ttl_minutes=self._ttl_minutes)
        response.set_cookie(
            self._cookie_name,
            token,
            max_age=self._ttl_minutes * 60,
            httponly=True,
            samesite="lax",
            secure=self._secure,
        )
        return {}

    def revoke(self, request: Request, response: Response, db: Session) -> None:
        token = request.cookies.get(self._cookie_name)
        if token:
            delete_session(db, token)
        response.delete_cookie(self._cookie_name, httponly=True, samesite="lax", secure=self._secure)


def build_authenticator(settings: Settings) -> Authenticator:
    strategy = settings.auth_strategy.lower()
    if strategy == "local":
        return LocalTokenAuthenticator(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expire_minutes=settings.jwt_access_token_expire_minutes,
        )
    if strategy == "remote":
        jwks_url = settings.resolved_jwks_url
        if not settings.oidc_issuer or not jwks_url:
            raise ValueError("remote auth strategy requires OIDC_ISSUER")
        key_cache = JwksKeyCache(
            jwks_url,
            ttl_seconds=settings.jwks_cache_ttl_seconds,
            max_entries=settings.jwks_cache_max_entries,
            timeout_seconds=settings.jwks_fetch_timeout_seconds,
            min_refresh_interval_seconds=settings.jwks_min_refresh_interval_seconds,
        )
        return RemoteTokenAuthenticator(key_cache=key_cache, issuer=settings.oidc_issuer, audience=settings.oidc_audience)
    if strategy == "session":
        return SessionAuthenticator(
            cookie_name=settings.session_cookie_name,
            ttl_minutes=settings.session_ttl_minutes,
            secure=settings.session_cookie_secure,
        )
    raise ValueError(f"unknown auth strategy: {settings.auth_strategy}")


@lru_cache
def get_authenticator() -> Authenticator:
    return build_authenticator(get_settings())


def get_current_principal(
    request: Request,
    db: Session = Depends(get_db),
    authenticator: Authenticator = Depends(get_authenticator),
) -> Principal:
    try:
        principal = authenticator.authenticate(request, db)
    except Unauthenticated as exc:
        observe_authn_failure(authenticator.strategy)
        logger.info(
            "auth.rejected",
            extra={"auth_strategy": authenticator.strategy, "reason": exc.reason, "path": request.url.path},
        )
        raise

    context = getattr(request.state, "context", None)
    if context is not None:
        context.user_id = principal.user_id
        context.account_id = principal.account_id
    return principal


def build_customer_policy(settings: Settings) -> CustomerMutationPolicy:
    try:
        return CustomerMutationPolicy(settings.customer_mutation_policy.lower())
    except ValueError as exc:
        raise ValueError(f"unknown customer mutation policy: {settings.customer_mutation_policy}") from exc


def get_authorization_engine(db: Session = Depends(get_db)) -> AuthorizationEngine:
    return AuthorizationEngine(SqlResourceStore(db), customer_policy=build_customer_policy(get_settings()))
