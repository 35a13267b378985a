from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from mockcrm.platform.security.errors import Unauthenticated


ACCESS_TOKEN_TYPE = "access"


def create_access_token(user_id: int, *, secret: str, algorithm: str, expire_minutes: int) -> str:
    """Sign an access token whose only identity claim is the local user id."""

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=expire_minutes),
        "type": ACCESS_TOKEN_TYPE,
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(token: str, *, secret: str, algorithm: str) -> int:
    """Verify a locally issued access token and return its user id.

    Raises:
        Unauthenticated: expired, badly signed, malformed or wrong token type.
    """

    try:
        claims: dict[str, Any] = jwt.decode(token, secret, algorithms=[algorithm])
    except ExpiredSignatureError as exc:
        raise Unauthenticated("token expired") from exc
    except JWTError as exc:
        raise Unauthenticated("token invalid") from exc

    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise Unauthenticated("wrong token type")
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise Unauthenticated("token subject invalid") from exc
