from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from mockcrm.auth.models import AuthSession


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def create_session(db: Session, user_id: int, *, ttl_minutes: int) -> str:
    """Persist a new session for ``user_id`` and return the opaque cookie value."""

    token = secrets.token_urlsafe(32)
    now = datetime.now(timezone.utc)
    db.add(
        AuthSession(
            id_hash=_digest(token),
            user_id=user_id,
            created_at=now,
            expires_at=now + timedelta(minutes=ttl_minutes),
        )
    )
    db.commit()
    return token


def lookup_session(db: Session, token: str) -> AuthSession | None:
    row = db.scalar(select(AuthSession).where(AuthSession.id_hash == _digest(token)))
    if row is None:
        return None
    if _as_utc(row.expires_at) <= datetime.now(timezone.utc):
        db.delete(row)
        db.commit()
        return None
    return row


def delete_session(db: Session, token: str) -> None:
    db.execute(delete(AuthSession).where(AuthSession.id_hash == _digest(token)))
    db.commit()
