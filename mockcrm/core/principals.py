from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mockcrm.core.passwords import verify_password
from mockcrm.crm.models import Account, User
from mockcrm.metrics import observe_principal_provisioned
from mockcrm.platform.security.context import Principal, Role
from mockcrm.platform.security.errors import InvalidCredentials, Unauthenticated


logger = logging.getLogger("mockcrm.provisioning")

_PLACEHOLDER_NAMES = {"", "undefined", "null", "none"}
_FALLBACK_DISPLAY_NAME = "New user"


def principal_for(user: User) -> Principal:
    return Principal(user_id=user.id, account_id=user.account_id, role=Role(user.role))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if value.lower() in _PLACEHOLDER_NAMES:
        return None
    return value


def synthesize_display_name(subject: str, claims: Mapping[str, Any]) -> str:
    """Pick a display name for a first-time identity.

    Prefers the ``name`` claim, then the local part of an email-like subject
    or ``email`` claim, then the subject itself. Placeholder strings such as
    "undefined" never make it through.
    """

    name = _clean(claims.get("name"))
    if name:
        return name

    for candidate in (_clean(subject), _clean(claims.get("email"))):
        if candidate and "@" in candidate:
            local_part = _clean(candidate.split("@", 1)[0])
            if local_part:
                return local_part

    return _clean(subject) or _FALLBACK_DISPLAY_NAME


def _claimed_email(subject: str, claims: Mapping[str, Any]) -> str | None:
    for candidate in (_clean(claims.get("email")), _clean(subject)):
        if candidate and "@" in candidate:
            return normalize_email(candidate)
    return None


class PrincipalResolver:
    """Maps verified identities to principals using the local user store."""

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def load(self, user_id: int) -> Principal:
        user = self._session.get(User, user_id)
        if user is None:
            raise Unauthenticated("user no longer exists")
        return principal_for(user)

    def resolve_local(self, email: str, password: str) -> Principal:
        user = self._session.scalar(select(User).where(User.email == normalize_email(email)))
        if user is None:
            raise InvalidCredentials("unknown email")
        if user.password_hash is None:
            raise InvalidCredentials("user not activated")
        if not verify_password(password, user.password_hash):
            raise InvalidCredentials("password mismatch")
        return principal_for(user)

    def resolve_external(self, subject: str, claims: Mapping[str, Any]) -> Principal:
        """Return the principal for an identity-provider subject, provisioning on first sight.

        A new subject gets its own account and a sales_rep user. Concurrent
        first logins race on the unique ``external_id``; the loser rolls back
        its whole insert (account included) and re-reads the winner's row.
        An email already held by another user fails authentication.
        """

        user = self._find_by_external_id(subject)
        if user is not None:
            return principal_for(user)

        display_name = synthesize_display_name(subject, claims)
        try:
            account = Account(name=f"{display_name}'s Account")
            self._session.add(account)
            self._session.flush()
            user = User(
                account_id=account.id,
                external_id=subject,
                email=_claimed_email(subject, claims),
                display_name=display_name,
                role=Role.SALES_REP.value,
            )
            self._session.add(user)
            self._session.commit()
        except IntegrityError:
            self._session.rollback()
            existing = self._find_by_external_id(subject)
            if existing is None:
                logger.warning("principal.provision_conflict", extra={"reason": "unique constraint other than external_id"})
                raise Unauthenticated("identity conflicts with an existing user")
            return principal_for(existing)

        observe_principal_provisioned()
        logger.info("principal.provisioned", extra={"account_id": user.account_id, "user_id": user.id})
        return principal_for(user)

    def _find_by_external_id(self, subject: str) -> User | None:
        return self._session.scalar(select(User).where(User.external_id == subject))
