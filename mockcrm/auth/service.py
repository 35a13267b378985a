from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from starlette.requests import Request
from starlette.responses import Response

from mockcrm import audit
from mockcrm.auth.schemas import AuthResponse, LoginRequest, RegisterRequest, UserProfile
from mockcrm.core.auth import Authenticator
from mockcrm.core.passwords import hash_password
from mockcrm.core.principals import PrincipalResolver, normalize_email, principal_for
from mockcrm.crm.models import User, utcnow
from mockcrm.platform.security import ConflictError, Forbidden, NotFound, Principal, ValidationError


logger = logging.getLogger("mockcrm.auth")


class AuthService:
    entity_type = "auth.user"

    def login(
        self,
        session: Session,
        authenticator: Authenticator,
        response: Response,
        dto: LoginRequest,
    ) -> AuthResponse:
        if not authenticator.issues_credentials:
            raise ValidationError("password login is disabled; sign in through the identity provider")

        principal = PrincipalResolver(session).resolve_local(str(dto.email), dto.password)
        payload = authenticator.issue(response, session, principal)
        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=principal.user_id,
            action="login",
        )
        logger.info(
            "auth.login",
            extra={"auth_strategy": authenticator.strategy, "account_id": principal.account_id, "user_id": principal.user_id},
        )
        return self._respond(session, principal, payload)

    def register(
        self,
        session: Session,
        authenticator: Authenticator,
        response: Response,
        dto: RegisterRequest,
    ) -> AuthResponse:
        """Activate an invited user by setting its password.

        Only a row that is still invited can be claimed; the conditional update
        makes two concurrent registrations for the same invite resolve to one
        winner and one conflict.
        """

        email = normalize_email(str(dto.email))
        user = session.scalar(select(User).where(User.email == email))
        if user is None:
            raise Forbidden("registration requires an invitation from an administrator")
        if user.status != "invited":
            raise ConflictError("a user with this email already exists")

        result = session.execute(
            update(User)
            .where(User.id == user.id, User.password_hash.is_(None), User.external_id.is_(None))
            .values(password_hash=hash_password(dto.password), display_name=dto.name, updated_at=utcnow())
        )
        if result.rowcount != 1:
            session.rollback()
            raise ConflictError("a user with this email already exists")
        session.commit()
        session.refresh(user)

        principal = principal_for(user)
        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=principal.user_id,
            action="activate",
        )
        logger.info("auth.registered", extra={"account_id": principal.account_id, "user_id": principal.user_id})

        payload: dict[str, Any] = {}
        if authenticator.issues_credentials:
            payload = authenticator.issue(response, session, principal)
        return self._respond(session, principal, payload)

    def profile(self, session: Session, principal: Principal) -> UserProfile:
        user = session.get(User, principal.user_id)
        if user is None:
            raise NotFound("user not found")
        return UserProfile.model_validate(user)

    def logout(self, session: Session, authenticator: Authenticator, request: Request, response: Response) -> None:
        authenticator.revoke(request, response, session)

    def _respond(self, session: Session, principal: Principal, payload: dict[str, Any]) -> AuthResponse:
        return AuthResponse(user=self.profile(session, principal), **payload)


auth_service = AuthService()
