from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mockcrm import audit
from mockcrm.admin.schemas import StageCreate, StageRead, StageUpdate, UserInvite, UserRead, UserUpdate
from mockcrm.auth.models import AuthSession
from mockcrm.core.principals import normalize_email
from mockcrm.crm.models import Deal, Stage, Task, User
from mockcrm.crm.repositories import stage_repository, user_repository
from mockcrm.crm.service import changes_from
from mockcrm.platform.security import (
    AuthorizationEngine,
    ConflictError,
    Operation,
    Principal,
    ResourceKind,
    ValidationError,
)


class StageService:
    entity_type = "admin.stage"

    def list_stages(self, session: Session, principal: Principal, authz: AuthorizationEngine) -> list[StageRead]:
        decision = authz.authorize(principal, Operation.LIST, ResourceKind.STAGE)
        decision.raise_for_deny()
        stages = stage_repository.list_scoped(
            session,
            decision.scope,
            order_by=(Stage.order_index.asc(), Stage.id.asc()),
        )
        return [StageRead.model_validate(stage) for stage in stages]

    def create_stage(self, session: Session, principal: Principal, authz: AuthorizationEngine, dto: StageCreate) -> StageRead:
        authz.authorize(principal, Operation.CREATE, ResourceKind.STAGE).raise_for_deny()

        self._ensure_name_free(session, principal.account_id, dto.name)
        stage = Stage(
            account_id=principal.account_id,
            name=dto.name,
            description=dto.description,
            order_index=dto.order_index,
        )
        session.add(stage)
        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            raise ConflictError(f"stage '{dto.name}' already exists")

        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=stage.id,
            action="create",
            after=StageRead.model_validate(stage).model_dump(mode="json"),
        )
        session.commit()
        session.refresh(stage)
        return StageRead.model_validate(stage)

    def update_stage(
        self,
        session: Session,
        principal: Principal,
        authz: AuthorizationEngine,
        stage_id: int,
        dto: StageUpdate,
    ) -> StageRead:
        decision = authz.authorize(principal, Operation.UPDATE, ResourceKind.STAGE, stage_id)
        decision.raise_for_deny()
        stage: Stage = decision.record
        before = StageRead.model_validate(stage).model_dump(mode="json")

        values = changes_from(dto, required=("name", "order_index"))
        if "name" in values and values["name"] != stage.name:
            self._ensure_name_free(session, principal.account_id, values["name"])
        for field, value in values.items():
            setattr(stage, field, value)
        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            raise ConflictError(f"stage '{values.get('name')}' already exists")

        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=stage.id,
            action="update",
            before=before,
            after=StageRead.model_validate(stage).model_dump(mode="json"),
        )
        session.commit()
        session.refresh(stage)
        return StageRead.model_validate(stage)

    def delete_stage(self, session: Session, principal: Principal, authz: AuthorizationEngine, stage_id: int) -> None:
        decision = authz.authorize(principal, Operation.DELETE, ResourceKind.STAGE, stage_id)
        decision.raise_for_deny()
        stage: Stage = decision.record

        in_use = session.scalar(select(Deal.id).where(Deal.stage_id == stage.id).limit(1))
        if in_use is not None:
            raise ConflictError("stage is in use by deals")

        before = StageRead.model_validate(stage).model_dump(mode="json")
        session.delete(stage)
        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=stage_id,
            action="delete",
            before=before,
        )
        session.commit()

    def _ensure_name_free(self, session: Session, account_id: int, name: str) -> None:
        existing = session.scalar(select(Stage.id).where(Stage.account_id == account_id, Stage.name == name))
        if existing is not None:
            raise ConflictError(f"stage '{name}' already exists")


class UserAdminService:
    entity_type = "admin.user"

    def list_users(self, session: Session, principal: Principal, authz: AuthorizationEngine) -> list[UserRead]:
        decision = authz.authorize(principal, Operation.LIST, ResourceKind.USER)
        decision.raise_for_deny()
        users = user_repository.list_scoped(session, decision.scope, order_by=(User.id.asc(),))
        return [UserRead.model_validate(user) for user in users]

    def invite_user(self, session: Session, principal: Principal, authz: AuthorizationEngine, dto: UserInvite) -> UserRead:
        """Create an invited user in the admin's account; it becomes active on registration."""

        authz.authorize(principal, Operation.CREATE, ResourceKind.USER).raise_for_deny()

        email = normalize_email(str(dto.email))
        self._ensure_email_free(session, email)
        user = User(
            account_id=principal.account_id,
            email=email,
            display_name=dto.display_name,
            role=dto.role,
        )
        session.add(user)
        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            raise ConflictError("a user with this email already exists")

        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=user.id,
            action="invite",
            after=UserRead.model_validate(user).model_dump(mode="json"),
        )
        session.commit()
        session.refresh(user)
        return UserRead.model_validate(user)

    def update_user(
        self,
        session: Session,
        principal: Principal,
        authz: AuthorizationEngine,
        user_id: int,
        dto: UserUpdate,
    ) -> UserRead:
        decision = authz.authorize(principal, Operation.UPDATE, ResourceKind.USER, user_id)
        decision.raise_for_deny()
        user: User = decision.record
        before = UserRead.model_validate(user).model_dump(mode="json")

        values = changes_from(dto, required=("display_name", "role"))
        if "email" in values and values["email"] is None and user.external_id is None:
            # Local users sign in and register by email.
            raise ValidationError("email cannot be null", details={"field": "email"})
        if values.get("email") is not None:
            values["email"] = normalize_email(str(values["email"]))
            if values["email"] != user.email:
                self._ensure_email_free(session, values["email"])
        for field, value in values.items():
            setattr(user, field, value)
        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            raise ConflictError("a user with this email already exists")

        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=user.id,
            action="update",
            before=before,
            after=UserRead.model_validate(user).model_dump(mode="json"),
        )
        session.commit()
        session.refresh(user)
        return UserRead.model_validate(user)

    def delete_user(self, session: Session, principal: Principal, authz: AuthorizationEngine, user_id: int) -> None:
        decision = authz.authorize(principal, Operation.DELETE, ResourceKind.USER, user_id)
        decision.raise_for_deny()
        user: User = decision.record

        owns_deals = session.scalar(select(Deal.id).where(Deal.user_id == user.id).limit(1))
        if owns_deals is not None:
            raise ConflictError("user still owns deals; reassign them first")

        before = UserRead.model_validate(user).model_dump(mode="json")
        session.execute(update(Task).where(Task.user_id == user.id).values(user_id=None))
        session.execute(delete(AuthSession).where(AuthSession.user_id == user.id))
        session.delete(user)
        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=user_id,
            action="delete",
            before=before,
        )
        session.commit()

    def _ensure_email_free(self, session: Session, email: str) -> None:
        existing = session.scalar(select(User.id).where(User.email == email))
        if existing is not None:
            raise ConflictError("a user with this email already exists")


stage_service = StageService()
user_admin_service = UserAdminService()
