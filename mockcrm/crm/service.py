from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from mockcrm import audit
from mockcrm.crm.models import Customer, Deal, Task
from mockcrm.crm.repositories import (
    customer_repository,
    deal_repository,
    stage_repository,
    task_repository,
    user_repository,
)
from mockcrm.crm.schemas import (
    CustomerCreate,
    CustomerRead,
    CustomerUpdate,
    DealCreate,
    DealRead,
    DealUpdate,
    TaskCreate,
    TaskRead,
    TaskUpdate,
)
from mockcrm.platform.security import (
    AuthorizationEngine,
    ConflictError,
    Operation,
    Principal,
    ResourceKind,
    ValidationError,
)
from mockcrm.platform.security.repository import BaseRepository


def changes_from(dto: BaseModel, *, required: tuple[str, ...] = ()) -> dict[str, Any]:
    """Fields the client actually sent; explicit nulls are kept so optional references can be cleared."""

    values = dto.model_dump(exclude_unset=True)
    for field in required:
        if field in values and values[field] is None:
            raise ValidationError(f"{field} cannot be null", details={"field": field})
    return values


def require_in_account(
    session: Session,
    repository: BaseRepository,
    resource_id: int,
    account_id: int,
    *,
    field: str,
) -> None:
    if not repository.exists_in_account(session, resource_id, account_id):
        raise ValidationError(f"{field} does not reference a {repository.kind} in this account", details={"field": field})


class DealService:
    entity_type = "crm.deal"

    def list_deals(
        self,
        session: Session,
        principal: Principal,
        authz: AuthorizationEngine,
        *,
        stage_id: int | None = None,
        outcome: str | None = None,
    ) -> list[DealRead]:
        decision = authz.authorize(principal, Operation.LIST, ResourceKind.DEAL)
        decision.raise_for_deny()

        criteria = []
        if stage_id is not None:
            criteria.append(Deal.stage_id == stage_id)
        if outcome == "open":
            criteria.append(Deal.outcome.is_(None))
        elif outcome is not None:
            criteria.append(Deal.outcome == outcome)

        deals = deal_repository.list_scoped(
            session,
            decision.scope,
            *criteria,
            order_by=(Deal.created_at.desc(), Deal.id.desc()),
        )
        return [DealRead.model_validate(deal) for deal in deals]

    def get_deal(self, session: Session, principal: Principal, authz: AuthorizationEngine, deal_id: int) -> DealRead:
        decision = authz.authorize(principal, Operation.READ, ResourceKind.DEAL, deal_id)
        decision.raise_for_deny()
        return DealRead.model_validate(decision.record)

    def create_deal(self, session: Session, principal: Principal, authz: AuthorizationEngine, dto: DealCreate) -> DealRead:
        authz.authorize(principal, Operation.CREATE, ResourceKind.DEAL).raise_for_deny()

        owner_id = principal.user_id
        if principal.is_admin and dto.user_id is not None:
            require_in_account(session, user_repository, dto.user_id, principal.account_id, field="user_id")
            owner_id = dto.user_id
        self._validate_references(session, principal, dto.customer_id, dto.stage_id)

        deal = Deal(
            account_id=principal.account_id,
            user_id=owner_id,
            customer_id=dto.customer_id,
            stage_id=dto.stage_id,
            name=dto.name,
            amount=dto.amount,
            outcome=dto.outcome,
        )
        session.add(deal)
        session.flush()
        read_model = DealRead.model_validate(deal)
        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=deal.id,
            action="create",
            after=read_model.model_dump(mode="json"),
        )
        session.commit()
        session.refresh(deal)
        return DealRead.model_validate(deal)

    def update_deal(
        self,
        session: Session,
        principal: Principal,
        authz: AuthorizationEngine,
        deal_id: int,
        dto: DealUpdate,
    ) -> DealRead:
        decision = authz.authorize(principal, Operation.UPDATE, ResourceKind.DEAL, deal_id)
        decision.raise_for_deny()
        deal: Deal = decision.record
        before = DealRead.model_validate(deal).model_dump(mode="json")

        if principal.is_admin:
            values = changes_from(dto, required=("name", "amount", "user_id"))
        else:
            values = changes_from(dto, required=("name", "amount"))
            values.pop("user_id", None)
        if "user_id" in values:
            require_in_account(session, user_repository, values["user_id"], principal.account_id, field="user_id")
        self._validate_references(session, principal, values.get("customer_id"), values.get("stage_id"))

        for field, value in values.items():
            setattr(deal, field, value)
        session.flush()

        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=deal.id,
            action="update",
            before=before,
            after=DealRead.model_validate(deal).model_dump(mode="json"),
        )
        session.commit()
        session.refresh(deal)
        return DealRead.model_validate(deal)

    def delete_deal(self, session: Session, principal: Principal, authz: AuthorizationEngine, deal_id: int) -> None:
        decision = authz.authorize(principal, Operation.DELETE, ResourceKind.DEAL, deal_id)
        decision.raise_for_deny()
        deal: Deal = decision.record
        before = DealRead.model_validate(deal).model_dump(mode="json")

        session.execute(delete(Task).where(Task.deal_id == deal.id))
        session.delete(deal)
        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=deal_id,
            action="delete",
            before=before,
        )
        session.commit()

    def _validate_references(
        self,
        session: Session,
        principal: Principal,
        customer_id: int | None,
        stage_id: int | None,
    ) -> None:
        if customer_id is not None:
            require_in_account(session, customer_repository, customer_id, principal.account_id, field="customer_id")
        if stage_id is not None:
            require_in_account(session, stage_repository, stage_id, principal.account_id, field="stage_id")


class CustomerService:
    entity_type = "crm.customer"

    def list_customers(self, session: Session, principal: Principal, authz: AuthorizationEngine) -> list[CustomerRead]:
        decision = authz.authorize(principal, Operation.LIST, ResourceKind.CUSTOMER)
        decision.raise_for_deny()
        customers = customer_repository.list_scoped(
            session,
            decision.scope,
            order_by=(Customer.created_at.desc(), Customer.id.desc()),
        )
        return [CustomerRead.model_validate(customer) for customer in customers]

    def get_customer(
        self,
        session: Session,
        principal: Principal,
        authz: AuthorizationEngine,
        customer_id: int,
    ) -> CustomerRead:
        decision = authz.authorize(principal, Operation.READ, ResourceKind.CUSTOMER, customer_id)
        decision.raise_for_deny()
        return CustomerRead.model_validate(decision.record)

    def create_customer(
        self,
        session: Session,
        principal: Principal,
        authz: AuthorizationEngine,
        dto: CustomerCreate,
    ) -> CustomerRead:
        authz.authorize(principal, Operation.CREATE, ResourceKind.CUSTOMER).raise_for_deny()

        customer = Customer(
            account_id=principal.account_id,
            name=dto.name,
            email=str(dto.email) if dto.email is not None else None,
            phone=dto.phone,
        )
        session.add(customer)
        session.flush()
        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=customer.id,
            action="create",
            after=CustomerRead.model_validate(customer).model_dump(mode="json"),
        )
        session.commit()
        session.refresh(customer)
        return CustomerRead.model_validate(customer)

    def update_customer(
        self,
        session: Session,
        principal: Principal,
        authz: AuthorizationEngine,
        customer_id: int,
        dto: CustomerUpdate,
    ) -> CustomerRead:
        decision = authz.authorize(principal, Operation.UPDATE, ResourceKind.CUSTOMER, customer_id)
        decision.raise_for_deny()
        customer: Customer = decision.record
        before = CustomerRead.model_validate(customer).model_dump(mode="json")

        values = changes_from(dto, required=("name",))
        if values.get("email") is not None:
            values["email"] = str(values["email"])
        for field, value in values.items():
            setattr(customer, field, value)
        session.flush()

        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=customer.id,
            action="update",
            before=before,
            after=CustomerRead.model_validate(customer).model_dump(mode="json"),
        )
        session.commit()
        session.refresh(customer)
        return CustomerRead.model_validate(customer)

    def delete_customer(
        self,
        session: Session,
        principal: Principal,
        authz: AuthorizationEngine,
        customer_id: int,
    ) -> None:
        decision = authz.authorize(principal, Operation.DELETE, ResourceKind.CUSTOMER, customer_id)
        decision.raise_for_deny()
        customer: Customer = decision.record

        in_use = session.scalar(select(Deal.id).where(Deal.customer_id == customer.id).limit(1))
        if in_use is not None:
            raise ConflictError("customer is referenced by deals")

        before = CustomerRead.model_validate(customer).model_dump(mode="json")
        session.delete(customer)
        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=customer_id,
            action="delete",
            before=before,
        )
        session.commit()


class TaskService:
    entity_type = "crm.task"

    def list_tasks(
        self,
        session: Session,
        principal: Principal,
        authz: AuthorizationEngine,
        *,
        status: str | None = None,
        deal_id: int | None = None,
    ) -> list[TaskRead]:
        decision = authz.authorize(principal, Operation.LIST, ResourceKind.TASK)
        decision.raise_for_deny()

        criteria = []
        if status is not None:
            criteria.append(Task.status == status)
        if deal_id is not None:
            criteria.append(Task.deal_id == deal_id)

        tasks = task_repository.list_scoped(
            session,
            decision.scope,
            *criteria,
            # Undated tasks sort after dated ones.
            order_by=(Task.due_date.is_(None), Task.due_date.asc(), Task.created_at.desc(), Task.id.desc()),
        )
        return [TaskRead.model_validate(task) for task in tasks]

    def get_task(self, session: Session, principal: Principal, authz: AuthorizationEngine, task_id: int) -> TaskRead:
        decision = authz.authorize(principal, Operation.READ, ResourceKind.TASK, task_id)
        decision.raise_for_deny()
        return TaskRead.model_validate(decision.record)

    def create_task(self, session: Session, principal: Principal, authz: AuthorizationEngine, dto: TaskCreate) -> TaskRead:
        decision = authz.authorize(principal, Operation.CREATE, ResourceKind.TASK, parent_id=dto.deal_id)
        decision.raise_for_deny()
        deal: Deal = decision.record

        assignee_id = principal.user_id
        if dto.user_id is not None and dto.user_id != principal.user_id:
            require_in_account(session, user_repository, dto.user_id, principal.account_id, field="user_id")
            assignee_id = dto.user_id

        task = Task(
            deal_id=deal.id,
            user_id=assignee_id,
            name=dto.name,
            status=dto.status,
            due_date=dto.due_date,
        )
        session.add(task)
        session.flush()
        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=task.id,
            action="create",
            after=TaskRead.model_validate(task).model_dump(mode="json"),
        )
        session.commit()
        session.refresh(task)
        return TaskRead.model_validate(task)

    def update_task(
        self,
        session: Session,
        principal: Principal,
        authz: AuthorizationEngine,
        task_id: int,
        dto: TaskUpdate,
    ) -> TaskRead:
        decision = authz.authorize(principal, Operation.UPDATE, ResourceKind.TASK, task_id)
        decision.raise_for_deny()
        task: Task = decision.record
        before = TaskRead.model_validate(task).model_dump(mode="json")

        values = changes_from(dto, required=("name", "status"))
        if values.get("user_id") is not None:
            require_in_account(session, user_repository, values["user_id"], principal.account_id, field="user_id")
        for field, value in values.items():
            setattr(task, field, value)
        session.flush()

        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=task.id,
            action="update",
            before=before,
            after=TaskRead.model_validate(task).model_dump(mode="json"),
        )
        session.commit()
        session.refresh(task)
        return TaskRead.model_validate(task)

    def delete_task(self, session: Session, principal: Principal, authz: AuthorizationEngine, task_id: int) -> None:
        decision = authz.authorize(principal, Operation.DELETE, ResourceKind.TASK, task_id)
        decision.raise_for_deny()
        task: Task = decision.record
        before = TaskRead.model_validate(task).model_dump(mode="json")

        session.delete(task)
        audit.record(
            actor_user_id=principal.user_id,
            account_id=principal.account_id,
            entity_type=self.entity_type,
            entity_id=task_id,
            action="delete",
            before=before,
        )
        session.commit()


deal_service = DealService()
customer_service = CustomerService()
task_service = TaskService()
