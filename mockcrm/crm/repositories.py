from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from mockcrm.crm.models import Customer, Deal, Stage, Task, User
from mockcrm.platform.security.policies import ResourceKind, ScopeFilter
from mockcrm.platform.security.repository import BaseRepository
from mockcrm.platform.security.rls import apply_scope_filter


class DealRepository(BaseRepository):
    kind = ResourceKind.DEAL
    model = Deal
    account_column = Deal.account_id
    owner_column = Deal.user_id


class CustomerRepository(BaseRepository):
    kind = ResourceKind.CUSTOMER
    model = Customer
    account_column = Customer.account_id


class TaskRepository(BaseRepository):
    kind = ResourceKind.TASK
    model = Task
    account_column = Deal.account_id
    owner_column = Task.user_id

    def apply_scope_query(self, query: Select[Any], scope: ScopeFilter) -> Select[Any]:
        joined = query.join(Deal, Task.deal_id == Deal.id)
        return apply_scope_filter(joined, scope, account_column=Deal.account_id, owner_column=Task.user_id)


class StageRepository(BaseRepository):
    kind = ResourceKind.STAGE
    model = Stage
    account_column = Stage.account_id


class UserRepository(BaseRepository):
    kind = ResourceKind.USER
    model = User
    account_column = User.account_id


deal_repository = DealRepository()
customer_repository = CustomerRepository()
task_repository = TaskRepository()
stage_repository = StageRepository()
user_repository = UserRepository()

_REPOSITORIES: dict[ResourceKind, BaseRepository] = {
    repository.kind: repository
    for repository in (deal_repository, customer_repository, task_repository, stage_repository, user_repository)
}


class SqlResourceStore:
    """ResourceStore backed by the request's SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def fetch(self, kind: ResourceKind, resource_id: int, account_id: int) -> Any | None:
        return _REPOSITORIES[kind].fetch_in_account(self._session, resource_id, account_id)
