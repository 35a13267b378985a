from __future__ import annotations

from typing import Any, ClassVar

from sqlalchemy import select
from sqlalchemy.orm import InstrumentedAttribute, Session
from sqlalchemy.sql import Select

from mockcrm.platform.security.policies import ResourceKind, ScopeFilter
from mockcrm.platform.security.rls import apply_scope_filter


class BaseRepository:
    """Scoped access to one resource kind.

    Subclasses name the model and the columns carrying account and owner.
    Kinds without a direct account column override ``apply_scope_query``.
    """

    kind: ClassVar[ResourceKind]
    model: ClassVar[type[Any]]
    account_column: ClassVar[InstrumentedAttribute[Any]]
    owner_column: ClassVar[InstrumentedAttribute[Any] | None] = None

    def apply_scope_query(self, query: Select[Any], scope: ScopeFilter) -> Select[Any]:
        return apply_scope_filter(
            query,
            scope,
            account_column=self.account_column,
            owner_column=self.owner_column,
        )

    def fetch_in_account(self, session: Session, resource_id: int, account_id: int) -> Any | None:
        query = select(self.model).where(self.model.id == resource_id)
        return session.scalar(self.apply_scope_query(query, ScopeFilter(account_id=account_id)))

    def list_scoped(self, session: Session, scope: ScopeFilter, *criteria: Any, order_by: tuple[Any, ...] = ()) -> list[Any]:
        query = self.apply_scope_query(select(self.model), scope)
        if criteria:
            query = query.where(*criteria)
        if order_by:
            query = query.order_by(*order_by)
        return list(session.scalars(query).all())

    def exists_in_account(self, session: Session, resource_id: int, account_id: int) -> bool:
        return self.fetch_in_account(session, resource_id, account_id) is not None
