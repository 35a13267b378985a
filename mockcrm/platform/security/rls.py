from __future__ import annotations

from typing import Any

from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql import Select

from mockcrm.platform.security.policies import ScopeFilter


def apply_scope_filter(
    query: Select[Any],
    scope: ScopeFilter,
    *,
    account_column: InstrumentedAttribute[Any],
    owner_column: InstrumentedAttribute[Any] | None = None,
) -> Select[Any]:
    """Restrict a query to the rows a scope filter allows.

    The account predicate is always applied. The owner predicate is applied
    only when the scope carries an owner and the resource has an owner column.
    """

    query = query.where(account_column == scope.account_id)
    if scope.owner_user_id is not None and owner_column is not None:
        query = query.where(owner_column == scope.owner_user_id)
    return query
