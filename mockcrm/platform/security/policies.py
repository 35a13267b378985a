from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from opentelemetry import trace

from mockcrm.metrics import observe_authz_decision
from mockcrm.platform.security.context import Principal
from mockcrm.platform.security.errors import Forbidden, NotFound


logger = logging.getLogger("mockcrm.authz")
tracer = trace.get_tracer("mockcrm.authz")


class Operation(StrEnum):
    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ResourceKind(StrEnum):
    DEAL = "deal"
    CUSTOMER = "customer"
    TASK = "task"
    STAGE = "stage"
    USER = "user"


class DenyReason(StrEnum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


class CustomerMutationPolicy(StrEnum):
    ADMIN_ONLY = "admin_only"
    ACCOUNT_MEMBERS = "account_members"


@dataclass(frozen=True, slots=True)
class ScopeFilter:
    """Predicate restricting a collection query to visible rows."""

    account_id: int
    owner_user_id: int | None = None


@dataclass(frozen=True, slots=True)
class Decision:
    allowed: bool
    reason: DenyReason | None = None
    message: str | None = None
    scope: ScopeFilter | None = None
    # Row loaded for the account/ownership check, reused by the caller.
    record: Any = None

    @classmethod
    def allow(cls, *, record: Any = None, scope: ScopeFilter | None = None) -> Decision:
        return cls(allowed=True, record=record, scope=scope)

    @classmethod
    def deny(cls, reason: DenyReason, message: str) -> Decision:
        return cls(allowed=False, reason=reason, message=message)

    def raise_for_deny(self) -> None:
        if self.allowed:
            return
        if self.reason == DenyReason.NOT_FOUND:
            raise NotFound(self.message or "not found")
        raise Forbidden(self.message or "forbidden")


class ResourceStore(Protocol):
    """Data-store lookups the engine needs for account and ownership checks."""

    def fetch(self, kind: ResourceKind, resource_id: int, account_id: int) -> Any | None:
        """Return the row with ``resource_id`` inside ``account_id``, or None."""
        ...


_OWNED_KINDS = {ResourceKind.DEAL, ResourceKind.TASK}
_ADMIN_MANAGED_KINDS = {ResourceKind.STAGE, ResourceKind.USER}


class AuthorizationEngine:
    """Decides whether a principal may perform an operation on a resource.

    Precedence: account scope, then admin bypass, then the per-kind ownership
    rule for sales reps. Cross-account ids are reported as not found so that
    other tenants' rows cannot be enumerated.
    """

    def __init__(
        self,
        store: ResourceStore,
        *,
        customer_policy: CustomerMutationPolicy = CustomerMutationPolicy.ADMIN_ONLY,
    ) -> None:
        self._store = store
        self._customer_policy = customer_policy

    def authorize(
        self,
        principal: Principal,
        operation: Operation,
        kind: ResourceKind,
        resource_id: int | None = None,
        *,
        parent_id: int | None = None,
    ) -> Decision:
        with tracer.start_as_current_span("authz.authorize") as span:
            span.set_attribute("authz.resource", kind.value)
            span.set_attribute("authz.operation", operation.value)
            decision = self._evaluate(principal, operation, kind, resource_id, parent_id)
            span.set_attribute("authz.allowed", decision.allowed)

        outcome = "allow" if decision.allowed else str(decision.reason)
        observe_authz_decision(resource=kind.value, operation=operation.value, decision=outcome)
        if not decision.allowed:
            logger.info(
                "authz.denied",
                extra={
                    "account_id": principal.account_id,
                    "user_id": principal.user_id,
                    "resource": kind.value,
                    "resource_id": resource_id if resource_id is not None else parent_id,
                    "operation": operation.value,
                    "decision": outcome,
                },
            )
        return decision

    def _evaluate(
        self,
        principal: Principal,
        operation: Operation,
        kind: ResourceKind,
        resource_id: int | None,
        parent_id: int | None,
    ) -> Decision:
        if operation == Operation.LIST:
            return self._authorize_list(principal, kind)
        if operation == Operation.CREATE:
            return self._authorize_create(principal, kind, parent_id)

        if resource_id is None:
            raise ValueError(f"{operation} on {kind} requires a resource id")

        record = self._store.fetch(kind, resource_id, principal.account_id)
        if record is None:
            return Decision.deny(DenyReason.NOT_FOUND, f"{kind} not found")

        if kind == ResourceKind.USER and operation == Operation.DELETE and record.id == principal.user_id:
            return Decision.deny(DenyReason.FORBIDDEN, "cannot delete your own user")

        if principal.is_admin:
            return Decision.allow(record=record)
        return self._authorize_member(principal, operation, kind, record)

    def _authorize_list(self, principal: Principal, kind: ResourceKind) -> Decision:
        if principal.is_admin:
            return Decision.allow(scope=ScopeFilter(account_id=principal.account_id))
        if kind in _OWNED_KINDS:
            return Decision.allow(scope=ScopeFilter(account_id=principal.account_id, owner_user_id=principal.user_id))
        if kind == ResourceKind.CUSTOMER:
            return Decision.allow(scope=ScopeFilter(account_id=principal.account_id))
        return Decision.deny(DenyReason.FORBIDDEN, "admin access required")

    def _authorize_create(self, principal: Principal, kind: ResourceKind, parent_id: int | None) -> Decision:
        if kind == ResourceKind.TASK:
            if parent_id is None:
                raise ValueError("task creation requires the parent deal id")
            deal = self._store.fetch(ResourceKind.DEAL, parent_id, principal.account_id)
            if deal is None:
                return Decision.deny(DenyReason.NOT_FOUND, "deal not found")
            return Decision.allow(record=deal)

        if principal.is_admin or kind == ResourceKind.DEAL:
            return Decision.allow()
        return Decision.deny(DenyReason.FORBIDDEN, "admin access required")

    def _authorize_member(
        self,
        principal: Principal,
        operation: Operation,
        kind: ResourceKind,
        record: Any,
    ) -> Decision:
        if kind in _ADMIN_MANAGED_KINDS or operation == Operation.DELETE:
            return Decision.deny(DenyReason.FORBIDDEN, "admin access required")

        if kind in _OWNED_KINDS:
            if record.user_id == principal.user_id:
                return Decision.allow(record=record)
            return Decision.deny(DenyReason.FORBIDDEN, f"access denied to this {kind}")

        # Customers belong to the account rather than to a user.
        if operation == Operation.READ:
            return Decision.allow(record=record)
        if operation == Operation.UPDATE and self._customer_policy == CustomerMutationPolicy.ACCOUNT_MEMBERS:
            return Decision.allow(record=record)
        return Decision.deny(DenyReason.FORBIDDEN, "admin access required")
