from mockcrm.platform.security.context import Principal, Role
from mockcrm.platform.security.errors import (
    ConflictError,
    CRMError,
    Forbidden,
    InvalidCredentials,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from mockcrm.platform.security.policies import (
    AuthorizationEngine,
    CustomerMutationPolicy,
    Decision,
    DenyReason,
    Operation,
    ResourceKind,
    ResourceStore,
    ScopeFilter,
)
from mockcrm.platform.security.repository import BaseRepository
from mockcrm.platform.security.rls import apply_scope_filter

__all__ = [
    "Principal",
    "Role",
    "CRMError",
    "Unauthenticated",
    "InvalidCredentials",
    "Forbidden",
    "NotFound",
    "ValidationError",
    "ConflictError",
    "AuthorizationEngine",
    "CustomerMutationPolicy",
    "Decision",
    "DenyReason",
    "Operation",
    "ResourceKind",
    "ResourceStore",
    "ScopeFilter",
    "BaseRepository",
    "apply_scope_filter",
]
