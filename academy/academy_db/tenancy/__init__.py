"""
Tenant (academy) resolution, the signed selection cookie and membership guards.
"""

from .context import (
    AcademyContext,
    AcademyContextResolver,
    SelectionState,
    TenantDecision,
    TenantSnapshot,
    classify_selection,
    resolve_tenant,
)
from .cookie import cookie_kwargs, sign_academy_id, unsign_academy_id
from .guards import is_user_in_academy, require_user_in_academy, resolve_target_user_academy_id

__all__ = [
    "AcademyContext",
    "AcademyContextResolver",
    "SelectionState",
    "TenantDecision",
    "TenantSnapshot",
    "classify_selection",
    "resolve_tenant",
    "cookie_kwargs",
    "sign_academy_id",
    "unsign_academy_id",
    "is_user_in_academy",
    "require_user_in_academy",
    "resolve_target_user_academy_id",
]
