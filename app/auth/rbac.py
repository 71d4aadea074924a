"""
Declarative route policies and tenant-scoping rules.

Each router declares one ``RoutePolicy`` (allowed roles + scope mode) and all
role checks go through ``evaluate_policy``. Tenant scoping is applied by the
managers through the ``resolve_list_scope`` / ``ensure_*_scope`` helpers, which
only ever restrict schooladmin identities.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, Optional
from uuid import UUID

from fastapi import Depends

from app.auth.dependencies import get_current_user
from app.auth.schemas import IdentityContext
from app.core.enums import UserRole
from app.core.exceptions import Forbidden

logger = logging.getLogger(__name__)

SCOPE_MISMATCH_MESSAGE = "Forbidden: scope mismatch"


class ScopeMode(str, Enum):
    UNSCOPED = "unscoped"
    TENANT = "tenant"


@dataclass(frozen=True)
class RoutePolicy:
    name: str
    roles: FrozenSet[UserRole]
    scope: ScopeMode = ScopeMode.UNSCOPED


ALL_ROLES = frozenset(UserRole)

AUTHENTICATED = RoutePolicy("authenticated", ALL_ROLES)
SUPERADMIN_ONLY = RoutePolicy("superadmin_only", frozenset({UserRole.SUPERADMIN}))
SCHOOLS = RoutePolicy("schools", frozenset({UserRole.SUPERADMIN}))
CLASSROOMS = RoutePolicy(
    "classrooms",
    frozenset({UserRole.SCHOOLADMIN, UserRole.SUPERADMIN}),
    ScopeMode.TENANT,
)
STUDENTS = RoutePolicy(
    "students",
    frozenset({UserRole.SCHOOLADMIN, UserRole.SUPERADMIN}),
    ScopeMode.TENANT,
)


def evaluate_policy(policy: RoutePolicy, identity: IdentityContext) -> None:
    """Raise Forbidden unless the identity's role is allowed by the policy."""
    if identity.role not in policy.roles:
        logger.warning(
            "Permission denied: user %s with role %s on policy %s",
            identity.user_id,
            identity.role.value,
            policy.name,
        )
        raise Forbidden()


def require_policy(policy: RoutePolicy) -> Callable:
    """
    Dependency factory enforcing a route policy and returning the identity.

    Example:
        identity: IdentityContext = Depends(require_policy(CLASSROOMS))
    """

    async def _checker(identity: IdentityContext = Depends(get_current_user)) -> IdentityContext:
        evaluate_policy(policy, identity)
        return identity

    return _checker


def _is_scoped(identity: IdentityContext) -> bool:
    return identity.role == UserRole.SCHOOLADMIN


def resolve_list_scope(identity: IdentityContext, requested_school_id: Optional[UUID]) -> Optional[UUID]:
    """School a list query runs against. schooladmin always gets their own school; the query value is ignored."""
    if _is_scoped(identity):
        return identity.school_id
    return requested_school_id


def ensure_payload_scope(identity: IdentityContext, school_id: Optional[UUID]) -> None:
    """Reject a schooladmin write whose payload names another school."""
    if _is_scoped(identity) and school_id is not None and school_id != identity.school_id:
        logger.warning("Scope mismatch: user %s wrote to school %s", identity.user_id, school_id)
        raise Forbidden(SCOPE_MISMATCH_MESSAGE)


def ensure_record_scope(identity: IdentityContext, record_school_id: UUID) -> None:
    """Reject a schooladmin touching a record that belongs to another school."""
    if _is_scoped(identity) and record_school_id != identity.school_id:
        raise Forbidden()
