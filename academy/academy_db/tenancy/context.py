"""
Academy (tenant) resolution for a request.

Resolution is split in two:
- resolve_tenant() is a pure function of the user, the cookie selection
  and a TenantSnapshot of the lookups it needs. It decides which academy
  to use, with what role, and whether the choice must be persisted.
- AcademyContextResolver gathers the snapshot through repositories, applies
  side effects (seed the default academy, backfill a legacy membership) and
  re-checks membership before returning an AcademyContext.

States of the cookie selection:
    NO_SELECTION                  no (valid) cookie
    SELECTED_VALID                usable as-is
    SELECTED_INVALID_OR_INACTIVE  academy missing or deactivated
    SELECTED_BUT_NOT_MEMBER       non-admin without a membership row

Invariants:
    - A global admin never needs a membership row but always gets exactly
      one academy; there is no "all academies" scope
    - A manager-class user never resolves into an academy where their
      membership role is not "manager" while a managed academy exists
    - Resolution never authenticates; the user is already verified
    - The bootstrap academy is never created on behalf of an admin

How to change safely:
    - Keep resolve_tenant() free of I/O so the rules stay unit-testable
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from ..config import DEFAULT_ACADEMY_ID
from ..errors import AcademyForbiddenError
from ..models import User
from ..repositories import AcademyRepository, MembershipRepository
from ..roles import GLOBAL_ADMIN, GlobalRole, is_admin, legacy_member_role
from ..storage.base import KeyValueStore
from .cookie import unsign_academy_id

logger = logging.getLogger(__name__)


class SelectionState(Enum):
    NO_SELECTION = "no_selection"
    SELECTED_VALID = "selected_valid"
    SELECTED_INVALID_OR_INACTIVE = "selected_invalid_or_inactive"
    SELECTED_BUT_NOT_MEMBER = "selected_but_not_member"


@dataclass(frozen=True)
class TenantSnapshot:
    """Lookups tenant resolution depends on.

    Attributes:
        selected_academy_active: Selected academy exists and is active
        roles_by_academy: User's membership roles, in academy id order
        first_active_academy_id: First active academy (admins only)
        default_academy_id: Bootstrap academy id
    """

    selected_academy_active: bool = False
    roles_by_academy: dict[str, str] = field(default_factory=dict)
    first_active_academy_id: str | None = None
    default_academy_id: str = DEFAULT_ACADEMY_ID


@dataclass(frozen=True)
class TenantDecision:
    """Outcome of resolve_tenant().

    Attributes:
        state: Classified cookie selection
        academy_id: Academy to operate in
        academy_role: Role in that academy, None when a membership must be
            backfilled and re-checked
        persist: Whether academy_id must be written back to the cookie
    """

    state: SelectionState
    academy_id: str
    academy_role: str | None
    persist: bool

    @property
    def needs_backfill(self) -> bool:
        return self.academy_role is None


def classify_selection(user: User, selected_academy_id: str | None, snapshot: TenantSnapshot) -> SelectionState:
    if not selected_academy_id:
        return SelectionState.NO_SELECTION
    if not snapshot.selected_academy_active:
        return SelectionState.SELECTED_INVALID_OR_INACTIVE
    if not is_admin(user.role) and selected_academy_id not in snapshot.roles_by_academy:
        return SelectionState.SELECTED_BUT_NOT_MEMBER
    return SelectionState.SELECTED_VALID


def _pick_default(user: User, snapshot: TenantSnapshot) -> tuple[str, str | None]:
    if is_admin(user.role):
        return snapshot.first_active_academy_id or snapshot.default_academy_id, GLOBAL_ADMIN

    roles = snapshot.roles_by_academy
    academy_id = None
    if user.role == GlobalRole.MANAGER.value:
        academy_id = next((a for a, r in roles.items() if r == "manager"), None)
    if academy_id is None:
        academy_id = next(iter(roles), snapshot.default_academy_id)
    return academy_id, roles.get(academy_id)


def resolve_tenant(user: User, selected_academy_id: str | None, snapshot: TenantSnapshot) -> TenantDecision:
    """Decide the academy a request operates in."""
    state = classify_selection(user, selected_academy_id, snapshot)

    if not selected_academy_id or state == SelectionState.SELECTED_INVALID_OR_INACTIVE:
        academy_id, role = _pick_default(user, snapshot)
        return TenantDecision(state, academy_id, role, persist=True)

    if is_admin(user.role):
        return TenantDecision(state, selected_academy_id, GLOBAL_ADMIN, persist=False)

    if state == SelectionState.SELECTED_BUT_NOT_MEMBER:
        return TenantDecision(state, selected_academy_id, None, persist=False)

    role = snapshot.roles_by_academy[selected_academy_id]
    if user.role == GlobalRole.MANAGER.value and role != "manager":
        academy_id, picked_role = _pick_default(user, snapshot)
        return TenantDecision(state, academy_id, picked_role, persist=academy_id != selected_academy_id)
    return TenantDecision(state, selected_academy_id, role, persist=False)


@dataclass(frozen=True)
class AcademyContext:
    """Resolved academy scope of a request.

    Attributes:
        user: Authenticated user
        academy_id: Academy every tenant-scoped call uses
        academy_role: Membership role, or "global_admin"
        set_cookie: Academy id to persist in the selection cookie, if any
    """

    user: User
    academy_id: str
    academy_role: str
    set_cookie: str | None = None

    @property
    def is_global_admin(self) -> bool:
        return self.academy_role == GLOBAL_ADMIN

    @property
    def is_academy_admin(self) -> bool:
        return self.is_global_admin or self.academy_role == "manager"


class AcademyContextResolver:
    """Resolves AcademyContext from a user and the raw selection cookie."""

    def __init__(
        self,
        store: KeyValueStore,
        cookie_secret: str,
        default_academy_id: str = DEFAULT_ACADEMY_ID,
    ) -> None:
        self.academies = AcademyRepository(store, default_academy_id)
        self.memberships = MembershipRepository(store, default_academy_id)
        self.cookie_secret = cookie_secret
        self.default_academy_id = default_academy_id

    def snapshot(self, user: User, selected_academy_id: str | None) -> TenantSnapshot:
        selected_active = False
        if selected_academy_id:
            academy = self.academies.find(selected_academy_id)
            selected_active = academy is not None and academy.is_active

        return TenantSnapshot(
            selected_academy_active=selected_active,
            roles_by_academy=self.memberships.get_roles_by_academy(user.id),
            first_active_academy_id=self.academies.first_active_id() if is_admin(user.role) else None,
            default_academy_id=self.default_academy_id,
        )

    def _backfill(self, user: User, academy_id: str) -> str | None:
        if is_admin(user.role):
            return GLOBAL_ADMIN
        role = self.memberships.get_role(academy_id, user.id)
        if role is not None:
            return role
        role = legacy_member_role(user.role)
        self.memberships.add(academy_id, user.id, role, created_by="system")
        logger.info(
            f"Backfilled {role} membership for user {user.id}",
            extra={"academy_id": academy_id, "user_id": user.id},
        )
        return self.memberships.get_role(academy_id, user.id)

    def _resolve(self, user: User, cookie_value: str | None) -> AcademyContext | None:
        if not is_admin(user.role):
            self.academies.ensure_default_exists("system")

        selected = unsign_academy_id(cookie_value, self.cookie_secret)
        decision = resolve_tenant(user, selected, self.snapshot(user, selected))

        role = decision.academy_role
        if decision.needs_backfill:
            role = self._backfill(user, decision.academy_id)
            if role is None:
                return None

        logger.debug(
            f"Resolved academy {decision.academy_id} ({decision.state.value})",
            extra={"user_id": user.id, "academy_id": decision.academy_id, "academy_role": role},
        )
        return AcademyContext(
            user=user,
            academy_id=decision.academy_id,
            academy_role=role,
            set_cookie=decision.academy_id if decision.persist else None,
        )

    def resolve(self, user: User, cookie_value: str | None) -> AcademyContext:
        """Resolve the academy context.

        Raises:
            AcademyForbiddenError: If the user has no membership in the
                selected academy even after backfill
        """
        context = self._resolve(user, cookie_value)
        if context is None:
            selected = unsign_academy_id(cookie_value, self.cookie_secret) or ""
            raise AcademyForbiddenError(user.id, selected)
        return context

    def resolve_if_authenticated(self, user: User | None, cookie_value: str | None) -> AcademyContext | None:
        """Like resolve(), but returns None instead of raising."""
        if user is None:
            return None
        return self._resolve(user, cookie_value)
