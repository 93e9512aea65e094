"""Membership checks for operations on another user's data."""

from __future__ import annotations

import logging

from ..errors import ActionResult
from ..repositories import MembershipRepository
from ..roles import is_admin

logger = logging.getLogger(__name__)


def is_user_in_academy(memberships: MembershipRepository, academy_id: str, user_id: str) -> bool:
    return memberships.find(academy_id, user_id) is not None


def require_user_in_academy(
    memberships: MembershipRepository, academy_id: str, user_id: str
) -> ActionResult[None]:
    """Fail with NOT_FOUND when user_id has no membership in academy_id."""
    if is_user_in_academy(memberships, academy_id, user_id):
        return ActionResult.ok()
    logger.info(
        "Rejected reference to a user outside the academy",
        extra={"academy_id": academy_id, "user_id": user_id},
    )
    return ActionResult.not_found("User")


def resolve_target_user_academy_id(
    memberships: MembershipRepository,
    viewer_role: str,
    preferred_academy_id: str,
    target_user_id: str,
) -> str | None:
    """Academy to use when viewing another user's pages.

    Non-admins are always pinned to their selected academy. Admins keep the
    selected academy when the target is a member there, otherwise they get
    the target's first academy. None means the target belongs nowhere.
    """
    if not is_admin(viewer_role):
        return preferred_academy_id
    if memberships.find(preferred_academy_id, target_user_id) is not None:
        return preferred_academy_id
    academy_ids = sorted(memberships.list_academy_ids_for_user(target_user_id))
    return academy_ids[0] if academy_ids else None
