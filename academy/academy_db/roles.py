"""
Global roles, academy membership roles and their permissions.

A user's global role lives on the account. Inside an academy the user acts
with a membership role; a global admin bypasses membership entirely and
acts as "global_admin".
"""

from __future__ import annotations

from enum import Enum


class GlobalRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    COACH = "coach"
    PARENT = "parent"
    KID = "kid"


class MemberRole(str, Enum):
    MANAGER = "manager"
    COACH = "coach"
    PARENT = "parent"
    KID = "kid"


GLOBAL_ADMIN = "global_admin"

ROLE_PERMISSIONS: dict[str, dict[str, bool]] = {
    GLOBAL_ADMIN: {
        "can_manage_users": True,
        "can_manage_academies": True,
        "can_manage_programs": True,
        "can_coach_programs": True,
        "can_view_reports": True,
        "can_view_all_data": True,
    },
    MemberRole.MANAGER.value: {
        "can_manage_users": True,
        "can_manage_academies": False,
        "can_manage_programs": True,
        "can_coach_programs": True,
        "can_view_reports": True,
        "can_view_all_data": False,
    },
    MemberRole.COACH.value: {
        "can_manage_users": False,
        "can_manage_academies": False,
        "can_manage_programs": False,
        "can_coach_programs": True,
        "can_view_reports": True,
        "can_view_all_data": False,
    },
    MemberRole.PARENT.value: {
        "can_manage_users": False,
        "can_manage_academies": False,
        "can_manage_programs": False,
        "can_coach_programs": False,
        "can_view_reports": False,
        "can_view_all_data": False,
    },
    MemberRole.KID.value: {
        "can_manage_users": False,
        "can_manage_academies": False,
        "can_manage_programs": False,
        "can_coach_programs": False,
        "can_view_reports": False,
        "can_view_all_data": False,
    },
}


def has_permission(academy_role: str, permission: str) -> bool:
    """Check a permission for an academy role. Unknown roles have none."""
    return ROLE_PERMISSIONS.get(academy_role, {}).get(permission, False)


def legacy_member_role(global_role: str) -> str:
    """Membership role backfilled for users created before memberships existed."""
    if global_role in (MemberRole.MANAGER.value, MemberRole.PARENT.value, MemberRole.KID.value):
        return global_role
    return MemberRole.COACH.value


def is_admin(global_role: str) -> bool:
    return global_role == GlobalRole.ADMIN.value
