"""Admin capability flags and the pre-check gate used before every mutation.

The gate is a convenience for the API layer. Row level policies in the hosted
backend remain the actual authorization boundary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping

from kts_office.clients.query import Filter, Order
from kts_office.schemas.permissions import AdminPermissions, AdminSummary
from kts_office.services.base import BackendService
from kts_office.services.exceptions import NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)


class PermissionFlag(str, Enum):
    VIEW_MESSAGES = "can_view_messages"
    VIEW_APPOINTMENTS = "can_view_appointments"
    CONFIRM_APPOINTMENTS = "can_confirm_appointments"
    DELETE_APPOINTMENTS = "can_delete_appointments"
    VIEW_USERS = "can_view_users"
    MANAGE_USERS = "can_manage_users"
    VIEW_SERVICES = "can_view_services"
    MANAGE_SERVICES = "can_manage_services"
    VIEW_COUPONS = "can_view_coupons"
    MANAGE_COUPONS = "can_manage_coupons"
    VIEW_SETTINGS = "can_view_settings"
    MANAGE_SETTINGS = "can_manage_settings"
    VIEW_INVOICES = "can_view_invoices"
    MANAGE_INVOICES = "can_manage_invoices"
    VIEW_TECHNICIANS = "can_view_technicians"
    MANAGE_TECHNICIANS = "can_manage_technicians"
    VIEW_ANALYTICS = "can_view_analytics"
    EXPORT_DATA = "can_export_data"
    VIEW_API_KEYS = "can_view_api_keys"
    MANAGE_API_KEYS = "can_manage_api_keys"
    VIEW_BOT_SETTINGS = "can_view_bot_settings"
    MANAGE_BOT_SETTINGS = "can_manage_bot_settings"
    VIEW_DELETION_REQUESTS = "can_view_deletion_requests"
    MANAGE_DELETION_REQUESTS = "can_manage_deletion_requests"
    VIEW_BLOG = "can_view_blog"
    MANAGE_BLOG = "can_manage_blog"
    VIEW_BLOG_ADS = "can_view_blog_ads"
    MANAGE_BLOG_ADS = "can_manage_blog_ads"


# Applied when an admin has no stored permission row: viewing is broadly
# allowed, managing is not.
DEFAULT_PERMISSIONS: Dict[str, bool] = {
    flag.value: flag.value.startswith("can_view_") for flag in PermissionFlag
}
DEFAULT_PERMISSIONS.update(
    {
        PermissionFlag.CONFIRM_APPOINTMENTS.value: True,
        PermissionFlag.EXPORT_DATA.value: True,
        PermissionFlag.VIEW_SETTINGS.value: False,
        PermissionFlag.VIEW_API_KEYS.value: False,
    }
)

ADMIN_ROLES = {"admin", "super_admin"}


@dataclass
class AdminActor:
    user_id: str
    is_super_admin: bool = False
    is_admin: bool = False
    permissions: Dict[str, bool] = field(default_factory=dict)


def can_perform(action: PermissionFlag | str, actor: AdminActor | None) -> bool:
    if actor is None:
        return False
    if actor.is_super_admin:
        return True
    flag = action.value if isinstance(action, PermissionFlag) else str(action)
    return bool(actor.permissions.get(flag, False))


def require(action: PermissionFlag | str, actor: AdminActor | None) -> None:
    if can_perform(action, actor):
        return
    flag = action.value if isinstance(action, PermissionFlag) else str(action)
    logger.warning(
        "Permission %s denied for %s", flag, actor.user_id if actor else "anonymous"
    )
    raise PermissionDeniedError(flag)


def require_super_admin(actor: AdminActor | None, action: str) -> None:
    if actor is not None and actor.is_super_admin:
        return
    logger.warning("Super admin action %s denied for %s", action, actor.user_id if actor else "anonymous")
    raise PermissionDeniedError(action)


def merge_permissions(row: Mapping[str, object] | None) -> Dict[str, bool]:
    merged = dict(DEFAULT_PERMISSIONS)
    if row:
        for flag in PermissionFlag:
            value = row.get(flag.value)
            if value is not None:
                merged[flag.value] = bool(value)
    return merged


class PermissionService(BackendService):
    async def load_actor(self, user_id: str) -> AdminActor:
        roles = {
            str(row.get("role"))
            for row in await self._select("user_roles", [Filter("user_id", "eq", user_id)])
        }
        is_super_admin = "super_admin" in roles
        is_admin = bool(roles & ADMIN_ROLES)
        if not is_admin:
            return AdminActor(user_id=user_id, permissions={})

        rows = await self._select(
            "admin_permissions", [Filter("user_id", "eq", user_id)], limit=1
        )
        return AdminActor(
            user_id=user_id,
            is_super_admin=is_super_admin,
            is_admin=True,
            permissions=merge_permissions(rows[0] if rows else None),
        )

    async def list_admins(self, actor: AdminActor) -> List[AdminSummary]:
        require(PermissionFlag.VIEW_USERS, actor)
        role_rows = await self._select(
            "user_roles",
            [Filter("role", "in", sorted(ADMIN_ROLES))],
            order=Order("created_at"),
        )
        summaries: Dict[str, AdminSummary] = {}
        for row in role_rows:
            user_id = str(row["user_id"])
            summary = summaries.setdefault(user_id, AdminSummary(user_id=user_id))
            if row.get("role") == "super_admin":
                summary.is_super_admin = True
        for summary in summaries.values():
            profiles = await self._select(
                "profiles", [Filter("user_id", "eq", summary.user_id)], limit=1
            )
            if profiles:
                summary.full_name = profiles[0].get("full_name")
                summary.email = profiles[0].get("email")
        return list(summaries.values())

    async def get_permissions(self, admin_user_id: str, actor: AdminActor) -> AdminPermissions:
        require(PermissionFlag.VIEW_USERS, actor)
        target = await self.load_actor(admin_user_id)
        if not target.is_admin:
            raise NotFoundError(f"Admin {admin_user_id} not found")
        return AdminPermissions(
            user_id=admin_user_id,
            is_super_admin=target.is_super_admin,
            permissions=target.permissions,
        )

    async def update_permissions(
        self, admin_user_id: str, changes: Mapping[str, bool], actor: AdminActor
    ) -> AdminPermissions:
        require(PermissionFlag.MANAGE_USERS, actor)
        known = {flag.value for flag in PermissionFlag}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown permission flags: {', '.join(sorted(unknown))}")

        current = await self.get_permissions(admin_user_id, actor)
        merged = {**current.permissions, **{key: bool(value) for key, value in changes.items()}}
        logger.info("Updating permissions for admin %s by %s", admin_user_id, actor.user_id)
        await self._upsert(
            "admin_permissions",
            {"user_id": admin_user_id, **merged},
            on_conflict="user_id",
        )
        return AdminPermissions(
            user_id=admin_user_id,
            is_super_admin=current.is_super_admin,
            permissions=merged,
        )
