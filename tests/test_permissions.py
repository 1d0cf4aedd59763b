import asyncio
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from kts_office.services.exceptions import PermissionDeniedError
from kts_office.services.mock_store import get_mock_store, reset_mock_store
from kts_office.services.permissions import (
    DEFAULT_PERMISSIONS,
    AdminActor,
    PermissionFlag,
    PermissionService,
    can_perform,
    merge_permissions,
    require,
)


@pytest.fixture(autouse=True)
def _reset_store() -> None:
    reset_mock_store()
    yield
    reset_mock_store()


class MockLatencyClient:
    def __init__(self) -> None:
        self.use_mock_data = True

    async def simulate_latency(self) -> None:
        return None


def _add_admin(user_id: str, role: str = "admin", **flags) -> None:
    store = get_mock_store()
    asyncio.run(store.insert("user_roles", {"user_id": user_id, "role": role}))
    if flags:
        asyncio.run(store.insert("admin_permissions", {"user_id": user_id, **flags}))


@pytest.mark.parametrize("flag", list(PermissionFlag))
def test_super_admin_passes_every_check(flag: PermissionFlag) -> None:
    actor = AdminActor(
        user_id="root",
        is_super_admin=True,
        is_admin=True,
        permissions={item.value: False for item in PermissionFlag},
    )

    assert can_perform(flag, actor) is True


def test_false_flag_is_denied() -> None:
    actor = AdminActor(user_id="a", is_admin=True, permissions={"can_manage_coupons": False})

    assert can_perform(PermissionFlag.MANAGE_COUPONS, actor) is False
    assert can_perform("can_manage_coupons", None) is False
    with pytest.raises(PermissionDeniedError) as excinfo:
        require(PermissionFlag.MANAGE_COUPONS, actor)
    assert excinfo.value.action == "can_manage_coupons"


def test_defaults_allow_viewing_but_not_managing() -> None:
    assert DEFAULT_PERMISSIONS["can_view_appointments"] is True
    assert DEFAULT_PERMISSIONS["can_confirm_appointments"] is True
    assert DEFAULT_PERMISSIONS["can_delete_appointments"] is False
    assert DEFAULT_PERMISSIONS["can_manage_settings"] is False
    assert DEFAULT_PERMISSIONS["can_view_api_keys"] is False


def test_stored_flags_override_defaults() -> None:
    merged = merge_permissions({"can_manage_coupons": True, "can_view_users": None})

    assert merged["can_manage_coupons"] is True
    assert merged["can_view_users"] is DEFAULT_PERMISSIONS["can_view_users"]


def test_load_actor_reads_roles_and_permissions() -> None:
    _add_admin("usr-admin", can_delete_appointments=True)
    service = PermissionService(MockLatencyClient())

    admin = asyncio.run(service.load_actor("usr-admin"))
    root = asyncio.run(service.load_actor("usr-superadmin"))
    customer = asyncio.run(service.load_actor("usr-customer"))

    assert admin.is_admin and not admin.is_super_admin
    assert admin.permissions["can_delete_appointments"] is True
    assert admin.permissions["can_view_coupons"] is True
    assert root.is_super_admin
    assert customer.is_admin is False
    assert customer.permissions == {}


def test_super_admin_updates_another_admins_flags() -> None:
    _add_admin("usr-admin")
    service = PermissionService(MockLatencyClient())
    root = asyncio.run(service.load_actor("usr-superadmin"))

    updated = asyncio.run(
        service.update_permissions("usr-admin", {"can_manage_blog": True}, root)
    )
    reloaded = asyncio.run(service.load_actor("usr-admin"))

    assert updated.permissions["can_manage_blog"] is True
    assert reloaded.permissions["can_manage_blog"] is True
    assert len(get_mock_store().rows("admin_permissions")) == 1


def test_unknown_flags_are_rejected() -> None:
    _add_admin("usr-admin")
    service = PermissionService(MockLatencyClient())
    root = asyncio.run(service.load_actor("usr-superadmin"))

    with pytest.raises(ValueError):
        asyncio.run(service.update_permissions("usr-admin", {"can_fly": True}, root))


def test_list_admins_includes_profiles() -> None:
    _add_admin("usr-admin")
    service = PermissionService(MockLatencyClient())
    root = asyncio.run(service.load_actor("usr-superadmin"))

    admins = {admin.user_id: admin for admin in asyncio.run(service.list_admins(root))}

    assert set(admins) == {"usr-superadmin", "usr-admin"}
    assert admins["usr-superadmin"].is_super_admin is True
    assert admins["usr-superadmin"].full_name == "Krishna Admin"
