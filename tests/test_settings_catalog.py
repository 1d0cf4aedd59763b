import asyncio
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from kts_office.clients.query import Filter
from kts_office.schemas.catalog import ServiceCreateRequest, ServiceUpdateRequest
from kts_office.schemas.settings import PaymentGatewayUpdate, SlotConfiguration
from kts_office.services.catalog import CatalogService
from kts_office.services.exceptions import NotFoundError, PermissionDeniedError
from kts_office.services.mock_store import get_mock_store, reset_mock_store
from kts_office.services.permissions import AdminActor
from kts_office.services.settings import SettingsService, mask_secret, slot_labels


SUPER_ADMIN = AdminActor(user_id="usr-superadmin", is_super_admin=True, is_admin=True)
VIEWER = AdminActor(user_id="usr-viewer", is_admin=True, permissions={"can_view_settings": True})


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


def _set_raw(key: str, value: str) -> None:
    asyncio.run(
        get_mock_store().update("site_settings", [Filter("key", "eq", key)], {"value": value})
    )


def test_settings_are_cached_per_instance() -> None:
    service = SettingsService(MockLatencyClient())

    before = asyncio.run(service.get("site_name"))
    _set_raw("site_name", "Renamed")
    cached = asyncio.run(service.get("site_name"))
    fresh = asyncio.run(SettingsService(MockLatencyClient()).get("site_name"))

    assert before == cached == "Krishna Tech Solutions"
    assert fresh == "Renamed"


def test_set_requires_manage_settings_and_refreshes_cache() -> None:
    service = SettingsService(MockLatencyClient())

    with pytest.raises(PermissionDeniedError):
        asyncio.run(service.set("site_name", "Other", VIEWER))
    updated = asyncio.run(service.set("gst_number", "29ABCDE1234F1Z5", SUPER_ADMIN))

    assert updated["gst_number"] == "29ABCDE1234F1Z5"
    assert asyncio.run(service.company_info()).gst == "29ABCDE1234F1Z5"


def test_company_info_falls_back_to_defaults() -> None:
    _set_raw("site_name", "")
    info = asyncio.run(SettingsService(MockLatencyClient()).company_info())

    assert info.name == "Krishna Tech Solutions"
    assert info.phone == "+91 7026292525"


def test_payment_gateway_key_is_masked_for_non_managers() -> None:
    service = SettingsService(MockLatencyClient())
    asyncio.run(
        service.update_payment_gateway(
            PaymentGatewayUpdate(enabled=True, key_id=" rzp_live_ABCD1234 "), SUPER_ADMIN
        )
    )

    masked = asyncio.run(service.payment_gateway(VIEWER))
    clear = asyncio.run(service.payment_gateway(SUPER_ADMIN))

    assert masked.enabled is True
    assert masked.key_id.endswith("1234")
    assert masked.key_id.startswith("*")
    assert clear.key_id == "rzp_live_ABCD1234"
    assert mask_secret("abc") == "***"


def test_slot_labels_fit_inside_working_hours() -> None:
    labels = slot_labels(
        SlotConfiguration(slot_duration_minutes=180, start_time="09:00", end_time="18:00")
    )
    hourly = slot_labels(
        SlotConfiguration(slot_duration_minutes=60, start_time="10:00", end_time="13:30")
    )

    assert labels == ["09:00", "12:00", "15:00"]
    assert hourly == ["10:00", "11:00", "12:00"]


def test_get_many_returns_only_stored_keys() -> None:
    values = asyncio.run(
        SettingsService(MockLatencyClient()).get_many(["site_name", "booking_start_time"])
    )

    assert values == {"site_name": "Krishna Tech Solutions"}


def test_slot_configuration_ignores_unreadable_values() -> None:
    store = get_mock_store()
    for key, value in {
        "booking_slot_duration_minutes": "3h",
        "booking_start_time": "9",
        "booking_end_time": "17:30",
    }.items():
        asyncio.run(store.upsert("site_settings", {"key": key, "value": value}, on_conflict="key"))

    config = asyncio.run(SettingsService(MockLatencyClient()).slot_configuration())

    assert config == SlotConfiguration(end_time="17:30")
    assert slot_labels(config) == ["09:00", "12:00", "15:00"]


def test_booking_popup_settings() -> None:
    popup = asyncio.run(SettingsService(MockLatencyClient()).booking_popup())

    assert popup.enabled is True
    assert popup.button_text == "Book Appointment"


def test_public_catalog_hides_invisible_and_inactive_services() -> None:
    service = CatalogService(MockLatencyClient())
    services = asyncio.run(service.list(visible_only=False))
    asyncio.run(service.toggle_visibility(services[0].id, SUPER_ADMIN))
    asyncio.run(
        service.update(services[1].id, ServiceUpdateRequest(is_active=False), SUPER_ADMIN)
    )

    public = asyncio.run(service.list())
    everything = asyncio.run(service.list(visible_only=False))

    assert len(everything) == 5
    assert [item.name for item in public] == [
        "Computer Repair",
        "Laptop Screen Replacement",
        "Virus Removal",
    ]


def test_create_appends_to_display_order() -> None:
    service = CatalogService(MockLatencyClient())

    created = asyncio.run(
        service.create(ServiceCreateRequest(name="Printer Setup", price=199), SUPER_ADMIN)
    )

    assert created.display_order == 6
    assert asyncio.run(service.list())[-1].name == "Printer Setup"


def test_reorder_rewrites_display_order() -> None:
    service = CatalogService(MockLatencyClient())
    ids = [item.id for item in asyncio.run(service.list(visible_only=False))]

    reordered = asyncio.run(service.reorder(list(reversed(ids)), SUPER_ADMIN))

    assert [item.id for item in reordered] == list(reversed(ids))
    with pytest.raises(NotFoundError):
        asyncio.run(service.reorder(["SVC-99999"], SUPER_ADMIN))


def test_catalog_mutations_require_manage_services() -> None:
    service = CatalogService(MockLatencyClient())

    with pytest.raises(PermissionDeniedError):
        asyncio.run(service.create(ServiceCreateRequest(name="Nope"), VIEWER))
    with pytest.raises(NotFoundError):
        asyncio.run(service.delete("SVC-99999", SUPER_ADMIN))
