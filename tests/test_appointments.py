import asyncio
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from kts_office.schemas.appointment import AppointmentListRequest, AppointmentStatus
from kts_office.services.appointment import (
    AppointmentService,
    DeletionRequestService,
    can_transition,
)
from kts_office.services.exceptions import InvalidTransitionError, PermissionDeniedError
from kts_office.services.mock_store import get_mock_store, reset_mock_store
from kts_office.services.permissions import AdminActor, DEFAULT_PERMISSIONS


SUPER_ADMIN = AdminActor(user_id="usr-superadmin", is_super_admin=True, is_admin=True)
ADMIN = AdminActor(user_id="usr-admin", is_admin=True, permissions=dict(DEFAULT_PERMISSIONS))


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


def _appointment(status: str = "pending", **overrides):
    record = {
        "reference_id": "KTS-20261019-AB12",
        "appointment_date": "2026-10-20",
        "appointment_time": "09:00:00",
        "status": status,
        "guest_name": "Asha Rao",
        "guest_email": "asha@example.com",
    }
    record.update(overrides)
    return asyncio.run(get_mock_store().insert("appointments", record))


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        ("pending", "confirmed", True),
        ("pending", "cancelled", True),
        ("pending", "completed", False),
        ("confirmed", "completed", True),
        ("confirmed", "cancelled", True),
        ("confirmed", "pending", False),
        ("completed", "cancelled", False),
        ("cancelled", "confirmed", False),
    ],
)
def test_transition_table(current: str, target: str, allowed: bool) -> None:
    assert can_transition(current, target) is allowed


def test_admin_confirms_then_completes() -> None:
    row = _appointment()
    service = AppointmentService(MockLatencyClient())

    confirmed = asyncio.run(service.update_status(row["id"], AppointmentStatus.CONFIRMED, ADMIN))
    completed = asyncio.run(service.update_status(row["id"], AppointmentStatus.COMPLETED, ADMIN))

    assert confirmed.status == AppointmentStatus.CONFIRMED
    assert completed.status == AppointmentStatus.COMPLETED
    with pytest.raises(InvalidTransitionError):
        asyncio.run(service.update_status(row["id"], AppointmentStatus.CANCELLED, ADMIN))


def test_status_change_needs_confirm_permission() -> None:
    row = _appointment()
    service = AppointmentService(MockLatencyClient())
    restricted = AdminActor(
        user_id="usr-ro", is_admin=True, permissions={"can_confirm_appointments": False}
    )

    with pytest.raises(PermissionDeniedError):
        asyncio.run(service.update_status(row["id"], AppointmentStatus.CONFIRMED, restricted))
    assert get_mock_store().rows("appointments")[0]["status"] == "pending"


def test_owner_can_cancel_but_others_cannot() -> None:
    row = _appointment(user_id="usr-customer")
    service = AppointmentService(MockLatencyClient())

    with pytest.raises(PermissionDeniedError):
        asyncio.run(service.cancel_own(row["id"], "usr-stranger"))

    cancelled = asyncio.run(service.cancel_own(row["id"], "usr-customer"))
    assert cancelled.status == AppointmentStatus.CANCELLED


def test_list_filters_by_status_and_search() -> None:
    _appointment()
    _appointment(
        status="confirmed",
        reference_id="KTS-20261019-ZZ99",
        guest_name="Ravi",
        guest_email="ravi@example.com",
    )
    service = AppointmentService(MockLatencyClient())

    by_status = asyncio.run(
        service.list(AppointmentListRequest(status=AppointmentStatus.CONFIRMED), ADMIN)
    )
    by_search = asyncio.run(service.list(AppointmentListRequest(search="asha"), ADMIN))

    assert [item.guest_name for item in by_status.items] == ["Ravi"]
    assert by_search.total == 1
    assert by_search.items[0].reference_id == "KTS-20261019-AB12"


def test_super_admin_deletes_directly() -> None:
    row = _appointment()
    service = AppointmentService(MockLatencyClient())

    outcome = asyncio.run(service.delete(row["id"], SUPER_ADMIN))

    assert outcome.deleted is True
    assert get_mock_store().rows("appointments") == []
    assert get_mock_store().rows("deletion_requests") == []


def test_admin_without_delete_flag_files_a_request() -> None:
    row = _appointment()
    service = AppointmentService(MockLatencyClient())

    outcome = asyncio.run(service.delete(row["id"], ADMIN, reason="Duplicate booking"))

    store = get_mock_store()
    notifications = store.rows("notifications")
    assert outcome.deleted is False
    assert outcome.request.status == "pending"
    assert outcome.request.requested_by == "usr-admin"
    assert len(store.rows("appointments")) == 1
    assert len(notifications) == 1
    assert notifications[0]["title"] == "New Deletion Request"
    assert notifications[0]["message"] == "Admin requested deletion of appointment KTS-20261019-AB12"
    assert notifications[0]["type"] == "warning"


def test_super_admin_approves_deletion_request() -> None:
    row = _appointment()
    outcome = asyncio.run(AppointmentService(MockLatencyClient()).delete(row["id"], ADMIN))
    requests = DeletionRequestService(MockLatencyClient())

    with pytest.raises(PermissionDeniedError):
        asyncio.run(requests.approve(outcome.request.id, ADMIN))

    approved = asyncio.run(requests.approve(outcome.request.id, SUPER_ADMIN))

    store = get_mock_store()
    latest = store.rows("notifications")[-1]
    assert approved.status == "approved"
    assert approved.reviewed_by == "usr-superadmin"
    assert store.rows("appointments") == []
    assert latest["user_id"] == "usr-admin"
    assert latest["message"] == "Your deletion request for appointment has been approved."
    with pytest.raises(InvalidTransitionError):
        asyncio.run(requests.reject(outcome.request.id, SUPER_ADMIN))


def test_rejected_request_keeps_the_appointment() -> None:
    row = _appointment()
    outcome = asyncio.run(AppointmentService(MockLatencyClient()).delete(row["id"], ADMIN))
    requests = DeletionRequestService(MockLatencyClient())

    rejected = asyncio.run(requests.reject(outcome.request.id, SUPER_ADMIN))

    assert rejected.status == "rejected"
    assert len(get_mock_store().rows("appointments")) == 1
    assert len(asyncio.run(requests.list(ADMIN, status="rejected"))) == 1
