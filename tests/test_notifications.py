import asyncio
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from kts_office.config import Settings
from kts_office.services.exceptions import NotFoundError
from kts_office.services.mock_store import get_mock_store, reset_mock_store
from kts_office.services.notifications import NotificationService, is_after, is_visible


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


def _notify(created_at: str, *, user_id=None, title="Update") -> str:
    row = asyncio.run(
        get_mock_store().insert(
            "notifications",
            {
                "title": title,
                "message": f"{title} message",
                "type": "info",
                "user_id": user_id,
                "is_read": False,
                "created_at": created_at,
            },
        )
    )
    return row["id"]


def test_visibility_rules() -> None:
    broadcast = {"user_id": None}
    personal = {"user_id": "usr-1"}

    assert is_visible(broadcast, "usr-1", include_broadcast=True)
    assert not is_visible(broadcast, "usr-1", include_broadcast=False)
    assert is_visible(personal, "usr-1", include_broadcast=False)
    assert not is_visible(personal, "usr-2", include_broadcast=True)


def test_watermark_breaks_timestamp_ties_by_id() -> None:
    stamp = "2026-10-19T06:00:00+00:00"

    assert is_after({"created_at": stamp, "id": "NTF-00002"}, (stamp, "NTF-00001"))
    assert not is_after({"created_at": stamp, "id": "NTF-00001"}, (stamp, "NTF-00001"))
    assert is_after({"created_at": stamp, "id": "NTF-00001"}, None)


def test_poll_never_delivers_the_same_notification_twice() -> None:
    _notify("2026-10-19T05:00:00+00:00", user_id="usr-1", title="First")
    _notify("2026-10-19T05:00:00+00:00", user_id="usr-1", title="Second")
    service = NotificationService(MockLatencyClient())

    first = asyncio.run(service.poll("tab-1", "usr-1"))
    second = asyncio.run(service.poll("tab-1", "usr-1"))
    _notify("2026-10-19T05:30:00+00:00", user_id="usr-1", title="Third")
    third = asyncio.run(service.poll("tab-1", "usr-1"))

    assert [item.title for item in first.items] == ["First", "Second"]
    assert second.items == []
    assert second.watermark == first.watermark
    assert [item.title for item in third.items] == ["Third"]


def test_watermark_survives_a_new_service_instance() -> None:
    _notify("2026-10-19T05:00:00+00:00", user_id="usr-1")
    asyncio.run(NotificationService(MockLatencyClient()).poll("tab-1", "usr-1"))

    reconnected = asyncio.run(NotificationService(MockLatencyClient()).poll("tab-1", "usr-1"))
    other_tab = asyncio.run(NotificationService(MockLatencyClient()).poll("tab-2", "usr-1"))

    assert reconnected.items == []
    assert len(other_tab.items) == 1
    assert len(get_mock_store().rows("notification_watermarks")) == 2


def test_poll_respects_page_size() -> None:
    for minute in range(5):
        _notify(f"2026-10-19T05:0{minute}:00+00:00", user_id="usr-1", title=f"N{minute}")
    service = NotificationService(
        MockLatencyClient(), settings=Settings(notification_page_size=2)
    )

    batches = [asyncio.run(service.poll("tab-1", "usr-1")) for _ in range(3)]

    assert [[item.title for item in batch.items] for batch in batches] == [
        ["N0", "N1"],
        ["N2", "N3"],
        ["N4"],
    ]


def test_poll_filters_other_users_and_broadcasts() -> None:
    _notify("2026-10-19T05:00:00+00:00", user_id="usr-2", title="Private")
    _notify("2026-10-19T05:01:00+00:00", title="Broadcast")
    service = NotificationService(MockLatencyClient())

    customer = asyncio.run(service.poll("tab-1", "usr-1"))
    admin = asyncio.run(service.poll("tab-2", "usr-1", include_broadcast=True))

    assert customer.items == []
    assert [item.title for item in admin.items] == ["Broadcast"]


def test_list_orders_newest_first() -> None:
    _notify("2026-10-19T05:00:00+00:00", user_id="usr-1", title="Old")
    _notify("2026-10-19T05:10:00+00:00", user_id="usr-1", title="New")
    service = NotificationService(MockLatencyClient())

    items = asyncio.run(service.list("usr-1"))

    assert [item.title for item in items] == ["New", "Old"]


def test_mark_read_and_mark_all_read() -> None:
    first = _notify("2026-10-19T05:00:00+00:00", user_id="usr-1")
    _notify("2026-10-19T05:01:00+00:00", user_id="usr-1")
    foreign = _notify("2026-10-19T05:02:00+00:00", user_id="usr-2")
    service = NotificationService(MockLatencyClient())

    marked = asyncio.run(service.mark_read(first, "usr-1"))
    with pytest.raises(NotFoundError):
        asyncio.run(service.mark_read(foreign, "usr-1"))
    count = asyncio.run(service.mark_all_read("usr-1"))
    unread = asyncio.run(service.list("usr-1", unread_only=True))

    assert marked.is_read is True
    assert count == 1
    assert unread == []


def test_stream_yields_inserted_notifications() -> None:
    service = NotificationService(MockLatencyClient())

    async def scenario():
        stream = service.stream("tab-1", "usr-1")
        pending = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await get_mock_store().insert(
            "notifications",
            {"title": "Elsewhere", "message": "x", "user_id": "usr-2"},
        )
        await get_mock_store().insert(
            "notifications",
            {"title": "Mine", "message": "y", "user_id": "usr-1"},
        )
        item = await asyncio.wait_for(pending, timeout=1)
        await stream.aclose()
        return item

    item = asyncio.run(scenario())

    assert item.title == "Mine"
    assert get_mock_store().rows("notification_watermarks")[0]["last_id"] == item.id
