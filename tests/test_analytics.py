import asyncio
import os
import sys
from datetime import date, datetime, timezone

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from kts_office.clients.query import Filter
from kts_office.schemas.analytics import PageViewRequest
from kts_office.services import base
from kts_office.services.analytics import (
    AnalyticsService,
    cumulative_series,
    daily_counts,
    daily_sums,
    detect_device,
    percentage,
    referrer_domain,
    window_days,
)
from kts_office.services.exceptions import PermissionDeniedError
from kts_office.services.mock_store import get_mock_store, reset_mock_store
from kts_office.services.permissions import AdminActor


NOW = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)
TODAY = date(2026, 10, 19)
SUPER_ADMIN = AdminActor(user_id="usr-superadmin", is_super_admin=True, is_admin=True)

IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148"
IPAD = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) Mobile/15E148"
WINDOWS = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/126.0"


@pytest.fixture(autouse=True)
def _reset_store(monkeypatch) -> None:
    reset_mock_store()
    monkeypatch.setattr(base, "utc_now", lambda: NOW)
    yield
    reset_mock_store()


class MockLatencyClient:
    def __init__(self) -> None:
        self.use_mock_data = True

    async def simulate_latency(self) -> None:
        return None


def test_window_days_ends_today_oldest_first() -> None:
    assert window_days(TODAY, 3) == [date(2026, 10, 17), date(2026, 10, 18), TODAY]


def test_daily_counts_zero_fill_and_ignore_outside_rows() -> None:
    counts = daily_counts(
        [
            "2026-10-19T01:00:00+00:00",
            "2026-10-19T09:00:00+00:00",
            "2026-10-17T09:00:00+00:00",
            "2026-09-01T09:00:00+00:00",
            None,
        ],
        TODAY,
        3,
    )

    assert list(counts.values()) == [1, 0, 2]
    assert sum(counts.values()) == 3


def test_daily_sums_accumulate_amounts() -> None:
    sums = daily_sums(
        [("2026-10-18T09:00:00+00:00", 299), ("2026-10-18T10:00:00+00:00", 999.5)], TODAY, 2
    )

    assert sums == {date(2026, 10, 18): 1298.5, TODAY: 0.0}


def test_cumulative_series_is_seeded_with_older_rows() -> None:
    series = cumulative_series(
        [
            "2026-10-01T09:00:00+00:00",
            "2026-10-18T09:00:00+00:00",
            "2026-10-19T09:00:00+00:00",
            "2026-10-19T10:00:00+00:00",
        ],
        TODAY,
        3,
    )

    assert [point.users for point in series] == [0, 1, 2]
    assert [point.cumulative for point in series] == [1, 2, 4]


def test_percentage_rounds_half_up_and_handles_zero() -> None:
    assert percentage(1, 8) == 13
    assert percentage(2, 3) == 67
    assert percentage(5, 0) == 0


@pytest.mark.parametrize(
    "agent, device",
    [(IPHONE, "Mobile"), (IPAD, "Tablet"), (WINDOWS, "Desktop"), (None, "Desktop")],
)
def test_detect_device(agent, device) -> None:
    assert detect_device(agent) == device


@pytest.mark.parametrize(
    "referrer, domain",
    [
        ("https://www.google.com/search?q=data+recovery", "google.com"),
        ("https://m.facebook.com/page", "m.facebook.com"),
        ("", "Direct"),
        (None, "Direct"),
        ("not a url", "Direct"),
        ("http://[::1", "Direct"),
    ],
)
def test_referrer_domain(referrer, domain) -> None:
    assert referrer_domain(referrer) == domain


def _seed_dashboard() -> None:
    store = get_mock_store()
    asyncio.run(store.delete("profiles", [Filter("user_id", "eq", "usr-superadmin")]))
    services = {row["name"]: row["id"] for row in store.rows("services")}
    rows = [
        ("2026-10-19T05:00:00+00:00", "Data Recovery", "completed", None),
        ("2026-10-18T05:00:00+00:00", "Computer Repair", "confirmed", 269.1),
        ("2026-10-18T07:00:00+00:00", "Data Recovery", "pending", None),
        ("2026-08-01T07:00:00+00:00", "Computer Repair", "cancelled", None),
    ]
    for created_at, name, status, final_price in rows:
        asyncio.run(
            store.insert(
                "appointments",
                {
                    "created_at": created_at,
                    "service_id": services[name],
                    "status": status,
                    "final_price": final_price,
                    "appointment_date": created_at[:10],
                    "appointment_time": "09:00:00",
                },
            )
        )
    for created_at in ("2026-08-01T07:00:00+00:00", "2026-10-19T03:00:00+00:00"):
        asyncio.run(store.insert("profiles", {"created_at": created_at, "full_name": "User"}))


def test_dashboard_aggregates_appointments_and_users() -> None:
    _seed_dashboard()
    service = AnalyticsService(MockLatencyClient())

    dashboard = asyncio.run(service.dashboard(SUPER_ADMIN))

    trend = {point.date: point.count for point in dashboard.appointment_trend}
    revenue = {point.date: point.revenue for point in dashboard.revenue}
    assert len(dashboard.appointment_trend) == 30
    assert trend["2026-10-19"] == 1
    assert trend["2026-10-18"] == 2
    assert sum(trend.values()) == 3
    assert revenue["2026-10-19"] == 999
    assert revenue["2026-10-18"] == 269.1
    assert dashboard.user_growth[0].cumulative == 1
    assert dashboard.user_growth[-1].cumulative == 2
    assert dashboard.status_distribution == {
        "pending": 1,
        "confirmed": 1,
        "completed": 1,
        "cancelled": 1,
    }
    assert [item.name for item in dashboard.service_popularity] == [
        "Data Recovery",
        "Computer Repair",
    ]
    assert dashboard.stats.total_appointments == 4
    assert dashboard.stats.total_users == 2
    assert dashboard.stats.total_revenue == 1268.1
    assert dashboard.stats.completion_rate == 25


def test_dashboard_requires_analytics_permission() -> None:
    service = AnalyticsService(MockLatencyClient())
    admin = AdminActor(user_id="usr-2", is_admin=True, permissions={"can_view_analytics": False})

    with pytest.raises(PermissionDeniedError):
        asyncio.run(service.dashboard(admin))


def test_traffic_report() -> None:
    service = AnalyticsService(MockLatencyClient())
    views = [
        ("/", "visitor-a", "https://www.google.com/", IPHONE, "2026-10-19T04:00:00+00:00"),
        ("/services", "visitor-a", "", IPHONE, "2026-10-19T04:05:00+00:00"),
        ("/", "visitor-b", "https://facebook.com/x", WINDOWS, "2026-10-18T04:00:00+00:00"),
        ("/", "visitor-c", None, IPAD, "2026-10-01T04:00:00+00:00"),
    ]
    store = get_mock_store()
    for path, visitor, referrer, agent, created_at in views:
        asyncio.run(
            store.insert(
                "page_views",
                {
                    "page_path": path,
                    "visitor_id": visitor,
                    "referrer": referrer,
                    "user_agent": agent,
                    "created_at": created_at,
                },
            )
        )

    report = asyncio.run(service.traffic(SUPER_ADMIN))

    daily = {point.date: point for point in report.daily}
    assert report.stats.total_views == 3
    assert report.stats.unique_visitors == 2
    assert report.stats.avg_views_per_visitor == 1.5
    assert report.stats.bounce_rate == 50
    assert report.pages[0].path == "/"
    assert report.pages[0].views == 2
    assert report.pages[0].unique_visitors == 2
    assert {item.source: item.percentage for item in report.referrers} == {
        "google.com": 33,
        "Direct": 33,
        "facebook.com": 33,
    }
    assert {item.type: item.count for item in report.devices} == {"Mobile": 2, "Desktop": 1}
    assert len(report.daily) == 7
    assert (daily["2026-10-19"].views, daily["2026-10-19"].visitors) == (2, 1)


def test_page_views_are_recorded() -> None:
    service = AnalyticsService(MockLatencyClient())

    asyncio.run(service.record_page_view(PageViewRequest(page_path="/blog", visitor_id="v1")))

    assert get_mock_store().rows("page_views")[0]["page_path"] == "/blog"
