"""Dashboard and traffic aggregation.

All bucketing happens here from raw rows; the backend is only asked for the
rows inside the lookback window.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter, defaultdict
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set
from urllib.parse import urlparse
from zoneinfo import ZoneInfo

from kts_office.clients.query import Filter, Order, comparable
from kts_office.schemas.analytics import (
    DailyCount,
    DailyTraffic,
    DashboardResponse,
    DeviceShare,
    GrowthPoint,
    OverallStats,
    PageBreakdown,
    PageViewRequest,
    ReferrerShare,
    RevenuePoint,
    ServicePopularity,
    TrafficResponse,
    TrafficStats,
)
from kts_office.services.base import BackendService
from kts_office.services.coupons import discounted_price
from kts_office.services.permissions import AdminActor, PermissionFlag, require

logger = logging.getLogger(__name__)

_MOBILE = re.compile(r"mobile|android|iphone|ipad|ipod|blackberry|windows phone", re.I)
_TABLET = re.compile(r"ipad|tablet", re.I)

REVENUE_STATUSES = {"confirmed", "completed"}
STATUS_KEYS = ("pending", "confirmed", "completed", "cancelled")


def window_days(today: date, days: int) -> List[date]:
    """The last ``days`` calendar days ending with ``today``, oldest first."""

    return [today - timedelta(days=days - 1 - offset) for offset in range(days)]


def to_local_date(value: Any, tz: ZoneInfo) -> Optional[date]:
    parsed = comparable(value)
    if isinstance(parsed, datetime):
        return parsed.astimezone(tz).date()
    if isinstance(parsed, date):
        return parsed
    return None


def daily_counts(
    timestamps: Iterable[Any], today: date, days: int, tz: ZoneInfo = ZoneInfo("UTC")
) -> Dict[date, int]:
    buckets = {day: 0 for day in window_days(today, days)}
    for value in timestamps:
        day = to_local_date(value, tz)
        if day in buckets:
            buckets[day] += 1
    return buckets


def daily_sums(
    pairs: Iterable[tuple[Any, float]], today: date, days: int, tz: ZoneInfo = ZoneInfo("UTC")
) -> Dict[date, float]:
    buckets = {day: 0.0 for day in window_days(today, days)}
    for value, amount in pairs:
        day = to_local_date(value, tz)
        if day in buckets:
            buckets[day] = round(buckets[day] + float(amount or 0), 2)
    return buckets


def cumulative_series(
    timestamps: Sequence[Any], today: date, days: int, tz: ZoneInfo = ZoneInfo("UTC")
) -> List[GrowthPoint]:
    """Daily counts plus a running total seeded with everything older than the window."""

    window_start = window_days(today, days)[0]
    seed = sum(
        1 for value in timestamps
        if (day := to_local_date(value, tz)) is not None and day < window_start
    )
    running = seed
    points = []
    for day, count in daily_counts(timestamps, today, days, tz).items():
        running += count
        points.append(GrowthPoint(date=day.isoformat(), users=count, cumulative=running))
    return points


def percentage(part: float, whole: float) -> int:
    if not whole:
        return 0
    return math.floor(part / whole * 100 + 0.5)


def detect_device(user_agent: Optional[str]) -> str:
    agent = user_agent or ""
    if _MOBILE.search(agent):
        return "Tablet" if _TABLET.search(agent) else "Mobile"
    return "Desktop"


def referrer_domain(referrer: Optional[str]) -> str:
    if not referrer or not referrer.strip():
        return "Direct"
    try:
        hostname = urlparse(referrer.strip()).hostname
    except ValueError:
        return "Direct"
    if not hostname:
        return "Direct"
    return hostname[4:] if hostname.startswith("www.") else hostname


class AnalyticsService(BackendService):
    def _tz(self) -> ZoneInfo:
        return ZoneInfo(self._settings.timezone)

    def _window_start(self, today: date, days: int) -> datetime:
        return datetime.combine(window_days(today, days)[0], time.min, tzinfo=self._tz())

    async def dashboard(self, actor: AdminActor | None, days: int = 30) -> DashboardResponse:
        require(PermissionFlag.VIEW_ANALYTICS, actor)
        logger.info("Building analytics dashboard for %s days", days)
        tz = self._tz()
        today = self._today()
        appointments = await self._select("appointments", order=Order("created_at"))
        profiles = await self._select("profiles", order=Order("created_at"))
        services = {row["id"]: row for row in await self._select("services")}

        trend = daily_counts((row.get("created_at") for row in appointments), today, days, tz)

        def revenue_of(row: Dict[str, Any]) -> float:
            if row.get("final_price") is not None:
                return float(row["final_price"])
            service = services.get(row.get("service_id"))
            price = service.get("price") if service else None
            return discounted_price(price, row.get("discount_percent")) or 0.0

        earning = [row for row in appointments if row.get("status") in REVENUE_STATUSES]
        revenue = daily_sums(
            ((row.get("created_at"), revenue_of(row)) for row in earning), today, days, tz
        )

        statuses = Counter(str(row.get("status")) for row in appointments)
        popularity = Counter(
            services[row["service_id"]]["name"]
            for row in appointments
            if row.get("service_id") in services
        )
        completed = statuses.get("completed", 0)
        total = len(appointments)
        return DashboardResponse(
            days=days,
            appointment_trend=[
                DailyCount(date=day.isoformat(), count=count) for day, count in trend.items()
            ],
            user_growth=cumulative_series(
                [row.get("created_at") for row in profiles], today, days, tz
            ),
            revenue=[
                RevenuePoint(date=day.isoformat(), revenue=amount) for day, amount in revenue.items()
            ],
            status_distribution={key: statuses.get(key, 0) for key in STATUS_KEYS},
            service_popularity=[
                ServicePopularity(name=name, bookings=count)
                for name, count in popularity.most_common(5)
            ],
            stats=OverallStats(
                total_appointments=total,
                total_users=len(profiles),
                total_revenue=round(sum(revenue_of(row) for row in earning), 2),
                completion_rate=percentage(completed, total),
            ),
        )

    async def traffic(self, actor: AdminActor | None, days: int = 7) -> TrafficResponse:
        require(PermissionFlag.VIEW_ANALYTICS, actor)
        logger.info("Building traffic report for %s days", days)
        tz = self._tz()
        today = self._today()
        rows = await self._select(
            "page_views",
            [Filter("created_at", "gte", self._window_start(today, days).isoformat())],
            order=Order("created_at"),
        )

        page_views: Counter = Counter()
        page_visitors: Dict[str, Set[str]] = defaultdict(set)
        referrers: Counter = Counter()
        devices: Counter = Counter()
        views_per_visitor: Counter = Counter()
        daily_views = {day: 0 for day in window_days(today, days)}
        daily_visitors: Dict[date, Set[str]] = {day: set() for day in daily_views}

        for row in rows:
            visitor = str(row.get("visitor_id") or row.get("id"))
            path = str(row.get("page_path") or "/")
            page_views[path] += 1
            page_visitors[path].add(visitor)
            referrers[referrer_domain(row.get("referrer"))] += 1
            devices[detect_device(row.get("user_agent"))] += 1
            views_per_visitor[visitor] += 1
            day = to_local_date(row.get("created_at"), tz)
            if day in daily_views:
                daily_views[day] += 1
                daily_visitors[day].add(visitor)

        total_views = len(rows)
        unique_visitors = len(views_per_visitor)
        bounced = sum(1 for count in views_per_visitor.values() if count == 1)
        return TrafficResponse(
            days=days,
            pages=[
                PageBreakdown(path=path, views=views, unique_visitors=len(page_visitors[path]))
                for path, views in page_views.most_common()
            ],
            referrers=[
                ReferrerShare(source=source, visits=visits, percentage=percentage(visits, total_views))
                for source, visits in referrers.most_common(10)
            ],
            devices=[DeviceShare(type=kind, count=count) for kind, count in devices.most_common()],
            daily=[
                DailyTraffic(date=day.isoformat(), views=views, visitors=len(daily_visitors[day]))
                for day, views in daily_views.items()
            ],
            stats=TrafficStats(
                total_views=total_views,
                unique_visitors=unique_visitors,
                avg_views_per_visitor=round(total_views / unique_visitors, 1) if unique_visitors else 0.0,
                bounce_rate=percentage(bounced, unique_visitors),
            ),
        )

    async def record_page_view(self, request: PageViewRequest) -> None:
        await self._insert("page_views", request.model_dump())
