from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class DailyCount(BaseModel):
    date: str
    count: int


class GrowthPoint(BaseModel):
    date: str
    users: int
    cumulative: int


class RevenuePoint(BaseModel):
    date: str
    revenue: float


class ServicePopularity(BaseModel):
    name: str
    bookings: int


class OverallStats(BaseModel):
    total_appointments: int
    total_users: int
    total_revenue: float
    completion_rate: int


class DashboardResponse(BaseModel):
    days: int
    appointment_trend: List[DailyCount]
    user_growth: List[GrowthPoint]
    revenue: List[RevenuePoint]
    status_distribution: Dict[str, int] = Field(default_factory=dict)
    service_popularity: List[ServicePopularity] = Field(default_factory=list)
    stats: OverallStats


class PageBreakdown(BaseModel):
    path: str
    views: int
    unique_visitors: int


class ReferrerShare(BaseModel):
    source: str
    visits: int
    percentage: int


class DeviceShare(BaseModel):
    type: str
    count: int


class DailyTraffic(BaseModel):
    date: str
    views: int
    visitors: int


class TrafficStats(BaseModel):
    total_views: int
    unique_visitors: int
    avg_views_per_visitor: float
    bounce_rate: int


class TrafficResponse(BaseModel):
    days: int
    pages: List[PageBreakdown] = Field(default_factory=list)
    referrers: List[ReferrerShare] = Field(default_factory=list)
    devices: List[DeviceShare] = Field(default_factory=list)
    daily: List[DailyTraffic] = Field(default_factory=list)
    stats: TrafficStats


class PageViewRequest(BaseModel):
    page_path: str = Field(..., min_length=1)
    visitor_id: Optional[str] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
