"""Beacon analytics for the admin dashboard."""
from pydantic import BaseModel


class BreakdownEntry(BaseModel):
    label: str
    count: int
    percentage: int


class BeaconAnalytics(BaseModel):
    time_range: str
    total_opens: int
    unique_opens: int
    recent_opens: int  # last 7 days, independent of time_range
    open_rate: float
    device_stats: dict[str, int]
    browser_stats: dict[str, int]
    os_stats: dict[str, int]
    location_stats: dict[str, int]
    top_locations: list[BreakdownEntry]
    time_breakdown: list[BreakdownEntry]


class TopEmail(BaseModel):
    email_id: int
    open_count: int
    recipient_email: str
