"""Beacon analytics: reduce the beacon event set into dashboard counts."""
from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.models.beacon_event import BeaconEvent
from app.schemas.analytics import BeaconAnalytics, BreakdownEntry
from app.services.event_store import EventStore

TIME_RANGES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "all": None,
}
RECENT_WINDOW = timedelta(days=7)
TOP_LOCATIONS = 10


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _period(hour: int) -> str:
    if hour < 6:
        return "Night"
    if hour < 12:
        return "Morning"
    if hour < 18:
        return "Afternoon"
    return "Evening"


def _breakdown(counter: Counter, total: int, limit: int | None = None) -> list[BreakdownEntry]:
    return [
        BreakdownEntry(label=label, count=count, percentage=round(count / total * 100) if total else 0)
        for label, count in counter.most_common(limit)
    ]


def _window_start(time_range: str, now: datetime) -> datetime | None:
    if time_range not in TIME_RANGES:
        raise ValueError(f"Unsupported time range '{time_range}'. Use one of: {', '.join(TIME_RANGES)}")
    window = TIME_RANGES[time_range]
    return now - window if window is not None else None


def compute_analytics(
    events: list[BeaconEvent],
    time_range: str = "7d",
    now: datetime | None = None,
    recent_opens: int | None = None,
) -> BeaconAnalytics:
    """Reduce events into dashboard counts. recent_opens, when the caller already
    counted it over the whole event set, overrides the count over `events`."""
    now = now or datetime.now(timezone.utc)
    since = _window_start(time_range, now)
    if recent_opens is None:
        recent_opens = sum(1 for e in events if _as_utc(e.timestamp) >= now - RECENT_WINDOW)
    if since is not None:
        events = [e for e in events if _as_utc(e.timestamp) >= since]

    total = len(events)
    # An open is unique per (email, recipient); unregistered beacons count by beacon id
    unique = len({(e.email_id or e.beacon_id, e.recipient_email) for e in events})

    devices = Counter(e.device_type.value for e in events)
    browsers = Counter(e.browser or "Unknown" for e in events)
    systems = Counter(e.os or "Unknown" for e in events)
    countries = Counter(e.country or "Unknown" for e in events)
    locations = Counter(e.location for e in events)
    periods = Counter(_period(_as_utc(e.timestamp).hour) for e in events)

    return BeaconAnalytics(
        time_range=time_range,
        total_opens=total,
        unique_opens=unique,
        recent_opens=recent_opens,
        open_rate=round(total / unique * 100, 1) if unique else 0.0,
        device_stats=dict(devices),
        browser_stats=dict(browsers),
        os_stats=dict(systems),
        location_stats=dict(countries),
        top_locations=_breakdown(locations, total, TOP_LOCATIONS),
        time_breakdown=_breakdown(periods, total),
    )


def beacon_analytics(db: Session, time_range: str = "7d", company_id: str | None = None) -> BeaconAnalytics:
    now = datetime.now(timezone.utc)
    since = _window_start(time_range, now)
    store = EventStore(db)
    events = store.list_beacon_events(company_id=company_id, since=since)
    recent = store.count_beacon_events(company_id=company_id, since=now - RECENT_WINDOW)
    return compute_analytics(events, time_range, now=now, recent_opens=recent)
