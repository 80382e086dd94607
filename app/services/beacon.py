"""TrackingBeaconEmitter: the embeddable tracking pixel and the open it records.

The email client always gets the pixel. Logging the open (classification,
geolocation, email lookup, event append, suspicious-open alert) is best
effort and never changes the response.
"""
from __future__ import annotations

import base64
import logging
from urllib.parse import quote

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.beacon_event import BeaconEvent
from app.models.tracked_email import TrackedEmail
from app.services.alerts import ALERT_SUSPICIOUS_OPEN, SEVERITY_MEDIUM, alert_exists, create_alert
from app.services.anomaly_advisor import enforce
from app.services.errors import StoreUnavailable
from app.services.event_store import EventStore
from app.services.geo import UNKNOWN, GeoResolver, NullGeoResolver
from app.services.request_context import RequestContext

log = logging.getLogger("uvicorn.error")

# 68-byte 1x1 transparent PNG
PIXEL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)

PIXEL_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def beacon_url(beacon_id: str, recipient_email: str, base_url: str | None = None) -> str:
    base = (base_url or get_settings().public_base_url).rstrip("/")
    return f"{base}/beacon/{quote(beacon_id)}?recipient={quote(recipient_email)}"


def pixel_tag(beacon_id: str, recipient_email: str, base_url: str | None = None) -> str:
    src = beacon_url(beacon_id, recipient_email, base_url)
    return f'<img src="{src}" width="1" height="1" alt="" style="display:none" />'


def resolve_email(db: Session, beacon_id: str) -> TrackedEmail | None:
    return db.query(TrackedEmail).filter(TrackedEmail.beacon_id == beacon_id).first()


def suspicious_open_reasons(first: BeaconEvent, current: BeaconEvent) -> list[str]:
    """Differences between the first recorded open of an email and this one."""
    reasons = []
    if first.ip_address and current.ip_address and first.ip_address != current.ip_address:
        reasons.append(f"Different IP: {first.ip_address} vs {current.ip_address}")
    if first.device_type != current.device_type:
        reasons.append(f"Different device: {first.device_type.value} vs {current.device_type.value}")
    if UNKNOWN not in (first.country, current.country) and first.country != current.country:
        reasons.append(f"Different country: {first.country} vs {current.country}")
    return reasons


def enforce_after_open(session_factory, advisor_factory, beacon_id: str) -> None:
    """Background task: run anomaly enforcement for the email behind a beacon, on a fresh session."""
    db = session_factory()
    try:
        email = resolve_email(db, beacon_id)
        if email is not None:
            enforce(db, advisor_factory(db), email.id, trigger="beacon")
    except Exception:
        db.rollback()
        log.exception("[Beacon] anomaly enforcement failed for beacon_id=%s", beacon_id)
    finally:
        db.close()


class TrackingBeaconEmitter:
    def __init__(self, db: Session, geo: GeoResolver | None = None):
        self.db = db
        self.store = EventStore(db)
        self.geo = geo or NullGeoResolver()

    def record_open(self, beacon_id: str, recipient_email: str | None, context: RequestContext) -> bytes:
        try:
            self._log_open(beacon_id, recipient_email or "unknown", context)
        except Exception:
            self.db.rollback()
            log.exception("[Beacon] tracking failed for beacon_id=%s", beacon_id)
        return PIXEL_PNG

    def _log_open(self, beacon_id: str, recipient_email: str, context: RequestContext) -> BeaconEvent | None:
        email = resolve_email(self.db, beacon_id)
        if email is None:
            log.info("[Beacon] beacon_id=%s does not match a tracked email", beacon_id)
        location = self.geo.resolve(context.ip_address)

        event = BeaconEvent(
            beacon_id=beacon_id,
            email_id=email.id if email else None,
            recipient_email=recipient_email,
            company_id=email.company_id if email else None,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            device_type=context.client.device_type,
            browser=context.client.browser,
            os=context.client.os,
            country=location.country,
            city=location.city,
            referrer=context.referrer,
            language=context.language,
        )
        try:
            self.store.append_beacon_event(event)
        except StoreUnavailable as e:
            log.warning("[Beacon] open not recorded for beacon_id=%s: %s", beacon_id, e)
            return None

        if email is not None:
            self._check_suspicious_open(email, event)
        return event

    def _check_suspicious_open(self, email: TrackedEmail, event: BeaconEvent) -> None:
        first = self.store.first_beacon_event(email.id)
        if first is None or first.id == event.id:
            return
        reasons = suspicious_open_reasons(first, event)
        if not reasons or alert_exists(self.db, email.id, ALERT_SUSPICIOUS_OPEN):
            return
        log.info("[Beacon] suspicious open on email_id=%s: %s", email.id, ", ".join(reasons))
        create_alert(
            self.db,
            ALERT_SUSPICIOUS_OPEN,
            "Email opened from a new source",
            f"Email opened from suspicious source. Reasons: {', '.join(reasons)}.",
            email_id=email.id,
            company_id=email.company_id,
            recipient_email=event.recipient_email,
            severity=SEVERITY_MEDIUM,
            details={
                "reasons": reasons,
                "current_access": {
                    "ip": event.ip_address,
                    "device": event.device_type,
                    "browser": event.browser,
                    "os": event.os,
                    "location": event.location,
                },
            },
        )
        self.db.commit()
