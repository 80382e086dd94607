"""Utility helpers for test factories."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from app.models.access_event import AccessEvent, AccessOutcome
from app.models.beacon_event import BeaconEvent, DeviceType
from app.models.secure_link import SecureLink, LinkStatus
from app.models.tracked_email import SecureDocument, TrackedEmail
from app.services.request_context import RequestContext
from app.services.secure_links import generate_token, hash_pin

DEFAULT_PIN = "123456"

DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


class StubReasoningClient:
    """Records every prompt; answers with `reply` or raises `error`."""

    def __init__(self, reply="OK", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[str] = []

    def complete(self, prompt: str) -> str:
        self.calls.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def make_context(ip: str = "203.0.113.10", user_agent: str = DESKTOP_UA, **kwargs) -> RequestContext:
    return RequestContext.build(ip_address=ip, user_agent=user_agent, **kwargs)


def create_email(db, **kwargs) -> TrackedEmail:
    defaults = {
        "subject": "Quarterly statement",
        "body": "See attached.",
        "sender_email": "sender@example.com",
        "recipients": ["reader@example.com"],
        "company_id": "acme",
        "beacon_id": secrets.token_hex(16),
    }
    defaults.update(kwargs)
    email = TrackedEmail(**defaults)
    db.add(email)
    db.commit()
    db.refresh(email)
    return email


def create_document(db, email: TrackedEmail, **kwargs) -> SecureDocument:
    defaults = {"email_id": email.id, "title": "Statement Q3", "attachment_filename": "q3.pdf"}
    defaults.update(kwargs)
    doc = SecureDocument(**defaults)
    db.add(doc)
    db.commit()
    db.refresh(doc)
    return doc


def create_link(
    db,
    email: TrackedEmail,
    document: SecureDocument | None = None,
    *,
    pin: str = DEFAULT_PIN,
    **kwargs,
) -> SecureLink:
    document = document or create_document(db, email)
    defaults = {
        "token": generate_token(),
        "email_id": email.id,
        "document_id": document.id,
        "recipient_email": "reader@example.com",
        "pin_hash": hash_pin(pin),
        "expires_at": datetime.now(timezone.utc) + timedelta(days=7),
        "status": LinkStatus.active,
        "failed_attempts": 0,
        "max_attempts": 5,
        "access_count": 0,
    }
    defaults.update(kwargs)
    link = SecureLink(**defaults)
    db.add(link)
    db.commit()
    db.refresh(link)
    return link


def add_beacon_event(db, email: TrackedEmail | None = None, **kwargs) -> BeaconEvent:
    defaults = {
        "beacon_id": email.beacon_id if email else "unregistered",
        "email_id": email.id if email else None,
        "company_id": email.company_id if email else None,
        "recipient_email": "reader@example.com",
        "ip_address": "203.0.113.10",
        "user_agent": DESKTOP_UA,
        "device_type": DeviceType.desktop,
        "browser": "Chrome",
        "os": "Windows",
        "country": "Unknown",
        "city": "Unknown",
    }
    defaults.update(kwargs)
    event = BeaconEvent(**defaults)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def add_access_event(db, link: SecureLink, outcome: AccessOutcome = AccessOutcome.invalid_pin, **kwargs) -> AccessEvent:
    defaults = {
        "token": link.token,
        "email_id": link.email_id,
        "recipient_email": link.recipient_email,
        "ip_address": "203.0.113.10",
        "user_agent": DESKTOP_UA,
        "device_type": DeviceType.desktop,
        "location": "Unknown",
        "outcome": outcome,
    }
    defaults.update(kwargs)
    event = AccessEvent(**defaults)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event
