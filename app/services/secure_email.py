"""Secure email registration and per-email statistics.

Registering an email creates its beacon id, one document per attachment and
one PIN-gated link per (recipient, document). Delivery is left to the
caller's mail provider; this module only produces what goes into the email.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.access_event import AccessOutcome
from app.models.secure_link import SecureLink, LinkStatus
from app.models.tracked_email import SecureDocument, TrackedEmail
from app.schemas.events import AccessEventResponse, BeaconEventResponse
from app.schemas.secure_email import (
    EmailStats,
    EmailStatsResponse,
    RecipientTracking,
    SecureEmailCreate,
    SecureEmailCreated,
    SecureLinkIssued,
    SecureLinkView,
)
from app.services.beacon import beacon_url, pixel_tag
from app.services.event_store import EventStore
from app.services.secure_links import generate_pin, generate_token, hash_pin

log = logging.getLogger("uvicorn.error")


def secure_link_url(token: str, base_url: str | None = None) -> str:
    base = (base_url or get_settings().public_base_url).rstrip("/")
    return f"{base}/secure/{token}"


def register_secure_email(db: Session, data: SecureEmailCreate, sender_email: str) -> SecureEmailCreated:
    settings = get_settings()
    recipients = list(dict.fromkeys(str(r).strip().lower() for r in data.recipients))

    email = TrackedEmail(
        subject=data.subject,
        body=data.body,
        sender_email=sender_email,
        recipients=recipients,
        company_id=data.company_id,
        beacon_id=secrets.token_hex(16),
        tracking_enabled=data.tracking_enabled,
        security_enabled=data.security_enabled,
    )
    db.add(email)
    db.flush()

    plain_pin = None
    links: list[SecureLinkIssued] = []
    if data.security_enabled and data.attachments:
        plain_pin = data.pin or generate_pin()
        pin_hash = hash_pin(plain_pin)
        days = data.expiration_days or settings.secure_link_expire_days
        expires_at = datetime.now(timezone.utc) + timedelta(days=days)
        max_attempts = data.max_attempts or settings.secure_link_max_attempts

        for attachment in data.attachments:
            doc = SecureDocument(
                email_id=email.id,
                title=attachment.title,
                description=attachment.description,
                attachment_filename=attachment.filename,
                attachment_url=attachment.url,
            )
            db.add(doc)
            db.flush()
            for recipient in recipients:
                link = SecureLink(
                    token=generate_token(),
                    email_id=email.id,
                    document_id=doc.id,
                    recipient_email=recipient,
                    pin_hash=pin_hash,
                    expires_at=expires_at,
                    status=LinkStatus.active,
                    failed_attempts=0,
                    max_attempts=max_attempts,
                )
                db.add(link)
                links.append(
                    SecureLinkIssued(
                        token=link.token,
                        recipient_email=recipient,
                        document_id=doc.id,
                        url=secure_link_url(link.token),
                        expires_at=expires_at,
                    )
                )
    db.commit()
    db.refresh(email)
    log.info("[SecureEmail] registered email_id=%s recipients=%d links=%d", email.id, len(recipients), len(links))

    tracking = [
        RecipientTracking(
            recipient_email=r,
            beacon_url=beacon_url(email.beacon_id, r) if email.tracking_enabled else None,
            pixel_tag=pixel_tag(email.beacon_id, r) if email.tracking_enabled else None,
        )
        for r in recipients
    ]
    return SecureEmailCreated(id=email.id, beacon_id=email.beacon_id, recipients=tracking, links=links, pin=plain_pin)


def email_stats(db: Session, email: TrackedEmail) -> EmailStatsResponse:
    events = EventStore(db).list_events(email.id)
    links = db.query(SecureLink).filter(SecureLink.email_id == email.id).order_by(SecureLink.id).all()

    opens = len(events.beacon_events)
    unique_opens = len({e.recipient_email for e in events.beacon_events})
    sent = len(email.recipients or [])
    stats = EmailStats(
        sent=sent,
        opens=opens,
        unique_opens=unique_opens,
        open_rate=round(unique_opens / sent * 100, 1) if sent else 0.0,
        secure_accesses=sum(1 for e in events.access_events if e.outcome == AccessOutcome.success),
        failed_attempts=sum(1 for e in events.access_events if e.outcome == AccessOutcome.invalid_pin),
    )
    return EmailStatsResponse(
        email_id=email.id,
        subject=email.subject,
        stats=stats,
        links=[SecureLinkView.model_validate(link) for link in links],
        beacon_logs=[BeaconEventResponse.model_validate(e) for e in events.beacon_events],
        access_logs=[AccessEventResponse.model_validate(e) for e in events.access_events],
    )
