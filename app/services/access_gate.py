"""AccessGate: validate a (token, PIN) pair against a secure link.

Order of checks: unknown token, expiry, revocation, exhausted attempts, PIN.
Every attempt on an existing link appends an AccessEvent whatever the
outcome; a failed audit write is logged and never changes the result.
The failed-attempt counter is incremented with a single conditional UPDATE
so concurrent wrong PINs cannot overshoot max_attempts without revoking.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import case, literal
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.access_event import AccessEvent, AccessOutcome
from app.models.secure_link import SecureLink, LinkStatus
from app.models.tracked_email import SecureDocument, TrackedEmail
from app.services.alerts import ALERT_FAILED_PINS, SEVERITY_MEDIUM, alert_exists, create_alert
from app.services.anomaly_advisor import AnomalyAdvisor, enforce
from app.services.errors import StoreUnavailable
from app.services.event_store import EventStore
from app.services.geo import GeoResolver, NullGeoResolver
from app.services.request_context import RequestContext
from app.services.secure_links import REVOKED_ATTEMPTS_EXCEEDED, get_link, verify_pin

log = logging.getLogger("uvicorn.error")


class AccessErrorKind(str, enum.Enum):
    not_found = "not_found"
    expired = "expired"
    revoked = "revoked"
    attempts_exceeded = "attempts_exceeded"
    invalid_pin = "invalid_pin"


ERROR_MESSAGES = {
    AccessErrorKind.not_found: "Invalid or expired link.",
    AccessErrorKind.expired: "This secure link has expired.",
    AccessErrorKind.revoked: "This secure link has been revoked.",
    AccessErrorKind.attempts_exceeded: "Too many failed attempts. This secure link has been locked.",
    AccessErrorKind.invalid_pin: "Invalid PIN",
}


@dataclass
class ValidationResult:
    success: bool
    secure_link: SecureLink | None = None
    document: SecureDocument | None = None
    error_kind: AccessErrorKind | None = None
    attempts_remaining: int | None = None

    @property
    def message(self) -> str:
        if self.success:
            return "PIN validated successfully"
        return ERROR_MESSAGES[self.error_kind]


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AccessGate:
    def __init__(
        self,
        db: Session,
        advisor: AnomalyAdvisor | None = None,
        geo: GeoResolver | None = None,
        failed_pin_alert_threshold: int | None = None,
    ):
        self.db = db
        self.store = EventStore(db)
        self.advisor = advisor
        self.geo = geo or NullGeoResolver()
        if failed_pin_alert_threshold is None:
            failed_pin_alert_threshold = get_settings().failed_pin_alert_threshold
        self.failed_pin_alert_threshold = failed_pin_alert_threshold

    def validate(self, token: str, pin: str, context: RequestContext) -> ValidationResult:
        link = get_link(self.db, token)
        if not link:
            log.info("[AccessGate] unknown token ip=%s", context.ip_address)
            return ValidationResult(success=False, error_kind=AccessErrorKind.not_found)

        result = self._check(link, pin, context)
        self._after_attempt(link, result)
        return result

    def _check(self, link: SecureLink, pin: str, context: RequestContext) -> ValidationResult:
        now = datetime.now(timezone.utc)
        expires_at = _as_utc(link.expires_at)

        # A revoked link stays revoked once its expiry passes; only active links move to expired
        past_expiry = expires_at is not None and expires_at <= now
        if link.status == LinkStatus.expired or (link.status == LinkStatus.active and past_expiry):
            self._transition(link, LinkStatus.expired)
            self._record(link, context, AccessOutcome.expired)
            return self._fail(link, AccessErrorKind.expired)

        if link.status == LinkStatus.revoked:
            self._record(link, context, AccessOutcome.revoked)
            return self._fail(link, AccessErrorKind.revoked)

        if link.failed_attempts >= link.max_attempts:
            self._transition(link, LinkStatus.revoked, reason=REVOKED_ATTEMPTS_EXCEEDED)
            self._record(link, context, AccessOutcome.attempts_exceeded)
            return self._fail(link, AccessErrorKind.attempts_exceeded)

        if not verify_pin(pin, link.pin_hash):
            if not self._increment_failed_attempts(link):
                # A concurrent attempt consumed the last try between our read and the update
                self._record(link, context, AccessOutcome.attempts_exceeded)
                return self._fail(link, AccessErrorKind.attempts_exceeded)
            self._record(link, context, AccessOutcome.invalid_pin)
            log.info(
                "[AccessGate] invalid PIN token=%s… attempts=%d/%d status=%s",
                link.token[:8], link.failed_attempts, link.max_attempts, link.status.value,
            )
            return ValidationResult(
                success=False,
                secure_link=link,
                error_kind=AccessErrorKind.invalid_pin,
                attempts_remaining=max(link.max_attempts - link.failed_attempts, 0),
            )

        self.db.query(SecureLink).filter(SecureLink.id == link.id).update(
            {SecureLink.access_count: SecureLink.access_count + 1}, synchronize_session=False
        )
        self.db.commit()
        self.db.refresh(link)
        self._record(link, context, AccessOutcome.success)
        return ValidationResult(
            success=True,
            secure_link=link,
            document=link.document,
            attempts_remaining=max(link.max_attempts - link.failed_attempts, 0),
        )

    def _fail(self, link: SecureLink, kind: AccessErrorKind) -> ValidationResult:
        log.info("[AccessGate] token=%s… rejected: %s", link.token[:8], kind.value)
        return ValidationResult(success=False, secure_link=link, error_kind=kind, attempts_remaining=0)

    def _increment_failed_attempts(self, link: SecureLink) -> bool:
        """Atomic increment-and-compare. Reaching max_attempts revokes in the same statement.
        Returns False when no row qualified (link no longer active or already at the limit)."""
        now = datetime.now(timezone.utc)
        reaches_limit = SecureLink.failed_attempts + 1 >= SecureLink.max_attempts
        updated = (
            self.db.query(SecureLink)
            .filter(
                SecureLink.id == link.id,
                SecureLink.status == LinkStatus.active,
                SecureLink.failed_attempts < SecureLink.max_attempts,
            )
            .update(
                {
                    SecureLink.failed_attempts: SecureLink.failed_attempts + 1,
                    SecureLink.status: case(
                        (reaches_limit, literal(LinkStatus.revoked, SecureLink.status.type)), else_=SecureLink.status
                    ),
                    SecureLink.revoked_at: case((reaches_limit, now), else_=SecureLink.revoked_at),
                    SecureLink.revoked_reason: case(
                        (reaches_limit, REVOKED_ATTEMPTS_EXCEEDED), else_=SecureLink.revoked_reason
                    ),
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        self.db.refresh(link)
        return updated == 1

    def _transition(self, link: SecureLink, status: LinkStatus, reason: str | None = None) -> None:
        """Conditional status change from active; no-op if the link already left active."""
        if link.status == status:
            return
        values = {SecureLink.status: status}
        if status == LinkStatus.revoked:
            values[SecureLink.revoked_at] = datetime.now(timezone.utc)
            values[SecureLink.revoked_reason] = reason
        self.db.query(SecureLink).filter(
            SecureLink.id == link.id, SecureLink.status == LinkStatus.active
        ).update(values, synchronize_session=False)
        self.db.commit()
        self.db.refresh(link)

    def _record(self, link: SecureLink, context: RequestContext, outcome: AccessOutcome) -> None:
        try:
            location = self.geo.resolve(context.ip_address).label
        except Exception:
            log.exception("[AccessGate] geolocation failed for ip=%s", context.ip_address)
            location = "Unknown"
        event = AccessEvent(
            token=link.token,
            email_id=link.email_id,
            recipient_email=link.recipient_email,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            device_type=context.device_type,
            location=location,
            outcome=outcome,
        )
        try:
            self.store.append_access_event(event)
        except StoreUnavailable as e:
            log.warning("[AccessGate] access event not recorded (outcome=%s): %s", outcome.value, e)

    def _after_attempt(self, link: SecureLink, result: ValidationResult) -> None:
        if result.error_kind == AccessErrorKind.invalid_pin:
            self._alert_on_failed_pins(link)
        if self.advisor is None:
            return
        try:
            enforce(self.db, self.advisor, link.email_id, trigger="access")
        except Exception:
            # The current caller keeps its result; enforcement is retried on the next event or sweep
            self.db.rollback()
            log.exception("[AccessGate] anomaly enforcement failed for email_id=%s", link.email_id)

    def _alert_on_failed_pins(self, link: SecureLink) -> None:
        try:
            failed = self.store.count_failed_attempts(link.email_id)
            if failed < self.failed_pin_alert_threshold or alert_exists(self.db, link.email_id, ALERT_FAILED_PINS):
                return
            email = self.db.query(TrackedEmail).filter(TrackedEmail.id == link.email_id).first()
            create_alert(
                self.db,
                ALERT_FAILED_PINS,
                "Multiple failed PIN attempts",
                f"Multiple failed PIN attempts detected for a secure link sent to {link.recipient_email}.",
                email_id=link.email_id,
                company_id=email.company_id if email else None,
                recipient_email=link.recipient_email,
                severity=SEVERITY_MEDIUM,
                details={"failed_attempts": failed, "link_status": link.status},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            log.exception("[AccessGate] failed-PIN alert not recorded for email_id=%s", link.email_id)
