"""Append-only store for beacon-open and secure-access events. Never update or delete."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.access_event import AccessEvent, AccessOutcome
from app.models.beacon_event import BeaconEvent
from app.services.errors import StoreUnavailable

# Column limits (match models)
_IP_LEN = 64
_USER_AGENT_LEN = 500
_REFERRER_LEN = 500
_LANGUAGE_LEN = 32
_LOCATION_LEN = 200
_BEACON_ID_LEN = 64
_RECIPIENT_LEN = 255
_PLACE_LEN = 100


@dataclass
class EventLog:
    beacon_events: list[BeaconEvent] = field(default_factory=list)
    access_events: list[AccessEvent] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.beacon_events) + len(self.access_events)


def _clip(value: str | None, limit: int) -> str | None:
    return (str(value)[:limit] if value else None) or None


class EventStore:
    def __init__(self, db: Session):
        self.db = db

    def _append(self, entry):
        try:
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailable(f"could not append {type(entry).__name__}: {e}") from e
        return entry

    def append_beacon_event(self, event: BeaconEvent) -> BeaconEvent:
        """Durably append one beacon open. String fields are truncated to column limits."""
        event.beacon_id = _clip(event.beacon_id, _BEACON_ID_LEN) or "unknown"
        event.recipient_email = _clip(event.recipient_email, _RECIPIENT_LEN) or "unknown"
        event.ip_address = _clip(event.ip_address, _IP_LEN)
        event.user_agent = _clip(event.user_agent, _USER_AGENT_LEN)
        event.country = _clip(event.country, _PLACE_LEN) or "Unknown"
        event.city = _clip(event.city, _PLACE_LEN) or "Unknown"
        event.referrer = _clip(event.referrer, _REFERRER_LEN)
        event.language = _clip(event.language, _LANGUAGE_LEN)
        return self._append(event)

    def append_access_event(self, event: AccessEvent) -> AccessEvent:
        event.recipient_email = _clip(event.recipient_email, _RECIPIENT_LEN)
        event.ip_address = _clip(event.ip_address, _IP_LEN)
        event.user_agent = _clip(event.user_agent, _USER_AGENT_LEN)
        event.location = _clip(event.location, _LOCATION_LEN) or "Unknown"
        return self._append(event)

    def list_events(self, email_id: int) -> EventLog:
        try:
            beacons = (
                self.db.query(BeaconEvent)
                .filter(BeaconEvent.email_id == email_id)
                .order_by(BeaconEvent.timestamp, BeaconEvent.id)
                .all()
            )
            accesses = (
                self.db.query(AccessEvent)
                .filter(AccessEvent.email_id == email_id)
                .order_by(AccessEvent.timestamp, AccessEvent.id)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailable(f"could not list events for email {email_id}: {e}") from e
        return EventLog(beacon_events=beacons, access_events=accesses)

    def count_events(self, email_id: int) -> int:
        try:
            beacons = self.db.query(BeaconEvent).filter(BeaconEvent.email_id == email_id).count()
            accesses = self.db.query(AccessEvent).filter(AccessEvent.email_id == email_id).count()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailable(f"could not count events for email {email_id}: {e}") from e
        return beacons + accesses

    def count_failed_attempts(self, email_id: int) -> int:
        return (
            self.db.query(AccessEvent)
            .filter(AccessEvent.email_id == email_id, AccessEvent.outcome == AccessOutcome.invalid_pin)
            .count()
        )

    def first_beacon_event(self, email_id: int) -> BeaconEvent | None:
        return (
            self.db.query(BeaconEvent)
            .filter(BeaconEvent.email_id == email_id)
            .order_by(BeaconEvent.timestamp, BeaconEvent.id)
            .first()
        )

    def _beacon_query(self, company_id: str | None = None, since: datetime | None = None):
        q = self.db.query(BeaconEvent)
        if company_id:
            q = q.filter(BeaconEvent.company_id == company_id)
        if since is not None:
            q = q.filter(BeaconEvent.timestamp >= since)
        return q

    def list_beacon_events(self, company_id: str | None = None, since: datetime | None = None) -> list[BeaconEvent]:
        """Every beacon open in scope, newest first. The window is applied in SQL."""
        return self._beacon_query(company_id, since).order_by(BeaconEvent.timestamp.desc(), BeaconEvent.id.desc()).all()

    def count_beacon_events(self, company_id: str | None = None, since: datetime | None = None) -> int:
        return self._beacon_query(company_id, since).count()

    def page_beacon_events(
        self,
        email_id: int | None = None,
        company_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[BeaconEvent]:
        """One page of the open log, newest first. An email filter takes precedence over a company filter."""
        q = self.db.query(BeaconEvent)
        if email_id is not None:
            q = q.filter(BeaconEvent.email_id == email_id)
        elif company_id:
            q = q.filter(BeaconEvent.company_id == company_id)
        return (
            q.order_by(BeaconEvent.timestamp.desc(), BeaconEvent.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def top_opened_emails(self, company_id: str | None = None, limit: int = 10) -> list[tuple[int, int, str]]:
        """(email_id, open_count, recipient_email) for the most-opened registered emails."""
        opens = func.count(BeaconEvent.id)
        q = self.db.query(BeaconEvent.email_id, opens, func.min(BeaconEvent.recipient_email)).filter(
            BeaconEvent.email_id.isnot(None)
        )
        if company_id:
            q = q.filter(BeaconEvent.company_id == company_id)
        rows = q.group_by(BeaconEvent.email_id).order_by(opens.desc(), BeaconEvent.email_id).limit(limit).all()
        return [(email_id, count, recipient) for email_id, count, recipient in rows]
