from __future__ import annotations

import pytest

from app.models.beacon_event import BeaconEvent, DeviceType
from app.models.secure_link import SecureLink, LinkStatus
from app.models.security_alert import SecurityAlert
from app.services.alerts import ALERT_SUSPICIOUS_OPEN
from app.services.anomaly_advisor import AnomalyAdvisor
from app.services.beacon import PIXEL_PNG, TrackingBeaconEmitter, beacon_url, enforce_after_open, pixel_tag
from app.services.errors import StoreUnavailable
from app.services.event_store import EventStore
from app.services.geo import GeoLocation
from tests.utils import IPHONE_UA, StubReasoningClient, add_beacon_event, create_email, create_link, make_context


class FixedGeo:
    def __init__(self, location: GeoLocation):
        self.location = location

    def resolve(self, ip_address):
        return self.location


class BrokenGeo:
    def resolve(self, ip_address):
        raise RuntimeError("geo service down")


@pytest.fixture()
def email(db_session):
    return create_email(db_session, company_id="acme")


def test_pixel_is_a_fixed_png():
    assert PIXEL_PNG.startswith(b"\x89PNG\r\n\x1a\n")
    assert len(PIXEL_PNG) == 68


def test_open_is_recorded_with_client_details(db_session, email):
    emitter = TrackingBeaconEmitter(db_session, geo=FixedGeo(GeoLocation(country="Canada", city="Toronto")))
    pixel = emitter.record_open(email.beacon_id, "reader@example.com", make_context(user_agent=IPHONE_UA))
    assert pixel == PIXEL_PNG

    event = db_session.query(BeaconEvent).one()
    assert event.email_id == email.id
    assert event.company_id == "acme"
    assert event.recipient_email == "reader@example.com"
    assert event.device_type == DeviceType.mobile
    assert event.browser == "Safari"
    assert event.os == "iOS"
    assert event.location == "Toronto, Canada"


def test_unregistered_beacon_is_still_logged(db_session):
    emitter = TrackingBeaconEmitter(db_session)
    assert emitter.record_open("not-registered", None, make_context()) == PIXEL_PNG
    event = db_session.query(BeaconEvent).one()
    assert event.email_id is None
    assert event.recipient_email == "unknown"


def test_oversized_identifiers_are_clipped_to_column_limits(db_session):
    emitter = TrackingBeaconEmitter(db_session)
    recipient = "r" * 290 + "@example.com"
    assert emitter.record_open("b" * 100, recipient, make_context()) == PIXEL_PNG

    event = db_session.query(BeaconEvent).one()
    assert event.beacon_id == "b" * 64
    assert event.recipient_email == recipient[:255]


def test_store_failure_still_returns_pixel(db_session, email, monkeypatch):
    def boom(self, event):
        raise StoreUnavailable("read-only replica")

    monkeypatch.setattr(EventStore, "append_beacon_event", boom)
    emitter = TrackingBeaconEmitter(db_session)
    assert emitter.record_open(email.beacon_id, "reader@example.com", make_context()) == PIXEL_PNG
    assert db_session.query(BeaconEvent).count() == 0


def test_geo_failure_still_returns_pixel(db_session, email):
    emitter = TrackingBeaconEmitter(db_session, geo=BrokenGeo())
    assert emitter.record_open(email.beacon_id, "reader@example.com", make_context()) == PIXEL_PNG


def test_suspicious_open_alert_raised_once(db_session, email):
    emitter = TrackingBeaconEmitter(db_session)
    emitter.record_open(email.beacon_id, "reader@example.com", make_context(ip="203.0.113.10"))
    assert db_session.query(SecurityAlert).count() == 0

    emitter.record_open(email.beacon_id, "reader@example.com", make_context(ip="198.51.100.4", user_agent=IPHONE_UA))
    emitter.record_open(email.beacon_id, "reader@example.com", make_context(ip="198.51.100.5"))

    alert = db_session.query(SecurityAlert).one()
    assert alert.alert_type == ALERT_SUSPICIOUS_OPEN
    assert alert.email_id == email.id
    assert "Different IP: 203.0.113.10 vs 198.51.100.4" in alert.details["reasons"]
    assert "Different device: Desktop vs Mobile" in alert.details["reasons"]


def test_same_source_reopen_raises_no_alert(db_session, email):
    emitter = TrackingBeaconEmitter(db_session)
    for _ in range(3):
        emitter.record_open(email.beacon_id, "reader@example.com", make_context())
    assert db_session.query(BeaconEvent).count() == 3
    assert db_session.query(SecurityAlert).count() == 0


def test_beacon_url_and_tag():
    url = beacon_url("abc123", "a+b@example.com", base_url="https://mail.example.com/")
    assert url == "https://mail.example.com/beacon/abc123?recipient=a%2Bb%40example.com"
    tag = pixel_tag("abc123", "a+b@example.com", base_url="https://mail.example.com")
    assert tag.startswith('<img src="https://mail.example.com/beacon/abc123?')
    assert 'width="1" height="1"' in tag


def test_enforce_after_open_revokes_on_decision(db_session, session_factory, email):
    link = create_link(db_session, email)
    add_beacon_event(db_session, email)
    client = StubReasoningClient("REVOKE")

    enforce_after_open(session_factory, lambda db: AnomalyAdvisor(EventStore(db), client, threshold=1), email.beacon_id)

    db_session.expire_all()
    assert db_session.get(SecureLink, link.id).status == LinkStatus.revoked
    assert len(client.calls) == 1


def test_enforce_after_open_swallows_failures(session_factory, email):
    def broken_factory(db):
        raise RuntimeError("no advisor")

    enforce_after_open(session_factory, broken_factory, email.beacon_id)
    enforce_after_open(session_factory, broken_factory, "unknown-beacon")
