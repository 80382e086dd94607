from __future__ import annotations

from datetime import datetime, timedelta, timezone

from app.models.beacon_event import BeaconEvent
from app.models.secure_link import SecureLink, LinkStatus
from app.services.alerts import create_alert
from app.services.auth import create_access_token
from tests.utils import DEFAULT_PIN, IPHONE_UA, add_beacon_event, create_email, create_link


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").json()["status"] == "ok"


def test_beacon_returns_pixel_with_no_cache_headers(client, db_session):
    email = create_email(db_session)
    r = client.get(f"/beacon/{email.beacon_id}", params={"recipient": "reader@example.com"},
                   headers={"User-Agent": IPHONE_UA, "X-Forwarded-For": "198.51.100.9, 10.0.0.1"})
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/png"
    assert r.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    assert r.headers["pragma"] == "no-cache"
    assert r.headers["expires"] == "0"
    assert r.content.startswith(b"\x89PNG")

    db_session.expire_all()
    event = db_session.query(BeaconEvent).one()
    assert event.ip_address == "198.51.100.9"
    assert event.os == "iOS"


def test_unknown_beacon_gets_same_pixel(client, db_session):
    email = create_email(db_session)
    known = client.get(f"/beacon/{email.beacon_id}")
    unknown = client.get("/beacon/does-not-exist")
    assert unknown.status_code == 200
    assert unknown.content == known.content


def test_validate_requires_token_and_pin(client):
    assert client.post("/secure/validate", json={"token": "abc"}).status_code == 400
    assert client.post("/secure/validate", json={}).status_code == 400
    r = client.post("/secure/validate", json={"token": "abc", "pin": "12ab56"})
    assert r.status_code == 400


def test_validate_accepts_numeric_pin(client, db_session):
    link = create_link(db_session, create_email(db_session))
    r = client.post("/secure/validate", json={"token": link.token, "pin": int(DEFAULT_PIN)})
    assert r.status_code == 200
    assert r.json()["success"] is True

    r = client.post("/secure/validate", json={"token": "missing", "pin": 654321})
    assert r.status_code == 401


def test_validate_rejects_wrong_field_types(client):
    assert client.post("/secure/validate", json={"token": ["abc"], "pin": DEFAULT_PIN}).status_code == 400
    assert client.post("/secure/validate", json={"token": "abc", "pin": {"value": 1}}).status_code == 400
    assert client.post("/secure/validate", json={"token": "abc", "pin": True}).status_code == 400
    assert client.post("/secure/validate", json=["abc", DEFAULT_PIN]).status_code == 400


def test_validate_unparseable_body(client):
    r = client.post("/secure/validate", content=b"{not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 500
    assert r.json() == {"error": "Validation failed"}

    r = client.post("/secure/validate", content=b"", headers={"Content-Type": "application/json"})
    assert r.status_code == 400


def test_validate_unknown_token(client):
    r = client.post("/secure/validate", json={"token": "missing", "pin": DEFAULT_PIN})
    assert r.status_code == 401
    assert r.json()["errorKind"] == "not_found"


def test_validate_wrong_then_right_pin(client, db_session):
    link = create_link(db_session, create_email(db_session))

    r = client.post("/secure/validate", json={"token": link.token, "pin": "000000"})
    assert r.status_code == 401
    assert r.json() == {"error": "Invalid PIN", "errorKind": "invalid_pin", "attemptsRemaining": 4}

    r = client.post("/secure/validate", json={"token": link.token, "pin": DEFAULT_PIN})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["secureLink"]["token"] == link.token
    assert body["secureLink"]["access_count"] == 1
    assert body["secureLink"]["document"]["title"] == "Statement Q3"


def test_validate_revoked_link(client, db_session):
    link = create_link(db_session, create_email(db_session), status=LinkStatus.revoked)
    r = client.post("/secure/validate", json={"token": link.token, "pin": DEFAULT_PIN})
    assert r.status_code == 401
    assert r.json()["errorKind"] == "revoked"


def test_admin_routes_require_admin_role(client):
    assert client.get("/alerts").status_code == 401
    assert client.get("/alerts", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401
    viewer = create_access_token("2", "viewer@example.com", role="viewer")
    assert client.get("/alerts", headers={"Authorization": f"Bearer {viewer}"}).status_code == 403


def test_analytics_endpoint(client, db_session, admin_headers):
    email = create_email(db_session, company_id="acme")
    add_beacon_event(db_session, email)
    r = client.get("/beacon/analytics", params={"timeRange": "all", "companyId": "acme"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["total_opens"] == 1

    r = client.get("/beacon/analytics", params={"timeRange": "1y"}, headers=admin_headers)
    assert r.status_code == 400


def test_register_then_stats_then_evaluate(client, admin_headers):
    r = client.post(
        "/emails",
        json={
            "subject": "Contract",
            "recipients": ["reader@example.com"],
            "attachments": [{"title": "Contract v2", "filename": "contract.pdf"}],
        },
        headers=admin_headers,
    )
    assert r.status_code == 201
    created = r.json()
    assert len(created["pin"]) == 6
    assert len(created["links"]) == 1
    assert created["links"][0]["url"].endswith(f"/secure/{created['links'][0]['token']}")

    token = created["links"][0]["token"]
    assert client.post("/secure/validate", json={"token": token, "pin": created["pin"]}).status_code == 200

    r = client.get(f"/emails/{created['id']}/stats", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["stats"]["secure_accesses"] == 1

    r = client.post(f"/emails/{created['id']}/evaluate", headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == {"email_id": created["id"], "decision": "OK", "active_links": 1}

    assert client.get("/emails/9999/stats", headers=admin_headers).status_code == 404


def test_evaluate_revokes_on_decision(client, db_session, admin_headers, reasoning_client):
    email = create_email(db_session)
    link = create_link(db_session, email)
    for i in range(8):
        add_beacon_event(db_session, email, ip_address=f"203.0.113.{i + 1}")
    reasoning_client.reply = "REVOKE"

    r = client.post(f"/emails/{email.id}/evaluate", headers=admin_headers)
    assert r.json()["decision"] == "REVOKE"
    assert r.json()["active_links"] == 0
    db_session.expire_all()
    assert db_session.get(SecureLink, link.id).status == LinkStatus.revoked


def test_link_admin_revoke_and_reset(client, db_session, admin_headers):
    link = create_link(db_session, create_email(db_session))

    r = client.post(f"/secure/links/{link.token}/revoke", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "revoked"
    assert r.json()["revoked_reason"] == "admin"

    r = client.post(f"/secure/links/{link.token}/reset", headers=admin_headers)
    assert r.json()["status"] == "active"
    assert r.json()["failed_attempts"] == 0

    assert client.get(f"/secure/links/{link.token}", headers=admin_headers).json()["status"] == "active"
    assert client.post("/secure/links/nope/revoke", headers=admin_headers).status_code == 404


def test_alerts_list_and_resolve(client, db_session, admin_headers):
    email = create_email(db_session)
    alert = create_alert(db_session, "Suspicious Open", "Opened elsewhere", "Different IP", email_id=email.id)
    db_session.commit()

    r = client.get("/alerts", params={"resolved": "false"}, headers=admin_headers)
    assert [a["id"] for a in r.json()] == [alert.id]

    r = client.post(f"/alerts/{alert.id}/resolve", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["resolved"] is True

    assert client.get("/alerts", params={"resolved": "false"}, headers=admin_headers).json() == []
    assert client.post("/alerts/9999/resolve", headers=admin_headers).status_code == 404


def test_beacon_survives_logging_failure(client, db_session, monkeypatch):
    from app.services.beacon import PIXEL_PNG
    from app.services.event_store import EventStore

    def boom(self, event):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(EventStore, "append_beacon_event", boom)
    email = create_email(db_session)
    r = client.get(f"/beacon/{email.beacon_id}", params={"recipient": "reader@example.com"})
    assert r.status_code == 200
    assert r.content == PIXEL_PNG


def test_beacon_logs_newest_first_with_paging(client, db_session, admin_headers):
    now = datetime.now(timezone.utc)
    acme = create_email(db_session, company_id="acme")
    other = create_email(db_session, company_id="globex")
    for hours in (3, 1, 2):
        add_beacon_event(db_session, acme, timestamp=now - timedelta(hours=hours), ip_address=f"203.0.113.{hours}")
    add_beacon_event(db_session, other)

    assert client.get("/beacon/logs").status_code == 401

    r = client.get("/beacon/logs", params={"companyId": "acme"}, headers=admin_headers)
    assert r.status_code == 200
    assert [e["ip_address"] for e in r.json()] == ["203.0.113.1", "203.0.113.2", "203.0.113.3"]

    r = client.get("/beacon/logs", params={"emailId": acme.id, "limit": 1, "offset": 1}, headers=admin_headers)
    assert [e["ip_address"] for e in r.json()] == ["203.0.113.2"]

    # emailId wins over companyId
    r = client.get("/beacon/logs", params={"emailId": other.id, "companyId": "acme"}, headers=admin_headers)
    assert [e["email_id"] for e in r.json()] == [other.id]

    assert len(client.get("/beacon/logs", headers=admin_headers).json()) == 4


def test_top_emails_ranked_by_opens(client, db_session, admin_headers):
    busy = create_email(db_session, company_id="acme")
    quiet = create_email(db_session, company_id="acme")
    elsewhere = create_email(db_session, company_id="globex")
    for _ in range(3):
        add_beacon_event(db_session, busy, recipient_email="busy@example.com")
    add_beacon_event(db_session, quiet, recipient_email="quiet@example.com")
    add_beacon_event(db_session, elsewhere)
    add_beacon_event(db_session)  # unregistered beacons are not ranked

    r = client.get("/beacon/top-emails", params={"companyId": "acme"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == [
        {"email_id": busy.id, "open_count": 3, "recipient_email": "busy@example.com"},
        {"email_id": quiet.id, "open_count": 1, "recipient_email": "quiet@example.com"},
    ]

    r = client.get("/beacon/top-emails", params={"limit": 1}, headers=admin_headers)
    assert [row["email_id"] for row in r.json()] == [busy.id]
