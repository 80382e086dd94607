"""
End-to-end smoke run – in-process via TestClient (no separate server).
Registers a secure email, opens the beacon, validates the PIN and reads stats.
Run: python scripts/smoke_api_inprocess.py
"""
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fastapi.testclient import TestClient  # noqa: E402
from app.database import engine, Base  # noqa: E402
from app import models  # noqa: F401,E402
from app.main import app  # noqa: E402
from app.services.auth import create_access_token  # noqa: E402

Base.metadata.create_all(bind=engine)

client = TestClient(app)
passed = failed = 0
admin_token = create_access_token("smoke", "smoke@securebeacon.test")
state = {}


def req(method, path, body=None, token=None, expect=None):
    kwargs = {"headers": {"Accept": "application/json"}}
    if token:
        kwargs["headers"]["Authorization"] = f"Bearer {token}"
    if body is not None:
        kwargs["json"] = body
    r = client.request(method, path, **kwargs)
    if expect is not None and r.status_code != expect:
        raise RuntimeError(f"HTTP {r.status_code} (expected {expect}): {r.text}")
    if expect is None and r.status_code >= 400:
        raise RuntimeError(f"HTTP {r.status_code}: {r.text}")
    if r.headers.get("content-type", "").startswith("application/json"):
        return r.json()
    return r.content


def test(name, fn):
    global passed, failed
    try:
        fn()
        print(f"  OK  {name}")
        passed += 1
    except Exception as e:
        print(f"  FAIL {name}: {e}")
        failed += 1


def main():
    print("SecureBeacon smoke run (in-process)\n" + "=" * 50)

    test("GET /", lambda: req("GET", "/"))
    test("GET /health", lambda: req("GET", "/health"))

    def register():
        r = req("POST", "/emails", {
            "subject": "Quarterly statement",
            "recipients": ["reader@securebeacon.test"],
            "attachments": [{"title": "Statement Q3", "filename": "q3.pdf"}],
        }, token=admin_token, expect=201)
        state["email_id"] = r["id"]
        state["beacon_id"] = r["beacon_id"]
        state["token"] = r["links"][0]["token"]
        state["pin"] = r["pin"]
    test("POST /emails", register)

    test("GET /beacon/{id}", lambda: req("GET", f"/beacon/{state['beacon_id']}?recipient=reader@securebeacon.test"))
    wrong = "000000" if state.get("pin") != "000000" else "111111"
    test("POST /secure/validate (wrong PIN)", lambda: req(
        "POST", "/secure/validate", {"token": state["token"], "pin": wrong}, expect=401))
    test("POST /secure/validate", lambda: req(
        "POST", "/secure/validate", {"token": state["token"], "pin": state["pin"]}, expect=200))
    test("GET /emails/{id}/stats", lambda: req("GET", f"/emails/{state['email_id']}/stats", token=admin_token))
    test("GET /beacon/analytics", lambda: req("GET", "/beacon/analytics?timeRange=7d", token=admin_token))
    test("GET /beacon/logs", lambda: req("GET", f"/beacon/logs?emailId={state['email_id']}", token=admin_token))
    test("GET /beacon/top-emails", lambda: req("GET", "/beacon/top-emails", token=admin_token))
    test("GET /alerts", lambda: req("GET", "/alerts", token=admin_token))

    print("\n" + "=" * 50)
    print(f"Passed: {passed}, Failed: {failed}")
    sys.exit(0 if failed == 0 else 1)


if __name__ == "__main__":
    main()
