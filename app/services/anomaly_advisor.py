"""AnomalyAdvisor: decide whether activity on one email warrants revoking its secure links.

Two stages: a volume threshold (below it the answer is always OK and the
reasoning service is never called), then a single reasoning call over the
serialized beacon and access logs. Only the exact reply REVOKE revokes;
unconfigured, failing, slow or ambiguous reasoning always yields OK.
"""
from __future__ import annotations

import enum
import json
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Protocol

from openai import OpenAI, OpenAIError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import SessionLocal
from app.models.access_event import AccessEvent
from app.models.beacon_event import BeaconEvent
from app.models.secure_link import SecureLink, LinkStatus
from app.models.tracked_email import TrackedEmail
from app.schemas.events import AccessEventResponse, BeaconEventResponse
from app.services.alerts import ALERT_SUSPICIOUS_ACTIVITY, SEVERITY_HIGH, create_alert
from app.services.errors import AdvisorUnavailable, StoreUnavailable
from app.services.event_store import EventLog, EventStore
from app.services.secure_links import REVOKED_ANOMALY, revoke_email_links

log = logging.getLogger("uvicorn.error")

DEFAULT_EVENT_THRESHOLD = 8

SYSTEM_PROMPT = "You are a security AI that reviews access logs for secure emails. Reply with a single word."

PROMPT_TEMPLATE = (
    "Given the following beacon logs and access attempts for a secure email, determine if there is "
    "suspicious activity (such as multiple devices, locations, or failed access attempts). If you think "
    "the email should be revoked for security, reply ONLY with 'REVOKE'. Otherwise, reply with 'OK'.\n\n"
    "Beacon Logs:\n{beacon_logs}\n\nAccess Logs:\n{access_logs}"
)


class RevokeDecision(str, enum.Enum):
    REVOKE = "REVOKE"
    OK = "OK"


class ReasoningClient(Protocol):
    def complete(self, prompt: str) -> str: ...


class OpenAIReasoningClient:
    """Chat-completions client. Requests are bounded by `timeout` and never retried."""

    def __init__(self, api_key: str, model: str, timeout: float = 5.0, client: OpenAI | None = None):
        self.model = model
        self.client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def complete(self, prompt: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
        except OpenAIError as e:
            raise AdvisorUnavailable(f"reasoning call failed: {e}") from e
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise AdvisorUnavailable("malformed reasoning response") from e
        if content is None:
            raise AdvisorUnavailable("empty reasoning response")
        return content


@lru_cache
def build_reasoning_client() -> ReasoningClient | None:
    settings = get_settings()
    if not settings.openai_api_key:
        return None
    return OpenAIReasoningClient(
        api_key=settings.openai_api_key,
        model=settings.advisor_model,
        timeout=settings.advisor_timeout_seconds,
    )


def parse_decision(text) -> RevokeDecision:
    if isinstance(text, str) and text.strip() == RevokeDecision.REVOKE.value:
        return RevokeDecision.REVOKE
    return RevokeDecision.OK


def build_prompt(events: EventLog) -> str:
    beacon_logs = [BeaconEventResponse.model_validate(e).model_dump(mode="json") for e in events.beacon_events]
    access_logs = [AccessEventResponse.model_validate(e).model_dump(mode="json") for e in events.access_events]
    return PROMPT_TEMPLATE.format(
        beacon_logs=json.dumps(beacon_logs, indent=2),
        access_logs=json.dumps(access_logs, indent=2),
    )


class AnomalyAdvisor:
    def __init__(self, store: EventStore, client: ReasoningClient | None, threshold: int = DEFAULT_EVENT_THRESHOLD):
        self.store = store
        self.client = client
        self.threshold = threshold

    def evaluate(self, email_id: int) -> RevokeDecision:
        try:
            if self.store.count_events(email_id) < self.threshold:
                return RevokeDecision.OK
            events = self.store.list_events(email_id)
        except StoreUnavailable as e:
            log.warning("[Advisor] email_id=%s events unavailable, defaulting to OK: %s", email_id, e)
            return RevokeDecision.OK
        if events.total < self.threshold:
            return RevokeDecision.OK

        try:
            text = self._ask(build_prompt(events))
        except AdvisorUnavailable as e:
            log.warning("[Advisor] email_id=%s reasoning unavailable, defaulting to OK: %s", email_id, e)
            return RevokeDecision.OK
        except Exception:
            log.exception("[Advisor] email_id=%s unexpected reasoning failure, defaulting to OK", email_id)
            return RevokeDecision.OK

        decision = parse_decision(text)
        log.info("[Advisor] email_id=%s events=%d decision=%s", email_id, events.total, decision.value)
        return decision

    def _ask(self, prompt: str) -> str:
        if self.client is None:
            raise AdvisorUnavailable("no reasoning client configured (set OPENAI_API_KEY)")
        return self.client.complete(prompt)


def build_advisor(db: Session) -> AnomalyAdvisor:
    settings = get_settings()
    return AnomalyAdvisor(EventStore(db), build_reasoning_client(), threshold=settings.anomaly_event_threshold)


def enforce(db: Session, advisor: AnomalyAdvisor, email_id: int | None, trigger: str) -> RevokeDecision:
    """Evaluate one email and, on REVOKE, revoke its active links and raise an alert."""
    if email_id is None:
        return RevokeDecision.OK
    decision = advisor.evaluate(email_id)
    if decision != RevokeDecision.REVOKE:
        return decision

    revoked = revoke_email_links(db, email_id, REVOKED_ANOMALY)
    if revoked:
        email = db.query(TrackedEmail).filter(TrackedEmail.id == email_id).first()
        create_alert(
            db,
            ALERT_SUSPICIOUS_ACTIVITY,
            "Secure links revoked automatically",
            f"Suspicious activity detected on email {email_id}. {revoked} secure link(s) revoked.",
            email_id=email_id,
            company_id=email.company_id if email else None,
            severity=SEVERITY_HIGH,
            details={"trigger": trigger, "revoked_links": revoked},
        )
    db.commit()
    log.warning("[Advisor] email_id=%s REVOKE (trigger=%s) revoked_links=%d", email_id, trigger, revoked)
    return decision


def emails_with_recent_activity(db: Session, since: datetime) -> list[int]:
    """Emails that still have active links and logged any event since `since`."""
    beacon_ids = {
        row[0]
        for row in db.query(BeaconEvent.email_id)
        .filter(BeaconEvent.timestamp >= since, BeaconEvent.email_id.isnot(None))
        .distinct()
    }
    access_ids = {row[0] for row in db.query(AccessEvent.email_id).filter(AccessEvent.timestamp >= since).distinct()}
    candidates = beacon_ids | access_ids
    if not candidates:
        return []
    active = {
        row[0]
        for row in db.query(SecureLink.email_id)
        .filter(SecureLink.email_id.in_(candidates), SecureLink.status == LinkStatus.active)
        .distinct()
    }
    return sorted(active)


def run_anomaly_sweep(session_factory=SessionLocal) -> int:
    """Scheduled job: evaluate every recently active email. Returns the number of REVOKE decisions."""
    settings = get_settings()
    since = datetime.now(timezone.utc) - timedelta(minutes=settings.anomaly_sweep_interval_minutes)
    db = session_factory()
    revoked = 0
    try:
        advisor = build_advisor(db)
        for email_id in emails_with_recent_activity(db, since):
            if enforce(db, advisor, email_id, trigger="sweep") == RevokeDecision.REVOKE:
                revoked += 1
    finally:
        db.close()
    if revoked:
        log.info("[Advisor] sweep revoked links on %d email(s)", revoked)
    return revoked
