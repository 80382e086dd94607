"""Security alert service. Alerts are raised by the secure-access core and resolved by administrators."""
from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from app.models.security_alert import SecurityAlert

ALERT_FAILED_PINS = "Multiple Failed PINs"
ALERT_SUSPICIOUS_OPEN = "Suspicious Open"
ALERT_SUSPICIOUS_ACTIVITY = "Suspicious Activity"

SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"

# Column limits (match model)
_TYPE_LEN = 64
_TITLE_LEN = 255
_RECIPIENT_LEN = 255
_MESSAGE_LEN = 100_000  # avoid unbounded Text blobs


def _sanitize_detail_value(v: Any) -> Any:
    """Convert to JSON-serializable value so details never raise on INSERT."""
    if v is None:
        return None
    if isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, enum.Enum):
        return getattr(v, "value", str(v))
    if isinstance(v, dict):
        return {str(k): _sanitize_detail_value(x) for k, x in v.items()}
    if isinstance(v, (list, tuple, set)):
        return [_sanitize_detail_value(x) for x in v]
    return str(v)


def _sanitize_details(details: dict[str, Any] | None) -> dict[str, Any] | None:
    if details is None:
        return None
    return {str(k): _sanitize_detail_value(v) for k, v in details.items()}


def alert_exists(db: Session, email_id: int | None, alert_type: str, unresolved_only: bool = True) -> bool:
    q = db.query(SecurityAlert).filter(SecurityAlert.email_id == email_id, SecurityAlert.alert_type == alert_type)
    if unresolved_only:
        q = q.filter(SecurityAlert.resolved.is_(False))
    return q.first() is not None


def create_alert(
    db: Session,
    alert_type: str,
    title: str,
    message: str,
    *,
    email_id: int | None = None,
    company_id: str | None = None,
    recipient_email: str | None = None,
    severity: str = SEVERITY_MEDIUM,
    details: dict[str, Any] | None = None,
) -> SecurityAlert:
    """Add one alert. String fields are truncated to column limits; commit remains with caller."""
    alert = SecurityAlert(
        alert_type=(alert_type or "")[:_TYPE_LEN].strip() or ALERT_SUSPICIOUS_ACTIVITY,
        title=(title or "")[:_TITLE_LEN].strip() or "-",
        message=(message or "")[:_MESSAGE_LEN].strip() or "-",
        email_id=email_id,
        company_id=company_id,
        recipient_email=(recipient_email[:_RECIPIENT_LEN] if recipient_email else None),
        severity=severity,
        details=_sanitize_details(details),
    )
    db.add(alert)
    db.flush()
    return alert


def resolve_alert(db: Session, alert: SecurityAlert) -> SecurityAlert:
    if not alert.resolved:
        alert.resolved = True
        alert.resolved_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(alert)
    return alert
