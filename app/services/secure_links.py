"""Secure link lookups and status transitions (revocation, administrator reset)."""
from __future__ import annotations

import secrets
from datetime import datetime, timezone

import bcrypt
from sqlalchemy.orm import Session

from app.models.secure_link import SecureLink, LinkStatus

REVOKED_ATTEMPTS_EXCEEDED = "attempts_exceeded"
REVOKED_ANOMALY = "anomaly"
REVOKED_ADMIN = "admin"

PIN_LENGTH = 6


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def generate_pin() -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(PIN_LENGTH))


def is_valid_pin_format(pin: str | None) -> bool:
    return bool(pin) and len(pin) == PIN_LENGTH and pin.isdigit()


def hash_pin(pin: str) -> str:
    return bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_pin(pin: str, pin_hash: str) -> bool:
    """bcrypt re-hashes the input and compares digests in constant time."""
    try:
        return bcrypt.checkpw((pin or "").encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        return False


def get_link(db: Session, token: str) -> SecureLink | None:
    if not token:
        return None
    return db.query(SecureLink).filter(SecureLink.token == token).first()


def revoke_link(db: Session, link: SecureLink, reason: str = REVOKED_ADMIN) -> SecureLink:
    """Revoke one link. Expired links stay expired; already revoked links keep their original reason."""
    if link.status == LinkStatus.active:
        link.status = LinkStatus.revoked
        link.revoked_at = datetime.now(timezone.utc)
        link.revoked_reason = reason
        db.commit()
        db.refresh(link)
    return link


def revoke_email_links(db: Session, email_id: int, reason: str) -> int:
    """Revoke every active link of one email. Returns how many links changed; commit remains with caller."""
    return (
        db.query(SecureLink)
        .filter(SecureLink.email_id == email_id, SecureLink.status == LinkStatus.active)
        .update(
            {
                SecureLink.status: LinkStatus.revoked,
                SecureLink.revoked_at: datetime.now(timezone.utc),
                SecureLink.revoked_reason: reason,
            },
            synchronize_session=False,
        )
    )


def reset_link(db: Session, link: SecureLink) -> SecureLink:
    """Administrator override: clear the failed-attempt counter and re-open a revoked link.
    This is the only path that lowers failed_attempts. Expired links are not re-opened."""
    if link.status == LinkStatus.expired:
        return link
    link.failed_attempts = 0
    link.status = LinkStatus.active
    link.revoked_at = None
    link.revoked_reason = None
    db.commit()
    db.refresh(link)
    return link
