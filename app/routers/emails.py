"""Secure email registration, per-email stats, and on-demand anomaly evaluation (admin)."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import AdminIdentity, get_advisor, require_admin
from app.models.secure_link import SecureLink, LinkStatus
from app.models.tracked_email import TrackedEmail
from app.schemas.secure_email import EmailStatsResponse, EvaluateResponse, SecureEmailCreate, SecureEmailCreated
from app.services.anomaly_advisor import AnomalyAdvisor, enforce
from app.services.secure_email import email_stats, register_secure_email

router = APIRouter(prefix="/emails", tags=["emails"])
log = logging.getLogger("uvicorn.error")


def _get_email_or_404(db: Session, email_id: int) -> TrackedEmail:
    email = db.query(TrackedEmail).filter(TrackedEmail.id == email_id).first()
    if not email:
        raise HTTPException(status_code=404, detail="Email not found")
    return email


@router.post("", response_model=SecureEmailCreated, status_code=201)
def create_secure_email(
    data: SecureEmailCreate,
    db: Session = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    """
    Register an outgoing email: beacon id, documents, and one PIN-gated link per
    recipient and document. The plain PIN is only returned here.
    """
    return register_secure_email(db, data, sender_email=admin.email)


@router.get("/{email_id}/stats", response_model=EmailStatsResponse)
def get_email_stats(
    email_id: int,
    db: Session = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    email = _get_email_or_404(db, email_id)
    return email_stats(db, email)


@router.post("/{email_id}/evaluate", response_model=EvaluateResponse)
def evaluate_email(
    email_id: int,
    db: Session = Depends(get_db),
    advisor: AnomalyAdvisor = Depends(get_advisor),
    admin: AdminIdentity = Depends(require_admin),
):
    """Run the anomaly advisor now; a REVOKE decision revokes the email's active links."""
    email = _get_email_or_404(db, email_id)
    decision = enforce(db, advisor, email.id, trigger="admin")
    active = (
        db.query(SecureLink)
        .filter(SecureLink.email_id == email.id, SecureLink.status == LinkStatus.active)
        .count()
    )
    log.info("[Advisor] manual evaluation of email_id=%s by %s: %s", email.id, admin.email, decision.value)
    return EvaluateResponse(email_id=email.id, decision=decision.value, active_links=active)
