"""Security alerts for the admin dashboard."""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import AdminIdentity, require_admin
from app.models.security_alert import SecurityAlert
from app.schemas.alerts import SecurityAlertResponse
from app.services.alerts import resolve_alert

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("", response_model=list[SecurityAlertResponse])
def list_alerts(
    resolved: bool | None = Query(None),
    email_id: int | None = Query(None, alias="emailId"),
    company_id: str | None = Query(None, alias="companyId"),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    """Newest first. Filter by resolution state, email or company."""
    q = db.query(SecurityAlert)
    if resolved is not None:
        q = q.filter(SecurityAlert.resolved.is_(resolved))
    if email_id is not None:
        q = q.filter(SecurityAlert.email_id == email_id)
    if company_id:
        q = q.filter(SecurityAlert.company_id == company_id)
    alerts = q.order_by(SecurityAlert.created_at.desc(), SecurityAlert.id.desc()).limit(limit).all()
    return [SecurityAlertResponse.model_validate(a) for a in alerts]


@router.post("/{alert_id}/resolve", response_model=SecurityAlertResponse)
def resolve(
    alert_id: int,
    db: Session = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    alert = db.query(SecurityAlert).filter(SecurityAlert.id == alert_id).first()
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return SecurityAlertResponse.model_validate(resolve_alert(db, alert))
