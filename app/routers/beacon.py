"""Tracking pixel endpoint, open logs and beacon analytics."""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import (
    AdminIdentity,
    get_advisor_factory,
    get_beacon_emitter,
    get_request_context,
    get_session_factory,
    require_admin,
)
from app.schemas.analytics import BeaconAnalytics, TopEmail
from app.schemas.events import BeaconEventResponse
from app.services.analytics import beacon_analytics
from app.services.beacon import PIXEL_HEADERS, TrackingBeaconEmitter, enforce_after_open
from app.services.event_store import EventStore
from app.services.request_context import RequestContext

router = APIRouter(prefix="/beacon", tags=["beacon"])
log = logging.getLogger("uvicorn.error")


# Fixed paths are declared before /{beacon_id} so they are not taken for a beacon id
@router.get("/analytics", response_model=BeaconAnalytics)
def get_beacon_analytics(
    time_range: str = Query("7d", alias="timeRange"),
    company_id: str | None = Query(None, alias="companyId"),
    db: Session = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    """Aggregate opens by device, browser, OS, location and time of day."""
    try:
        return beacon_analytics(db, time_range=time_range, company_id=company_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/logs", response_model=list[BeaconEventResponse])
def get_beacon_logs(
    email_id: int | None = Query(None, alias="emailId"),
    company_id: str | None = Query(None, alias="companyId"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    """Open log, newest first. emailId wins over companyId when both are given."""
    try:
        events = EventStore(db).page_beacon_events(email_id=email_id, company_id=company_id, limit=limit, offset=offset)
    except SQLAlchemyError:
        log.exception("[Beacon] could not read beacon logs")
        raise HTTPException(status_code=500, detail="Failed to fetch beacon logs")
    return [BeaconEventResponse.model_validate(e) for e in events]


@router.get("/top-emails", response_model=list[TopEmail])
def get_top_emails(
    company_id: str | None = Query(None, alias="companyId"),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    """Registered emails ranked by number of opens."""
    try:
        rows = EventStore(db).top_opened_emails(company_id=company_id, limit=limit)
    except SQLAlchemyError:
        log.exception("[Beacon] could not rank opened emails")
        raise HTTPException(status_code=500, detail="Failed to fetch top emails")
    return [TopEmail(email_id=email_id, open_count=count, recipient_email=recipient) for email_id, count, recipient in rows]


@router.get("/{beacon_id}")
def track_open(
    beacon_id: str,
    background_tasks: BackgroundTasks,
    recipient: str | None = Query(None),
    context: RequestContext = Depends(get_request_context),
    emitter: TrackingBeaconEmitter = Depends(get_beacon_emitter),
    session_factory=Depends(get_session_factory),
    advisor_factory=Depends(get_advisor_factory),
):
    """Record an email open and return the 1x1 pixel. Always 200 with the same image."""
    pixel = emitter.record_open(beacon_id, recipient, context)
    background_tasks.add_task(enforce_after_open, session_factory, advisor_factory, beacon_id)
    return Response(content=pixel, media_type="image/png", headers=PIXEL_HEADERS)
