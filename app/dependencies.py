"""Shared dependencies: DB session, request context, admin identity, core collaborators."""
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import SessionLocal, get_db
from app.services.access_gate import AccessGate
from app.services.anomaly_advisor import AnomalyAdvisor, build_advisor
from app.services.auth import ROLE_ADMIN, decode_token_with_error
from app.services.beacon import TrackingBeaconEmitter
from app.services.geo import GeoResolver, build_geo_resolver
from app.services.request_context import RequestContext, context_from_request

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AdminIdentity:
    subject: str
    email: str


def require_admin(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> AdminIdentity:
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    payload, _ = decode_token_with_error((credentials.credentials or "").strip())
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    if payload.get("role") != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin role required")
    return AdminIdentity(subject=str(payload.get("sub") or ""), email=payload.get("email") or "")


def get_request_context(request: Request) -> RequestContext:
    return context_from_request(request)


def get_session_factory():
    """Session factory for work that outlives the request (background tasks)."""
    return SessionLocal


def get_geo_resolver() -> GeoResolver:
    return build_geo_resolver()


def get_advisor_factory():
    """Builds an AnomalyAdvisor bound to a given session."""
    return build_advisor


def get_advisor(db: Session = Depends(get_db), advisor_factory=Depends(get_advisor_factory)) -> AnomalyAdvisor:
    return advisor_factory(db)


def get_access_gate(
    db: Session = Depends(get_db),
    advisor: AnomalyAdvisor = Depends(get_advisor),
    geo: GeoResolver = Depends(get_geo_resolver),
) -> AccessGate:
    return AccessGate(db, advisor=advisor, geo=geo, failed_pin_alert_threshold=get_settings().failed_pin_alert_threshold)


def get_beacon_emitter(
    db: Session = Depends(get_db),
    geo: GeoResolver = Depends(get_geo_resolver),
) -> TrackingBeaconEmitter:
    return TrackingBeaconEmitter(db, geo=geo)
