"""Secure link PIN validation (public) and link administration (admin)."""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import AdminIdentity, get_access_gate, get_request_context, require_admin
from app.schemas.secure_email import SecureLinkView
from app.schemas.secure_link import SecureAccessGranted, SecureDocumentView
from app.services.access_gate import AccessErrorKind, AccessGate
from app.services.request_context import RequestContext
from app.services.secure_links import REVOKED_ADMIN, get_link, is_valid_pin_format, reset_link, revoke_link

router = APIRouter(prefix="/secure", tags=["secure"])
log = logging.getLogger("uvicorn.error")


_UNPARSEABLE = object()


async def read_json_body(request: Request):
    """The decoded JSON body, None for an empty body, or _UNPARSEABLE."""
    body = await request.body()
    if not body.strip():
        return None
    try:
        return json.loads(body)
    except ValueError:
        return _UNPARSEABLE


def _text_field(payload: dict, name: str) -> str | None:
    """A field as stripped text. Numbers are accepted as their digits; other types give None."""
    value = payload.get(name)
    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return None
    return str(value).strip()


@router.post("/validate")
def validate_pin(
    payload=Depends(read_json_body),
    context: RequestContext = Depends(get_request_context),
    gate: AccessGate = Depends(get_access_gate),
):
    """
    Validate a secure-link token and 6-digit PIN. Every failure kind answers 401;
    errorKind distinguishes wrong PIN, expiry, revocation and exhausted attempts.
    """
    if payload is _UNPARSEABLE:
        log.warning("[AccessGate] validate request body is not valid JSON")
        return JSONResponse(status_code=500, content={"error": "Validation failed"})
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        return JSONResponse(status_code=400, content={"error": "Request body must be a JSON object"})

    token = _text_field(payload, "token")
    pin = _text_field(payload, "pin")
    if token is None or pin is None:
        return JSONResponse(status_code=400, content={"error": "Token and PIN must be strings"})
    if not token or not pin:
        return JSONResponse(status_code=400, content={"error": "Token and PIN are required"})
    if not is_valid_pin_format(pin):
        return JSONResponse(status_code=400, content={"error": "PIN must be exactly 6 digits"})

    try:
        result = gate.validate(token, pin, context)
    except Exception:
        log.exception("[AccessGate] PIN validation error")
        return JSONResponse(status_code=500, content={"error": "Validation failed"})

    if not result.success:
        content = {"error": result.message, "errorKind": result.error_kind.value}
        if result.error_kind == AccessErrorKind.invalid_pin:
            content["attemptsRemaining"] = result.attempts_remaining
        return JSONResponse(status_code=401, content=content)

    link = result.secure_link
    granted = SecureAccessGranted(
        token=link.token,
        recipient_email=link.recipient_email,
        expires_at=link.expires_at,
        access_count=link.access_count,
        document=SecureDocumentView.model_validate(result.document) if result.document else None,
    )
    return {"success": True, "message": result.message, "secureLink": granted.model_dump(mode="json")}


@router.get("/links/{token}", response_model=SecureLinkView)
def get_secure_link(
    token: str,
    db: Session = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    link = get_link(db, token)
    if not link:
        raise HTTPException(status_code=404, detail="Secure link not found")
    return SecureLinkView.model_validate(link)


@router.post("/links/{token}/revoke", response_model=SecureLinkView)
def revoke_secure_link(
    token: str,
    db: Session = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    """Manually revoke a link. Expired links are left expired."""
    link = get_link(db, token)
    if not link:
        raise HTTPException(status_code=404, detail="Secure link not found")
    link = revoke_link(db, link, reason=REVOKED_ADMIN)
    log.info("[SecureLink] token=%s… revoked by %s", token[:8], admin.email)
    return SecureLinkView.model_validate(link)


@router.post("/links/{token}/reset", response_model=SecureLinkView)
def reset_secure_link(
    token: str,
    db: Session = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    """Administrator override: clear failed attempts and re-open a revoked link."""
    link = get_link(db, token)
    if not link:
        raise HTTPException(status_code=404, detail="Secure link not found")
    link = reset_link(db, link)
    log.info("[SecureLink] token=%s… reset by %s (status=%s)", token[:8], admin.email, link.status.value)
    return SecureLinkView.model_validate(link)
