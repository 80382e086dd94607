"""Security alert schemas."""
from datetime import datetime
from typing import Any
from pydantic import BaseModel


class SecurityAlertResponse(BaseModel):
    id: int
    email_id: int | None = None
    company_id: str | None = None
    recipient_email: str | None = None
    alert_type: str
    severity: str
    title: str
    message: str
    details: dict[str, Any] | None = None
    resolved: bool
    resolved_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True
