"""Beacon and access event views (dashboard logs and the advisor's serialized input)."""
from datetime import datetime
from pydantic import BaseModel
from app.models.access_event import AccessOutcome
from app.models.beacon_event import DeviceType


class BeaconEventResponse(BaseModel):
    id: int
    beacon_id: str
    email_id: int | None
    recipient_email: str
    timestamp: datetime
    ip_address: str | None
    user_agent: str | None
    device_type: DeviceType
    browser: str
    os: str
    country: str
    city: str
    company_id: str | None = None

    class Config:
        from_attributes = True


class AccessEventResponse(BaseModel):
    id: int
    token: str
    email_id: int
    recipient_email: str | None
    timestamp: datetime
    ip_address: str | None
    user_agent: str | None
    device_type: DeviceType
    location: str
    outcome: AccessOutcome

    class Config:
        from_attributes = True
