"""Secure email registration and per-email statistics schemas."""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator
from app.models.secure_link import LinkStatus
from app.schemas.events import AccessEventResponse, BeaconEventResponse


class AttachmentCreate(BaseModel):
    title: str
    description: str | None = None
    filename: str | None = None
    url: str | None = None


class SecureEmailCreate(BaseModel):
    subject: str
    body: str | None = None
    recipients: list[EmailStr] = Field(min_length=1)
    company_id: str | None = None
    attachments: list[AttachmentCreate] = []
    tracking_enabled: bool = True
    security_enabled: bool = True
    # When omitted a random 6-digit PIN is generated and returned once
    pin: str | None = None
    expiration_days: int | None = Field(default=None, ge=1, le=365)
    max_attempts: int | None = Field(default=None, ge=1, le=20)

    @field_validator("pin")
    @classmethod
    def pin_six_digits(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if len(v) != 6 or not v.isdigit():
            raise ValueError("PIN must be exactly 6 digits.")
        return v


class RecipientTracking(BaseModel):
    recipient_email: str
    beacon_url: str | None = None
    pixel_tag: str | None = None


class SecureLinkIssued(BaseModel):
    token: str
    recipient_email: str
    document_id: int
    url: str
    expires_at: datetime | None


class SecureEmailCreated(BaseModel):
    id: int
    beacon_id: str
    recipients: list[RecipientTracking]
    links: list[SecureLinkIssued]
    pin: str | None = None  # plain PIN, only returned at creation


class SecureLinkView(BaseModel):
    token: str
    email_id: int
    document_id: int
    recipient_email: str
    status: LinkStatus
    expires_at: datetime | None
    failed_attempts: int
    max_attempts: int
    access_count: int
    revoked_at: datetime | None = None
    revoked_reason: str | None = None

    class Config:
        from_attributes = True


class EmailStats(BaseModel):
    sent: int
    opens: int
    unique_opens: int
    open_rate: float
    secure_accesses: int
    failed_attempts: int


class EmailStatsResponse(BaseModel):
    email_id: int
    subject: str
    stats: EmailStats
    links: list[SecureLinkView]
    beacon_logs: list[BeaconEventResponse]
    access_logs: list[AccessEventResponse]


class EvaluateResponse(BaseModel):
    email_id: int
    decision: str
    active_links: int
