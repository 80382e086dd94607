"""Append-only log of secure-link validation attempts, one row per attempt regardless of outcome."""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum as SQLEnum
from app.database import Base
from app.models.beacon_event import DeviceType
import enum


class AccessOutcome(str, enum.Enum):
    success = "success"
    invalid_pin = "invalid_pin"
    expired = "expired"
    revoked = "revoked"
    attempts_exceeded = "attempts_exceeded"


class AccessEvent(Base):
    __tablename__ = "access_events"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(128), nullable=False, index=True)
    email_id = Column(Integer, ForeignKey("tracked_emails.id"), nullable=False, index=True)
    recipient_email = Column(String(255), nullable=True)

    timestamp = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    device_type = Column(SQLEnum(DeviceType), nullable=False, default=DeviceType.desktop)
    location = Column(String(200), nullable=False, default="Unknown")

    outcome = Column(SQLEnum(AccessOutcome), nullable=False, index=True)
