"""Append-only log of tracking-pixel fetches. No updates or deletes."""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum as SQLEnum
from app.database import Base
import enum


class DeviceType(str, enum.Enum):
    desktop = "Desktop"
    mobile = "Mobile"
    tablet = "Tablet"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BeaconEvent(Base):
    __tablename__ = "beacon_events"

    id = Column(Integer, primary_key=True, index=True)
    beacon_id = Column(String(64), nullable=False, index=True)
    # Null when the beacon id does not resolve to a registered email
    email_id = Column(Integer, ForeignKey("tracked_emails.id"), nullable=True, index=True)
    recipient_email = Column(String(255), nullable=False)
    company_id = Column(String(64), nullable=True, index=True)

    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    device_type = Column(SQLEnum(DeviceType), nullable=False, default=DeviceType.desktop)
    browser = Column(String(64), nullable=False, default="Unknown")
    os = Column(String(64), nullable=False, default="Unknown")

    country = Column(String(100), nullable=False, default="Unknown")
    city = Column(String(100), nullable=False, default="Unknown")

    referrer = Column(String(500), nullable=True)
    language = Column(String(32), nullable=True)

    @property
    def location(self) -> str:
        if self.city and self.city != "Unknown":
            return f"{self.city}, {self.country}"
        return self.country or "Unknown"
