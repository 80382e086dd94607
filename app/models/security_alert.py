"""Security alerts surfaced on the admin dashboard (failed PINs, suspicious opens, auto-revocations)."""
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from app.database import Base


class SecurityAlert(Base):
    __tablename__ = "security_alerts"

    id = Column(Integer, primary_key=True, index=True)

    email_id = Column(Integer, ForeignKey("tracked_emails.id"), nullable=True, index=True)
    company_id = Column(String(64), nullable=True, index=True)
    recipient_email = Column(String(255), nullable=True)

    # alert_type: Multiple Failed PINs | Suspicious Open | Suspicious Activity
    alert_type = Column(String(64), nullable=False, index=True)
    severity = Column(String(16), nullable=False, default="medium")  # medium | high
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Optional structured data (reasons, triggering request context)
    details = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)

    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
