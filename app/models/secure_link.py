"""PIN-gated secure link. Never hard-deleted: expiry and revocation are status transitions."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum


class LinkStatus(str, enum.Enum):
    active = "active"
    revoked = "revoked"
    expired = "expired"


class SecureLink(Base):
    __tablename__ = "secure_links"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(128), unique=True, nullable=False, index=True)

    email_id = Column(Integer, ForeignKey("tracked_emails.id"), nullable=False, index=True)
    document_id = Column(Integer, ForeignKey("secure_documents.id"), nullable=False)
    recipient_email = Column(String(255), nullable=False, index=True)

    pin_hash = Column(String(255), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    status = Column(SQLEnum(LinkStatus), nullable=False, default=LinkStatus.active)
    # Only an administrator reset lowers this; validation only ever increments it
    failed_attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=5)
    access_count = Column(Integer, nullable=False, default=0)

    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_reason = Column(String(64), nullable=True)  # attempts_exceeded | anomaly | admin

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    email = relationship("TrackedEmail", backref="secure_links")
    document = relationship("SecureDocument")
