"""Outbound secure email: owns the beacon id, secure documents and secure links."""
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class TrackedEmail(Base):
    __tablename__ = "tracked_emails"

    id = Column(Integer, primary_key=True, index=True)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=True)

    sender_email = Column(String(255), nullable=False, index=True)
    recipients = Column(JSON, nullable=False, default=list)  # normalized, lowercased addresses
    company_id = Column(String(64), nullable=True, index=True)

    # Embedded in the tracking pixel URL; resolves a beacon fetch back to this email
    beacon_id = Column(String(64), unique=True, nullable=False, index=True)

    tracking_enabled = Column(Boolean, nullable=False, default=True)
    security_enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    documents = relationship("SecureDocument", back_populates="email")


class SecureDocument(Base):
    """Descriptor handed out after a successful PIN check."""
    __tablename__ = "secure_documents"

    id = Column(Integer, primary_key=True, index=True)
    email_id = Column(Integer, ForeignKey("tracked_emails.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    attachment_filename = Column(String(255), nullable=True)
    attachment_url = Column(String(1000), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    email = relationship("TrackedEmail", back_populates="documents")
