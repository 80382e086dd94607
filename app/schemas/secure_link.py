"""The secure document and link details handed out on a successful PIN check."""
from datetime import datetime
from pydantic import BaseModel


class SecureDocumentView(BaseModel):
    id: int
    title: str
    description: str | None = None
    attachment_filename: str | None = None
    attachment_url: str | None = None

    class Config:
        from_attributes = True


class SecureAccessGranted(BaseModel):
    token: str
    recipient_email: str
    expires_at: datetime | None
    access_count: int
    document: SecureDocumentView | None
