"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table; no migration scripts needed for fresh installs.
"""
from app.models.tracked_email import TrackedEmail, SecureDocument
from app.models.secure_link import SecureLink, LinkStatus
from app.models.beacon_event import BeaconEvent, DeviceType
from app.models.access_event import AccessEvent, AccessOutcome
from app.models.security_alert import SecurityAlert

__all__ = [
    "TrackedEmail",
    "SecureDocument",
    "SecureLink",
    "LinkStatus",
    "BeaconEvent",
    "DeviceType",
    "AccessEvent",
    "AccessOutcome",
    "SecurityAlert",
]
