from app.schemas.events import BeaconEventResponse, AccessEventResponse
from app.schemas.secure_email import SecureEmailCreate, SecureEmailCreated, EmailStatsResponse, SecureLinkView
from app.schemas.secure_link import SecureAccessGranted
from app.schemas.analytics import BeaconAnalytics, TopEmail
from app.schemas.alerts import SecurityAlertResponse
