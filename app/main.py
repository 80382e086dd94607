"""SecureBeacon – FastAPI application."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.database import Base, engine
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from app.models import (  # noqa: F401
    TrackedEmail, SecureDocument, SecureLink, BeaconEvent, AccessEvent, SecurityAlert,
)
from app.routers import alerts, beacon, emails, secure

log = logging.getLogger("uvicorn.error")

settings = get_settings()
app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(beacon.router)
app.include_router(secure.router)
app.include_router(emails.router)
app.include_router(alerts.router)

scheduler = None


@app.on_event("startup")
def startup():
    global scheduler
    if not settings.openai_api_key:
        log.info("[Advisor] OPENAI_API_KEY not set - anomaly advisor will always answer OK")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        log.warning("Database startup failed (tables skipped). Check DATABASE_URL and network. Error: %s", e)

    # Scheduler: optional periodic anomaly sweep over recently active emails
    if settings.anomaly_sweep_enabled:
        try:
            from apscheduler.schedulers.background import BackgroundScheduler
            from app.services.anomaly_advisor import run_anomaly_sweep
            scheduler = BackgroundScheduler()
            scheduler.add_job(run_anomaly_sweep, "interval", minutes=settings.anomaly_sweep_interval_minutes)
            scheduler.start()
            log.info("[Advisor] anomaly sweep every %d min", settings.anomaly_sweep_interval_minutes)
        except Exception:
            log.exception("[Advisor] could not start anomaly sweep scheduler")


@app.on_event("shutdown")
def shutdown():
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
