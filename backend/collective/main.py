"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from collective.config import settings
from collective.database import Base, engine

# Import routers
from collective.routers import admin, events, gallery, guest, moderation, profiles, rsvps, venues

# Import all models so Base.metadata knows about them
import collective.models  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title="Collective",
    description="Community events, RSVPs with waitlist offers, and guest actions by email code",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(profiles.router, prefix="/api/profiles", tags=["Profiles"])
app.include_router(venues.router, prefix="/api/venues", tags=["Venues"])
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(rsvps.router, prefix="/api/rsvps", tags=["RSVPs"])
app.include_router(moderation.reports_router, prefix="/api/change-reports", tags=["ChangeReports"])
app.include_router(moderation.suggestions_router, prefix="/api/suggestions", tags=["Suggestions"])
app.include_router(guest.router, prefix="/api/guest", tags=["Guest"])
app.include_router(gallery.router, prefix="/api/gallery", tags=["Gallery"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
