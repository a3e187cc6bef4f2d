"""Event API routes: delegates to event_service and occurrence_service."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from collective.auth import Principal, get_principal
from collective.database import get_db
from collective.models.rsvp import EventRSVP
from collective.schemas.event import (
    EventCreate, EventUpdate, EventOut, EventCancelRequest, SpotlightRequest,
    OverrideUpsert, OverrideOut, OccurrenceOut,
)
from collective.schemas.rsvp import RSVPCreate, RSVPOut
from collective.services import access_service, event_service, occurrence_service, offer_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Create an event hosted by the caller."""
    fields = payload.model_dump(exclude={"title", "start_time_utc", "end_time_utc"})
    return event_service.create_event(
        db,
        principal,
        title=payload.title,
        start_time_utc=payload.start_time_utc,
        end_time_utc=payload.end_time_utc,
        **fields,
    )


@router.get("/", response_model=list[EventOut])
def list_events(
    host_profile_id: Optional[str] = Query(None),
    include_cancelled: bool = Query(False),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """List events visible to the caller."""
    return event_service.list_events(
        db, principal, host_profile_id=host_profile_id, include_cancelled=include_cancelled,
    )


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return event_service.get_event(db, principal, event_id)


@router.put("/{event_id}", response_model=EventOut)
def update_event(
    event_id: str,
    payload: EventUpdate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Update an event (host or admin, optimistic locking enforced)."""
    updates = payload.model_dump(exclude_unset=True, exclude={"version"})
    return event_service.update_event(db, principal, event_id, payload.version, updates)


@router.post("/{event_id}/cancel", response_model=EventOut)
def cancel_event(
    event_id: str,
    payload: EventCancelRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return event_service.cancel_event(db, principal, event_id, payload.version)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(event_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    event_service.delete_event(db, principal, event_id)


@router.post("/{event_id}/verify", response_model=EventOut)
def verify_event(event_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    """Admin: mark the listing as checked."""
    return event_service.verify_event(db, principal, event_id)


@router.post("/{event_id}/spotlight", response_model=EventOut)
def set_spotlight(
    event_id: str,
    payload: SpotlightRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return event_service.set_spotlight(db, principal, event_id, payload.is_spotlight)


# ── Occurrences ────────────────────────────────────────────────────
@router.get("/{event_id}/occurrences", response_model=list[OccurrenceOut])
def list_occurrences(
    event_id: str,
    days: int = Query(90, ge=1, le=366),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Upcoming occurrences with per-date overrides applied."""
    return occurrence_service.list_occurrences(db, principal, event_id, days=days)


@router.get("/{event_id}/occurrences/{date_key}", response_model=OccurrenceOut)
def get_occurrence(
    event_id: str,
    date_key: str,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return occurrence_service.effective_occurrence(db, principal, event_id, date_key)


@router.put("/{event_id}/overrides/{date_key}", response_model=Optional[OverrideOut])
def upsert_override(
    event_id: str,
    date_key: str,
    payload: OverrideUpsert,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Patch or cancel one occurrence. An empty patch clears the override."""
    return occurrence_service.upsert_override(
        db, principal, event_id, date_key,
        override_patch=payload.override_patch,
        status=payload.status,
    )


# ── RSVPs ──────────────────────────────────────────────────────────
@router.post("/{event_id}/rsvps", response_model=RSVPOut, status_code=status.HTTP_201_CREATED)
def join_event(
    event_id: str,
    payload: RSVPCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """RSVP the caller: confirmed if a spot is free, otherwise waitlisted."""
    return offer_service.join_event(db, principal, event_id, notes=payload.notes)


@router.get("/{event_id}/rsvps", response_model=list[RSVPOut])
def list_event_rsvps(event_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    """RSVPs the caller may see: their own, or all of them for the host."""
    event_service.get_event(db, principal, event_id)
    rows = (
        db.query(EventRSVP)
        .filter(EventRSVP.event_id == event_id)
        .order_by(EventRSVP.created_at, EventRSVP.rsvp_id)
        .all()
    )
    return access_service.visible(db, principal, rows)
