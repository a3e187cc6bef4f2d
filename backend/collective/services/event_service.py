"""Core event service.

Responsibilities:
- Authorization through the row policies (host or admin may write)
- Optimistic locking via the version field
- Capacity changes feed the waitlist
- Admin-only verification and spotlight flags
"""
import logging
from datetime import datetime
from typing import Optional, Any

from sqlalchemy.orm import Session

from collective.auth import Principal
from collective.errors import ConstraintViolation, VersionConflict
from collective.models.event import Event, EventStatus, Recurrence
from collective.models.profile import Profile
from collective.services import access_service, offer_service
from collective.services.access_service import Operation
from collective.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

# Fields a host may change through update_event
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "host_notes",
    "cover_image_url",
    "external_url",
    "venue_id",
    "start_time_utc",
    "end_time_utc",
    "categories",
    "recurrence",
    "max_occurrences",
    "capacity",
    "offer_window_minutes",
    "is_published",
})
# Columns that may be changed but never cleared
REQUIRED_FIELDS = frozenset({"title", "start_time_utc", "categories", "recurrence", "is_published"})


def check_times(start: datetime, end: Optional[datetime]) -> None:
    if end is not None and as_utc(end) <= as_utc(start):
        raise ConstraintViolation("end_time_utc must be after start_time_utc")


def create_event(
    db: Session,
    principal: Principal,
    title: str,
    start_time_utc: datetime,
    end_time_utc: Optional[datetime] = None,
    **fields: Any,
) -> Event:
    """Create an event hosted by the calling profile."""
    check_times(start_time_utc, end_time_utc)
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ConstraintViolation(f"Unknown event fields: {sorted(unknown)}")

    event = Event(
        host_profile_id=principal.uid,
        title=title,
        start_time_utc=start_time_utc,
        end_time_utc=end_time_utc,
        status=EventStatus.active,
        version=1,
    )
    try:
        for name, value in fields.items():
            if value is not None:
                setattr(event, name, Recurrence(value) if name == "recurrence" else value)
    except ValueError as exc:
        raise ConstraintViolation(str(exc))

    access_service.authorize(db, principal, Operation.insert, event)
    if db.get(Profile, principal.uid) is None:
        raise ConstraintViolation("Create a profile before hosting events")

    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Created event '%s' (%s) hosted by %s", title, event.event_id, principal.uid)
    return event


def list_events(
    db: Session,
    principal: Principal,
    host_profile_id: Optional[str] = None,
    include_cancelled: bool = False,
) -> list[Event]:
    """Events the principal can see, soonest first."""
    query = db.query(Event)
    if host_profile_id:
        query = query.filter(Event.host_profile_id == host_profile_id)
    if not include_cancelled:
        query = query.filter(Event.status == EventStatus.active)
    return access_service.visible(db, principal, query.order_by(Event.start_time_utc).all())


def get_event(db: Session, principal: Principal, event_id: str) -> Event:
    return access_service.get_visible(db, principal, Event, event_id)


def _check_version(event: Event, version: int) -> None:
    if event.version != version:
        raise VersionConflict(
            f"Version mismatch: expected {event.version}, got {version}. Re-fetch and retry."
        )


def update_event(
    db: Session,
    principal: Principal,
    event_id: str,
    version: int,
    updates: dict[str, Any],
    now: Optional[datetime] = None,
) -> Event:
    """Update an event with optimistic locking and authorization."""
    event = get_event(db, principal, event_id)
    access_service.authorize(db, principal, Operation.update, event)
    _check_version(event, version)

    unknown = set(updates) - EDITABLE_FIELDS
    if unknown:
        raise ConstraintViolation(f"These fields cannot be edited: {sorted(unknown)}")
    cleared = sorted(name for name in REQUIRED_FIELDS & set(updates) if updates[name] is None)
    if cleared:
        raise ConstraintViolation(f"These fields cannot be null: {cleared}")

    old_capacity = event.capacity
    try:
        for name, value in updates.items():
            setattr(event, name, Recurrence(value) if name == "recurrence" and value else value)
    except ValueError as exc:
        db.rollback()
        raise ConstraintViolation(str(exc))
    if "start_time_utc" in updates or "end_time_utc" in updates:
        try:
            check_times(event.start_time_utc, event.end_time_utc)
        except ConstraintViolation:
            db.rollback()
            raise

    event.version += 1
    event.updated_at = utcnow()
    db.commit()
    db.refresh(event)
    logger.info("Updated event %s to version %d", event_id, event.version)

    if old_capacity is not None and (event.capacity is None or event.capacity > old_capacity):
        offered = offer_service.fill_open_slots(db, event_id, now=now)
        if offered:
            logger.info("Capacity raised on event %s; offered %d waitlisted spots", event_id, len(offered))
    return event


def cancel_event(db: Session, principal: Principal, event_id: str, version: int) -> Event:
    """Mark an event cancelled. RSVPs are kept for the record."""
    event = get_event(db, principal, event_id)
    access_service.authorize(db, principal, Operation.update, event)
    if event.status == EventStatus.cancelled:
        raise ConstraintViolation("Event is already cancelled")
    _check_version(event, version)

    event.status = EventStatus.cancelled
    event.version += 1
    event.updated_at = utcnow()
    db.commit()
    db.refresh(event)
    logger.info("Cancelled event %s", event_id)
    return event


def delete_event(db: Session, principal: Principal, event_id: str) -> None:
    event = get_event(db, principal, event_id)
    access_service.authorize(db, principal, Operation.delete, event)
    db.delete(event)
    db.commit()
    logger.info("Deleted event %s", event_id)


def verify_event(db: Session, principal: Principal, event_id: str, now: Optional[datetime] = None) -> Event:
    """Admin confirms the listing is still accurate."""
    access_service.require_admin(db, principal)
    event = get_event(db, principal, event_id)
    event.last_verified_at = now or utcnow()
    event.verified_by_profile_id = principal.uid
    db.commit()
    db.refresh(event)
    logger.info("Event %s verified by %s", event_id, principal.uid)
    return event


def set_spotlight(db: Session, principal: Principal, event_id: str, is_spotlight: bool) -> Event:
    access_service.require_admin(db, principal)
    event = get_event(db, principal, event_id)
    event.is_spotlight = is_spotlight
    db.commit()
    db.refresh(event)
    logger.info("Event %s spotlight set to %s", event_id, is_spotlight)
    return event
