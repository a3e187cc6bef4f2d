"""Waitlist offer lifecycle.

    waitlisted → offered → confirmed
                         → expired   (offer window elapsed, cascades)
                         → declined  (holder said no, cascades)

Every transition is a conditional UPDATE that only matches rows still in
the expected pre-state. A zero-row result means another worker already
moved the row: sweepers treat that as handled, user actions get
ConflictLost. Only the worker that wins a slot-releasing transition
offers the freed slot, so each freed slot is promoted at most once.

Waitlist order is FIFO by ``created_at`` (ties broken by id), never by
the order in which triggers arrive. Cancelled events never offer freed
slots.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from collective.auth import Principal
from collective.config import settings
from collective.errors import ConflictLost, ConstraintViolation, NotFound, OfferExpired
from collective.models.event import Event, EventStatus
from collective.models.rsvp import EventRSVP, RSVPStatus, SLOT_HOLDING, ACTIVE
from collective.services import access_service
from collective.services.access_service import Operation
from collective.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired: int = 0
    promoted: list[str] = field(default_factory=list)


def offer_window(event: Event) -> timedelta:
    return timedelta(minutes=event.offer_window_minutes or settings.OFFER_WINDOW_MINUTES)


def _held_slots(db: Session, event_id: str) -> int:
    return (
        db.query(func.count(EventRSVP.rsvp_id))
        .filter(EventRSVP.event_id == event_id, EventRSVP.status.in_(SLOT_HOLDING))
        .scalar()
    )


def open_slots(db: Session, event: Event) -> Optional[int]:
    """Free capacity, or None for unlimited events."""
    if event.capacity is None:
        return None
    return max(event.capacity - _held_slots(db, event.event_id), 0)


def _waitlist_query(db: Session, event_id: str):
    return (
        db.query(EventRSVP)
        .filter(EventRSVP.event_id == event_id, EventRSVP.status == RSVPStatus.waitlisted)
        .order_by(EventRSVP.created_at, EventRSVP.rsvp_id)
    )


def _transition(db: Session, rsvp_id: str, values: dict, *criteria) -> bool:
    """Conditional update. True only if this call moved the row."""
    affected = (
        db.query(EventRSVP)
        .filter(EventRSVP.rsvp_id == rsvp_id, *criteria)
        .update(values, synchronize_session=False)
    )
    return affected == 1


def _load(db: Session, rsvp_id: str) -> EventRSVP:
    rsvp = db.get(EventRSVP, rsvp_id)
    if rsvp is None:
        raise NotFound("RSVP not found")
    return rsvp


def _promote_next(db: Session, event: Event, now: datetime) -> Optional[EventRSVP]:
    """Offer one free slot to the head of the waitlist (no commit)."""
    if event.status != EventStatus.active:
        logger.info("Event %s is %s; not offering freed slot", event.event_id, event.status.value)
        return None
    slots = open_slots(db, event)
    if slots is not None and slots <= 0:
        return None

    expires_at = now + offer_window(event)
    while True:
        candidate = _waitlist_query(db, event.event_id).first()
        if candidate is None:
            logger.info("Waitlist empty for event %s; slot stays open", event.event_id)
            return None
        won = _transition(
            db,
            candidate.rsvp_id,
            {
                EventRSVP.status: RSVPStatus.offered,
                EventRSVP.offer_expires_at: expires_at,
                EventRSVP.updated_at: now,
            },
            EventRSVP.status == RSVPStatus.waitlisted,
        )
        if won:
            db.flush()
            db.refresh(candidate)
            logger.info(
                "Offered slot on event %s to RSVP %s (expires %s)",
                event.event_id, candidate.rsvp_id, expires_at.isoformat(),
            )
            return candidate
        # Someone else took this candidate; the next query skips it
        logger.warning("Lost promotion race for RSVP %s, trying next in line", candidate.rsvp_id)


def join_event(
    db: Session,
    principal: Principal,
    event_id: str,
    guest_name: Optional[str] = None,
    guest_email: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EventRSVP:
    """Create an RSVP: confirmed while capacity remains and nobody waits, else waitlisted."""
    now = now or utcnow()
    event = access_service.get_visible(db, principal, Event, event_id)
    if not event.is_published or event.status != EventStatus.active:
        raise ConstraintViolation("This event is not accepting RSVPs")

    # Opportunistic cleanup so stale offers do not hold slots
    sweep_expired_offers(db, now=now, event_id=event_id)

    rsvp = EventRSVP(
        event_id=event_id,
        profile_id=None if principal.is_service else principal.uid,
        guest_name=guest_name if principal.is_service else None,
        guest_email=guest_email.lower().strip() if principal.is_service and guest_email else None,
        notes=notes,
        created_at=now,
        updated_at=now,
    )
    access_service.authorize(db, principal, Operation.insert, rsvp)
    if rsvp.profile_id is None and rsvp.guest_email is None:
        raise ConstraintViolation("RSVP needs a profile or a guest email")

    existing = db.query(EventRSVP).filter(EventRSVP.event_id == event_id, EventRSVP.status.in_(ACTIVE))
    if rsvp.profile_id is not None:
        existing = existing.filter(EventRSVP.profile_id == rsvp.profile_id)
    else:
        existing = existing.filter(EventRSVP.guest_email == rsvp.guest_email)
    if existing.first() is not None:
        raise ConstraintViolation("Already RSVP'd to this event")

    slots = open_slots(db, event)
    has_waitlist = _waitlist_query(db, event_id).first() is not None
    if not has_waitlist and (slots is None or slots > 0):
        rsvp.status = RSVPStatus.confirmed
    else:
        rsvp.status = RSVPStatus.waitlisted

    db.add(rsvp)
    db.commit()
    db.refresh(rsvp)
    logger.info("RSVP %s joined event %s as %s", rsvp.rsvp_id, event_id, rsvp.status.value)
    return rsvp


def offer_next(db: Session, event_id: str, now: Optional[datetime] = None) -> Optional[EventRSVP]:
    """Offer one freed slot to the next FIFO candidate."""
    now = now or utcnow()
    event = db.get(Event, event_id)
    if event is None:
        raise NotFound("Event not found")
    promoted = _promote_next(db, event, now)
    db.commit()
    return promoted


def fill_open_slots(db: Session, event_id: str, now: Optional[datetime] = None) -> list[EventRSVP]:
    """Offer every free slot (e.g. after the host raised capacity)."""
    now = now or utcnow()
    event = db.get(Event, event_id)
    if event is None:
        raise NotFound("Event not found")
    offered = []
    while True:
        slots = open_slots(db, event)
        if slots is not None and slots <= 0:
            break
        promoted = _promote_next(db, event, now)
        if promoted is None:
            break
        offered.append(promoted)
    db.commit()
    return offered


def confirm_offer(
    db: Session,
    principal: Principal,
    rsvp_id: str,
    now: Optional[datetime] = None,
) -> EventRSVP:
    """Accept an offered spot strictly before its window closes."""
    now = now or utcnow()
    rsvp = _load(db, rsvp_id)
    access_service.authorize(db, principal, Operation.update, rsvp)

    if rsvp.status == RSVPStatus.confirmed:
        return rsvp
    if rsvp.status != RSVPStatus.offered:
        raise ConflictLost("No pending offer to confirm")

    expires_at = as_utc(rsvp.offer_expires_at)
    if expires_at is None or now >= expires_at:
        expire_offer(db, rsvp_id, now=now)
        raise OfferExpired()

    won = _transition(
        db,
        rsvp_id,
        {
            EventRSVP.status: RSVPStatus.confirmed,
            EventRSVP.offer_expires_at: None,
            EventRSVP.updated_at: now,
        },
        EventRSVP.status == RSVPStatus.offered,
        EventRSVP.offer_expires_at > now,
    )
    if not won:
        db.rollback()
        db.refresh(rsvp)
        if rsvp.status == RSVPStatus.confirmed:
            return rsvp
        raise ConflictLost("Offer is no longer pending")

    db.commit()
    db.refresh(rsvp)
    logger.info("RSVP %s confirmed offered spot on event %s", rsvp_id, rsvp.event_id)
    return rsvp


def _release(
    db: Session,
    rsvp: EventRSVP,
    new_status: RSVPStatus,
    now: datetime,
    *criteria,
) -> Optional[EventRSVP]:
    """Move ``rsvp`` to ``new_status``; offer its slot if it held one.

    Returns the promoted RSVP (if any). Raises ConflictLost when the
    conditional update loses.
    """
    held_slot = rsvp.status in SLOT_HOLDING
    won = _transition(
        db,
        rsvp.rsvp_id,
        {
            EventRSVP.status: new_status,
            EventRSVP.offer_expires_at: None,
            EventRSVP.updated_at: now,
        },
        *criteria,
    )
    if not won:
        db.rollback()
        raise ConflictLost(f"RSVP {rsvp.rsvp_id} was already moved by another request")

    promoted = None
    if held_slot:
        promoted = _promote_next(db, rsvp.event, now)
    db.commit()
    db.refresh(rsvp)
    return promoted


def _expire(db: Session, rsvp_id: str, now: datetime) -> tuple[bool, Optional[EventRSVP]]:
    rsvp = db.get(EventRSVP, rsvp_id)
    if rsvp is None or rsvp.status != RSVPStatus.offered:
        return False, None
    observed = rsvp.offer_expires_at
    if observed is None or as_utc(observed) > now:
        return False, None

    try:
        promoted = _release(
            db, rsvp, RSVPStatus.expired, now,
            EventRSVP.status == RSVPStatus.offered,
            EventRSVP.offer_expires_at == observed,
        )
    except ConflictLost:
        logger.info("Offer %s already expired elsewhere, skipping", rsvp_id)
        return False, None

    logger.info(
        "Offer %s on event %s expired; next offer: %s",
        rsvp_id, rsvp.event_id, promoted.rsvp_id if promoted else None,
    )
    return True, promoted


def expire_offer(db: Session, rsvp_id: str, now: Optional[datetime] = None) -> bool:
    """``offered → expired`` once the window has elapsed, then cascade.

    Idempotent: False when the offer is not (or no longer) expirable.
    """
    expired, _ = _expire(db, rsvp_id, now or utcnow())
    return expired


def decline_offer(
    db: Session,
    principal: Principal,
    rsvp_id: str,
    now: Optional[datetime] = None,
) -> Optional[EventRSVP]:
    """Holder turns the offer down; the slot cascades like an expiry."""
    now = now or utcnow()
    rsvp = _load(db, rsvp_id)
    access_service.authorize(db, principal, Operation.update, rsvp)
    if rsvp.status != RSVPStatus.offered:
        raise ConflictLost("No pending offer to decline")

    promoted = _release(db, rsvp, RSVPStatus.declined, now, EventRSVP.status == RSVPStatus.offered)
    logger.info("Offer %s declined on event %s", rsvp_id, rsvp.event_id)
    return promoted


def cancel_rsvp(
    db: Session,
    principal: Principal,
    rsvp_id: str,
    now: Optional[datetime] = None,
) -> Optional[EventRSVP]:
    """Withdraw an active RSVP; a held slot is offered to the waitlist."""
    now = now or utcnow()
    rsvp = _load(db, rsvp_id)
    access_service.authorize(db, principal, Operation.update, rsvp)
    if rsvp.status not in ACTIVE:
        raise ConflictLost("RSVP is not active")

    previous = rsvp.status
    promoted = _release(db, rsvp, RSVPStatus.cancelled, now, EventRSVP.status == previous)
    logger.info("RSVP %s cancelled (was %s) on event %s", rsvp_id, previous.value, rsvp.event_id)
    return promoted


def sweep_expired_offers(
    db: Session,
    now: Optional[datetime] = None,
    event_id: Optional[str] = None,
) -> SweepResult:
    """Expire every pending offer whose window has closed."""
    now = now or utcnow()
    query = db.query(EventRSVP.rsvp_id).filter(
        EventRSVP.status == RSVPStatus.offered,
        EventRSVP.offer_expires_at.isnot(None),
        EventRSVP.offer_expires_at <= now,
    )
    if event_id:
        query = query.filter(EventRSVP.event_id == event_id)
    due = [rsvp_id for (rsvp_id,) in query.order_by(EventRSVP.offer_expires_at).all()]

    result = SweepResult()
    for rsvp_id in due:
        expired, promoted = _expire(db, rsvp_id, now)
        if not expired:
            continue
        result.expired += 1
        if promoted is not None:
            result.promoted.append(promoted.rsvp_id)

    if due:
        logger.info("Offer sweep: %d due, %d expired, %d promoted", len(due), result.expired, len(result.promoted))
    return result
