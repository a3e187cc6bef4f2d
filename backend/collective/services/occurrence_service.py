"""Recurring occurrences and per-date overrides.

An override is a sparse patch over the base event for one date key. The
patch is checked against ALLOWED_OVERRIDE_FIELDS before it is stored or
merged; merging is a shallow dict update where the patch wins.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Mapping, Optional

import pytz
from sqlalchemy.orm import Session

from collective.auth import Principal
from collective.config import settings
from collective.errors import ConstraintViolation, NotFound
from collective.models.event import (
    ALLOWED_OVERRIDE_FIELDS, Event, OccurrenceOverride, OccurrenceStatus, Recurrence,
)
from collective.services import access_service
from collective.services.access_service import Operation
from collective.timeutils import utcnow

logger = logging.getLogger(__name__)

RECURRENCE_STEP_DAYS = {
    Recurrence.weekly: 7,
    Recurrence.biweekly: 14,
}


def validate_override_patch(patch: Any) -> dict[str, Any]:
    """Reject anything that is not a mapping of allow-listed keys."""
    if not isinstance(patch, Mapping):
        raise ConstraintViolation("override_patch must be a JSON object")
    unknown = sorted(set(patch) - ALLOWED_OVERRIDE_FIELDS)
    if unknown:
        raise ConstraintViolation({
            "message": "override_patch contains fields that cannot be overridden",
            "fields": unknown,
        })
    return dict(patch)


def merge_override(base: Mapping[str, Any], patch: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Shallow-merge ``patch`` over ``base`` (patch wins)."""
    merged = dict(base)
    if patch:
        merged.update(validate_override_patch(patch))
    return merged


def event_fields(event: Event) -> dict[str, Any]:
    """JSON-safe view of the overridable base fields."""
    return {
        "title": event.title,
        "description": event.description,
        "start_time_utc": event.start_time_utc.isoformat() if event.start_time_utc else None,
        "end_time_utc": event.end_time_utc.isoformat() if event.end_time_utc else None,
        "venue_id": event.venue_id,
        "capacity": event.capacity,
        "categories": list(event.categories or []),
        "is_published": event.is_published,
        "host_notes": event.host_notes,
        "cover_image_url": event.cover_image_url,
        "external_url": event.external_url,
    }


def local_date(moment: datetime) -> date:
    """Calendar date of ``moment`` in the community timezone."""
    tz = pytz.timezone(settings.COMMUNITY_TIMEZONE)
    if moment.tzinfo is None:
        moment = pytz.utc.localize(moment)
    return moment.astimezone(tz).date()


def parse_date_key(date_key: str) -> date:
    try:
        return datetime.strptime(date_key, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ConstraintViolation(f"Invalid date_key: {date_key!r} (expected YYYY-MM-DD)")


def occurrence_index(event: Event, date_key: str) -> Optional[int]:
    """Position of ``date_key`` in the event's series, or None if not on it."""
    first = local_date(event.start_time_utc)
    offset = (parse_date_key(date_key) - first).days
    if offset < 0:
        return None
    step = RECURRENCE_STEP_DAYS.get(event.recurrence)
    if step is None:
        return 0 if offset == 0 else None
    if offset % step:
        return None
    index = offset // step
    if event.max_occurrences is not None and index >= event.max_occurrences:
        return None
    return index


def expand_occurrences(event: Event, start: date, end: date) -> list[str]:
    """Date keys of the series falling within [start, end], bounded by max_occurrences."""
    first = local_date(event.start_time_utc)
    step = RECURRENCE_STEP_DAYS.get(event.recurrence)
    if step is None:
        return [first.isoformat()] if start <= first <= end else []

    keys = []
    index = 0
    if start > first:
        # Jump straight to the first occurrence on or after ``start``
        index = -(-(start - first).days // step)
    while event.max_occurrences is None or index < event.max_occurrences:
        current = first + timedelta(days=index * step)
        if current > end:
            break
        keys.append(current.isoformat())
        index += 1
    return keys


def _find_override(db: Session, event_id: str, date_key: str) -> Optional[OccurrenceOverride]:
    return (
        db.query(OccurrenceOverride)
        .filter(OccurrenceOverride.event_id == event_id, OccurrenceOverride.date_key == date_key)
        .first()
    )


def upsert_override(
    db: Session,
    principal: Principal,
    event_id: str,
    date_key: str,
    override_patch: Optional[Mapping[str, Any]] = None,
    status: Optional[str] = None,
) -> Optional[OccurrenceOverride]:
    """Create, update, or clear the override for one occurrence.

    An empty patch with a normal status removes the override row.
    """
    event = access_service.get_visible(db, principal, Event, event_id)
    if occurrence_index(event, date_key) is None:
        raise ConstraintViolation(f"{date_key} is not an occurrence of this event")

    patch = validate_override_patch(override_patch) if override_patch is not None else None
    try:
        occurrence_status = OccurrenceStatus(status) if status else OccurrenceStatus.normal
    except ValueError:
        raise ConstraintViolation(f"Invalid occurrence status: {status}")

    override = _find_override(db, event_id, date_key)
    if not patch and occurrence_status == OccurrenceStatus.normal:
        if override is not None:
            access_service.authorize(db, principal, Operation.delete, override)
            db.delete(override)
            db.commit()
            logger.info("Cleared override for event %s on %s", event_id, date_key)
        return None

    if override is None:
        override = OccurrenceOverride(event_id=event_id, date_key=date_key)
        operation = Operation.insert
    else:
        operation = Operation.update
    access_service.authorize(db, principal, operation, override)

    override.override_patch = patch or None
    override.status = occurrence_status
    if operation == Operation.insert:
        db.add(override)
    db.commit()
    db.refresh(override)
    logger.info("Saved override for event %s on %s (%s)", event_id, date_key, occurrence_status.value)
    return override


def _effective(event: Event, date_key: str, override: Optional[OccurrenceOverride]) -> dict[str, Any]:
    fields = merge_override(event_fields(event), override.override_patch if override else None)
    fields["event_id"] = event.event_id
    fields["date_key"] = date_key
    fields["status"] = override.status.value if override else OccurrenceStatus.normal.value
    return fields


def effective_occurrence(db: Session, principal: Principal, event_id: str, date_key: str) -> dict[str, Any]:
    """Base event fields with this date's override applied."""
    event = access_service.get_visible(db, principal, Event, event_id)
    if occurrence_index(event, date_key) is None:
        raise NotFound("Occurrence not found")
    return _effective(event, date_key, _find_override(db, event_id, date_key))


def list_occurrences(
    db: Session,
    principal: Principal,
    event_id: str,
    days: int = 90,
    now: Optional[datetime] = None,
) -> list[dict[str, Any]]:
    """Effective fields for each occurrence in the next ``days`` days."""
    event = access_service.get_visible(db, principal, Event, event_id)
    today = local_date(now or utcnow())
    keys = expand_occurrences(event, today, today + timedelta(days=days))
    overrides = {
        o.date_key: o
        for o in db.query(OccurrenceOverride).filter(
            OccurrenceOverride.event_id == event_id,
            OccurrenceOverride.date_key.in_(keys),
        )
    }
    return [_effective(event, key, overrides.get(key)) for key in keys]
