"""Community moderation queues: change reports and event update suggestions.

Anyone (signed in or not) may file. Only admins see the queues and move
an item out of ``pending``; the move is a conditional update so two
admins reviewing the same item cannot both apply it. Applying writes the
proposed value into an allow-listed field of the target row.
"""
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from collective.auth import Principal
from collective.errors import ConflictLost, ConstraintViolation, NotFound
from collective.models.event import Event, Venue
from collective.models.moderation import (
    ChangeReport, EventUpdateSuggestion, ReportTarget, ReviewStatus,
)
from collective.services import access_service, event_service
from collective.services.access_service import Operation
from collective.timeutils import utcnow

logger = logging.getLogger(__name__)

APPLICABLE_FIELDS = {
    ReportTarget.event: frozenset({
        "title", "description", "external_url", "cover_image_url",
        "venue_id", "start_time_utc", "end_time_utc",
    }),
    ReportTarget.venue: frozenset({"name", "address", "city", "website_url"}),
}
TARGET_MODELS = {
    ReportTarget.event: Event,
    ReportTarget.venue: Venue,
}
DATETIME_FIELDS = frozenset({"start_time_utc", "end_time_utc"})


def _target_type(value: Any) -> ReportTarget:
    try:
        return ReportTarget(value)
    except ValueError:
        raise ConstraintViolation(f"Invalid target_type: {value!r}")


def _check_field(target: ReportTarget, field_name: str) -> None:
    if field_name not in APPLICABLE_FIELDS[target]:
        raise ConstraintViolation(
            f"'{field_name}' cannot be changed through a report. "
            f"Allowed: {sorted(APPLICABLE_FIELDS[target])}"
        )


def _coerce(field_name: str, value: str) -> Any:
    if field_name in DATETIME_FIELDS:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            raise ConstraintViolation(f"{field_name} must be an ISO-8601 timestamp")
    return value if value and value.strip() else None


def _apply_field(db: Session, target: ReportTarget, target_id: str, field_name: str, value: str) -> None:
    """Write one reviewed value onto its target (caller commits)."""
    _check_field(target, field_name)
    row = db.get(TARGET_MODELS[target], target_id)
    if row is None:
        raise NotFound(f"{target.value.capitalize()} not found")
    coerced = _coerce(field_name, value)
    if coerced is None and not TARGET_MODELS[target].__table__.c[field_name].nullable:
        raise ConstraintViolation(f"{field_name} cannot be empty")
    setattr(row, field_name, coerced)
    if target == ReportTarget.event:
        if field_name in DATETIME_FIELDS:
            event_service.check_times(row.start_time_utc, row.end_time_utc)
        row.version += 1
        row.updated_at = utcnow()


def _review(db: Session, model: Any, pk_column: Any, pk: str, values: dict) -> bool:
    affected = (
        db.query(model)
        .filter(pk_column == pk, model.status == ReviewStatus.pending)
        .update(values, synchronize_session=False)
    )
    return affected == 1


# ── Change reports ─────────────────────────────────────────────────
def create_change_report(
    db: Session,
    principal: Principal,
    target_type: Any,
    target_id: str,
    field_name: str,
    proposed_value: str,
    notes: Optional[str] = None,
    reporter_email: Optional[str] = None,
) -> ChangeReport:
    target = _target_type(target_type)
    _check_field(target, field_name)
    if db.get(TARGET_MODELS[target], target_id) is None:
        raise NotFound(f"{target.value.capitalize()} not found")

    report = ChangeReport(
        target_type=target,
        target_id=target_id,
        field_name=field_name,
        proposed_value=proposed_value,
        notes=notes,
        reporter_profile_id=principal.uid,
        reporter_email=reporter_email.strip().lower() if reporter_email else None,
        status=ReviewStatus.pending,
    )
    access_service.authorize(db, principal, Operation.insert, report)
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("Change report %s filed for %s %s (%s)", report.report_id, target.value, target_id, field_name)
    return report


def list_change_reports(
    db: Session,
    principal: Principal,
    status: Optional[str] = None,
) -> list[ChangeReport]:
    """Admin queue; everyone else gets an empty list."""
    query = db.query(ChangeReport)
    if status:
        try:
            query = query.filter(ChangeReport.status == ReviewStatus(status))
        except ValueError:
            raise ConstraintViolation(f"Invalid status: {status!r}")
    return access_service.visible(db, principal, query.order_by(ChangeReport.created_at.desc()).all())


def apply_change_report(
    db: Session,
    principal: Principal,
    report_id: str,
    admin_response: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ChangeReport:
    access_service.require_admin(db, principal)
    report = access_service.get_visible(db, principal, ChangeReport, report_id)
    if report.status != ReviewStatus.pending:
        raise ConflictLost(f"Change report is already {report.status.value}")

    won = _review(db, ChangeReport, ChangeReport.report_id, report_id, {
        ChangeReport.status: ReviewStatus.applied,
        ChangeReport.reviewed_by_profile_id: principal.uid,
        ChangeReport.reviewed_at: now or utcnow(),
        ChangeReport.admin_response: admin_response,
    })
    if not won:
        db.rollback()
        raise ConflictLost("Change report was reviewed by someone else")
    try:
        _apply_field(db, report.target_type, report.target_id, report.field_name, report.proposed_value)
    except Exception:
        db.rollback()
        raise
    db.commit()
    db.refresh(report)
    logger.info("Change report %s applied by %s", report_id, principal.uid)
    return report


def reject_change_report(
    db: Session,
    principal: Principal,
    report_id: str,
    admin_response: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ChangeReport:
    access_service.require_admin(db, principal)
    report = access_service.get_visible(db, principal, ChangeReport, report_id)
    won = _review(db, ChangeReport, ChangeReport.report_id, report_id, {
        ChangeReport.status: ReviewStatus.rejected,
        ChangeReport.reviewed_by_profile_id: principal.uid,
        ChangeReport.reviewed_at: now or utcnow(),
        ChangeReport.admin_response: admin_response,
    })
    if not won:
        db.rollback()
        raise ConflictLost(f"Change report is already {report.status.value}")
    db.commit()
    db.refresh(report)
    logger.info("Change report %s rejected by %s", report_id, principal.uid)
    return report


# ── Event update suggestions ───────────────────────────────────────
def create_suggestion(
    db: Session,
    principal: Principal,
    event_id: str,
    field_name: str,
    new_value: str,
    notes: Optional[str] = None,
    submitter_email: Optional[str] = None,
) -> EventUpdateSuggestion:
    _check_field(ReportTarget.event, field_name)
    event = db.get(Event, event_id)
    if event is None or not event.is_published:
        raise NotFound("Event not found")

    old_value = getattr(event, field_name)
    suggestion = EventUpdateSuggestion(
        event_id=event_id,
        field_name=field_name,
        old_value=old_value.isoformat() if isinstance(old_value, datetime) else old_value,
        new_value=new_value,
        notes=notes,
        submitter_profile_id=principal.uid,
        submitter_email=submitter_email.strip().lower() if submitter_email else None,
        status=ReviewStatus.pending,
    )
    access_service.authorize(db, principal, Operation.insert, suggestion)
    db.add(suggestion)
    db.commit()
    db.refresh(suggestion)
    logger.info("Suggestion %s filed for event %s (%s)", suggestion.suggestion_id, event_id, field_name)
    return suggestion


def list_suggestions(
    db: Session,
    principal: Principal,
    event_id: Optional[str] = None,
    status: Optional[str] = None,
) -> list[EventUpdateSuggestion]:
    """Admins see all suggestions; signed-in submitters see their own."""
    query = db.query(EventUpdateSuggestion)
    if event_id:
        query = query.filter(EventUpdateSuggestion.event_id == event_id)
    if status:
        try:
            query = query.filter(EventUpdateSuggestion.status == ReviewStatus(status))
        except ValueError:
            raise ConstraintViolation(f"Invalid status: {status!r}")
    rows = query.order_by(EventUpdateSuggestion.created_at.desc()).all()
    return access_service.visible(db, principal, rows)


def review_suggestion(
    db: Session,
    principal: Principal,
    suggestion_id: str,
    approve: bool,
    admin_response: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EventUpdateSuggestion:
    access_service.require_admin(db, principal)
    suggestion = access_service.get_visible(db, principal, EventUpdateSuggestion, suggestion_id)
    outcome = ReviewStatus.applied if approve else ReviewStatus.rejected

    won = _review(db, EventUpdateSuggestion, EventUpdateSuggestion.suggestion_id, suggestion_id, {
        EventUpdateSuggestion.status: outcome,
        EventUpdateSuggestion.reviewed_by_profile_id: principal.uid,
        EventUpdateSuggestion.reviewed_at: now or utcnow(),
        EventUpdateSuggestion.admin_response: admin_response,
    })
    if not won:
        db.rollback()
        raise ConflictLost(f"Suggestion is already {suggestion.status.value}")
    if approve:
        try:
            _apply_field(db, ReportTarget.event, suggestion.event_id, suggestion.field_name, suggestion.new_value)
        except Exception:
            db.rollback()
            raise
    db.commit()
    db.refresh(suggestion)
    logger.info("Suggestion %s %s by %s", suggestion_id, outcome.value, principal.uid)
    return suggestion
