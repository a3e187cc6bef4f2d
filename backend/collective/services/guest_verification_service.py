"""Guest action verification: email codes standing in for an account.

Issue: the backend (service principal only) stores a hashed six-digit
code bound to an email, one action type from the closed set, and a
target. The plaintext code leaves through email, out of band.

Redeem: the code must match an unconsumed, unexpired, unlocked row. The
row is consumed with a conditional update and the bound mutation runs in
the same transaction, so a code authorizes at most one mutation.
Wrong codes count against the row; the fifth failure locks it.
"""
import hashlib
import hmac
import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from collective.auth import Principal
from collective.config import settings
from collective.errors import (
    AlreadyConsumed, ConflictLost, ConstraintViolation, Locked, NotFound,
    PermissionDenied, RateLimited,
)
from collective.models.event import Event
from collective.models.gallery import Comment, CommentTarget
from collective.models.guest_verification import GuestVerification, GuestActionType
from collective.models.rsvp import EventRSVP, ACTIVE
from collective.services import offer_service
from collective.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_COMMENT_LENGTH = 2000

# Which comment target each comment action writes to
COMMENT_ACTIONS = {
    GuestActionType.comment: CommentTarget.event,
    GuestActionType.gallery_photo_comment: CommentTarget.gallery_photo,
    GuestActionType.gallery_album_comment: CommentTarget.gallery_album,
    GuestActionType.blog_comment: CommentTarget.blog_post,
    GuestActionType.profile_comment: CommentTarget.profile,
}
RSVP_ACTIONS = {GuestActionType.confirm, GuestActionType.cancel, GuestActionType.cancel_rsvp}


def parse_action_type(value: Any) -> GuestActionType:
    """Validate against the closed action set; unknown values are rejected."""
    try:
        return GuestActionType(value)
    except ValueError:
        raise ConstraintViolation(f"Unknown action_type: {value!r}")


def normalize_email(email: str) -> str:
    normalized = (email or "").strip().lower()
    if not EMAIL_RE.match(normalized):
        raise ConstraintViolation("Invalid email format")
    return normalized


def generate_code() -> str:
    return "".join(secrets.choice("0123456789") for _ in range(settings.GUEST_CODE_LENGTH))


def hash_code(code: str) -> str:
    return hashlib.sha256(code.strip().encode("utf-8")).hexdigest()


def _code_matches(code: str, code_hash: str) -> bool:
    return hmac.compare_digest(hash_code(code), code_hash)


def _check_target(db: Session, action: GuestActionType, email: str, target_id: str) -> tuple[str, Optional[str]]:
    """Resolve the target, returning (target_type, event_id)."""
    if action in COMMENT_ACTIONS:
        if action == GuestActionType.comment and db.get(Event, target_id) is None:
            raise NotFound("Event not found")
        return COMMENT_ACTIONS[action].value, target_id if action == GuestActionType.comment else None

    if action == GuestActionType.delete_comment:
        comment = db.get(Comment, target_id)
        if comment is None:
            raise NotFound("Comment not found")
        if not comment.guest_email:
            raise ConstraintViolation("This is not a guest comment")
        if comment.guest_email.lower() != email:
            raise PermissionDenied("Email does not match the comment author")
        if comment.is_deleted:
            raise ConstraintViolation("Comment is already deleted")
        return "comment", None

    if action == GuestActionType.timeslot:
        event = db.get(Event, target_id)
        if event is None or not event.is_published:
            raise NotFound("Event not found")
        return "event", event.event_id

    rsvp = db.get(EventRSVP, target_id)
    if rsvp is None or (rsvp.guest_email or "").lower() != email:
        raise NotFound("RSVP not found")
    if rsvp.status not in ACTIVE:
        raise ConstraintViolation("RSVP is not active")
    return "rsvp", rsvp.event_id


def _check_rate_limits(db: Session, email: str, now: datetime) -> None:
    locked = (
        db.query(GuestVerification.locked_until)
        .filter(
            GuestVerification.email == email,
            GuestVerification.locked_until.isnot(None),
            GuestVerification.locked_until > now,
        )
        .order_by(GuestVerification.locked_until.desc())
        .first()
    )
    if locked is not None:
        retry_after = int((as_utc(locked[0]) - now).total_seconds()) + 1
        raise Locked(retry_after=retry_after)

    recent = (
        db.query(func.count(GuestVerification.verification_id))
        .filter(GuestVerification.email == email, GuestVerification.created_at >= now - timedelta(hours=1))
        .scalar()
    )
    if recent >= settings.GUEST_MAX_CODES_PER_EMAIL_PER_HOUR:
        raise RateLimited(retry_after=3600)


def issue_verification(
    db: Session,
    principal: Principal,
    email: str,
    action_type: Any,
    target_id: str,
    guest_name: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> tuple[GuestVerification, str]:
    """Create a verification row and return it with the plaintext code."""
    if not principal.is_service:
        raise PermissionDenied("Guest verifications are issued by the backend only")
    if settings.GUEST_VERIFICATION_DISABLED:
        raise PermissionDenied("Guest verification is temporarily disabled")

    now = now or utcnow()
    action = parse_action_type(action_type)
    email = normalize_email(email)
    payload = dict(payload or {})

    if action in COMMENT_ACTIONS:
        content = (payload.get("content") or "").strip()
        if not content:
            raise ConstraintViolation("Comment content required")
        if len(content) > MAX_COMMENT_LENGTH:
            raise ConstraintViolation(f"Comment too long (max {MAX_COMMENT_LENGTH} characters)")
        payload["content"] = content
    if action in COMMENT_ACTIONS or action == GuestActionType.timeslot:
        guest_name = (guest_name or "").strip()
        if len(guest_name) < 2:
            raise ConstraintViolation("Guest name must be at least 2 characters")

    target_type, event_id = _check_target(db, action, email, target_id)
    _check_rate_limits(db, email, now)

    code = generate_code()
    verification = GuestVerification(
        email=email,
        guest_name=guest_name or None,
        action_type=action,
        target_type=target_type,
        target_id=target_id,
        event_id=event_id,
        payload=payload or None,
        code_hash=hash_code(code),
        code_expires_at=now + timedelta(minutes=settings.GUEST_CODE_EXPIRES_MINUTES),
        code_attempts=0,
        created_at=now,
        updated_at=now,
    )
    db.add(verification)
    db.commit()
    db.refresh(verification)
    logger.info(
        "Issued %s verification %s for target %s/%s",
        action.value, verification.verification_id, target_type, target_id,
    )
    return verification, code


def _record_failure(db: Session, verification: GuestVerification, now: datetime) -> None:
    """Count a wrong code, locking the row on the last allowed attempt. Always raises."""
    attempts = (verification.code_attempts or 0) + 1
    values: dict = {GuestVerification.code_attempts: attempts, GuestVerification.updated_at: now}
    if attempts >= settings.GUEST_MAX_CODE_ATTEMPTS:
        values[GuestVerification.locked_until] = now + timedelta(minutes=settings.GUEST_LOCKOUT_MINUTES)
    (
        db.query(GuestVerification)
        .filter(GuestVerification.verification_id == verification.verification_id)
        .update(values, synchronize_session=False)
    )
    db.commit()

    if attempts >= settings.GUEST_MAX_CODE_ATTEMPTS:
        logger.warning("Verification %s locked after %d failed attempts", verification.verification_id, attempts)
        raise Locked(retry_after=settings.GUEST_LOCKOUT_MINUTES * 60)
    raise ConstraintViolation({
        "message": "Invalid or expired code",
        "attempts_remaining": settings.GUEST_MAX_CODE_ATTEMPTS - attempts,
    })


def redeem_verification(
    db: Session,
    verification_id: str,
    code: str,
    expected_action: Optional[Any] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Check the code, consume it, and perform the bound mutation."""
    if settings.GUEST_VERIFICATION_DISABLED:
        raise PermissionDenied("Guest verification is temporarily disabled")
    now = now or utcnow()
    verification = db.get(GuestVerification, verification_id)
    if verification is None:
        raise NotFound("Invalid or expired code")
    if expected_action is not None and verification.action_type != parse_action_type(expected_action):
        raise NotFound("Invalid or expired code")
    if verification.consumed_at is not None:
        raise AlreadyConsumed("Code already used")

    locked_until = as_utc(verification.locked_until)
    if locked_until is not None and locked_until > now:
        raise Locked(retry_after=int((locked_until - now).total_seconds()) + 1)
    if as_utc(verification.code_expires_at) <= now:
        raise AlreadyConsumed("Code expired. Please request a new one.")

    if not _code_matches(code or "", verification.code_hash):
        _record_failure(db, verification, now)

    if verification.action_type == GuestActionType.timeslot or verification.action_type in RSVP_ACTIONS:
        # Settle stale offers first so the action itself never commits half-way
        offer_service.sweep_expired_offers(db, now=now, event_id=verification.event_id)

    consumed = (
        db.query(GuestVerification)
        .filter(
            GuestVerification.verification_id == verification_id,
            GuestVerification.consumed_at.is_(None),
        )
        .update(
            {GuestVerification.consumed_at: now, GuestVerification.updated_at: now},
            synchronize_session=False,
        )
    )
    if consumed != 1:
        db.rollback()
        raise AlreadyConsumed("Code already used")

    try:
        result = _perform_action(db, verification, now)
    except Exception:
        db.rollback()
        raise
    db.commit()
    logger.info(
        "Redeemed %s verification %s for target %s",
        verification.action_type.value, verification_id, verification.target_id,
    )
    return result


def _perform_action(db: Session, verification: GuestVerification, now: datetime) -> dict[str, Any]:
    """Apply the mutation the code was issued for (caller commits)."""
    action = verification.action_type

    if action in COMMENT_ACTIONS:
        payload = verification.payload or {}
        comment = Comment(
            target_type=COMMENT_ACTIONS[action],
            target_id=verification.target_id,
            parent_id=payload.get("parent_id"),
            guest_name=verification.guest_name,
            guest_email=verification.email,
            guest_verified=True,
            guest_verification_id=verification.verification_id,
            content=payload["content"],
        )
        db.add(comment)
        db.flush()
        return {"action": action.value, "comment_id": comment.comment_id}

    if action == GuestActionType.delete_comment:
        deleted = (
            db.query(Comment)
            .filter(
                Comment.comment_id == verification.target_id,
                Comment.guest_email == verification.email,
                Comment.is_deleted == False,  # noqa: E712
            )
            .update({Comment.is_deleted: True}, synchronize_session=False)
        )
        if deleted != 1:
            raise ConflictLost("Comment is already deleted")
        return {"action": action.value, "comment_id": verification.target_id}

    service = Principal.service()
    if action == GuestActionType.timeslot:
        # join_event commits; the consumed marker rides in the same commit
        rsvp = offer_service.join_event(
            db, service, verification.target_id,
            guest_name=verification.guest_name,
            guest_email=verification.email,
            now=now,
        )
        return {"action": action.value, "rsvp_id": rsvp.rsvp_id, "status": rsvp.status.value}

    if action == GuestActionType.confirm:
        rsvp = offer_service.confirm_offer(db, service, verification.target_id, now=now)
        return {"action": action.value, "rsvp_id": rsvp.rsvp_id, "status": rsvp.status.value}

    # cancel / cancel_rsvp
    promoted = offer_service.cancel_rsvp(db, service, verification.target_id, now=now)
    return {
        "action": action.value,
        "rsvp_id": verification.target_id,
        "status": "cancelled",
        "promoted_rsvp_id": promoted.rsvp_id if promoted else None,
    }
