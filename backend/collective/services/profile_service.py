"""Profile service: self-service profile edits, admin role changes, referral capture."""
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from collective.auth import Principal
from collective.errors import ConstraintViolation, PermissionDenied
from collective.models.profile import Profile, UserRole
from collective.services import access_service
from collective.services.access_service import Operation
from collective.timeutils import utcnow

logger = logging.getLogger(__name__)

SELF_EDITABLE_FIELDS = frozenset({
    "display_name",
    "email",
    "is_fan",
    "is_songwriter",
    "is_studio",
    "is_host",
})
REFERRAL_FIELDS = frozenset({
    "referred_by_profile_id",
    "referral_via",
    "referral_source",
})


def create_profile(db: Session, principal: Principal, display_name: str, **fields: Any) -> Profile:
    """Create the caller's own profile. New profiles are always members."""
    unknown = set(fields) - SELF_EDITABLE_FIELDS
    if unknown:
        raise ConstraintViolation(f"Unknown profile fields: {sorted(unknown)}")
    profile = Profile(profile_id=principal.uid, display_name=display_name, role=UserRole.member)
    for name, value in fields.items():
        if value is not None:
            setattr(profile, name, value)

    access_service.authorize(db, principal, Operation.insert, profile)
    if db.get(Profile, principal.uid) is not None:
        raise ConstraintViolation("Profile already exists")
    db.add(profile)
    db.commit()
    db.refresh(profile)
    logger.info("Created profile %s (%s)", profile.profile_id, display_name)
    return profile


def _check_referrer(db: Session, profile: Profile, referrer_id: Optional[str]) -> None:
    if referrer_id is None:
        return
    if referrer_id == profile.profile_id:
        raise ConstraintViolation("A profile cannot refer itself")
    if db.get(Profile, referrer_id) is None:
        raise ConstraintViolation("Referring profile not found")


def update_profile(
    db: Session,
    principal: Principal,
    profile_id: str,
    updates: dict[str, Any],
    now: Optional[datetime] = None,
) -> Profile:
    """Partial update.

    Members may edit their own descriptive fields and set referral
    attribution once. Role changes and referral rewrites need an admin.
    """
    profile = access_service.get_visible(db, principal, Profile, profile_id)
    access_service.authorize(db, principal, Operation.update, profile)
    admin = principal.is_service or access_service.is_admin(db, principal)

    unknown = set(updates) - SELF_EDITABLE_FIELDS - REFERRAL_FIELDS - {"role"}
    if unknown:
        raise ConstraintViolation(f"These fields cannot be edited: {sorted(unknown)}")

    if "role" in updates:
        try:
            new_role = UserRole(updates["role"])
        except ValueError:
            raise ConstraintViolation(f"Invalid role: {updates['role']!r}")
        if new_role != profile.role and not admin:
            logger.warning("Role change on %s refused for %s", profile_id, principal.uid)
            raise PermissionDenied("Only admins can change roles")
        profile.role = new_role

    referral = {k: v for k, v in updates.items() if k in REFERRAL_FIELDS}
    if referral:
        if profile.referred_by_profile_id is not None and not admin:
            if referral.get("referred_by_profile_id", profile.referred_by_profile_id) != profile.referred_by_profile_id:
                raise PermissionDenied("Referral attribution is already set")
            referral = {}
        _check_referrer(db, profile, referral.get("referred_by_profile_id"))
        for name, value in referral.items():
            setattr(profile, name, value)
        if referral.get("referred_by_profile_id") and profile.referral_captured_at is None:
            profile.referral_captured_at = now or utcnow()

    for name, value in updates.items():
        if name in SELF_EDITABLE_FIELDS:
            setattr(profile, name, value)

    db.commit()
    db.refresh(profile)
    logger.info("Updated profile %s", profile_id)
    return profile


def capture_referral(
    db: Session,
    principal: Principal,
    referrer_id: str,
    via: Optional[str] = None,
    source: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Profile:
    """Record who invited the caller. First capture wins; later calls are no-ops."""
    profile = access_service.get_visible(db, principal, Profile, principal.uid)
    access_service.authorize(db, principal, Operation.update, profile)
    if profile.referred_by_profile_id is not None:
        return profile

    _check_referrer(db, profile, referrer_id)
    captured = (
        db.query(Profile)
        .filter(Profile.profile_id == profile.profile_id, Profile.referred_by_profile_id.is_(None))
        .update(
            {
                Profile.referred_by_profile_id: referrer_id,
                Profile.referral_via: via,
                Profile.referral_source: source,
                Profile.referral_captured_at: now or utcnow(),
            },
            synchronize_session=False,
        )
    )
    db.commit()
    db.refresh(profile)
    if captured:
        logger.info("Captured referral of %s by %s (via %s)", profile.profile_id, referrer_id, via)
    return profile
