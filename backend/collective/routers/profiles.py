"""Profile API routes."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from collective.auth import Principal, get_principal, require_authenticated
from collective.database import get_db
from collective.models.profile import Profile
from collective.schemas.profile import ProfileCreate, ProfileUpdate, ProfileOut, ReferralCapture
from collective.services import access_service, profile_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=ProfileOut, status_code=status.HTTP_201_CREATED)
def create_profile(
    payload: ProfileCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Create the caller's own profile."""
    require_authenticated(principal)
    fields = payload.model_dump(exclude={"display_name"})
    return profile_service.create_profile(db, principal, payload.display_name, **fields)


@router.get("/", response_model=list[ProfileOut])
def list_profiles(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    rows = db.query(Profile).order_by(Profile.display_name).all()
    return access_service.visible(db, principal, rows)


@router.get("/me", response_model=ProfileOut)
def get_my_profile(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    require_authenticated(principal)
    return access_service.get_visible(db, principal, Profile, principal.uid)


@router.post("/me/referral", response_model=ProfileOut)
def capture_referral(
    payload: ReferralCapture,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Record who invited the caller (first capture wins)."""
    require_authenticated(principal)
    return profile_service.capture_referral(
        db, principal, payload.referrer_id, via=payload.via, source=payload.source,
    )


@router.get("/{profile_id}", response_model=ProfileOut)
def get_profile(profile_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return access_service.get_visible(db, principal, Profile, profile_id)


@router.patch("/{profile_id}", response_model=ProfileOut)
def update_profile(
    profile_id: str,
    payload: ProfileUpdate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Partial update. Role changes are admin only."""
    updates = payload.model_dump(exclude_unset=True)
    return profile_service.update_profile(db, principal, profile_id, updates)
