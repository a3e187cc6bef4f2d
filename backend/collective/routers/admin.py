"""Admin-only operational routes."""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from collective.auth import Principal, get_principal
from collective.database import get_db
from collective.models.guest_verification import GuestVerification
from collective.schemas.guest import GuestVerificationOut
from collective.schemas.rsvp import SweepOut
from collective.services import access_service, offer_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/sweep-offers", response_model=SweepOut)
def sweep_offers(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    """Expire overdue offers now instead of waiting for the worker."""
    access_service.require_admin(db, principal)
    result = offer_service.sweep_expired_offers(db)
    db.commit()
    logger.info("Manual offer sweep by %s: %d expired", principal.uid, result.expired)
    return SweepOut(expired=result.expired, promoted=result.promoted)


@router.get("/guest-verifications", response_model=list[GuestVerificationOut])
def list_guest_verifications(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    access_service.require_admin(db, principal)
    rows = db.query(GuestVerification).order_by(GuestVerification.created_at.desc()).limit(200).all()
    return access_service.visible(db, principal, rows)
