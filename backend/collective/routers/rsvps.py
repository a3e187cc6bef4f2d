"""RSVP API routes: the offer lifecycle for signed-in members."""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from collective.auth import Principal, get_principal, require_authenticated
from collective.database import get_db
from collective.models.rsvp import EventRSVP
from collective.schemas.rsvp import RSVPOut, ReleaseOut
from collective.services import offer_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/mine", response_model=list[RSVPOut])
def my_rsvps(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    require_authenticated(principal)
    return (
        db.query(EventRSVP)
        .filter(EventRSVP.profile_id == principal.uid)
        .order_by(EventRSVP.created_at.desc())
        .all()
    )


@router.post("/{rsvp_id}/confirm", response_model=RSVPOut)
def confirm_offer(rsvp_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    """Accept an offered spot. 409 once the offer window has closed."""
    return offer_service.confirm_offer(db, principal, rsvp_id)


@router.post("/{rsvp_id}/decline", response_model=ReleaseOut)
def decline_offer(rsvp_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    promoted = offer_service.decline_offer(db, principal, rsvp_id)
    return ReleaseOut(
        rsvp_id=rsvp_id,
        status="declined",
        promoted_rsvp_id=promoted.rsvp_id if promoted else None,
    )


@router.post("/{rsvp_id}/cancel", response_model=ReleaseOut)
def cancel_rsvp(rsvp_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    promoted = offer_service.cancel_rsvp(db, principal, rsvp_id)
    return ReleaseOut(
        rsvp_id=rsvp_id,
        status="cancelled",
        promoted_rsvp_id=promoted.rsvp_id if promoted else None,
    )
