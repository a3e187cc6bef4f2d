"""Venue API routes. Anyone can read; admins maintain the list."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from collective.auth import Principal, get_principal
from collective.database import get_db
from collective.models.event import Venue
from collective.schemas.event import VenueCreate, VenueOut
from collective.services import access_service
from collective.services.access_service import Operation

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=VenueOut, status_code=status.HTTP_201_CREATED)
def create_venue(payload: VenueCreate, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    venue = Venue(**payload.model_dump())
    access_service.authorize(db, principal, Operation.insert, venue)
    db.add(venue)
    db.commit()
    db.refresh(venue)
    logger.info("Created venue %s (%s)", venue.venue_id, venue.name)
    return venue


@router.get("/", response_model=list[VenueOut])
def list_venues(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return access_service.visible(db, principal, db.query(Venue).order_by(Venue.name).all())


@router.get("/{venue_id}", response_model=VenueOut)
def get_venue(venue_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return access_service.get_visible(db, principal, Venue, venue_id)
