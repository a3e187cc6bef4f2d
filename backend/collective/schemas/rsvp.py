"""Pydantic schemas for RSVPs and the offer sweep."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class RSVPCreate(BaseModel):
    notes: Optional[str] = None


class RSVPOut(BaseModel):
    rsvp_id: str
    event_id: str
    profile_id: Optional[str] = None
    guest_name: Optional[str] = None
    status: str
    offer_expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReleaseOut(BaseModel):
    """Result of a decline or cancel: the spot may have moved to someone else."""
    rsvp_id: str
    status: str
    promoted_rsvp_id: Optional[str] = None


class SweepOut(BaseModel):
    expired: int
    promoted: list[str]
