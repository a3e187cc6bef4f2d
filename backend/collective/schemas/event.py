"""Pydantic schemas for Events, Venues and occurrences."""
from datetime import datetime
from typing import Optional, Any
from pydantic import BaseModel, Field


class EventCreate(BaseModel):
    title: str
    start_time_utc: datetime
    end_time_utc: Optional[datetime] = None
    description: Optional[str] = None
    host_notes: Optional[str] = None
    cover_image_url: Optional[str] = None
    external_url: Optional[str] = None
    venue_id: Optional[str] = None
    categories: list[str] = []
    recurrence: str = "none"
    max_occurrences: Optional[int] = Field(None, ge=1)
    capacity: Optional[int] = Field(None, ge=0)
    offer_window_minutes: Optional[int] = Field(None, ge=1)
    is_published: bool = False


class EventUpdate(BaseModel):
    title: Optional[str] = None
    start_time_utc: Optional[datetime] = None
    end_time_utc: Optional[datetime] = None
    description: Optional[str] = None
    host_notes: Optional[str] = None
    cover_image_url: Optional[str] = None
    external_url: Optional[str] = None
    venue_id: Optional[str] = None
    categories: Optional[list[str]] = None
    recurrence: Optional[str] = None
    max_occurrences: Optional[int] = Field(None, ge=1)
    capacity: Optional[int] = Field(None, ge=0)
    offer_window_minutes: Optional[int] = Field(None, ge=1)
    is_published: Optional[bool] = None
    version: int  # required for optimistic locking


class EventCancelRequest(BaseModel):
    version: int  # required for optimistic locking


class SpotlightRequest(BaseModel):
    is_spotlight: bool


class EventOut(BaseModel):
    event_id: str
    host_profile_id: str
    venue_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    host_notes: Optional[str] = None
    cover_image_url: Optional[str] = None
    external_url: Optional[str] = None
    start_time_utc: datetime
    end_time_utc: Optional[datetime] = None
    categories: list[str] = []
    recurrence: str
    max_occurrences: Optional[int] = None
    capacity: Optional[int] = None
    offer_window_minutes: Optional[int] = None
    is_published: bool
    status: str
    is_spotlight: bool
    last_verified_at: Optional[datetime] = None
    verified_by_profile_id: Optional[str] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OverrideUpsert(BaseModel):
    override_patch: Optional[dict[str, Any]] = None
    status: Optional[str] = None


class OverrideOut(BaseModel):
    override_id: str
    event_id: str
    date_key: str
    status: str
    override_patch: Optional[dict[str, Any]] = None

    model_config = {"from_attributes": True}


class OccurrenceOut(BaseModel):
    """Effective fields for one date: base event merged with its override."""
    event_id: str
    date_key: str
    status: str
    title: str
    description: Optional[str] = None
    start_time_utc: Optional[datetime] = None
    end_time_utc: Optional[datetime] = None
    venue_id: Optional[str] = None
    capacity: Optional[int] = None
    categories: list[str] = []
    is_published: bool
    host_notes: Optional[str] = None
    cover_image_url: Optional[str] = None
    external_url: Optional[str] = None


class VenueCreate(BaseModel):
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    website_url: Optional[str] = None


class VenueOut(BaseModel):
    venue_id: str
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    website_url: Optional[str] = None

    model_config = {"from_attributes": True}
