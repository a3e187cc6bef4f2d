"""Pydantic schemas for ChangeReports and EventUpdateSuggestions."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class ChangeReportCreate(BaseModel):
    target_type: str  # event, venue
    target_id: str
    field_name: str
    proposed_value: str
    notes: Optional[str] = None
    reporter_email: Optional[str] = None


class ChangeReportOut(BaseModel):
    report_id: str
    target_type: str
    target_id: str
    field_name: str
    proposed_value: str
    notes: Optional[str] = None
    reporter_profile_id: Optional[str] = None
    status: str
    reviewed_by_profile_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    admin_response: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ReviewRequest(BaseModel):
    admin_response: Optional[str] = None


class SuggestionCreate(BaseModel):
    event_id: str
    field_name: str
    new_value: str
    notes: Optional[str] = None
    submitter_email: Optional[str] = None


class SuggestionOut(BaseModel):
    suggestion_id: str
    event_id: str
    field_name: str
    old_value: Optional[str] = None
    new_value: str
    notes: Optional[str] = None
    submitter_profile_id: Optional[str] = None
    status: str
    reviewed_by_profile_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    admin_response: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
