"""Pydantic schemas for guest email verification."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class CodeRequest(BaseModel):
    email: str
    action_type: str
    target_id: str
    guest_name: Optional[str] = None
    content: Optional[str] = None
    parent_id: Optional[str] = None


class CodeRequestOut(BaseModel):
    verification_id: str
    expires_at: datetime
    code: Optional[str] = None  # only echoed when EXPOSE_GUEST_CODES is on


class CodeVerify(BaseModel):
    verification_id: str
    code: str
    action_type: Optional[str] = None


class GuestVerificationOut(BaseModel):
    """Admin view. The code hash never leaves the server."""
    verification_id: str
    email: str
    guest_name: Optional[str] = None
    action_type: str
    target_type: str
    target_id: str
    event_id: Optional[str] = None
    code_expires_at: datetime
    code_attempts: int
    locked_until: Optional[datetime] = None
    consumed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
