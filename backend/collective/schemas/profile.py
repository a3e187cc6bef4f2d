"""Pydantic schemas for Profiles."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class ProfileCreate(BaseModel):
    display_name: str
    email: Optional[str] = None
    is_fan: bool = False
    is_songwriter: bool = False
    is_studio: bool = False
    is_host: bool = False


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    email: Optional[str] = None
    is_fan: Optional[bool] = None
    is_songwriter: Optional[bool] = None
    is_studio: Optional[bool] = None
    is_host: Optional[bool] = None
    role: Optional[str] = None  # admin only
    referred_by_profile_id: Optional[str] = None
    referral_via: Optional[str] = None
    referral_source: Optional[str] = None


class ReferralCapture(BaseModel):
    referrer_id: str
    via: Optional[str] = None
    source: Optional[str] = None


class ProfileOut(BaseModel):
    profile_id: str
    display_name: str
    role: str
    is_fan: bool
    is_songwriter: bool
    is_studio: bool
    is_host: bool
    referred_by_profile_id: Optional[str] = None
    referral_via: Optional[str] = None
    referral_captured_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
