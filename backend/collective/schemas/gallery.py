"""Pydantic schemas for gallery albums and comments."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class AlbumCreate(BaseModel):
    title: str
    description: Optional[str] = None
    is_published: bool = False


class AlbumUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    is_published: Optional[bool] = None
    is_hidden: Optional[bool] = None  # admin only


class AlbumOut(BaseModel):
    album_id: str
    created_by_profile_id: str
    title: str
    description: Optional[str] = None
    is_published: bool
    is_hidden: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CommentCreate(BaseModel):
    target_type: str
    target_id: str
    content: str
    parent_id: Optional[str] = None


class CommentHide(BaseModel):
    is_hidden: bool


class CommentOut(BaseModel):
    comment_id: str
    target_type: str
    target_id: str
    parent_id: Optional[str] = None
    author_profile_id: Optional[str] = None
    guest_name: Optional[str] = None
    guest_verified: bool
    content: str
    is_deleted: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
