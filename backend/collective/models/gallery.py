"""GalleryAlbum and Comment ORM models."""
import uuid
import enum
from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, ForeignKey, CheckConstraint, Enum as SAEnum,
)
from sqlalchemy.sql import func
from collective.database import Base


class CommentTarget(str, enum.Enum):
    event = "event"
    gallery_photo = "gallery_photo"
    gallery_album = "gallery_album"
    blog_post = "blog_post"
    profile = "profile"


class GalleryAlbum(Base):
    __tablename__ = "gallery_albums"

    album_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_by_profile_id = Column(String(36), ForeignKey("profiles.profile_id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_published = Column(Boolean, nullable=False, default=False)
    is_hidden = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        CheckConstraint(
            "author_profile_id IS NOT NULL OR (guest_name IS NOT NULL AND guest_email IS NOT NULL)",
            name="ck_comments_user_or_guest",
        ),
    )

    comment_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    target_type = Column(SAEnum(CommentTarget), nullable=False)
    target_id = Column(String(36), nullable=False)
    parent_id = Column(String(36), ForeignKey("comments.comment_id"), nullable=True)
    author_profile_id = Column(String(36), ForeignKey("profiles.profile_id"), nullable=True)
    guest_name = Column(String(100), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_verified = Column(Boolean, nullable=False, default=False)
    guest_verification_id = Column(String(36), ForeignKey("guest_verifications.verification_id"), nullable=True)
    content = Column(Text, nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    is_hidden = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
