"""GuestVerification ORM model: one-time email codes for guest actions."""
import uuid
import enum
from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey, Index, Enum as SAEnum
from sqlalchemy.sql import func
from collective.database import Base


class GuestActionType(str, enum.Enum):
    confirm = "confirm"
    cancel = "cancel"
    comment = "comment"
    cancel_rsvp = "cancel_rsvp"
    timeslot = "timeslot"
    gallery_photo_comment = "gallery_photo_comment"
    gallery_album_comment = "gallery_album_comment"
    blog_comment = "blog_comment"
    profile_comment = "profile_comment"
    delete_comment = "delete_comment"


class GuestVerification(Base):
    __tablename__ = "guest_verifications"

    verification_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False)  # normalized, never displayed
    guest_name = Column(String(100), nullable=True)
    action_type = Column(SAEnum(GuestActionType), nullable=False)
    target_type = Column(String(30), nullable=False)
    target_id = Column(String(36), nullable=False)
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=True)
    payload = Column(JSON, nullable=True)

    code_hash = Column(String(64), nullable=False)
    code_expires_at = Column(DateTime(timezone=True), nullable=False)
    code_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    consumed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_guest_verifications_email_created", email, created_at),
    )
