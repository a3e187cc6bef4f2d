"""ChangeReport and EventUpdateSuggestion ORM models for the community moderation queues."""
import uuid
import enum
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum as SAEnum
from sqlalchemy.sql import func
from collective.database import Base


class ReportTarget(str, enum.Enum):
    event = "event"
    venue = "venue"


class ReviewStatus(str, enum.Enum):
    pending = "pending"
    applied = "applied"
    rejected = "rejected"


class ChangeReport(Base):
    __tablename__ = "change_reports"

    report_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    target_type = Column(SAEnum(ReportTarget), nullable=False)
    target_id = Column(String(36), nullable=False)
    field_name = Column(String(100), nullable=False)
    proposed_value = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    reporter_profile_id = Column(String(36), ForeignKey("profiles.profile_id"), nullable=True)
    reporter_email = Column(String(255), nullable=True)
    status = Column(SAEnum(ReviewStatus), nullable=False, default=ReviewStatus.pending)
    reviewed_by_profile_id = Column(String(36), ForeignKey("profiles.profile_id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    admin_response = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class EventUpdateSuggestion(Base):
    __tablename__ = "event_update_suggestions"

    suggestion_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False)
    field_name = Column(String(100), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    submitter_profile_id = Column(String(36), ForeignKey("profiles.profile_id"), nullable=True)
    submitter_email = Column(String(255), nullable=True)
    status = Column(SAEnum(ReviewStatus), nullable=False, default=ReviewStatus.pending)
    reviewed_by_profile_id = Column(String(36), ForeignKey("profiles.profile_id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    admin_response = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
