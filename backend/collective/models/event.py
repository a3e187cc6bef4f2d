"""Event, Venue and OccurrenceOverride ORM models."""
import uuid
import enum
from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, Integer, JSON, ForeignKey,
    UniqueConstraint, CheckConstraint, Enum as SAEnum,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship, validates
from collective.database import Base


class EventStatus(str, enum.Enum):
    active = "active"
    cancelled = "cancelled"


class Recurrence(str, enum.Enum):
    none = "none"
    weekly = "weekly"
    biweekly = "biweekly"


class OccurrenceStatus(str, enum.Enum):
    normal = "normal"
    cancelled = "cancelled"


# Per-occurrence fields a host may patch. Series-level fields
# (recurrence, max_occurrences, host) are never overridable.
ALLOWED_OVERRIDE_FIELDS = frozenset({
    "title",
    "description",
    "start_time_utc",
    "end_time_utc",
    "venue_id",
    "capacity",
    "categories",
    "is_published",
    "host_notes",
    "cover_image_url",
    "external_url",
})


class Venue(Base):
    __tablename__ = "venues"

    venue_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    website_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("max_occurrences IS NULL OR max_occurrences > 0", name="ck_events_max_occurrences_positive"),
        CheckConstraint("capacity IS NULL OR capacity >= 0", name="ck_events_capacity_non_negative"),
    )

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    host_profile_id = Column(String(36), ForeignKey("profiles.profile_id"), nullable=False)
    venue_id = Column(String(36), ForeignKey("venues.venue_id"), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    host_notes = Column(Text, nullable=True)
    cover_image_url = Column(String(500), nullable=True)
    external_url = Column(String(500), nullable=True)
    start_time_utc = Column(DateTime(timezone=True), nullable=False)
    end_time_utc = Column(DateTime(timezone=True), nullable=True)  # NULL = unknown/variable
    categories = Column(JSON, nullable=False, default=list)
    recurrence = Column(SAEnum(Recurrence), nullable=False, default=Recurrence.none)
    max_occurrences = Column(Integer, nullable=True)  # NULL = unbounded
    capacity = Column(Integer, nullable=True)  # NULL = unlimited
    offer_window_minutes = Column(Integer, nullable=True)
    is_published = Column(Boolean, nullable=False, default=False)
    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.active)
    is_spotlight = Column(Boolean, nullable=False, default=False)
    last_verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by_profile_id = Column(String(36), ForeignKey("profiles.profile_id"), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    rsvps = relationship("EventRSVP", back_populates="event", cascade="all, delete-orphan")
    overrides = relationship("OccurrenceOverride", back_populates="event", cascade="all, delete-orphan")

    @validates("categories")
    def _normalize_categories(self, key, value):
        # Tags are a set: order and duplicates carry no meaning
        return sorted(set(value or []))

    @validates("max_occurrences")
    def _check_max_occurrences(self, key, value):
        if value is not None and value < 1:
            raise ValueError("max_occurrences must be a positive integer")
        return value


class OccurrenceOverride(Base):
    __tablename__ = "occurrence_overrides"
    __table_args__ = (UniqueConstraint("event_id", "date_key", name="uq_occurrence_overrides_event_date"),)

    override_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False)
    date_key = Column(String(10), nullable=False)  # YYYY-MM-DD, community timezone
    status = Column(SAEnum(OccurrenceStatus), nullable=False, default=OccurrenceStatus.normal)
    override_patch = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    event = relationship("Event", back_populates="overrides")

    @validates("override_patch")
    def _check_patch_keys(self, key, value):
        if value:
            unknown = set(value) - ALLOWED_OVERRIDE_FIELDS
            if unknown:
                raise ValueError(f"override_patch keys not allowed: {sorted(unknown)}")
        return value
