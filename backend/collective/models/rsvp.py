"""EventRSVP ORM model: waitlist and offer window state."""
import uuid
import enum
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index, Enum as SAEnum
from sqlalchemy.orm import relationship
from collective.database import Base
from collective.timeutils import utcnow


class RSVPStatus(str, enum.Enum):
    confirmed = "confirmed"
    waitlisted = "waitlisted"
    offered = "offered"
    expired = "expired"
    declined = "declined"
    cancelled = "cancelled"


# Statuses that occupy a capacity slot
SLOT_HOLDING = (RSVPStatus.confirmed, RSVPStatus.offered)
ACTIVE = (RSVPStatus.confirmed, RSVPStatus.offered, RSVPStatus.waitlisted)


class EventRSVP(Base):
    __tablename__ = "event_rsvps"

    rsvp_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False)
    profile_id = Column(String(36), ForeignKey("profiles.profile_id"), nullable=True)  # NULL for guests
    guest_name = Column(String(100), nullable=True)
    guest_email = Column(String(255), nullable=True)
    status = Column(SAEnum(RSVPStatus), nullable=False, default=RSVPStatus.confirmed)
    offer_expires_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    # Python-side default so FIFO order has sub-second resolution on every backend
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    event = relationship("Event", back_populates="rsvps")

    __table_args__ = (
        Index(
            "idx_event_rsvps_offer_expires",
            offer_expires_at,
            postgresql_where=offer_expires_at.isnot(None),
            sqlite_where=offer_expires_at.isnot(None),
        ),
        Index(
            "idx_event_rsvps_expired_offers",
            event_id, status, offer_expires_at,
            postgresql_where=offer_expires_at.isnot(None),
            sqlite_where=offer_expires_at.isnot(None),
        ),
        Index("idx_event_rsvps_waitlist_fifo", event_id, status, created_at),
    )
