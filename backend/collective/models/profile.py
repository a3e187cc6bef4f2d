"""Profile ORM model: one row per account, with role and referral attribution."""
import uuid
import enum
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Enum as SAEnum
from sqlalchemy.sql import func
from collective.database import Base


class UserRole(str, enum.Enum):
    member = "member"
    admin = "admin"


class Profile(Base):
    __tablename__ = "profiles"

    profile_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    display_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    role = Column(SAEnum(UserRole), nullable=False, default=UserRole.member)

    is_fan = Column(Boolean, nullable=False, default=False)
    is_songwriter = Column(Boolean, nullable=False, default=False)
    is_studio = Column(Boolean, nullable=False, default=False)
    is_host = Column(Boolean, nullable=False, default=False)

    # Referral attribution, write-once for non-admins
    referred_by_profile_id = Column(String(36), ForeignKey("profiles.profile_id"), nullable=True)
    referral_via = Column(String(50), nullable=True)
    referral_source = Column(String(255), nullable=True)
    referral_captured_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
