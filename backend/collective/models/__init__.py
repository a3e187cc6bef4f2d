"""ORM models. Importing this package registers every table with Base.metadata."""
from collective.models.profile import Profile, UserRole  # noqa: F401
from collective.models.event import Event, Venue, OccurrenceOverride  # noqa: F401
from collective.models.rsvp import EventRSVP, RSVPStatus  # noqa: F401
from collective.models.moderation import ChangeReport, EventUpdateSuggestion  # noqa: F401
from collective.models.guest_verification import GuestVerification, GuestActionType  # noqa: F401
from collective.models.gallery import GalleryAlbum, Comment  # noqa: F401
