"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-02-23

Creates the core community tables:
profiles, venues, events, occurrence_overrides, event_rsvps,
change_reports, event_update_suggestions, gallery_albums, comments.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- profiles ---
    op.create_table(
        "profiles",
        sa.Column("profile_id", sa.String(36), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("is_fan", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_songwriter", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_studio", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_host", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("referred_by_profile_id", sa.String(36), sa.ForeignKey("profiles.profile_id"), nullable=True),
        sa.Column("referral_via", sa.String(50), nullable=True),
        sa.Column("referral_source", sa.String(255), nullable=True),
        sa.Column("referral_captured_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('member', 'admin')", name="ck_profiles_role"),
    )

    # --- venues ---
    op.create_table(
        "venues",
        sa.Column("venue_id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("website_url", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- events ---
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(36), primary_key=True),
        sa.Column("host_profile_id", sa.String(36), sa.ForeignKey("profiles.profile_id"), nullable=False),
        sa.Column("venue_id", sa.String(36), sa.ForeignKey("venues.venue_id"), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("host_notes", sa.Text, nullable=True),
        sa.Column("cover_image_url", sa.String(500), nullable=True),
        sa.Column("external_url", sa.String(500), nullable=True),
        sa.Column("start_time_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("categories", sa.JSON, nullable=False),
        sa.Column("recurrence", sa.String(20), nullable=False, server_default="none"),
        sa.Column("max_occurrences", sa.Integer, nullable=True),
        sa.Column("capacity", sa.Integer, nullable=True),
        sa.Column("is_published", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("is_spotlight", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by_profile_id", sa.String(36), sa.ForeignKey("profiles.profile_id"), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("max_occurrences IS NULL OR max_occurrences > 0", name="ck_events_max_occurrences_positive"),
        sa.CheckConstraint("capacity IS NULL OR capacity >= 0", name="ck_events_capacity_non_negative"),
    )

    # --- occurrence_overrides ---
    op.create_table(
        "occurrence_overrides",
        sa.Column("override_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False),
        sa.Column("date_key", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="normal"),
        sa.Column("override_patch", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "date_key", name="uq_occurrence_overrides_event_date"),
    )

    # --- event_rsvps ---
    op.create_table(
        "event_rsvps",
        sa.Column("rsvp_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False),
        sa.Column("profile_id", sa.String(36), sa.ForeignKey("profiles.profile_id"), nullable=True),
        sa.Column("guest_name", sa.String(100), nullable=True),
        sa.Column("guest_email", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="confirmed"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # --- change_reports ---
    op.create_table(
        "change_reports",
        sa.Column("report_id", sa.String(36), primary_key=True),
        sa.Column("target_type", sa.String(20), nullable=False),
        sa.Column("target_id", sa.String(36), nullable=False),
        sa.Column("field_name", sa.String(100), nullable=False),
        sa.Column("proposed_value", sa.Text, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("reporter_profile_id", sa.String(36), sa.ForeignKey("profiles.profile_id"), nullable=True),
        sa.Column("reporter_email", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reviewed_by_profile_id", sa.String(36), sa.ForeignKey("profiles.profile_id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_response", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- event_update_suggestions ---
    op.create_table(
        "event_update_suggestions",
        sa.Column("suggestion_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False),
        sa.Column("field_name", sa.String(100), nullable=False),
        sa.Column("old_value", sa.Text, nullable=True),
        sa.Column("new_value", sa.Text, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("submitter_profile_id", sa.String(36), sa.ForeignKey("profiles.profile_id"), nullable=True),
        sa.Column("submitter_email", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reviewed_by_profile_id", sa.String(36), sa.ForeignKey("profiles.profile_id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_response", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- gallery_albums ---
    op.create_table(
        "gallery_albums",
        sa.Column("album_id", sa.String(36), primary_key=True),
        sa.Column("created_by_profile_id", sa.String(36), sa.ForeignKey("profiles.profile_id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_published", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_hidden", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- comments ---
    op.create_table(
        "comments",
        sa.Column("comment_id", sa.String(36), primary_key=True),
        sa.Column("target_type", sa.String(30), nullable=False),
        sa.Column("target_id", sa.String(36), nullable=False),
        sa.Column("parent_id", sa.String(36), sa.ForeignKey("comments.comment_id"), nullable=True),
        sa.Column("author_profile_id", sa.String(36), sa.ForeignKey("profiles.profile_id"), nullable=True),
        sa.Column("guest_name", sa.String(100), nullable=True),
        sa.Column("guest_email", sa.String(255), nullable=True),
        sa.Column("guest_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_hidden", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "author_profile_id IS NOT NULL OR (guest_name IS NOT NULL AND guest_email IS NOT NULL)",
            name="ck_comments_user_or_guest",
        ),
    )


def downgrade() -> None:
    op.drop_table("comments")
    op.drop_table("gallery_albums")
    op.drop_table("event_update_suggestions")
    op.drop_table("change_reports")
    op.drop_table("event_rsvps")
    op.drop_table("occurrence_overrides")
    op.drop_table("events")
    op.drop_table("venues")
    op.drop_table("profiles")
