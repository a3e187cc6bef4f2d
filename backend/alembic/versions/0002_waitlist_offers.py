"""waitlist_offers

Revision ID: 0002
Revises: 0001
Create Date: 2026-03-04

Adds the offer window to RSVPs: offer_expires_at, the per-event window
override, and the indexes the sweeper and FIFO promotion read through.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RSVP_STATUSES = "('confirmed', 'waitlisted', 'offered', 'expired', 'declined', 'cancelled')"


def upgrade() -> None:
    with op.batch_alter_table("event_rsvps") as batch:
        batch.add_column(sa.Column("offer_expires_at", sa.DateTime(timezone=True), nullable=True))
        batch.create_check_constraint("ck_event_rsvps_status", f"status IN {RSVP_STATUSES}")
        batch.create_check_constraint(
            "ck_event_rsvps_offer_window",
            "status <> 'offered' OR offer_expires_at IS NOT NULL",
        )
    with op.batch_alter_table("events") as batch:
        batch.add_column(sa.Column("offer_window_minutes", sa.Integer, nullable=True))

    # Sweeper: pending offers past their window
    op.create_index(
        "idx_event_rsvps_offer_expires",
        "event_rsvps",
        ["offer_expires_at"],
        postgresql_where=sa.text("offer_expires_at IS NOT NULL"),
        sqlite_where=sa.text("offer_expires_at IS NOT NULL"),
    )
    op.create_index(
        "idx_event_rsvps_expired_offers",
        "event_rsvps",
        ["event_id", "status", "offer_expires_at"],
        postgresql_where=sa.text("offer_expires_at IS NOT NULL"),
        sqlite_where=sa.text("offer_expires_at IS NOT NULL"),
    )
    # Promotion: oldest waitlisted RSVP per event
    op.create_index(
        "idx_event_rsvps_waitlist_fifo",
        "event_rsvps",
        ["event_id", "status", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_event_rsvps_waitlist_fifo", table_name="event_rsvps")
    op.drop_index("idx_event_rsvps_expired_offers", table_name="event_rsvps")
    op.drop_index("idx_event_rsvps_offer_expires", table_name="event_rsvps")
    with op.batch_alter_table("events") as batch:
        batch.drop_column("offer_window_minutes")
    with op.batch_alter_table("event_rsvps") as batch:
        batch.drop_constraint("ck_event_rsvps_offer_window", type_="check")
        batch.drop_constraint("ck_event_rsvps_status", type_="check")
        batch.drop_column("offer_expires_at")
