"""guest_verifications

Revision ID: 0003
Revises: 0002
Create Date: 2026-03-18

One-time email codes that let guests act without an account, and the
link from a verified guest comment back to its code.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0003"
down_revision: Union[str, None] = "0002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTION_TYPES = (
    "confirm", "cancel", "comment", "cancel_rsvp", "timeslot",
    "gallery_photo_comment", "gallery_album_comment", "blog_comment",
    "profile_comment", "delete_comment",
)


def upgrade() -> None:
    action_list = ", ".join(f"'{a}'" for a in ACTION_TYPES)
    op.create_table(
        "guest_verifications",
        sa.Column("verification_id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("guest_name", sa.String(100), nullable=True),
        sa.Column("action_type", sa.String(30), nullable=False),
        sa.Column("target_type", sa.String(30), nullable=False),
        sa.Column("target_id", sa.String(36), nullable=False),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=True),
        sa.Column("payload", sa.JSON, nullable=True),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("code_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("code_attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(f"action_type IN ({action_list})", name="ck_guest_verifications_action_type"),
    )
    op.create_index("idx_guest_verifications_email_created", "guest_verifications", ["email", "created_at"])

    with op.batch_alter_table("comments") as batch:
        batch.add_column(sa.Column("guest_verification_id", sa.String(36), nullable=True))
        batch.create_foreign_key(
            "fk_comments_guest_verification",
            "guest_verifications",
            ["guest_verification_id"],
            ["verification_id"],
        )


def downgrade() -> None:
    with op.batch_alter_table("comments") as batch:
        batch.drop_constraint("fk_comments_guest_verification", type_="foreignkey")
        batch.drop_column("guest_verification_id")
    op.drop_index("idx_guest_verifications_email_created", table_name="guest_verifications")
    op.drop_table("guest_verifications")
