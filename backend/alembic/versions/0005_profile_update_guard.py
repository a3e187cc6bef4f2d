"""profile_update_guard

Revision ID: 0005
Revises: 0004
Create Date: 2026-04-09

The profiles_update_self policy lets a member update their own row, which
on its own would include ``role`` and an already captured referral. This
BEFORE UPDATE trigger rejects those changes for direct clients that are
not admins.

Connections that carry no request identity (the application backend and
migrations) are let through; the service layer applies the same rules
there.

Skipped on dialects without plpgsql (SQLite in dev and tests).
"""
from typing import Sequence, Union
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0005"
down_revision: Union[str, None] = "0004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

GUARD_FUNCTION = """
CREATE OR REPLACE FUNCTION public.guard_profile_update() RETURNS trigger
LANGUAGE plpgsql
SET search_path = public
AS $$
BEGIN
    IF public.current_profile_id() IS NULL OR public.is_admin() THEN
        RETURN NEW;
    END IF;

    IF NEW.role IS DISTINCT FROM OLD.role THEN
        RAISE EXCEPTION 'Only admins can change profile roles'
            USING ERRCODE = 'insufficient_privilege';
    END IF;

    IF OLD.referred_by_profile_id IS NOT NULL
       AND NEW.referred_by_profile_id IS DISTINCT FROM OLD.referred_by_profile_id THEN
        RAISE EXCEPTION 'Referral has already been recorded'
            USING ERRCODE = 'insufficient_privilege';
    END IF;

    IF NEW.referred_by_profile_id = NEW.profile_id THEN
        RAISE EXCEPTION 'A profile cannot refer itself'
            USING ERRCODE = 'check_violation';
    END IF;

    RETURN NEW;
END;
$$
"""


def upgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return
    op.execute(GUARD_FUNCTION)
    op.execute(
        "CREATE TRIGGER trg_guard_profile_update BEFORE UPDATE ON public.profiles "
        "FOR EACH ROW EXECUTE FUNCTION public.guard_profile_update()"
    )


def downgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return
    op.execute("DROP TRIGGER IF EXISTS trg_guard_profile_update ON public.profiles")
    op.execute("DROP FUNCTION IF EXISTS public.guard_profile_update()")
