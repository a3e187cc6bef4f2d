"""row_level_security

Revision ID: 0004
Revises: 0003
Create Date: 2026-04-02

Database-side copy of the row policies in collective.services.access_service
for clients that reach Postgres directly. The caller's profile id is read
from the ``request.jwt.claim.sub`` setting.

is_admin() is SECURITY DEFINER so it can read profiles regardless of the
caller's own policies; its search_path is pinned to ``public`` and every
object in it is schema-qualified, so a caller-controlled search_path
cannot substitute a look-alike profiles table or role type.

Skipped on dialects without row-level security (SQLite in dev and tests).
"""
from typing import Sequence, Union
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0004"
down_revision: Union[str, None] = "0003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FUNCTIONS = [
    """
    CREATE OR REPLACE FUNCTION public.current_profile_id() RETURNS text
    LANGUAGE sql STABLE
    SET search_path = public
    AS $$ SELECT nullif(current_setting('request.jwt.claim.sub', true), '') $$
    """,
    """
    CREATE OR REPLACE FUNCTION public.is_admin() RETURNS boolean
    LANGUAGE sql STABLE SECURITY DEFINER
    SET search_path = public
    AS $$
        SELECT EXISTS (
            SELECT 1 FROM public.profiles p
            WHERE p.profile_id = public.current_profile_id()
              AND p.role = 'admin'
        )
    $$
    """,
]

# (table, policy name, command, USING, WITH CHECK)
POLICIES = [
    ("profiles", "profiles_select_public", "SELECT", "true", None),
    ("profiles", "profiles_insert_self", "INSERT", None, "profile_id = public.current_profile_id()"),
    ("profiles", "profiles_update_self", "UPDATE", "profile_id = public.current_profile_id()", None),
    ("profiles", "profiles_admin_update", "UPDATE", "public.is_admin()", None),
    ("profiles", "profiles_admin_delete", "DELETE", "public.is_admin()", None),

    ("venues", "venues_select_public", "SELECT", "true", None),
    ("venues", "venues_admin_all", "ALL", "public.is_admin()", "public.is_admin()"),

    ("events", "events_select_published", "SELECT", "is_published", None),
    ("events", "events_host_all", "ALL",
     "host_profile_id = public.current_profile_id()", "host_profile_id = public.current_profile_id()"),
    ("events", "events_admin_all", "ALL", "public.is_admin()", "public.is_admin()"),

    ("occurrence_overrides", "overrides_select_public", "SELECT", "true", None),
    ("occurrence_overrides", "overrides_host_all", "ALL",
     "EXISTS (SELECT 1 FROM public.events e WHERE e.event_id = occurrence_overrides.event_id"
     " AND e.host_profile_id = public.current_profile_id())",
     "EXISTS (SELECT 1 FROM public.events e WHERE e.event_id = occurrence_overrides.event_id"
     " AND e.host_profile_id = public.current_profile_id())"),
    ("occurrence_overrides", "overrides_admin_all", "ALL", "public.is_admin()", "public.is_admin()"),

    ("event_rsvps", "rsvps_select_own", "SELECT", "profile_id = public.current_profile_id()", None),
    ("event_rsvps", "rsvps_select_event_host", "SELECT",
     "EXISTS (SELECT 1 FROM public.events e WHERE e.event_id = event_rsvps.event_id"
     " AND e.host_profile_id = public.current_profile_id())", None),
    ("event_rsvps", "rsvps_insert_own", "INSERT", None, "profile_id = public.current_profile_id()"),
    ("event_rsvps", "rsvps_update_own", "UPDATE", "profile_id = public.current_profile_id()", None),
    ("event_rsvps", "rsvps_admin_all", "ALL", "public.is_admin()", "public.is_admin()"),

    ("change_reports", "change_reports_insert_anyone", "INSERT", None, "true"),
    ("change_reports", "change_reports_admin_all", "ALL", "public.is_admin()", "public.is_admin()"),

    ("event_update_suggestions", "suggestions_insert_anyone", "INSERT", None, "true"),
    ("event_update_suggestions", "suggestions_select_own", "SELECT",
     "submitter_profile_id = public.current_profile_id()", None),
    ("event_update_suggestions", "suggestions_admin_all", "ALL", "public.is_admin()", "public.is_admin()"),

    ("guest_verifications", "guest_verifications_admin_select", "SELECT", "public.is_admin()", None),

    ("gallery_albums", "albums_select_published", "SELECT", "is_published AND NOT is_hidden", None),
    ("gallery_albums", "albums_owner_all", "ALL",
     "created_by_profile_id = public.current_profile_id()",
     "created_by_profile_id = public.current_profile_id()"),
    ("gallery_albums", "albums_admin_select", "SELECT", "public.is_admin()", None),
    ("gallery_albums", "albums_admin_update", "UPDATE", "public.is_admin()", None),
    ("gallery_albums", "albums_admin_delete", "DELETE", "public.is_admin()", None),

    ("comments", "comments_select_visible", "SELECT", "NOT is_deleted AND NOT is_hidden", None),
    ("comments", "comments_author_all", "ALL",
     "author_profile_id = public.current_profile_id()",
     "author_profile_id = public.current_profile_id()"),
    ("comments", "comments_admin_select", "SELECT", "public.is_admin()", None),
    ("comments", "comments_admin_update", "UPDATE", "public.is_admin()", None),
    ("comments", "comments_admin_delete", "DELETE", "public.is_admin()", None),
]


def _tables() -> list[str]:
    return list(dict.fromkeys(table for table, *_ in POLICIES))


def upgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return
    for statement in FUNCTIONS:
        op.execute(statement)

    for table in _tables():
        op.execute(f"ALTER TABLE public.{table} ENABLE ROW LEVEL SECURITY")
    for table, name, command, using, check in POLICIES:
        clause = f"CREATE POLICY {name} ON public.{table} FOR {command}"
        if using is not None:
            clause += f" USING ({using})"
        if check is not None:
            clause += f" WITH CHECK ({check})"
        op.execute(clause)


def downgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return
    for table, name, *_ in reversed(POLICIES):
        op.execute(f"DROP POLICY IF EXISTS {name} ON public.{table}")
    for table in _tables():
        op.execute(f"ALTER TABLE public.{table} DISABLE ROW LEVEL SECURITY")
    op.execute("DROP FUNCTION IF EXISTS public.is_admin()")
    op.execute("DROP FUNCTION IF EXISTS public.current_profile_id()")
