"""Row-level access policies.

Every table operation is admitted or refused here, per principal and per
row:

- Policies are additive: an operation is admitted when ANY policy that
  covers it evaluates true for the row.
- A table/operation with no policy admits nobody (default deny). The
  service principal bypasses policies entirely.
- Refused reads surface as "not found"; refused writes raise
  PermissionDenied.

``is_admin`` resolves the role through the fixed ``Profile``/``UserRole``
imports below and the principal's uid only; nothing the caller sends can
change which table or enum is consulted.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.orm import Session

from collective.auth import Principal
from collective.errors import NotFound, PermissionDenied
from collective.models.profile import Profile, UserRole
from collective.models.event import Event

logger = logging.getLogger(__name__)


class Operation(str, enum.Enum):
    select = "select"
    insert = "insert"
    update = "update"
    delete = "delete"


SELECT = frozenset({Operation.select})
INSERT = frozenset({Operation.insert})
WRITE = frozenset({Operation.update, Operation.delete})
ALL = frozenset(Operation)


def is_admin(db: Session, principal: Principal) -> bool:
    """True iff the principal's profile row has role = admin."""
    if principal.uid is None:
        return False
    role = (
        db.query(Profile.role)
        .filter(Profile.profile_id == principal.uid)
        .scalar()
    )
    return role == UserRole.admin


@dataclass
class PolicyContext:
    db: Session
    principal: Principal
    _admin: Optional[bool] = field(default=None, repr=False)

    @property
    def uid(self) -> Optional[str]:
        return self.principal.uid

    @property
    def authenticated(self) -> bool:
        return self.principal.uid is not None

    def is_admin(self) -> bool:
        if self._admin is None:
            self._admin = is_admin(self.db, self.principal)
        return self._admin

    def hosts_event(self, event_id: str) -> bool:
        if not self.authenticated:
            return False
        host = self.db.query(Event.host_profile_id).filter(Event.event_id == event_id).scalar()
        return host is not None and host == self.uid


Predicate = Callable[[PolicyContext, Any], bool]


@dataclass(frozen=True)
class Policy:
    name: str
    operations: frozenset
    check: Predicate


# ── Predicate builders ─────────────────────────────────────────────
def _everyone(ctx: PolicyContext, row: Any) -> bool:
    return True


def _admin(ctx: PolicyContext, row: Any) -> bool:
    return ctx.is_admin()


def _owner(column: str) -> Predicate:
    def check(ctx: PolicyContext, row: Any) -> bool:
        return ctx.authenticated and getattr(row, column) == ctx.uid
    return check


def _flag(column: str, expected: bool = True) -> Predicate:
    def check(ctx: PolicyContext, row: Any) -> bool:
        return bool(getattr(row, column)) is expected
    return check


def _all_of(*predicates: Predicate) -> Predicate:
    def check(ctx: PolicyContext, row: Any) -> bool:
        return all(p(ctx, row) for p in predicates)
    return check


def _event_host(ctx: PolicyContext, row: Any) -> bool:
    return ctx.hosts_event(row.event_id)


# ── Policy table ───────────────────────────────────────────────────
POLICIES: dict[str, list[Policy]] = {
    "profiles": [
        Policy("profiles_select_public", SELECT, _everyone),
        Policy("profiles_insert_self", INSERT, _owner("profile_id")),
        Policy("profiles_update_self", frozenset({Operation.update}), _owner("profile_id")),
        Policy("profiles_admin_all", WRITE, _admin),
    ],
    "venues": [
        Policy("venues_select_public", SELECT, _everyone),
        Policy("venues_admin_write", INSERT | WRITE, _admin),
    ],
    "events": [
        Policy("events_select_published", SELECT, _flag("is_published")),
        Policy("events_host_all", ALL, _owner("host_profile_id")),
        Policy("events_admin_all", ALL, _admin),
    ],
    "occurrence_overrides": [
        Policy("overrides_select_public", SELECT, _everyone),
        Policy("overrides_host_write", INSERT | WRITE, _event_host),
        Policy("overrides_admin_write", INSERT | WRITE, _admin),
    ],
    "event_rsvps": [
        Policy("rsvps_select_own", SELECT, _owner("profile_id")),
        Policy("rsvps_select_event_host", SELECT, _event_host),
        Policy("rsvps_insert_own", INSERT, _owner("profile_id")),
        Policy("rsvps_update_own", frozenset({Operation.update}), _owner("profile_id")),
        Policy("rsvps_admin_all", ALL, _admin),
    ],
    "change_reports": [
        Policy("change_reports_insert_anyone", INSERT, _everyone),
        Policy("change_reports_admin_all", ALL, _admin),
    ],
    "event_update_suggestions": [
        Policy("suggestions_insert_anyone", INSERT, _everyone),
        Policy("suggestions_select_own", SELECT, _owner("submitter_profile_id")),
        Policy("suggestions_admin_all", ALL, _admin),
    ],
    # Writes come only from the service principal
    "guest_verifications": [
        Policy("guest_verifications_admin_select", SELECT, _admin),
    ],
    "gallery_albums": [
        Policy(
            "albums_select_published",
            SELECT,
            _all_of(_flag("is_published"), _flag("is_hidden", False)),
        ),
        Policy("albums_owner_all", ALL, _owner("created_by_profile_id")),
        Policy("albums_admin_manage", SELECT | WRITE, _admin),
    ],
    "comments": [
        Policy(
            "comments_select_visible",
            SELECT,
            _all_of(_flag("is_deleted", False), _flag("is_hidden", False)),
        ),
        Policy("comments_author_all", ALL, _owner("author_profile_id")),
        Policy("comments_admin_manage", SELECT | WRITE, _admin),
    ],
}


def is_allowed(db: Session, principal: Principal, operation: Operation, row: Any) -> bool:
    """Evaluate the policies for ``row``'s table."""
    if principal.is_service:
        return True
    ctx = PolicyContext(db, principal)
    return _evaluate(ctx, operation, row)


def _evaluate(ctx: PolicyContext, operation: Operation, row: Any) -> bool:
    policies = POLICIES.get(row.__tablename__, [])
    return any(p.check(ctx, row) for p in policies if operation in p.operations)


def authorize(db: Session, principal: Principal, operation: Operation, row: Any) -> None:
    """Raise unless the operation is admitted.

    Reads raise NotFound so a refused row is indistinguishable from a
    missing one.
    """
    if is_allowed(db, principal, operation, row):
        return
    table = row.__tablename__
    if operation == Operation.select:
        raise NotFound(f"{_label(table)} not found")
    logger.warning("Denied %s on %s for %s principal %s", operation.value, table, principal.kind.value, principal.uid)
    raise PermissionDenied(f"Not allowed to {operation.value} this {_label(table).lower()}")


def visible(db: Session, principal: Principal, rows: Iterable[Any]) -> list:
    """Filter ``rows`` down to the ones the principal may SELECT."""
    rows = list(rows)
    if principal.is_service:
        return rows
    ctx = PolicyContext(db, principal)
    return [row for row in rows if _evaluate(ctx, Operation.select, row)]


def require_admin(db: Session, principal: Principal) -> None:
    """Gate for moderation and other admin-only actions."""
    if principal.is_service or is_admin(db, principal):
        return
    logger.warning("Admin-only action refused for %s principal %s", principal.kind.value, principal.uid)
    raise PermissionDenied("Admin access required")


def get_visible(db: Session, principal: Principal, model: Any, pk: Any) -> Any:
    """Fetch one row by primary key, or NotFound when missing or hidden."""
    row = db.get(model, pk)
    if row is None:
        raise NotFound(f"{_label(model.__tablename__)} not found")
    authorize(db, principal, Operation.select, row)
    return row


def _label(table: str) -> str:
    return table.rstrip("s").replace("_", " ").capitalize()
