"""
Repository layer — one repository per governed entity type.

Services never touch ``db.session`` for reads of governed state; they go
through the ``GovernanceStore`` bound to the running app.  Swapping the
backing store means handing ``init_store`` a different store instance.

Concurrency:
    The store carries one re-entrant lock.  Every check-then-act sequence
    (diff-then-append, "no second active break-glass session",
    check-then-transition on sections) runs under ``store.lock`` so that
    concurrent callers are serialised.  Reads that must not observe a
    half-finished write take the same lock.

Usage:
    from esg_governance.repositories import get_store

    store = get_store()
    with store.lock:
        section = store.sections.get(section_id)
"""

import logging
import threading
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from esg_governance.core.exceptions import NotFoundError
from esg_governance.models import db
from esg_governance.models.audit import AuditLogEntry
from esg_governance.models.auth import (
    BreakGlassSession,
    Role,
    SectionAccessGrant,
    User,
    UserRole,
)
from esg_governance.models.reporting import (
    DataPoint,
    ReportingPeriod,
    ReportSection,
    SectionVersion,
)
from esg_governance.utils.helpers import as_utc

logger = logging.getLogger(__name__)

STORE_EXTENSION_KEY = "governance_store"


# ── Base repository ──────────────────────────────────────────────────────────


class Repository:
    """Generic SQLAlchemy-backed repository for a single model."""

    model = None
    label = None

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or (lambda: db.session)

    @property
    def session(self):
        return self._session_factory()

    @property
    def query(self):
        return self.session.query(self.model)

    def get(self, pk):
        if pk is None:
            return None
        return self.session.get(self.model, pk)

    def get_or_raise(self, pk):
        obj = self.get(pk)
        if obj is None:
            raise NotFoundError(resource=self.label or self.model.__name__, resource_id=pk)
        return obj

    def add(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj

    def delete(self, obj) -> None:
        self.session.delete(obj)
        self.session.flush()

    def all(self):
        return self.query.all()


# ── Identity & access ────────────────────────────────────────────────────────


class UserRepository(Repository):
    model = User

    def find_by_email(self, email: str):
        return self.query.filter(func.lower(User.email) == (email or "").lower()).first()

    def set_roles(self, user: User, role_ids, assigned_by=None) -> None:
        """Replace the user's role assignments with *role_ids*."""
        wanted = set(role_ids)
        for ur in user.user_roles.all():
            if ur.role_id not in wanted:
                self.session.delete(ur)
            else:
                wanted.discard(ur.role_id)
        for role_id in sorted(wanted):
            self.session.add(UserRole(user_id=user.id, role_id=role_id, assigned_by=assigned_by))
        self.session.flush()


class RoleRepository(Repository):
    model = Role

    def find_by_name(self, name: str):
        return self.query.filter(func.lower(Role.name) == (name or "").strip().lower()).first()

    def all(self):
        return (
            self.query
            .order_by(Role.is_predefined.desc(), Role.created_at, Role.id)
            .all()
        )

    def get_many(self, role_ids):
        if not role_ids:
            return []
        return self.query.filter(Role.id.in_(list(role_ids))).all()

    def detach_from_users(self, role_id: str) -> int:
        count = (
            self.session.query(UserRole)
            .filter(UserRole.role_id == role_id)
            .delete(synchronize_session="fetch")
        )
        self.session.flush()
        return count


class GrantRepository(Repository):
    model = SectionAccessGrant
    label = "SectionAccessGrant"

    def for_user_and_section(self, user_id: str, section_id: str):
        return (
            self.query
            .filter_by(user_id=user_id, section_id=section_id)
            .order_by(SectionAccessGrant.granted_at.desc())
            .all()
        )

    def for_user(self, user_id: str):
        return (
            self.query.filter_by(user_id=user_id)
            .order_by(SectionAccessGrant.granted_at.desc())
            .all()
        )

    def for_section(self, section_id: str):
        return (
            self.query.filter_by(section_id=section_id)
            .order_by(SectionAccessGrant.granted_at.desc())
            .all()
        )

    def live_for_user_and_section(self, user_id: str, section_id: str, now: datetime):
        """Return the first grant that still confers access, or None.

        Expiry is evaluated here, at read time.  Nothing ever purges an
        expired grant.
        """
        for grant in self.for_user_and_section(user_id, section_id):
            if grant.is_live(now):
                return grant
        return None


class BreakGlassSessionRepository(Repository):
    model = BreakGlassSession
    label = "Break-glass session"

    def active_for_user(self, user_id: str):
        return (
            self.query
            .filter_by(user_id=user_id, is_active=True)
            .order_by(BreakGlassSession.activated_at.desc())
            .first()
        )

    def for_user(self, user_id: str | None = None, active_only: bool = False):
        q = self.query
        if user_id:
            q = q.filter(BreakGlassSession.user_id == user_id)
        if active_only:
            q = q.filter(BreakGlassSession.is_active.is_(True))
        return q.order_by(BreakGlassSession.activated_at.desc()).all()


# ── Reporting content ────────────────────────────────────────────────────────


class PeriodRepository(Repository):
    model = ReportingPeriod
    label = "Reporting period"


class SectionRepository(Repository):
    model = ReportSection
    label = "Section"

    def for_period(self, period_id: str | None = None):
        q = self.query
        if period_id:
            q = q.filter(ReportSection.period_id == period_id)
        return q.order_by(ReportSection.created_at, ReportSection.id).all()


class SectionVersionRepository(Repository):
    model = SectionVersion
    label = "Section version"

    def for_section(self, section_id: str):
        return (
            self.query.filter_by(section_id=section_id)
            .order_by(SectionVersion.version_number.desc(), SectionVersion.id.desc())
            .all()
        )


class DataPointRepository(Repository):
    model = DataPoint
    label = "DataPoint"

    def for_section(self, section_id: str):
        return (
            self.query.filter_by(section_id=section_id)
            .order_by(DataPoint.created_at, DataPoint.id)
            .all()
        )


# ── Audit ledger ─────────────────────────────────────────────────────────────


class AuditRepository(Repository):
    """Append-only store of AuditLogEntry rows.

    Timestamps are assigned here and never go backwards within a process,
    so "newest first" is a total order once ties break on id.
    """

    model = AuditLogEntry

    def __init__(self, session_factory=None):
        super().__init__(session_factory)
        self._last_timestamp = None
        self._ts_lock = threading.Lock()

    def _next_timestamp(self) -> datetime:
        with self._ts_lock:
            now = datetime.now(timezone.utc)
            if self._last_timestamp is not None and now < self._last_timestamp:
                now = self._last_timestamp
            self._last_timestamp = now
            return now

    def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        entry.timestamp = self._next_timestamp()
        self.session.add(entry)
        try:
            self.session.flush()
        except SQLAlchemyError:
            self.session.rollback()
            logger.error(
                "Audit append failed",
                extra={"action": entry.action, "entity_type": entry.entity_type, "entity_id": entry.entity_id},
                exc_info=True,
            )
            raise
        return entry

    def delete(self, obj) -> None:
        raise TypeError("Audit entries are immutable and cannot be deleted")

    def search(
        self,
        *,
        entity_type=None,
        entity_types=None,
        entity_id=None,
        user_id=None,
        action=None,
        start=None,
        end=None,
        break_glass_only=None,
        limit=None,
    ):
        """Filter with AND semantics, newest first, ties by reverse insertion."""
        q = self.query
        if entity_type:
            q = q.filter(func.lower(AuditLogEntry.entity_type) == entity_type.lower())
        if entity_types:
            q = q.filter(AuditLogEntry.entity_type.in_(list(entity_types)))
        if entity_id:
            q = q.filter(AuditLogEntry.entity_id == str(entity_id))
        if user_id:
            q = q.filter(AuditLogEntry.user_id == user_id)
        if action:
            q = q.filter(AuditLogEntry.action == action)
        if start is not None:
            q = q.filter(AuditLogEntry.timestamp >= _bind_utc(start))
        if end is not None:
            q = q.filter(AuditLogEntry.timestamp <= _bind_utc(end))
        if break_glass_only is True:
            q = q.filter(AuditLogEntry.is_break_glass_action.is_(True))
        elif break_glass_only is False:
            q = q.filter(AuditLogEntry.is_break_glass_action.is_(False))
        q = q.order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc())
        if limit:
            q = q.limit(limit)
        return q.all()


def _bind_utc(value: datetime) -> datetime:
    # Stored timestamps are UTC; SQLite compares them as naive strings
    value = as_utc(value)
    if db.engine.dialect.name == "sqlite":
        return value.replace(tzinfo=None)
    return value


# ── Store ────────────────────────────────────────────────────────────────────


class GovernanceStore:
    """Bundle of per-entity repositories plus the single-writer lock."""

    def __init__(self, session_factory=None):
        self.lock = threading.RLock()
        self.users = UserRepository(session_factory)
        self.roles = RoleRepository(session_factory)
        self.grants = GrantRepository(session_factory)
        self.break_glass_sessions = BreakGlassSessionRepository(session_factory)
        self.periods = PeriodRepository(session_factory)
        self.sections = SectionRepository(session_factory)
        self.section_versions = SectionVersionRepository(session_factory)
        self.data_points = DataPointRepository(session_factory)
        self.audit = AuditRepository(session_factory)
        self._session_factory = session_factory or (lambda: db.session)

    @property
    def session(self):
        return self._session_factory()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


def init_store(app, store: GovernanceStore | None = None) -> GovernanceStore:
    """Bind a GovernanceStore to *app*; a fresh SQLAlchemy-backed one by default."""
    store = store or GovernanceStore()
    app.extensions[STORE_EXTENSION_KEY] = store
    logger.debug("Governance store bound: %s", type(store).__name__)
    return store


def get_store() -> GovernanceStore:
    return current_app.extensions[STORE_EXTENSION_KEY]
