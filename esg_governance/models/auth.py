"""
Auth Models — users, roles, role assignments, section access grants,
break-glass sessions.

Identity and access state owned by the PermissionEngine and the
BreakGlassController.  Rows here are only mutated through the service
layer so every change is diffed and audited.
"""

import json
import uuid
from datetime import datetime, timezone

from esg_governance.models import db
from esg_governance.utils.helpers import as_utc, iso


def _uuid() -> str:
    return str(uuid.uuid4())


# ═══════════════════════════════════════════════════════════════
# 1. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    # When set and in the past the user has no standing access, whatever the roles
    access_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_users_email", "email"),
    )

    # Relationships
    user_roles = db.relationship(
        "UserRole", back_populates="user", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def role_ids(self) -> list[str]:
        return sorted(ur.role_id for ur in self.user_roles.all())

    @property
    def role_names(self) -> list[str]:
        """List of role names for this user."""
        return [ur.role.name for ur in self.user_roles.all()]

    def access_expired(self, now: datetime) -> bool:
        expires = as_utc(self.access_expires_at)
        return expires is not None and expires < now

    def to_dict(self, include_roles=True):
        d = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "is_active": self.is_active,
            "access_expires_at": iso(self.access_expires_at),
            "created_at": iso(self.created_at),
        }
        if include_roles:
            d["role_ids"] = self.role_ids
            d["roles"] = self.role_names
        return d

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"


# ═══════════════════════════════════════════════════════════════
# 2. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.String(64), primary_key=True, default=lambda: f"role-{_uuid()}")
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=False, default="")
    permissions_json = db.Column(
        db.Text, nullable=False, default="[]",
        comment='JSON list of capability strings, e.g. ["view-reports", "exports:export"]',
    )
    is_predefined = db.Column(db.Boolean, nullable=False, default=False)
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)

    user_roles = db.relationship("UserRole", back_populates="role", lazy="dynamic")

    @property
    def permissions(self) -> list[str]:
        try:
            return list(json.loads(self.permissions_json or "[]"))
        except (json.JSONDecodeError, TypeError):
            return []

    @permissions.setter
    def permissions(self, values) -> None:
        self.permissions_json = json.dumps(list(values or []))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "permissions": self.permissions,
            "is_predefined": self.is_predefined,
            "version": self.version,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "updated_by": self.updated_by,
        }

    def __repr__(self):
        return f"<Role {self.id}: {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 3. USER ↔ ROLE
# ═══════════════════════════════════════════════════════════════
class UserRole(db.Model):
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.String(64), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role_id = db.Column(
        db.String(64), db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    assigned_by = db.Column(db.String(64), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    # Relationships
    user = db.relationship("User", back_populates="user_roles")
    role = db.relationship("Role", back_populates="user_roles")


# ═══════════════════════════════════════════════════════════════
# 4. SECTION ACCESS GRANTS
# ═══════════════════════════════════════════════════════════════
class SectionAccessGrant(db.Model):
    """
    Section-scoped access for a user outside their role's default scope.

    Expired or revoked grants are never deleted — they stay as evidence of
    who could see what, and when.  ``is_live(now)`` is the only predicate
    callers should use to decide whether a grant confers access.
    """

    __tablename__ = "section_access_grants"

    id = db.Column(db.String(64), primary_key=True, default=_uuid)
    section_id = db.Column(
        db.String(64), db.ForeignKey("report_sections.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.String(64), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    granted_by = db.Column(db.String(64), nullable=False)
    granted_by_name = db.Column(db.String(200), nullable=True)
    reason = db.Column(db.Text, nullable=True)
    granted_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_by = db.Column(db.String(64), nullable=True)

    __table_args__ = (
        db.Index("ix_grant_section_user", "section_id", "user_id"),
    )

    def is_expired(self, now: datetime) -> bool:
        expires = as_utc(self.expires_at)
        return expires is not None and expires < now

    def is_live(self, now: datetime) -> bool:
        return self.revoked_at is None and not self.is_expired(now)

    def to_dict(self):
        return {
            "id": self.id,
            "section_id": self.section_id,
            "user_id": self.user_id,
            "granted_by": self.granted_by,
            "granted_by_name": self.granted_by_name,
            "reason": self.reason,
            "granted_at": iso(self.granted_at),
            "expires_at": iso(self.expires_at),
            "revoked_at": iso(self.revoked_at),
            "revoked_by": self.revoked_by,
        }

    def __repr__(self):
        return f"<SectionAccessGrant {self.user_id} → {self.section_id}>"


# ═══════════════════════════════════════════════════════════════
# 5. BREAK-GLASS SESSIONS
# ═══════════════════════════════════════════════════════════════
class BreakGlassSession(db.Model):
    """
    Emergency elevated-access session.

    Business rules:
    - At most one active session per user (enforced in break_glass_service
      under the store lock).
    - ``action_count`` starts at 1: the activation itself is a privileged act.
    - Deactivation stamps the *_by fields; the row is never deleted.
    """

    __tablename__ = "break_glass_sessions"

    id = db.Column(db.String(64), primary_key=True, default=_uuid)
    user_id = db.Column(
        db.String(64), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    user_name = db.Column(db.String(200), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    authentication_method = db.Column(db.String(50), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    action_count = db.Column(db.Integer, nullable=False, default=1)
    activated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deactivated_by = db.Column(db.String(64), nullable=True)
    deactivated_by_name = db.Column(db.String(200), nullable=True)
    deactivation_note = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.Index("ix_break_glass_user_active", "user_id", "is_active"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "reason": self.reason,
            "authentication_method": self.authentication_method,
            "ip_address": self.ip_address,
            "is_active": self.is_active,
            "action_count": self.action_count,
            "activated_at": iso(self.activated_at),
            "deactivated_at": iso(self.deactivated_at),
            "deactivated_by": self.deactivated_by,
            "deactivated_by_name": self.deactivated_by_name,
            "deactivation_note": self.deactivation_note,
        }

    def __repr__(self):
        state = "active" if self.is_active else "closed"
        return f"<BreakGlassSession {self.id} user={self.user_id} {state}>"
