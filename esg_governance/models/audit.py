"""
ESG Governance Core
Audit domain model.

Models:
    - AuditLogEntry: immutable, append-only ledger of governed mutations.
"""

import json
from datetime import datetime, timezone

from esg_governance.models import db
from esg_governance.utils.helpers import iso

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "DataPoint", "ReportSection", "ReportingPeriod",
    "SystemRole", "User", "Permission",
    "SectionAccessGrant", "BreakGlassSession",
}

# Entity types whose entries make up the permission change history
PERMISSION_CHANGE_ENTITY_TYPES = ("SystemRole", "User", "SectionAccessGrant")

AUDIT_ACTIONS = {
    # Generic
    "create",
    "update",
    "delete",
    # Data point review
    "approve",
    "request-changes",
    "update-completeness",
    # Section workflow
    "submit-for-approval",
    "approve-section",
    "request-section-changes",
    "create-revision",
    # Period
    "rollover",
    # Roles / assignments
    "create-role",
    "update-role-description",
    "delete-role",
    "assign-user-roles",
    "invite-external-advisor",
    # Grants
    "grant-section-access",
    "revoke-section-access",
    # Permission evaluation
    "permission-check-allowed",
    "permission-check-denied",
    # Break-glass
    "activate-break-glass",
    "deactivate-break-glass",
}


class AuditLogEntry(db.Model):
    """
    Immutable audit trail entry.

    One row per governed event.  ``changes_json`` carries the ordered
    field-level diff as ``[{field, old_value, new_value}, ...]``.  Rows are
    never updated or deleted; corrections are new entries.
    """

    __tablename__ = "audit_log_entries"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_user", "user_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
        db.Index("idx_audit_break_glass", "break_glass_session_id"),
    )

    # Autoincrement id doubles as insertion order for timestamp ties
    id = db.Column(db.Integer, primary_key=True)

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # What happened
    action = db.Column(db.String(60), nullable=False)

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(40), nullable=False,
        comment="DataPoint | ReportSection | SystemRole | User | Permission | …",
    )
    entity_id = db.Column(db.String(64), nullable=False)

    # Who did it (name snapshot survives later renames)
    user_id = db.Column(db.String(64), nullable=False)
    user_name = db.Column(db.String(200), nullable=False, default="")

    change_note = db.Column(db.Text, nullable=True)
    changes_json = db.Column(db.Text, nullable=False, default="[]")

    is_break_glass_action = db.Column(db.Boolean, nullable=False, default=False)
    break_glass_session_id = db.Column(db.String(64), nullable=True)

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def changes(self) -> list[dict]:
        """Deserialise *changes_json* to the ordered FieldChange list."""
        try:
            return json.loads(self.changes_json or "[]")
        except (json.JSONDecodeError, TypeError):
            return []

    def change_for(self, field: str) -> dict | None:
        return next((c for c in self.changes if c["field"] == field), None)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": iso(self.timestamp),
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "change_note": self.change_note,
            "changes": self.changes,
            "is_break_glass_action": self.is_break_glass_action,
            "break_glass_session_id": self.break_glass_session_id,
        }

    def __repr__(self):
        return f"<AuditLogEntry {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"
