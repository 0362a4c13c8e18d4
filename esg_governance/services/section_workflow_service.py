"""
Section Workflow Service — approval lock state machine.

States and transitions:

    draft ──submit──▶ submitted-for-approval ──approve──▶ approved
      ▲                     │                                │
      │              request_changes                  create_revision
      │                     ▼                                │
      └──────────── changes-requested ◀─ (editable) ─┘  draft (v+1)

    Editable:  draft, changes-requested
    Locked:    submitted-for-approval, approved

``can_edit_section`` is the single gate every content mutation consults.
Each transition is checked and applied under the store lock and writes
exactly one audit entry.  A rejected transition mutates nothing.
"""

from __future__ import annotations

import json
import logging

from esg_governance.models.reporting import EDITABLE_SECTION_STATUSES, SectionVersion
from esg_governance.repositories import get_store
from esg_governance.services import audit_service
from esg_governance.services.change_differ import compute_changes, snapshot
from esg_governance.utils.helpers import utcnow

logger = logging.getLogger(__name__)

SUBMITTED = "submitted-for-approval"
APPROVED = "approved"
CHANGES_REQUESTED = "changes-requested"
DRAFT = "draft"


# ── Edit gate ────────────────────────────────────────────────────────────────


def edit_gate(section) -> tuple[bool, str | None]:
    """Edit gate for an already-loaded section.  Caller holds the lock."""
    if section.status in EDITABLE_SECTION_STATUSES:
        return True, None
    if section.status == SUBMITTED:
        who = section.submitted_for_approval_by_name or section.submitted_for_approval_by or "unknown"
        return False, (
            f"Section is submitted for approval by {who} and is locked "
            "until it is approved or changes are requested."
        )
    if section.status == APPROVED:
        return False, (
            f"Section is approved (version {section.version_number}). "
            "Create a new revision to make changes."
        )
    return False, f"Section is in status '{section.status}' and cannot be edited."


def can_edit_section(section_id: str) -> tuple[bool, str | None]:
    """Return ``(can_edit, reason)``; *reason* is None when editable."""
    store = get_store()
    with store.lock:
        section = store.sections.get(section_id)
        if section is None:
            return False, f"Section {section_id} not found."
        return edit_gate(section)


# ── Transitions ──────────────────────────────────────────────────────────────


def _transition(store, section, user_id, user_name, action, new_values, note=None):
    """Diff, apply and audit a status transition.  Caller holds the lock."""
    changes = compute_changes("ReportSection", snapshot(section, "ReportSection"), new_values)
    from_status = section.status
    for key, value in new_values.items():
        setattr(section, key, value)
    section.updated_at = utcnow()
    audit_service.append_entry(
        user_id=user_id,
        user_name=user_name,
        action=action,
        entity_type="ReportSection",
        entity_id=section.id,
        changes=changes,
        change_note=note,
    )
    store.commit()
    logger.info(
        "Section transition %s", action,
        extra={
            "section_id": section.id,
            "user_id": user_id,
            "from_status": from_status,
            "to_status": section.status,
        },
    )
    return section


def submit_for_approval(section_id: str, user_id: str, user_name: str, note: str | None = None):
    """draft | changes-requested → submitted-for-approval (locks the section)."""
    store = get_store()
    with store.lock:
        section = store.sections.get(section_id)
        if section is None:
            return None, {"error": f"Section {section_id} not found.", "status": 404}
        if section.status == SUBMITTED:
            return None, {"error": "Section is already submitted for approval.", "status": 409}
        if section.status == APPROVED:
            return None, {
                "error": "Section is already approved. Create a new revision to make changes.",
                "status": 409,
            }
        if section.status not in EDITABLE_SECTION_STATUSES:
            return None, {"error": f"Section cannot be submitted from status '{section.status}'.", "status": 409}

        section.submitted_for_approval_at = utcnow()
        section.submitted_for_approval_by = user_id
        section.submitted_for_approval_by_name = user_name
        return _transition(
            store, section, user_id, user_name, "submit-for-approval",
            {"status": SUBMITTED}, note,
        ), None


def approve_section(section_id: str, user_id: str, user_name: str, note: str | None = None):
    """submitted-for-approval → approved, capturing an immutable SectionVersion."""
    store = get_store()
    with store.lock:
        section = store.sections.get(section_id)
        if section is None:
            return None, {"error": f"Section {section_id} not found.", "status": 404}
        if section.status != SUBMITTED:
            return None, {
                "error": "Section must be submitted for approval before it can be approved.",
                "status": 409,
            }

        now = utcnow()
        section.approved_at = now
        section.approved_by = user_id
        section.approved_by_name = user_name
        store.section_versions.add(SectionVersion(
            section_id=section.id,
            version_number=section.version_number,
            status=APPROVED,
            title=section.title,
            snapshot_json=json.dumps({
                "section": {**section.to_dict(), "status": APPROVED},
                "data_points": [dp.to_dict() for dp in store.data_points.for_section(section.id)],
            }, default=str),
            approved_at=now,
            approved_by=user_id,
            approved_by_name=user_name,
        ))
        return _transition(
            store, section, user_id, user_name, "approve-section",
            {"status": APPROVED}, note,
        ), None


def request_changes(section_id: str, user_id: str, user_name: str, note: str | None = None):
    """submitted-for-approval → changes-requested (unlocks the section)."""
    store = get_store()
    with store.lock:
        section = store.sections.get(section_id)
        if section is None:
            return None, {"error": f"Section {section_id} not found.", "status": 404}
        if section.status != SUBMITTED:
            return None, {
                "error": "Only submitted sections can have changes requested.",
                "status": 409,
            }

        section.submitted_for_approval_at = None
        section.submitted_for_approval_by = None
        section.submitted_for_approval_by_name = None
        return _transition(
            store, section, user_id, user_name, "request-section-changes",
            {"status": CHANGES_REQUESTED}, note,
        ), None


def create_revision(section_id: str, user_id: str, user_name: str, note: str | None = None):
    """approved → draft with version_number + 1.

    Submission fields are cleared.  ``approved_at`` is kept so the last
    approval stays visible; the full record lives in SectionVersion.
    """
    store = get_store()
    with store.lock:
        section = store.sections.get(section_id)
        if section is None:
            return None, {"error": f"Section {section_id} not found.", "status": 404}
        if section.status != APPROVED:
            return None, {"error": "Only approved sections can be revised.", "status": 409}

        section.submitted_for_approval_at = None
        section.submitted_for_approval_by = None
        section.submitted_for_approval_by_name = None
        return _transition(
            store, section, user_id, user_name, "create-revision",
            {"status": DRAFT, "version_number": section.version_number + 1}, note,
        ), None


def get_section_versions(section_id: str) -> list[SectionVersion]:
    """Approval snapshots for *section_id*, newest first."""
    store = get_store()
    with store.lock:
        return store.section_versions.for_section(section_id)
