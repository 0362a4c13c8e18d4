"""
Data Point Service — the content mutation path.

Every write here:
    1. validates the proposed state,
    2. consults the section edit gate (section_workflow_service),
    3. diffs the tracked fields,
    4. applies the change and appends one audit entry — or none when the
       diff is empty.

Completeness validator:
    ``check_completeness`` re-validates the *stored* entity at every status
    transition (completeness change, review approval) instead of trusting
    that the row is still in the shape creation left it in.  A completeness
    change made through ``update_data_point`` runs the same rules on the
    merged state.

Approved data points are read-only until their review status is set
back; "approved" and "changes-requested" are only reachable through the
review actions.
"""

from __future__ import annotations

import logging

from esg_governance.models.reporting import (
    COMPLETENESS_STATUSES,
    INFORMATION_TYPES,
    REVIEW_STATUSES,
    DataPoint,
)
from esg_governance.repositories import get_store
from esg_governance.services import audit_service
from esg_governance.services.change_differ import TRACKED_FIELDS, compute_changes, field_change, snapshot
from esg_governance.services.section_workflow_service import edit_gate
from esg_governance.utils.helpers import parse_datetime, utcnow

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = TRACKED_FIELDS["DataPoint"]
READY_FOR_REVIEW = "ready-for-review"
APPROVED = "approved"
# Reached only through approve_data_point / request_data_point_changes
REVIEW_DECISIONS = (APPROVED, "changes-requested")


# ── Validation ───────────────────────────────────────────────────────────────


def _blank(value) -> bool:
    return value is None or str(value).strip() == ""


def validate_fields(values: dict) -> str | None:
    """Return the first validation error for a full data point state, or None."""
    if _blank(values.get("title")):
        return "Title is required."
    if _blank(values.get("content")):
        return "Content is required."
    if _blank(values.get("source")):
        return "Source is required."
    info_type = (values.get("information_type") or "").strip().lower()
    if info_type not in INFORMATION_TYPES:
        return f"Information type must be one of: {', '.join(INFORMATION_TYPES)}."
    if info_type == "estimate" and _blank(values.get("assumptions")):
        return "Assumptions are required when information type is 'estimate'."
    completeness = (values.get("completeness_status") or "").strip().lower()
    if completeness not in COMPLETENESS_STATUSES:
        return f"Completeness status must be one of: {', '.join(COMPLETENESS_STATUSES)}."
    review = values.get("review_status")
    if review is not None and review not in REVIEW_STATUSES:
        return f"Review status must be one of: {', '.join(REVIEW_STATUSES)}."
    if not _blank(values.get("deadline")):
        try:
            parse_datetime(values["deadline"])
        except ValueError:
            return "Deadline must be an ISO-8601 date."
    return None


def check_completeness(data_point: DataPoint, target_status: str | None = None) -> tuple[bool, str | None]:
    """Validate the stored data point for a status transition.

    Args:
        data_point:    The persisted entity, whatever state it is in.
        target_status: Completeness status being moved to (defaults to the
                       current one).

    Returns:
        (True, None) or (False, reason).
    """
    state = snapshot(data_point, "DataPoint")
    if target_status is not None:
        state["completeness_status"] = target_status
    error = completeness_error(state)
    return (False, error) if error else (True, None)


def completeness_error(state: dict) -> str | None:
    """Field validation plus the extra rules for a "complete" data point."""
    error = validate_fields(state)
    if error:
        return error
    if state["completeness_status"] == "complete":
        if _blank(state.get("value")) and _blank(state.get("content")):
            return "A complete data point must have a value or content."
        if state.get("value") not in (None, "") and state.get("type") == "metric" and _blank(state.get("unit")):
            return "A complete metric data point must have a unit."
    return None


def _normalise_payload(payload: dict) -> dict:
    values = {k: payload[k] for k in EDITABLE_FIELDS if k in payload}
    for key in ("information_type", "completeness_status", "review_status"):
        if isinstance(values.get(key), str):
            values[key] = values[key].strip().lower()
    for key in ("title", "source"):
        if isinstance(values.get(key), str):
            values[key] = values[key].strip()
    return values


# ── Create / update ──────────────────────────────────────────────────────────


def create_data_point(section_id: str, payload: dict, user_id: str, user_name: str):
    """Create a data point in an editable section.

    Returns:
        (data_point, None) on success.
        (None, {"error": ..., "status": int}) on validation, not-found or lock failure.
    """
    values = {
        "type": "narrative",
        "information_type": "fact",
        "completeness_status": "incomplete",
        "review_status": "draft",
        **_normalise_payload(payload),
    }
    error = validate_fields(values)
    if error:
        return None, {"error": error, "status": 400}

    store = get_store()
    with store.lock:
        section = store.sections.get(section_id)
        if section is None:
            return None, {"error": f"Section {section_id} not found.", "status": 404}
        can_edit, reason = edit_gate(section)
        if not can_edit:
            return None, {"error": reason, "status": 423}

        data_point = store.data_points.add(DataPoint(section_id=section_id, **values))
        audit_service.append_entry(
            user_id=user_id,
            user_name=user_name,
            action="create",
            entity_type="DataPoint",
            entity_id=data_point.id,
            changes=compute_changes("DataPoint", {}, values),
        )
        store.commit()

    logger.info("Created data point", extra={"data_point_id": data_point.id, "section_id": section_id})
    return data_point, None


def update_data_point(
    data_point_id: str,
    payload: dict,
    user_id: str,
    user_name: str,
    change_note: str | None = None,
):
    """Apply *payload* to a data point.

    Only tracked fields present in *payload* are considered.  Identical
    values produce no audit entry and leave ``updated_at`` untouched.

    An approved data point only accepts a review-status change (reopening
    it); "approved" and "changes-requested" themselves are set by the
    review actions.  A completeness change runs the completeness rules on
    the merged state.
    """
    store = get_store()
    with store.lock:
        data_point = store.data_points.get(data_point_id)
        if data_point is None:
            return None, {"error": "DataPoint not found.", "status": 404}

        can_edit, reason = edit_gate(data_point.section)
        if not can_edit:
            return None, {"error": reason, "status": 423}

        proposed = _normalise_payload(payload)
        before = snapshot(data_point, "DataPoint")
        error = validate_fields({**before, **proposed})
        if error:
            return None, {"error": error, "status": 400}

        changes = compute_changes("DataPoint", before, proposed)
        if not changes:
            return data_point, None

        changed = {c["field"] for c in changes}
        if data_point.review_status == APPROVED and changed - {"review_status"}:
            return None, {
                "error": "Cannot modify approved data points. Set the review status back to 'draft' first.",
                "status": 409,
            }
        if "review_status" in changed and proposed["review_status"] in REVIEW_DECISIONS:
            return None, {
                "error": f"Review status '{proposed['review_status']}' can only be set by a reviewer decision.",
                "status": 409,
            }
        if "completeness_status" in changed:
            error = completeness_error({**before, **proposed})
            if error:
                return None, {"error": error, "status": 400}

        for key, value in proposed.items():
            setattr(data_point, key, value)
        data_point.updated_at = utcnow()
        audit_service.record_changes(
            user_id=user_id,
            user_name=user_name,
            action="update",
            entity_type="DataPoint",
            entity_id=data_point.id,
            changes=changes,
            change_note=change_note,
        )
        store.commit()

    logger.info(
        "Updated data point (%d field(s))", len(changes),
        extra={"data_point_id": data_point_id, "user_id": user_id},
    )
    return data_point, None


def update_completeness_status(data_point_id: str, status: str, user_id: str, user_name: str):
    """Move a data point to a new completeness status after re-validating it."""
    status = (status or "").strip().lower()
    if status not in COMPLETENESS_STATUSES:
        return None, {
            "error": f"Completeness status must be one of: {', '.join(COMPLETENESS_STATUSES)}.",
            "status": 400,
        }

    store = get_store()
    with store.lock:
        data_point = store.data_points.get(data_point_id)
        if data_point is None:
            return None, {"error": "DataPoint not found.", "status": 404}
        can_edit, reason = edit_gate(data_point.section)
        if not can_edit:
            return None, {"error": reason, "status": 423}

        ok, reason = check_completeness(data_point, status)
        if not ok:
            return None, {"error": reason, "status": 400}

        changes = compute_changes(
            "DataPoint", snapshot(data_point, "DataPoint"), {"completeness_status": status},
        )
        if not changes:
            return data_point, None
        data_point.completeness_status = status
        data_point.updated_at = utcnow()
        audit_service.record_changes(
            user_id=user_id,
            user_name=user_name,
            action="update-completeness",
            entity_type="DataPoint",
            entity_id=data_point.id,
            changes=changes,
        )
        store.commit()
    return data_point, None


# ── Review ───────────────────────────────────────────────────────────────────


def approve_data_point(data_point_id: str, user_id: str, user_name: str, comments: str | None = None):
    """ready-for-review → approved.  The stored entity is re-validated first."""
    store = get_store()
    with store.lock:
        data_point = store.data_points.get(data_point_id)
        if data_point is None:
            return None, {"error": "DataPoint not found.", "status": 404}
        if data_point.review_status != READY_FOR_REVIEW:
            return None, {"error": "Only data points ready for review can be approved.", "status": 409}
        ok, reason = check_completeness(data_point)
        if not ok:
            return None, {"error": f"Data point failed validation: {reason}", "status": 400}

        changes = [field_change("review_status", data_point.review_status, APPROVED)]
        data_point.review_status = APPROVED
        data_point.reviewed_by = user_id
        data_point.reviewed_at = utcnow()
        data_point.change_request_comments = None
        audit_service.append_entry(
            user_id=user_id,
            user_name=user_name,
            action="approve",
            entity_type="DataPoint",
            entity_id=data_point.id,
            changes=changes,
            change_note=comments,
        )
        store.commit()

    logger.info("Approved data point", extra={"data_point_id": data_point_id, "user_id": user_id})
    return data_point, None


def request_data_point_changes(data_point_id: str, user_id: str, user_name: str, comments: str):
    """ready-for-review → changes-requested.  Comments are mandatory."""
    comments = (comments or "").strip()
    if not comments:
        return None, {"error": "Comments are required when requesting changes.", "status": 400}

    store = get_store()
    with store.lock:
        data_point = store.data_points.get(data_point_id)
        if data_point is None:
            return None, {"error": "DataPoint not found.", "status": 404}
        if data_point.review_status != READY_FOR_REVIEW:
            return None, {
                "error": "Only data points ready for review can have changes requested.",
                "status": 409,
            }

        changes = [field_change("review_status", data_point.review_status, "changes-requested")]
        data_point.review_status = "changes-requested"
        data_point.reviewed_by = user_id
        data_point.reviewed_at = utcnow()
        data_point.change_request_comments = comments
        audit_service.append_entry(
            user_id=user_id,
            user_name=user_name,
            action="request-changes",
            entity_type="DataPoint",
            entity_id=data_point.id,
            changes=changes,
            change_note=comments,
        )
        store.commit()

    logger.info("Requested data point changes", extra={"data_point_id": data_point_id, "user_id": user_id})
    return data_point, None


def get_data_point(data_point_id: str) -> DataPoint | None:
    return get_store().data_points.get(data_point_id)


def list_data_points(section_id: str) -> list[DataPoint]:
    store = get_store()
    with store.lock:
        return store.data_points.for_section(section_id)
