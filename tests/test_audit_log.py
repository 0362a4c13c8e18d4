"""
Tests: AuditLog — append-only ledger, filtering and break-glass tagging.

Covers:
  - append / record_changes semantics (empty diff writes nothing)
  - newest-first ordering with deterministic tie-break
  - AND-combined filters, inclusive date bounds, break_glass_only tri-state
  - immutability (no delete path)
  - permission-change history
  - Audit API (list, filter, single, 404, bad date)
"""

from datetime import timedelta

import pytest

from esg_governance.models import db
from esg_governance.models.audit import AuditLogEntry
from esg_governance.repositories import get_store
from esg_governance.services import audit_service, break_glass_service, role_service
from esg_governance.utils.helpers import as_utc, utcnow


# ── Helpers ──────────────────────────────────────────────────────────────────


def _append(action="update", entity_type="DataPoint", entity_id="dp-1", user_id="user-3", **kw):
    entry = audit_service.append_entry(
        user_id=user_id,
        user_name=kw.pop("user_name", "John Smith"),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        changes=kw.pop("changes", [{"field": "value", "old_value": "1", "new_value": "2"}]),
        **kw,
    )
    db.session.commit()
    return entry


# ── Append ───────────────────────────────────────────────────────────────────


def test_append_entry_persists_all_fields():
    entry = _append(change_note="Corrected after invoice review")

    stored = audit_service.get_entry(entry.id)
    assert stored is not None
    assert stored.action == "update"
    assert stored.entity_type == "DataPoint"
    assert stored.entity_id == "dp-1"
    assert stored.user_name == "John Smith"
    assert stored.change_note == "Corrected after invoice review"
    assert stored.changes == [{"field": "value", "old_value": "1", "new_value": "2"}]
    assert stored.change_for("value")["new_value"] == "2"
    assert stored.is_break_glass_action is False
    assert stored.break_glass_session_id is None
    assert stored.timestamp is not None


def test_record_changes_with_empty_diff_writes_nothing():
    result = audit_service.record_changes(
        user_id="user-3", user_name="John Smith", action="update",
        entity_type="DataPoint", entity_id="dp-1", changes=[],
    )
    assert result is None
    assert AuditLogEntry.query.count() == 0


def test_entries_cannot_be_deleted():
    entry = _append()
    with pytest.raises(TypeError):
        get_store().audit.delete(entry)
    assert audit_service.get_entry(entry.id) is not None


# ── Ordering ─────────────────────────────────────────────────────────────────


def test_query_returns_newest_first_with_id_tie_break():
    """Entries appended in quick succession come back in reverse insertion order."""
    ids = [_append(entity_id=f"dp-{i}").id for i in range(5)]

    entries = audit_service.query_entries(entity_type="DataPoint")

    assert [e.id for e in entries] == list(reversed(ids))
    timestamps = [as_utc(e.timestamp) for e in entries]
    assert timestamps == sorted(timestamps, reverse=True)


def test_timestamps_never_go_backwards():
    first = _append()
    second = _append()
    assert as_utc(second.timestamp) >= as_utc(first.timestamp)


# ── Filters ──────────────────────────────────────────────────────────────────


def test_filters_combine_with_and():
    _append(action="update", entity_type="DataPoint", entity_id="dp-1", user_id="user-3")
    _append(action="update", entity_type="DataPoint", entity_id="dp-2", user_id="user-4")
    _append(action="approve", entity_type="DataPoint", entity_id="dp-1", user_id="user-3")
    _append(action="update", entity_type="ReportSection", entity_id="dp-1", user_id="user-3")

    entries = audit_service.query_entries(
        entity_type="DataPoint", entity_id="dp-1", user_id="user-3", action="update",
    )

    assert len(entries) == 1
    assert entries[0].action == "update"
    assert entries[0].entity_type == "DataPoint"


def test_entity_type_filter_is_case_insensitive():
    _append(entity_type="DataPoint")
    assert len(audit_service.query_entries(entity_type="datapoint")) == 1


def test_limit_caps_result_size():
    for i in range(4):
        _append(entity_id=f"dp-{i}")
    assert len(audit_service.query_entries(limit=2)) == 2


def test_date_bounds_are_inclusive():
    entry = _append()
    ts = as_utc(entry.timestamp)

    assert [e.id for e in audit_service.query_entries(start_date=ts, end_date=ts)] == [entry.id]
    assert audit_service.query_entries(start_date=ts + timedelta(seconds=1)) == []
    assert audit_service.query_entries(end_date=ts - timedelta(seconds=1)) == []


def test_date_filters_accept_iso_strings():
    _append()
    tomorrow = (utcnow() + timedelta(days=1)).date().isoformat()
    yesterday = (utcnow() - timedelta(days=1)).date().isoformat()

    assert len(audit_service.query_entries(start_date=yesterday, end_date=tomorrow)) == 1
    assert audit_service.query_entries(start_date=tomorrow) == []


def test_malformed_date_filter_raises_value_error():
    with pytest.raises(ValueError):
        audit_service.query_entries(start_date="last tuesday")


def test_break_glass_only_is_tri_state(sample_users):
    admin = sample_users["admin"]
    _append(user_id=admin, entity_id="before-session")
    session, err = break_glass_service.activate_break_glass(
        admin, "Admin User", "Production data fix for regulator deadline",
    )
    assert err is None
    _append(user_id=admin, entity_id="during-session")

    tagged = audit_service.query_entries(user_id=admin, break_glass_only=True)
    untagged = audit_service.query_entries(user_id=admin, break_glass_only=False)
    everything = audit_service.query_entries(user_id=admin)

    assert {e.entity_id for e in tagged} == {session.id, "during-session"}
    assert all(e.break_glass_session_id == session.id for e in tagged)
    assert "before-session" in {e.entity_id for e in untagged}
    assert len(everything) == len(tagged) + len(untagged)


def test_explicit_break_glass_false_is_never_tagged(sample_users):
    admin = sample_users["admin"]
    break_glass_service.activate_break_glass(admin, "Admin User", "Production data fix for regulator deadline")

    entry = _append(user_id=admin, break_glass=False)

    assert entry.is_break_glass_action is False
    assert entry.break_glass_session_id is None


# ── Permission change history ────────────────────────────────────────────────


def test_permission_change_history_only_includes_access_entities(sample_users):
    _append(entity_type="DataPoint")
    role, err = role_service.create_role(
        "ESG Analyst", "Reads everything", ["view-all-reports"], "user-2", "Admin User",
    )
    assert err is None

    entries = audit_service.get_permission_change_history()

    assert entries
    assert {e.entity_type for e in entries} <= {"SystemRole", "User", "SectionAccessGrant"}
    assert entries[0].entity_type == "SystemRole"
    assert entries[0].entity_id == role.id


# ── API ──────────────────────────────────────────────────────────────────────


def test_api_lists_entries_with_filters(client):
    _append(entity_id="dp-1")
    _append(entity_id="dp-2", action="approve")

    res = client.get("/api/v1/audit-log?action=approve")

    assert res.status_code == 200
    body = res.get_json()
    assert body["total"] == 1
    assert body["entries"][0]["entity_id"] == "dp-2"
    assert body["entries"][0]["changes"][0]["field"] == "value"


def test_api_get_single_entry_and_404(client):
    entry = _append()

    res = client.get(f"/api/v1/audit-log/{entry.id}")
    assert res.status_code == 200
    assert res.get_json()["id"] == entry.id

    res = client.get("/api/v1/audit-log/999999")
    assert res.status_code == 404


def test_api_rejects_malformed_date(client):
    res = client.get("/api/v1/audit-log?start_date=not-a-date")
    assert res.status_code == 400


def test_api_break_glass_only_filter(client, sample_users):
    admin = sample_users["admin"]
    break_glass_service.activate_break_glass(admin, "Admin User", "Production data fix for regulator deadline")

    res = client.get("/api/v1/audit-log?break_glass_only=true")

    body = res.get_json()
    assert body["total"] >= 1
    assert all(e["is_break_glass_action"] for e in body["entries"])
