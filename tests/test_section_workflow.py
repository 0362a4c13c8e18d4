"""
Tests: WorkflowStateMachine — section approval lock.

draft ─submit─▶ submitted-for-approval ─approve─▶ approved ─revision─▶ draft (v+1)
                        └─request_changes─▶ changes-requested ─submit─▶ …

Each accepted transition writes exactly one audit entry; a rejected one
changes nothing.
"""

from esg_governance.models.audit import AuditLogEntry
from esg_governance.services import data_point_service, reporting_service
from esg_governance.services import section_workflow_service as wf


def _make_section():
    period, _ = reporting_service.create_period("FY2025", "2025-01-01", "2025-12-31", "user-2", "Admin User")
    section, err = reporting_service.create_section(
        period.id, "Climate change", "user-2", "Admin User", catalog_code="ENV-001", owner_id="user-3",
    )
    assert err is None, err
    return section


def _data_point(section_id):
    dp, err = data_point_service.create_data_point(
        section_id,
        {"title": "Scope 1", "content": "Direct emissions", "source": "Invoices", "value": "1200"},
        "user-3",
        "John Smith",
    )
    assert err is None, err
    return dp


def _entries(section_id):
    return AuditLogEntry.query.filter_by(entity_type="ReportSection", entity_id=section_id).all()


# ── Edit gate ────────────────────────────────────────────────────────────────


def test_new_section_is_editable(sample_users):
    section = _make_section()
    assert section.status == "draft"
    assert wf.can_edit_section(section.id) == (True, None)


def test_submit_locks_section(sample_users):
    section = _make_section()

    submitted, err = wf.submit_for_approval(section.id, "user-3", "John Smith", note="Ready")

    assert err is None
    assert submitted.status == "submitted-for-approval"
    assert submitted.submitted_for_approval_by == "user-3"
    can_edit, reason = wf.can_edit_section(section.id)
    assert can_edit is False
    assert reason.startswith("Section is submitted for approval by John Smith")


def test_submit_twice_is_rejected(sample_users):
    section = _make_section()
    wf.submit_for_approval(section.id, "user-3", "John Smith")

    _, err = wf.submit_for_approval(section.id, "user-3", "John Smith")

    assert err == {"error": "Section is already submitted for approval.", "status": 409}


def test_approve_requires_submission(sample_users):
    section = _make_section()
    before = len(_entries(section.id))

    _, err = wf.approve_section(section.id, "user-5", "Michael Brown")

    assert err == {
        "error": "Section must be submitted for approval before it can be approved.",
        "status": 409,
    }
    assert reporting_service.get_section(section.id).status == "draft"
    assert len(_entries(section.id)) == before


def test_approve_creates_version_snapshot_and_locks(sample_users):
    section = _make_section()
    dp = _data_point(section.id)
    wf.submit_for_approval(section.id, "user-3", "John Smith")

    approved, err = wf.approve_section(section.id, "user-5", "Michael Brown")

    assert err is None
    assert approved.status == "approved"
    assert approved.approved_by_name == "Michael Brown"
    assert approved.approved_at is not None

    versions = wf.get_section_versions(section.id)
    assert len(versions) == 1
    snapshot = versions[0].snapshot
    assert versions[0].version_number == 1
    assert snapshot["section"]["status"] == "approved"
    assert [d["id"] for d in snapshot["data_points"]] == [dp.id]

    can_edit, reason = wf.can_edit_section(section.id)
    assert can_edit is False
    assert reason == "Section is approved (version 1). Create a new revision to make changes."


def test_submit_approved_section_is_rejected(sample_users):
    section = _make_section()
    wf.submit_for_approval(section.id, "user-3", "John Smith")
    wf.approve_section(section.id, "user-5", "Michael Brown")

    _, err = wf.submit_for_approval(section.id, "user-3", "John Smith")

    assert err["error"] == "Section is already approved. Create a new revision to make changes."


def test_request_changes_unlocks(sample_users):
    section = _make_section()
    wf.submit_for_approval(section.id, "user-3", "John Smith")

    returned, err = wf.request_changes(section.id, "user-5", "Michael Brown", note="Add methodology")

    assert err is None
    assert returned.status == "changes-requested"
    assert returned.submitted_for_approval_at is None
    assert wf.can_edit_section(section.id) == (True, None)

    # and the author can resubmit
    resubmitted, err = wf.submit_for_approval(section.id, "user-3", "John Smith")
    assert err is None
    assert resubmitted.status == "submitted-for-approval"


def test_request_changes_only_from_submitted(sample_users):
    section = _make_section()
    _, err = wf.request_changes(section.id, "user-5", "Michael Brown")
    assert err == {"error": "Only submitted sections can have changes requested.", "status": 409}


def test_revision_reopens_with_next_version(sample_users):
    section = _make_section()
    wf.submit_for_approval(section.id, "user-3", "John Smith")
    wf.approve_section(section.id, "user-5", "Michael Brown")

    revised, err = wf.create_revision(section.id, "user-3", "John Smith")

    assert err is None
    assert revised.status == "draft"
    assert revised.version_number == 2
    assert revised.approved_at is not None
    assert wf.can_edit_section(section.id) == (True, None)


def test_revision_only_from_approved(sample_users):
    section = _make_section()
    _, err = wf.create_revision(section.id, "user-3", "John Smith")
    assert err == {"error": "Only approved sections can be revised.", "status": 409}


def test_versions_are_newest_first(sample_users):
    section = _make_section()
    for _ in range(2):
        wf.submit_for_approval(section.id, "user-3", "John Smith")
        wf.approve_section(section.id, "user-5", "Michael Brown")
        wf.create_revision(section.id, "user-3", "John Smith")

    assert [v.version_number for v in wf.get_section_versions(section.id)] == [2, 1]


def test_each_transition_writes_one_audit_entry(sample_users):
    section = _make_section()
    wf.submit_for_approval(section.id, "user-3", "John Smith", note="Ready for review")
    wf.approve_section(section.id, "user-5", "Michael Brown")
    wf.create_revision(section.id, "user-3", "John Smith")

    entries = _entries(section.id)
    by_action = {e.action: e for e in entries}

    assert [e.action for e in entries].count("submit-for-approval") == 1
    submit = by_action["submit-for-approval"]
    assert submit.change_note == "Ready for review"
    assert submit.change_for("status") == {
        "field": "status", "old_value": "draft", "new_value": "submitted-for-approval",
    }
    assert by_action["approve-section"].user_id == "user-5"
    revision = by_action["create-revision"]
    assert revision.change_for("version_number") == {"field": "version_number", "old_value": "1", "new_value": "2"}


def test_unknown_section(sample_users):
    assert wf.can_edit_section("nope") == (False, "Section nope not found.")
    _, err = wf.submit_for_approval("nope", "user-3", "John Smith")
    assert err["status"] == 404


# ── Lock enforcement on content ──────────────────────────────────────────────


def test_locked_section_rejects_data_point_writes(sample_users):
    section = _make_section()
    dp = _data_point(section.id)
    wf.submit_for_approval(section.id, "user-3", "John Smith")

    _, err = data_point_service.update_data_point(dp.id, {"value": "1300"}, "user-3", "John Smith")
    assert err["status"] == 423
    assert err["error"].startswith("Section is submitted for approval")

    _, err = data_point_service.create_data_point(
        section.id, {"title": "Scope 2", "content": "x", "source": "y"}, "user-3", "John Smith",
    )
    assert err["status"] == 423
    assert data_point_service.get_data_point(dp.id).value == "1200"


def test_changes_requested_section_accepts_edits(sample_users):
    section = _make_section()
    dp = _data_point(section.id)
    wf.submit_for_approval(section.id, "user-3", "John Smith")
    wf.request_changes(section.id, "user-5", "Michael Brown")

    updated, err = data_point_service.update_data_point(dp.id, {"value": "1300"}, "user-3", "John Smith")

    assert err is None
    assert updated.value == "1300"
