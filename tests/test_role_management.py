"""
Tests: role management — seeding, custom roles, descriptions, deletion,
user role assignment.  Every mutation must leave a field-level audit trail.
"""

from esg_governance.models import db
from esg_governance.models.audit import AuditLogEntry
from esg_governance.models.auth import Role, UserRole
from esg_governance.services import role_service, user_service


def _create_role(name="ESG Analyst", perms=("view-all-reports",), description="Reads everything"):
    return role_service.create_role(name, description, list(perms), "user-2", "Admin User")


# ── Seeding ──────────────────────────────────────────────────────────────────


def test_predefined_roles_are_seeded_once():
    """conftest already seeded; a second run creates nothing."""
    assert Role.query.filter_by(is_predefined=True).count() == 9
    assert role_service.seed_predefined_roles() == 0
    assert Role.query.count() == 9


def test_list_roles_puts_predefined_first():
    role, _ = _create_role()
    roles = role_service.list_roles()
    assert roles[-1].id == role.id
    assert all(r.is_predefined for r in roles[:-1])


# ── Create ───────────────────────────────────────────────────────────────────


def test_create_role_is_audited():
    role, err = _create_role(perms=("view-all-reports", "run-audits"))

    assert err is None
    assert role.is_predefined is False
    assert role.version == 1
    entry = AuditLogEntry.query.filter_by(action="create-role").one()
    assert entry.entity_type == "SystemRole"
    assert entry.entity_id == role.id
    assert entry.change_for("name")["new_value"] == "ESG Analyst"
    assert entry.change_for("permissions")["new_value"] == "run-audits, view-all-reports"


def test_create_role_requires_name_and_permissions():
    _, err = role_service.create_role("  ", "x", ["view-reports"], "user-2", "Admin User")
    assert err == {"error": "Role name is required.", "status": 400}

    _, err = role_service.create_role("Empty", "x", [], "user-2", "Admin User")
    assert err == {"error": "At least one permission is required.", "status": 400}


def test_duplicate_role_name_is_rejected_case_insensitively():
    _create_role()
    _, err = _create_role(name="esg analyst")
    assert err["status"] == 409


# ── Description ──────────────────────────────────────────────────────────────


def test_update_description_bumps_version_and_audits():
    role, _ = _create_role()

    updated, err = role_service.update_role_description(role.id, "Reads and audits", "user-2", "Admin User")

    assert err is None
    assert updated.version == 2
    assert updated.updated_by == "user-2"
    entry = AuditLogEntry.query.filter_by(action="update-role-description").one()
    assert entry.changes == [
        {"field": "description", "old_value": "Reads everything", "new_value": "Reads and audits"},
        {"field": "version", "old_value": "1", "new_value": "2"},
    ]


def test_identical_description_is_a_no_op():
    role, _ = _create_role()
    before = AuditLogEntry.query.count()

    same, err = role_service.update_role_description(role.id, "Reads everything", "user-2", "Admin User")

    assert err is None
    assert same.version == 1
    assert AuditLogEntry.query.count() == before


def test_predefined_role_description_can_be_edited():
    role, err = role_service.update_role_description(
        "role-reviewer", "Reviews narrative sections", "user-2", "Admin User",
    )
    assert err is None
    assert role.version == 2


def test_update_description_validation():
    _, err = role_service.update_role_description("role-reviewer", "", "user-2", "Admin User")
    assert err["status"] == 400
    _, err = role_service.update_role_description("role-nope", "x", "user-2", "Admin User")
    assert err["status"] == 404


# ── Delete ───────────────────────────────────────────────────────────────────


def test_predefined_roles_cannot_be_deleted():
    _, err = role_service.delete_role("role-admin", "user-2", "Admin User")
    assert err["status"] == 403
    assert err["error"] == (
        "Cannot delete predefined role 'Admin'. "
        "Predefined roles are essential for system access control."
    )
    assert db.session.get(Role, "role-admin") is not None


def test_delete_custom_role_detaches_users_and_audits():
    role, _ = _create_role()
    user_service.create_user("Ana", "ana@example.com", [role.id, "role-reviewer"], user_id="u-ana")

    result, err = role_service.delete_role(role.id, "user-2", "Admin User")

    assert err is None
    assert result == {"id": role.id, "name": "ESG Analyst", "detached_users": 1}
    assert db.session.get(Role, role.id) is None
    assert UserRole.query.filter_by(role_id=role.id).count() == 0
    assert user_service.get_user("u-ana").role_ids == ["role-reviewer"]

    entry = AuditLogEntry.query.filter_by(action="delete-role").one()
    assert entry.change_for("status") == {"field": "status", "old_value": "active", "new_value": "deleted"}
    assert entry.change_for("name")["new_value"] == ""


def test_delete_unknown_role_is_404():
    _, err = role_service.delete_role("role-nope", "user-2", "Admin User")
    assert err["status"] == 404


# ── Assignment ───────────────────────────────────────────────────────────────


def test_assign_roles_diffs_role_set(sample_users):
    user, err = role_service.assign_user_roles(
        sample_users["contributor"], ["role-contributor", "role-reviewer"], "user-2", "Admin User",
    )

    assert err is None
    assert user.role_ids == ["role-contributor", "role-reviewer"]
    entry = AuditLogEntry.query.filter_by(action="assign-user-roles").one()
    assert entry.entity_type == "User"
    assert entry.changes == [{
        "field": "role_ids",
        "old_value": "role-contributor",
        "new_value": "role-contributor, role-reviewer",
    }]


def test_assign_same_roles_writes_nothing(sample_users):
    before = AuditLogEntry.query.count()
    role_service.assign_user_roles(sample_users["contributor"], ["role-contributor"], "user-2", "Admin User")
    assert AuditLogEntry.query.count() == before


def test_assign_unknown_role_rejects_whole_request(sample_users):
    _, err = role_service.assign_user_roles(
        sample_users["contributor"], ["role-reviewer", "role-nope"], "user-2", "Admin User",
    )
    assert err["status"] == 400
    assert err["details"] == {"role_ids": ["role-nope"]}
    assert user_service.get_user(sample_users["contributor"]).role_ids == ["role-contributor"]


# ── Users ────────────────────────────────────────────────────────────────────


def test_update_user_is_diffed(sample_users):
    user, err = user_service.update_user(
        sample_users["contributor"], {"name": "John A. Smith", "is_active": False}, "user-2", "Admin User",
    )

    assert err is None
    assert user.is_active is False
    entry = AuditLogEntry.query.filter_by(action="update", entity_type="User").one()
    assert entry.changes == [
        {"field": "name", "old_value": "John Smith", "new_value": "John A. Smith"},
        {"field": "is_active", "old_value": "true", "new_value": "false"},
    ]


def test_duplicate_email_rejected(sample_users):
    _, err = user_service.create_user("Other", "ADMIN@company.com", [])
    assert err["status"] == 409
