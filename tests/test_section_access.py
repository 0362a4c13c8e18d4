"""
Tests: section access grants and external advisor onboarding.

Grants are time-bounded, never deleted, and bulk operations report
per-user outcomes instead of failing the whole request.
"""

from datetime import timedelta

from esg_governance.models import db
from esg_governance.models.audit import AuditLogEntry
from esg_governance.models.auth import SectionAccessGrant
from esg_governance.services import reporting_service, section_access_service, user_service
from esg_governance.utils.helpers import as_utc, utcnow


def _make_section(owner_id="user-3"):
    period, _ = reporting_service.create_period("FY2025", "2025-01-01", "2025-12-31", "user-2", "Admin User")
    section, err = reporting_service.create_section(
        period.id, "Own workforce", "user-2", "Admin User", catalog_code="SOC-001", owner_id=owner_id,
    )
    assert err is None, err
    return section


def _grant(section_id, user_ids, **kw):
    return section_access_service.grant_section_access(section_id, user_ids, "user-2", "Admin User", **kw)


# ── Grant ────────────────────────────────────────────────────────────────────


def test_grant_reports_per_user_outcomes(sample_users):
    section = _make_section()

    result, err = _grant(section.id, ["user-5", "ghost"], reason="Pre-audit review")

    assert err is None
    assert [g["user_id"] for g in result["granted_access"]] == ["user-5"]
    assert result["granted_access"][0]["reason"] == "Pre-audit review"
    assert result["failures"] == [{"user_id": "ghost", "reason": "User not found"}]


def test_duplicate_live_grant_is_a_failure(sample_users):
    section = _make_section()
    _grant(section.id, ["user-5"])

    result, _ = _grant(section.id, ["user-5"])

    assert result["granted_access"] == []
    assert result["failures"] == [{"user_id": "user-5", "reason": "User already has access to this section"}]


def test_each_grant_is_audited(sample_users):
    section = _make_section()
    expires = utcnow() + timedelta(days=14)
    result, _ = _grant(section.id, ["user-5", "user-6"], expires_at=expires.isoformat())

    entries = AuditLogEntry.query.filter_by(action="grant-section-access").all()

    assert len(entries) == 2
    assert {e.entity_id for e in entries} == {g["id"] for g in result["granted_access"]}
    assert all(e.entity_type == "SectionAccessGrant" for e in entries)
    assert entries[0].change_for("section_id")["new_value"] == section.id


def test_grant_rejects_past_or_malformed_expiry(sample_users):
    section = _make_section()

    _, err = _grant(section.id, ["user-5"], expires_at=(utcnow() - timedelta(days=1)).isoformat())
    assert err == {"error": "expires_at must be in the future.", "status": 400}

    _, err = _grant(section.id, ["user-5"], expires_at="next week")
    assert err["status"] == 400
    assert SectionAccessGrant.query.count() == 0


def test_grant_on_unknown_section_is_404(sample_users):
    _, err = _grant("no-such-section", ["user-5"])
    assert err["status"] == 404


# ── Revoke ───────────────────────────────────────────────────────────────────


def test_revoke_keeps_the_grant_as_evidence(sample_users):
    section = _make_section()
    _grant(section.id, ["user-5"])

    result, err = section_access_service.revoke_section_access(
        section.id, ["user-5", "user-6"], "user-2", "Admin User", reason="Review finished",
    )

    assert err is None
    assert result["revoked_user_ids"] == ["user-5"]
    assert result["failures"] == [{
        "user_id": "user-6",
        "reason": "User does not have explicit access to this section",
    }]
    grant = SectionAccessGrant.query.filter_by(user_id="user-5").one()
    assert grant.revoked_at is not None
    assert grant.revoked_by == "user-2"

    entry = AuditLogEntry.query.filter_by(action="revoke-section-access").one()
    assert entry.change_note == "Review finished"
    assert entry.change_for("status") == {"field": "status", "old_value": "active", "new_value": "revoked"}


def test_revoked_user_can_be_granted_again(sample_users):
    section = _make_section()
    _grant(section.id, ["user-5"])
    section_access_service.revoke_section_access(section.id, ["user-5"], "user-2", "Admin User")

    result, _ = _grant(section.id, ["user-5"])

    assert len(result["granted_access"]) == 1
    assert SectionAccessGrant.query.filter_by(user_id="user-5").count() == 2


# ── Queries ──────────────────────────────────────────────────────────────────


def test_expired_grants_are_not_listed_but_not_deleted(sample_users):
    section = _make_section()
    _grant(section.id, ["user-5"])
    grant = SectionAccessGrant.query.one()
    grant.expires_at = utcnow() - timedelta(minutes=5)
    db.session.commit()

    assert section_access_service.get_user_section_access("user-5") == []
    assert SectionAccessGrant.query.count() == 1
    assert as_utc(SectionAccessGrant.query.one().expires_at) < utcnow()


def test_access_summary_lists_owner_and_live_grants(sample_users):
    section = _make_section(owner_id="user-3")
    _grant(section.id, ["user-5", "user-6"])
    section_access_service.revoke_section_access(section.id, ["user-6"], "user-2", "Admin User")

    summary = section_access_service.get_section_access_summary(section.id)

    assert summary["section_title"] == "Own workforce"
    assert summary["owner"]["id"] == "user-3"
    assert [g["user_id"] for g in summary["access_grants"]] == ["user-5"]
    assert summary["access_grants"][0]["user_name"] == "Michael Brown"
    assert section_access_service.get_section_access_summary("nope") is None


# ── External advisors ────────────────────────────────────────────────────────


def test_invite_external_advisor_sets_role_expiry_and_grants(sample_users):
    section = _make_section()
    user_service.create_user("Eva Auditor", "eva@audit-firm.com", [], user_id="u-eva")
    expires = utcnow() + timedelta(days=30)

    result, err = section_access_service.invite_external_advisor(
        "u-eva", "role-external-advisor-read", [section.id], expires.isoformat(),
        "user-2", "Admin User", reason="Limited assurance engagement",
    )

    assert err is None
    assert result["user"]["role_ids"] == ["role-external-advisor-read"]
    assert len(result["granted_access"]) == 1
    assert result["granted_access"][0]["expires_at"] == result["access_expires_at"]
    user = user_service.get_user("u-eva")
    assert as_utc(user.access_expires_at) == expires

    invite = AuditLogEntry.query.filter_by(action="invite-external-advisor").one()
    assert invite.entity_id == "u-eva"
    assert invite.change_for("role_ids")["new_value"] == "role-external-advisor-read"


def test_invite_rejects_non_advisor_role_and_missing_expiry(sample_users):
    section = _make_section()
    expires = (utcnow() + timedelta(days=30)).isoformat()

    _, err = section_access_service.invite_external_advisor(
        "user-3", "role-admin", [section.id], expires, "user-2", "Admin User",
    )
    assert err == {"error": "Role 'Admin' is not an advisor role.", "status": 400}

    _, err = section_access_service.invite_external_advisor(
        "user-3", "role-external-advisor-edit", [section.id], None, "user-2", "Admin User",
    )
    assert err["status"] == 400
    assert user_service.get_user("user-3").role_ids == ["role-contributor"]
