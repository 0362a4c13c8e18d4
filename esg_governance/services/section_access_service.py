"""
Section Access Service — time-bounded, section-scoped access grants.

A grant lets a user see (and comment on) one section outside the default
scope of their roles.  Grants are never deleted: revocation stamps
``revoked_at`` and expiry is evaluated at read time, so the full history
of who could access what stays reviewable.

Bulk operations report per-user outcomes instead of failing wholesale:

    {"granted_access": [...], "failures": [{"user_id", "reason"}]}
"""

from __future__ import annotations

import logging

from esg_governance.models.auth import SectionAccessGrant
from esg_governance.models.permissions import EXTERNAL_ADVISOR_ROLE_IDS
from esg_governance.repositories import get_store
from esg_governance.services import audit_service
from esg_governance.services.change_differ import compute_changes, field_change
from esg_governance.utils.helpers import iso, parse_datetime, utcnow

logger = logging.getLogger(__name__)


def _grant_locked(store, section_id, user_ids, granted_by, granted_by_name, reason, expires_at):
    """Grant loop shared by grant_section_access and invite_external_advisor.

    Caller holds ``store.lock`` and commits.
    """
    now = utcnow()
    granted, failures = [], []
    for user_id in dict.fromkeys(user_ids or []):
        user = store.users.get(user_id)
        if user is None:
            failures.append({"user_id": user_id, "reason": "User not found"})
            continue
        if store.grants.live_for_user_and_section(user_id, section_id, now) is not None:
            failures.append({"user_id": user_id, "reason": "User already has access to this section"})
            continue

        grant = store.grants.add(SectionAccessGrant(
            section_id=section_id,
            user_id=user_id,
            granted_by=granted_by,
            granted_by_name=granted_by_name,
            reason=reason,
            granted_at=now,
            expires_at=expires_at,
        ))
        audit_service.append_entry(
            user_id=granted_by,
            user_name=granted_by_name,
            action="grant-section-access",
            entity_type="SectionAccessGrant",
            entity_id=grant.id,
            change_note=reason,
            changes=[
                field_change("section_id", None, section_id),
                field_change("user_id", None, user_id),
                field_change("expires_at", None, expires_at),
            ],
        )
        granted.append(grant)
    return granted, failures


def grant_section_access(
    section_id: str,
    user_ids: list[str],
    granted_by: str,
    granted_by_name: str,
    reason: str | None = None,
    expires_at=None,
) -> tuple[dict, None] | tuple[None, dict]:
    """Grant *user_ids* access to *section_id*.

    Returns:
        ({"granted_access": [grant dicts], "failures": [...]}, None)
        (None, {"error": ..., "status": int}) if the section is unknown or
        the expiry is malformed / already in the past.
    """
    try:
        expires = parse_datetime(expires_at)
    except ValueError:
        return None, {"error": "expires_at must be an ISO-8601 timestamp.", "status": 400}
    if expires is not None and expires <= utcnow():
        return None, {"error": "expires_at must be in the future.", "status": 400}
    if not user_ids:
        return None, {"error": "At least one user_id is required.", "status": 400}

    store = get_store()
    with store.lock:
        section = store.sections.get(section_id)
        if section is None:
            return None, {"error": f"Section {section_id} not found.", "status": 404}
        granted, failures = _grant_locked(
            store, section_id, user_ids, granted_by, granted_by_name, reason, expires,
        )
        store.commit()

    logger.info(
        "Granted section access to %d user(s), %d failure(s)", len(granted), len(failures),
        extra={"section_id": section_id, "user_id": granted_by},
    )
    return {
        "granted_access": [g.to_dict() for g in granted],
        "failures": failures,
    }, None


def revoke_section_access(
    section_id: str,
    user_ids: list[str],
    revoked_by: str,
    revoked_by_name: str,
    reason: str | None = None,
) -> tuple[dict, None] | tuple[None, dict]:
    """Revoke live grants.  Users without one are reported as failures."""
    if not user_ids:
        return None, {"error": "At least one user_id is required.", "status": 400}

    store = get_store()
    with store.lock:
        section = store.sections.get(section_id)
        if section is None:
            return None, {"error": f"Section {section_id} not found.", "status": 404}

        now = utcnow()
        revoked, failures = [], []
        for user_id in dict.fromkeys(user_ids):
            grant = store.grants.live_for_user_and_section(user_id, section_id, now)
            if grant is None:
                failures.append({
                    "user_id": user_id,
                    "reason": "User does not have explicit access to this section",
                })
                continue
            grant.revoked_at = now
            grant.revoked_by = revoked_by
            audit_service.append_entry(
                user_id=revoked_by,
                user_name=revoked_by_name,
                action="revoke-section-access",
                entity_type="SectionAccessGrant",
                entity_id=grant.id,
                change_note=reason,
                changes=[
                    field_change("status", "active", "revoked"),
                    field_change("revoked_at", None, now),
                ],
            )
            revoked.append(user_id)
        store.commit()

    logger.info(
        "Revoked section access for %d user(s)", len(revoked),
        extra={"section_id": section_id, "user_id": revoked_by},
    )
    return {"revoked_user_ids": revoked, "failures": failures}, None


def get_user_section_access(user_id: str) -> list[SectionAccessGrant]:
    """Live grants held by *user_id*, newest first."""
    store = get_store()
    with store.lock:
        now = utcnow()
        return [g for g in store.grants.for_user(user_id) if g.is_live(now)]


def get_section_access_summary(section_id: str) -> dict | None:
    """Owner plus live grants for *section_id*; None if the section is unknown."""
    store = get_store()
    with store.lock:
        section = store.sections.get(section_id)
        if section is None:
            return None
        now = utcnow()
        owner = store.users.get(section.owner_id) if section.owner_id else None
        grants = []
        for grant in store.grants.for_section(section_id):
            if not grant.is_live(now):
                continue
            user = store.users.get(grant.user_id)
            grants.append({**grant.to_dict(), "user_name": user.name if user else None})
        return {
            "section_id": section.id,
            "section_title": section.title,
            "owner": owner.to_dict(include_roles=False) if owner else None,
            "access_grants": grants,
        }


def invite_external_advisor(
    user_id: str,
    role_id: str,
    section_ids: list[str],
    access_expires_at,
    invited_by: str,
    invited_by_name: str,
    reason: str | None = None,
) -> tuple[dict, None] | tuple[None, dict]:
    """Give an external advisor a role, an access expiry and section grants.

    The role must be one of the external advisor roles.  The user's own
    ``access_expires_at`` and every grant share the same expiry, so access
    lapses everywhere at once.
    """
    try:
        expires = parse_datetime(access_expires_at)
    except ValueError:
        return None, {"error": "access_expires_at must be an ISO-8601 timestamp.", "status": 400}
    if expires is None:
        return None, {"error": "access_expires_at is required for external advisors.", "status": 400}
    if expires <= utcnow():
        return None, {"error": "access_expires_at must be in the future.", "status": 400}

    store = get_store()
    with store.lock:
        user = store.users.get(user_id)
        if user is None:
            return None, {"error": f"User {user_id} not found.", "status": 404}
        role = store.roles.get(role_id)
        if role is None:
            return None, {"error": f"Role {role_id} not found.", "status": 404}
        if role.id not in EXTERNAL_ADVISOR_ROLE_IDS:
            return None, {"error": f"Role '{role.name}' is not an advisor role.", "status": 400}

        sections = []
        for section_id in dict.fromkeys(section_ids or []):
            section = store.sections.get(section_id)
            if section is None:
                return None, {"error": f"Section {section_id} not found.", "status": 404}
            sections.append(section)

        before = {"role_ids": user.role_ids, "access_expires_at": user.access_expires_at}
        new_roles = sorted(set(user.role_ids) | {role.id})
        changes = compute_changes(
            "User", before, {"role_ids": new_roles, "access_expires_at": expires},
        )
        store.users.set_roles(user, new_roles, assigned_by=invited_by)
        user.access_expires_at = expires
        audit_service.append_entry(
            user_id=invited_by,
            user_name=invited_by_name,
            action="invite-external-advisor",
            entity_type="User",
            entity_id=user.id,
            change_note=reason,
            changes=changes,
        )

        granted, failures = [], []
        for section in sections:
            ok, failed = _grant_locked(
                store, section.id, [user.id], invited_by, invited_by_name, reason, expires,
            )
            granted.extend(ok)
            failures.extend({**f, "section_id": section.id} for f in failed)
        store.commit()

    logger.info(
        "Invited external advisor to %d section(s)", len(granted),
        extra={"user_id": user_id, "role_id": role_id},
    )
    return {
        "user": user.to_dict(),
        "access_expires_at": iso(expires),
        "granted_access": [g.to_dict() for g in granted],
        "failures": failures,
    }, None
