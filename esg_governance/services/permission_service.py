"""
Permission Service — role- and grant-based access evaluation with cache.

Evaluation is deterministic and deny-by-default:
  1. unknown user                      → deny "User not found"
  2. inactive user / expired access    → deny, whatever the roles
  3. pair outside RESOURCE_TYPES × ACTIONS → deny "Missing required
     permission", Admin included; this check runs before any role
  4. any assigned role grants the pair → allow  (Admin satisfies every
     catalogued pair)
  5. section-scoped resource + live section grant on resource_id
     + view-class action               → allow
  6. otherwise                         → deny "Missing required permission"

Every evaluation is appended to the audit ledger as
``permission-check-allowed`` / ``permission-check-denied``.  A denial is a
result, never an exception.

Resolved role matrices are cached per role id and keyed by the role's
``version`` so a description edit or permission change is never served
stale.
"""

from __future__ import annotations

import logging
import threading
import time

from flask import current_app

from esg_governance.models.auth import Role, User
from esg_governance.models.permissions import (
    ACTIONS,
    ADMIN_ROLE_ID,
    ALL_CAPABILITY,
    GRANT_ACTIONS,
    RESOURCE_TYPES,
    SECTION_SCOPED_RESOURCES,
    resolve_capabilities,
)
from esg_governance.repositories import get_store
from esg_governance.services import audit_service
from esg_governance.services.change_differ import field_change
from esg_governance.utils.helpers import iso, utcnow

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300  # 5 minutes

# Cache key: role_id → (cached_at, role_version, permissions_json, matrix)
_role_cache: dict[str, tuple[float, int, str, dict[str, frozenset[str]]]] = {}
_cache_lock = threading.Lock()


# ── Role matrix cache ────────────────────────────────────────────────────────


def _cache_ttl() -> int:
    try:
        return current_app.config.get("ROLE_CACHE_TTL", DEFAULT_CACHE_TTL)
    except RuntimeError:
        return DEFAULT_CACHE_TTL


def invalidate_role_cache(role_id: str) -> None:
    with _cache_lock:
        _role_cache.pop(role_id, None)


def invalidate_all_cache() -> None:
    with _cache_lock:
        _role_cache.clear()


def resolve_role(role: Role) -> dict[str, frozenset[str]]:
    """Return the role's ``{resource_type: frozenset(actions)}`` map."""
    with _cache_lock:
        entry = _role_cache.get(role.id)
        if entry is not None:
            cached_at, version, perms_json, matrix = entry
            fresh = time.time() - cached_at <= _cache_ttl()
            if fresh and version == role.version and perms_json == role.permissions_json:
                return matrix
            del _role_cache[role.id]

    resolved = {k: frozenset(v) for k, v in resolve_capabilities(role.permissions).items()}
    with _cache_lock:
        _role_cache[role.id] = (time.time(), role.version, role.permissions_json, resolved)
    return resolved


def role_allows(role: Role, resource_type: str, action: str) -> bool:
    if ALL_CAPABILITY in role.permissions:
        return True
    return action in resolve_role(role).get(resource_type, frozenset())


def user_roles(user: User) -> list[Role]:
    return [ur.role for ur in user.user_roles.all() if ur.role is not None]


def is_admin(user: User | None) -> bool:
    if user is None:
        return False
    return any(r.id == ADMIN_ROLE_ID or ALL_CAPABILITY in r.permissions for r in user_roles(user))


# ── Permission matrix ────────────────────────────────────────────────────────


def get_permission_matrix() -> dict:
    """Role → resource → actions projection, derived purely from role definitions.

    Returns:
        {"entries": [{"role_id", "role_name", "resource_actions": {res: [actions]}}],
         "resource_types": [...], "all_actions": [...]}
    """
    store = get_store()
    with store.lock:
        roles = store.roles.all()
        entries = []
        for role in roles:
            matrix = resolve_role(role)
            entries.append({
                "role_id": role.id,
                "role_name": role.name,
                "is_predefined": role.is_predefined,
                "resource_actions": {
                    resource: [a for a in ACTIONS if a in matrix[resource]]
                    for resource in RESOURCE_TYPES
                    if matrix.get(resource)
                },
            })
    return {
        "entries": entries,
        "resource_types": list(RESOURCE_TYPES),
        "all_actions": list(ACTIONS),
    }


# ── Evaluation ───────────────────────────────────────────────────────────────


def _missing_permission(resource_type: str, action: str) -> str:
    return f"Missing required permission: {action} on {resource_type}"


def _evaluate(store, user: User | None, resource_type: str, action: str, resource_id: str | None):
    """Return (allowed, denial_reason, evaluated_role_names, granted_via)."""
    if user is None:
        return False, "User not found", [], None

    role_names = user.role_names
    now = utcnow()

    if not user.is_active:
        return False, "User account is inactive", role_names, None
    if user.access_expired(now):
        return False, f"User access expired at {iso(user.access_expires_at)}", role_names, None

    # Unknown pairs are never granted, not even to Admin
    if resource_type not in RESOURCE_TYPES or action not in ACTIONS:
        return False, _missing_permission(resource_type, action), role_names, None

    for role in user_roles(user):
        if role_allows(role, resource_type, action):
            return True, None, role_names, "role"

    if resource_id and resource_type in SECTION_SCOPED_RESOURCES and action in GRANT_ACTIONS:
        grant = store.grants.live_for_user_and_section(user.id, resource_id, now)
        if grant is not None:
            return True, None, role_names, "section-access-grant"

    return False, _missing_permission(resource_type, action), role_names, None


def check_permission(
    user_id: str,
    resource_type: str,
    action: str,
    resource_id: str | None = None,
    user_name: str | None = None,
) -> dict:
    """Evaluate one permission request and audit the decision.

    Args:
        user_id:       User being evaluated.
        resource_type: One of ``RESOURCE_TYPES``.
        action:        One of ``ACTIONS``.
        resource_id:   Optional section id; lets a section grant satisfy
                       view-class actions on section-scoped resources.
        user_name:     Name recorded on the audit entry (defaults to the
                       user's stored name).

    Returns:
        {"allowed": bool, "denial_reason": str | None,
         "evaluated_roles": [role names], "granted_via": "role" | "section-access-grant" | None, ...}
    """
    store = get_store()
    with store.lock:
        user = store.users.get(user_id)
        allowed, reason, role_names, granted_via = _evaluate(
            store, user, resource_type, action, resource_id,
        )

        if current_app.config.get("PERMISSION_CHECK_AUDIT", True):
            changes = [
                field_change("resource_type", None, resource_type),
                field_change("action", None, action),
            ]
            if resource_id:
                changes.append(field_change("resource_id", None, resource_id))
            changes.append(field_change("allowed", None, allowed))
            if not allowed:
                changes.append(field_change("denial_reason", None, reason))
            audit_service.append_entry(
                user_id=user_id,
                user_name=user_name or (user.name if user else ""),
                action="permission-check-allowed" if allowed else "permission-check-denied",
                entity_type="Permission",
                entity_id=resource_id or resource_type,
                changes=changes,
            )
            store.commit()

    log = logger.debug if allowed else logger.info
    log(
        "Permission %s",
        "allowed" if allowed else "denied",
        extra={
            "user_id": user_id,
            "resource_type": resource_type,
            "action": action,
            "allowed": allowed,
        },
    )
    return {
        "user_id": user_id,
        "resource_type": resource_type,
        "action": action,
        "resource_id": resource_id,
        "allowed": allowed,
        "denial_reason": reason,
        "evaluated_roles": role_names,
        "granted_via": granted_via,
    }


def has_permission(user_id: str, resource_type: str, action: str, resource_id: str | None = None) -> bool:
    """Boolean shortcut around ``check_permission`` (still audited)."""
    return check_permission(user_id, resource_type, action, resource_id=resource_id)["allowed"]


# ── Section-scoped access ────────────────────────────────────────────────────


def has_section_access(user_id: str, section_id: str) -> bool:
    """True for the section owner, an Admin, or a holder of a live grant.

    A user whose own access has expired (or who is inactive) never has
    section access, whatever grants exist.
    """
    store = get_store()
    with store.lock:
        user = store.users.get(user_id)
        section = store.sections.get(section_id)
        if user is None or section is None:
            return False
        now = utcnow()
        if not user.is_active or user.access_expired(now):
            return False
        if section.owner_id == user_id or is_admin(user):
            return True
        return store.grants.live_for_user_and_section(user_id, section_id, now) is not None


def get_accessible_sections(user_id: str, period_id: str | None = None) -> list:
    """Sections *user_id* may open: all for Admin, else owned + live grants."""
    store = get_store()
    with store.lock:
        user = store.users.get(user_id)
        if user is None:
            return []
        now = utcnow()
        if not user.is_active or user.access_expired(now):
            return []
        sections = store.sections.for_period(period_id)
        if is_admin(user):
            return sections
        granted = {g.section_id for g in store.grants.for_user(user_id) if g.is_live(now)}
        return [s for s in sections if s.owner_id == user_id or s.id in granted]
