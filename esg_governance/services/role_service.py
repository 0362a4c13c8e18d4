"""
Role Service — predefined role seeding and custom role management.

Features:
  - Seed the nine predefined roles (idempotent)
  - Create custom roles with arbitrary capability sets
  - Edit role descriptions (versioned)
  - Delete custom roles (predefined roles are protected)
  - Replace a user's role assignments

Every mutation is diffed and audited under EntityType "SystemRole"
(or "User" for assignments).  Results are ``(payload, None)`` on success
and ``(None, {"error", "status"})`` on failure.
"""

import logging

from esg_governance.models.auth import Role
from esg_governance.models.permissions import PREDEFINED_ROLES
from esg_governance.repositories import get_store
from esg_governance.services import audit_service
from esg_governance.services.change_differ import compute_changes, field_change, snapshot
from esg_governance.services.permission_service import invalidate_role_cache
from esg_governance.utils.helpers import utcnow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# Seeding
# ═══════════════════════════════════════════════════════════════

def seed_predefined_roles() -> int:
    """Create any missing predefined role.  Returns the number created."""
    store = get_store()
    created = 0
    with store.lock:
        for definition in PREDEFINED_ROLES:
            if store.roles.get(definition["id"]) is not None:
                continue
            role = Role(
                id=definition["id"],
                name=definition["name"],
                description=definition["description"],
                is_predefined=True,
                version=1,
            )
            role.permissions = definition["permissions"]
            store.roles.add(role)
            created += 1
        store.commit()
    if created:
        logger.info("Seeded %d predefined roles", created)
    return created


# ═══════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════

def list_roles() -> list[Role]:
    store = get_store()
    with store.lock:
        return store.roles.all()


# ═══════════════════════════════════════════════════════════════
# Role CRUD
# ═══════════════════════════════════════════════════════════════

def create_role(
    name: str,
    description: str | None,
    permissions: list[str] | None,
    created_by: str,
    created_by_name: str,
) -> tuple[Role, None] | tuple[None, dict]:
    """Create a custom role.

    Returns:
        (role, None) on success.
        (None, {"error": ..., "status": int}) on validation failure.
    """
    name = (name or "").strip()
    if not name:
        return None, {"error": "Role name is required.", "status": 400}
    perms = [p.strip() for p in (permissions or []) if p and p.strip()]
    if not perms:
        return None, {"error": "At least one permission is required.", "status": 400}

    store = get_store()
    with store.lock:
        if store.roles.find_by_name(name) is not None:
            return None, {"error": f"A role named '{name}' already exists.", "status": 409}

        role = Role(
            name=name,
            description=(description or "").strip(),
            is_predefined=False,
            version=1,
            updated_by=created_by,
        )
        role.permissions = list(dict.fromkeys(perms))
        store.roles.add(role)

        audit_service.append_entry(
            user_id=created_by,
            user_name=created_by_name,
            action="create-role",
            entity_type="SystemRole",
            entity_id=role.id,
            changes=[
                field_change("name", None, role.name),
                field_change("description", None, role.description),
                field_change("permissions", None, set(role.permissions)),
            ],
        )
        store.commit()

    logger.info("Created role", extra={"role_id": role.id, "user_id": created_by})
    return role, None


def update_role_description(
    role_id: str,
    description: str,
    updated_by: str,
    updated_by_name: str,
) -> tuple[Role, None] | tuple[None, dict]:
    """Change a role's description and bump its version.

    An identical description is a no-op: no version bump, no audit entry.
    """
    description = (description or "").strip()
    if not description:
        return None, {"error": "Role description cannot be empty.", "status": 400}

    store = get_store()
    with store.lock:
        role = store.roles.get(role_id)
        if role is None:
            return None, {"error": f"Role {role_id} not found.", "status": 404}

        before = snapshot(role, "SystemRole")
        if before["description"] == description:
            return role, None

        changes = compute_changes(
            "SystemRole", before,
            {"description": description, "version": role.version + 1},
        )
        role.description = description
        role.version += 1
        role.updated_at = utcnow()
        role.updated_by = updated_by
        invalidate_role_cache(role.id)

        audit_service.record_changes(
            user_id=updated_by,
            user_name=updated_by_name,
            action="update-role-description",
            entity_type="SystemRole",
            entity_id=role.id,
            changes=changes,
        )
        store.commit()

    logger.info("Updated role description", extra={"role_id": role_id, "user_id": updated_by})
    return role, None


def delete_role(
    role_id: str,
    deleted_by: str,
    deleted_by_name: str,
) -> tuple[dict, None] | tuple[None, dict]:
    """Delete a custom role and detach it from every user.

    Predefined roles cannot be deleted.
    """
    store = get_store()
    with store.lock:
        role = store.roles.get(role_id)
        if role is None:
            return None, {"error": f"Role {role_id} not found.", "status": 404}
        if role.is_predefined:
            return None, {
                "error": f"Cannot delete predefined role '{role.name}'. "
                         "Predefined roles are essential for system access control.",
                "status": 403,
            }

        detached = store.roles.detach_from_users(role.id)
        name = role.name
        store.roles.delete(role)
        invalidate_role_cache(role_id)

        audit_service.append_entry(
            user_id=deleted_by,
            user_name=deleted_by_name,
            action="delete-role",
            entity_type="SystemRole",
            entity_id=role_id,
            changes=[
                field_change("name", name, None),
                field_change("status", "active", "deleted"),
            ],
        )
        store.commit()

    logger.info(
        "Deleted role (detached from %d users)", detached,
        extra={"role_id": role_id, "user_id": deleted_by},
    )
    return {"id": role_id, "name": name, "detached_users": detached}, None


# ═══════════════════════════════════════════════════════════════
# Assignments
# ═══════════════════════════════════════════════════════════════

def assign_user_roles(
    user_id: str,
    role_ids: list[str],
    assigned_by: str,
    assigned_by_name: str,
) -> tuple[object, None] | tuple[None, dict]:
    """Replace *user_id*'s roles with *role_ids*.

    Unknown role ids reject the whole request.  An unchanged role set
    writes no audit entry.
    """
    wanted = list(dict.fromkeys(r for r in (role_ids or []) if r))

    store = get_store()
    with store.lock:
        user = store.users.get(user_id)
        if user is None:
            return None, {"error": f"User {user_id} not found.", "status": 404}

        found = {r.id for r in store.roles.get_many(wanted)}
        missing = [r for r in wanted if r not in found]
        if missing:
            return None, {
                "error": f"Role(s) not found: {', '.join(missing)}.",
                "status": 400,
                "details": {"role_ids": missing},
            }

        changes = compute_changes("User", {"role_ids": user.role_ids}, {"role_ids": wanted})
        if changes:
            store.users.set_roles(user, wanted, assigned_by=assigned_by)
            audit_service.record_changes(
                user_id=assigned_by,
                user_name=assigned_by_name,
                action="assign-user-roles",
                entity_type="User",
                entity_id=user.id,
                changes=changes,
            )
        store.commit()

    if changes:
        logger.info("Assigned user roles", extra={"user_id": user_id, "entity_id": user_id})
    return user, None
