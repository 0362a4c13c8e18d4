"""
User Service — user records consumed by the PermissionEngine.

User CRUD itself is simple record-keeping; it is here so that every
identity change (activation, access expiry, profile edits) is diffed and
audited like any other governed entity.
"""

import logging

from esg_governance.models.auth import User
from esg_governance.repositories import get_store
from esg_governance.services import audit_service
from esg_governance.services.change_differ import compute_changes, field_change, snapshot
from esg_governance.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)

SAMPLE_USERS = (
    {"id": "user-1", "name": "Sarah Chen", "email": "sarah.chen@company.com", "role_ids": ["role-data-owner"]},
    {"id": "user-2", "name": "Admin User", "email": "admin@company.com", "role_ids": ["role-admin"]},
    {"id": "user-3", "name": "John Smith", "email": "john.smith@company.com", "role_ids": ["role-contributor"]},
    {"id": "user-4", "name": "Emily Johnson", "email": "emily.johnson@company.com", "role_ids": ["role-contributor"]},
    {"id": "user-5", "name": "Michael Brown", "email": "michael.brown@company.com", "role_ids": ["role-approver"]},
    {"id": "user-6", "name": "Lisa Anderson", "email": "lisa.anderson@company.com", "role_ids": ["role-compliance-officer"]},
)


def create_user(
    name: str,
    email: str,
    role_ids: list[str] | None = None,
    *,
    user_id: str | None = None,
    is_active: bool = True,
    access_expires_at=None,
    created_by: str = "system",
    created_by_name: str = "System",
) -> tuple[User, None] | tuple[None, dict]:
    """Create a user and assign *role_ids*.

    Returns:
        (user, None) on success.
        (None, {"error": ..., "status": int}) on validation failure.
    """
    name = (name or "").strip()
    email = (email or "").strip()
    if not name:
        return None, {"error": "User name is required.", "status": 400}
    if not email or "@" not in email:
        return None, {"error": "A valid email is required.", "status": 400}
    try:
        expires = parse_datetime(access_expires_at)
    except ValueError:
        return None, {"error": "access_expires_at must be an ISO-8601 timestamp.", "status": 400}

    store = get_store()
    with store.lock:
        if store.users.find_by_email(email) is not None:
            return None, {"error": f"A user with email '{email}' already exists.", "status": 409}
        if user_id and store.users.get(user_id) is not None:
            return None, {"error": f"User {user_id} already exists.", "status": 409}

        wanted = list(dict.fromkeys(role_ids or []))
        missing = sorted(set(wanted) - {r.id for r in store.roles.get_many(wanted)})
        if missing:
            return None, {"error": f"Role(s) not found: {', '.join(missing)}.", "status": 400}

        user = User(name=name, email=email, is_active=is_active, access_expires_at=expires)
        if user_id:
            user.id = user_id
        store.users.add(user)
        store.users.set_roles(user, wanted, assigned_by=created_by)

        audit_service.append_entry(
            user_id=created_by,
            user_name=created_by_name,
            action="create",
            entity_type="User",
            entity_id=user.id,
            changes=[
                field_change("name", None, user.name),
                field_change("email", None, user.email),
                field_change("role_ids", None, set(wanted)),
            ],
        )
        store.commit()

    logger.info("Created user", extra={"user_id": user.id})
    return user, None


def update_user(
    user_id: str,
    payload: dict,
    updated_by: str,
    updated_by_name: str,
) -> tuple[User, None] | tuple[None, dict]:
    """Apply a partial update (name, email, is_active, access_expires_at).

    Writes one ``update`` audit entry when anything changed, none otherwise.
    """
    store = get_store()
    with store.lock:
        user = store.users.get(user_id)
        if user is None:
            return None, {"error": f"User {user_id} not found.", "status": 404}

        proposed = {}
        if "name" in payload:
            name = (payload.get("name") or "").strip()
            if not name:
                return None, {"error": "User name is required.", "status": 400}
            proposed["name"] = name
        if "email" in payload:
            email = (payload.get("email") or "").strip()
            if not email or "@" not in email:
                return None, {"error": "A valid email is required.", "status": 400}
            other = store.users.find_by_email(email)
            if other is not None and other.id != user.id:
                return None, {"error": f"A user with email '{email}' already exists.", "status": 409}
            proposed["email"] = email
        if "is_active" in payload:
            # bool("false") is True
            if not isinstance(payload["is_active"], bool):
                return None, {"error": "is_active must be true or false.", "status": 400}
            proposed["is_active"] = payload["is_active"]
        if "access_expires_at" in payload:
            try:
                proposed["access_expires_at"] = parse_datetime(payload["access_expires_at"])
            except ValueError:
                return None, {"error": "access_expires_at must be an ISO-8601 timestamp.", "status": 400}

        changes = compute_changes("User", snapshot(user, "User"), proposed)
        for key, value in proposed.items():
            setattr(user, key, value)
        audit_service.record_changes(
            user_id=updated_by,
            user_name=updated_by_name,
            action="update",
            entity_type="User",
            entity_id=user.id,
            changes=changes,
        )
        store.commit()

    if changes:
        logger.info("Updated user", extra={"user_id": user_id})
    return user, None


def get_user(user_id: str) -> User | None:
    return get_store().users.get(user_id)


def list_users() -> list[User]:
    store = get_store()
    with store.lock:
        return store.users.query.order_by(User.created_at, User.id).all()


def seed_sample_users() -> int:
    """Create the demo users if missing.  Returns the number created."""
    created = 0
    store = get_store()
    for sample in SAMPLE_USERS:
        if store.users.get(sample["id"]) is not None:
            continue
        _, err = create_user(sample["name"], sample["email"], sample["role_ids"], user_id=sample["id"])
        if err:
            logger.warning("Sample user %s not seeded: %s", sample["id"], err["error"])
            continue
        created += 1
    return created
