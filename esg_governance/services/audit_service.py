"""
Audit Service — append and query the governance audit ledger.

Every governed mutation funnels through ``append_entry``.  The ledger is
append-only: there is no update or delete path anywhere in the codebase.

Break-glass attribution:
    When the acting user has an active break-glass session, the entry is
    tagged with it automatically (``break_glass=None``).  Callers that must
    never be tagged (deactivating a session) pass ``break_glass=False``;
    activation passes the new session explicitly.
"""

from __future__ import annotations

import json
import logging

from esg_governance.models.audit import PERMISSION_CHANGE_ENTITY_TYPES, AuditLogEntry
from esg_governance.models.auth import BreakGlassSession
from esg_governance.repositories import get_store
from esg_governance.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)


def append_entry(
    *,
    user_id: str,
    user_name: str | None,
    action: str,
    entity_type: str,
    entity_id: str,
    changes: list[dict] | None = None,
    change_note: str | None = None,
    break_glass: BreakGlassSession | bool | None = None,
) -> AuditLogEntry:
    """Append a single audit entry.  Uses ``flush`` so callers keep
    transaction control.

    Args:
        changes:     Ordered FieldChange dicts from change_differ.
        break_glass: None → tag if *user_id* has an active session;
                     False → never tag; a BreakGlassSession → tag with it.

    Returns the (flushed) AuditLogEntry instance.
    """
    store = get_store()

    session = None
    if isinstance(break_glass, BreakGlassSession):
        session = break_glass
    elif break_glass is None and user_id:
        session = store.break_glass_sessions.active_for_user(user_id)

    entry = AuditLogEntry(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        user_id=user_id or "system",
        user_name=user_name or "",
        change_note=change_note,
        changes_json=json.dumps(list(changes or []), default=str),
        is_break_glass_action=session is not None,
        break_glass_session_id=session.id if session is not None else None,
    )
    store.audit.append(entry)

    logger.debug(
        "Audit entry appended",
        extra={
            "action": action,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "user_id": user_id,
        },
    )
    return entry


def record_changes(
    *,
    user_id: str,
    user_name: str | None,
    action: str,
    entity_type: str,
    entity_id: str,
    changes: list[dict],
    change_note: str | None = None,
) -> AuditLogEntry | None:
    """Append an entry only when *changes* is non-empty.

    Returns the entry, or None when nothing changed.
    """
    if not changes:
        return None
    return append_entry(
        user_id=user_id,
        user_name=user_name,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        changes=changes,
        change_note=change_note,
    )


def query_entries(
    entity_type: str | None = None,
    entity_id: str | None = None,
    user_id: str | None = None,
    action: str | None = None,
    start_date=None,
    end_date=None,
    break_glass_only: bool | None = None,
    limit: int | None = None,
) -> list[AuditLogEntry]:
    """Return entries matching every supplied filter, newest first.

    Date bounds are inclusive and accept datetimes or ISO strings
    (``ValueError`` on a malformed string).  ``break_glass_only``:
    True → tagged entries only, False → untagged only, None → all.
    Ties on timestamp come back in reverse insertion order.
    """
    start = parse_datetime(start_date)
    end = parse_datetime(end_date)
    store = get_store()
    with store.lock:
        return store.audit.search(
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            action=action,
            start=start,
            end=end,
            break_glass_only=break_glass_only,
            limit=limit,
        )


def get_entry(entry_id: int) -> AuditLogEntry | None:
    return get_store().audit.get(entry_id)


def get_permission_change_history(limit: int | None = None) -> list[AuditLogEntry]:
    """Role, role-assignment and section-grant changes, newest first."""
    store = get_store()
    with store.lock:
        return store.audit.search(entity_types=PERMISSION_CHANGE_ENTITY_TYPES, limit=limit)
