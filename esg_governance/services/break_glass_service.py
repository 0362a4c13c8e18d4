"""
Break-glass Service — emergency elevated-access sessions.

State machine per user:  Inactive → Active → Inactive

Business rules:
    - Activation needs an active user and a documented reason of at least
      BREAK_GLASS_MIN_REASON_LENGTH characters.  Whether the caller may
      break glass at all (``is_authorized_for_break_glass``) is decided at
      the HTTP boundary, before activation is attempted.
    - At most one active session per user: the check and the insert run
      under the store lock.
    - ``action_count`` starts at 1; the activation itself counts.
    - The activation entry is tagged as a break-glass action.  Everything
      the user does while the session is open is tagged by audit_service.
    - The deactivation entry is NEVER tagged: ending the emergency is an
      ordinary administrative act.
"""

from __future__ import annotations

import logging

from flask import current_app

from esg_governance.models.auth import BreakGlassSession
from esg_governance.repositories import get_store
from esg_governance.services import audit_service
from esg_governance.services.change_differ import field_change
from esg_governance.utils.helpers import utcnow

logger = logging.getLogger(__name__)

DEFAULT_MIN_REASON_LENGTH = 20
DEFAULT_AUTHORIZED_ROLE_IDS = ("role-admin",)


def _min_reason_length() -> int:
    return current_app.config.get("BREAK_GLASS_MIN_REASON_LENGTH", DEFAULT_MIN_REASON_LENGTH)


def _authorized_role_ids() -> set[str]:
    return set(current_app.config.get("BREAK_GLASS_AUTHORIZED_ROLE_IDS", DEFAULT_AUTHORIZED_ROLE_IDS))


def is_authorized_for_break_glass(user_id: str) -> bool:
    """True only for active users holding an authorized administrative role."""
    store = get_store()
    with store.lock:
        user = store.users.get(user_id)
        if user is None or not user.is_active:
            return False
        if user.access_expired(utcnow()):
            return False
        return bool(set(user.role_ids) & _authorized_role_ids())


def activate_break_glass(
    user_id: str,
    user_name: str,
    reason: str,
    authentication_method: str | None = None,
    ip_address: str | None = None,
) -> tuple[BreakGlassSession, None] | tuple[None, dict]:
    """Open a break-glass session for *user_id*.

    Returns:
        (session, None) on success.
        (None, {"error": ..., "status": int}) when the reason is too short,
        the user is unknown or inactive, or a session is already
        active.
    """
    reason = (reason or "").strip()
    min_len = _min_reason_length()
    if len(reason) < min_len:
        return None, {
            "error": f"Break-glass reason must be at least {min_len} characters.",
            "status": 400,
        }

    store = get_store()
    with store.lock:
        user = store.users.get(user_id)
        if user is None or not user.is_active:
            return None, {"error": f"User {user_id} not found or inactive.", "status": 404}
        if store.break_glass_sessions.active_for_user(user_id) is not None:
            return None, {
                "error": f"User {user_id} already has an active break-glass session.",
                "status": 409,
            }

        session = store.break_glass_sessions.add(BreakGlassSession(
            user_id=user_id,
            user_name=user_name or user.name,
            reason=reason,
            authentication_method=authentication_method,
            ip_address=ip_address,
            is_active=True,
            action_count=1,
            activated_at=utcnow(),
        ))
        audit_service.append_entry(
            user_id=user_id,
            user_name=session.user_name,
            action="activate-break-glass",
            entity_type="BreakGlassSession",
            entity_id=session.id,
            change_note=f"Break-glass access activated. Reason: {reason}",
            changes=[
                field_change("is_active", False, True),
                field_change("reason", None, reason),
                field_change("authentication_method", None, authentication_method),
                field_change("ip_address", None, ip_address),
            ],
            break_glass=session,
        )
        store.commit()

    logger.warning(
        "Break-glass session activated",
        extra={"user_id": user_id, "session_id": session.id},
    )
    return session, None


def deactivate_break_glass(
    session_id: str,
    deactivated_by: str,
    deactivated_by_name: str,
    note: str | None = None,
) -> tuple[BreakGlassSession, None] | tuple[None, dict]:
    """Close a session.  The resulting audit entry is not a break-glass action."""
    store = get_store()
    with store.lock:
        session = store.break_glass_sessions.get(session_id)
        if session is None:
            return None, {"error": f"Break-glass session {session_id} not found.", "status": 404}
        if not session.is_active:
            return None, {
                "error": f"Break-glass session {session_id} is already deactivated.",
                "status": 409,
            }

        session.is_active = False
        session.deactivated_at = utcnow()
        session.deactivated_by = deactivated_by
        session.deactivated_by_name = deactivated_by_name
        session.deactivation_note = note

        audit_service.append_entry(
            user_id=deactivated_by,
            user_name=deactivated_by_name,
            action="deactivate-break-glass",
            entity_type="BreakGlassSession",
            entity_id=session.id,
            change_note=note,
            changes=[
                field_change("is_active", True, False),
                field_change("action_count", None, session.action_count),
            ],
            break_glass=False,
        )
        store.commit()

    logger.info(
        "Break-glass session deactivated after %d action(s)", session.action_count,
        extra={"user_id": deactivated_by, "session_id": session_id},
    )
    return session, None


def increment_action_count(session_id: str) -> tuple[BreakGlassSession, None] | tuple[None, dict]:
    """Tally one more privileged operation under an active session."""
    store = get_store()
    with store.lock:
        session = store.break_glass_sessions.get(session_id)
        if session is None:
            return None, {"error": f"Break-glass session {session_id} not found.", "status": 404}
        if not session.is_active:
            return None, {
                "error": f"Break-glass session {session_id} is not active.",
                "status": 409,
            }
        session.action_count += 1
        store.commit()
    return session, None


def get_active_session(user_id: str) -> BreakGlassSession | None:
    store = get_store()
    with store.lock:
        return store.break_glass_sessions.active_for_user(user_id)


def get_sessions(user_id: str | None = None, active_only: bool = False) -> list[BreakGlassSession]:
    """Sessions newest first, optionally for one user and/or active only."""
    store = get_store()
    with store.lock:
        return store.break_glass_sessions.for_user(user_id, active_only=active_only)
