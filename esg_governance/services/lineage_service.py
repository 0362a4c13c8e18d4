"""
Lineage Service — cross-period version chains for rolled-over data points.

Read-only: walks ``source_data_point_id`` links that rollover_service set,
from the requested data point back to its origin (the first data point
in the chain without a source).

Depth is unlimited unless LINEAGE_MAX_DEPTH is configured; when the cap
stops the walk before the origin, ``has_more_history`` is True.  A cyclic
or dangling link ends the walk: no data point is visited twice.
"""

import logging

from flask import current_app

from esg_governance.repositories import get_store
from esg_governance.utils.helpers import iso

logger = logging.getLogger(__name__)


def _version(data_point) -> dict:
    period = data_point.section.period if data_point.section else None
    return {
        "data_point_id": data_point.id,
        "period_id": period.id if period else None,
        "period_name": period.name if period else None,
        "value": data_point.value,
        "content": data_point.content,
        "is_rolled_over": data_point.source_data_point_id is not None,
        "rollover_timestamp": iso(data_point.rollover_timestamp),
        "rollover_performed_by_name": data_point.rollover_performed_by_name,
    }


def get_cross_period_lineage(data_point_id: str, max_depth: int | None = None) -> dict | None:
    """Reconstruct the lineage chain of *data_point_id*.

    Args:
        max_depth: Ancestors to return at most; falls back to the
                   LINEAGE_MAX_DEPTH config, None meaning unlimited.

    Returns:
        {"data_point_id", "title", "current_version", "previous_versions"
         (nearest ancestor first), "total_periods", "has_more_history"}
        or None when the data point does not exist.
    """
    if max_depth is None:
        max_depth = current_app.config.get("LINEAGE_MAX_DEPTH")

    store = get_store()
    with store.lock:
        current = store.data_points.get(data_point_id)
        if current is None:
            return None

        previous = []
        visited = {current.id}
        has_more = False
        cursor = current
        while cursor.source_data_point_id:
            if max_depth is not None and len(previous) >= max_depth:
                has_more = True
                break
            parent = store.data_points.get(cursor.source_data_point_id)
            if parent is None:
                logger.warning(
                    "Lineage link points at a missing data point",
                    extra={"data_point_id": cursor.id, "entity_id": cursor.source_data_point_id},
                )
                break
            if parent.id in visited:
                logger.warning("Lineage cycle detected", extra={"data_point_id": parent.id})
                break
            visited.add(parent.id)
            previous.append(_version(parent))
            cursor = parent

        return {
            "data_point_id": current.id,
            "title": current.title,
            "current_version": _version(current),
            "previous_versions": previous,
            "total_periods": 1 + len(previous),
            "has_more_history": has_more,
        }
