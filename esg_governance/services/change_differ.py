"""
ChangeDiffer — field-level before/after diffs for governed entities.

Pure functions, no side effects.  The tracked-field policy per entity
type lives in ``TRACKED_FIELDS``; anything not listed there (timestamps,
review bookkeeping, lineage links) is never diffed.

Values are compared after normalisation and rendered as strings:
    None          → ""
    bool          → "true" / "false"
    datetime      → ISO-8601 UTC
    set-valued    → compared by membership, rendered sorted, ", "-joined
    list/tuple    → compared by content in order, rendered ", "-joined

An empty result means "nothing changed"; callers must not write an
audit entry for it.
"""

from datetime import date, datetime

from esg_governance.utils.helpers import as_utc

# Ordered: the diff lists changes in this order
TRACKED_FIELDS: dict[str, tuple[str, ...]] = {
    "DataPoint": (
        "type",
        "classification",
        "title",
        "content",
        "value",
        "unit",
        "owner_id",
        "source",
        "information_type",
        "assumptions",
        "completeness_status",
        "review_status",
        "deadline",
    ),
    "ReportSection": (
        "title",
        "description",
        "owner_id",
        "status",
        "version_number",
    ),
    "SystemRole": (
        "name",
        "description",
        "permissions",
        "version",
    ),
    "User": (
        "name",
        "email",
        "is_active",
        "access_expires_at",
        "role_ids",
    ),
    "BreakGlassSession": (
        "is_active",
        "action_count",
        "deactivation_note",
    ),
}

# Compared by membership rather than order
SET_FIELDS: dict[str, frozenset[str]] = {
    "SystemRole": frozenset({"permissions"}),
    "User": frozenset({"role_ids"}),
}


def format_value(value) -> str:
    """Render a tracked value the way it is stored in a FieldChange."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return ", ".join(sorted(str(v) for v in value))
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def field_change(field: str, old_value, new_value) -> dict:
    return {
        "field": field,
        "old_value": format_value(old_value),
        "new_value": format_value(new_value),
    }


def _normalise(value, as_set: bool):
    if value is None:
        return frozenset() if as_set else ""
    if as_set:
        return frozenset(str(v) for v in value)
    if isinstance(value, (list, tuple)):
        return tuple(format_value(v) for v in value)
    return format_value(value)


def snapshot(entity, entity_type: str) -> dict:
    """Capture the tracked fields of *entity* as a plain dict."""
    fields = TRACKED_FIELDS[entity_type]
    data = {}
    for name in fields:
        value = getattr(entity, name, None)
        if isinstance(value, list):
            value = list(value)
        data[name] = value
    return data


def compute_changes(entity_type: str, before: dict, after: dict) -> list[dict]:
    """Return one FieldChange per tracked field whose value differs.

    Fields missing from *after* are treated as unchanged, so a partial
    update payload diffs only what it carries.

    Args:
        entity_type: Key into ``TRACKED_FIELDS`` (e.g. "DataPoint").
        before:      Prior snapshot (usually from ``snapshot()``).
        after:       Proposed values.

    Returns:
        Ordered list of ``{"field", "old_value", "new_value"}`` dicts.
    """
    if entity_type not in TRACKED_FIELDS:
        raise KeyError(f"No tracked-field policy for entity type {entity_type!r}")

    set_fields = SET_FIELDS.get(entity_type, frozenset())
    changes = []
    for name in TRACKED_FIELDS[entity_type]:
        if name not in after:
            continue
        as_set = name in set_fields
        old, new = before.get(name), after[name]
        if _normalise(old, as_set) == _normalise(new, as_set):
            continue
        if as_set:
            old = set(old or ())
            new = set(new or ())
        changes.append(field_change(name, old, new))
    return changes


def diff_entity(entity, entity_type: str, proposed: dict) -> list[dict]:
    """Shorthand: diff the live *entity* against *proposed* values."""
    return compute_changes(entity_type, snapshot(entity, entity_type), proposed)
