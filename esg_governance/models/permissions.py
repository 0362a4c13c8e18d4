"""
Permission catalog — resource types, actions, capability strings and the
predefined role set.

Roles store *capability strings* (``"view-reports"``, ``"approve-sections"``).
``CAPABILITIES`` resolves each one to the (resource_type, action) pairs it
confers.  Two other forms are understood:

    "all"                  every action on every resource type
    "<resource>:<action>"  a single pair, e.g. "exports:export"
    "<resource>:*"         every action on one resource type

Anything else resolves to nothing: unknown capabilities never widen access.
"""

RESOURCE_TYPES = (
    "report-structure",
    "section-content",
    "esg-data-items",
    "attachments",
    "exports",
    "users",
    "audit-logs",
    "validation-rules",
)

ACTIONS = (
    "view",
    "edit",
    "comment",
    "submit",
    "approve",
    "reject",
    "export",
    "manage",
)

ALL_CAPABILITY = "all"

# Resource types whose checks can be satisfied by a section access grant
SECTION_SCOPED_RESOURCES = frozenset({"section-content", "attachments", "esg-data-items"})
# Actions a live grant confers on its section
GRANT_ACTIONS = frozenset({"view", "comment"})

_READ_CONTENT = (
    ("report-structure", "view"),
    ("section-content", "view"),
    ("esg-data-items", "view"),
    ("attachments", "view"),
)

CAPABILITIES: dict[str, tuple[tuple[str, str], ...]] = {
    # Read access
    "view-reports": _READ_CONTENT,
    "view-all-reports": _READ_CONTENT,
    "view-public-sections": (("section-content", "view"),),
    "view-dashboards": (("report-structure", "view"), ("exports", "view")),
    "view-compliance-reports": (("exports", "view"), ("audit-logs", "view")),
    # Authoring
    "edit-reports": (
        ("report-structure", "edit"),
        ("section-content", "edit"),
        ("esg-data-items", "edit"),
    ),
    "edit-assigned-sections": (
        ("section-content", "view"),
        ("section-content", "edit"),
        ("section-content", "comment"),
        ("esg-data-items", "view"),
        ("esg-data-items", "edit"),
        ("attachments", "view"),
        ("attachments", "edit"),
    ),
    "manage-report-structure": (
        ("report-structure", "view"),
        ("report-structure", "edit"),
        ("report-structure", "manage"),
    ),
    "manage-data-items": (
        ("esg-data-items", "view"),
        ("esg-data-items", "edit"),
        ("esg-data-items", "manage"),
    ),
    "upload-evidence": (("attachments", "view"), ("attachments", "edit")),
    "submit-for-approval": (("section-content", "submit"), ("esg-data-items", "submit")),
    # Review
    "review-sections": (
        ("section-content", "view"),
        ("section-content", "comment"),
        ("esg-data-items", "view"),
        ("attachments", "view"),
    ),
    "add-comments": (("section-content", "comment"),),
    "add-recommendations": (("section-content", "comment"),),
    "approve-sections": (
        ("section-content", "approve"),
        ("section-content", "reject"),
        ("esg-data-items", "approve"),
        ("esg-data-items", "reject"),
    ),
    # Compliance
    "manage-validation-rules": (
        ("validation-rules", "view"),
        ("validation-rules", "edit"),
        ("validation-rules", "manage"),
    ),
    "run-audits": (("audit-logs", "view"), ("esg-data-items", "view")),
    "export-audit-packages": (
        ("exports", "view"),
        ("exports", "export"),
        ("audit-logs", "export"),
    ),
    "export-reports": (("exports", "view"), ("exports", "export")),
    # Administration
    "manage-users": (("users", "view"), ("users", "edit"), ("users", "manage")),
}


# ── Predefined roles ─────────────────────────────────────────────────────────

ADMIN_ROLE_ID = "role-admin"
EXTERNAL_ADVISOR_ROLE_IDS = frozenset({"role-external-advisor-read", "role-external-advisor-edit"})

PREDEFINED_ROLES = (
    {
        "id": ADMIN_ROLE_ID,
        "name": "Admin",
        "description": "Full access to every report, section, user and system setting.",
        "permissions": [ALL_CAPABILITY],
    },
    {
        "id": "role-management",
        "name": "Management",
        "description": "Executive oversight: reads all reports and dashboards, approves and exports.",
        "permissions": ["view-all-reports", "view-dashboards", "approve-sections", "export-reports"],
    },
    {
        "id": "role-compliance-officer",
        "name": "Compliance Officer",
        "description": "Runs audits, maintains validation rules and exports audit packages.",
        "permissions": [
            "view-all-reports",
            "manage-validation-rules",
            "run-audits",
            "export-audit-packages",
            "view-compliance-reports",
        ],
    },
    {
        "id": "role-reviewer",
        "name": "Reviewer",
        "description": "Reviews section content and leaves comments before approval.",
        "permissions": ["view-all-reports", "review-sections", "add-comments"],
    },
    {
        "id": "role-contributor",
        "name": "Contributor",
        "description": "Authors content in assigned sections and submits it for approval.",
        "permissions": ["view-reports", "edit-assigned-sections", "upload-evidence", "submit-for-approval"],
    },
    {
        "id": "role-data-owner",
        "name": "Data Owner",
        "description": "Owns ESG data items for assigned sections and keeps them complete.",
        "permissions": [
            "view-reports",
            "edit-assigned-sections",
            "manage-data-items",
            "upload-evidence",
            "submit-for-approval",
        ],
    },
    {
        "id": "role-approver",
        "name": "Approver",
        "description": "Approves or rejects sections submitted for approval.",
        "permissions": ["view-all-reports", "approve-sections", "add-comments"],
    },
    {
        "id": "role-external-advisor-read",
        "name": "External Advisor (Read)",
        "description": "Time-limited read-only access for external advisors and auditors.",
        "permissions": ["view-reports", "view-public-sections"],
    },
    {
        "id": "role-external-advisor-edit",
        "name": "External Advisor (Edit - Limited)",
        "description": "Time-limited access for external advisors to comment and recommend changes.",
        "permissions": ["view-reports", "add-comments", "add-recommendations"],
    },
)


def resolve_capabilities(capabilities) -> dict[str, set[str]]:
    """Resolve capability strings into ``{resource_type: {actions}}``."""
    resolved: dict[str, set[str]] = {}
    for cap in capabilities or ():
        cap = (cap or "").strip()
        if cap == ALL_CAPABILITY:
            for resource in RESOURCE_TYPES:
                resolved.setdefault(resource, set()).update(ACTIONS)
            continue
        if ":" in cap:
            resource, _, action = cap.partition(":")
            if resource not in RESOURCE_TYPES:
                continue
            if action == "*":
                resolved.setdefault(resource, set()).update(ACTIONS)
            elif action in ACTIONS:
                resolved.setdefault(resource, set()).add(action)
            continue
        for resource, action in CAPABILITIES.get(cap, ()):
            resolved.setdefault(resource, set()).add(action)
    return resolved
