"""
Governance-wide exception hierarchy.

Expected business failures (short break-glass reason, wrong workflow
state, unknown section) are NOT raised — services return them as
``(None, {"error": ..., "status": ...})`` tuples.  These exceptions cover
the remaining edges: repository lookups that callers chose not to check,
and malformed HTTP payloads rejected in blueprints.  The app factory
registers one JSON handler per type.

Usage:
    from esg_governance.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Section", resource_id="sec-1")
    raise ValidationError("user_id is required", details={"user_id": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested entity does not exist in the store.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Section", "DataPoint").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a request body is malformed before it reaches a service.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)
