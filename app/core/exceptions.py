"""
Tracker-wide exception hierarchy.

Services raise these types and nothing else; blueprints register one
handler per type (see app.utils.errors.register_error_handlers) and get
consistent HTTP status codes everywhere.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="WorkflowTemplate", resource_id="WT-1")
    raise ValidationError("At least one building block is required",
                          details={"blocks": "empty"})
"""


class NotFoundError(Exception):
    """Raised when an id or sequence reference does not resolve.

    Raised before any mutation, so the caller never sees a partial change.

    Args:
        resource: Human-readable entity name (e.g. "BuildingBlock", "OTI").
        resource_id: The id (or sequence number) that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is missing, malformed or breaks a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation, shown to the user verbatim.
        details: Optional field-level breakdown. Keys are field names;
                 values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ReferentialWarning(UserWarning):
    """A reference to a missing or archived entity that degraded to a default.

    Never raised out of the service layer. Instances are collected and
    returned to the caller (e.g. by WorkflowTemplateStore.estimate) and logged.
    """

    def __init__(self, resource: str, resource_id: str | None, message: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "resource": self.resource,
            "resourceId": self.resource_id,
            "message": self.message,
        }


class PersistenceError(Exception):
    """Raised when every save attempt for a collection failed.

    The stored collection is unchanged. Maps to HTTP 500.

    Args:
        key: Collection key that could not be written.
    """

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Could not save {key}; no changes were stored")
