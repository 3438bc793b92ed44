from __future__ import annotations


class OrgFlowError(Exception):
    """Base exception for hierarchy and workflow failures."""

    status_code: int = 400
    kind: str = "error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(OrgFlowError):
    """Raised when a payload does not match the shape its type requires."""

    status_code = 422
    kind = "validation_error"


class InvalidOperation(OrgFlowError):
    """Raised when a hierarchy mutation would break the management forest."""

    status_code = 409
    kind = "invalid_operation"


class InvalidTransition(OrgFlowError):
    """Raised for illegal status jumps and unauthorized approval attempts."""

    status_code = 409
    kind = "invalid_transition"


class PermissionDenied(OrgFlowError):
    status_code = 403
    kind = "permission_denied"


class NotFound(OrgFlowError):
    status_code = 404
    kind = "not_found"


class StoreUnavailable(OrgFlowError):
    """Raised when a store cannot lock or persist; state is left unchanged."""

    status_code = 503
    kind = "store_unavailable"
