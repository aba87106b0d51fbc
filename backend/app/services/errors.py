"""Dispatch error taxonomy.

Every error is local and synchronous: the operation that raised it has not
written anything, so the crew record is still in its prior state.
"""


class DispatchError(Exception):
    """Base class for dispatch failures surfaced to API callers."""

    error_code = "DISPATCH_ERROR"


class NotFoundError(DispatchError):
    """Referenced crew or event does not exist."""

    error_code = "NOT_FOUND"

    def __init__(self, kind: str, ident: str):
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


class InvalidGeometryError(DispatchError):
    """An event has no geographic centre where one is required."""

    error_code = "INVALID_GEOMETRY"


class IllegalTransitionError(DispatchError):
    """Requested status change is not in the crew lifecycle table."""

    error_code = "ILLEGAL_TRANSITION"

    def __init__(self, message: str, current: str = "", requested: str = ""):
        super().__init__(message)
        self.current = current
        self.requested = requested


class EmergencyAuthorizationRequired(IllegalTransitionError):
    """Off-duty crews may only be dispatched through the audited emergency path."""

    error_code = "EMERGENCY_AUTHORIZATION_REQUIRED"


class StoreConflictError(DispatchError):
    """The crew record changed between read and write."""

    error_code = "STORE_CONFLICT"


class StoreUnavailableError(DispatchError):
    """The backing store could not be reached or rejected the request."""

    error_code = "STORE_UNAVAILABLE"
