"""Error taxonomy shared by the store, the policy engine, and the API."""

from __future__ import annotations


class TaskgateError(Exception):
    """Base class for every failure the core reports to a caller."""

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_error_obj(self) -> dict:
        return {"code": self.code, "message": self.message}


class Unauthenticated(TaskgateError):
    """Missing, invalid, or expired credential, or a stale principal reference.

    The message is deliberately generic: callers never learn whether the
    email or the password was wrong.
    """

    code = "UNAUTHENTICATED"
    http_status = 401


class Forbidden(TaskgateError):
    """The caller is authenticated but the policy denies the action."""

    code = "FORBIDDEN"
    http_status = 403

    def __init__(self, action: str, role: str, reason: str | None = None) -> None:
        message = f"Role '{role}' is not authorized to {action}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.action = action
        self.role = role
        self.reason = reason


class NotFound(TaskgateError):
    code = "NOT_FOUND"
    http_status = 404


class ValidationFailure(TaskgateError):
    """A required field is missing or malformed, or a unique value is taken."""

    code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, field: str | None, message: str) -> None:
        super().__init__(message)
        self.field = field

    def to_error_obj(self) -> dict:
        obj = super().to_error_obj()
        if self.field is not None:
            obj["field"] = self.field
        return obj


class InvariantViolation(TaskgateError):
    """The manager/user assignment link is inconsistent on disk.

    This is a server-side fault.  ``public_message`` is what callers see;
    the detailed message is only logged.
    """

    public_message = "Internal server error"

    def to_error_obj(self) -> dict:
        return {"code": self.code, "message": self.public_message}


class StoreUnavailable(TaskgateError):
    """Transient store failure (e.g. a lock could not be acquired in time)."""

    code = "STORE_UNAVAILABLE"
    http_status = 503
