#!/usr/bin/env python3
"""
Error taxonomy for the notification configuration store.

Every error carries a stable ``kind`` string and a numeric ``code`` so that
callers (API bindings, automation) can tell "retry with a fresh digest"
apart from "fix your input" or "entity does not exist".
"""

from typing import Optional


class NotificationConfigError(Exception):
    """Base exception for notification configuration errors."""

    kind = "error"
    code = 500

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"kind": self.kind, "code": self.code, "message": self.message}


class ValidationError(NotificationConfigError):
    """Malformed or contradictory input. Never touches persisted state."""

    kind = "validation"
    code = 400


class EntityInUseError(ValidationError):
    """Raised when deleting an endpoint that matchers still target."""

    kind = "in-use"

    def __init__(self, name: str, referrers):
        self.name = name
        self.referrers = list(referrers)
        super().__init__(
            f"cannot delete '{name}', referenced by: {', '.join(self.referrers)}"
        )


class PermissionDeniedError(NotificationConfigError):
    """Raised when the authorizer rejects a targeted operation."""

    kind = "permission"
    code = 403


class NotFoundError(NotificationConfigError):
    """Operation on an absent name."""

    kind = "not-found"
    code = 404


class ConflictError(NotificationConfigError):
    """Duplicate name on add, or stale digest on update."""

    kind = "conflict"
    code = 409


class ParseError(NotificationConfigError):
    """The persisted configuration is structurally invalid."""

    kind = "parse"
    code = 500


class ConfigIOError(NotificationConfigError):
    """The storage medium could not be read or written."""

    kind = "io"
    code = 500


class DeliveryError(NotificationConfigError):
    """A channel failed to deliver a test notification."""

    kind = "delivery"
    code = 500


class LockTimeoutError(NotificationConfigError):
    """Write contention exceeded the configured wait bound."""

    kind = "lock-timeout"
    code = 503
