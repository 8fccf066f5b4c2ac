"""
Error taxonomy for auth method reconciliation.

Every failure the core can report derives from AuthSyncError so the
host-facing layer can turn it into a diagnostic. A remote "not found"
is not an error: the gateway returns the NOT_FOUND sentinel instead.
"""

from __future__ import annotations

from dataclasses import dataclass


class AuthSyncError(Exception):
    """Base class for every reportable reconciliation failure."""

    summary = "auth method error"


class MissingRequiredField(AuthSyncError):
    summary = "missing required field"

    def __init__(self, field: str) -> None:
        super().__init__(f"no {field} provided")
        self.field = field


class InvalidMethodType(AuthSyncError):
    summary = "invalid auth method type"

    def __init__(self, method_type: object) -> None:
        super().__init__(f"invalid auth method type {method_type!r}; expected 'password' or 'oidc'")
        self.method_type = method_type


class InvalidFieldValue(AuthSyncError):
    summary = "invalid field value"

    def __init__(self, field: str, value: object, reason: str) -> None:
        super().__init__(f"{field}: {reason}, got {value!r}")
        self.field = field
        self.value = value
        self.reason = reason


class ImmutableFieldChanged(AuthSyncError):
    summary = "immutable field changed"

    def __init__(self, field: str, old: object, new: object) -> None:
        super().__init__(f"{field} cannot change after create ({old!r} -> {new!r})")
        self.field = field
        self.old = old
        self.new = new


class MalformedResponse(AuthSyncError):
    summary = "malformed response from auth service"


class NotFound(AuthSyncError):
    summary = "auth method not found"


class Cancelled(AuthSyncError):
    summary = "operation cancelled"


class InvariantViolation(AuthSyncError):
    """The auth service broke its contract with this client. Never retried."""

    summary = "invariant violation"


@dataclass
class TransportError(AuthSyncError):
    """Connection-level failure; the request may not have reached the service."""

    method: str
    url: str
    message: str = ""

    summary = "transport error"

    def __str__(self) -> str:
        return f"{self.method} {self.url} failed: {self.message}"


@dataclass
class RemoteRejected(AuthSyncError):
    """Structured error returned by the service, message kept verbatim."""

    status: int
    message: str
    kind: str = ""
    url: str = ""

    summary = "auth service rejected the request"

    def __str__(self) -> str:
        base = f"status={self.status}"
        if self.kind:
            base += f" kind={self.kind}"
        return f"{base}: {self.message}"
