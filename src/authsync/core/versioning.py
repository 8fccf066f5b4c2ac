"""
Concurrency tokens and the version guard.

Updates carry the record version the service expects. With an explicit
token the caller's version is sent as-is and the service rejects it if the
record moved on. With AUTOMATIC the guard reads the current version right
before the update, so a stale cached version never reaches the service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .context import CallContext
from .errors import InvariantViolation, NotFound
from .gateway import NOT_FOUND, AuthMethodsGateway


@dataclass(frozen=True)
class ConcurrencyToken:
    version: Optional[int] = None
    automatic: bool = False

    def __post_init__(self) -> None:
        if not self.automatic and self.version is None:
            raise ValueError("an explicit concurrency token needs a version")


AUTOMATIC = ConcurrencyToken(automatic=True)


class VersionGuard:
    def __init__(self, gateway: AuthMethodsGateway, *, logger: Optional[logging.LoggerAdapter] = None) -> None:
        self.gateway = gateway
        self.log = logger or logging.getLogger("authsync.versioning")

    def resolve(self, ctx: CallContext, auth_method_id: str, token: ConcurrencyToken) -> int:
        """Return the version to send with an update of `auth_method_id`."""
        if not token.automatic:
            return int(token.version)  # type: ignore[arg-type]
        current = self.gateway.read(ctx, auth_method_id)
        if current is NOT_FOUND:
            raise NotFound(f"auth method {auth_method_id} no longer exists")
        self.log.debug("resolved %s to version %s", auth_method_id, current.version)
        return current.version

    @staticmethod
    def check_advanced(auth_method_id: str, before: int, after: int) -> None:
        """An accepted update must move the version forward."""
        if after <= before:
            raise InvariantViolation(
                f"auth method {auth_method_id}: version did not advance after update ({before} -> {after})"
            )
