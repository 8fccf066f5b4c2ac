"""
Host-facing lifecycle entry points for the auth method resource.

Each entry point takes a CallContext and a ResourceState and returns a
list of Diagnostic (empty on success). Reconciliation failures become
error diagnostics; anything else is a bug and propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .attributes import VARIANTS
from .context import CallContext
from .errors import AuthSyncError
from .gateway import AuthMethodsGateway
from .reconciler import Reconciler
from .record import (
    DESCRIPTION_KEY,
    ID_KEY,
    NAME_KEY,
    SCOPE_ID_KEY,
    TYPE_KEY,
    VERSION_KEY,
    Absent,
    AuthMethodRecord,
    record_from_config,
    record_to_config,
)
from .state import ResourceState

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

STATE_KEYS: List[str] = [NAME_KEY, DESCRIPTION_KEY, SCOPE_ID_KEY, TYPE_KEY, VERSION_KEY]
for _variant in VARIANTS.values():
    STATE_KEYS += [spec.key for spec in _variant.fields if spec.key not in STATE_KEYS]


@dataclass(frozen=True)
class Diagnostic:
    severity: str
    summary: str
    detail: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity == SEVERITY_ERROR

    def __str__(self) -> str:
        return f"{self.severity}: {self.summary}" + (f": {self.detail}" if self.detail else "")


@dataclass
class ProviderMeta:
    """Opaque handle passed by the host to every call."""
    gateway: AuthMethodsGateway
    logger: Optional[logging.LoggerAdapter] = None


def error_diagnostic(exc: AuthSyncError, action: str) -> Diagnostic:
    return Diagnostic(SEVERITY_ERROR, f"error {action} auth method: {exc.summary}", str(exc))


def has_errors(diags: List[Diagnostic]) -> bool:
    return any(d.is_error for d in diags)


def desired_config(state: ResourceState) -> Dict[str, Any]:
    return {key: state.get(key)[0] for key in STATE_KEYS}


def previous_config(state: ResourceState) -> Dict[str, Any]:
    out: Dict[str, Any] = {ID_KEY: state.id}
    for key in STATE_KEYS:
        out[key] = state.get_change(key)[0] if state.has_changed(key) else state.get(key)[0]
    return out


def write_record(state: ResourceState, record: AuthMethodRecord) -> None:
    for key, value in record_to_config(record).items():
        if key == ID_KEY:
            continue
        state.set(key, value)
    state.set_id(record.id)


class AuthMethodResource:
    def __init__(self, meta: ProviderMeta) -> None:
        self.log = meta.logger or logging.getLogger("authsync.resource")
        self.reconciler = Reconciler(meta.gateway, logger=meta.logger)

    def create(self, ctx: CallContext, state: ResourceState) -> List[Diagnostic]:
        try:
            record = self.reconciler.create(ctx, record_from_config(desired_config(state)))
        except AuthSyncError as exc:
            return [error_diagnostic(exc, "creating")]
        write_record(state, record)
        return []

    def read(self, ctx: CallContext, state: ResourceState) -> List[Diagnostic]:
        try:
            previous = self._current_record(state)
            outcome = self.reconciler.read(ctx, state.id, previous)
        except AuthSyncError as exc:
            return [error_diagnostic(exc, "reading")]
        if isinstance(outcome, Absent):
            state.set_id("")
            if not outcome.id:
                return []
            return [
                Diagnostic(
                    SEVERITY_WARNING,
                    "auth method not found",
                    f"{outcome.id} no longer exists remotely; removed from state",
                )
            ]
        write_record(state, outcome)
        return []

    def import_state(self, ctx: CallContext, state: ResourceState) -> List[Diagnostic]:
        return self.read(ctx, state)

    def update(self, ctx: CallContext, state: ResourceState) -> List[Diagnostic]:
        try:
            previous = record_from_config(previous_config(state))
            desired = record_from_config(desired_config(state))
            record = self.reconciler.update(ctx, state.id, previous, desired)
        except AuthSyncError as exc:
            return [error_diagnostic(exc, "updating")]
        write_record(state, record)
        return []

    def delete(self, ctx: CallContext, state: ResourceState) -> List[Diagnostic]:
        try:
            self.reconciler.delete(ctx, state.id)
        except AuthSyncError as exc:
            return [error_diagnostic(exc, "deleting")]
        state.set_id("")
        return []

    @staticmethod
    def _current_record(state: ResourceState) -> Optional[AuthMethodRecord]:
        # an imported resource has nothing but its id yet
        if not state.get(TYPE_KEY)[1] or not state.get(SCOPE_ID_KEY)[1]:
            return None
        return record_from_config(desired_config(state))
