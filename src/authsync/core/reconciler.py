from __future__ import annotations

import logging
from typing import List, Optional, Union

from .attributes import Option, attributes_to_config, encode
from .context import CallContext
from .diff import check_immutable, update_options
from .errors import InvariantViolation, MissingRequiredField, NotFound
from .gateway import NOT_FOUND, AuthMethodsGateway, Envelope
from .record import COMMON_FIELDS, SCOPE_ID_KEY, TYPE_KEY, Absent, AuthMethodRecord, decode_record
from .versioning import AUTOMATIC, ConcurrencyToken, VersionGuard

ReadOutcome = Union[AuthMethodRecord, Absent]


class Reconciler:
    """
    Drives one auth method through create/read/update/delete.

    Every call makes a fixed, small number of requests and keeps no state
    between calls: the caller owns the record.
    """

    def __init__(self, gateway: AuthMethodsGateway, *, logger: Optional[logging.LoggerAdapter] = None) -> None:
        self.gateway = gateway
        self.log = logger or logging.getLogger("authsync.reconciler")
        self.guard = VersionGuard(gateway, logger=logger)

    # ---------- planning (pure) ----------

    @staticmethod
    def create_options(desired: AuthMethodRecord) -> List[Option]:
        opts = encode(desired.method_type, attributes_to_config(desired.attributes))
        for spec in COMMON_FIELDS:
            value = getattr(desired, spec.key)
            if value:
                opts.append(spec.set_option(value))
        return opts

    @staticmethod
    def update_options(previous: AuthMethodRecord, desired: AuthMethodRecord) -> List[Option]:
        return update_options(previous, desired)

    # ---------- lifecycle ----------

    def create(self, ctx: CallContext, desired: AuthMethodRecord) -> AuthMethodRecord:
        if not desired.method_type:
            raise MissingRequiredField(TYPE_KEY)
        if not desired.scope_id:
            raise MissingRequiredField(SCOPE_ID_KEY)

        opts = self.create_options(desired)
        self.log.info("creating %s auth method in scope %s (%d options)", desired.method_type.value, desired.scope_id, len(opts))
        env = self.gateway.create(ctx, desired.method_type.value, desired.scope_id, opts)
        if env is None:
            raise InvariantViolation("nil auth method after create")

        created = self._decode(env, desired)
        self.log.info("created auth method %s (version %s)", created.id, created.version)
        return created

    def read(self, ctx: CallContext, auth_method_id: str, previous: Optional[AuthMethodRecord] = None) -> ReadOutcome:
        """
        Refresh a record. A record the service no longer knows is reported as
        Absent, not as an error.
        """
        if not auth_method_id:
            return Absent()
        result = self.gateway.read(ctx, auth_method_id)
        if result is NOT_FOUND:
            self.log.info("auth method %s not found; dropping local state", auth_method_id)
            return Absent(auth_method_id)
        return self._decode(result, previous)

    def update(
        self,
        ctx: CallContext,
        auth_method_id: str,
        previous: AuthMethodRecord,
        desired: AuthMethodRecord,
        token: ConcurrencyToken = AUTOMATIC,
    ) -> AuthMethodRecord:
        """
        Send only the fields that changed between `previous` and `desired`.

        Returns the record as the service reports it after the update, or
        `previous` untouched when nothing changed.
        """
        check_immutable(previous, desired)
        if not auth_method_id:
            raise NotFound("cannot update an auth method that was never created")

        opts = update_options(previous, desired)
        if not opts:
            self.log.debug("auth method %s unchanged; nothing to send", auth_method_id)
            return previous

        version = self.guard.resolve(ctx, auth_method_id, token)
        self.log.info("updating auth method %s at version %s (%d options)", auth_method_id, version, len(opts))
        result = self.gateway.update(ctx, auth_method_id, version, opts)
        if result is NOT_FOUND:
            raise NotFound(f"auth method {auth_method_id} no longer exists")
        self.guard.check_advanced(auth_method_id, version, result.version)
        return self._decode(result, desired)

    def delete(self, ctx: CallContext, auth_method_id: str) -> None:
        if not auth_method_id:
            raise NotFound("cannot delete an auth method that was never created")
        if self.gateway.delete(ctx, auth_method_id) is NOT_FOUND:
            self.log.info("auth method %s already gone", auth_method_id)
            return
        self.log.info("deleted auth method %s", auth_method_id)

    # ---------- internal ----------

    @staticmethod
    def _decode(env: Envelope, previous: Optional[AuthMethodRecord]) -> AuthMethodRecord:
        return decode_record(env.item, previous)
