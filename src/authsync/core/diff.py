"""
Field-level diff between a previous and a desired AuthMethodRecord.

One routine walks the descriptor tables (common fields, then the variant's
writable fields) and emits update options for the fields that changed:

  * a DefaultOption when the previous value was explicit, so the server
    drops it before anything else is applied;
  * a SetOption when the desired value is explicit.

So `3 -> 5` sends default+set, `unset -> 3600` sends only set and
`8 -> unset` sends only default. A numeric 0 counts as unset, so
`0 -> 3600` is the same as `unset -> 3600`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Tuple

from .attributes import VARIANTS, FieldSpec, Option
from .errors import ImmutableFieldChanged
from .record import COMMON_FIELDS, SCOPE_ID_KEY, TYPE_KEY, AuthMethodRecord


@dataclass(frozen=True)
class FieldChange:
    key: str
    old: Any
    new: Any


def check_immutable(previous: AuthMethodRecord, desired: AuthMethodRecord) -> None:
    if previous.scope_id != desired.scope_id:
        raise ImmutableFieldChanged(SCOPE_ID_KEY, previous.scope_id, desired.scope_id)
    if previous.method_type is not desired.method_type:
        raise ImmutableFieldChanged(TYPE_KEY, previous.method_type.value, desired.method_type.value)


def _tables(record: AuthMethodRecord) -> List[Tuple[FieldSpec, Any, Any]]:
    rows: List[Tuple[FieldSpec, Any, Any]] = [(spec, record, spec.key) for spec in COMMON_FIELDS]
    rows += [(spec, record.attributes, spec.key) for spec in VARIANTS[record.method_type].fields if spec.writable]
    return rows


def changed_fields(previous: AuthMethodRecord, desired: AuthMethodRecord) -> List[Tuple[FieldSpec, FieldChange]]:
    """Return the mutable fields whose comparable values differ."""
    check_immutable(previous, desired)
    out: List[Tuple[FieldSpec, FieldChange]] = []
    for (spec, prev_obj, key), (_, want_obj, _) in zip(_tables(previous), _tables(desired)):
        old = getattr(prev_obj, key)
        new = getattr(want_obj, key)
        if spec.comparable(old) != spec.comparable(new):
            out.append((spec, FieldChange(key, old, new)))
    return out


def update_options(previous: AuthMethodRecord, desired: AuthMethodRecord) -> List[Option]:
    """
    Build the update options turning `previous` into `desired`.

    Raises ImmutableFieldChanged before looking at any other field.
    An empty list means there is nothing to send.
    """
    opts: List[Option] = []
    for spec, change in changed_fields(previous, desired):
        if not spec.is_unset(change.old):
            opts.append(spec.default_option())
        if not spec.is_unset(change.new):
            opts.append(spec.set_option(change.new))
    return opts
