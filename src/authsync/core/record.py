"""
AuthMethodRecord: local desired/observed state of one auth method.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from .attributes import (
    KIND_STR,
    Attributes,
    FieldSpec,
    MethodType,
    attributes_from_config,
    attributes_to_config,
    decode,
)
from .errors import InvariantViolation, MalformedResponse, MissingRequiredField

ID_KEY = "id"
NAME_KEY = "name"
DESCRIPTION_KEY = "description"
SCOPE_ID_KEY = "scope_id"
TYPE_KEY = "type"
VERSION_KEY = "version"

# Mutable top-level fields; scope_id and type are fixed at create time.
COMMON_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(NAME_KEY, KIND_STR, parent=()),
    FieldSpec(DESCRIPTION_KEY, KIND_STR, parent=()),
)


@dataclass(frozen=True)
class AuthMethodRecord:
    scope_id: str
    method_type: MethodType
    attributes: Attributes
    id: str = ""
    name: Optional[str] = None
    description: Optional[str] = None
    version: Optional[int] = None

    def __post_init__(self) -> None:
        if self.attributes.method_type is not self.method_type:
            raise InvariantViolation(
                f"{self.method_type.value} auth method carries {self.attributes.method_type.value} attributes"
            )


@dataclass(frozen=True)
class Absent:
    """Read outcome for a record that does not exist remotely."""
    id: str = ""


def record_from_config(config: Mapping[str, Any]) -> AuthMethodRecord:
    """Build a record from flat configuration keys (desired or stored state)."""
    type_val = config.get(TYPE_KEY)
    if type_val in (None, ""):
        raise MissingRequiredField(TYPE_KEY)
    method_type = MethodType.parse(type_val)

    scope_id = config.get(SCOPE_ID_KEY)
    if not scope_id:
        raise MissingRequiredField(SCOPE_ID_KEY)

    version = config.get(VERSION_KEY)
    return AuthMethodRecord(
        scope_id=str(scope_id),
        method_type=method_type,
        attributes=attributes_from_config(method_type, config),
        id=str(config.get(ID_KEY) or ""),
        name=config.get(NAME_KEY),
        description=config.get(DESCRIPTION_KEY),
        version=int(version) if version is not None else None,
    )


def record_to_config(record: AuthMethodRecord) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        ID_KEY: record.id,
        SCOPE_ID_KEY: record.scope_id,
        TYPE_KEY: record.method_type.value,
        NAME_KEY: record.name,
        DESCRIPTION_KEY: record.description,
        VERSION_KEY: record.version,
    }
    out.update(attributes_to_config(record.attributes))
    return out


def _opt_str(item: Mapping[str, Any], key: str) -> Optional[str]:
    val = item.get(key)
    if val is None:
        return None
    if not isinstance(val, str):
        raise MalformedResponse(f"{key}: expected a string, got {type(val).__name__}")
    return val


def decode_record(item: Mapping[str, Any], previous: Optional[AuthMethodRecord] = None) -> AuthMethodRecord:
    """
    Convert a validated response item into a record.

    `previous` supplies values the response does not carry (write-only and
    conditionally returned attributes).
    """
    method_type = MethodType.parse(item.get(TYPE_KEY))
    prev_attrs = previous.attributes if previous is not None else None
    version = item.get(VERSION_KEY)
    if isinstance(version, bool) or not isinstance(version, int):
        raise MalformedResponse(f"version: expected an integer, got {type(version).__name__}")
    scope_id = _opt_str(item, SCOPE_ID_KEY)
    if not scope_id:
        raise MalformedResponse(f"{SCOPE_ID_KEY}: missing from response")
    return AuthMethodRecord(
        id=_opt_str(item, ID_KEY) or "",
        scope_id=scope_id,
        method_type=method_type,
        name=_opt_str(item, NAME_KEY),
        description=_opt_str(item, DESCRIPTION_KEY),
        version=version,
        attributes=decode(method_type, item.get("attributes"), prev_attrs),
    )
