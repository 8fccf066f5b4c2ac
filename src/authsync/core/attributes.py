"""
Attribute codec: flat configuration <-> typed, variant-tagged attributes.

Each auth method type owns a dataclass and a table of FieldSpec entries.
The same table drives create encoding, response decoding and the update
diff, so a new field is declared once. VARIANTS must cover every
MethodType; this is checked when the module is imported.

Wire keys follow the auth service API, config keys follow the resource
schema (they only differ for CA certificates: `ca_certificates` locally,
`idp_ca_certs` on the wire).
"""

from __future__ import annotations

from dataclasses import dataclass, fields as dc_fields
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, Union

from .errors import InvalidFieldValue, InvalidMethodType, MalformedResponse

UINT32_MAX = 2**32 - 1

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


class MethodType(str, Enum):
    PASSWORD = "password"
    OIDC = "oidc"

    @classmethod
    def parse(cls, value: Any) -> "MethodType":
        if isinstance(value, MethodType):
            return value
        if value is None:
            raise InvalidMethodType(value)
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidMethodType(value) from None


# ---------- Options ----------

@dataclass(frozen=True)
class SetOption:
    """Write an explicit value at `path` in the request body."""
    path: Tuple[str, ...]
    value: Any


@dataclass(frozen=True)
class DefaultOption:
    """Reset the value at `path` to the server default (sent as JSON null)."""
    path: Tuple[str, ...]


Option = Union[SetOption, DefaultOption]


# ---------- Field descriptors ----------

KIND_INT = "int"
KIND_STR = "str"
KIND_BOOL = "bool"
KIND_LIST = "list"   # ordered sequence of strings
KIND_SET = "set"     # order-insensitive, whitespace-insensitive strings


@dataclass(frozen=True)
class FieldSpec:
    key: str
    kind: str
    wire: str = ""
    writable: bool = True
    readable: bool = True
    required: bool = False
    trim: bool = False
    parent: Tuple[str, ...] = ("attributes",)

    @property
    def wire_key(self) -> str:
        return self.wire or self.key

    @property
    def path(self) -> Tuple[str, ...]:
        return self.parent + (self.wire_key,)

    def set_option(self, value: Any) -> SetOption:
        return SetOption(self.path, self.to_wire(value))

    def default_option(self) -> DefaultOption:
        return DefaultOption(self.path)

    def coerce(self, value: Any) -> Any:
        """
        Normalize a configured value into its local representation.

        Raises InvalidFieldValue when the value cannot represent this field.
        """
        if value is None:
            return None
        if self.kind == KIND_INT:
            if isinstance(value, bool) or isinstance(value, (list, tuple, dict)):
                raise InvalidFieldValue(self.key, value, "expected an integer")
            if isinstance(value, float) and not value.is_integer():
                raise InvalidFieldValue(self.key, value, "expected an integer")
            try:
                number = int(str(value).strip()) if isinstance(value, str) else int(value)
            except (TypeError, ValueError):
                raise InvalidFieldValue(self.key, value, "expected an integer") from None
            if not 0 <= number <= UINT32_MAX:
                raise InvalidFieldValue(self.key, value, f"must be between 0 and {UINT32_MAX}")
            return number
        if self.kind == KIND_BOOL:
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise InvalidFieldValue(self.key, value, "expected a boolean")
        if self.kind in (KIND_LIST, KIND_SET):
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, (list, tuple)) or any(isinstance(v, (list, tuple, dict)) for v in value):
                raise InvalidFieldValue(self.key, value, "expected a list of strings")
            items = [str(v) for v in value]
            if self.trim:
                items = [v.strip() for v in items]
            return tuple(items)
        if isinstance(value, (list, tuple, dict)):
            raise InvalidFieldValue(self.key, value, "expected a string")
        return str(value)

    def is_unset(self, value: Any) -> bool:
        """None, and 0 for numeric fields, mean "not configured"."""
        value = self.coerce(value)
        return value is None or (self.kind == KIND_INT and value == 0)

    def to_wire(self, value: Any) -> Any:
        value = self.coerce(value)
        if isinstance(value, tuple):
            return list(value)
        return value

    def comparable(self, value: Any) -> Any:
        """Value used to decide whether a field changed."""
        if self.is_unset(value):
            return None
        value = self.coerce(value)
        if self.kind == KIND_SET:
            return frozenset(v.strip() for v in value)
        return value

    def from_wire(self, raw: Any) -> Any:
        """Convert one response value, raising MalformedResponse on a type mismatch."""
        where = ".".join(self.path)
        if self.kind == KIND_INT:
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                raise MalformedResponse(f"{where}: expected a number, got {type(raw).__name__}")
            if isinstance(raw, float) and not raw.is_integer():
                raise MalformedResponse(f"{where}: expected an integer, got {raw!r}")
            value = int(raw)
            if not 0 <= value <= UINT32_MAX:
                raise MalformedResponse(f"{where}: {value} is outside the uint32 range")
            return value
        if self.kind == KIND_BOOL:
            if not isinstance(raw, bool):
                raise MalformedResponse(f"{where}: expected a boolean, got {type(raw).__name__}")
            return raw
        if self.kind in (KIND_LIST, KIND_SET):
            if not isinstance(raw, list) or not all(isinstance(v, str) for v in raw):
                raise MalformedResponse(f"{where}: expected a list of strings")
            # the service may add surrounding whitespace to set elements
            return tuple(v.strip() for v in raw) if self.kind == KIND_SET else tuple(raw)
        if not isinstance(raw, str):
            raise MalformedResponse(f"{where}: expected a string, got {type(raw).__name__}")
        return raw


# ---------- Variants ----------

@dataclass(frozen=True)
class PasswordAttributes:
    min_login_name_length: Optional[int] = None
    min_password_length: Optional[int] = None

    @property
    def method_type(self) -> MethodType:
        return MethodType.PASSWORD


@dataclass(frozen=True)
class OidcAttributes:
    state: Optional[str] = None
    issuer: Optional[str] = None
    discovery_url: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    client_secret_hmac: Optional[str] = None
    max_age: Optional[int] = None
    signing_algorithms: Optional[Tuple[str, ...]] = None
    api_url_prefix: Optional[str] = None
    callback_url: Optional[str] = None
    ca_certificates: Optional[Tuple[str, ...]] = None
    allowed_audiences: Optional[Tuple[str, ...]] = None
    disable_discovered_config_validation: Optional[bool] = None

    @property
    def method_type(self) -> MethodType:
        return MethodType.OIDC


Attributes = Union[PasswordAttributes, OidcAttributes]

PASSWORD_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("min_login_name_length", KIND_INT, required=True),
    FieldSpec("min_password_length", KIND_INT, required=True),
)

OIDC_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("state", KIND_STR, writable=False, required=True),
    FieldSpec("issuer", KIND_STR, required=True),
    FieldSpec("discovery_url", KIND_STR, writable=False),
    FieldSpec("client_id", KIND_STR, required=True),
    FieldSpec("client_secret", KIND_STR, readable=False),
    FieldSpec("client_secret_hmac", KIND_STR, writable=False, required=True),
    FieldSpec("max_age", KIND_INT),
    FieldSpec("signing_algorithms", KIND_LIST),
    FieldSpec("api_url_prefix", KIND_STR),
    FieldSpec("callback_url", KIND_STR, writable=False),
    FieldSpec("ca_certificates", KIND_SET, wire="idp_ca_certs", trim=True),
    FieldSpec("allowed_audiences", KIND_SET),
    FieldSpec("disable_discovered_config_validation", KIND_BOOL),
)


@dataclass(frozen=True)
class Variant:
    method_type: MethodType
    cls: Type[Any]
    fields: Tuple[FieldSpec, ...]

    def empty(self) -> Attributes:
        return self.cls()


VARIANTS: Dict[MethodType, Variant] = {
    MethodType.PASSWORD: Variant(MethodType.PASSWORD, PasswordAttributes, PASSWORD_FIELDS),
    MethodType.OIDC: Variant(MethodType.OIDC, OidcAttributes, OIDC_FIELDS),
}


def _check_variants() -> None:
    missing = [m.value for m in MethodType if m not in VARIANTS]
    if missing:
        raise RuntimeError(f"no attribute variant declared for: {', '.join(missing)}")
    for variant in VARIANTS.values():
        declared = {f.name for f in dc_fields(variant.cls)}
        described = {spec.key for spec in variant.fields}
        if declared != described:
            raise RuntimeError(
                f"{variant.cls.__name__} fields and descriptors differ: {sorted(declared ^ described)}"
            )


_check_variants()


def variant_for(method_type: Any) -> Variant:
    return VARIANTS[MethodType.parse(method_type)]


def _present(config: Mapping[str, Any], spec: FieldSpec) -> bool:
    return spec.key in config and not spec.is_unset(config[spec.key])


# ---------- Codec ----------

def encode(method_type: Any, config: Mapping[str, Any]) -> List[Option]:
    """
    Build create options for the variant selected by `method_type`.

    Only keys present in `config` produce a SetOption; absent keys (and 0
    for numeric fields) let the server apply its default. An empty list is
    an explicit value.
    """
    variant = variant_for(method_type)
    return [spec.set_option(config[spec.key]) for spec in variant.fields if spec.writable and _present(config, spec)]


def decode(method_type: Any, raw: Any, previous: Optional[Attributes] = None) -> Attributes:
    """
    Convert the response `attributes` map into the local variant.

    Required keys must be present with the right type. Optional keys that
    the response omits keep the value from `previous`, and write-only
    fields are never read back.
    """
    variant = variant_for(method_type)
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise MalformedResponse(f"attributes: expected an object, got {type(raw).__name__}")
    if previous is not None and not isinstance(previous, variant.cls):
        previous = None
    base = previous or variant.empty()

    values: Dict[str, Any] = {}
    for spec in variant.fields:
        current = getattr(base, spec.key)
        if not spec.readable:
            values[spec.key] = current
        elif spec.wire_key in raw and raw[spec.wire_key] is not None:
            values[spec.key] = spec.from_wire(raw[spec.wire_key])
        elif spec.required:
            raise MalformedResponse(f"{'.'.join(spec.path)}: missing from response")
        else:
            values[spec.key] = current
    return variant.cls(**values)


def attributes_from_config(method_type: Any, config: Mapping[str, Any]) -> Attributes:
    """Build the local variant from a flat configuration map."""
    variant = variant_for(method_type)
    return variant.cls(**{spec.key: spec.coerce(config.get(spec.key)) for spec in variant.fields})


def attributes_to_config(attrs: Attributes) -> Dict[str, Any]:
    """Flatten a variant into configuration keys, skipping unset values."""
    variant = VARIANTS[attrs.method_type]
    out: Dict[str, Any] = {}
    for spec in variant.fields:
        value = getattr(attrs, spec.key)
        if value is None:
            continue
        out[spec.key] = list(value) if isinstance(value, tuple) else value
    return out

