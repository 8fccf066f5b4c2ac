"""
YAML resource definitions.

    auth_methods:
      corp_sso:
        scope_id: global
        type: oidc
        name: Corp SSO
        oidc:
          issuer: https://idp.example.com/
          client_id: authsync
          client_secret: ${OIDC_CLIENT_SECRET}
          signing_algorithms: [RS256]
      local:
        scope_id: global
        type: password
        password:
          min_password_length: 12

Each entry is flattened into the configuration keys the resource uses:
top-level fields plus the block named after `type`.
"""

from __future__ import annotations

from typing import Any, Dict

from .attributes import VARIANTS, MethodType
from .config import read_yaml_file, interpolate_env
from .errors import InvalidFieldValue, MissingRequiredField
from .record import COMMON_FIELDS


def flatten_definition(name: str, entry: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(entry, dict):
        raise ValueError(f"auth method '{name}' must be a mapping")
    if entry.get("type") in (None, ""):
        raise MissingRequiredField("type")
    method_type = MethodType.parse(entry["type"])

    blocks = {m.value for m in VARIANTS}
    for other in blocks - {method_type.value}:
        if entry.get(other):
            raise ValueError(f"auth method '{name}' is {method_type.value} but has an '{other}' block")

    flat = {k: v for k, v in entry.items() if k not in blocks}
    flat["type"] = method_type.value
    block = entry.get(method_type.value) or {}
    if not isinstance(block, dict):
        raise ValueError(f"auth method '{name}': '{method_type.value}' block must be a mapping")
    allowed = {spec.key: spec for spec in VARIANTS[method_type].fields}
    unknown = sorted(set(block) - set(allowed))
    if unknown:
        raise ValueError(f"auth method '{name}': unknown {method_type.value} keys {unknown}")
    for spec in COMMON_FIELDS + tuple(allowed[key] for key in block):
        value = block.get(spec.key, flat.get(spec.key))
        try:
            spec.coerce(value)
        except InvalidFieldValue as exc:
            raise InvalidFieldValue(f"{name}.{exc.field}", exc.value, exc.reason) from None
    flat.update(block)
    return flat


def load_definitions(path: str) -> Dict[str, Dict[str, Any]]:
    """Read a definitions file and return {name: flat config}."""
    data = interpolate_env(read_yaml_file(path))
    methods = data.get("auth_methods") or {}
    if not isinstance(methods, dict):
        raise ValueError(f"{path}: 'auth_methods' must be a mapping of name -> definition")
    return {name: flatten_definition(name, entry) for name, entry in methods.items()}
