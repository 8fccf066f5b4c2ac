"""
Local-state accessor used by the lifecycle entry points.

ResourceState is what a host hands to each call: the desired configuration
merged with whatever was observed so far, plus the prior values for the
update diff. InMemoryState backs the CLI and the tests.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class ResourceState(Protocol):
    @property
    def id(self) -> str: ...

    def get(self, key: str) -> Tuple[Any, bool]: ...

    def has_changed(self, key: str) -> bool: ...

    def get_change(self, key: str) -> Tuple[Any, Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def set_id(self, value: str) -> None: ...


def _norm(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_norm(v) for v in value]
    return value


class InMemoryState:
    """
    Dict-backed ResourceState.

    `values` starts as the desired configuration and receives everything
    written back by a lifecycle call; `prior` is the state recorded by the
    previous successful call.
    """

    def __init__(
        self,
        config: Optional[Mapping[str, Any]] = None,
        *,
        prior: Optional[Mapping[str, Any]] = None,
        resource_id: str = "",
    ) -> None:
        self.values: Dict[str, Any] = copy.deepcopy(dict(config or {}))
        self.prior: Dict[str, Any] = copy.deepcopy(dict(prior or {}))
        self._id = resource_id or str(self.prior.get("id") or "")

    @property
    def id(self) -> str:
        return self._id

    def get(self, key: str) -> Tuple[Any, bool]:
        value = self.values.get(key)
        return value, value is not None

    def get_change(self, key: str) -> Tuple[Any, Any]:
        return self.prior.get(key), self.values.get(key)

    def has_changed(self, key: str) -> bool:
        old, new = self.get_change(key)
        return _norm(old) != _norm(new)

    def set(self, key: str, value: Any) -> None:
        if isinstance(value, tuple):
            value = list(value)
        self.values[key] = value

    def set_id(self, value: str) -> None:
        self._id = value or ""
        self.values["id"] = self._id

    def snapshot(self) -> Dict[str, Any]:
        """Observed values to keep as `prior` for the next call."""
        out = {k: v for k, v in self.values.items() if v is not None}
        out["id"] = self._id
        return out
