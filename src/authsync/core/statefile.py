"""
JSON file holding the observed state of every managed auth method between
runs (what the host's state store does for a plugin).

    {"format": 1, "resources": {"corp_sso": {"id": "amoidc_...", "version": 3, ...}}}

Writes go through a temp file and os.replace so a crash never leaves a
half-written state file behind.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Iterator, Optional, Tuple

FORMAT = 1


class StateFile:
    def __init__(self, path: str) -> None:
        self.path = path
        self.resources: Dict[str, Dict[str, Any]] = {}

    def load(self) -> "StateFile":
        if not os.path.exists(self.path):
            self.resources = {}
            return self
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict) or data.get("format") != FORMAT:
            raise ValueError(f"{self.path}: unsupported state file format")
        self.resources = dict(data.get("resources") or {})
        return self

    def get(self, name: str) -> Optional[Dict[str, Any]]:
        entry = self.resources.get(name)
        return dict(entry) if entry else None

    def put(self, name: str, values: Dict[str, Any]) -> None:
        self.resources[name] = dict(values)

    def drop(self, name: str) -> None:
        self.resources.pop(name, None)

    def items(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        for name in sorted(self.resources):
            yield name, dict(self.resources[name])

    def save(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        tmp = f"{self.path}.tmp"
        # client secrets live here, keep the file private
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"format": FORMAT, "resources": self.resources}, f, indent=2, sort_keys=True)
        os.replace(tmp, self.path)
