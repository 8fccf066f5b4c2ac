"""
Runtime configuration for the authsync CLI.

Values come from, highest precedence first: CLI flags, AUTHSYNC_SECTION__KEY
environment variables (after loading a .env file found from the working
directory), one YAML file and the section defaults below.

The YAML file is the path given with --config or AUTHSYNC_CONFIG; without
either, ./authsync.yml is read when it exists.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional, Type

import yaml
from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "AUTHSYNC_"
CONFIG_ENV = "AUTHSYNC_CONFIG"
DEFAULT_CONFIG_FILE = "authsync.yml"


@dataclass
class AppSection:
    run_id: Optional[str] = None
    dry_run: bool = False


@dataclass
class BoundarySection:
    addr: str = ""
    token: str = ""          # secret, never logged
    verify_tls: bool = True
    timeout_sec: float = 30.0


@dataclass
class LoggingSection:
    base_dir: str = "logs"
    console_level: str = "INFO"
    file_level: str = "DEBUG"


@dataclass
class StateSection:
    path: str = "authsync.state.json"


_SECTIONS: Dict[str, Type[Any]] = {
    "app": AppSection,
    "boundary": BoundarySection,
    "logging": LoggingSection,
    "state": StateSection,
}


@dataclass
class AppConfig:
    app: AppSection
    boundary: BoundarySection
    logging: LoggingSection
    state: StateSection

    @property
    def run_id(self) -> str:
        """Configured run id, or one generated on first access."""
        if not self.app.run_id:
            self.app.run_id = uuid.uuid4().hex[:12]
        return self.app.run_id


def read_yaml_file(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Top-level YAML must be a mapping: {path}")
    return data


def interpolate_env(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Replace "${VAR}" string values with os.environ["VAR"] ("" when unset)."""
    def walk(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: walk(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(x) for x in obj]
        if isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
            return os.environ.get(obj[2:-1], "")
        return obj

    return walk(cfg)


def _config_file(path: Optional[str]) -> Dict[str, Any]:
    path = path or os.environ.get(CONFIG_ENV)
    if path:
        # a file asked for by name must exist
        if not os.path.exists(path):
            raise ValueError(f"Config file not found: {path}")
        return read_yaml_file(path)
    if os.path.exists(DEFAULT_CONFIG_FILE):
        return read_yaml_file(DEFAULT_CONFIG_FILE)
    return {}


def _env_sections(prefix: str) -> Dict[str, Dict[str, str]]:
    """AUTHSYNC_BOUNDARY__ADDR=x -> {"boundary": {"addr": "x"}}; other sections are ignored."""
    out: Dict[str, Dict[str, str]] = {}
    for key, val in os.environ.items():
        if not key.startswith(prefix) or "__" not in key:
            continue
        section, _, name = key[len(prefix):].lower().partition("__")
        if section in _SECTIONS:
            out.setdefault(section, {})[name] = val
    return out


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "y", "on"}:
        return True
    if text in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"{key}: expected a boolean, got {value!r}")


def _build_section(name: str, values: Dict[str, Any]) -> Any:
    cls = _SECTIONS[name]
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(values) - set(known))
    if unknown:
        raise ValueError(f"Unknown {name} settings: {', '.join(unknown)}")

    defaults = asdict(cls())
    kwargs: Dict[str, Any] = {}
    for key, value in values.items():
        where = f"{name}.{key}"
        default = defaults[key]
        if value is None:
            kwargs[key] = default
        elif isinstance(default, bool):
            kwargs[key] = _to_bool(where, value)
        elif isinstance(default, float):
            try:
                kwargs[key] = float(value)
            except (TypeError, ValueError):
                raise ValueError(f"{where}: expected a number, got {value!r}") from None
        else:
            kwargs[key] = str(value)
    return cls(**kwargs)


def load_config(
    cli_overrides: Optional[Dict[str, Dict[str, Any]]] = None,
    path: Optional[str] = None,
    env_prefix: str = ENV_PREFIX,
    dotenv: bool = True,
) -> AppConfig:
    """
    Build the AppConfig for one CLI run.

    Raises ValueError for an unreadable or unknown setting, and when
    boundary.addr is missing outside dry-run.
    """
    if dotenv:
        load_dotenv(find_dotenv(usecwd=True), override=False)

    layers = [_config_file(path), _env_sections(env_prefix), cli_overrides or {}]
    merged: Dict[str, Dict[str, Any]] = {name: {} for name in _SECTIONS}
    for layer in layers:
        for section, values in layer.items():
            if section not in _SECTIONS:
                raise ValueError(f"Unknown config section: {section}")
            if not isinstance(values, dict):
                raise ValueError(f"Config section {section} must be a mapping")
            merged[section].update(values)

    merged = interpolate_env(merged)
    cfg = AppConfig(**{name: _build_section(name, values) for name, values in merged.items()})

    if cfg.boundary.timeout_sec <= 0:
        raise ValueError("boundary.timeout_sec must be positive")
    if not cfg.app.dry_run and not cfg.boundary.addr:
        raise ValueError("Missing required configuration for non-dry run: boundary.addr")
    return cfg
