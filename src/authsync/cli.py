"""
Command-line interface for authsync.

Usage (examples):
  - Show the options an apply would send (no network calls):
      python -m authsync plan --definition auth_methods.yml

  - Create or update every defined auth method:
      python -m authsync apply --definition auth_methods.yml \
        --addr http://127.0.0.1:9200 --token TOKEN

  - Refresh, destroy, import:
      python -m authsync refresh --addr ... --token ...
      python -m authsync destroy --name corp_sso --addr ... --token ...
      python -m authsync import corp_sso amoidc_1234567890 --addr ... --token ...
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, Iterable, List, Optional

from .core.attributes import VARIANTS, DefaultOption, Option
from .core.config import AppConfig, load_config
from .core.context import CallContext
from .core.definitions import load_definitions
from .core.errors import AuthSyncError
from .core.gateway import AuthMethodsGateway
from .core.logging_setup import build_logger
from .core.reconciler import Reconciler
from .core.record import VERSION_KEY, record_from_config
from .core.resource import AuthMethodResource, Diagnostic, ProviderMeta, has_errors
from .core.state import InMemoryState
from .core.statefile import StateFile

SENSITIVE_KEYS = {"client_secret"}
ATTRIBUTE_KEYS = {spec.key for variant in VARIANTS.values() for spec in variant.fields}
SUMMARY_KEYS = ["CREATED", "UPDATED", "UNCHANGED", "REFRESHED", "IMPORTED", "DELETED", "ABSENT", "ERROR"]


def _summarize_counts(counts: Dict[str, int]) -> str:
    return " | ".join(f"{k}={counts.get(k, 0)}" for k in SUMMARY_KEYS)


def _exit_code_from_counts(counts: Dict[str, int]) -> int:
    return 2 if counts.get("ERROR", 0) else 0


def _bump(counts: Dict[str, int], key: str) -> None:
    counts[key] = counts.get(key, 0) + 1


def _format_option(opt: Option) -> str:
    path = ".".join(opt.path)
    if isinstance(opt, DefaultOption):
        return f"  - {path} (reset to default)"
    value = "(sensitive)" if opt.path[-1] in SENSITIVE_KEYS else json.dumps(opt.value)
    return f"  + {path} = {value}"


def _with_computed(desired: Dict[str, Any], prior: Dict[str, Any]) -> Dict[str, Any]:
    """Attributes left out of a definition keep the value the service reported."""
    out = dict(desired)
    for key in ATTRIBUTE_KEYS:
        if out.get(key) is None and prior.get(key) is not None:
            out[key] = prior[key]
    return out


def _report(name: str, diags: List[Diagnostic], logger: logging.LoggerAdapter) -> None:
    for d in diags:
        if d.is_error:
            logger.error("%s: %s", name, d)
        else:
            logger.warning("%s: %s", name, d)
        print(f"{name}: {d}")


def _load_definitions(path: str, logger: logging.LoggerAdapter) -> Optional[Dict[str, Dict[str, Any]]]:
    """Parse and validate every definition before anything is sent; None on error."""
    try:
        return load_definitions(path)
    except (AuthSyncError, ValueError) as exc:
        logger.error("Invalid definitions in %s: %s", path, exc)
        print(f"{path}: error: {exc}")
        return None


# ---------- setup ----------

def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="authsync", description="Reconcile auth methods against the auth service")
    sub = p.add_subparsers(dest="cmd", required=True)

    def common(a: argparse.ArgumentParser) -> None:
        a.add_argument("--config", default=None, help="Config file (.yml); default $AUTHSYNC_CONFIG or ./authsync.yml")
        a.add_argument("--state", default=None, help="State file path")
        a.add_argument("--addr", default=None, help="Auth service address")
        a.add_argument("--token", default=None, help="Auth service token")
        a.add_argument("--verify-tls", default=None, choices=["true", "false"], help="Verify TLS (https)")
        a.add_argument("--timeout-sec", type=float, default=None, help="Per-request timeout seconds")
        a.add_argument("--deadline-sec", type=float, default=0, help="Deadline for each lifecycle call (0 = none)")
        a.add_argument("--logs-dir", default=None, help="Logs base directory")
        a.add_argument("--console-level", default=None, help="Console log level (INFO..CRITICAL)")
        a.add_argument("--file-level", default=None, help="File log level (DEBUG..CRITICAL)")

    a = sub.add_parser("plan", help="Show the changes apply would make")
    a.add_argument("--definition", required=True, help="Auth method definitions (.yml)")
    common(a)

    a = sub.add_parser("apply", help="Create or update the defined auth methods")
    a.add_argument("--definition", required=True, help="Auth method definitions (.yml)")
    a.add_argument("--dry-run", action="store_true", help="Plan only, no network calls")
    common(a)

    a = sub.add_parser("refresh", help="Re-read every managed auth method")
    common(a)

    a = sub.add_parser("destroy", help="Delete managed auth methods")
    a.add_argument("--name", action="append", default=None, help="Only this resource (repeatable)")
    common(a)

    a = sub.add_parser("import", help="Adopt an existing auth method")
    a.add_argument("name", help="Resource name to record it under")
    a.add_argument("id", help="Auth method id")
    common(a)

    return p


def _config(args: argparse.Namespace, *, dry_run: bool) -> AppConfig:
    overrides: Dict[str, Any] = {
        "app": {"dry_run": dry_run},
        "boundary": {
            "addr": args.addr,
            "token": args.token,
            "verify_tls": args.verify_tls,
            "timeout_sec": args.timeout_sec,
        },
        "logging": {
            "base_dir": args.logs_dir,
            "console_level": args.console_level,
            "file_level": args.file_level,
        },
        "state": {"path": args.state},
    }
    # only flags that were actually given override file/env values
    overrides = {sec: {k: v for k, v in vals.items() if v is not None} for sec, vals in overrides.items()}
    return load_config(overrides, path=args.config)


def _logger(cfg: AppConfig, action: str) -> logging.LoggerAdapter:
    return build_logger(
        run_id=cfg.run_id,
        action=action,
        base_dir=cfg.logging.base_dir,
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
    )


def _resource(cfg: AppConfig, logger: logging.LoggerAdapter) -> AuthMethodResource:
    gateway = AuthMethodsGateway(
        cfg.boundary.addr,
        cfg.boundary.token,
        verify_tls=bool(cfg.boundary.verify_tls),
        timeout_sec=float(cfg.boundary.timeout_sec),
        logger=logger,
    )
    return AuthMethodResource(ProviderMeta(gateway=gateway, logger=logger))


def _ctx(args: argparse.Namespace) -> CallContext:
    if args.deadline_sec and args.deadline_sec > 0:
        return CallContext.with_timeout(args.deadline_sec)
    return CallContext.background()


# ---------- commands ----------

def _plan(definitions: Dict[str, Dict[str, Any]], states: StateFile, logger: logging.LoggerAdapter) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for name, desired in definitions.items():
        entry = states.get(name)
        try:
            if not entry or not entry.get("id"):
                opts = Reconciler.create_options(record_from_config(desired))
                print(f"{name}: create")
                key = "CREATED"
            else:
                previous = record_from_config(entry)
                wanted = record_from_config(_with_computed(desired, entry))
                opts = Reconciler.update_options(previous, wanted)
                print(f"{name}: {'update ' + entry['id'] if opts else 'no changes'}")
                key = "UPDATED" if opts else "UNCHANGED"
        except AuthSyncError as exc:
            logger.error("%s: %s", name, exc)
            print(f"{name}: error: {exc}")
            _bump(counts, "ERROR")
            continue
        for opt in opts:
            print(_format_option(opt))
        _bump(counts, key)
    return counts


def _plan_cmd(args: argparse.Namespace) -> int:
    cfg = _config(args, dry_run=True)
    logger = _logger(cfg, "plan")
    definitions = _load_definitions(args.definition, logger)
    if definitions is None:
        return 2
    counts = _plan(definitions, StateFile(cfg.state.path).load(), logger)
    logger.info("Plan summary: %s", _summarize_counts(counts))
    print(_summarize_counts(counts))
    return _exit_code_from_counts(counts)


def _apply_one(
    args: argparse.Namespace,
    resource: AuthMethodResource,
    name: str,
    desired: Dict[str, Any],
    states: StateFile,
    logger: logging.LoggerAdapter,
) -> str:
    """Converge one definition and record the observed state; returns the summary key."""
    entry = states.get(name)
    prior: Optional[Dict[str, Any]] = None

    if entry and entry.get("id"):
        current = InMemoryState(entry, resource_id=entry["id"])
        diags = resource.read(_ctx(args), current)
        _report(name, diags, logger)
        if has_errors(diags):
            return "ERROR"
        if current.id:
            prior = current.snapshot()
        else:
            logger.info("%s: recreating %s", name, entry["id"])

    if prior is None:
        state = InMemoryState(desired)
        diags = resource.create(_ctx(args), state)
        outcome = "CREATED"
    else:
        state = InMemoryState(_with_computed(desired, prior), prior=prior)
        diags = resource.update(_ctx(args), state)
        changed = state.get(VERSION_KEY)[0] != prior.get(VERSION_KEY)
        outcome = "UPDATED" if changed else "UNCHANGED"

    if has_errors(diags):
        _report(name, diags, logger)
        return "ERROR"
    states.put(name, state.snapshot())
    logger.info("%s: %s (%s)", name, outcome, state.id)
    return outcome


def _apply_cmd(args: argparse.Namespace) -> int:
    cfg = _config(args, dry_run=bool(args.dry_run))
    logger = _logger(cfg, "apply")
    logger.info("Starting authsync apply (dry_run=%s)", cfg.app.dry_run)

    definitions = _load_definitions(args.definition, logger)
    if definitions is None:
        return 2
    states = StateFile(cfg.state.path).load()
    logger.info("Loaded %s auth method definitions from %s", len(definitions), args.definition)

    if cfg.app.dry_run:
        counts = _plan(definitions, states, logger)
        logger.info("Dry-run summary: %s", _summarize_counts(counts))
        print(_summarize_counts(counts))
        return _exit_code_from_counts(counts)

    resource = _resource(cfg, logger)
    counts: Dict[str, int] = {}
    try:
        for name, desired in definitions.items():
            _bump(counts, _apply_one(args, resource, name, desired, states, logger))
    finally:
        # whatever was created before a failure must stay tracked
        states.save()

    logger.info("Apply summary: %s", _summarize_counts(counts))
    print(_summarize_counts(counts))
    return _exit_code_from_counts(counts)


def _refresh_cmd(args: argparse.Namespace) -> int:
    cfg = _config(args, dry_run=False)
    logger = _logger(cfg, "refresh")
    states = StateFile(cfg.state.path).load()
    resource = _resource(cfg, logger)

    counts: Dict[str, int] = {}
    for name, entry in list(states.items()):
        state = InMemoryState(entry, resource_id=str(entry.get("id") or ""))
        diags = resource.read(_ctx(args), state)
        _report(name, diags, logger)
        if has_errors(diags):
            _bump(counts, "ERROR")
        elif not state.id:
            states.drop(name)
            _bump(counts, "ABSENT")
        else:
            states.put(name, state.snapshot())
            _bump(counts, "REFRESHED")

    states.save()
    print(_summarize_counts(counts))
    return _exit_code_from_counts(counts)


def _destroy_cmd(args: argparse.Namespace) -> int:
    cfg = _config(args, dry_run=False)
    logger = _logger(cfg, "destroy")
    states = StateFile(cfg.state.path).load()
    resource = _resource(cfg, logger)

    names = args.name or [name for name, _ in states.items()]
    counts: Dict[str, int] = {}
    for name in names:
        entry = states.get(name)
        if not entry:
            logger.warning("%s: not in state; skipping", name)
            _bump(counts, "ABSENT")
            continue
        state = InMemoryState(entry, resource_id=str(entry.get("id") or ""))
        diags = resource.delete(_ctx(args), state)
        if has_errors(diags):
            _report(name, diags, logger)
            _bump(counts, "ERROR")
            continue
        states.drop(name)
        _bump(counts, "DELETED")

    states.save()
    print(_summarize_counts(counts))
    return _exit_code_from_counts(counts)


def _import_cmd(args: argparse.Namespace) -> int:
    cfg = _config(args, dry_run=False)
    logger = _logger(cfg, "import")
    states = StateFile(cfg.state.path).load()
    resource = _resource(cfg, logger)

    counts: Dict[str, int] = {}
    state = InMemoryState(resource_id=args.id)
    diags = resource.import_state(_ctx(args), state)
    if has_errors(diags):
        _report(args.name, diags, logger)
        _bump(counts, "ERROR")
    elif not state.id:
        print(f"{args.name}: auth method {args.id} not found")
        _bump(counts, "ERROR")
    else:
        states.put(args.name, state.snapshot())
        states.save()
        _bump(counts, "IMPORTED")

    print(_summarize_counts(counts))
    return _exit_code_from_counts(counts)


_COMMANDS = {
    "plan": _plan_cmd,
    "apply": _apply_cmd,
    "refresh": _refresh_cmd,
    "destroy": _destroy_cmd,
    "import": _import_cmd,
}


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    return _COMMANDS[args.cmd](args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
