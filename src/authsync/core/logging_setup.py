"""
Central logging for authsync.

- Console handler: INFO..CRITICAL (no DEBUG)
- Timed rotated file handler: DEBUG (logs/app.log, daily rotation)
- Action-based file handler: DEBUG (logs/YYYY-MM-DD/<action>_<run_id>.log)
- Secret redaction: masks tokens, passwords and OIDC client secrets in msg and % args
- UTC timestamps in ISO-8601
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


class MaskSecretsFilter(logging.Filter):
    """
    Redact common secrets (bearer tokens, passwords, client secrets) from log records.
    """

    _patterns = [
        re.compile(r"(Authorization:\s*Bearer\s+)([A-Za-z0-9._~+/=-]+)", re.IGNORECASE),
        re.compile(r"(client[_-]?secret['\"]?\s*[=:]\s*['\"]?)([^,'\"\s}]+)", re.IGNORECASE),
        re.compile(r"(password\s*[=:]\s*)([^,\s]+)", re.IGNORECASE),
        re.compile(r"(\btoken\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
    ]

    @staticmethod
    def _mask(text: str) -> str:
        masked = text
        for pat in MaskSecretsFilter._patterns:
            masked = pat.sub(r"\1***REDACTED***", masked)
        return masked

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            # secrets can sit in a key/value pair of a dict argument, so mask the rendered text
            try:
                message = record.getMessage()
            except (TypeError, ValueError):
                return True  # let the handler report the bad format string
            record.msg = self._mask(message)
            record.args = None
        elif isinstance(record.msg, str):
            record.msg = self._mask(record.msg)
        return True


class ContextDefaultsFilter(logging.Filter):
    """Fill the context fields for records that did not come through the adapter."""

    fields = ("run_id", "action", "scope", "resource")

    def filter(self, record: logging.LogRecord) -> bool:
        for key in self.fields:
            if not hasattr(record, key):
                setattr(record, key, "-")
        return True


_CONTEXT_DEFAULTS = ContextDefaultsFilter()


def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def _utc_formatter(fmt: str) -> logging.Formatter:
    f = logging.Formatter(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%SZ")
    f.converter = time.gmtime  # type: ignore[attr-defined]
    return f


def _ensure_single_console_handler(
    base_logger: logging.Logger,
    *,
    console_level: str,
    formatter: logging.Formatter,
    mask: logging.Filter,
) -> None:
    """
    Make sure there is exactly ONE StreamHandler bound to sys.stderr
    (pytest may close/replace stdio between tests; also avoid duplicates).
    """
    for h in list(base_logger.handlers):
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
            base_logger.removeHandler(h)
            h.close()

    sh = logging.StreamHandler(stream=sys.stderr)
    sh.setLevel(getattr(logging, console_level.upper(), logging.INFO))
    sh.setFormatter(formatter)
    sh.addFilter(_CONTEXT_DEFAULTS)
    sh.addFilter(mask)
    base_logger.addHandler(sh)


def _ensure_app_file_handler(
    base_logger: logging.Logger,
    *,
    base_dir: str,
    file_level: str,
    formatter: logging.Formatter,
    mask: logging.Filter,
) -> None:
    """
    Ensure a single TimedRotatingFileHandler points to <base_dir>/app.log.
    A handler left over from another base_dir is replaced.
    """
    _ensure_dir(base_dir)
    desired = os.path.abspath(os.path.join(base_dir, "app.log"))
    Path(desired).touch(exist_ok=True)

    for h in list(base_logger.handlers):
        if isinstance(h, logging.handlers.TimedRotatingFileHandler):
            if os.path.abspath(h.baseFilename) != desired:
                base_logger.removeHandler(h)
                h.close()

    if not any(
        isinstance(h, logging.handlers.TimedRotatingFileHandler) and os.path.abspath(h.baseFilename) == desired
        for h in base_logger.handlers
    ):
        rh = logging.handlers.TimedRotatingFileHandler(
            desired,
            when="midnight",
            backupCount=14,
            encoding="utf-8",
            utc=True,
            delay=False,
        )
        rh.setLevel(getattr(logging, file_level.upper(), logging.DEBUG))
        rh.setFormatter(formatter)
        rh.addFilter(_CONTEXT_DEFAULTS)
        rh.addFilter(mask)
        base_logger.addHandler(rh)


def build_logger(
    *,
    name: str = "authsync",
    run_id: str,
    action: str,
    base_dir: str = "logs",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    extra: Optional[Dict[str, Any]] = None,
) -> logging.LoggerAdapter:
    """
    Configure and return a LoggerAdapter.

    Design:
      - A base logger `<name>` holds console + rotating file handlers.
      - A child logger `<name>.<action>.<run_id>` holds a per-run file handler.
      - Records propagate to base logger so they appear in all sinks.
    """
    mask = MaskSecretsFilter()

    fmt = (
        "%(asctime)s | %(levelname)-8s | %(name)s | "
        "run=%(run_id)s action=%(action)s scope=%(scope)s resource=%(resource)s | "
        "%(message)s"
    )
    formatter = _utc_formatter(fmt)

    base = logging.getLogger(name)
    base.setLevel(logging.DEBUG)

    _ensure_single_console_handler(base, console_level=console_level, formatter=formatter, mask=mask)
    _ensure_app_file_handler(base, base_dir=base_dir, file_level=file_level, formatter=formatter, mask=mask)

    child = logging.getLogger(f"{name}.{action}.{run_id}")
    child.setLevel(logging.DEBUG)
    child.propagate = True

    if not getattr(child, "_authsync_action_configured", False):
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        dated_dir = os.path.join(base_dir, today)
        _ensure_dir(dated_dir)

        action_file = os.path.join(dated_dir, f"{action}_{run_id}.log")
        fh = logging.FileHandler(action_file, encoding="utf-8", delay=False)
        fh.setLevel(getattr(logging, file_level.upper(), logging.DEBUG))
        fh.setFormatter(formatter)
        fh.addFilter(_CONTEXT_DEFAULTS)
        fh.addFilter(mask)

        child.addHandler(fh)
        child._authsync_action_configured = True  # type: ignore[attr-defined]

    adapter = logging.LoggerAdapter(
        child,
        {
            "run_id": run_id,
            "action": action,
            "scope": (extra or {}).get("scope"),
            "resource": (extra or {}).get("resource"),
        },
    )
    adapter.debug("Logger initialised")
    return adapter
