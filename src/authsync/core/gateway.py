"""
AuthMethodsGateway: JSON-over-HTTP adapter for the auth service's
/v1/auth-methods API.

- Methods: create, read, update, delete; plus compile_options.
- One request per call, no retries (retry policy belongs to the caller).
- Failures are normalized:
    * connection problems        -> TransportError
    * 404                        -> NOT_FOUND sentinel (returned, not raised)
    * any other 4xx/5xx          -> RemoteRejected (service message verbatim)
    * a request interrupted by the CallContext deadline -> Cancelled
- Successful responses are validated into an Envelope at this boundary.

Usage:
    gw = AuthMethodsGateway("https://boundary.local:9200", token)
    env = gw.read(CallContext.background(), "ampw_1234567890")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Union

import requests

from .attributes import DefaultOption, Option, SetOption
from .context import CallContext
from .errors import Cancelled, MalformedResponse, RemoteRejected, TransportError

COLLECTION = "v1/auth-methods"


class NotFoundSignal:
    """The service reported 404 for the requested auth method."""

    _instance: Optional["NotFoundSignal"] = None

    def __new__(cls) -> "NotFoundSignal":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND = NotFoundSignal()


@dataclass(frozen=True)
class Envelope:
    """Normalized auth method item returned by the service."""
    id: str
    version: int
    type: str
    item: Dict[str, Any] = field(repr=False)

    @property
    def attributes(self) -> Dict[str, Any]:
        return self.item.get("attributes") or {}

    @classmethod
    def from_body(cls, body: Any) -> "Envelope":
        item = body.get("item", body) if isinstance(body, dict) else body
        if not isinstance(item, dict):
            raise MalformedResponse("auth method response is not a JSON object")
        item_id = item.get("id")
        if not isinstance(item_id, str) or not item_id:
            raise MalformedResponse("auth method response has no id")
        version = item.get("version")
        if isinstance(version, bool) or not isinstance(version, int):
            raise MalformedResponse(f"auth method {item_id}: version is not an integer")
        item_type = item.get("type")
        if not isinstance(item_type, str):
            raise MalformedResponse(f"auth method {item_id}: type is missing")
        attrs = item.get("attributes")
        if attrs is not None and not isinstance(attrs, dict):
            raise MalformedResponse(f"auth method {item_id}: attributes is not an object")
        return cls(id=item_id, version=version, type=item_type, item=item)


GatewayResult = Union[Envelope, NotFoundSignal]


def compile_options(options: Iterable[Option], body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Fold options into a request body, in order.

    SetOption writes its value, DefaultOption writes null so the service
    falls back to its default. A later option on the same path wins.
    """
    out: Dict[str, Any] = dict(body or {})
    for opt in options:
        cursor = out
        for part in opt.path[:-1]:
            nxt = cursor.get(part)
            if not isinstance(nxt, dict):
                nxt = {}
                cursor[part] = nxt
            cursor = nxt
        if isinstance(opt, SetOption):
            cursor[opt.path[-1]] = opt.value
        elif isinstance(opt, DefaultOption):
            cursor[opt.path[-1]] = None
        else:
            raise TypeError(f"unsupported option {opt!r}")
    return out


class AuthMethodsGateway:
    """Remote CRUD for auth methods."""

    def __init__(
        self,
        addr: str,
        token: str = "",
        *,
        verify_tls: bool = True,
        timeout_sec: float = 30,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        if not addr:
            raise ValueError("addr is required")
        self.addr = addr.rstrip("/")
        self.verify_tls = verify_tls
        self.timeout = float(timeout_sec)
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json", "User-Agent": "authsync/HTTPClient"})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.log = logger or logging.getLogger("authsync.gateway")

    # ------------- Public API -------------

    def create(self, ctx: CallContext, method_type: str, scope_id: str, options: Iterable[Option]) -> Optional[Envelope]:
        """POST a new auth method. Returns None when the service sends no body."""
        body = compile_options(options, {"scope_id": scope_id, "type": method_type})
        result = self._request(ctx, "POST", COLLECTION, body)
        if result is NOT_FOUND:
            raise RemoteRejected(status=404, message=f"scope {scope_id} not found", kind="NotFound")
        if result is None:
            return None
        return Envelope.from_body(result)

    def read(self, ctx: CallContext, auth_method_id: str) -> GatewayResult:
        result = self._request(ctx, "GET", self._item_path(auth_method_id))
        if result is NOT_FOUND:
            return NOT_FOUND
        return Envelope.from_body(result)

    def update(self, ctx: CallContext, auth_method_id: str, version: int, options: Iterable[Option]) -> GatewayResult:
        body = compile_options(options, {"version": int(version)})
        result = self._request(ctx, "PATCH", self._item_path(auth_method_id), body)
        if result is NOT_FOUND:
            return NOT_FOUND
        return Envelope.from_body(result)

    def delete(self, ctx: CallContext, auth_method_id: str) -> Optional[NotFoundSignal]:
        """DELETE an auth method. Returns NOT_FOUND when it was already gone."""
        result = self._request(ctx, "DELETE", self._item_path(auth_method_id))
        return NOT_FOUND if result is NOT_FOUND else None

    # ------------- Internal -------------

    @staticmethod
    def _item_path(auth_method_id: str) -> str:
        if not auth_method_id:
            raise ValueError("auth method id is required")
        return f"{COLLECTION}/{auth_method_id}"

    def _url(self, path: str) -> str:
        return f"{self.addr}/{path.lstrip('/')}"

    def _timeout(self, ctx: CallContext) -> float:
        left = ctx.remaining()
        return self.timeout if left is None else min(self.timeout, left)

    def _request(
        self,
        ctx: CallContext,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Union[Dict[str, Any], NotFoundSignal, None]:
        ctx.raise_if_done()
        url = self._url(path)
        start = time.monotonic()
        try:
            resp = self.session.request(
                method=method,
                url=url,
                json=payload,
                timeout=self._timeout(ctx),
                verify=self.verify_tls,
            )
        except requests.Timeout as exc:
            if ctx.done():
                raise Cancelled(f"{method} {path} interrupted: deadline exceeded") from exc
            self.log.warning("%s %s timed out: %s", method, path, exc)
            raise TransportError(method=method, url=url, message=f"timed out: {exc}") from exc
        except requests.RequestException as exc:
            self.log.warning("%s %s failed: %s", method, path, exc)
            raise TransportError(method=method, url=url, message=str(exc)) from exc

        elapsed = (time.monotonic() - start) * 1000
        self.log.debug("%s %s -> %s in %.1fms", method, path, resp.status_code, elapsed)

        if resp.status_code == 404:
            return NOT_FOUND
        if resp.status_code >= 400:
            raise self._rejected(resp, url)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise MalformedResponse(f"{method} {path}: response is not JSON ({exc})") from exc

    def _rejected(self, resp: requests.Response, url: str) -> RemoteRejected:
        message = resp.text[:500]
        kind = ""
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = str(body.get("message") or message)
            kind = str(body.get("kind") or "")
        self.log.warning("%s -> %s %s: %s", url, resp.status_code, kind, message)
        return RemoteRejected(status=resp.status_code, message=message, kind=kind, url=url)
