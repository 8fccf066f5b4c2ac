import hashlib
import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlparse

import pytest

from authsync.core.context import CallContext
from authsync.core.gateway import AuthMethodsGateway

TOKEN = "TEST"
PASSWORD_DEFAULTS = {"min_login_name_length": 3, "min_password_length": 8}


class FakeBoundary:
    """In-memory auth-methods API with just enough behaviour for the tests."""

    def __init__(self):
        self.items = {}
        self.calls = []  # (method, path, body)
        self.lock = threading.Lock()
        self.seq = 0
        self.base_url = ""
        self.pad_list_elements = False   # echo set elements with a trailing newline
        self.empty_create = False        # answer POST with 200 and no body
        self.fail_next = None            # (status, body) for the next request; bytes are sent raw
        self.delay = 0.0
        self.override_attributes = {}    # forced into every returned item
        self.stale_version = False       # PATCH responses keep the old version

    # ---------- helpers for tests ----------

    def count(self, method=None):
        return len([c for c in self.calls if method is None or c[0] == method])

    def bodies(self, method):
        return [c[2] for c in self.calls if c[0] == method]

    def seed(self, item):
        with self.lock:
            self.items[item["id"]] = json.loads(json.dumps(item))
        return item["id"]

    def bump_version(self, item_id):
        with self.lock:
            self.items[item_id]["version"] += 1

    # ---------- behaviour ----------

    def _render(self, item):
        out = json.loads(json.dumps(item))
        attrs = out.get("attributes", {})
        attrs.pop("client_secret", None)
        if self.pad_list_elements:
            for key in ("idp_ca_certs", "allowed_audiences"):
                if key in attrs:
                    attrs[key] = [v + "\n" for v in attrs[key]]
        attrs.update(self.override_attributes)
        return out

    def _finish_attributes(self, method_type, attrs):
        attrs = {k: v for k, v in attrs.items() if v is not None}
        if method_type == "password":
            for key, default in PASSWORD_DEFAULTS.items():
                attrs.setdefault(key, default)
        else:
            attrs.setdefault("state", "inactive")
            secret = attrs.get("client_secret", "")
            attrs["client_secret_hmac"] = hashlib.sha256(secret.encode("utf-8")).hexdigest()[:16]
            attrs["callback_url"] = f"{self.base_url}/v1/auth-methods/oidc:authenticate:callback"
        return attrs

    def create(self, body):
        method_type = body.get("type")
        if method_type not in ("password", "oidc"):
            return 400, {"kind": "InvalidArgument", "message": f"Unknown auth method type {method_type!r}."}
        with self.lock:
            self.seq += 1
            prefix = "ampw" if method_type == "password" else "amoidc"
            item = {
                "id": f"{prefix}_{self.seq:010d}",
                "scope_id": body.get("scope_id"),
                "type": method_type,
                "version": 1,
                "attributes": self._finish_attributes(method_type, dict(body.get("attributes") or {})),
            }
            for key in ("name", "description"):
                if body.get(key) is not None:
                    item[key] = body[key]
            self.items[item["id"]] = item
        if self.empty_create:
            return 200, None
        return 200, self._render(item)

    def read(self, item_id):
        item = self.items.get(item_id)
        if item is None:
            return 404, {"kind": "NotFound", "message": f"Resource not found: {item_id}", "status": 404}
        return 200, self._render(item)

    def update(self, item_id, body):
        with self.lock:
            item = self.items.get(item_id)
            if item is None:
                return 404, {"kind": "NotFound", "message": f"Resource not found: {item_id}", "status": 404}
            if body.get("version") != item["version"]:
                return 400, {"kind": "InvalidArgument", "message": "Version mismatch.", "status": 400}
            for key in ("name", "description"):
                if key in body:
                    if body[key] is None:
                        item.pop(key, None)
                    else:
                        item[key] = body[key]
            attrs = dict(item["attributes"])
            for key, value in (body.get("attributes") or {}).items():
                attrs[key] = value
            if item["type"] == "password":
                for key in PASSWORD_DEFAULTS:
                    if key in attrs and attrs[key] is None:
                        del attrs[key]
            item["attributes"] = self._finish_attributes(item["type"], attrs)
            if not self.stale_version:
                item["version"] += 1
            return 200, self._render(item)

    def delete(self, item_id):
        with self.lock:
            if self.items.pop(item_id, None) is None:
                return 404, {"kind": "NotFound", "message": f"Resource not found: {item_id}", "status": 404}
        return 204, None


class _Handler(BaseHTTPRequestHandler):
    fake: FakeBoundary = None  # set per server

    protocol_version = "HTTP/1.1"

    def _send_json(self, status, obj):
        if isinstance(obj, bytes):
            raw = obj
        else:
            raw = b"" if obj is None else json.dumps(obj).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)

    def _body(self):
        length = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(length) if length else b""
        return json.loads(raw.decode("utf-8")) if raw else None

    def _dispatch(self, method):
        fake = self.fake
        path = urlparse(self.path).path
        body = self._body()
        fake.calls.append((method, path, body))
        if fake.delay:
            time.sleep(fake.delay)
        if self.headers.get("Authorization", "").strip() != f"Bearer {TOKEN}":
            self._send_json(401, {"kind": "Unauthenticated", "message": "Unauthenticated, or invalid token."})
            return
        if fake.fail_next is not None:
            status, payload = fake.fail_next
            fake.fail_next = None
            self._send_json(status, payload)
            return

        parts = [p for p in path.split("/") if p]
        if parts[:2] != ["v1", "auth-methods"]:
            self._send_json(404, {"kind": "NotFound", "message": "no such route"})
            return
        item_id = parts[2] if len(parts) > 2 else ""
        if method == "POST" and not item_id:
            status, payload = fake.create(body or {})
        elif method == "GET" and item_id:
            status, payload = fake.read(item_id)
        elif method == "PATCH" and item_id:
            status, payload = fake.update(item_id, body or {})
        elif method == "DELETE" and item_id:
            status, payload = fake.delete(item_id)
        else:
            status, payload = 405, {"kind": "MethodNotAllowed", "message": "unsupported"}
        self._send_json(status, payload)

    def do_GET(self):  # noqa: N802
        self._dispatch("GET")

    def do_POST(self):  # noqa: N802
        self._dispatch("POST")

    def do_PATCH(self):  # noqa: N802
        self._dispatch("PATCH")

    def do_DELETE(self):  # noqa: N802
        self._dispatch("DELETE")

    def log_message(self, fmt, *args):  # silence server logs during tests
        return


@pytest.fixture()
def fake_boundary():
    fake = FakeBoundary()
    handler = type("BoundHandler", (_Handler,), {"fake": fake})
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    host, port = server.server_address
    fake.base_url = f"http://{host}:{port}"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield fake
    server.shutdown()
    server.server_close()
    thread.join(timeout=1.0)


@pytest.fixture()
def gateway(fake_boundary):
    return AuthMethodsGateway(fake_boundary.base_url, token=TOKEN, timeout_sec=2)


@pytest.fixture()
def ctx():
    return CallContext.background()
