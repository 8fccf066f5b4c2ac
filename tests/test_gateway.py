import socket
import threading

import pytest

from authsync.core.attributes import DefaultOption, SetOption
from authsync.core.context import CallContext
from authsync.core.errors import Cancelled, MalformedResponse, RemoteRejected, TransportError
from authsync.core.gateway import NOT_FOUND, AuthMethodsGateway, Envelope, compile_options

from conftest import TOKEN


def test_compile_options_builds_nested_body_in_order():
    body = compile_options(
        [
            SetOption(("name",), "local"),
            DefaultOption(("attributes", "min_password_length")),
            SetOption(("attributes", "min_password_length"), 12),
            DefaultOption(("description",)),
        ],
        {"version": 3},
    )
    assert body == {
        "version": 3,
        "name": "local",
        "description": None,
        "attributes": {"min_password_length": 12},
    }


def test_compile_options_default_after_set_wins():
    body = compile_options([SetOption(("attributes", "max_age"), 5), DefaultOption(("attributes", "max_age"))])
    assert body == {"attributes": {"max_age": None}}


def test_create_sends_type_scope_and_attributes(fake_boundary, gateway, ctx):
    env = gateway.create(ctx, "password", "global", [SetOption(("attributes", "min_password_length"), 10)])
    assert isinstance(env, Envelope)
    assert env.id.startswith("ampw_")
    assert env.version == 1
    assert env.attributes == {"min_login_name_length": 3, "min_password_length": 10}
    assert fake_boundary.bodies("POST") == [
        {"scope_id": "global", "type": "password", "attributes": {"min_password_length": 10}}
    ]


def test_create_with_empty_body_returns_none(fake_boundary, gateway, ctx):
    fake_boundary.empty_create = True
    assert gateway.create(ctx, "password", "global", []) is None


def test_read_missing_returns_sentinel(fake_boundary, gateway, ctx):
    result = gateway.read(ctx, "ampw_0000000404")
    assert result is NOT_FOUND
    assert not result


def test_update_sends_version_and_nulls(fake_boundary, gateway, ctx):
    env = gateway.create(ctx, "password", "global", [])
    updated = gateway.update(
        ctx,
        env.id,
        env.version,
        [DefaultOption(("attributes", "min_password_length")), SetOption(("attributes", "min_password_length"), 20)],
    )
    assert updated.version == 2
    assert updated.attributes["min_password_length"] == 20
    assert fake_boundary.bodies("PATCH") == [{"version": 1, "attributes": {"min_password_length": 20}}]


def test_update_missing_returns_sentinel(gateway, ctx):
    assert gateway.update(ctx, "ampw_0000000404", 1, []) is NOT_FOUND


def test_delete_then_delete_again(fake_boundary, gateway, ctx):
    env = gateway.create(ctx, "password", "global", [])
    assert gateway.delete(ctx, env.id) is None
    assert gateway.delete(ctx, env.id) is NOT_FOUND


def test_rejection_keeps_service_message(fake_boundary, gateway, ctx):
    fake_boundary.fail_next = (400, {"kind": "InvalidArgument", "message": "Error in provided request.", "status": 400})
    with pytest.raises(RemoteRejected) as ei:
        gateway.read(ctx, "ampw_1234567890")
    assert ei.value.status == 400
    assert ei.value.kind == "InvalidArgument"
    assert ei.value.message == "Error in provided request."
    assert str(ei.value) == "status=400 kind=InvalidArgument: Error in provided request."


def test_rejection_without_json_body(fake_boundary, gateway, ctx):
    fake_boundary.fail_next = (503, b"upstream unavailable")
    with pytest.raises(RemoteRejected) as ei:
        gateway.read(ctx, "ampw_1234567890")
    assert ei.value.status == 503
    assert ei.value.message == "upstream unavailable"


def test_wrong_token_is_rejected(fake_boundary, ctx):
    gw = AuthMethodsGateway(fake_boundary.base_url, token="nope", timeout_sec=2)
    with pytest.raises(RemoteRejected) as ei:
        gw.read(ctx, "ampw_1234567890")
    assert ei.value.status == 401


def test_non_json_success_is_malformed(fake_boundary, gateway, ctx):
    fake_boundary.fail_next = (200, b"<html>oops</html>")
    with pytest.raises(MalformedResponse):
        gateway.read(ctx, "ampw_1234567890")


def test_item_without_version_is_malformed(fake_boundary, gateway, ctx):
    fake_boundary.fail_next = (200, {"id": "ampw_1234567890", "type": "password", "attributes": {}})
    with pytest.raises(MalformedResponse):
        gateway.read(ctx, "ampw_1234567890")


def test_envelope_accepts_wrapped_item():
    env = Envelope.from_body({"item": {"id": "ampw_1", "version": 4, "type": "password"}})
    assert (env.id, env.version, env.type, env.attributes) == ("ampw_1", 4, "password", {})


@pytest.mark.parametrize(
    "body",
    [
        [],
        {"id": "", "version": 1, "type": "password"},
        {"id": "ampw_1", "version": True, "type": "password"},
        {"id": "ampw_1", "version": 1},
        {"id": "ampw_1", "version": 1, "type": "password", "attributes": ["x"]},
    ],
)
def test_envelope_rejects_bad_items(body):
    with pytest.raises(MalformedResponse):
        Envelope.from_body(body)


def test_connection_refused_is_transport_error(ctx):
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()

    gw = AuthMethodsGateway(f"http://127.0.0.1:{port}", token=TOKEN, timeout_sec=1)
    with pytest.raises(TransportError) as ei:
        gw.read(ctx, "ampw_1234567890")
    assert ei.value.method == "GET"
    assert ei.value.url.endswith("/v1/auth-methods/ampw_1234567890")


def test_deadline_interrupts_slow_request(fake_boundary, gateway):
    fake_boundary.delay = 1.0
    with pytest.raises(Cancelled):
        gateway.read(CallContext.with_timeout(0.2), "ampw_1234567890")


def test_cancel_takes_effect_at_the_next_request(fake_boundary, gateway):
    ctx = CallContext.background()
    created = gateway.create(ctx, "password", "global", [])
    fake_boundary.delay = 0.3

    timer = threading.Timer(0.05, ctx.cancel)
    timer.start()
    try:
        env = gateway.read(ctx, created.id)
    finally:
        timer.cancel()

    # the request in flight when cancel() ran still completed
    assert ctx.cancelled
    assert env.id == created.id
    with pytest.raises(Cancelled):
        gateway.read(ctx, created.id)
    assert fake_boundary.count("GET") == 1


def test_done_context_sends_nothing(fake_boundary, gateway):
    ctx = CallContext.background()
    ctx.cancel()
    with pytest.raises(Cancelled):
        gateway.create(ctx, "password", "global", [])
    with pytest.raises(Cancelled):
        gateway.read(CallContext.with_timeout(0), "ampw_1234567890")
    assert fake_boundary.count() == 0


def test_addr_is_required():
    with pytest.raises(ValueError):
        AuthMethodsGateway("")
