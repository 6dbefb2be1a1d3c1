import struct

import pytest

from tcpgate.handlers import (
    CalculateHandler,
    EchoHandler,
    LargeHandler,
    MediumHandler,
    Router,
    SmallHandler,
    calculate_response,
    default_router,
)
from tcpgate.manager import Connection
from tcpgate.protocol import Command, encode_packet


class FakeTransport:
    def __init__(self):
        self.written = []
        self.closed = False

    def write(self, data):
        self.written.append(bytes(data))

    def close(self):
        self.closed = True


def make_conn():
    transport = FakeTransport()
    return Connection(transport, 1), transport


def test_calculate_response_worked_example():
    assert calculate_response(struct.pack(">II", 1, 2)) == struct.pack(">III", 1, 2, 3)


def test_calculate_response_wraps_at_32_bits():
    a, b, total = struct.unpack(">III", calculate_response(struct.pack(">II", 0xFFFFFFFF, 2)))
    assert (a, b) == (0xFFFFFFFF, 2)
    assert total == 1


def test_calculate_response_ignores_trailing_bytes():
    head = struct.pack(">II", 40, 2)
    assert calculate_response(head + b"\xff" * 4) == calculate_response(head)


@pytest.mark.parametrize("body", [b"", b"\x00" * 7])
def test_calculate_response_short_body(body):
    assert calculate_response(body) is None


def test_calculate_handler_replies():
    conn, transport = make_conn()
    body = struct.pack(">III", 10, 20, 0)
    CalculateHandler().handle(conn, Command.CALCULATE, body)
    assert transport.written == [encode_packet(Command.CALCULATE, calculate_response(body))]


def test_calculate_handler_short_body_sends_nothing():
    conn, transport = make_conn()
    CalculateHandler().handle(conn, Command.CALCULATE, b"\x01\x02")
    assert transport.written == []


@pytest.mark.parametrize(
    "handler_cls, cmd",
    [
        (EchoHandler, 1),
        (SmallHandler, Command.SMALL),
        (MediumHandler, Command.MEDIUM),
        (LargeHandler, Command.LARGE),
    ],
)
def test_echo_handlers(handler_cls, cmd):
    conn, transport = make_conn()
    body = bytes(range(64))
    handler_cls().handle(conn, cmd, body)
    assert transport.written == [encode_packet(cmd, body)]


def test_router_execute_runs_handler_and_decrements_pending():
    conn, transport = make_conn()
    router = Router()
    router.register(Command.SMALL, SmallHandler())
    conn.add_pending_task()
    assert router.execute(conn, Command.SMALL, b"hi") is True
    assert transport.written == [encode_packet(Command.SMALL, b"hi")]
    assert conn.pending_tasks == 0


def test_router_unknown_command():
    conn, transport = make_conn()
    conn.add_pending_task()
    assert Router().execute(conn, 42, b"x") is False
    assert transport.written == []
    assert conn.pending_tasks == 1


def test_router_register_func():
    conn, _ = make_conn()
    calls = []
    router = Router()
    router.register_func(77, lambda c, cmd, body: calls.append((c.id, cmd, bytes(body))))
    conn.add_pending_task()
    router.execute(conn, 77, b"payload")
    assert calls == [(1, 77, b"payload")]
    assert conn.pending_tasks == 0


def test_register_replaces_handler():
    conn, transport = make_conn()
    calls = []
    router = Router()
    router.register(5, EchoHandler())
    router.register_func(5, lambda c, cmd, body: calls.append(cmd))
    conn.add_pending_task()
    router.execute(conn, 5, b"z")
    assert calls == [5]
    assert transport.written == []


def test_pending_decremented_when_handler_raises():
    conn, _ = make_conn()
    router = Router()

    def boom(c, cmd, body):
        raise RuntimeError("boom")

    router.register_func(9, boom)
    conn.add_pending_task()
    with pytest.raises(RuntimeError):
        router.execute(conn, 9, b"")
    assert conn.pending_tasks == 0


def test_default_router_commands():
    router = default_router()
    for cmd in (Command.CALCULATE, Command.SMALL, Command.MEDIUM, Command.LARGE):
        assert cmd in router
    assert Command.SHUTDOWN not in router
    assert len(router) == 4


def test_default_router_calculates():
    conn, transport = make_conn()
    body = struct.pack(">III", 7, 8, 0)
    conn.add_pending_task()
    default_router().execute(conn, Command.CALCULATE, body)
    assert transport.written == [encode_packet(Command.CALCULATE, calculate_response(body))]