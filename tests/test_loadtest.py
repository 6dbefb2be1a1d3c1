import asyncio
import contextlib
import random
import socket
import struct

import pytest

from tcpgate.handlers import calculate_response
from tcpgate.loadtest import (
    gen_calculate_packet,
    gen_large_packet,
    gen_medium_packet,
    gen_small_packet,
    main,
    packet_for_command,
    random_command,
    run_client,
    run_client_v2,
    run_load_test,
)
from tcpgate.protocol import Command, encode_packet, read_packet
from tcpgate.stats import Stats


async def _serve_client(reader, writer):
    try:
        while True:
            try:
                cmd, body = await read_packet(reader)
            except (asyncio.IncompleteReadError, ConnectionError):
                break
            if cmd == Command.CALCULATE:
                reply = calculate_response(body)
                if reply is None:
                    continue
            else:
                reply = body
            writer.write(encode_packet(cmd, reply))
            await writer.drain()
    finally:
        writer.close()


@contextlib.asynccontextmanager
async def echo_server():
    server = await asyncio.start_server(_serve_client, "127.0.0.1", 0)
    try:
        yield server.sockets[0].getsockname()[1]
    finally:
        server.close()
        await server.wait_closed()


def _closed_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_calculate_packet_layout():
    rng = random.Random(1)
    for _ in range(50):
        data = gen_calculate_packet(rng)
        assert len(data) == 12
        a, b, c = struct.unpack(">iii", data)
        assert 1 <= a <= 99999
        assert 1 <= b <= 99999
        assert c == 0


def test_small_packet_layout():
    rng = random.Random(2)
    for _ in range(50):
        data = gen_small_packet(rng)
        assert len(data) == 16
        assert struct.unpack(">I", data[:4])[0] < 10000


def test_medium_packet_layout():
    rng = random.Random(3)
    for _ in range(50):
        data = gen_medium_packet(rng)
        assert len(data) == 64
        first, second = struct.unpack(">II", data[:8])
        assert first < 10000
        assert second < 100000


def test_large_packet_layout():
    rng = random.Random(4)
    for _ in range(50):
        data = gen_large_packet(rng)
        assert len(data) == 256
        first, second, third = struct.unpack(">III", data[:12])
        assert first < 10000
        assert second < 100000
        assert third < 1000000


def test_generators_draw_from_the_given_rng():
    rng = random.Random(7)
    packets = [gen_large_packet(rng) for _ in range(3)]
    assert len(set(packets)) == 3
    assert gen_large_packet(random.Random(7)) == packets[0]

    calc_rng = random.Random(7)
    calcs = [gen_calculate_packet(calc_rng) for _ in range(5)]
    assert len(set(calcs)) > 1
    assert gen_calculate_packet(random.Random(7)) == calcs[0]


def test_random_command_covers_all_request_commands():
    rng = random.Random(5)
    seen = {random_command(rng) for _ in range(400)}
    assert seen == {Command.CALCULATE, Command.SMALL, Command.MEDIUM, Command.LARGE}


@pytest.mark.parametrize(
    "cmd, size",
    [
        (Command.CALCULATE, 12),
        (Command.SMALL, 16),
        (Command.MEDIUM, 64),
        (Command.LARGE, 256),
        (Command.SHUTDOWN, 12),
    ],
)
def test_packet_for_command_sizes(cmd, size):
    assert len(packet_for_command(cmd, random.Random(0))) == size


@pytest.mark.asyncio
async def test_run_client_succeeds_against_server():
    stats = Stats()
    async with echo_server() as port:
        await run_client(0, "127.0.0.1", port, 5, stats, asyncio.Semaphore(1))
    assert stats.success == 5
    assert stats.failed == 0
    assert len(stats.response_times) == 5


@pytest.mark.asyncio
async def test_run_client_counts_all_as_failed_when_unreachable():
    stats = Stats()
    await run_client(0, "127.0.0.1", _closed_port(), 7, stats, asyncio.Semaphore(1))
    assert stats.failed == 7
    assert stats.success == 0


@pytest.mark.asyncio
async def test_run_client_v2_succeeds_against_server():
    stats = Stats()
    async with echo_server() as port:
        await run_client_v2(0, "127.0.0.1", port, 12, stats, asyncio.Semaphore(1))
    assert stats.success == 12
    assert stats.failed == 0
    assert sum(stats.histogram) == len(stats.response_times)


@pytest.mark.asyncio
async def test_run_client_v2_counts_all_as_failed_when_unreachable():
    stats = Stats()
    await run_client_v2(0, "127.0.0.1", _closed_port(), 9, stats, asyncio.Semaphore(1))
    assert stats.failed == 9
    assert stats.success == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", ["v1", "v2"])
async def test_run_load_test_totals(mode):
    async with echo_server() as port:
        stats, duration = await run_load_test("127.0.0.1", port, 3, 4, mode)
    assert stats.success == 12
    assert stats.failed == 0
    assert duration > 0


@pytest.mark.asyncio
async def test_run_load_test_rejects_unknown_mode():
    with pytest.raises(ValueError):
        await run_load_test("127.0.0.1", 1, 1, 1, "v3")


def test_main_reports_failures(capsys):
    port = _closed_port()
    code = main(["--host", "127.0.0.1", "--port", str(port), "--conns", "2", "--repeat", "3"])
    out = capsys.readouterr().out
    assert code == 0
    assert "Failed: 6" in out
    assert "Successful: 0" in out


def test_main_rejects_unknown_mode():
    with pytest.raises(SystemExit):
        main(["--mode", "v9"])