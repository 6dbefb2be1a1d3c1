"""Load-testing client: many concurrent connections sending framed requests."""

import argparse
import asyncio
import contextlib
import random
import struct
import time
from typing import Optional, Sequence, Tuple

from .protocol import Command, encode_packet, read_packet
from .stats import Stats, format_report

IO_TIMEOUT = 15.0
MAX_CONCURRENCY = 10000
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8888
DEFAULT_CONNS = 10000
DEFAULT_REPEAT = 1000
MODES = ("v1", "v2")

_U32 = struct.Struct(">I")
_CALC = struct.Struct(">iii")
_IO_ERRORS = (OSError, EOFError, asyncio.TimeoutError)
_COMMANDS = (Command.CALCULATE, Command.SMALL, Command.MEDIUM, Command.LARGE)


def _rng(rng: Optional[random.Random]) -> random.Random:
    return rng if rng is not None else random.Random()


def gen_calculate_packet(rng: Optional[random.Random] = None) -> bytes:
    """Body for CALCULATE: two operands in [1, 99999] and a zero."""
    rng = _rng(rng)
    return _CALC.pack(rng.randint(1, 99999), rng.randint(1, 99999), 0)


def _gen_packet(rng: random.Random, size: int, limits: Sequence[int]) -> bytes:
    head = b"".join(_U32.pack(rng.randrange(limit)) for limit in limits)
    return head + rng.randbytes(size - len(head))


def gen_small_packet(rng: Optional[random.Random] = None) -> bytes:
    """16-byte body: one number below 10000, then random bytes."""
    return _gen_packet(_rng(rng), 16, (10000,))


def gen_medium_packet(rng: Optional[random.Random] = None) -> bytes:
    """64-byte body: numbers below 10000 and 100000, then random bytes."""
    return _gen_packet(_rng(rng), 64, (10000, 100000))


def gen_large_packet(rng: Optional[random.Random] = None) -> bytes:
    """256-byte body: numbers below 10000, 100000 and 1000000, then random bytes."""
    return _gen_packet(_rng(rng), 256, (10000, 100000, 1000000))


def random_command(rng: Optional[random.Random] = None) -> Command:
    """Pick one of the four request commands with equal probability."""
    return _rng(rng).choice(_COMMANDS)


def packet_for_command(cmd: int, rng: Optional[random.Random] = None) -> bytes:
    """Generate a body for ``cmd``; unknown commands get a CALCULATE body."""
    generators = {
        Command.CALCULATE: gen_calculate_packet,
        Command.SMALL: gen_small_packet,
        Command.MEDIUM: gen_medium_packet,
        Command.LARGE: gen_large_packet,
    }
    return generators.get(cmd, gen_calculate_packet)(rng)


async def _connect(host: str, port: int) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    return await asyncio.wait_for(asyncio.open_connection(host, port), IO_TIMEOUT)


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(*_IO_ERRORS):
        await writer.wait_closed()


async def _send(writer: asyncio.StreamWriter, cmd: int, body: bytes) -> None:
    writer.write(encode_packet(cmd, body))
    await asyncio.wait_for(writer.drain(), IO_TIMEOUT)


async def _recv(reader: asyncio.StreamReader) -> Tuple[int, bytes]:
    return await asyncio.wait_for(read_packet(reader), IO_TIMEOUT)


async def run_client(
    client_id: int,
    host: str,
    port: int,
    repeat: int,
    stats: Stats,
    semaphore: asyncio.Semaphore,
) -> None:
    """Send ``repeat`` CALCULATE requests one at a time on a single connection."""
    rng = random.Random()
    async with semaphore:
        try:
            reader, writer = await _connect(host, port)
        except _IO_ERRORS:
            stats.add_failed(repeat)
            return
        try:
            for i in range(repeat):
                body = gen_calculate_packet(rng)
                started = time.perf_counter()
                try:
                    await _send(writer, Command.CALCULATE, body)
                except _IO_ERRORS as exc:
                    print(f"[client {client_id}] send failed at i={i}: {exc}")
                    stats.add_failed(repeat - i)
                    break
                try:
                    await _recv(reader)
                except _IO_ERRORS as exc:
                    print(f"[client {client_id}] recv failed at i={i}: {exc}")
                    stats.add_failed(repeat - i)
                    break
                stats.add_success(1)
                stats.add_response_time((time.perf_counter() - started) * 1000)
                await asyncio.sleep(0.001)
        finally:
            await _close(writer)


async def run_client_v2(
    client_id: int,
    host: str,
    port: int,
    repeat: int,
    stats: Stats,
    semaphore: asyncio.Semaphore,
) -> None:
    """Send ``repeat`` random requests, sometimes two at once, with random reconnects."""
    rng = random.Random()
    async with semaphore:
        try:
            reader, writer = await _connect(host, port)
        except _IO_ERRORS:
            stats.add_failed(repeat)
            return

        async def reconnect(delay_ms: int) -> bool:
            nonlocal reader, writer
            await _close(writer)
            await asyncio.sleep(delay_ms / 1000)
            try:
                reader, writer = await _connect(host, port)
            except _IO_ERRORS:
                return False
            return True

        try:
            i = 0
            while i < repeat:
                if i > 0 and rng.randrange(20) == 0:
                    if not await reconnect(rng.randrange(90) + 10):
                        stats.add_failed(repeat - i)
                        return

                send_count = 2 if rng.randrange(10) < 3 else 1
                send_count = min(send_count, repeat - i)
                started = time.perf_counter()

                sent = 0
                for j in range(send_count):
                    cmd = random_command(rng)
                    try:
                        await _send(writer, cmd, packet_for_command(cmd, rng))
                    except _IO_ERRORS:
                        if not await reconnect(rng.randrange(100) + 50):
                            stats.add_failed(repeat - i - j)
                            return
                        continue
                    sent += 1

                received = 0
                j = 0
                while j < send_count:
                    try:
                        await _recv(reader)
                    except _IO_ERRORS:
                        if not await reconnect(rng.randrange(100) + 50):
                            stats.add_failed(repeat - i - j)
                            return
                        continue
                    received += 1
                    j += 1

                elapsed_ms = (time.perf_counter() - started) * 1000
                stats.add_success(received)
                if received:
                    stats.add_response_time(elapsed_ms / received)

                i += sent
                await asyncio.sleep(0.001)
        finally:
            await _close(writer)


async def run_load_test(
    host: str,
    port: int,
    total_conns: int,
    repeat: int,
    mode: str = "v1",
) -> Tuple[Stats, float]:
    """Run all clients concurrently; returns the stats and the duration in seconds."""
    if mode not in MODES:
        raise ValueError(f"unknown mode {mode!r}, expected one of {MODES}")
    client = run_client if mode == "v1" else run_client_v2
    stats = Stats()
    semaphore = asyncio.Semaphore(MAX_CONCURRENCY)
    started = time.perf_counter()
    await asyncio.gather(
        *(client(n, host, port, repeat, stats, semaphore) for n in range(total_conns))
    )
    return stats, time.perf_counter() - started


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tcpgate-loadtest", description="Load-test a TCP packet gateway."
    )
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--conns", type=int, default=DEFAULT_CONNS, help="concurrent connections")
    parser.add_argument("--repeat", type=int, default=DEFAULT_REPEAT, help="requests per connection")
    parser.add_argument("--mode", choices=MODES, default="v1")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.mode == "v1":
        print(
            f"Starting load test: {args.conns} concurrent connections, "
            f"{args.repeat} requests per connection"
        )
        title = "Load test report"
    else:
        print(
            f"Starting load test v2: {args.conns} concurrent connections, "
            f"{args.repeat} requests per connection"
        )
        print("  - commands: 1001 (12 bytes), 2001 (16 bytes), 3001 (64 bytes), 4001 (256 bytes)")
        print("  - pattern: single or double send (30% chance of two packets)")
        print("  - network: random reconnects (5% chance), reconnect delay 10-150ms")
        title = "Load test report v2"
    stats, duration = asyncio.run(
        run_load_test(args.host, args.port, args.conns, args.repeat, args.mode)
    )
    print(format_report(stats, duration, title))
    return 0