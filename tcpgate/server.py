"""The TCP gateway server: framing, dispatch to the worker pool, lifecycle."""

import asyncio
import contextlib
import threading
from typing import Any, Iterator, Optional, Tuple

from .bytes_pool import get_bytes, metrics
from .config import ServerConfig, get_config
from .logger import get_logger
from .manager import ConnManager, Connection
from .protocol import HEADER_LEN, Command, decode_header
from .worker_pool import WorkerPool, get_work_task

_SCHEMES = ("tcp", "tcp4", "tcp6")
STATS_INTERVAL = 5.0


class PacketTooLargeError(ValueError):
    """A header announced a packet larger than the allowed maximum."""

    def __init__(self, cmd_id: int, data_len: int, limit: int) -> None:
        super().__init__(
            f"packet of {HEADER_LEN + data_len} bytes (command {cmd_id}) exceeds limit {limit}"
        )
        self.cmd_id = cmd_id
        self.data_len = data_len
        self.limit = limit


def parse_addr(addr: str) -> Tuple[str, int]:
    """Split ``tcp://host:port`` (scheme optional) into ``(host, port)``.

    An empty host means every interface.
    """
    scheme, sep, rest = addr.partition("://")
    if not sep:
        scheme, rest = "tcp", addr
    if scheme.lower() not in _SCHEMES:
        raise ValueError(f"unsupported scheme in address {addr!r}")
    host, sep, port_text = rest.rpartition(":")
    if not sep or not port_text.isdigit():
        raise ValueError(f"address {addr!r} has no valid port")
    port = int(port_text)
    if port > 65535:
        raise ValueError(f"port out of range in address {addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port


def split_packets(buffer: bytes, max_packet_size: int) -> Iterator[Tuple[int, bytes]]:
    """Yield ``(cmd_id, body)`` for every complete packet at the front of ``buffer``.

    Stops at the first incomplete packet. Raises PacketTooLargeError on reaching
    a header whose packet (header included) exceeds ``max_packet_size``.
    """
    data = bytes(buffer)
    offset = 0
    while len(data) - offset >= HEADER_LEN:
        cmd_id, length = decode_header(data[offset : offset + HEADER_LEN])
        total = HEADER_LEN + length
        if total > max_packet_size:
            raise PacketTooLargeError(cmd_id, length, max_packet_size)
        if len(data) - offset < total:
            return
        yield cmd_id, data[offset + HEADER_LEN : offset + total]
        offset += total


class _GatewayProtocol(asyncio.Protocol):
    def __init__(self, server: "GatewayServer") -> None:
        self._server = server
        self._buffer = bytearray()
        self._transport: Any = None
        self._conn: Optional[Connection] = None

    def connection_made(self, transport: Any) -> None:
        self._transport = transport
        manager = self._server.conn_manager
        self._conn = Connection(transport, manager.next_id(), self._server._loop)
        manager.add(self._conn)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if self._conn is not None:
            self._server.conn_manager.remove(self._conn.id)

    def data_received(self, data: bytes) -> None:
        self._buffer += data
        consumed = 0
        try:
            for cmd_id, payload in split_packets(self._buffer, self._server.cfg.max_packet_size):
                consumed += HEADER_LEN + len(payload)
                if not self._server._dispatch(self._conn, cmd_id, payload):
                    break
        except PacketTooLargeError as exc:
            get_logger().warning(
                "illegal packet length, closing client",
                extra={
                    "fields": {
                        "data_len": exc.data_len,
                        "remote_addr": self._conn.remote_addr if self._conn else "unknown",
                    }
                },
            )
            self._buffer.clear()
            self._transport.close()
            return
        del self._buffer[:consumed]


class GatewayServer:
    """Accepts framed packets over TCP and hands them to a worker pool."""

    def __init__(
        self,
        cfg: ServerConfig,
        worker_pool: WorkerPool,
        stats_interval: float = STATS_INTERVAL,
    ) -> None:
        self.cfg = cfg
        self.worker_pool = worker_pool
        self.conn_manager = ConnManager()
        self.started = threading.Event()
        self.bound_address: Optional[Tuple[str, int]] = None
        self._stats_interval = stats_interval
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop: Optional[asyncio.Event] = None
        self._stop_requested = threading.Event()

    @property
    def addr(self) -> str:
        return self.cfg.addr

    def start(self) -> None:
        """Serve until stopped by close_engine() or a shutdown command."""
        asyncio.run(self._serve())

    def close_engine(self) -> None:
        """Ask the running server to stop; safe to call from any thread."""
        self._stop_requested.set()
        loop, stop = self._loop, self._stop
        if loop is not None and stop is not None:
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(stop.set)

    async def _serve(self) -> None:
        host, port = parse_addr(self.cfg.addr)
        self._stop = asyncio.Event()
        self._loop = asyncio.get_running_loop()
        if self._stop_requested.is_set():
            self._stop.set()
        try:
            server = await self._loop.create_server(
                lambda: _GatewayProtocol(self), host or None, port
            )
            self.bound_address = tuple(server.sockets[0].getsockname()[:2])
            self._log_boot()
            self.started.set()
            reporter = asyncio.create_task(self._report_stats())
            try:
                await self._stop.wait()
            finally:
                reporter.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reporter
                server.close()
                for conn in self.conn_manager:
                    conn.transport.close()
                await server.wait_closed()
        finally:
            self._loop = None
            self._stop = None

    def _request_stop(self) -> None:
        self._stop_requested.set()
        if self._stop is not None:
            self._stop.set()

    def _dispatch(self, conn: Connection, cmd_id: int, payload: bytes) -> bool:
        if cmd_id == Command.SHUTDOWN:
            get_logger().warning("remote shutdown command received, stopping server")
            self._request_stop()
            return False
        body = get_bytes(len(payload))
        body[:] = payload
        task = get_work_task()
        task.conn_id = conn.id
        task.cmd_id = cmd_id
        task.data_len = len(payload)
        task.body = body
        task.conn = conn
        self.worker_pool.submit(task)
        return True

    def _log_boot(self) -> None:
        cfg = get_config()
        log = get_logger()
        log.info(
            "server started",
            extra={"fields": {"version": cfg.app.version, "addr": self.cfg.addr}},
        )
        log.info(
            "configuration",
            extra={
                "fields": {
                    "env": cfg.app.env,
                    "version": cfg.app.version,
                    "multicore": self.cfg.multicore,
                    "worker_pool_size": self.cfg.worker_pool_size,
                    "task_queue_size": self.cfg.task_queue_size,
                    "max_packet_size": self.cfg.max_packet_size,
                    "heartbeat_check": self.cfg.heartbeat_check,
                    "heartbeat_timeout": self.cfg.heartbeat_timeout,
                    "log_level": cfg.log.level,
                    "log_path": cfg.log.path,
                    "log_stdout": cfg.log.stdout,
                }
            },
        )

    async def _report_stats(self) -> None:
        while True:
            await asyncio.sleep(self._stats_interval)
            counters = metrics()
            get_logger().info(
                "status",
                extra={
                    "fields": {
                        "connections": self.conn_manager.count(),
                        "threads": threading.active_count(),
                        "pool_get": counters.get_count,
                        "pool_hit": counters.hit_count,
                        "pool_make": counters.make_count,
                        "raw_alloc": counters.raw_alloc,
                    }
                },
            )