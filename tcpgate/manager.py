"""Per-connection state and the registry of live connections."""

import asyncio
import contextlib
import itertools
import threading
from typing import Any, Dict, Iterator, List, Optional

from .protocol import send_packet


class Connection:
    """A client connection: an id, a pending-task counter and a free context slot.

    ``transport`` is any object with ``write`` and ``close`` (an asyncio
    transport in the server). When ``loop`` is given, writes and closes are
    handed to that loop, so they may be called from worker threads.
    """

    def __init__(
        self,
        transport: Any,
        conn_id: int,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.transport = transport
        self.id = conn_id
        self.context: Any = None
        self._loop = loop
        self._pending = 0
        self._lock = threading.Lock()

    @property
    def remote_addr(self) -> str:
        get_extra_info = getattr(self.transport, "get_extra_info", None)
        peer = get_extra_info("peername") if callable(get_extra_info) else None
        if isinstance(peer, tuple) and len(peer) >= 2:
            return f"{peer[0]}:{peer[1]}"
        return str(peer)

    @property
    def pending_tasks(self) -> int:
        with self._lock:
            return self._pending

    def send(self, cmd_id: int, body: bytes) -> None:
        """Send one framed packet to the client."""
        if self._loop is None:
            send_packet(self.transport, cmd_id, body)
            return
        self._loop.call_soon_threadsafe(send_packet, self.transport, cmd_id, bytes(body))

    def close(self) -> None:
        """Close the connection."""
        if self._loop is None:
            self.transport.close()
            return
        with contextlib.suppress(RuntimeError):
            self._loop.call_soon_threadsafe(self.transport.close)

    def add_pending_task(self) -> int:
        """Count one more queued task; returns the new count."""
        with self._lock:
            self._pending += 1
            return self._pending

    def del_pending_task(self) -> int:
        """Count one task as finished; returns the new count."""
        with self._lock:
            self._pending -= 1
            return self._pending


class ConnManager:
    """Thread-safe registry of connections keyed by id."""

    def __init__(self) -> None:
        self._conns: Dict[int, Connection] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def add(self, conn: Connection) -> None:
        with self._lock:
            self._conns[conn.id] = conn

    def remove(self, conn_id: int) -> None:
        with self._lock:
            self._conns.pop(conn_id, None)

    def get(self, conn_id: int) -> Optional[Connection]:
        with self._lock:
            return self._conns.get(conn_id)

    def count(self) -> int:
        with self._lock:
            return len(self._conns)

    def next_id(self) -> int:
        """Return a fresh connection id, starting at 1."""
        with self._lock:
            return next(self._ids)

    def __iter__(self) -> Iterator[Connection]:
        with self._lock:
            snapshot: List[Connection] = list(self._conns.values())
        return iter(snapshot)