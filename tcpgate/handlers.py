"""Business handlers and the command router."""

import struct
from typing import Any, Callable, Dict, Optional

from .protocol import Command

_PAIR = struct.Struct(">II")
_TRIPLE = struct.Struct(">III")
_MASK = 0xFFFFFFFF


def calculate_response(body: bytes) -> Optional[bytes]:
    """Return ``a``, ``b`` and ``a + b`` (wrapping at 32 bits); None if body is short."""
    if len(body) < _PAIR.size:
        return None
    a, b = _PAIR.unpack_from(body)
    return _TRIPLE.pack(a, b, (a + b) & _MASK)


class CalculateHandler:
    """Replies with the two operands and their sum."""

    def handle(self, conn: Any, cmd_id: int, body: bytes) -> None:
        result = calculate_response(body)
        if result is not None:
            conn.send(cmd_id, result)


class EchoHandler:
    """Replies with the request body unchanged."""

    def handle(self, conn: Any, cmd_id: int, body: bytes) -> None:
        conn.send(cmd_id, body)


class SmallHandler(EchoHandler):
    """Handler for small packets."""


class MediumHandler(EchoHandler):
    """Handler for medium packets."""


class LargeHandler(EchoHandler):
    """Handler for large packets."""


class _FuncHandler:
    def __init__(self, func: Callable[[Any, int, bytes], None]) -> None:
        self._func = func

    def handle(self, conn: Any, cmd_id: int, body: bytes) -> None:
        self._func(conn, cmd_id, body)


class Router:
    """Maps command ids to handlers."""

    def __init__(self) -> None:
        self._handlers: Dict[int, Any] = {}

    def register(self, cmd_id: int, handler: Any) -> None:
        """Register an object with a ``handle(conn, cmd_id, body)`` method."""
        self._handlers[int(cmd_id)] = handler

    def register_func(self, cmd_id: int, func: Callable[[Any, int, bytes], None]) -> None:
        """Register a plain function as a handler."""
        self._handlers[int(cmd_id)] = _FuncHandler(func)

    def execute(self, conn: Any, cmd_id: int, body: bytes) -> bool:
        """Run the handler for ``cmd_id``; returns False when none is registered.

        After a handler runs, the connection's pending-task count is decremented.
        """
        handler = self._handlers.get(int(cmd_id))
        if handler is None:
            return False
        try:
            handler.handle(conn, cmd_id, body)
        finally:
            conn.del_pending_task()
        return True

    def __contains__(self, cmd_id: object) -> bool:
        return cmd_id in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def default_router() -> Router:
    """Return a router with the built-in test handlers registered."""
    router = Router()
    router.register(Command.CALCULATE, CalculateHandler())
    router.register(Command.SMALL, SmallHandler())
    router.register(Command.MEDIUM, MediumHandler())
    router.register(Command.LARGE, LargeHandler())
    return router