"""Packet framing: an 8-byte big-endian header (command id, body length) and the body."""

import asyncio
import enum
import logging
import struct
from typing import Any, Tuple

from .logger import LOGGER_NAME

HEADER_LEN = 8
_HEADER = struct.Struct(">II")
_MAX_U32 = 0xFFFFFFFF

_log = logging.getLogger(LOGGER_NAME)


class Command(enum.IntEnum):
    """Command ids understood by the gateway."""

    CALCULATE = 1001
    SMALL = 2001
    MEDIUM = 3001
    LARGE = 4001
    SHUTDOWN = 9999


def _check_u32(value: int, what: str) -> None:
    if not 0 <= value <= _MAX_U32:
        raise ValueError(f"{what} {value} does not fit in an unsigned 32-bit field")


def encode_header(cmd_id: int, length: int) -> bytes:
    """Encode a packet header."""
    _check_u32(cmd_id, "command id")
    _check_u32(length, "body length")
    return _HEADER.pack(cmd_id, length)


def decode_header(header: bytes) -> Tuple[int, int]:
    """Decode the first 8 bytes of ``header`` into ``(cmd_id, length)``."""
    if len(header) < HEADER_LEN:
        raise ValueError(f"header needs {HEADER_LEN} bytes, got {len(header)}")
    return _HEADER.unpack_from(header)


def encode_packet(cmd_id: int, body: bytes) -> bytes:
    """Encode a whole packet: header followed by body."""
    return encode_header(cmd_id, len(body)) + bytes(body)


def _peer_name(conn: Any) -> str:
    get_extra_info = getattr(conn, "get_extra_info", None)
    if callable(get_extra_info):
        try:
            return str(get_extra_info("peername"))
        except Exception:  # noqa: BLE001 - only used for a log line
            return "unknown"
    return "unknown"


def send_packet(conn: Any, cmd_id: int, body: bytes) -> None:
    """Write a framed packet to ``conn`` (any object with ``write``).

    A failed write is logged and re-raised.
    """
    packet = encode_packet(cmd_id, body)
    try:
        conn.write(packet)
    except Exception as exc:
        _log.error(
            "failed to deliver reply",
            extra={"fields": {"remote_addr": _peer_name(conn), "error": str(exc)}},
        )
        raise


async def read_packet(reader: asyncio.StreamReader) -> Tuple[int, bytes]:
    """Read one packet from a stream; returns ``(cmd_id, body)``."""
    header = await reader.readexactly(HEADER_LEN)
    cmd_id, length = decode_header(header)
    body = await reader.readexactly(length) if length else b""
    return cmd_id, body