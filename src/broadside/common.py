"""Low-level packet framing utilities.

Frame layout (16-byte header + JSON payload):
0-1  : 0xB5DE       magic bytes
2    : version (1)
3    : PacketType (enum)
4-7  : seq u32 (big-endian)
8-11 : len u32 (payload length)
12-15: CRC-32 over header[0:12]+payload
16-  : UTF-8 JSON payload

When a key is given the payload is sealed with AES-GCM (see
``encryption.py``) and header[0:12] is authenticated as associated data;
the CRC then covers the sealed bytes. Framing is otherwise identical.
"""

from __future__ import annotations

import enum
import json
import logging
import struct
import zlib
from typing import Any, BinaryIO, Final, Tuple

from cryptography.exceptions import InvalidTag

from . import encryption as _aead

logger = logging.getLogger(__name__)

MAGIC: Final[int] = 0xB5DE
VERSION: Final[int] = 1

_HEADER = struct.Struct(">HBBII")
_CRC = struct.Struct(">I")
HEADER_LEN: Final[int] = _HEADER.size + _CRC.size

# A 10x10 grid is a few hundred bytes; anything this large is garbage.
MAX_PAYLOAD: Final[int] = 64 * 1024


class PacketType(int, enum.Enum):
    """Enumerate wire-protocol packet categories."""

    GRID = 1  # own-grid snapshot, sent once per direction
    MOVE = 2  # one attacked coordinate


class FrameError(Exception):
    """Base for framing problems."""


class CrcError(FrameError):
    """Raised when a CRC-32 check fails while decoding a frame."""


class IncompleteError(FrameError):
    """Raised when the stream closes before a full frame could be read."""


def _crc(header: bytes, payload: bytes) -> int:
    return zlib.crc32(header + payload) & 0xFFFFFFFF


# ---------------------------------------------------------------------------
# Public pack / unpack
# ---------------------------------------------------------------------------


def pack(ptype: PacketType, seq: int, obj: Any, *, key: bytes | None = None) -> bytes:
    """Serialize *obj* as one frame of type *ptype*."""
    payload = json.dumps(obj, separators=(",", ":")).encode()
    length = _aead.sealed_length(len(payload)) if key else len(payload)
    if length > MAX_PAYLOAD:
        raise FrameError(f"payload too large: {length} bytes")
    header = _HEADER.pack(MAGIC, VERSION, int(ptype), seq & 0xFFFFFFFF, length)
    if key:
        payload = _aead.seal(key, payload, header)
    return header + _CRC.pack(_crc(header, payload)) + payload


def _decode(header: bytes, body: bytes, *, key: bytes | None) -> Tuple[PacketType, int, Any]:
    magic, version, ptype_val, seq, length = _HEADER.unpack(header[: _HEADER.size])
    (crc,) = _CRC.unpack(header[_HEADER.size :])
    if crc != _crc(header[: _HEADER.size], body):
        raise CrcError(f"CRC mismatch on seq {seq}")
    if key:
        try:
            body = _aead.open_sealed(key, body, header[: _HEADER.size])
        except InvalidTag:
            raise FrameError("AEAD authentication failed") from None
    try:
        ptype = PacketType(ptype_val)
    except ValueError:
        raise FrameError(f"unknown packet type {ptype_val}") from None
    try:
        obj = json.loads(body)
    except ValueError as e:
        raise FrameError(f"payload is not JSON: {e}") from None
    return ptype, seq, obj


def _check_header(header: bytes) -> int:
    magic, version, _ptype, _seq, length = _HEADER.unpack(header[: _HEADER.size])
    if magic != MAGIC or version != VERSION:
        raise FrameError("magic/version mismatch")
    if length > MAX_PAYLOAD:
        raise FrameError(f"declared payload too large: {length} bytes")
    return length


def unpack(buf: bytes, *, key: bytes | None = None) -> Tuple[PacketType, int, Any]:
    """Decode exactly one frame held in *buf*; return ``(ptype, seq, obj)``."""
    if len(buf) < HEADER_LEN:
        raise IncompleteError("Incomplete header")
    header = bytes(buf[:HEADER_LEN])
    length = _check_header(header)
    body = bytes(buf[HEADER_LEN : HEADER_LEN + length])
    if len(body) < length:
        raise IncompleteError("Incomplete payload")
    return _decode(header, body, key=key)


# ---------------------------------------------------------------------------
# Convenience wrappers for file-like objects
# ---------------------------------------------------------------------------


def send_pkt(w: BinaryIO, ptype: PacketType, seq: int, obj: Any, *, key: bytes | None = None) -> None:
    """Write a single framed packet to buffered writer *w* and flush."""
    frame = pack(ptype, seq, obj, key=key)
    w.write(frame)
    w.flush()
    logger.debug("sent %s seq=%d (%d bytes)", ptype.name, seq, len(frame))


def recv_pkt(r: BinaryIO, *, key: bytes | None = None) -> Tuple[PacketType, int, Any]:
    """Blocking helper that returns the next ``(ptype, seq, obj)`` tuple from *r*."""
    header = r.read(HEADER_LEN)
    if not header or len(header) < HEADER_LEN:
        raise IncompleteError("Incomplete header")
    length = _check_header(header)
    body = r.read(length) if length else b""
    if len(body) < length:
        raise IncompleteError("Incomplete payload")
    ptype, seq, obj = _decode(header, body, key=key)
    logger.debug("received %s seq=%d", ptype.name, seq)
    return ptype, seq, obj


__all__ = [
    "PacketType",
    "FrameError",
    "CrcError",
    "IncompleteError",
    "HEADER_LEN",
    "MAGIC",
    "VERSION",
    "pack",
    "unpack",
    "send_pkt",
    "recv_pkt",
]
