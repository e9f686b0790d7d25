"""Turn-synchronisation protocol between the two peers.

Over one connected stream socket the peers exchange, in order:

GRID  {"rows": [".....S....", ...]}   once per direction, own layout
MOVE  {"row": r, "col": c}           one per turn, strictly alternating

Both sides send their grid *then* read the peer's, so neither can block
the other. Moves are never pipelined: exactly one MOVE frame is in flight
per turn, so wire order is move order.

Any transport or framing failure surfaces as ConnectionLost; frames that
decode but carry the wrong content raise ProtocolViolation (a subclass).
"""

from __future__ import annotations

import logging
import socket
from typing import Any, List

from .battleship import Coord
from .common import FrameError, PacketType, recv_pkt, send_pkt

logger = logging.getLogger(__name__)


class ConnectionLost(Exception):
    """The peer connection failed or closed."""


class ProtocolViolation(ConnectionLost):
    """The peer sent a well-formed frame with unexpected content."""


class TurnSyncProtocol:
    """Framed GRID/MOVE exchange over *sock*."""

    def __init__(self, sock: socket.socket, *, key: bytes | None = None) -> None:
        self.sock = sock
        self._key = key
        self._r = sock.makefile("rb")
        self._w = sock.makefile("wb")
        self._seq = 0
        self._closed = False

    # ------------------------------------------------------------------
    # low level
    # ------------------------------------------------------------------
    def _send(self, ptype: PacketType, obj: Any) -> None:
        try:
            send_pkt(self._w, ptype, self._seq, obj, key=self._key)
        except (OSError, ValueError) as e:
            raise ConnectionLost(f"send failed: {e}") from e
        self._seq += 1

    def _recv(self, expected: PacketType) -> Any:
        try:
            ptype, _seq, obj = recv_pkt(self._r, key=self._key)
        except FrameError as e:
            raise ConnectionLost(f"bad frame: {e}") from e
        except (OSError, ValueError) as e:
            raise ConnectionLost(f"receive failed: {e}") from e
        if ptype is not expected:
            raise ProtocolViolation(f"expected {expected.name}, got {ptype.name}")
        if not isinstance(obj, dict):
            raise ProtocolViolation(f"{ptype.name} payload is not an object")
        return obj

    # ------------------------------------------------------------------
    # messages
    # ------------------------------------------------------------------
    def exchange_grids(self, own_rows: List[str]) -> List[str]:
        """Send our layout, then return the peer's rows."""
        self._send(PacketType.GRID, {"rows": list(own_rows)})
        obj = self._recv(PacketType.GRID)
        rows = obj.get("rows")
        if not isinstance(rows, list) or not all(isinstance(r, str) for r in rows):
            raise ProtocolViolation("GRID payload has no row list")
        logger.info("grid exchange complete")
        return rows

    def send_move(self, coord: Coord) -> None:
        row, col = coord
        self._send(PacketType.MOVE, {"row": row, "col": col})

    def recv_move(self) -> Coord:
        obj = self._recv(PacketType.MOVE)
        row, col = obj.get("row"), obj.get("col")
        # bool is an int subclass; reject it explicitly
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in (row, col)):
            raise ProtocolViolation(f"MOVE payload is not a coordinate: {obj!r}")
        return row, col

    # ------------------------------------------------------------------
    # teardown
    # ------------------------------------------------------------------
    def interrupt(self) -> None:
        """Shut the socket down so a read blocked in another thread returns EOF."""
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # already disconnected

    def close(self) -> None:
        """Release the socket. Call from the thread that reads; idempotent."""
        if self._closed:
            return
        self._closed = True
        self.interrupt()
        for f in (self._r, self._w):
            try:
                f.close()
            except OSError:
                pass
        self.sock.close()
