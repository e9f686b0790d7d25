"""Peer-to-peer match worker.

One ``PeerSession`` thread drives one match for one player:

1. connect  – the server role binds, listens and accepts exactly one peer;
               the client role dials it (re-trying while nobody listens yet).
2. exchange – both sides trade their ship layouts (TurnSyncProtocol).
3. play     – the server moves first. On our turn the thread waits for a
               move from the UI (submit_local_move), resolves it locally and
               sends it only if the engine accepted it. On the peer's turn it
               blocks reading one coordinate and applies it as the opponent.
4. finish   – however the match ends, the socket is closed and an
               EndReport is stored.

After placement the thread is the only writer of engine state; the UI reads
snapshots from notifications and talks to the thread through
submit_local_move() and close(), both safe to call from any thread.

A read failure during play (peer closed, garbage frame, optional move
timeout) ends the match like a normal termination; it is not raised.
"""

from __future__ import annotations

import enum
import logging
import queue
import socket
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Optional

from . import config as _cfg
from .battleship import Coord
from .engine import GameEngine, MoveOutcome
from .events import BoardId, Side
from .protocol import ConnectionLost, ProtocolViolation, TurnSyncProtocol

logger = logging.getLogger(__name__)

# EndReport reasons
FLEET_DESTROYED = "fleet destroyed"
PEER_DISCONNECTED = "peer disconnected"
CONNECTION_FAILED = "connection failed"
PROTOCOL_ERROR = "protocol error"
CANCELLED = "cancelled"

# How often blocking accept/dial loops look at the cancel flag.
_POLL_INTERVAL = 0.25


class Role(str, enum.Enum):
    """Which end of the connection this process is."""

    SERVER = "server"
    CLIENT = "client"

    @property
    def first_mover(self) -> Side:
        # The accepting side always opens fire.
        return Side.SELF if self is Role.SERVER else Side.OPPONENT


@dataclass(frozen=True)
class EndReport:
    """How a match ended, as seen from this side."""

    winner: Optional[Side]
    reason: str
    # Opponent ship squares never hit; only filled in for the losing side.
    revealed: tuple[Coord, ...] = ()

    @property
    def won(self) -> bool:
        return self.winner is Side.SELF


class PeerSession(threading.Thread):
    """Thread running the connect / exchange / play loop for one match."""

    def __init__(
        self,
        engine: GameEngine,
        role: Role | str,
        port: int,
        *,
        host: str = _cfg.DEFAULT_HOST,
        key: bytes | None = None,
        move_timeout: float = _cfg.MOVE_TIMEOUT,
        connect_timeout: float = _cfg.CONNECT_TIMEOUT,
    ) -> None:
        role = Role(role)
        super().__init__(daemon=True, name=f"broadside-{role.value}")
        if not engine.placement_complete():
            raise ValueError("all ships must be placed before the session starts")
        self.engine = engine
        self.role = role
        self.host = host
        self.port = port
        self.key = key
        self.move_timeout = move_timeout or None
        self.connect_timeout = connect_timeout
        engine.turn_owner = role.first_mover

        self.listening = threading.Event()  # server: port is bound (self.port is final)
        self.connected = threading.Event()
        self.finished = threading.Event()
        self.report: EndReport | None = None

        self._moves: "queue.Queue[tuple[Coord, Future] | None]" = queue.Queue()
        self._awaiting_local = threading.Event()
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._proto: TurnSyncProtocol | None = None

    # ------------------------------------------------------------------
    # UI-facing API (any thread)
    # ------------------------------------------------------------------
    def submit_local_move(self, coord: Coord) -> "Future[MoveOutcome]":
        """Hand a local shot to the worker; the future resolves once it is applied.

        Outside our turn (the worker is not waiting for local input) the
        move is rejected at once and nothing is queued. If the match ends
        before the worker takes the move the future resolves to a rejected
        outcome as well.
        """
        fut: "Future[MoveOutcome]" = Future()
        with self._lock:
            if (
                self.finished.is_set()
                or self._cancel.is_set()
                or not self._awaiting_local.is_set()
                or self.engine.turn_owner is not Side.SELF
            ):
                fut.set_result(MoveOutcome(False))
            else:
                # one move per turn: a second caller sees the turn as taken
                self._awaiting_local.clear()
                self._moves.put((coord, fut))
        return fut

    def wait_for_turn(self, timeout: float | None = None) -> bool:
        """Block until the worker waits for a local move; False on timeout."""
        return self._awaiting_local.wait(timeout)

    def close(self) -> None:
        """Cancel the match, unblocking any pending accept, dial, read or input wait."""
        if self._cancel.is_set():
            return
        logger.info("session cancelled")
        self._cancel.set()
        self._moves.put(None)
        proto = self._proto
        if proto is not None:
            proto.interrupt()

    # ------------------------------------------------------------------
    # thread body
    # ------------------------------------------------------------------
    def run(self) -> None:
        reason = CONNECTION_FAILED
        playing = False
        try:
            sock = self._open()
            if sock is None:
                reason = CANCELLED
                return
            self._proto = TurnSyncProtocol(sock, key=self.key)
            if self._cancel.is_set():
                reason = CANCELLED
                return
            self.connected.set()
            self._exchange()
            playing = True
            reason = self._play()
        except ProtocolViolation as e:
            logger.warning("peer broke protocol: %s", e)
            reason = PROTOCOL_ERROR if playing else CONNECTION_FAILED
        except (ConnectionLost, OSError) as e:
            # connect or grid exchange failed; the same policy for both roles
            logger.warning("connection failed: %s", e)
            reason = CONNECTION_FAILED
        finally:
            if reason != FLEET_DESTROYED and self._cancel.is_set():
                reason = CANCELLED
            self._finish(reason)

    # ------------------------------------------------------------------
    # phases
    # ------------------------------------------------------------------
    def _open(self) -> socket.socket | None:
        return self._accept() if self.role is Role.SERVER else self._dial()

    def _accept(self) -> socket.socket | None:
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind(("", self.port))
            listener.listen(1)
            listener.settimeout(_POLL_INTERVAL)
            self.port = listener.getsockname()[1]
            self.listening.set()
            logger.info("waiting for opponent on port %d", self.port)
            while not self._cancel.is_set():
                try:
                    conn, addr = listener.accept()
                except socket.timeout:
                    continue
                logger.info("opponent connected from %s:%d", *addr[:2])
                return self._configure(conn)
            return None
        finally:
            listener.close()

    def _dial(self) -> socket.socket | None:
        deadline = time.monotonic() + self.connect_timeout
        while not self._cancel.is_set():
            try:
                conn = socket.create_connection((self.host, self.port), timeout=_POLL_INTERVAL * 4)
            except (ConnectionRefusedError, socket.timeout) as e:
                if time.monotonic() >= deadline:
                    raise ConnectionLost(f"could not reach {self.host}:{self.port}: {e}") from e
                time.sleep(_cfg.CONNECT_RETRY_DELAY)
                continue
            logger.info("connected to %s:%d", self.host, self.port)
            return self._configure(conn)
        return None

    def _configure(self, conn: socket.socket) -> socket.socket:
        conn.settimeout(self.move_timeout)
        try:
            conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            pass  # not every platform allows it
        return conn

    def _exchange(self) -> None:
        assert self._proto is not None
        rows = self._proto.exchange_grids(list(self.engine.own.layout()))
        try:
            self.engine.load_opponent_snapshot(rows)
        except ValueError as e:
            raise ProtocolViolation(f"peer grid rejected: {e}") from e

    def _play(self) -> str:
        assert self._proto is not None
        engine = self.engine
        while not engine.is_game_over():
            if engine.turn_owner is Side.SELF:
                item = self._next_local_move()
                if item is None:
                    return CANCELLED
                coord, fut = item
                outcome = engine.submit_move(coord, Side.SELF)
                fut.set_result(outcome)
                if not outcome.accepted:
                    logger.debug("local move %s rejected, still our turn", coord)
                    continue
                try:
                    self._proto.send_move(coord)
                except ConnectionLost as e:
                    if self._cancel.is_set():
                        return CANCELLED
                    logger.info("peer went away while sending: %s", e)
                    return PEER_DISCONNECTED
                engine.pass_turn()
            else:
                try:
                    coord = self._proto.recv_move()
                except ProtocolViolation:
                    raise
                except ConnectionLost as e:
                    if self._cancel.is_set():
                        return CANCELLED
                    logger.info("peer went away: %s", e)
                    return PEER_DISCONNECTED
                outcome = engine.submit_move(coord, Side.OPPONENT)
                if not outcome.accepted:
                    raise ProtocolViolation(f"peer move {coord} is not legal here")
                engine.pass_turn()
        return FLEET_DESTROYED

    def _next_local_move(self) -> tuple[Coord, Future] | None:
        self._awaiting_local.set()
        try:
            item = self._moves.get()
        finally:
            self._awaiting_local.clear()
        if item is None or self._cancel.is_set():
            if item is not None:
                item[1].set_result(MoveOutcome(False))
            return None
        return item

    def _finish(self, reason: str) -> None:
        engine = self.engine
        if reason == FLEET_DESTROYED:
            winner = engine.winner
        elif reason in (PEER_DISCONNECTED, PROTOCOL_ERROR):
            # whoever is still at the table wins
            winner = Side.SELF
        elif reason == CANCELLED and self.connected.is_set():
            winner = Side.OPPONENT  # concession
        else:
            winner = None
        if winner is not None:
            engine.end(winner)

        revealed: tuple[Coord, ...] = ()
        if winner is Side.OPPONENT:
            revealed = tuple(engine.remaining_ship_cells(BoardId.OPPONENT))
        self.report = EndReport(winner, reason, revealed)

        if self._proto is not None:
            self._proto.close()
        logger.info("match over: %s (winner=%s)", reason, winner.value if winner else None)
        with self._lock:
            self.finished.set()
            # release anyone still waiting on a move future
            while True:
                try:
                    item = self._moves.get_nowait()
                except queue.Empty:
                    break
                if item is not None:
                    item[1].set_result(MoveOutcome(False))
