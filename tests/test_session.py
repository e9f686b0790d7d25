"""PeerSession end-to-end over loopback TCP."""

from __future__ import annotations

import socket
import threading
import time

import pytest

from broadside.battleship import CellState
from broadside.engine import GameEngine, MoveOutcome
from broadside.events import BoardId, GridReplaced, Side
from broadside.protocol import TurnSyncProtocol
from broadside.session import (
    CANCELLED,
    CONNECTION_FAILED,
    FLEET_DESTROYED,
    PEER_DISCONNECTED,
    PROTOCOL_ERROR,
    PeerSession,
    Role,
)

from conftest import OPEN_WATER, STANDARD_CELLS, drive, place_standard

pytestmark = pytest.mark.timeout(30)


def _standard_rows() -> list[str]:
    eng = GameEngine()
    place_standard(eng)
    return list(eng.own.layout())


def _exchanged(engine: GameEngine) -> threading.Event:
    """Event set once *engine* has loaded the peer's layout."""
    done = threading.Event()

    def _on_note(note):
        if isinstance(note, GridReplaced) and note.board is BoardId.OPPONENT:
            done.set()

    engine.notifier.subscribe(_on_note)
    return done


def _start_pair(session_factory, *, server_kw=None, client_kw=None):
    server = session_factory(Role.SERVER, **(server_kw or {}))
    server.start()
    assert server.listening.wait(5)
    client = session_factory(Role.CLIENT, server.port, **(client_kw or {}))
    client.start()
    return server, client


def _listener() -> socket.socket:
    lst = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    lst.bind(("127.0.0.1", 0))
    lst.listen(1)
    lst.settimeout(5)
    return lst


# ---------------------------------------------------------------------------
# construction
# ---------------------------------------------------------------------------


def test_unplaced_fleet_is_refused() -> None:
    with pytest.raises(ValueError):
        PeerSession(GameEngine(), Role.SERVER, 0)


@pytest.mark.parametrize("role, first", [(Role.SERVER, Side.SELF), (Role.CLIENT, Side.OPPONENT)])
def test_server_moves_first(session_factory, role, first) -> None:
    sess = session_factory(role)
    assert sess.engine.turn_owner is first


def test_role_accepts_plain_strings(session_factory) -> None:
    assert session_factory("client").role is Role.CLIENT


# ---------------------------------------------------------------------------
# full matches
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("key", [None, bytes(range(16))], ids=["plain", "aead"])
def test_full_match_server_wins(session_factory, start_in_thread, key) -> None:
    server, client = _start_pair(session_factory, server_kw={"key": key}, client_kw={"key": key})
    t1 = start_in_thread(drive, server, STANDARD_CELLS)
    t2 = start_in_thread(drive, client, OPEN_WATER)
    server.join(10)
    client.join(10)
    t1.join(5)
    t2.join(5)

    assert server.report.reason == FLEET_DESTROYED
    assert server.report.winner is Side.SELF and server.report.won
    assert server.report.revealed == ()

    assert client.report.reason == FLEET_DESTROYED
    assert client.report.winner is Side.OPPONENT and not client.report.won
    # the loser sees every ship square it never found
    assert set(client.report.revealed) == set(STANDARD_CELLS)

    assert all(s.sunk for s in client.engine.own.ships)
    assert not any(s.sunk for s in server.engine.own.ships)
    assert client.engine.winner is Side.OPPONENT
    assert server.engine.winner is Side.SELF


def test_mirrors_track_the_real_boards(session_factory) -> None:
    server, client = _start_pair(session_factory)
    for s_move, c_move in [((0, 0), (2, 1)), ((9, 9), (8, 8))]:
        assert server.wait_for_turn(5)
        assert server.submit_local_move(s_move).result(5).accepted
        assert client.wait_for_turn(5)
        assert client.submit_local_move(c_move).result(5).accepted
    # both sides have fired twice; the server is waiting on its third shot
    assert server.wait_for_turn(5)
    assert server.engine.own.snapshot() == client.engine.mirror.snapshot()
    assert client.engine.own.snapshot() == server.engine.mirror.snapshot()
    assert client.engine.own.cells[0][0] is CellState.HIT
    assert server.engine.own.cells[2][1] is CellState.HIT
    assert server.engine.own.cells[8][8] is CellState.MISS


def test_rejected_local_move_keeps_the_turn(session_factory) -> None:
    server, client = _start_pair(session_factory)
    assert server.wait_for_turn(5)
    outcome = server.submit_local_move((10, 10)).result(5)
    assert not outcome.accepted
    assert server.wait_for_turn(5)
    assert server.engine.turn_owner is Side.SELF
    assert server.submit_local_move((0, 0)).result(5).hit
    assert client.wait_for_turn(5)
    assert client.submit_local_move((9, 9)).result(5).accepted
    assert server.wait_for_turn(5)
    # firing at an already resolved square is refused as well
    assert not server.submit_local_move((0, 0)).result(5).accepted
    assert server.engine.turn_owner is Side.SELF


def test_move_out_of_turn_is_rejected(session_factory) -> None:
    server, client = _start_pair(session_factory)
    assert server.wait_for_turn(5)
    early = client.submit_local_move((5, 5))
    # rejected on the spot, nothing queued for later
    assert early.done()
    assert early.result() == MoveOutcome(False)

    assert server.submit_local_move((9, 0)).result(5).accepted
    assert client.wait_for_turn(5)
    assert server.engine.own.cells[5][5] is CellState.EMPTY
    assert client.engine.mirror.cells[5][5] is CellState.EMPTY

    # the rejected move did not use up the client's turn
    assert client.submit_local_move((6, 6)).result(5).accepted
    assert server.wait_for_turn(5)
    assert server.engine.own.cells[6][6] is CellState.MISS
    assert server.engine.own.cells[5][5] is CellState.EMPTY


def test_only_one_move_per_turn(session_factory) -> None:
    server, client = _start_pair(session_factory)
    assert server.wait_for_turn(5)
    first = server.submit_local_move((9, 0))
    second = server.submit_local_move((9, 1))
    assert not second.result(5).accepted
    assert first.result(5).accepted
    assert client.wait_for_turn(5)
    assert client.engine.own.cells[9][0] is CellState.MISS
    assert client.engine.own.cells[9][1] is CellState.EMPTY


# ---------------------------------------------------------------------------
# terminations
# ---------------------------------------------------------------------------


def test_cancel_before_connect(session_factory) -> None:
    server = session_factory(Role.SERVER)
    server.start()
    assert server.listening.wait(5)
    server.close()
    server.join(5)
    assert not server.is_alive()
    assert server.report.reason == CANCELLED
    assert server.report.winner is None
    assert not server.connected.is_set()


def test_client_cannot_reach_anyone(session_factory, free_port) -> None:
    client = session_factory(Role.CLIENT, free_port, connect_timeout=0.3)
    client.start()
    client.join(10)
    assert client.report.reason == CONNECTION_FAILED
    assert client.report.winner is None


def test_client_dials_before_server_listens(session_factory, free_port) -> None:
    client = session_factory(Role.CLIENT, free_port)
    client.start()
    time.sleep(0.5)
    server = session_factory(Role.SERVER, free_port)
    server.start()
    assert server.connected.wait(5)
    assert client.connected.wait(5)


def test_concession_mid_match(session_factory) -> None:
    server = session_factory(Role.SERVER)
    server.start()
    assert server.listening.wait(5)
    client_engine = GameEngine()
    place_standard(client_engine)
    exchanged = _exchanged(client_engine)
    client = session_factory(Role.CLIENT, server.port, engine=client_engine)
    client.start()
    assert exchanged.wait(5)
    assert server.wait_for_turn(5)

    client.close()
    client.join(5)
    assert client.report.reason == CANCELLED
    assert client.report.winner is Side.OPPONENT
    assert set(client.report.revealed) == set(STANDARD_CELLS)

    # the server notices on its next exchange with the peer
    server.submit_local_move((9, 9)).result(5)
    server.join(5)
    assert server.report.reason == PEER_DISCONNECTED
    assert server.report.winner is Side.SELF


def test_moves_after_finish_are_rejected(session_factory) -> None:
    server = session_factory(Role.SERVER)
    server.start()
    assert server.listening.wait(5)
    server.close()
    server.join(5)
    assert not server.submit_local_move((0, 0)).result(1).accepted


def test_server_handshake_failure(session_factory) -> None:
    server = session_factory(Role.SERVER)
    server.start()
    assert server.listening.wait(5)
    raw = socket.create_connection(("127.0.0.1", server.port))
    raw.close()
    server.join(5)
    assert server.report.reason == CONNECTION_FAILED
    assert server.report.winner is None


def test_client_handshake_failure(session_factory, start_in_thread) -> None:
    lst = _listener()

    def _garbage():
        conn, _ = lst.accept()
        conn.sendall(b"\x00" * 64)
        conn.close()

    t = start_in_thread(_garbage)
    client = session_factory(Role.CLIENT, lst.getsockname()[1])
    client.start()
    client.join(5)
    t.join(5)
    lst.close()
    assert client.report.reason == CONNECTION_FAILED
    assert client.report.winner is None


def test_mismatched_keys_fail_the_handshake(session_factory) -> None:
    server, client = _start_pair(
        session_factory,
        server_kw={"key": bytes(16)},
        client_kw={"key": bytes(range(16))},
    )
    server.join(5)
    client.join(5)
    assert server.report.reason == CONNECTION_FAILED
    assert client.report.reason == CONNECTION_FAILED


def test_malformed_peer_grid_fails_the_handshake(session_factory, start_in_thread) -> None:
    lst = _listener()
    done = threading.Event()

    def _bad_grid():
        conn, _ = lst.accept()
        proto = TurnSyncProtocol(conn)
        try:
            proto.exchange_grids(["S" * 3])
            done.wait(5)
        finally:
            proto.close()

    t = start_in_thread(_bad_grid)
    client = session_factory(Role.CLIENT, lst.getsockname()[1])
    client.start()
    client.join(5)
    done.set()
    t.join(5)
    lst.close()
    assert client.report.reason == CONNECTION_FAILED


def test_illegal_peer_move_is_protocol_error(session_factory) -> None:
    server = session_factory(Role.SERVER)
    server.start()
    assert server.listening.wait(5)
    fake = TurnSyncProtocol(socket.create_connection(("127.0.0.1", server.port), timeout=5))
    try:
        fake.exchange_grids(_standard_rows())
        assert server.wait_for_turn(5)
        server.submit_local_move((0, 0)).result(5)
        assert fake.recv_move() == (0, 0)
        fake.send_move((99, 99))
        server.join(5)
    finally:
        fake.close()
    assert server.report.reason == PROTOCOL_ERROR
    assert server.report.winner is Side.SELF


def test_silent_peer_times_out(session_factory, start_in_thread) -> None:
    lst = _listener()
    release = threading.Event()

    def _silent_server():
        conn, _ = lst.accept()
        proto = TurnSyncProtocol(conn)
        try:
            proto.exchange_grids(_standard_rows())
            release.wait(10)
        finally:
            proto.close()

    t = start_in_thread(_silent_server)
    client = session_factory(Role.CLIENT, lst.getsockname()[1], move_timeout=0.3)
    client.start()
    client.join(5)
    release.set()
    t.join(5)
    lst.close()
    assert client.report.reason == PEER_DISCONNECTED
    assert client.report.winner is Side.SELF
