import logging
import socket
import threading
import time
from typing import Callable, Iterable, List

import pytest

from broadside.battleship import Orientation
from broadside.engine import GameEngine
from broadside.events import Notification
from broadside.session import PeerSession, Role

# Suppress INFO & DEBUG logs from session threads during tests
logging.basicConfig(level=logging.WARNING)

UP, LEFT = Orientation.UP, Orientation.LEFT

# (foot, orientation) per roster slot: carrier, battleship, cruiser,
# destroyer, destroyer2, raft, raft2
STANDARD_LAYOUT = [
    ((4, 0), UP),
    ((0, 5), LEFT),
    ((4, 1), UP),
    ((2, 3), LEFT),
    ((4, 4), UP),
    ((4, 5), UP),
    ((4, 7), UP),
]

# Every square the standard layout occupies (18 in total)
STANDARD_CELLS = [
    (0, 0), (1, 0), (2, 0), (3, 0), (4, 0),
    (0, 5), (0, 4), (0, 3), (0, 2),
    (4, 1), (3, 1), (2, 1),
    (2, 3), (2, 2),
    (4, 4), (3, 4),
    (4, 5),
    (4, 7),
]

# Squares the standard layout leaves empty, enough for a whole losing game
OPEN_WATER = [(r, c) for r in range(6, 10) for c in range(10)]


class Recorder:
    """Notification subscriber that just keeps everything it is sent."""

    def __init__(self) -> None:
        self.notes: List[Notification] = []

    def __call__(self, note: Notification) -> None:
        self.notes.append(note)

    def of(self, kind: type) -> list:
        return [n for n in self.notes if isinstance(n, kind)]

    def clear(self) -> None:
        self.notes.clear()


def place_standard(engine: GameEngine) -> None:
    for slot, (foot, orientation) in enumerate(STANDARD_LAYOUT):
        engine.place_ship(foot, slot, orientation)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def engine(recorder: Recorder) -> GameEngine:
    """Empty engine with a Recorder subscribed."""
    eng = GameEngine()
    eng.notifier.subscribe(recorder)
    return eng


@pytest.fixture
def placed_engine(engine: GameEngine, recorder: Recorder) -> GameEngine:
    """Engine whose own fleet uses STANDARD_LAYOUT; recorder starts empty."""
    place_standard(engine)
    recorder.clear()
    return engine


@pytest.fixture
def free_port() -> int:
    """A TCP port nothing is listening on (at the time of the call)."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as tmp:
        tmp.bind(("127.0.0.1", 0))
        return tmp.getsockname()[1]


def drive(session: PeerSession, moves: Iterable, timeout: float = 5.0) -> None:
    """Feed *moves* to *session* one per local turn until it finishes or runs dry."""
    it = iter(moves)
    deadline = time.monotonic() + timeout * 10
    while not session.finished.is_set() and time.monotonic() < deadline:
        if not session.wait_for_turn(0.05):
            continue
        try:
            coord = next(it)
        except StopIteration:
            return
        session.submit_local_move(coord).result(timeout=timeout)


@pytest.fixture
def session_factory() -> Callable:
    """Factory building PeerSessions; every session is closed after the test."""
    made: List[PeerSession] = []

    def _factory(role: Role, port: int = 0, *, engine: GameEngine | None = None, **kwargs) -> PeerSession:
        if engine is None:
            engine = GameEngine()
            place_standard(engine)
        kwargs.setdefault("host", "127.0.0.1")
        kwargs.setdefault("connect_timeout", 3.0)
        sess = PeerSession(engine, role, port, **kwargs)
        made.append(sess)
        return sess

    yield _factory
    for sess in made:
        sess.close()
        if sess.is_alive():
            sess.join(timeout=2)


@pytest.fixture
def start_in_thread() -> Callable:
    """Run a callable in a daemon thread; returns the started thread."""

    def _start(fn: Callable, *args) -> threading.Thread:
        t = threading.Thread(target=fn, args=args, daemon=True)
        t.start()
        return t

    return _start
