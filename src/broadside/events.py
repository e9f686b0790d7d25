"""Change notifications published by GameEngine.

The engine never talks to a front end directly. Every state transition is
described by one of four frozen dataclasses and handed to a
``ChangeNotifier``; subscribers (a renderer, a logger, a test) pick the
variants they care about with ``isinstance`` or ``match``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Union

from .battleship import CellState, Coord, ShipState

logger = logging.getLogger(__name__)


class Side(Enum):
    """Who made a move, who owns the turn, who won."""

    SELF = "self"
    OPPONENT = "opponent"

    @property
    def other(self) -> "Side":
        return Side.OPPONENT if self is Side.SELF else Side.SELF


class BoardId(Enum):
    """Which of the two grids held by one session."""

    OWN = "own"
    OPPONENT = "opponent"


@dataclass(frozen=True, slots=True)
class GridReplaced:
    """A whole grid changed (ship placed, peer snapshot loaded)."""

    board: BoardId
    snapshot: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class MoveResolved:
    board: BoardId
    coord: Coord
    result: CellState  # HIT or MISS


@dataclass(frozen=True, slots=True)
class ShipStatesChanged:
    ships: tuple[ShipState, ...]


@dataclass(frozen=True, slots=True)
class GameEnded:
    winner: Side


Notification = Union[GridReplaced, MoveResolved, ShipStatesChanged, GameEnded]
Subscriber = Callable[[Notification], None]


class ChangeNotifier:
    """Ordered fan-out of notifications to subscribers.

    A subscriber that raises is logged and skipped; it never breaks the
    engine call that published, nor the subscribers after it.
    """

    def __init__(self) -> None:
        self._subs: List[tuple[object, Subscriber]] = []

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        """Register *fn*; the returned callable removes this registration only.

        The same callable may be subscribed more than once; each handle
        undoes exactly the subscribe() call that returned it.
        """
        token = object()
        self._subs.append((token, fn))

        def _unsubscribe() -> None:
            self._subs = [entry for entry in self._subs if entry[0] is not token]

        return _unsubscribe

    def publish(self, note: Notification) -> None:
        logger.debug("publish %r to %d subscriber(s)", note, len(self._subs))
        for _token, fn in list(self._subs):
            try:
                fn(note)
            except Exception:  # noqa: BLE001
                logger.exception("Subscriber %r failed on %s", fn, type(note).__name__)
