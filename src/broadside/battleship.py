"""
battleship.py

Core data structures for one player's grid:
 - CellState / Orientation enums
 - Ship, the mutable record of a placed vessel and the hits it has taken
 - Board, the size x size grid plus its ship roster and the cell -> ship index
 - make_fleet(), the roster factory

A Board knows nothing about turns, sides or the network. GameEngine in
``engine.py`` owns two of them and decides which one a move lands on.
"""

from __future__ import annotations

import enum
import random
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .config import BOARD_SIZE, SHIPS

Coord = tuple[int, int]


class CellState(str, enum.Enum):
    """State of a single grid square; the value doubles as its one-char tag."""

    EMPTY = "."
    SHIP = "S"
    HIT = "X"
    MISS = "o"

    @property
    def resolved(self) -> bool:
        return self in (CellState.HIT, CellState.MISS)


class Orientation(str, enum.Enum):
    """Direction a ship extends from its foot."""

    UP = "up"  # towards row 0
    LEFT = "left"  # towards column 0

    @property
    def step(self) -> Coord:
        return (-1, 0) if self is Orientation.UP else (0, -1)


class PlacementError(Exception):
    """Base for rejected ship placements. The board is left unchanged."""


class OutOfBounds(PlacementError):
    """A computed ship cell falls outside the grid."""


class Overlap(PlacementError):
    """A computed ship cell is already occupied by another ship."""


class AlreadyPlaced(PlacementError):
    """The roster slot already has a position on this board."""


class UnknownShip(PlacementError):
    """The ship index does not name a roster slot."""


class PlacementClosed(PlacementError):
    """Shots have already been resolved (or the game is over); the fleet is fixed."""


@dataclass(frozen=True)
class ShipState:
    """Read-only copy of a Ship handed to notification subscribers."""

    id: int
    name: str
    length: int
    hits: int
    sunk: bool
    cells: tuple[Coord, ...]


@dataclass
class Ship:
    """A roster entry: name, length, the cells it covers and hits taken."""

    id: int
    name: str
    length: int
    cells: list[Coord] = field(default_factory=list)
    hits: int = 0

    @property
    def placed(self) -> bool:
        return bool(self.cells)

    @property
    def sunk(self) -> bool:
        return self.hits == self.length

    def register_hit(self) -> None:
        if self.sunk:
            raise ValueError(f"{self.name} is already sunk")
        self.hits += 1

    def state(self) -> ShipState:
        return ShipState(self.id, self.name, self.length, self.hits, self.sunk, tuple(self.cells))


def make_fleet(roster: Iterable[tuple[str, int]] = SHIPS) -> list[Ship]:
    """Build one fresh, unplaced Ship per ``(name, length)`` roster entry."""
    return [Ship(id=i, name=name, length=length) for i, (name, length) in enumerate(roster)]


class Board:
    """
    One player's grid.

    We store:
      - self.cells: size x size CellState values
      - self.ships: the roster, in placement order, as Ship objects
      - self._index: (row, col) -> roster slot for every placed ship cell

    The index is derived from ``Ship.cells`` and is only written by
    place_ship(), so the two never disagree.

    A Board built with an empty roster is an opponent *mirror*: it never
    learns individual ships, only SHIP cells loaded from the peer's
    snapshot, and its fleet counts as destroyed once none of those remain.
    """

    def __init__(self, size: int = BOARD_SIZE, roster: Sequence[tuple[str, int]] | None = SHIPS):
        self.size = size
        self.cells: list[list[CellState]] = [[CellState.EMPTY for _ in range(size)] for _ in range(size)]
        self.ships: list[Ship] = make_fleet(roster) if roster else []
        self._index: dict[Coord, int] = {}
        self._ship_cells_loaded = 0

    # ------------------------------------------------------------------
    # geometry
    # ------------------------------------------------------------------
    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.size and 0 <= col < self.size

    @staticmethod
    def span(origin: Coord, length: int, orientation: Orientation) -> list[Coord]:
        """Cells covered by a *length* ship whose foot is *origin*, foot first."""
        row, col = origin
        dr, dc = orientation.step
        return [(row + dr * i, col + dc * i) for i in range(length)]

    # ------------------------------------------------------------------
    # placement
    # ------------------------------------------------------------------
    def can_place_ship(self, origin: Coord, length: int, orientation: Orientation) -> bool:
        """Return True if a ship of *length* fits with its foot at *origin*."""
        cells = self.span(origin, length, orientation)
        return all(self.in_bounds(r, c) and self.cells[r][c] is CellState.EMPTY for r, c in cells)

    def place_ship(self, origin: Coord, ship_index: int, orientation: Orientation) -> Ship:
        """Place roster slot *ship_index* with its foot at *origin*.

        Raises a PlacementError subclass and leaves the board untouched when
        the slot is unknown or already placed, or when the span leaves the
        grid or crosses another ship.
        """
        if not 0 <= ship_index < len(self.ships):
            raise UnknownShip(f"no ship in roster slot {ship_index}")
        ship = self.ships[ship_index]
        if ship.placed:
            raise AlreadyPlaced(f"{ship.name} is already placed")

        orientation = Orientation(orientation)
        cells = self.span(origin, ship.length, orientation)
        for r, c in cells:
            if not self.in_bounds(r, c):
                raise OutOfBounds(f"{ship.name} at {origin} {orientation.value} leaves the board at {(r, c)}")
        for r, c in cells:
            if self.cells[r][c] is not CellState.EMPTY:
                raise Overlap(f"{ship.name} at {origin} {orientation.value} crosses another ship at {(r, c)}")

        for r, c in cells:
            self.cells[r][c] = CellState.SHIP
            self._index[(r, c)] = ship.id
        ship.cells = cells
        return ship

    def place_randomly(self, rng: random.Random | None = None) -> None:
        """Place every still-unplaced roster ship at a random legal position."""
        rng = rng or random.Random()
        for ship in self.unplaced():
            while True:
                orientation = rng.choice(list(Orientation))
                origin = (rng.randrange(self.size), rng.randrange(self.size))
                if self.can_place_ship(origin, ship.length, orientation):
                    self.place_ship(origin, ship.id, orientation)
                    break

    def unplaced(self) -> list[Ship]:
        return [ship for ship in self.ships if not ship.placed]

    def all_placed(self) -> bool:
        return bool(self.ships) and not self.unplaced()

    def ship_at(self, row: int, col: int) -> Ship | None:
        slot = self._index.get((row, col))
        return None if slot is None else self.ships[slot]

    # ------------------------------------------------------------------
    # attacks
    # ------------------------------------------------------------------
    def fire_at(self, row: int, col: int) -> tuple[CellState | None, Ship | None]:
        """Resolve a shot at (*row*, *col*).

        Returns ``(HIT, ship)``, ``(MISS, None)`` or ``(None, None)`` when the
        square was already resolved. *ship* is None on a mirror board.
        """
        cell = self.cells[row][col]
        if cell.resolved:
            return None, None
        if cell is CellState.SHIP:
            self.cells[row][col] = CellState.HIT
            ship = self.ship_at(row, col)
            if ship is not None:
                ship.register_hit()
            return CellState.HIT, ship
        self.cells[row][col] = CellState.MISS
        return CellState.MISS, None

    def fleet_destroyed(self) -> bool:
        """True once every ship on this board is sunk."""
        if self.ships:
            return all(ship.sunk for ship in self.ships)
        return self._ship_cells_loaded > 0 and not self.remaining_ship_cells()

    def remaining_ship_cells(self) -> list[Coord]:
        return [(r, c) for r in range(self.size) for c in range(self.size) if self.cells[r][c] is CellState.SHIP]

    # ------------------------------------------------------------------
    # snapshots
    # ------------------------------------------------------------------
    def snapshot(self, *, reveal: bool = True) -> tuple[str, ...]:
        """Rows of one-char cell tags. With reveal=False SHIP shows as EMPTY."""
        rows = []
        for r in range(self.size):
            tags = [cell.value for cell in self.cells[r]]
            if not reveal:
                tags = [CellState.EMPTY.value if t == CellState.SHIP.value else t for t in tags]
            rows.append("".join(tags))
        return tuple(rows)

    def layout(self) -> tuple[str, ...]:
        """Rows of EMPTY/SHIP tags only: the ship layout as it was placed."""
        occupied = (CellState.SHIP, CellState.HIT)
        return tuple(
            "".join(CellState.SHIP.value if cell in occupied else CellState.EMPTY.value for cell in row)
            for row in self.cells
        )

    def load_snapshot(self, rows: Sequence[str]) -> None:
        """Replace the grid with *rows* of EMPTY/SHIP tags (the peer's layout).

        Raises ValueError on a wrong shape or any other tag.
        """
        if len(rows) != self.size or any(len(row) != self.size for row in rows):
            raise ValueError(f"expected a {self.size}x{self.size} grid")
        allowed = {CellState.EMPTY.value, CellState.SHIP.value}
        for row in rows:
            bad = set(row) - allowed
            if bad:
                raise ValueError(f"unexpected cell tags {sorted(bad)!r}")
        self.cells = [[CellState(tag) for tag in row] for row in rows]
        self._ship_cells_loaded = sum(row.count(CellState.SHIP.value) for row in rows)
