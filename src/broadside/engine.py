"""Game-state engine for one player's side of a match.

GameEngine owns the local fleet (``own``) and the local view of the peer's
fleet (``mirror``). It validates placement, resolves moves into HIT/MISS,
tracks sunk ships and decides when the match is over. A move by the side
that does not own the turn is rejected, but the engine never moves
``turn_owner`` on its own: only the protocol layer does, through pass_turn().

Everything here is synchronous and single-threaded.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Sequence

from .battleship import Board, CellState, Coord, Orientation, PlacementClosed, Ship, ShipState
from .config import BOARD_SIZE, SHIPS
from .events import (
    BoardId,
    ChangeNotifier,
    GameEnded,
    GridReplaced,
    MoveResolved,
    ShipStatesChanged,
    Side,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoveOutcome:
    accepted: bool
    result: CellState | None = None  # HIT or MISS when accepted

    @property
    def hit(self) -> bool:
        return self.result is CellState.HIT


REJECTED = MoveOutcome(False)


class GameEngine:
    """State machine over (board, coordinate, mover) triples."""

    def __init__(
        self,
        *,
        size: int = BOARD_SIZE,
        roster: Sequence[tuple[str, int]] = SHIPS,
        notifier: ChangeNotifier | None = None,
        first_mover: Side = Side.SELF,
    ) -> None:
        self.own = Board(size, roster)
        self.mirror = Board(size, roster=None)
        self.notifier = notifier or ChangeNotifier()
        self.turn_owner: Side = first_mover
        self.game_over = False
        self.winner: Side | None = None
        self._firing_started = False

    # ------------------------------------------------------------------
    # placement
    # ------------------------------------------------------------------
    def _check_placement_open(self) -> None:
        if self._firing_started or self.game_over:
            raise PlacementClosed("ships cannot be placed once shots have been fired")

    def place_ship(self, origin: Coord, ship_index: int, orientation: Orientation) -> Ship:
        """Place a roster ship on the own board; raises PlacementError on failure.

        Placement closes with the first accepted move (PlacementClosed).
        Whether the whole fleet is down before play starts is checked by
        PeerSession, not here.
        """
        self._check_placement_open()
        ship = self.own.place_ship(origin, ship_index, orientation)
        logger.debug("placed %s at %s", ship.name, ship.cells)
        self.notifier.publish(GridReplaced(BoardId.OWN, self.own.snapshot()))
        return ship

    def place_randomly(self, rng: random.Random | None = None) -> None:
        """Place all remaining ships at random, notifying once at the end."""
        self._check_placement_open()
        self.own.place_randomly(rng)
        self.notifier.publish(GridReplaced(BoardId.OWN, self.own.snapshot()))

    def placement_complete(self) -> bool:
        return self.own.all_placed()

    def load_opponent_snapshot(self, rows: Sequence[str]) -> None:
        """Install the peer's ship layout into the mirror (ships stay hidden)."""
        self.mirror.load_snapshot(rows)
        self.notifier.publish(GridReplaced(BoardId.OPPONENT, self.mirror.snapshot(reveal=False)))

    # ------------------------------------------------------------------
    # moves
    # ------------------------------------------------------------------
    def board_for(self, mover: Side) -> tuple[BoardId, Board]:
        """The board *mover*'s shot lands on."""
        if mover is Side.SELF:
            return BoardId.OPPONENT, self.mirror
        return BoardId.OWN, self.own

    def submit_move(self, target: Coord, mover: Side) -> MoveOutcome:
        """Resolve one shot by *mover* at *target*.

        Rejected moves (game over, not *mover*'s turn, off-grid target,
        square already resolved) change nothing and publish nothing.
        """
        if self.game_over:
            return REJECTED
        if mover is not self.turn_owner:
            logger.debug("%s moved out of turn", mover.value)
            return REJECTED
        board_id, board = self.board_for(mover)
        row, col = target
        if not board.in_bounds(row, col):
            return REJECTED

        result, ship = board.fire_at(row, col)
        if result is None:
            logger.debug("%s re-fired at resolved square %s", mover.value, target)
            return REJECTED

        self._firing_started = True
        logger.debug("%s fired at %s on %s: %s", mover.value, target, board_id.value, result.name)
        self.notifier.publish(MoveResolved(board_id, (row, col), result))
        if ship is not None:
            self.notifier.publish(ShipStatesChanged(self.ship_states()))

        if board.fleet_destroyed():
            self.game_over = True
            self.winner = mover
            logger.info("fleet destroyed on %s board – %s wins", board_id.value, mover.value)
            self.notifier.publish(GameEnded(mover))
        return MoveOutcome(True, result)

    def pass_turn(self) -> Side:
        """Hand the turn to the other side; called by the protocol layer only."""
        self.turn_owner = self.turn_owner.other
        return self.turn_owner

    def end(self, winner: Side) -> None:
        """Force the end of the match (peer gone); a finished game is left alone."""
        if self.game_over:
            return
        self.game_over = True
        self.winner = winner
        self.notifier.publish(GameEnded(winner))

    # ------------------------------------------------------------------
    # read-only accessors
    # ------------------------------------------------------------------
    def is_game_over(self) -> bool:
        return self.game_over

    def snapshot(self, board: BoardId, *, reveal: bool = False) -> tuple[str, ...]:
        """Tag rows for *board*; the mirror hides ships unless *reveal*."""
        if board is BoardId.OWN:
            return self.own.snapshot()
        return self.mirror.snapshot(reveal=reveal)

    def ship_states(self) -> tuple[ShipState, ...]:
        return tuple(ship.state() for ship in self.own.ships)

    def remaining_ship_cells(self, board: BoardId) -> list[Coord]:
        target = self.own if board is BoardId.OWN else self.mirror
        return target.remaining_ship_cells()
