"""Terminal front end and process entry point.

    broadside server 4000          # wait for an opponent, move first
    broadside client 4000          # dial localhost:4000, move second

Both players place their fleet first (or pass ``--auto``); the connection is
only opened once every ship is down. Ships are placed by their *foot*: the
ship extends up (U) or left (L) from the given square.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, TextIO

from . import config as _cfg
from .battleship import CellState, PlacementError
from .commands import (
    AutoCommand,
    CommandParseError,
    FireCommand,
    PlaceCommand,
    QuitCommand,
    parse_command,
    parse_placement,
)
from .engine import GameEngine
from .events import BoardId, GameEnded, GridReplaced, MoveResolved, Notification, ShipStatesChanged, Side
from .io_utils import apply_result, fleet_summary, reveal_rows, two_grids
from .session import EndReport, PeerSession, Role

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Bad command-line configuration; fatal before any game state exists."""


@dataclass(frozen=True)
class Settings:
    role: Role
    port: int
    host: str
    auto: bool
    key: Optional[bytes]
    move_timeout: float


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="broadside", description="Two-player Battleship over a direct TCP link")
    parser.add_argument("role", nargs="?", help="server (listen, move first) or client (dial, move second)")
    parser.add_argument("port", nargs="?", help="TCP port to listen on / dial")
    parser.add_argument("--host", default=_cfg.DEFAULT_HOST, help="Host the client dials (default %(default)s).")
    parser.add_argument("--auto", action="store_true", help="Place the fleet at random.")
    parser.add_argument(
        "--secure",
        nargs="?",
        const="",
        default=None,
        metavar="HEX",
        help="Encrypt frames with AES-GCM using a pre-shared key (default key from BROADSIDE_KEY).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=_cfg.MOVE_TIMEOUT,
        help="Seconds to wait for the opponent's move, 0 for no limit.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity.")
    parser.add_argument("-q", "--quiet", dest="silent", action="store_true", help="Only log errors.")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Validate parsed arguments; raise ConfigurationError on anything unusable."""
    if args.role is None:
        raise ConfigurationError("missing role: expected 'server' or 'client'")
    try:
        role = Role(args.role.lower())
    except ValueError:
        raise ConfigurationError(
            f"invalid role {args.role!r}: the arguments must be in the format server|client <port>"
        ) from None
    if args.port is None:
        raise ConfigurationError("missing port number")
    try:
        port = int(args.port)
    except ValueError:
        raise ConfigurationError(f"port must be an integer, got {args.port!r}") from None
    if not 0 <= port <= 65535:
        raise ConfigurationError(f"port out of range: {port}")
    if args.timeout < 0:
        raise ConfigurationError("timeout cannot be negative")

    key = None
    if args.secure is not None:
        try:
            key = bytes.fromhex(args.secure) if args.secure else _cfg.DEFAULT_KEY
        except ValueError:
            raise ConfigurationError("--secure key must be hex") from None
        if len(key) not in (16, 24, 32):
            raise ConfigurationError("--secure key must be 16, 24 or 32 bytes")
    return Settings(role, port, args.host, args.auto, key, args.timeout)


def configure_logging(args: argparse.Namespace) -> None:
    if args.debug:
        os.environ["BROADSIDE_DEBUG"] = "1"
    if args.silent:
        level = logging.ERROR
    elif args.debug or _cfg.DEBUG:
        level = logging.DEBUG
    elif args.verbose >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


# ------------------------------------------------------------
# Terminal view
# ------------------------------------------------------------


class TerminalView:
    """Notification subscriber that keeps its own copy of both grids and redraws."""

    def __init__(self, size: int = _cfg.BOARD_SIZE, out: TextIO = sys.stdout) -> None:
        blank = "." * size
        self.rows = {BoardId.OWN: [blank] * size, BoardId.OPPONENT: [blank] * size}
        self.ships = ()
        self.out = out
        self._lock = threading.Lock()

    def __call__(self, note: Notification) -> None:
        with self._lock:
            if isinstance(note, GridReplaced):
                self.rows[note.board] = list(note.snapshot)
                self.draw()
            elif isinstance(note, MoveResolved):
                self.rows[note.board] = apply_result(self.rows[note.board], note.coord, note.result)
                who = "You" if note.board is BoardId.OPPONENT else "Opponent"
                verdict = "HIT" if note.result is CellState.HIT else "MISS"
                self.draw()
                self._print(f"{who} fired: {verdict}")
            elif isinstance(note, ShipStatesChanged):
                before = {s.id for s in self.ships if s.sunk}
                self.ships = note.ships
                for ship in note.ships:
                    if ship.sunk and ship.id not in before:
                        self._print(f"Your {ship.name} was sunk!")
            elif isinstance(note, GameEnded):
                self._print("Game over – " + ("you win!" if note.winner is Side.SELF else "you lost!"))

    def draw(self) -> None:
        lines = two_grids(
            self.rows[BoardId.OWN], self.rows[BoardId.OPPONENT], header_left="Your fleet", header_right="Opponent"
        )
        self._print("\n" + "\n".join(lines))

    def _print(self, text: str) -> None:
        print(text, file=self.out, flush=True)


# ------------------------------------------------------------
# Phases
# ------------------------------------------------------------


def place_fleet(engine: GameEngine, read: Callable[[str], str], out: TextIO = sys.stdout) -> bool:
    """Interactive placement. Returns False if the player quit or input ended."""
    while not engine.placement_complete():
        ship = engine.own.unplaced()[0]
        try:
            line = read(f"Place {ship.name} (length {ship.length}) – <foot> <U|L>, AUTO or QUIT: ")
        except EOFError:
            return False
        try:
            cmd = parse_placement(line)
        except CommandParseError as e:
            print(f"[!] {e}", file=out)
            continue
        if isinstance(cmd, QuitCommand):
            return False
        if isinstance(cmd, AutoCommand):
            engine.place_randomly()
            break
        assert isinstance(cmd, PlaceCommand)
        try:
            engine.place_ship((cmd.row, cmd.col), ship.id, cmd.orientation)
        except PlacementError as e:
            print(f"[!] Cannot place {ship.name}: {e}", file=out)
    return True


def play(session: PeerSession, read: Callable[[str], str], out: TextIO = sys.stdout) -> EndReport:
    """Feed local moves to *session* until the match ends; return its report."""
    while not session.finished.is_set():
        if not session.wait_for_turn(0.25):
            continue
        try:
            line = read("Your move (e.g. B5, or QUIT): ")
        except EOFError:
            session.close()
            break
        try:
            cmd = parse_command(line)
        except CommandParseError as e:
            print(f"[!] {e}", file=out)
            continue
        if isinstance(cmd, QuitCommand):
            session.close()
            break
        assert isinstance(cmd, FireCommand)
        outcome = session.submit_local_move((cmd.row, cmd.col)).result()
        if not outcome.accepted and not session.finished.is_set():
            print("[!] You already fired there – pick another square.", file=out)
    session.join()
    assert session.report is not None
    return session.report


def print_report(report: EndReport, view: TerminalView, out: TextIO = sys.stdout) -> None:
    if view.ships:
        print("\n".join(fleet_summary(view.ships)), file=out)
    if report.winner is None:
        print(f"Match aborted: {report.reason}.", file=out)
        return
    if report.won:
        print(f"You win! ({report.reason})", file=out)
        return
    print(f"You lost! Better luck next time. ({report.reason})", file=out)
    if report.revealed:
        rows = reveal_rows(view.rows[BoardId.OPPONENT], report.revealed)
        print("\n".join(two_grids(view.rows[BoardId.OWN], rows, header_left="Your fleet", header_right="Their fleet")), file=out)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args)
    try:
        settings = settings_from_args(args)
    except ConfigurationError as e:
        print(f"broadside: error: {e}", file=sys.stderr)
        return 2

    engine = GameEngine(first_mover=settings.role.first_mover)
    view = TerminalView()
    engine.notifier.subscribe(view)

    if settings.auto:
        engine.place_randomly()
    elif not place_fleet(engine, input):
        print("Placement abandoned.")
        return 1

    session = PeerSession(
        engine,
        settings.role,
        settings.port,
        host=settings.host,
        key=settings.key,
        move_timeout=settings.move_timeout,
    )
    session.start()
    if settings.role is Role.SERVER:
        while not session.listening.wait(0.25) and not session.finished.is_set():
            pass
        print(f"Waiting for an opponent on port {session.port}…")
    else:
        print(f"Connecting to {settings.host}:{settings.port}…")

    try:
        report = play(session, input)
    except KeyboardInterrupt:
        session.close()
        session.join()
        report = session.report
    print_report(report, view)
    return 0 if report.winner is not None else 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
