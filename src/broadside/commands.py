from dataclasses import dataclass
from typing import Union

from .battleship import Orientation
from .coord_utils import coord_to_rowcol, is_coord


class CommandParseError(Exception):
    """Raised when a line cannot be parsed as a valid command."""


@dataclass(frozen=True)
class FireCommand:
    row: int
    col: int


@dataclass(frozen=True)
class QuitCommand:
    pass


@dataclass(frozen=True)
class PlaceCommand:
    row: int
    col: int
    orientation: Orientation


@dataclass(frozen=True)
class AutoCommand:
    """Place every remaining ship at random."""


Command = Union[FireCommand, QuitCommand]
PlacementCommand = Union[PlaceCommand, AutoCommand, QuitCommand]

_ORIENTATIONS = {"U": Orientation.UP, "UP": Orientation.UP, "L": Orientation.LEFT, "LEFT": Orientation.LEFT}


def _coord(text: str) -> tuple[int, int]:
    try:
        return coord_to_rowcol(text)
    except ValueError as e:
        raise CommandParseError(str(e)) from None


def parse_command(line: str) -> Command:
    """Parse an in-game line: ``FIRE <coord>``, a bare ``<coord>``, or ``QUIT``."""
    if line is None:
        raise CommandParseError("No command to parse")
    raw = line.strip()
    if not raw:
        raise CommandParseError("Empty command")
    parts = raw.split(maxsplit=1)
    verb = parts[0].upper()
    if verb == "FIRE":
        if len(parts) < 2 or not parts[1].strip():
            raise CommandParseError("FIRE requires a coordinate")
        row, col = _coord(parts[1])
        return FireCommand(row=row, col=col)
    elif verb == "QUIT" and len(parts) == 1:
        return QuitCommand()
    elif len(parts) == 1 and is_coord(verb):
        row, col = coord_to_rowcol(verb)
        return FireCommand(row=row, col=col)
    else:
        raise CommandParseError(f"Unknown command: {raw}")


def parse_placement(line: str) -> PlacementCommand:
    """Parse a placement line: ``<coord> <U|L>``, ``AUTO`` or ``QUIT``.

    The coordinate is the ship's foot; the ship extends up or left from it.
    """
    if line is None:
        raise CommandParseError("No command to parse")
    parts = line.strip().upper().split()
    if not parts:
        raise CommandParseError("Empty command")
    if parts == ["AUTO"]:
        return AutoCommand()
    if parts == ["QUIT"]:
        return QuitCommand()
    if len(parts) != 2:
        raise CommandParseError("Syntax: <coord> <U|L>, e.g. E1 U")
    row, col = _coord(parts[0])
    orientation = _ORIENTATIONS.get(parts[1])
    if orientation is None:
        raise CommandParseError("Orientation must be U or L")
    return PlaceCommand(row=row, col=col, orientation=orientation)
