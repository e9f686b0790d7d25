"""Square names: a row letter followed by a 1-based column number (``B7``)."""

import re
from typing import Tuple

from .config import BOARD_SIZE

_NAME_RE = re.compile(r"^([A-Z])(\d{1,2})$")


def coord_to_rowcol(name: str, size: int = BOARD_SIZE) -> Tuple[int, int]:
    """Map ``'A1'``…``'J10'`` (case and surrounding blanks ignored) to ``(row, col)``.

    Raises ValueError for anything that does not name a square on a
    *size* x *size* grid.
    """
    m = _NAME_RE.match(name.strip().upper())
    if m is None:
        raise ValueError(f"Invalid coordinate: {name.strip()!r}")
    row = ord(m.group(1)) - ord("A")
    col = int(m.group(2)) - 1
    if not (0 <= row < size and 0 <= col < size) or m.group(2).startswith("0"):
        raise ValueError(f"Invalid coordinate: {name.strip()!r}")
    return row, col


def is_coord(name: str, size: int = BOARD_SIZE) -> bool:
    try:
        coord_to_rowcol(name, size)
    except ValueError:
        return False
    return True


def format_coord(row: int, col: int) -> str:
    return f"{chr(ord('A') + row)}{col + 1}"
