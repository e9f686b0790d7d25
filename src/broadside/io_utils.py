# io_utils.py
"""
Text rendering helpers for the terminal front end
–––––––––––––––––––––––––––––––––––––––––––––––––
• grid_lines()     – tag rows → labelled board lines
• two_grids()      – two boards side by side with centred headers
• reveal_rows()    – mark cells (e.g. the winner's surviving ships) on a copy
• fleet_summary()  – one line per ship with hits and sunk flag
"""

from typing import Iterable, List, Sequence

from .battleship import CellState, Coord, ShipState
from .coord_utils import format_coord

# Shown on the loser's view of the opponent grid for ships never hit
REVEAL_TAG = "#"


def _numeric_header(columns: int) -> str:
    return "   " + " ".join(f"{i:>2}" for i in range(1, columns + 1))


def grid_lines(rows: Sequence[str]) -> List[str]:
    """Render tag rows as a header line plus one labelled line per row."""
    if not rows:
        return []
    lines = [_numeric_header(len(rows[0]))]
    for idx, row in enumerate(rows):
        label = chr(ord("A") + idx)
        lines.append(f"{label:2} " + " ".join(f"{c:>2}" for c in row))
    return lines


def two_grids(left_rows: Sequence[str], right_rows: Sequence[str], *, header_left: str, header_right: str) -> List[str]:
    """Print-ready lines for two boards side by side."""
    left = grid_lines(left_rows)
    right = grid_lines(right_rows)
    if not left or not right:
        return []
    width = len(left[0])
    lines = [f"[{header_left}]".center(width) + "   " + f"[{header_right}]".center(width)]
    lines.extend(f"{l:<{width}}   {r}" for l, r in zip(left, right))
    return lines


def reveal_rows(rows: Sequence[str], cells: Iterable[Coord], tag: str = REVEAL_TAG) -> List[str]:
    """Return a copy of *rows* with every coordinate in *cells* set to *tag*."""
    grid = [list(row) for row in rows]
    for r, c in cells:
        grid[r][c] = tag
    return ["".join(row) for row in grid]


def apply_result(rows: Sequence[str], coord: Coord, result: CellState) -> List[str]:
    """Return a copy of *rows* with the square at *coord* set to *result*."""
    return reveal_rows(rows, [coord], result.value)


def fleet_summary(ships: Iterable[ShipState]) -> List[str]:
    lines = []
    for ship in ships:
        where = format_coord(*ship.cells[0]) if ship.cells else "--"
        status = "SUNK" if ship.sunk else f"{ship.hits}/{ship.length} hits"
        lines.append(f"{ship.name:<11} len {ship.length}  foot {where:<4} {status}")
    return lines
