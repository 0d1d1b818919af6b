"""Alignment cells and the per-region alignment matrix.

Rows are split into three segments (pre flank, repeat core, post flank). Read
rows may carry pending insertion cells; building the matrix opens a column for
every pending cell and pads the other rows with gaps so that each segment ends
up with one width across all rows.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Sequence, Tuple

logger = logging.getLogger(__name__)

SEGMENTS = ("pre", "core", "post")


class CellKind(enum.Enum):
    BASE = "base"
    GAP = "gap"
    OUT = "out"  # outside the read
    SOFT = "soft"  # soft clipped base
    PENDING = "pending"  # inserted base waiting for its column
    DROPPED = "dropped"  # inserted base removed from the main row


@dataclass(frozen=True)
class Cell:
    kind: CellKind
    base: str = ""
    insertion: str = ""  # retained inserted bases that follow this cell

    @property
    def char(self) -> str:
        if self.kind is CellKind.BASE:
            return self.base
        if self.kind is CellKind.PENDING:
            return self.base.lower()
        if self.kind is CellKind.GAP:
            return "-"
        if self.kind is CellKind.OUT:
            return "x"
        if self.kind is CellKind.SOFT:
            return "S"
        return ""


GAP_CELL = Cell(CellKind.GAP)
OUT_CELL = Cell(CellKind.OUT)


def base_cell(base: str) -> Cell:
    return Cell(CellKind.BASE, base.upper())


def cells_from_text(seq: str) -> List[Cell]:
    return [base_cell(b) for b in seq]


def with_insertion(cell: Cell, bases: str) -> Cell:
    return replace(cell, insertion=cell.insertion + bases)


def render(cells: Iterable[Cell]) -> str:
    return "".join(c.char for c in cells)


@dataclass
class AlignedRow:
    """One row of the alignment matrix, split into its three segments."""

    pre: List[Cell] = field(default_factory=list)
    core: List[Cell] = field(default_factory=list)
    post: List[Cell] = field(default_factory=list)

    def segment(self, name: str) -> List[Cell]:
        return getattr(self, name)

    def texts(self) -> Tuple[str, str, str]:
        return render(self.pre), render(self.core), render(self.post)

    def allele_length(self) -> int:
        return sum(1 for c in self.core if c.kind is not CellKind.GAP)


def open_insertion_columns(segments: Sequence[List[Cell]]) -> int:
    """Open a column wherever some row holds a pending insertion cell.

    Rows holding the pending cell have it revealed as a base; every other row
    gets a gap at that index. Returns the number of columns opened.
    """
    opened = 0
    index = 0
    while index < max((len(s) for s in segments), default=0):
        if any(index < len(s) and s[index].kind is CellKind.PENDING for s in segments):
            for s in segments:
                if index < len(s) and s[index].kind is CellKind.PENDING:
                    s[index] = base_cell(s[index].base)
                else:
                    s.insert(min(index, len(s)), GAP_CELL)
            opened += 1
        index += 1
    return opened


class AlignmentMatrix:
    """Reference row plus read rows, synchronised on insertion columns.

    Row 0 is the reference. Call :meth:`build` once; rows are modified in place.
    """

    def __init__(self, reference: AlignedRow, reads: Sequence[AlignedRow]) -> None:
        self.rows: List[AlignedRow] = [reference, *reads]
        self._built = False

    @property
    def reference(self) -> AlignedRow:
        return self.rows[0]

    @property
    def reads(self) -> List[AlignedRow]:
        return self.rows[1:]

    def build(self) -> "AlignmentMatrix":
        if self._built:
            return self
        for name in SEGMENTS:
            opened = open_insertion_columns([row.segment(name) for row in self.rows])
            if opened:
                logger.debug("Opened %d insertion column(s) in %s segment", opened, name)
        self._migrate_post_gaps()
        self._built = True
        return self

    def _migrate_post_gaps(self) -> None:
        # Leading gap columns of the reference post flank belong to the core.
        post = self.reference.post
        n = 0
        while n < len(post) and post[n].kind is CellKind.GAP:
            n += 1
        if n == 0:
            return
        for row in self.rows:
            row.core.extend(row.post[:n])
            del row.post[:n]

    def allele_length(self, row_index: int) -> int:
        return self.rows[row_index].allele_length()

    def widths(self) -> Tuple[int, int, int]:
        ref = self.reference
        return len(ref.pre), len(ref.core), len(ref.post)
