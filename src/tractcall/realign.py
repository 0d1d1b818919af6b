from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .alignment import (
    GAP_CELL,
    OUT_CELL,
    AlignedRow,
    Cell,
    CellKind,
    base_cell,
    with_insertion,
)
from .utils import mean_base_quality

logger = logging.getLogger(__name__)

CIGAR_CHARS = "MIDNSHP=XB"

# Operations that consume read bases (M, I, S, =, X).
_QUERY_OPS = (0, 1, 4, 7, 8)


@dataclass
class RealignedRead:
    """A read projected onto a reference window, before matrix expansion."""

    pre: List[Cell]
    core: List[Cell]
    post: List[Cell]
    avg_quality: float = 0.0
    insertion_bonus: int = 0
    insertions: List[str] = field(default_factory=list)

    @property
    def has_insertions(self) -> bool:
        return bool(self.insertions)

    def render(self) -> AlignedRow:
        """Matrix row with every retained insertion laid out as pending cells.

        An insertion following the last cell of a segment opens the next
        segment; after the last post cell it stays in post.
        """
        segments: List[List[Cell]] = [[], [], []]
        carry: List[Cell] = []
        for seg_idx, cells in enumerate((self.pre, self.core, self.post)):
            out = segments[seg_idx]
            out.extend(carry)
            carry = []
            for pos, cell in enumerate(cells):
                out.append(cell)
                if not cell.insertion:
                    continue
                pending = [Cell(CellKind.PENDING, b) for b in cell.insertion]
                if pos == len(cells) - 1 and seg_idx < 2:
                    carry = pending
                else:
                    out.extend(pending)
        if carry:
            segments[2].extend(carry)
        return AlignedRow(pre=segments[0], core=segments[1], post=segments[2])


def cigar_string(cigar: Sequence[Tuple[int, int]]) -> str:
    return "".join(f"{length}{CIGAR_CHARS[op]}" for op, length in cigar)


def query_length(cigar: Sequence[Tuple[int, int]]) -> int:
    """Read size as consumed by the operation sequence (M/I/S/=/X)."""
    return sum(length for op, length in cigar if op in _QUERY_OPS)


def realign_cells(
    cigar: Sequence[Tuple[int, int]],
    sequence: str,
    *,
    align_start: int,
    ref_start: int,
    flank: int,
    length: int,
) -> Optional[Tuple[List[Cell], int]]:
    """Walk the CIGAR and lay the read out against the reference window.

    align_start, ref_start:
        1-based alignment start of the read and of the repeat target.

    Returns the compacted row (``flank`` cells before the target, then the
    target and whatever follows) and the number of inserted bases that fell
    inside the target, or None when the read cannot be used.
    """
    if query_length(cigar) != len(sequence):
        logger.debug("CIGAR consumes %d bases but read has %d", query_length(cigar), len(sequence))
        return None

    work: List[Cell] = [base_cell(b) for b in sequence]
    it = 0
    start: Optional[int] = None
    pos_left = ref_start - align_start
    pos_left_ins = pos_left - flank

    for n_op, (op, oplen) in enumerate(cigar):
        if op in (0, 7, 8, 4):  # M, =, X, S
            if op == 4 and n_op == 0:
                # leading clipped bases sit left of the alignment start
                pos_left += oplen
            for _ in range(oplen):
                if pos_left > 0:
                    pos_left -= 1
                    pos_left_ins -= 1
                elif start is None:
                    start = it
                if op == 4:
                    work[it] = Cell(CellKind.SOFT, work[it].base)
                it += 1

        elif op == 1:  # I
            bases = "".join(c.base for c in work[it : it + oplen])
            for k in range(it, it + oplen):
                work[k] = Cell(CellKind.DROPPED, work[k].base)
            if it > 0 and pos_left_ins <= 0 and work[it - 1].kind is not CellKind.DROPPED:
                work[it - 1] = with_insertion(work[it - 1], bases)
            it += oplen

        elif op == 2:  # D
            for _ in range(oplen):
                work.insert(it, GAP_CELL)
                pos_left -= 1
                pos_left_ins -= 1
                if pos_left < 0 and start is None:
                    start = it
                it += 1

        elif op == 3:  # N
            return None

        elif op == 5:  # H
            continue

        elif op == 6:  # P
            if pos_left > 0:
                pos_left -= 1
                pos_left_ins -= 1
            elif start is None:
                start = it

        else:
            logger.debug("Unsupported CIGAR operation %d", op)
            return None

    if start is None:
        start = 0

    pre: List[Cell] = []
    kept = 0
    k = start
    while kept < flank and k > 0:
        k -= 1
        pre.append(work[k])
        if work[k].kind is not CellKind.DROPPED:
            kept += 1
    pre.reverse()

    row = [OUT_CELL] * (flank - kept) + pre
    row += [OUT_CELL] * max(0, align_start - ref_start)
    row += work[start:]

    compact: List[Cell] = []
    bonus = 0
    for cell in row:
        if cell.kind is CellKind.DROPPED:
            if flank <= len(compact) <= flank + length - 2:
                bonus += 1
            continue
        compact.append(cell)
    return compact, bonus


def realign_read(
    cigar: Sequence[Tuple[int, int]],
    sequence: str,
    qualities: Optional[Sequence[int]],
    *,
    align_start: int,
    ref_start: int,
    flank: int,
    length: int,
) -> Optional[RealignedRead]:
    """Realign one read against a target of ``length`` bases at ``ref_start``."""
    laid_out = realign_cells(
        cigar,
        sequence,
        align_start=align_start,
        ref_start=ref_start,
        flank=flank,
        length=length,
    )
    if laid_out is None:
        return None
    compact, bonus = laid_out
    if len(compact) < flank + 1:
        return None

    pre = compact[:flank]
    core = compact[flank : flank + length]
    if len(core) < length:
        core = core + [OUT_CELL] * (length - len(core))
        post: List[Cell] = []
    else:
        post = compact[flank + length : flank + length + flank]
    post = post + [OUT_CELL] * (flank - len(post))

    insertions = [c.insertion for c in (*pre, *core, *post) if c.insertion]
    return RealignedRead(
        pre=pre,
        core=core,
        post=post,
        avg_quality=mean_base_quality(qualities),
        insertion_bonus=bonus,
        insertions=insertions,
    )
