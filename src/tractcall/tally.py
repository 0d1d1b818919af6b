from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pysam

from .alignment import Cell, CellKind
from .config import CallerSettings
from .models import AlleleBucket, ReferenceWindow, ScoredRead, Target
from .realign import cigar_string, query_length, realign_read
from .utils import format_number, truncate

logger = logging.getLogger(__name__)

# Positions next to the repeat where an out-of-read cell fails the read.
FLANK_STRICT_POSITIONS = 3


def flag_string(read: pysam.AlignedSegment) -> str:
    """Compact flag letters, e.g. ``pPr1``."""
    letters = [
        (read.is_paired, "p"),
        (read.is_proper_pair, "P"),
        (read.is_unmapped, "u"),
        (read.mate_is_unmapped, "U"),
        (read.is_reverse, "r"),
        (read.mate_is_reverse, "R"),
        (read.is_read1, "1"),
        (read.is_read2, "2"),
        (read.is_secondary, "s"),
        (read.is_qcfail, "f"),
        (read.is_duplicate, "d"),
    ]
    return "".join(ch for flag, ch in letters if flag)


def _count_flank_matches(cells: Sequence[Cell], reference: str) -> Optional[int]:
    """Consecutive reference matches counted from the repeat boundary.

    Both ``cells`` and ``reference`` are ordered outward from the repeat.
    Returns None when a position next to the repeat falls outside the read,
    is soft clipped or holds a gap.
    """
    matches = 0
    streak = True
    for ctr, cell in enumerate(cells):
        ref_base = reference[ctr] if ctr < len(reference) else None
        if cell.kind is CellKind.BASE and cell.base == ref_base:
            if streak:
                matches += 1
            continue
        streak = False
        if ctr < FLANK_STRICT_POSITIONS and cell.kind in (CellKind.OUT, CellKind.SOFT, CellKind.GAP):
            return None
    return matches


def left_flank_matches(pre: Sequence[Cell], left_flank: str) -> Optional[int]:
    return _count_flank_matches(list(reversed(pre)), left_flank[::-1])


def right_flank_matches(post: Sequence[Cell], right_flank: str) -> Optional[int]:
    return _count_flank_matches(list(post), right_flank)


def _new_counts() -> Dict[str, int]:
    return {
        "reads_seen": 0,
        "reads_star": 0,
        "reads_duplicate": 0,
        "reads_unaligned": 0,
        "reads_not_spanning": 0,
        "reads_length_filter": 0,
        "reads_flank_filter": 0,
        "reads_mapq_filter": 0,
        "reads_multi_filter": 0,
        "reads_pair_filter": 0,
        "reads_kept": 0,
    }


@dataclass
class ReadCollection:
    reads: List[ScoredRead] = field(default_factory=list)
    depth: int = 0
    stars: int = 0
    counts: Dict[str, int] = field(default_factory=_new_counts)

    @property
    def avg_mapq(self) -> Optional[float]:
        if not self.reads:
            return None
        return sum(r.mapq for r in self.reads) / len(self.reads)


def _annotation(read: pysam.AlignedSegment, left: int, right: int, avg_quality: float) -> str:
    return (
        f" {read.reference_start + 1} {query_length(read.cigartuples)} {left} {right}"
        f" B:{format_number(truncate(avg_quality, 4))} M:{read.mapping_quality}"
        f" F:{flag_string(read)} C:{cigar_string(read.cigartuples)} ID:{read.query_name}"
    )


def collect_reads(
    records: Iterable[pysam.AlignedSegment],
    target: Target,
    window: ReferenceWindow,
    settings: CallerSettings,
) -> ReadCollection:
    """Realign and filter the reads overlapping one target.

    Dropped reads are counted per reason in ``ReadCollection.counts``; they
    never fail the region.
    """
    out = ReadCollection()
    counts = out.counts
    middle = target.length // 2

    for read in records:
        counts["reads_seen"] += 1
        if not read.cigartuples or read.query_sequence is None:
            out.stars += 1
            counts["reads_star"] += 1
            continue
        if settings.skip_duplicates and read.is_duplicate:
            counts["reads_duplicate"] += 1
            continue

        realigned = realign_read(
            read.cigartuples,
            read.query_sequence,
            read.query_qualities,
            align_start=read.reference_start + 1,
            ref_start=target.start,
            flank=settings.flank,
            length=target.length,
        )
        if realigned is None:
            logger.debug("Dropping %s: could not be realigned", read.query_name)
            counts["reads_unaligned"] += 1
            continue

        if realigned.core[middle].kind is not CellKind.OUT:
            out.depth += 1

        edges = (realigned.core[0].kind, realigned.core[-1].kind)
        if any(kind in (CellKind.OUT, CellKind.SOFT) for kind in edges):
            counts["reads_not_spanning"] += 1
            continue

        size = query_length(read.cigartuples)
        if (settings.min_read_length and size < settings.min_read_length) or (
            settings.max_read_length and size > settings.max_read_length
        ):
            counts["reads_length_filter"] += 1
            continue

        left = left_flank_matches(realigned.pre, window.left_flank)
        right = right_flank_matches(realigned.post, window.right_flank)
        if left is None or right is None or left < settings.min_left_flank or right < settings.min_right_flank:
            logger.debug("Dropping %s: flank matches %s/%s", read.query_name, left, right)
            counts["reads_flank_filter"] += 1
            continue

        if read.mapping_quality < settings.min_mapq:
            counts["reads_mapq_filter"] += 1
            continue
        if settings.exclude_multi and read.has_tag("XT") and "R" in str(read.get_tag("XT")):
            counts["reads_multi_filter"] += 1
            continue
        if settings.proper_pairs and not read.is_proper_pair:
            counts["reads_pair_filter"] += 1
            continue

        counts["reads_kept"] += 1
        out.reads.append(
            ScoredRead(
                name=read.query_name or "",
                row=realigned.render(),
                allele_length=target.length + realigned.insertion_bonus,
                mapq=read.mapping_quality,
                left_matches=left,
                right_matches=right,
                min_flank=min(left, right),
                is_reverse=read.is_reverse,
                is_proper_pair=read.is_proper_pair,
                avg_quality=realigned.avg_quality,
                annotation=_annotation(read, left, right, realigned.avg_quality),
            )
        )
    return out


def tally_alleles(reads: Sequence[ScoredRead]) -> List[AlleleBucket]:
    """Group reads by allele length, most frequent first."""
    sums: Dict[int, List[float]] = {}
    for read in reads:
        acc = sums.setdefault(read.allele_length, [0, 0, 0.0, 0.0])
        acc[0] += 1
        acc[1] += int(read.is_reverse)
        acc[2] += read.min_flank
        acc[3] += read.avg_quality

    buckets = [
        AlleleBucket(
            length=length,
            occurrences=int(occ),
            reverse=int(rev),
            avg_min_flank=flank / occ,
            avg_quality=qual / occ,
        )
        for length, (occ, rev, flank, qual) in sums.items()
    ]
    buckets.sort(key=lambda b: b.occurrences, reverse=True)
    return buckets


def concordance(buckets: Sequence[AlleleBucket], n_reads: int) -> Tuple[float, int]:
    """Agreement among reads and the majority allele length.

    Returns (-1, 0) when undefined (no buckets or a single read).
    """
    if not buckets or n_reads <= 1:
        return -1.0, 0
    top = max(b.occurrences for b in buckets)
    majority = max(b.length for b in buckets if b.occurrences == top)
    if len(buckets) == 1:
        return 1.0, majority
    total = sum(b.occurrences for b in buckets)
    return (top - 1) / (total - 1), majority
