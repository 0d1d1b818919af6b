from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .alignment import OUT_CELL, AlignedRow, cells_from_text
from .utils import format_number

LikelihoodTable = Dict[Tuple[int, int], float]


@dataclass(frozen=True)
class Target:
    """A repeat interval on one chromosome.

    Coordinates are 1-based and inclusive, as written in the region file.
    """

    chrom: str
    start: int
    stop: int

    @property
    def length(self) -> int:
        return self.stop - self.start + 1

    def __str__(self) -> str:
        return f"{self.chrom}:{self.start}-{self.stop}"


@dataclass(frozen=True)
class RegionSpec:
    """One parsed line of the region file.

    Attributes
    ----------
    target:
        The repeat interval.
    unit_length:
        Length of the repeat unit (clamped later by the likelihood model).
    purity:
        Externally computed purity of the reference tract; carried through only.
    unit_seq:
        Repeat unit sequence, reported in the ``RU`` INFO field.
    metadata:
        The raw second column, echoed verbatim into the text outputs.
    label:
        The raw first column (``chrom:start-stop``).
    """

    target: Target
    unit_length: int
    purity: float
    unit_seq: str
    metadata: str
    label: str


@dataclass(frozen=True)
class ReferenceWindow:
    """Reference sequence around a target: left flank, repeat core, right flank."""

    left_flank: str
    core: str
    right_flank: str

    @property
    def preceding_base(self) -> str:
        return self.left_flank[-1] if self.left_flank else "N"

    def reference_row(self, flank: int) -> AlignedRow:
        """Reference as a matrix row, flanks padded out to ``flank`` cells."""
        pre = [OUT_CELL] * (flank - len(self.left_flank)) + cells_from_text(self.left_flank)
        post = cells_from_text(self.right_flank) + [OUT_CELL] * (flank - len(self.right_flank))
        return AlignedRow(pre=pre, core=cells_from_text(self.core), post=post)


@dataclass
class ScoredRead:
    """A read that survived realignment and filtering."""

    name: str
    row: AlignedRow
    allele_length: int
    mapq: int
    left_matches: int
    right_matches: int
    min_flank: int
    is_reverse: bool
    is_proper_pair: bool
    avg_quality: float
    annotation: str


@dataclass(frozen=True)
class AlleleBucket:
    """Reads grouped by observed allele length."""

    length: int
    occurrences: int
    reverse: int
    avg_min_flank: float
    avg_quality: float


@dataclass(frozen=True)
class GenotypeCall:
    """Outcome of genotyping one region.

    ``alleles`` is empty when the region was unresolved before any likelihood
    computation; ``confidence`` is None in that case.
    """

    alleles: Tuple[int, ...]
    confidence: Optional[float]
    likelihoods: LikelihoodTable = field(default_factory=dict)
    probabilities: Dict[str, float] = field(default_factory=dict)
    concordant: bool = False


@dataclass(frozen=True)
class VariantRecord:
    """One VCF data line."""

    chrom: str
    pos: int
    ref: str
    alts: List[str]
    qual: float
    filter: str
    info: Dict[str, str]
    fmt: str
    sample: str

    def to_line(self) -> str:
        info = ";".join(f"{k}={v}" for k, v in self.info.items())
        alt = ",".join(self.alts) if self.alts else "."
        return "\t".join(
            [
                self.chrom,
                str(self.pos),
                ".",
                self.ref,
                alt,
                format_number(self.qual),
                self.filter,
                info,
                self.fmt,
                self.sample,
            ]
        )


@dataclass
class RegionResult:
    """Everything produced for one region."""

    label: str
    ref_length: int
    alignment_text: str
    calls_line: str
    record: Optional[VariantRecord]
    genotype: str
    confidence: Optional[float]
    concordance: float
    depth: int
    n_reads: int
    n_stars: int
    buckets: List[AlleleBucket]
    read_counts: Dict[str, int]
