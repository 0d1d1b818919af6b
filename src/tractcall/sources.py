"""Reference and alignment inputs.

The pipeline only depends on the two small protocols below, so tests can feed
in-memory sequences and reads while the CLI uses indexed FASTA and BAM/CRAM
files through pysam.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

import pysam

from .validation import remap_contig

logger = logging.getLogger(__name__)


class ReferenceProvider(Protocol):
    def sequence_length(self, chrom: str) -> int:
        """Length of ``chrom``; raises KeyError when unknown."""

    def subsequence(self, chrom: str, offset0: int, length: int) -> str:
        ...


class AlignmentSource(Protocol):
    def set_region(self, chrom: str, start0: int, end0: int) -> None:
        ...

    def __iter__(self) -> Iterator[pysam.AlignedSegment]:
        ...


class FastaReference:
    """Indexed FASTA opened with ``pysam.FastaFile``."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._fasta = pysam.FastaFile(str(self.path))

    def sequence_length(self, chrom: str) -> int:
        if chrom not in self._fasta.references:
            raise KeyError(chrom)
        return self._fasta.get_reference_length(chrom)

    def subsequence(self, chrom: str, offset0: int, length: int) -> str:
        if length <= 0:
            return ""
        return self._fasta.fetch(chrom, offset0, offset0 + length)

    @property
    def contigs(self) -> List[Tuple[str, int]]:
        return list(zip(self._fasta.references, self._fasta.lengths))

    def close(self) -> None:
        self._fasta.close()

    def __enter__(self) -> "FastaReference":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class DictReference:
    """In-memory reference, mostly for tests and toy data."""

    def __init__(self, sequences: Dict[str, str]) -> None:
        self.sequences = dict(sequences)

    def sequence_length(self, chrom: str) -> int:
        return len(self.sequences[chrom])

    def subsequence(self, chrom: str, offset0: int, length: int) -> str:
        if length <= 0:
            return ""
        return self.sequences[chrom][offset0 : offset0 + length]


def open_alignment_file(path: str | Path, reference: Optional[str | Path] = None) -> pysam.AlignmentFile:
    """Open a BAM or CRAM based on its suffix."""
    p = str(path)
    if p.endswith(".cram"):
        return pysam.AlignmentFile(p, "rc", reference_filename=str(reference) if reference else None)
    return pysam.AlignmentFile(p, "rb")


class BamAlignmentSource:
    """Region-restricted iteration over an indexed BAM/CRAM.

    contig_style:
        When set ("ucsc" or "ensembl"), region contigs are renamed to that
        style before fetching.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        reference: Optional[str | Path] = None,
        contig_style: Optional[str] = None,
    ) -> None:
        self.path = Path(path)
        self.contig_style = contig_style
        self._bam = open_alignment_file(self.path, reference)
        self._region: Optional[Tuple[str, int, int]] = None

    @property
    def references(self) -> Sequence[str]:
        return self._bam.references

    def set_region(self, chrom: str, start0: int, end0: int) -> None:
        if self.contig_style:
            chrom = remap_contig(chrom, self.contig_style)
        self._region = (chrom, start0, end0)

    def __iter__(self) -> Iterator[pysam.AlignedSegment]:
        if self._region is None:
            raise RuntimeError("set_region must be called before iterating")
        chrom, start0, end0 = self._region
        try:
            records = self._bam.fetch(chrom, start0, end0)
        except ValueError:
            logger.warning("No reads extracted for region %s:%d-%d", chrom, start0 + 1, end0)
            return iter(())
        return iter(records)

    def close(self) -> None:
        self._bam.close()

    def __enter__(self) -> "BamAlignmentSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ListAlignmentSource:
    """Serves pre-built reads overlapping the current region."""

    def __init__(self, reads: Sequence[pysam.AlignedSegment]) -> None:
        self.reads = list(reads)
        self._region: Optional[Tuple[str, int, int]] = None

    def set_region(self, chrom: str, start0: int, end0: int) -> None:
        self._region = (chrom, start0, end0)

    def __iter__(self) -> Iterator[pysam.AlignedSegment]:
        if self._region is None:
            return iter(self.reads)
        chrom, start0, end0 = self._region
        return iter(
            r
            for r in self.reads
            if r.reference_name == chrom
            and r.reference_start < end0
            and (r.reference_end or r.reference_start + 1) > start0
        )
