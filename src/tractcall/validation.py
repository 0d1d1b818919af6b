from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import pysam

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"


def check_bam_index(bam_path: str | Path) -> None:
    """Ensure a BAM/CRAM has an index; raise ValueError with fix instructions."""
    bam = Path(bam_path)
    if not bam.exists():
        raise FileNotFoundError(f"alignment file not found: {bam}")
    index_suffix = ".crai" if bam.suffix == ".cram" else ".bai"
    idx1 = bam.with_suffix(bam.suffix + index_suffix)
    idx2 = bam.with_suffix(index_suffix)
    if idx1.exists() or idx2.exists():
        return
    raise ValueError("Alignment file is not indexed. Run: samtools index " + str(bam))


def ensure_fasta_index(fasta_path: str | Path) -> Path:
    """Build ``<fasta>.fai`` with pysam when it is missing."""
    fasta = Path(fasta_path)
    if not fasta.exists():
        raise FileNotFoundError(f"reference FASTA not found: {fasta}")
    fai = fasta.with_suffix(fasta.suffix + ".fai")
    if not fai.exists():
        logger.info("Building FASTA index %s", fai)
        pysam.faidx(str(fasta))
    return fai


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def remap_contig(contig: str, style: str) -> str:
    """Remap a contig name to the requested style (ucsc or ensembl)."""
    if style == "ucsc":
        if contig.startswith(_UCSC_PREFIX):
            return contig
        if contig == "MT":
            return "chrM"
        return f"{_UCSC_PREFIX}{contig}"
    if style == "ensembl":
        if contig.startswith(_UCSC_PREFIX):
            core = contig[len(_UCSC_PREFIX) :]
            if core == "M":
                return "MT"
            return core
        return contig
    return contig


def region_contig_style(
    region_contigs: Iterable[str], target_contigs: Iterable[str], what: str
) -> Optional[str]:
    """Style to remap region contigs to, or None when they already agree.

    A warning is logged when the styles differ.
    """
    region_style = detect_contig_style(region_contigs)
    target_style = detect_contig_style(target_contigs)
    if "unknown" in (region_style, target_style) or region_style == target_style:
        return None
    logger.warning(
        "Region contigs look %s-style but the %s uses %s-style names; remapping",
        region_style,
        what,
        target_style,
    )
    return target_style
