from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import __version__
from .models import LikelihoodTable, Target, VariantRecord
from .utils import MAX_PHRED, clamp, format_number, strip_gaps

logger = logging.getLogger(__name__)

PASS_THRESHOLD = 0.8

_HEADER_LINES = [
    "##fileformat=VCFv4.1",
    '##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype">',
    '##FORMAT=<ID=GL,Number=G,Type=Float,Description="Genotype likelihood">',
    '##INFO=<ID=AL,Number=A,Type=Integer,Description="Allele Length Offset(s)">',
    '##INFO=<ID=DP,Number=1,Type=Integer,Description="Depth">',
    '##INFO=<ID=RU,Number=1,Type=String,Description="Repeat Unit">',
    '##INFO=<ID=RL,Number=1,Type=Integer,Description="Reference Length of Repeat">',
]

COLUMNS = ["#CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER", "INFO", "FORMAT", "SAMPLE"]


def vcf_header(contigs: Optional[Iterable[Tuple[str, int]]] = None) -> str:
    lines = list(_HEADER_LINES)
    lines.append(f"##source=tractcall-{__version__}")
    for name, length in contigs or ():
        lines.append(f"##contig=<ID={name},length={length}>")
    lines.append("\t".join(COLUMNS))
    return "\n".join(lines) + "\n"


def clip_common(alleles: Sequence[str]) -> Tuple[List[str], int, int]:
    """Trim the suffix, then the prefix, shared by all alleles.

    At least one base of every allele is kept. Returns the clipped alleles and
    the number of bases removed from the start and from the end.
    """
    clip_end = 0
    while all(len(a) - clip_end - 1 > 0 for a in alleles) and len(
        {a[len(a) - clip_end - 1] for a in alleles}
    ) == 1:
        clip_end += 1
    clip_begin = 0
    while all(clip_begin < len(a) - clip_end - 1 for a in alleles) and len({a[clip_begin] for a in alleles}) == 1:
        clip_begin += 1
    return [a[clip_begin : len(a) - clip_end] for a in alleles], clip_begin, clip_end


def most_frequent_per_length(sequences: Iterable[str]) -> List[str]:
    """Most frequent sequence of each length (first seen wins ties), shortest first."""
    occurrences: Dict[str, int] = {}
    for seq in sequences:
        occurrences[seq] = occurrences.get(seq, 0) + 1
    best: Dict[int, Tuple[str, int]] = {}
    for seq, count in occurrences.items():
        current = best.get(len(seq))
        if current is None or count > current[1]:
            best[len(seq)] = (seq, count)
    return [seq for _, (seq, _) in sorted(best.items())]


def most_likely_pair(likelihoods: LikelihoodTable) -> Tuple[Tuple[int, int], float]:
    """Highest-scoring genotype; ties go to the smallest key."""
    if not likelihoods:
        return (0, 0), float("-inf")
    key, value = max(sorted(likelihoods.items()), key=lambda kv: kv[1])
    return key, value


def build_variant_record(
    alternates: Sequence[str],
    reference: str,
    *,
    target: Target,
    preceding_base: str,
    likelihoods: LikelihoodTable,
    unit: str,
    depth: int,
    emit_all: bool = False,
    clip: bool = False,
) -> Optional[VariantRecord]:
    """Build the VCF record for one region.

    alternates:
        Core sequences of the reads as laid out in the alignment matrix.
    reference:
        The reference core from the same matrix (may contain gap columns).
    """
    if not emit_all and all(a == reference for a in alternates):
        return None

    ref_seq = strip_gaps(reference)
    stripped = [strip_gaps(a) for a in alternates]
    n_gaps = sum(len(a) - len(s) for a, s in zip(alternates, stripped))
    logger.debug("Stripped %d gap character(s) from %d alternate(s)", n_gaps, len(alternates))
    alleles = most_frequent_per_length(stripped)

    (first, second), best = most_likely_pair(likelihoods)
    if first == 0:
        first = len(ref_seq)
    if second == 0:
        second = len(ref_seq)
    if alleles and len(likelihoods) == 1 and (len(alleles[0]), len(alleles[0])) in likelihoods:
        if first == 1:
            first = len(alleles[0])
        if second == 1:
            second = len(alleles[0])

    anchored = [preceding_base + a for a in alleles] + [preceding_base + ref_seq]
    clip_begin = clip_end = 0
    if clip:
        anchored, clip_begin, clip_end = clip_common(anchored)
    ref_allele = anchored[-1]
    total_clip = clip_begin + clip_end
    alts = [a for a in anchored[:-1] if len(a) != len(ref_allele)]

    ordered = [ref_allele] + alts
    lengths = [len(a) - 1 + total_clip for a in ordered]

    gt_indices = []
    for wanted in (first, second):
        if wanted in lengths:
            gt_indices.append(lengths.index(wanted))
    gt = "/".join(str(i) for i in sorted(gt_indices)) if len(gt_indices) == 2 else "./."

    if alts:
        gl_values = []
        for i, l1 in enumerate(lengths):
            for l2 in lengths[: i + 1]:
                value = likelihoods.get((min(l1, l2), max(l1, l2)), 0.0)
                gl_values.append(format_number(clamp(value, 0.0, MAX_PHRED)))
        gl = ",".join(gl_values)
    else:
        gl = format_number(MAX_PHRED)

    offsets = [str(a - total_clip - len(ref_allele) + 1) for a in (first, second)]
    info = {
        "AL": ",".join(offsets),
        "RU": unit,
        "DP": str(depth),
        "RL": str(target.length),
    }
    return VariantRecord(
        chrom=target.chrom,
        pos=target.start - 1 + clip_begin,
        ref=ref_allele,
        alts=alts,
        qual=clamp(best, 0.0, MAX_PHRED),
        filter="PASS" if best > PASS_THRESHOLD else ".",
        info=info,
        fmt="GT:GL",
        sample=f"{gt}:{gl}",
    )
