from __future__ import annotations

import logging
from typing import List, Optional

from .alignment import AlignmentMatrix, render
from .config import CallerSettings
from .error_model import ErrorRateTable
from .errors import RegionFormatError
from .likelihood import call_genotype, call_label, is_reported
from .models import AlleleBucket, GenotypeCall, RegionResult, RegionSpec, ScoredRead, VariantRecord
from .region import parse_region_line, resolve_window
from .sources import AlignmentSource, ReferenceProvider
from .tally import ReadCollection, collect_reads, concordance, tally_alleles
from .utils import format_number, truncate
from .vcf import build_variant_record

logger = logging.getLogger(__name__)


def _allele_histogram(buckets: List[AlleleBucket], n_reads: int) -> str:
    if not buckets:
        return "NA "
    if len(buckets) == 1:
        return "NA " if n_reads == 1 else f"{buckets[0].length} "
    return "".join(f"{b.length}[{b.occurrences}] " for b in buckets)


def _confidence_text(call: GenotypeCall) -> str:
    if call.confidence is None:
        return "NA"
    return format_number(call.confidence)


def format_region_header(
    spec: RegionSpec,
    collection: ReadCollection,
    buckets: List[AlleleBucket],
    conc: float,
    call: GenotypeCall,
) -> str:
    n_reads = len(collection.reads)
    avg_mapq = collection.avg_mapq
    mapq_text = "NA" if avg_mapq is None else format_number(truncate(avg_mapq, 2))
    conc_text = "NA" if conc < 0 else format_number(conc)
    return (
        f"~{spec.label} {spec.metadata} REF:{spec.target.length}"
        f" A:{_allele_histogram(buckets, n_reads)}C:{conc_text}"
        f" D:{collection.depth} R:{n_reads} S:{collection.stars} M:{mapq_text}"
        f" GT:{call_label(call)} L:{_confidence_text(call)}\n"
    )


def format_calls_line(spec: RegionSpec, call: GenotypeCall) -> str:
    if not is_reported(call):
        return f"{spec.label}\t{spec.metadata}\tNA\tNA\n"
    return f"{spec.label}\t{spec.metadata}\t{call_label(call)}\t{_confidence_text(call)}\n"


def _format_rows(matrix: AlignmentMatrix, reads: List[ScoredRead]) -> str:
    pre, core, post = matrix.reference.texts()
    lines = [f"{pre} {core} {post}\n"]
    for read in reads:
        pre, core, post = read.row.texts()
        lines.append(f"{pre} {core} {post}{read.annotation}\n")
    return "".join(lines)


def _wants_record(call: GenotypeCall, ref_length: int, emit_all: bool) -> bool:
    if not is_reported(call):
        return False
    if emit_all:
        return True
    return len(call.alleles) > 1 or call.alleles[0] != ref_length


def process_region(
    line: str,
    reference: ReferenceProvider,
    alignments: AlignmentSource,
    settings: CallerSettings,
    table: ErrorRateTable,
    *,
    contig_style: Optional[str] = None,
) -> Optional[RegionResult]:
    """Genotype one region line.

    Returns None when the line cannot be parsed (logged and skipped).
    TargetRangeError propagates and aborts the run.
    """
    try:
        spec = parse_region_line(line, contig_style=contig_style)
    except RegionFormatError as err:
        logger.warning("Skipping region line %r: %s", line, err)
        return None

    target = spec.target
    window = resolve_window(target, reference, settings.flank)
    alignments.set_region(target.chrom, target.start - 1, target.stop)
    collection = collect_reads(alignments, target, window, settings)
    reads = collection.reads

    matrix = AlignmentMatrix(window.reference_row(settings.flank), [r.row for r in reads]).build()
    for idx, read in enumerate(reads, start=1):
        read.allele_length = matrix.allele_length(idx)

    buckets = tally_alleles(reads)
    conc, _ = concordance(buckets, len(reads))
    call = call_genotype(
        buckets,
        len(reads),
        ref_length=target.length,
        unit_length=spec.unit_length,
        table=table,
        haploid=settings.haploid,
    )

    record: Optional[VariantRecord] = None
    if reads and _wants_record(call, target.length, settings.emit_all):
        record = build_variant_record(
            [render(read.row.core) for read in reads],
            render(matrix.reference.core),
            target=target,
            preceding_base=window.preceding_base,
            likelihoods=call.likelihoods,
            unit=spec.unit_seq,
            depth=len(reads),
            emit_all=settings.emit_all,
        )

    text = format_region_header(spec, collection, buckets, conc, call)
    if reads:
        text += _format_rows(matrix, reads)

    logger.debug(
        "%s: %d read(s), genotype %s, confidence %s",
        spec.label,
        len(reads),
        call_label(call),
        _confidence_text(call),
    )
    return RegionResult(
        label=spec.label,
        ref_length=target.length,
        alignment_text=text,
        calls_line=format_calls_line(spec, call),
        record=record,
        genotype=call_label(call),
        confidence=call.confidence if is_reported(call) else None,
        concordance=conc,
        depth=collection.depth,
        n_reads=len(reads),
        n_stars=collection.stars,
        buckets=buckets,
        read_counts=dict(collection.counts),
    )
