from __future__ import annotations

import io
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from .config import CallerSettings
from .error_model import ErrorRateTable
from .models import RegionResult
from .pipeline import process_region
from .sources import BamAlignmentSource, FastaReference
from .utils import ensure_outdir, write_json
from .vcf import vcf_header

logger = logging.getLogger(__name__)

CONFIDENCE_BINS = np.linspace(0.0, 50.0, 11)


def split_regions(n: int, workers: int) -> List[Tuple[int, int]]:
    """Contiguous slices of ``n`` regions; the last worker takes the remainder."""
    workers = max(1, workers)
    size = n // workers
    slices = [(k * size, (k + 1) * size) for k in range(workers)]
    slices[-1] = (slices[-1][0], n)
    return slices


def load_error_table(settings: CallerSettings) -> ErrorRateTable:
    """Error table selected by the settings: a JSON file, a flat rate or the built-in prior."""
    if settings.error_table is not None:
        logger.info("Loading error table %s", settings.error_table)
        return ErrorRateTable.from_json(settings.error_table)
    if settings.error_rate is not None:
        return ErrorRateTable.uniform(settings.error_rate)
    return ErrorRateTable.default()


@dataclass
class WorkerOutput:
    alignments: io.StringIO = field(default_factory=io.StringIO)
    calls: io.StringIO = field(default_factory=io.StringIO)
    vcf: io.StringIO = field(default_factory=io.StringIO)
    results: List[RegionResult] = field(default_factory=list)
    skipped: int = 0


def _run_worker(
    lines: Sequence[str],
    *,
    bam_path: str | Path,
    ref_path: str | Path,
    settings: CallerSettings,
    table: ErrorRateTable,
    region_style: Optional[str],
    bam_style: Optional[str],
    advance: Callable[[int], Any],
) -> WorkerOutput:
    out = WorkerOutput()
    if not lines:
        return out
    # pysam handles are not shared between threads.
    with FastaReference(ref_path) as reference, BamAlignmentSource(
        bam_path, reference=ref_path, contig_style=bam_style
    ) as alignments:
        for line in lines:
            result = process_region(
                line,
                reference,
                alignments,
                settings,
                table,
                contig_style=region_style,
            )
            advance(1)
            if result is None:
                out.skipped += 1
                continue
            out.results.append(result)
            if settings.write_alignments:
                out.alignments.write(result.alignment_text)
            if settings.write_calls:
                out.calls.write(result.calls_line)
            if result.record is not None:
                out.vcf.write(result.record.to_line() + "\n")
    return out


def run_regions(
    lines: Sequence[str],
    *,
    bam_path: str | Path,
    ref_path: str | Path,
    settings: CallerSettings,
    table: Optional[ErrorRateTable] = None,
    threads: Optional[int] = None,
    region_style: Optional[str] = None,
    bam_style: Optional[str] = None,
    progress: bool = True,
) -> List[WorkerOutput]:
    """Genotype every region line on a fixed pool of worker threads.

    Each worker handles one contiguous slice of ``lines`` and writes into its
    own buffers; outputs are returned in worker order. An exception in any
    worker is re-raised after all workers have finished.
    """
    if table is None:
        table = load_error_table(settings)
    n_workers = max(1, threads or os.cpu_count() or 1)
    slices = split_regions(len(lines), n_workers)
    logger.info("Genotyping %d region(s) on %d worker(s)", len(lines), n_workers)

    bar = tqdm(total=len(lines), unit="region", desc="Genotyping", disable=not progress)
    lock = threading.Lock()

    def advance(n: int) -> None:
        with lock:
            bar.update(n)

    try:
        with ThreadPoolExecutor(max_workers=n_workers) as pool:
            futures = [
                pool.submit(
                    _run_worker,
                    lines[a:b],
                    bam_path=bam_path,
                    ref_path=ref_path,
                    settings=settings,
                    table=table,
                    region_style=region_style,
                    bam_style=bam_style,
                    advance=advance,
                )
                for a, b in slices
            ]
            errors = [f.exception() for f in futures]
        for err in errors:
            if err is not None:
                raise err
        return [f.result() for f in futures]
    finally:
        bar.close()


def _confidence_histogram(results: Sequence[RegionResult]) -> Dict[str, List[float]]:
    values = [r.confidence for r in results if r.confidence is not None]
    counts, edges = np.histogram(np.asarray(values, dtype=float), bins=CONFIDENCE_BINS)
    return {"bin_edges": edges.tolist(), "counts": counts.tolist()}


def _genotype_classes(results: Sequence[RegionResult]) -> Dict[str, int]:
    classes = {"homozygous_ref": 0, "homozygous_alt": 0, "heterozygous": 0, "unresolved": 0}
    for r in results:
        if r.genotype == "NA":
            classes["unresolved"] += 1
        elif "h" in r.genotype:
            classes["heterozygous"] += 1
        elif int(r.genotype) == r.ref_length:
            classes["homozygous_ref"] += 1
        else:
            classes["homozygous_alt"] += 1
    return classes


def call_regions(
    lines: Sequence[str],
    *,
    bam_path: str | Path,
    ref_path: str | Path,
    outdir: str | Path,
    settings: CallerSettings,
    table: Optional[ErrorRateTable] = None,
    threads: Optional[int] = None,
    region_style: Optional[str] = None,
    bam_style: Optional[str] = None,
    contigs: Optional[Sequence[Tuple[str, int]]] = None,
    progress: bool = True,
) -> Dict[str, Any]:
    """Run every region and write the alignment, calls and VCF outputs.

    Returns the run summary (also written to ``summary.json``).
    """
    t0 = time.time()
    outdir_path = ensure_outdir(outdir)
    stem = Path(bam_path).name
    prefix = outdir_path / f"{stem}{settings.param_string()}"

    outputs = run_regions(
        lines,
        bam_path=bam_path,
        ref_path=ref_path,
        settings=settings,
        table=table,
        threads=threads,
        region_style=region_style,
        bam_style=bam_style,
        progress=progress,
    )
    results = [r for out in outputs for r in out.results]

    paths: Dict[str, Optional[str]] = {"alignments": None, "calls": None}
    if settings.write_alignments:
        p = Path(f"{prefix}.alignments")
        p.write_text("".join(out.alignments.getvalue() for out in outputs), encoding="utf-8")
        paths["alignments"] = str(p)
    if settings.write_calls:
        p = Path(f"{prefix}.calls")
        p.write_text("".join(out.calls.getvalue() for out in outputs), encoding="utf-8")
        paths["calls"] = str(p)
    vcf_path = Path(f"{prefix}.vcf")
    with open(vcf_path, "wt", encoding="utf-8") as fh:
        fh.write(vcf_header(contigs))
        for out in outputs:
            fh.write(out.vcf.getvalue())
    paths["vcf"] = str(vcf_path)

    read_counts: Dict[str, int] = {}
    for r in results:
        for key, value in r.read_counts.items():
            read_counts[key] = read_counts.get(key, 0) + value

    counts = {
        "regions_total": len(lines),
        "regions_skipped": sum(out.skipped for out in outputs),
        "regions_called": sum(1 for r in results if r.genotype != "NA"),
        "regions_unresolved": sum(1 for r in results if r.genotype == "NA"),
        "variant_records": sum(1 for r in results if r.record is not None),
    }
    summary = {
        "bam_path": str(bam_path),
        "ref_path": str(ref_path),
        "settings": settings.to_dict(),
        "outputs": paths,
        "counts": counts,
        "read_counts": read_counts,
        "genotype_classes": _genotype_classes(results),
        "confidence_hist": _confidence_histogram(results),
        "runtime_seconds": float(time.time() - t0),
    }
    write_json(outdir_path / "summary.json", summary)
    return summary
