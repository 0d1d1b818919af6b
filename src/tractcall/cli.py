from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config import CallerSettings
from .plotting import plot_confidence_hist, plot_genotype_classes
from .report import render_report
from .runner import call_regions, load_error_table
from .sources import BamAlignmentSource, FastaReference
from .toy_data import make_toy_data
from .utils import ensure_outdir, read_region_lines
from .validation import check_bam_index, ensure_fasta_index, region_contig_style


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    sys.stderr.write(f"{err.__class__.__name__}: {err}\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _region_contigs(lines: list[str]) -> list[str]:
    contigs = []
    for line in lines:
        label = line.split("\t", 1)[0]
        if ":" in label:
            contigs.append(label.rsplit(":", 1)[0])
    return contigs


def _bam_contigs(bam_path: str, ref_path: str) -> list[str]:
    with BamAlignmentSource(bam_path, reference=ref_path) as bam:
        return list(bam.references)


def _fasta_contigs(ref_path: str) -> list[tuple[str, int]]:
    with FastaReference(ref_path) as fasta:
        return fasta.contigs


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tractcall",
        description=(
            "tractcall: Bayesian short tandem repeat genotyping from aligned reads. "
            "Realigns reads across each repeat, tallies tract lengths and emits calls and a VCF."
        ),
    )
    p.add_argument("--version", action="version", version=f"tractcall {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference, BAM, and region file for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # call
    # -----------------
    c = sub.add_parser(
        "call",
        help="Genotype repeat regions from an indexed BAM/CRAM.",
    )
    c.add_argument("--bam", required=True, type=_path_exists, help="Input BAM/CRAM (sorted, indexed).")
    c.add_argument("--ref", required=True, type=_path_exists, help="Reference FASTA.")
    c.add_argument(
        "--regions",
        required=True,
        type=_path_exists,
        help="Region file: chrom:start-stop<TAB>unit_..._purity_..._unit per line.",
    )
    c.add_argument("--outdir", required=True, help="Output directory.")

    # Read filters
    c.add_argument("--flank", type=int, default=20, help="Reference bases kept on each side of a repeat.")
    c.add_argument("--min-left-flank", type=int, default=3, help="Min consecutive left flank matches.")
    c.add_argument("--min-right-flank", type=int, default=3, help="Min consecutive right flank matches.")
    c.add_argument("--min-mapq", type=int, default=0, help="Minimum mapping quality.")
    c.add_argument("--min-read-length", type=int, default=0, help="Minimum read length (0 = off).")
    c.add_argument("--max-read-length", type=int, default=0, help="Maximum read length (0 = off).")
    c.add_argument("--exclude-multi", action="store_true", help="Drop reads whose XT tag marks them as repeats.")
    c.add_argument("--proper-pairs", action="store_true", help="Keep only properly paired reads.")
    c.add_argument("--skip-duplicates", action="store_true", help="Skip reads flagged as duplicates.")

    # Model
    c.add_argument("--haploid", action="store_true", help="Only consider homozygous genotypes.")
    c.add_argument(
        "--error-rate",
        type=float,
        default=None,
        help="Use a flat error rate instead of the built-in error table (0-1).",
    )
    c.add_argument(
        "--error-table",
        type=_path_exists,
        default=None,
        help="JSON error table ([unit][length bucket][quality bucket] -> [correct, error]).",
    )

    # Outputs
    c.add_argument("--emit-all", action="store_true", help="Write VCF records for reference calls too.")
    c.add_argument("--no-alignments", action="store_true", help="Do not write the .alignments file.")
    c.add_argument("--no-calls", action="store_true", help="Do not write the .calls file.")
    c.add_argument("--no-report", action="store_true", help="Skip plots and report.html.")
    c.add_argument("--threads", type=int, default=None, help="Worker threads (default: CPU count).")
    c.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")

    c.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_call(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "call.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("tractcall")
    logger.info("tractcall %s", __version__)

    try:
        settings = CallerSettings(
            flank=int(args.flank),
            min_left_flank=int(args.min_left_flank),
            min_right_flank=int(args.min_right_flank),
            min_mapq=int(args.min_mapq),
            min_read_length=int(args.min_read_length),
            max_read_length=int(args.max_read_length),
            exclude_multi=bool(args.exclude_multi),
            proper_pairs=bool(args.proper_pairs),
            skip_duplicates=bool(args.skip_duplicates),
            emit_all=bool(args.emit_all),
            haploid=bool(args.haploid),
            write_alignments=not bool(args.no_alignments),
            write_calls=not bool(args.no_calls),
            error_rate=args.error_rate,
            error_table=args.error_table,
        )
        settings.validate()
        table = load_error_table(settings)
        if args.threads is not None and args.threads < 1:
            raise ValueError(f"--threads must be >= 1 (got {args.threads})")

        check_bam_index(args.bam)
        ensure_fasta_index(args.ref)

        lines = read_region_lines(args.regions)
        region_contigs = _region_contigs(lines)
        ref_contigs = _fasta_contigs(args.ref)
        region_style = region_contig_style(region_contigs, [name for name, _ in ref_contigs], "reference")
        bam_style = region_contig_style(
            [name for name, _ in ref_contigs], _bam_contigs(args.bam, args.ref), "alignment file"
        )

        prefix = outdir / f"{Path(args.bam).name}{settings.param_string()}"
        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Regions: {len(lines)}")
            print("Planned outputs:")
            if settings.write_alignments:
                print(f"  alignments -> {prefix}.alignments")
            if settings.write_calls:
                print(f"  calls -> {prefix}.calls")
            print(f"  vcf -> {prefix}.vcf")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            if not args.no_report:
                print(f"  report.html -> {outdir / 'report.html'}")
            return 0

        outdir = ensure_outdir(outdir)
        run = call_regions(
            lines,
            bam_path=args.bam,
            ref_path=args.ref,
            outdir=outdir,
            settings=settings,
            table=table,
            threads=args.threads,
            region_style=region_style,
            bam_style=bam_style,
            contigs=ref_contigs,
            progress=True,
        )
        logger.info(
            "Called %d of %d region(s); %d VCF record(s)",
            run["counts"]["regions_called"],
            run["counts"]["regions_total"],
            run["counts"]["variant_records"],
        )

        if args.no_report:
            print(run["outputs"]["vcf"])
            return 0

        plots_dir = outdir / "plots"
        plots_dir.mkdir(parents=True, exist_ok=True)
        classes_png = plots_dir / "genotype_classes.png"
        confidence_png = plots_dir / "confidence_hist.png"

        plot_genotype_classes(classes=run["genotype_classes"], out_png=classes_png)
        plot_confidence_hist(
            bin_edges=run["confidence_hist"]["bin_edges"],
            counts=run["confidence_hist"]["counts"],
            out_png=confidence_png,
        )
        plots_rel = {
            "genotype_classes": str(Path("plots") / classes_png.name),
            "confidence_hist": str(Path("plots") / confidence_png.name),
        }

        report_path = render_report(
            outdir=outdir,
            version=__version__,
            run=run,
            regions_path=str(args.regions),
            plots=plots_rel,
        )
        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "call":
        return cmd_call(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
