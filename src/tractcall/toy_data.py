from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pysam

from .utils import ensure_outdir, write_json

TOY_CONTIG = "chrT"

_FLANK_A = (
    "TGCGTCCATCAACACGTCGGATAACGGACTACCCTATCCGGCTACCGCGAATTCTCAGGCGG"
    "TTAGAAACTGTTTCACTTGTTGCTACCGTACGTCCAGC"
)
_FLANK_B = (
    "CCACATGCCCAACTGGGTAACTAGCAATAGAGACACAGGGATGGGCCCACGCATAGTACATG"
    "TATTCAGTGTGCCCGTTGCGACCAACCGGCCCCACGAT"
)
_FLANK_C = (
    "GTGCAATGATCCGCTTCTCGGAATGCTTAAGTACAAGATGTAACCTCGTTCCTCACTAATCT"
    "GCCTGATCTTCTCGGTCCGTTGAAAACCTTAGAGCTGC"
)

# (CA)x5 at 101-110, (GATA)x3 at 211-222
TOY_SEQUENCE = _FLANK_A + "CA" * 5 + _FLANK_B + "GATA" * 3 + _FLANK_C

TOY_REGIONS = [
    f"{TOY_CONTIG}:101-110\t2_5.0_10_100_CA",
    f"{TOY_CONTIG}:211-222\t4_3.0_12_100_GATA",
]


def _write_fasta(path: Path, contig: str, seq: str) -> None:
    lines = [f">{contig}"]
    for i in range(0, len(seq), 60):
        lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def make_read(
    name: str,
    start0: int,
    seq: str,
    *,
    cigar: Optional[Sequence[Tuple[int, int]]] = None,
    reverse: bool = False,
    mapq: int = 60,
    reference_id: int = 0,
    header: Optional[pysam.AlignmentHeader] = None,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment(header)
    a.query_name = name
    a.query_sequence = seq
    a.flag = 16 if reverse else 0
    a.reference_id = reference_id
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = list(cigar) if cigar is not None else [(0, len(seq))]
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    return a


def toy_reads(
    ref_seq: str = TOY_SEQUENCE, header: Optional[pysam.AlignmentHeader] = None
) -> List[pysam.AlignedSegment]:
    """Reads for the two toy loci.

    The first locus is heterozygous: six reads carry the reference (CA)x5 and
    four carry a 2 bp insertion, i.e. (CA)x6. Every read at the second locus
    matches the reference.
    """
    reads: List[pysam.AlignedSegment] = []

    for i in range(6):
        reads.append(make_read(f"ca_ref_{i}", 70, ref_seq[70:130], reverse=i % 2 == 1, header=header))
    for i in range(4):
        seq = ref_seq[70:105] + "AC" + ref_seq[105:130]
        reads.append(
            make_read(
                f"ca_ins_{i}",
                70,
                seq,
                cigar=[(0, 35), (1, 2), (0, 25)],
                reverse=i % 2 == 0,
                header=header,
            )
        )
    for i in range(8):
        reads.append(make_read(f"gata_ref_{i}", 175, ref_seq[175:245], reverse=i >= 4, header=header))

    reads.sort(key=lambda r: r.reference_start)
    return reads


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny reference, BAM, and region file suitable for quick demos/tests.

    The outputs include:
    - toy_ref.fa (+ .fai)
    - toy.bam (+ .bai)
    - regions.txt

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, TOY_CONTIG, TOY_SEQUENCE)
    pysam.faidx(str(ref_fa))

    bam_path = outdir_p / "toy.bam"
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": TOY_CONTIG, "LN": len(TOY_SEQUENCE)}],
    }
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in toy_reads():
            bam.write(r)
    pysam.index(str(bam_path))

    regions = outdir_p / "regions.txt"
    regions.write_text("\n".join(TOY_REGIONS) + "\n", encoding="utf-8")

    summary = {
        "ref_fa": str(ref_fa),
        "bam": str(bam_path),
        "regions": str(regions),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
