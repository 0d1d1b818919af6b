import pysam
import pytest

from tractcall.alignment import OUT_CELL, cells_from_text
from tractcall.config import CallerSettings
from tractcall.models import AlleleBucket, Target
from tractcall.region import resolve_window
from tractcall.sources import DictReference
from tractcall.tally import (
    collect_reads,
    concordance,
    flag_string,
    left_flank_matches,
    right_flank_matches,
    tally_alleles,
)
from tractcall.toy_data import TOY_CONTIG, TOY_SEQUENCE, make_read, toy_reads

TARGET = Target(TOY_CONTIG, 101, 110)
SETTINGS = CallerSettings()


@pytest.fixture()
def window():
    return resolve_window(TARGET, DictReference({TOY_CONTIG: TOY_SEQUENCE}), SETTINGS.flank)


def _locus_reads():
    return [r for r in toy_reads() if r.query_name.startswith("ca_")]


def _bucket(length: int, occ: int) -> AlleleBucket:
    return AlleleBucket(length=length, occurrences=occ, reverse=0, avg_min_flank=20.0, avg_quality=0.999)


def test_flag_string_letters():
    read = make_read("r1", 70, TOY_SEQUENCE[70:130])
    read.flag = 99  # paired, proper, mate reverse, read1
    assert flag_string(read) == "pPR1"
    read.flag = 1024 + 16
    assert flag_string(read) == "rd"


def test_flank_matches_count_outward_from_repeat():
    left = "GGACTT"
    pre = cells_from_text("AGACTT")
    assert left_flank_matches(pre, left) == 5
    assert right_flank_matches(cells_from_text("TTCAGA"), "TTCAGG") == 5


def test_flank_out_of_read_next_to_repeat_fails():
    pre = cells_from_text("GGACT") + [OUT_CELL]
    assert left_flank_matches(pre, "GGACTT") is None
    # further out it only ends the streak
    post = cells_from_text("TTCA") + [OUT_CELL, OUT_CELL]
    assert right_flank_matches(post, "TTCAGG") == 4


def test_collect_reads_keeps_spanning_reads(window):
    out = collect_reads(_locus_reads(), TARGET, window, SETTINGS)
    assert len(out.reads) == 10
    assert out.depth == 10
    assert out.stars == 0
    assert out.counts["reads_kept"] == 10
    lengths = sorted(r.allele_length for r in out.reads)
    assert lengths == [10] * 6 + [12] * 4
    read = out.reads[0]
    assert read.left_matches == 20 and read.right_matches == 20
    assert read.min_flank == 20
    assert read.annotation.startswith(" 71 ")
    assert " M:60 " in read.annotation
    assert read.annotation.endswith(f"ID:{read.name}")
    assert out.avg_mapq == 60


def test_collect_reads_filters(window):
    seq = TOY_SEQUENCE[70:130]
    low_mapq = make_read("low", 70, seq, mapq=5)
    dup = make_read("dup", 70, seq)
    dup.flag = 1024
    multi = make_read("multi", 70, seq)
    multi.set_tag("XT", "R")
    unpaired = make_read("unpaired", 70, seq)
    late = make_read("late", 105, TOY_SEQUENCE[105:145])
    star = pysam.AlignedSegment()
    star.query_name = "star"
    star.query_sequence = seq
    star.reference_start = 70

    settings = CallerSettings(
        min_mapq=20, skip_duplicates=True, exclude_multi=True, proper_pairs=True
    )
    out = collect_reads([low_mapq, dup, multi, unpaired, late, star], TARGET, window, settings)
    assert out.reads == []
    assert out.stars == 1
    assert out.counts["reads_mapq_filter"] == 1
    assert out.counts["reads_duplicate"] == 1
    assert out.counts["reads_multi_filter"] == 1
    assert out.counts["reads_pair_filter"] == 1
    assert out.counts["reads_not_spanning"] == 1
    # the late read still covers the middle of the repeat
    assert out.depth == 4


def test_read_length_bounds(window):
    settings = CallerSettings(min_read_length=61)
    out = collect_reads(_locus_reads(), TARGET, window, settings)
    # only the 62 bp insertion reads survive
    assert len(out.reads) == 4
    assert out.counts["reads_length_filter"] == 6


def test_tally_alleles_groups_and_orders(window):
    out = collect_reads(_locus_reads(), TARGET, window, SETTINGS)
    buckets = tally_alleles(out.reads)
    assert [(b.length, b.occurrences) for b in buckets] == [(10, 6), (12, 4)]
    assert buckets[0].reverse == 3
    assert buckets[1].reverse == 2
    assert buckets[0].avg_min_flank == 20
    assert sum(b.occurrences for b in buckets) == len(out.reads)


def test_concordance_rules():
    assert concordance([], 0) == (-1.0, 0)
    assert concordance([_bucket(10, 1)], 1)[0] == -1.0
    assert concordance([_bucket(10, 7)], 7) == (1.0, 10)
    conc, majority = concordance([_bucket(10, 6), _bucket(12, 4)], 10)
    assert conc == pytest.approx(5 / 9)
    assert majority == 10
    # ties go to the longer allele
    assert concordance([_bucket(10, 5), _bucket(14, 5)], 10)[1] == 14


def test_soft_clip_over_the_repeat_edge_is_not_spanning(window):
    clipped = make_read("clipped", 105, TOY_SEQUENCE[70:130], cigar=[(4, 35), (0, 25)])
    out = collect_reads([clipped], TARGET, window, SETTINGS)
    assert out.reads == []
    assert out.counts["reads_not_spanning"] == 1
    assert out.depth == 1
