from tractcall.models import Target
from tractcall.vcf import (
    build_variant_record,
    clip_common,
    most_frequent_per_length,
    most_likely_pair,
    vcf_header,
)

TARGET = Target("chrT", 101, 110)
REF_CORE = "CACAC--ACACA"
HET_ALTS = [REF_CORE] * 6 + ["CACACACACACA"] * 4
HET_LIKELIHOODS = {(10, 10): 0.001, (10, 12): 46.0, (12, 12): 0.0}


def _record(alternates, likelihoods, **kwargs):
    return build_variant_record(
        alternates,
        REF_CORE,
        target=TARGET,
        preceding_base="C",
        likelihoods=likelihoods,
        unit="CA",
        depth=len(alternates),
        **kwargs,
    )


def test_header_lists_fields_and_contigs():
    header = vcf_header([("chrT", 322)])
    lines = header.rstrip("\n").split("\n")
    assert lines[0] == "##fileformat=VCFv4.1"
    assert any(line.startswith("##INFO=<ID=AL,") for line in lines)
    assert "##contig=<ID=chrT,length=322>" in lines
    assert lines[-1].split("\t")[0] == "#CHROM"
    assert lines[-1].split("\t")[-1] == "SAMPLE"


def test_heterozygous_record():
    rec = _record(HET_ALTS, HET_LIKELIHOODS)
    assert rec is not None
    assert rec.to_line() == "\t".join(
        [
            "chrT",
            "100",
            ".",
            "CCACACACACA",
            "CCACACACACACA",
            "46",
            "PASS",
            "AL=0,2;RU=CA;DP=10;RL=10",
            "GT:GL",
            "0/1:0.001,46,0",
        ]
    )


def test_no_record_when_every_read_matches_reference():
    assert _record([REF_CORE] * 5, {(10, 10): 50.0}) is None


def test_emit_all_writes_reference_only_record():
    rec = _record([REF_CORE] * 5, {(10, 10): 50.0}, emit_all=True)
    assert rec is not None
    fields = rec.to_line().split("\t")
    assert fields[3] == "CCACACACACA"
    assert fields[4] == "."
    assert fields[7] == "AL=0,0;RU=CA;DP=5;RL=10"
    assert fields[9] == "0/0:50"


def test_low_likelihood_is_not_pass():
    rec = _record(HET_ALTS, {(10, 12): 0.5})
    assert rec is not None
    assert rec.filter == "."
    # missing pairs score zero
    assert rec.sample == "0/1:0,0.5,0"


def test_genotype_unknown_when_call_has_no_matching_allele():
    rec = _record(HET_ALTS, {(10, 14): 20.0})
    assert rec is not None
    assert rec.sample.startswith("./.:")


def test_clipped_record_keeps_allele_offsets():
    rec = _record(HET_ALTS, HET_LIKELIHOODS, clip=True)
    assert rec is not None
    assert rec.ref == "C"
    assert rec.alts == ["CCA"]
    assert rec.pos == 100
    assert rec.info["AL"] == "0,2"
    assert rec.sample == "0/1:0.001,46,0"


def test_clip_common():
    assert clip_common(["ACAT", "ACGT"]) == (["A", "G"], 2, 1)
    assert clip_common(["AC", "ACAC"]) == (["A", "ACA"], 0, 1)
    assert clip_common(["A", "A"]) == (["A", "A"], 0, 0)


def test_most_frequent_per_length():
    assert most_frequent_per_length(["AAA", "CCC", "CCC", "GG"]) == ["GG", "CCC"]
    assert most_frequent_per_length(["AAA", "CCC"]) == ["AAA"]


def test_most_likely_pair_breaks_ties_on_smallest_key():
    assert most_likely_pair({(12, 12): 5.0, (10, 10): 5.0}) == ((10, 10), 5.0)
    assert most_likely_pair({})[0] == (0, 0)
