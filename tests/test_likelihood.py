import math

import pytest

from tractcall.error_model import ErrorRateTable, length_bucket, quality_bucket
from tractcall.likelihood import (
    MIN_REPORTED_CONFIDENCE,
    call_genotype,
    call_label,
    genotype_label,
    is_reported,
    log_beta_multinomial,
    log_factorial,
    log_multinomial,
    score_genotypes,
)
from tractcall.models import AlleleBucket
from tractcall.utils import cap_phred, phred_from_error

TABLE = ErrorRateTable.default()


def _bucket(length: int, occ: int, quality: float = 0.9999) -> AlleleBucket:
    return AlleleBucket(length=length, occurrences=occ, reverse=0, avg_min_flank=20.0, avg_quality=quality)


def _call(buckets, n_reads=None, **kwargs):
    if n_reads is None:
        n_reads = sum(b.occurrences for b in buckets)
    return call_genotype(buckets, n_reads, ref_length=10, unit_length=2, table=TABLE, **kwargs)


def test_log_helpers():
    assert log_factorial(0) == 0.0
    assert log_factorial(10) == pytest.approx(math.log(3628800))
    assert log_beta_multinomial([1, 1]) == pytest.approx(0.0)
    # B(2, 3) = 1/12
    assert log_beta_multinomial([2, 3]) == pytest.approx(-math.log(12))
    for args in [(2, 1, 1), (1, 2, 1), (1, 1, 2)]:
        assert log_multinomial(*args) == pytest.approx(math.log(12))
    assert log_multinomial(5, 0, 0) == pytest.approx(0.0)


def test_genotype_label():
    assert genotype_label(()) == "NA"
    assert genotype_label((10,)) == "10"
    assert genotype_label((10, 13)) == "10h13"


def test_error_table_buckets():
    assert length_bucket(10) == 0
    assert length_bucket(100) == 4
    assert quality_bucket(0.0) == 4
    assert quality_bucket(1.0) == 0
    uniform = ErrorRateTable.uniform(0.01)
    assert uniform.lookup(7, 500, 0.5) == (990, 10)
    with pytest.raises(ValueError):
        ErrorRateTable.uniform(1.5)


def test_unresolved_without_buckets_or_with_too_many():
    assert _call([], 0).alleles == ()
    assert _call([], 0).confidence is None
    many = [_bucket(10 + i, 2) for i in range(10)]
    call = _call(many)
    assert call.alleles == ()
    assert call_label(call) == "NA"
    assert _call([_bucket(10, 10000)]).confidence is None


def test_concordant_reads_skip_the_model():
    call = _call([_bucket(12, 15)])
    assert call.concordant
    assert call.alleles == (12,)
    assert call.confidence == 50.0
    assert call.likelihoods == {(12, 12): 50.0}
    assert is_reported(call)


def test_heterozygous_call():
    call = _call([_bucket(10, 6), _bucket(12, 4)])
    assert call.alleles == (10, 12)
    assert call.confidence > MIN_REPORTED_CONFIDENCE
    assert set(call.likelihoods) == {(10, 10), (10, 12), (12, 12)}
    assert call.likelihoods[(10, 12)] == call.confidence
    assert all(0.0 <= v <= 50.0 for v in call.likelihoods.values())
    assert sum(call.probabilities.values()) == pytest.approx(1.0)
    assert call_label(call) == "10h12"


def test_single_outlier_stays_homozygous():
    call = _call([_bucket(10, 19), _bucket(12, 1)])
    assert not call.concordant
    assert call.alleles == (10,)
    assert call.probabilities["10"] > call.probabilities["10h12"]


def test_haploid_mode_only_scores_single_alleles():
    hypotheses, likelihoods = score_genotypes(
        [_bucket(10, 6), _bucket(12, 4)], ref_length=10, unit_length=2, table=TABLE, haploid=True
    )
    assert {h.alleles for h in hypotheses} == {(10,), (12,)}
    assert set(likelihoods) == {(10, 10), (12, 12)}
    assert hypotheses[0].alleles == (10,)


def test_single_read_is_never_confident():
    call = _call([_bucket(14, 1)], n_reads=1)
    assert call.alleles == (14,)
    assert call.confidence == 0.0
    assert not is_reported(call)
    assert call_label(call) == "NA"


def test_non_finite_confidence_is_clamped():
    assert cap_phred(float("nan")) == 0.0
    assert cap_phred(phred_from_error(0.1, 0.0)) == 0.0
    assert cap_phred(phred_from_error(0.0)) == 50.0
    assert cap_phred(-3.0) == 0.0


def test_confidence_grows_with_the_winning_probability():
    scenarios = [
        [_bucket(10, n), _bucket(12, m)]
        for n, m in [(3, 2), (5, 3), (6, 4), (8, 1), (12, 1), (20, 1), (30, 2)]
    ]
    points = []
    for buckets in scenarios:
        hypotheses, likelihoods = score_genotypes(buckets, ref_length=10, unit_length=2, table=TABLE)
        best = hypotheses[0]
        assert sum(h.probability for h in hypotheses) == pytest.approx(1.0)
        points.append((best.probability, likelihoods[best.key]))
    points.sort()
    confidences = [c for _, c in points]
    for lo, hi in zip(confidences, confidences[1:]):
        assert hi >= lo - 1e-9


def test_near_certain_call_is_capped_at_fifty():
    call = _call([_bucket(10, 60), _bucket(12, 1)])
    assert not call.concordant
    assert call.alleles == (10,)
    assert call.confidence == 50.0
