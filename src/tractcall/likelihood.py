from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .error_model import ErrorRateTable
from .models import AlleleBucket, GenotypeCall, LikelihoodTable
from .tally import concordance
from .utils import MAX_PHRED, cap_phred, phred_from_error

logger = logging.getLogger(__name__)

MIN_REPORTED_CONFIDENCE = 3.02
CONCORDANCE_SHORTCUT = 0.99
MAX_BUCKETS = 9
MAX_BUCKET_READS = 10000


@dataclass(frozen=True)
class Hypothesis:
    """One genotype: a homozygous length or a heterozygous pair of lengths."""

    alleles: Tuple[int, ...]
    log_likelihood: float
    probability: float = 0.0

    @property
    def name(self) -> str:
        return genotype_label(self.alleles)

    @property
    def key(self) -> Tuple[int, int]:
        return (min(self.alleles), max(self.alleles))


def genotype_label(alleles: Sequence[int]) -> str:
    """``10`` for homozygous, ``10h13`` for heterozygous, ``NA`` for none."""
    if not alleles:
        return "NA"
    return "h".join(str(a) for a in alleles)


def log_factorial(n: int) -> float:
    return math.lgamma(n + 1)


def log_beta_multinomial(vector: Sequence[int]) -> float:
    """log of the multivariate beta function for integer arguments."""
    return sum(log_factorial(v - 1) for v in vector) - log_factorial(sum(vector) - 1)


def log_multinomial(a: int, b: int, c: int) -> float:
    """log((a + b + c)! / (a! b! c!)) built up one factor at a time."""
    top, rest = _split_largest(a, b, c)
    value = 0.0
    for small in rest:
        for i in range(1, small + 1):
            top += 1
            value += math.log(top) - math.log(i)
    return value


def _split_largest(a: int, b: int, c: int) -> Tuple[int, Tuple[int, int]]:
    if b > a and b > c:
        return b, (a, c)
    if c > a:
        return c, (a, b)
    return a, (b, c)


def _synthetic_bucket() -> AlleleBucket:
    return AlleleBucket(length=0, occurrences=0, reverse=0, avg_min_flank=0.0, avg_quality=0.0)


def score_genotypes(
    buckets: Sequence[AlleleBucket],
    *,
    ref_length: int,
    unit_length: int,
    table: ErrorRateTable,
    haploid: bool = False,
) -> Tuple[List[Hypothesis], LikelihoodTable]:
    """Score every genotype hypothesis over the observed allele buckets.

    Returns the hypotheses (best first, normalised probabilities filled in)
    and the Phred-scaled likelihood table keyed by ``(min, max)`` length.
    """
    ordered = sorted(buckets, key=lambda b: b.length)
    ordered.append(_synthetic_bucket())
    total = sum(b.occurrences for b in ordered)

    def counts(bucket: AlleleBucket) -> Tuple[int, int]:
        if bucket.occurrences == 0:
            return 0, 0
        return table.lookup(unit_length, ref_length, bucket.avg_quality)

    raw: List[Hypothesis] = []
    for i, bi in enumerate(ordered):
        for bj in ordered[i + 1 :]:
            other = total - bi.occurrences - bj.occurrences
            heterozygous = bj.occurrences != 0
            if haploid and heterozygous:
                continue
            correct_i, error_i = counts(bi)
            correct_j, error_j = counts(bj)
            if heterozygous:
                numerator = [
                    1 + correct_i + bi.occurrences,
                    1 + correct_j + bj.occurrences,
                    1 + error_i + error_j + other,
                ]
                denominator = [1 + correct_i, 1 + correct_j, 1 + error_i + error_j]
                alleles: Tuple[int, ...] = (bi.length, bj.length)
            else:
                numerator = [1 + correct_i + bi.occurrences, 1 + error_i + error_j + other]
                denominator = [1 + correct_i, 1 + error_i + error_j]
                alleles = (bi.length,)
            loglik = (
                log_multinomial(bi.occurrences, bj.occurrences, other)
                + log_beta_multinomial(numerator)
                - log_beta_multinomial(denominator)
            )
            logger.debug("Hypothesis %s: log-likelihood %.4f", genotype_label(alleles), loglik)
            raw.append(Hypothesis(alleles=alleles, log_likelihood=loglik))

    if not raw:
        return [], {}

    logliks = np.array([h.log_likelihood for h in raw])
    weights = np.exp(logliks - logliks.max())
    total_weight = float(weights.sum())

    scored: List[Hypothesis] = []
    likelihoods: LikelihoodTable = {}
    for idx, hyp in enumerate(raw):
        rest = float(np.delete(weights, idx).sum())
        scored.append(
            Hypothesis(
                alleles=hyp.alleles,
                log_likelihood=hyp.log_likelihood,
                probability=float(weights[idx]) / total_weight,
            )
        )
        likelihoods[hyp.key] = cap_phred(phred_from_error(rest, total_weight))

    scored.sort(key=lambda h: h.probability, reverse=True)
    return scored, likelihoods


def call_genotype(
    buckets: Sequence[AlleleBucket],
    n_reads: int,
    *,
    ref_length: int,
    unit_length: int,
    table: ErrorRateTable,
    haploid: bool = False,
) -> GenotypeCall:
    """Genotype a region from its allele buckets.

    Regions with too many or too deep buckets are left unresolved. A region
    whose reads nearly all agree is called from the majority allele without
    running the likelihood model.
    """
    if not buckets or len(buckets) > MAX_BUCKETS or buckets[0].occurrences >= MAX_BUCKET_READS:
        logger.debug("Region unresolved: %d bucket(s)", len(buckets))
        return GenotypeCall(alleles=(), confidence=None)

    conc, majority = concordance(buckets, n_reads)
    if conc >= CONCORDANCE_SHORTCUT:
        return GenotypeCall(
            alleles=(majority,),
            confidence=MAX_PHRED,
            likelihoods={(majority, majority): MAX_PHRED},
            probabilities={str(majority): 1.0},
            concordant=True,
        )

    hypotheses, likelihoods = score_genotypes(
        buckets,
        ref_length=ref_length,
        unit_length=unit_length,
        table=table,
        haploid=haploid,
    )
    if not hypotheses:
        return GenotypeCall(alleles=(), confidence=None)

    best = hypotheses[0]
    confidence = likelihoods[best.key] if n_reads > 1 else 0.0
    return GenotypeCall(
        alleles=best.alleles,
        confidence=confidence,
        likelihoods=likelihoods,
        probabilities={h.name: h.probability for h in hypotheses},
    )


def is_reported(call: GenotypeCall) -> bool:
    """Whether a call is confident enough to be written as a genotype."""
    if not call.alleles:
        return False
    if call.concordant:
        return True
    return call.confidence is not None and call.confidence > MIN_REPORTED_CONFIDENCE


def call_label(call: GenotypeCall) -> str:
    return genotype_label(call.alleles) if is_reported(call) else "NA"
