"""Sequencing-error counts for repeat tracts.

Counts are indexed by repeat unit length (1-5), reference tract length bucket
(15 bp wide, 0-4) and average base quality bucket (0-4) and give the number
of reads that reproduced the reference length (``correct``) versus those that
did not (``error``).

The built-in table is a placeholder prior: error rates rise with tract length
and fall with unit length, on a scale of 1000 pseudo-observations per cell. It
is not derived from a sequencing run. Load a measured table with
:meth:`ErrorRateTable.from_json` (``tractcall call --error-table``).
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Tuple

from .utils import clamp

MAX_UNIT = 5
MAX_REF_LENGTH = 70
LENGTH_BUCKET = 15
N_QUALITY_BUCKETS = 5

Counts = Tuple[int, int]

# [unit - 1][length bucket][quality bucket] -> (correct, error)
_PRIOR_COUNTS: Tuple[Tuple[Tuple[Counts, ...], ...], ...] = (
    (
        ((980, 20), (970, 30), (956, 44), (936, 64), (910, 90)),
        ((950, 50), (925, 75), (890, 110), (840, 160), (775, 225)),
        ((900, 100), (850, 150), (780, 220), (680, 320), (550, 450)),
        ((820, 180), (730, 270), (604, 396), (424, 576), (400, 600)),
        ((720, 280), (580, 420), (400, 600), (400, 600), (400, 600)),
    ),
    (
        ((990, 10), (985, 15), (978, 22), (968, 32), (955, 45)),
        ((975, 25), (962, 38), (945, 55), (920, 80), (887, 113)),
        ((950, 50), (925, 75), (890, 110), (840, 160), (775, 225)),
        ((910, 90), (865, 135), (802, 198), (712, 288), (595, 405)),
        ((860, 140), (790, 210), (692, 308), (552, 448), (400, 600)),
    ),
    (
        ((994, 6), (991, 9), (987, 13), (981, 19), (973, 27)),
        ((986, 14), (979, 21), (969, 31), (955, 45), (937, 63)),
        ((972, 28), (958, 42), (938, 62), (910, 90), (874, 126)),
        ((950, 50), (925, 75), (890, 110), (840, 160), (775, 225)),
        ((920, 80), (880, 120), (824, 176), (744, 256), (640, 360)),
    ),
    (
        ((996, 4), (994, 6), (991, 9), (987, 13), (982, 18)),
        ((990, 10), (985, 15), (978, 22), (968, 32), (955, 45)),
        ((980, 20), (970, 30), (956, 44), (936, 64), (910, 90)),
        ((965, 35), (947, 53), (923, 77), (888, 112), (842, 158)),
        ((945, 55), (917, 83), (879, 121), (824, 176), (752, 248)),
    ),
    (
        ((997, 3), (995, 5), (993, 7), (990, 10), (986, 14)),
        ((992, 8), (988, 12), (982, 18), (974, 26), (964, 36)),
        ((985, 15), (977, 23), (967, 33), (952, 48), (932, 68)),
        ((974, 26), (961, 39), (943, 57), (917, 83), (883, 117)),
        ((958, 42), (937, 63), (908, 92), (866, 134), (811, 189)),
    ),
)


def length_bucket(ref_length: int) -> int:
    return min(max(ref_length, 0), MAX_REF_LENGTH) // LENGTH_BUCKET


def quality_bucket(avg_quality: float) -> int:
    """Bucket an average probability-correct; 0 is the best quality."""
    if avg_quality <= 0:
        return N_QUALITY_BUCKETS - 1
    return int(clamp(-30.0 * math.log10(avg_quality), 0, N_QUALITY_BUCKETS - 1))


def clamp_unit(unit_length: int) -> int:
    return int(clamp(unit_length, 1, MAX_UNIT))


def _parse_counts(data: Any, source: str) -> Tuple[Tuple[Tuple[Counts, ...], ...], ...]:
    shape = (MAX_UNIT, MAX_REF_LENGTH // LENGTH_BUCKET + 1, N_QUALITY_BUCKETS)

    def check_list(value: Any, size: int, where: str) -> list:
        if not isinstance(value, list) or len(value) != size:
            raise ValueError(f"{source}: expected a list of {size} entries at {where}")
        return value

    units = []
    for u, unit in enumerate(check_list(data, shape[0], "counts")):
        lengths = []
        for b, row in enumerate(check_list(unit, shape[1], f"counts[{u}]")):
            cells = []
            for q, pair in enumerate(check_list(row, shape[2], f"counts[{u}][{b}]")):
                where = f"counts[{u}][{b}][{q}]"
                check_list(pair, 2, where)
                if not all(isinstance(v, int) and v >= 0 for v in pair) or sum(pair) == 0:
                    raise ValueError(f"{source}: {where} must hold two non-negative integers")
                cells.append((pair[0], pair[1]))
            lengths.append(tuple(cells))
        units.append(tuple(lengths))
    return tuple(units)


@dataclass(frozen=True)
class ErrorRateTable:
    counts: Tuple[Tuple[Tuple[Counts, ...], ...], ...] = _PRIOR_COUNTS

    @classmethod
    def default(cls) -> "ErrorRateTable":
        return cls()

    @classmethod
    def uniform(cls, rate: float, total: int = 1000) -> "ErrorRateTable":
        """Same error rate for every cell, for users overriding the built-in prior."""
        if not 0.0 < rate < 1.0:
            raise ValueError(f"error rate must be in (0, 1) (got {rate})")
        error = int(round(rate * total))
        cell = (total - error, error)
        row = tuple(cell for _ in range(N_QUALITY_BUCKETS))
        unit = tuple(row for _ in range(MAX_REF_LENGTH // LENGTH_BUCKET + 1))
        return cls(counts=tuple(unit for _ in range(MAX_UNIT)))

    @classmethod
    def from_json(cls, path: str | Path) -> "ErrorRateTable":
        """Load a 5 x 5 x 5 table of ``[correct, error]`` pairs.

        The file holds either the nested list itself or an object with the
        list under ``"counts"``, indexed ``[unit - 1][length bucket][quality bucket]``.
        """
        with open(path, "rt", encoding="utf-8") as fh:
            data: Any = json.load(fh)
        if isinstance(data, dict):
            data = data.get("counts")
        return cls(counts=_parse_counts(data, str(path)))

    def lookup(self, unit_length: int, ref_length: int, avg_quality: float) -> Counts:
        """(correct, error) counts for one allele bucket."""
        return self.counts[clamp_unit(unit_length) - 1][length_bucket(ref_length)][quality_bucket(avg_quality)]
