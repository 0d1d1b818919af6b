from __future__ import annotations

import gzip
import json
import logging
import math
from pathlib import Path
from typing import Any, Optional, Sequence, TextIO

logger = logging.getLogger(__name__)

MAX_PHRED = 50.0


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def phred_to_prob_correct(q: int) -> float:
    """Probability that a base with Phred score ``q`` is called correctly."""
    return 1.0 - 10 ** (-q / 10)


def mean_base_quality(qualities: Optional[Sequence[int]]) -> float:
    """Average probability-correct over a read's per-base Phred scores."""
    if qualities is None or len(qualities) == 0:
        return 0.0
    return sum(phred_to_prob_correct(int(q)) for q in qualities) / len(qualities)


def phred_from_error(error: float, total: float = 1.0) -> float:
    """Phred transform ``-10 log10(error / total)``; infinite when error is 0."""
    if total <= 0 or math.isnan(error) or math.isnan(total):
        return float("nan")
    if error <= 0:
        return float("inf")
    return -10.0 * math.log10(error / total)


def cap_phred(value: float, hi: float = MAX_PHRED) -> float:
    """Clamp a Phred value to ``[0, hi]``; NaN becomes 0."""
    if math.isnan(value):
        return 0.0
    return clamp(value, 0.0, hi)


def format_number(value: float) -> str:
    """Up to six significant digits, like a default C++ stream."""
    return f"{value:.6g}"


def truncate(value: float, digits: int) -> float:
    scale = 10 ** digits
    return float(int(value * scale)) / scale


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def read_region_lines(path: str | Path) -> list[str]:
    """Read a region file, dropping blank lines and ``#`` comments."""
    lines: list[str] = []
    with open_textmaybe_gzip(path, "rt") as fh:
        for raw in fh:
            line = raw.rstrip("\r\n")
            if not line.strip() or line.startswith("#"):
                continue
            lines.append(line)
    return lines


def strip_gaps(seq: str) -> str:
    return seq.replace("-", "")
