from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CallerSettings:
    """Run-wide parameters shared by every region.

    flank:
        Number of reference bases kept on each side of a target.
    min_left_flank, min_right_flank:
        Consecutive flank bases a read must match next to the repeat.
    min_read_length, max_read_length:
        Read size bounds; 0 disables a bound.
    error_rate:
        When set, replaces the built-in error table with a flat rate.
    error_table:
        Path to a JSON error table replacing the built-in prior.
    """

    flank: int = 20
    min_left_flank: int = 3
    min_right_flank: int = 3
    min_mapq: int = 0
    min_read_length: int = 0
    max_read_length: int = 0
    exclude_multi: bool = False
    proper_pairs: bool = False
    skip_duplicates: bool = False
    emit_all: bool = False
    haploid: bool = False
    write_alignments: bool = True
    write_calls: bool = True
    error_rate: Optional[float] = None
    error_table: Optional[str] = None

    def validate(self) -> None:
        if self.flank < 1:
            raise ValueError(f"flank must be >= 1 (got {self.flank})")
        for name in ("min_left_flank", "min_right_flank", "min_mapq", "min_read_length", "max_read_length"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0 (got {getattr(self, name)})")
        if self.min_left_flank > self.flank or self.min_right_flank > self.flank:
            raise ValueError("minimum flank matches cannot exceed the flank length")
        if self.max_read_length and self.min_read_length > self.max_read_length:
            raise ValueError("min_read_length is larger than max_read_length")
        if self.error_rate is not None and not (0.0 < self.error_rate < 1.0):
            raise ValueError(f"error_rate must be in (0, 1) (got {self.error_rate})")
        if self.error_rate is not None and self.error_table is not None:
            raise ValueError("error_rate and error_table are mutually exclusive")

    def param_string(self) -> str:
        """Filename suffix recording the filters used, e.g. ``.F20.L3.R3.M0``."""
        parts = [
            f".F{self.flank}",
            f".L{self.min_left_flank}",
            f".R{self.min_right_flank}",
            f".M{self.min_mapq}",
        ]
        if self.min_read_length:
            parts.append(f".s{self.min_read_length}")
        if self.max_read_length:
            parts.append(f".S{self.max_read_length}")
        if self.exclude_multi:
            parts.append(".multi")
        if self.proper_pairs:
            parts.append(".pp")
        if self.skip_duplicates:
            parts.append(".nodup")
        if self.haploid:
            parts.append(".haploid")
        if self.error_rate is not None:
            parts.append(f".e{self.error_rate:g}")
        if self.error_table is not None:
            parts.append(f".t{Path(self.error_table).stem}")
        return "".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
