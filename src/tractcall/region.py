from __future__ import annotations

import logging
import re
from typing import Optional

from .errors import RegionFormatError, TargetRangeError
from .models import ReferenceWindow, RegionSpec, Target
from .sources import ReferenceProvider
from .validation import remap_contig

logger = logging.getLogger(__name__)

_REGION_RE = re.compile(r"^(?P<chrom>[^:\s]+):(?P<start>\d+)-(?P<stop>\d+)$")


def parse_target(text: str) -> Target:
    """Parse ``chrom:start-stop`` (1-based, inclusive)."""
    m = _REGION_RE.match(text.strip().replace(",", ""))
    if m is None:
        raise RegionFormatError(f"cannot parse region {text!r}", line=text)
    target = Target(m.group("chrom"), int(m.group("start")), int(m.group("stop")))
    if target.start > target.stop:
        raise TargetRangeError(f"inverted region {text} (start > stop)")
    if target.start < 1:
        raise TargetRangeError(f"region {text} starts before position 1")
    return target


def parse_region_line(line: str, contig_style: Optional[str] = None) -> RegionSpec:
    """Parse one region file line: ``chrom:start-stop<TAB>unit_..._purity_..._unit``."""
    fields = line.rstrip("\r\n").split("\t")
    if len(fields) < 2:
        raise RegionFormatError("region line has no tab-separated metadata column", line=line)
    label, metadata = fields[0].strip(), fields[1].strip()
    if "_" not in metadata:
        raise RegionFormatError(f"metadata column {metadata!r} has no '_' separated fields", line=line)

    parts = metadata.split("_")
    try:
        unit_length = int(parts[0])
    except ValueError:
        raise RegionFormatError(f"unit length {parts[0]!r} is not an integer", line=line) from None
    purity = 0.0
    if len(parts) >= 5:
        try:
            purity = float(parts[3])
        except ValueError:
            raise RegionFormatError(f"purity {parts[3]!r} is not a number", line=line) from None

    try:
        target = parse_target(label)
    except RegionFormatError as err:
        raise RegionFormatError(str(err), line=line) from None
    if contig_style:
        target = Target(remap_contig(target.chrom, contig_style), target.start, target.stop)
    return RegionSpec(
        target=target,
        unit_length=unit_length,
        purity=purity,
        unit_seq=parts[-1],
        metadata=metadata,
        label=label,
    )


def resolve_window(target: Target, reference: ReferenceProvider, flank: int) -> ReferenceWindow:
    """Fetch the left flank, repeat core and right flank around ``target``."""
    try:
        chrom_length = reference.sequence_length(target.chrom)
    except KeyError:
        raise TargetRangeError(f"chromosome {target.chrom!r} is not in the reference") from None
    if target.start + target.length > chrom_length + 1:
        raise TargetRangeError(f"region {target} runs past the end of {target.chrom} ({chrom_length} bp)")

    left_len = min(flank, target.start - 1)
    right_len = min(flank, chrom_length - target.stop)
    left = reference.subsequence(target.chrom, target.start - 1 - left_len, left_len)
    core = reference.subsequence(target.chrom, target.start - 1, target.length)
    right = reference.subsequence(target.chrom, target.stop, right_len)
    return ReferenceWindow(left_flank=left.upper(), core=core.upper(), right_flank=right.upper())
