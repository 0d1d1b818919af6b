"""Exception types shared across the region pipeline.

Two classes of failure exist:

- ``RegionFormatError``: one line of the region file cannot be parsed. The
  region is logged and skipped; the run continues.
- ``TargetRangeError``: a region is inverted or falls outside its chromosome.
  This aborts the whole run.
"""

from __future__ import annotations


class TractcallError(Exception):
    """Base class for tractcall errors."""


class RegionFormatError(TractcallError, ValueError):
    """Raised when a region line is malformed (recoverable per region)."""

    def __init__(self, message: str, *, line: str = "") -> None:
        super().__init__(message)
        self.line = line


class TargetRangeError(TractcallError, ValueError):
    """Raised when a target range is inverted or overruns its chromosome (fatal)."""
