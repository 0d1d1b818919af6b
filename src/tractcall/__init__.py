"""tractcall: Bayesian short tandem repeat genotyping from aligned reads.

Public API is intentionally small; most users should use the CLI:

    tractcall call --bam ... --ref ... --regions ... --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
