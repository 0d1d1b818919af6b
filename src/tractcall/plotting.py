from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def plot_confidence_hist(
    *,
    bin_edges: List[float],
    counts: List[int],
    out_png: str | Path,
    title: str = "Genotype confidence",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    widths = [bin_edges[i + 1] - bin_edges[i] for i in range(len(counts))]
    centers = [bin_edges[i] + widths[i] / 2.0 for i in range(len(counts))]

    plt.figure()
    plt.bar(centers, counts, width=widths, align="center")
    plt.xlabel("Phred confidence (capped at 50)")
    plt.ylabel("Region count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_genotype_classes(
    *,
    classes: Dict[str, int],
    out_png: str | Path,
    title: str = "Called genotypes",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = ["Hom. reference", "Hom. alternate", "Heterozygous", "Unresolved"]
    values = [
        int(classes.get("homozygous_ref", 0)),
        int(classes.get("homozygous_alt", 0)),
        int(classes.get("heterozygous", 0)),
        int(classes.get("unresolved", 0)),
    ]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Region count")
    plt.title(title)
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
