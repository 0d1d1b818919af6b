from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>tractcall report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>tractcall report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Alignments</th><td><code>{{ bam_path }}</code></td></tr>
      <tr><th>Reference</th><td><code>{{ ref_path }}</code></td></tr>
      <tr><th>Regions</th><td><code>{{ regions_path }}</code></td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Filters</h3>
    <table>
      <tr><th>Flank length</th><td>{{ settings.flank }}</td></tr>
      <tr><th>Min left / right flank matches</th><td>{{ settings.min_left_flank }} / {{ settings.min_right_flank }}</td></tr>
      <tr><th>Min MAPQ</th><td>{{ settings.min_mapq }}</td></tr>
      <tr><th>Read length bounds</th><td>{{ settings.min_read_length or "-" }} .. {{ settings.max_read_length or "-" }}</td></tr>
      <tr><th>Haploid</th><td>{{ settings.haploid }}</td></tr>
      <tr><th>Error model</th><td>{% if settings.error_table %}table {{ settings.error_table }}{% elif settings.error_rate is none %}built-in prior{% else %}uniform {{ settings.error_rate }}{% endif %}</td></tr>
    </table>
  </div>
</div>

<h2>Regions</h2>
<table>
  <tr><th>Regions in file</th><td>{{ counts.regions_total }}</td></tr>
  <tr><th>Skipped (malformed)</th><td>{{ counts.regions_skipped }}</td></tr>
  <tr><th>Called</th><td>{{ counts.regions_called }}</td></tr>
  <tr><th>Unresolved</th><td>{{ counts.regions_unresolved }}</td></tr>
  <tr><th>VCF records</th><td>{{ counts.variant_records }}</td></tr>
</table>

<h2>Reads</h2>
<table>
  {% for key, value in read_counts | dictsort %}
  <tr><th>{{ key }}</th><td>{{ value }}</td></tr>
  {% endfor %}
</table>

{% if plots %}
<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Genotype classes</h3>
    <img src="{{ plots.genotype_classes }}" alt="genotype classes">
  </div>
  <div class="card">
    <h3>Call confidence</h3>
    <img src="{{ plots.confidence_hist }}" alt="confidence histogram">
  </div>
</div>
{% endif %}

<h2>Outputs</h2>
<ul>
  {% if outputs.alignments %}<li><code>{{ outputs.alignments }}</code> (per-region read alignments)</li>{% endif %}
  {% if outputs.calls %}<li><code>{{ outputs.calls }}</code> (one genotype per region)</li>{% endif %}
  <li><code>{{ outputs.vcf }}</code> (variant records)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>Genotypes are repeat tract lengths in bases; <code>10h12</code> is heterozygous 10/12.</li>
  <li>Confidence is Phred-scaled and capped at 50; calls at or below 3.02 are reported as NA.</li>
  <li>Regions where at least 99% of reads agree are called without the likelihood model.</li>
</ul>

<hr>
<p class="small">tractcall {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    regions_path: str,
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        bam_path=run.get("bam_path"),
        ref_path=run.get("ref_path"),
        regions_path=regions_path,
        settings=run.get("settings", {}),
        counts=run.get("counts", {}),
        read_counts=run.get("read_counts", {}),
        outputs=run.get("outputs", {}),
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.debug("Wrote %s", out_path)
    return out_path
