"""
PDF and markdown reports collecting the analysis figures.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any

import matplotlib.pyplot as plt
from matplotlib.backends.backend_pdf import PdfPages

logger = logging.getLogger('pyritechem')

REPORT_TITLE = 'Trace elements in pyrite: exploratory analysis'

# A4 portrait, inches
_PAGE_SIZE = (8.27, 11.69)


def _summary_lines(summary: dict[str, Any]) -> list[str]:
    lines = []
    for key, value in summary.items():
        label = key.replace('_', ' ').capitalize()
        if isinstance(value, float):
            value = f"{value:.3f}"
        elif isinstance(value, (list, tuple)):
            value = ', '.join(map(str, value))
        lines.append(f"{label}: {value}")
    return lines


def build_pdf_report(
    figures: list[dict[str, Any]],
    summary: dict[str, Any],
    output_path: str | Path
) -> int:
    """
    Write a multi-page PDF: a title page with the run summary, then one
    figure per page with its caption.

    Args:
        figures: Dicts with 'path' (PNG) and 'caption'
        summary: Key figures of the run shown on the title page
        output_path: Destination PDF

    Returns:
        Number of pages written

    Raises:
        FileNotFoundError: If a listed figure does not exist
    """
    missing = [str(f['path']) for f in figures if not Path(f['path']).exists()]
    if missing:
        raise FileNotFoundError(f"Figures missing for report: {missing}")

    output_path = Path(output_path)
    n_pages = 0

    with PdfPages(output_path) as pdf:
        fig = plt.figure(figsize=_PAGE_SIZE)
        fig.text(0.5, 0.9, REPORT_TITLE, ha='center', fontsize=16, fontweight='bold')
        fig.text(0.5, 0.86, f"Generated {date.today().isoformat()}", ha='center', fontsize=10)
        for i, line in enumerate(_summary_lines(summary)):
            fig.text(0.1, 0.78 - 0.03 * i, line, fontsize=10, family='monospace')
        pdf.savefig(fig)
        plt.close(fig)
        n_pages += 1

        for figure in figures:
            image = plt.imread(str(figure['path']))
            fig = plt.figure(figsize=_PAGE_SIZE)
            ax = fig.add_axes([0.05, 0.12, 0.9, 0.8])
            ax.imshow(image)
            ax.axis('off')
            fig.text(0.5, 0.06, figure.get('caption', ''), ha='center', fontsize=10, wrap=True)
            pdf.savefig(fig)
            plt.close(fig)
            n_pages += 1

        info = pdf.infodict()
        info['Title'] = REPORT_TITLE

    logger.info(f"PDF report: {output_path} ({n_pages} pages)")
    return n_pages


def write_markdown_report(
    summary: dict[str, Any],
    figures: list[dict[str, Any]],
    path: str | Path
) -> Path:
    """
    Markdown companion to the PDF, linking figures relative to the report.
    """
    path = Path(path)
    lines = [f"# {REPORT_TITLE}", "", "## Run summary", "", "| Metric | Value |", "|--------|-------|"]
    for key, value in summary.items():
        if isinstance(value, float):
            value = f"{value:.3f}"
        elif isinstance(value, (list, tuple)):
            value = ', '.join(map(str, value))
        lines.append(f"| {key} | {value} |")

    lines += ["", "## Figures", ""]
    for figure in figures:
        figure_path = Path(figure['path'])
        try:
            link = figure_path.relative_to(path.parent)
        except ValueError:
            link = figure_path
        lines += [f"### {figure.get('caption', figure_path.stem)}", "", f"![{figure_path.stem}]({link.as_posix()})", ""]

    path.write_text("\n".join(lines))
    logger.info(f"Markdown report: {path}")
    return path
