"""
Report emitters over an aggregated snapshot.

- ``build_summary`` assembles the section-ordered summary document
- ``render_markdown`` / ``write_markdown`` render it through Jinja2
- ``export_json`` / ``export_csv`` write the machine-readable forms
"""

from .summary import SummaryDocument, build_summary
from .markdown import render_markdown, write_markdown
from .export import (
    coverage_frame,
    coverage_pivot,
    defects_frame,
    export_csv,
    export_json,
    records_frame,
)

__all__ = [
    "SummaryDocument",
    "build_summary",
    "render_markdown",
    "write_markdown",
    "coverage_frame",
    "coverage_pivot",
    "defects_frame",
    "export_csv",
    "export_json",
    "records_frame",
]
