"""Summary renderer module for build reports.

This module turns a metrics ledger snapshot plus build metadata into a
report, rendered as a step table, an ASCII timeline, a full Markdown
summary or a pull-request comment body.

Public API:
    SummaryRenderer: Computes reports and renders them.
    Report: Read-only summary of one build run.
    ReportStatus: Overall outcome (success, failure, unknown).
    DEFAULT_MARKER: Hidden tag embedded in pull-request comments.
    EMPTY_TABLE_ROW: Table row shown when no steps were recorded.
    format_duration: Human-readable duration formatting.
    write_step_summary: Append a summary to the CI step-summary file.
"""

from .models import Report, ReportStatus
from .renderer import (
    DEFAULT_MARKER,
    EMPTY_TABLE_ROW,
    SummaryRenderer,
    format_duration,
    write_step_summary,
)

__all__ = [
    "SummaryRenderer",
    "Report",
    "ReportStatus",
    "DEFAULT_MARKER",
    "EMPTY_TABLE_ROW",
    "format_duration",
    "write_step_summary",
]
