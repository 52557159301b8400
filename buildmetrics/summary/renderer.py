"""SummaryRenderer for turning a metrics ledger into build summaries."""

import logging
import math
from pathlib import Path
from typing import Iterable, Optional, Union

from buildmetrics.context import BuildContext
from buildmetrics.ledger import StepRecord, StepStatus

from .models import Report, ReportStatus

logger = logging.getLogger(__name__)

# Hidden tag identifying this pipeline's pull-request comment
DEFAULT_MARKER = "<!-- buildmetrics:build-summary -->"

STATUS_GLYPHS = {
    StepStatus.SUCCESS: "✅",
    StepStatus.FAILURE: "❌",
    StepStatus.SKIPPED: "⏭️",
}

REPORT_GLYPHS = {
    ReportStatus.SUCCESS: "✅",
    ReportStatus.FAILURE: "❌",
    ReportStatus.UNKNOWN: "❔",
}

EMPTY_TABLE_ROW = "| _No build steps were recorded_ | ❔ | - |"


def format_duration(seconds: float) -> str:
    """Format a duration for display.

    Examples:
        5.04 -> "5.0s", 95 -> "1m 35s", 3725 -> "1h 2m 5s"

    Non-finite or negative values render as "-".
    """
    if not math.isfinite(seconds) or seconds < 0:
        return "-"
    if seconds < 60:
        return f"{seconds:.1f}s"
    total = int(round(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


class SummaryRenderer:
    """Builds reports from ledger snapshots and renders them as text.

    Every method is a pure function of its arguments; rendering never
    raises for an empty or missing ledger.
    """

    BAR_CHAR = "#"
    MARKER_CHAR = "*"

    def __init__(self, timeline_width: int = 40):
        """Initialize the renderer.

        Args:
            timeline_width: Number of characters the full run spans in the
                timeline.
        """
        self._timeline_width = max(1, timeline_width)

    # -------------------- Report --------------------

    def compute_report(
        self,
        ledger: Optional[Iterable[StepRecord]],
        context: Optional[BuildContext] = None,
    ) -> Report:
        """Compute a report from a ledger snapshot.

        Args:
            ledger: MetricsLedger or any iterable of StepRecords. None is
                treated as an empty ledger.
            context: Build metadata. Defaults to an empty BuildContext.

        Returns:
            Report whose status is failure if any step failed, success if
            every step succeeded or was skipped, unknown if there are none.
        """
        context = context or BuildContext()
        try:
            steps = tuple(step for step in (ledger or ()) if isinstance(step, StepRecord))
        except TypeError:
            logger.warning("Ledger snapshot is not iterable; reporting no steps")
            steps = ()

        if not steps:
            return Report(status=ReportStatus.UNKNOWN, context=context)

        if any(step.status == StepStatus.FAILURE for step in steps):
            status = ReportStatus.FAILURE
        else:
            status = ReportStatus.SUCCESS

        started_at = min(step.start_time for step in steps)
        finished_at = max(step.end_time for step in steps)
        return Report(
            status=status,
            steps=steps,
            context=context,
            total_duration=finished_at - started_at,
            started_at=started_at,
            finished_at=finished_at,
        )

    # -------------------- Table --------------------

    def render_table(self, report: Report) -> str:
        """Render one Markdown table row per step, in ledger order."""
        lines = [
            "| Step | Status | Duration |",
            "|------|--------|----------|",
        ]
        if report.is_empty:
            lines.append(EMPTY_TABLE_ROW)
        for step in report.steps:
            glyph = STATUS_GLYPHS[step.status]
            lines.append(
                f"| {step.name} | {glyph} {step.status.value} "
                f"| {format_duration(step.duration_seconds)} |"
            )
        return "\n".join(lines)

    # -------------------- Timeline --------------------

    def _bar_span(self, step: StepRecord, report: Report) -> tuple[int, int]:
        """Return (offset, length) of a step's bar in timeline columns."""
        width = self._timeline_width
        if not math.isfinite(report.total_duration) or report.total_duration <= 0:
            return 0, 1
        scale = width / report.total_duration
        length = max(1, int(round(step.duration_seconds * scale)))
        length = min(length, width)
        offset = int(round((step.start_time - report.started_at) * scale))
        offset = max(0, min(offset, width - length))
        return offset, length

    def render_timeline(self, report: Report) -> str:
        """Render a proportional ASCII bar per step.

        Bars are positioned by start time and scaled to the run's total
        duration. Zero-duration steps get a one-character marker; if the
        whole run took no time, every step gets the same single marker.
        """
        if report.is_empty:
            return "(no steps recorded)"

        width = self._timeline_width
        label_width = max(len(step.name) for step in report.steps)
        lines = []
        for step in report.steps:
            offset, length = self._bar_span(step, report)
            char = self.MARKER_CHAR if step.duration_seconds <= 0 else self.BAR_CHAR
            bar = " " * offset + char * length
            lines.append(
                f"{step.name.ljust(label_width)} |{bar.ljust(width)}| "
                f"{format_duration(step.duration_seconds)}"
            )
        return "\n".join(lines)

    # -------------------- Full summary --------------------

    def _configuration_lines(self, report: Report) -> list[str]:
        context = report.context
        lines = [
            f"- **Build type:** {context.build_type.value}",
            f"- **Save logs:** {'yes' if context.save_logs else 'no'}",
        ]
        if context.trigger_reason:
            lines.append(f"- **Trigger reason:** {context.trigger_reason}")

        source_parts = []
        if context.source_repo:
            source_parts.append(f"`{context.source_repo}`")
        if context.source_ref:
            source_parts.append(f"@ `{context.source_ref}`")
        if context.short_sha:
            source_parts.append(f"(`{context.short_sha}`)")
        if source_parts:
            lines.append(f"- **Source:** {' '.join(source_parts)}")

        if context.run_id:
            lines.append(f"- **Run ID:** {context.run_id}")
        if not report.is_empty:
            lines.append(f"- **Total duration:** {format_duration(report.total_duration)}")
            lines.append(
                f"- **Steps:** {len(report.steps)} ({report.passed} passed, "
                f"{report.failed} failed, {report.skipped} skipped)"
            )
        return lines

    def _artifact_lines(self, report: Report) -> list[str]:
        context = report.context
        lines = []
        if context.run_url:
            lines.append(f"- [Workflow run and artifacts]({context.run_url})")
        if context.save_logs:
            lines.append("- Build logs uploaded with the run artifacts")
        lines.append(f"- Artifacts retained for {context.artifacts_retention_days} days")
        return lines

    def render_full_summary(self, report: Report) -> str:
        """Render the complete Markdown summary.

        Sections: heading with overall status, configuration, step table,
        timeline, and artifact/log links. Absent optional context fields are
        left out entirely.
        """
        glyph = REPORT_GLYPHS[report.status]
        lines = [
            f"## {glyph} Build Summary: {report.status.value.upper()}",
            "",
            "### Configuration",
            *self._configuration_lines(report),
            "",
            "### Steps",
            self.render_table(report),
            "",
            "### Timeline",
            "```text",
            self.render_timeline(report),
            "```",
            "",
            "### Artifacts & Logs",
            *self._artifact_lines(report),
        ]
        return "\n".join(lines) + "\n"

    def render_comment(self, report: Report, marker: str = DEFAULT_MARKER) -> str:
        """Render the pull-request comment body, tagged with marker."""
        return self.render_full_summary(report) + "\n" + marker + "\n"


def write_step_summary(text: str, path: Optional[Union[str, Path]]) -> bool:
    """Append text to the CI step-summary file.

    Args:
        text: Markdown to append.
        path: Step-summary file (GITHUB_STEP_SUMMARY). Nothing is written
            when None or empty.

    Returns:
        True if the summary was written.
    """
    if not path:
        return False
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(text if text.endswith("\n") else text + "\n")
    except OSError as e:
        logger.warning("Could not write step summary to %s: %s", path, e)
        return False
    return True
