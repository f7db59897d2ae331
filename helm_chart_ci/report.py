"""Turns chart results into the summary table, legend and verdict."""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .constants import CI_CONFIG_FILE, Functionality
from .runner import ChartResult, ChartStatus

STATUS_GLYPHS: Dict[ChartStatus, str] = {
    ChartStatus.PASSED: "✅",
    ChartStatus.FAILED: "❌",
    ChartStatus.SKIPPED: "⏭️",
    ChartStatus.DISABLED: ":heavy_exclamation_mark:",
}

TABLE_HEADER = ["UID Helm Chart", "Result", "Folder"]


@dataclass(frozen=True)
class FunctionalityText:
    title: str
    heading: str
    verb: str
    passed: str
    failed: str
    disabled: str


TEXTS: Dict[Functionality, FunctionalityText] = {
    Functionality.VALIDATION: FunctionalityText(
        title="Helm chart manifest validation",
        heading="Helm Chart Manifest Validation Results",
        verb="Validated",
        passed="Manifest validated",
        failed="Manifest validation failed",
        disabled="Validation disabled",
    ),
    Functionality.DEPENDENCY_UPDATE: FunctionalityText(
        title="Helm dependency update",
        heading="Helm Chart Dependency Update Results",
        verb="Updated",
        passed="Helm chart dependencies updated",
        failed="Dependency update failed",
        disabled="Update disabled",
    ),
    Functionality.TEST: FunctionalityText(
        title="Helm tests",
        heading="Helm Chart Test Results",
        verb="Tested",
        passed="Tests passed",
        failed="Tests failed",
        disabled="Tests disabled",
    ),
}


def glyph(status: ChartStatus) -> str:
    return STATUS_GLYPHS[status]


def legend(functionality: Functionality) -> str:
    text = TEXTS[functionality]
    lines = [
        f"{glyph(ChartStatus.PASSED)} = {text.passed}",
        f"{glyph(ChartStatus.FAILED)} = {text.failed}",
    ]
    if functionality is Functionality.TEST:
        lines.append(f"{glyph(ChartStatus.SKIPPED)} = Skipped (no tests directory)")
    lines.append(f"{glyph(ChartStatus.DISABLED)} = {text.disabled} by {CI_CONFIG_FILE}")
    return "\n".join(lines)


@dataclass
class Report:
    functionality: Functionality
    results: List[ChartResult]
    rows: List[List[str]]
    legend: str
    counts: Counter = field(default_factory=Counter)
    scope_note: Optional[str] = None

    @property
    def failed(self) -> List[ChartResult]:
        return [r for r in self.results if r.status is ChartStatus.FAILED]

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def heading(self) -> str:
        return TEXTS[self.functionality].heading

    def failure_message(self) -> Optional[str]:
        if self.success:
            return None
        charts = ", ".join(r.chart for r in self.failed)
        return f"{TEXTS[self.functionality].title} failed for: {charts}"

    def count_line(self) -> str:
        return ", ".join(f"{self.counts[status]} {status.value}" for status in ChartStatus)


def build_report(
    results: Sequence[ChartResult],
    functionality: Functionality,
    total_charts: Optional[int] = None,
    filtered: bool = False,
) -> Report:
    """
    Rows keep the order of `results`. When change filtering was active the
    report notes how many of the listed charts were in scope.
    """
    results = list(results)
    scope_note = None
    if filtered:
        total = len(results) if total_charts is None else total_charts
        scope_note = (
            f"*{TEXTS[functionality].verb} only changed charts "
            f"({len(results)} of {total} total charts)*"
        )
    return Report(
        functionality=functionality,
        results=results,
        rows=[[r.chart, glyph(r.status), r.relative_path] for r in results],
        legend=legend(functionality),
        counts=Counter(r.status for r in results),
        scope_note=scope_note,
    )
