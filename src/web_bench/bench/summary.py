"""Run summary metrics and operator-facing rendering."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from web_bench.bench.concordance import ConcordanceTable, mean_kappa
from web_bench.bench.models import AuditResult, ToolStatus

NEAR_EMPTY_DOM_ELEMENTS = 10
RULE = "=" * 70


@dataclass(slots=True)
class TimingStats:
    """Timing distribution for one tool, in milliseconds."""

    sample_size: int
    mean_ms: float
    median_ms: float
    p95_ms: float
    min_ms: float
    max_ms: float


@dataclass(slots=True)
class RunSummary:
    """Aggregate counters for one run (or several merged shards)."""

    tools: tuple[str, ...]
    attempted: int
    ok: int
    error: int
    error_category_counts: dict[str, int]
    tool_error_counts: dict[str, int]
    timing: dict[str, TimingStats]
    finding_totals: dict[str, int]
    dom_median: float | None
    dom_p95: float | None
    dom_max: int | None
    near_empty_pages: int


def build_run_summary(results: Sequence[AuditResult], tools: Sequence[str]) -> RunSummary:
    """Summarize results; tool timings only count targets where the tool ran."""

    ok_results = [result for result in results if result.ok]
    error_categories = Counter[str](
        (result.error_category.value if result.error_category else "unknown")
        for result in results
        if not result.ok
    )

    tool_errors: dict[str, int] = {}
    timing: dict[str, TimingStats] = {}
    finding_totals: dict[str, int] = {}
    for tool in tools:
        outcomes = [result.tools[tool] for result in ok_results if tool in result.tools]
        tool_errors[tool] = sum(1 for outcome in outcomes if outcome.status == ToolStatus.ERROR)
        times = [
            outcome.time_ms
            for outcome in outcomes
            if outcome.status == ToolStatus.OK and outcome.time_ms >= 0
        ]
        if times:
            timing[tool] = TimingStats(
                sample_size=len(times),
                mean_ms=sum(times) / len(times),
                median_ms=_percentile(times, 0.5),
                p95_ms=_percentile(times, 0.95),
                min_ms=min(times),
                max_ms=max(times),
            )
        finding_totals[tool] = sum(outcome.finding_count for outcome in outcomes)

    dom_counts = [
        float(result.dom_element_count)
        for result in ok_results
        if result.dom_element_count is not None
    ]
    return RunSummary(
        tools=tuple(tools),
        attempted=len(results),
        ok=len(ok_results),
        error=len(results) - len(ok_results),
        error_category_counts=dict(sorted(error_categories.items())),
        tool_error_counts=tool_errors,
        timing=timing,
        finding_totals=finding_totals,
        dom_median=_percentile(dom_counts, 0.5) if dom_counts else None,
        dom_p95=_percentile(dom_counts, 0.95) if dom_counts else None,
        dom_max=int(max(dom_counts)) if dom_counts else None,
        near_empty_pages=sum(1 for count in dom_counts if count < NEAR_EMPTY_DOM_ELEMENTS),
    )


def render_summary_lines(  # noqa: C901
    *,
    summary: RunSummary,
    concordance: dict[str, ConcordanceTable],
    output_path: Path | None = None,
    seed: int | None = None,
) -> list[str]:
    """Render the end-of-run report for CLI output."""

    lines = [RULE, "  Web Benchmark Summary", RULE, ""]
    if seed is not None:
        lines.append(f"  Seed:            {seed}")
    lines.extend(
        [
            f"  Targets tested:  {summary.attempted}",
            f"    Successful:    {summary.ok}",
            f"    Errors:        {summary.error}",
        ],
    )
    if summary.error_category_counts:
        lines.append("  Errors by category: " + _fmt_key_value(summary.error_category_counts))

    if summary.ok == 0:
        lines.extend(["", "  No successful audits to report.", RULE])
        return lines

    if summary.dom_median is not None and summary.dom_p95 is not None:
        lines.extend(
            [
                "",
                "  DOM element counts",
                f"    Median:          {summary.dom_median:,.0f}",
                f"    P95:             {summary.dom_p95:,.0f}",
                f"    Max:             {summary.dom_max:,}",
                f"    Near-empty (<{NEAR_EMPTY_DOM_ELEMENTS}): {summary.near_empty_pages}",
            ],
        )

    if any(summary.tool_error_counts.values()):
        lines.extend(["", "  Tool errors (on otherwise successful targets)"])
        for tool in summary.tools:
            lines.append(f"    {tool:<16} {summary.tool_error_counts.get(tool, 0)}")

    lines.extend(["", "  Performance (ms)"])
    lines.append("  " + "".ljust(10) + "".join(f"{tool:>14}" for tool in summary.tools))
    for label, attr in (
        ("Mean", "mean_ms"),
        ("Median", "median_ms"),
        ("P95", "p95_ms"),
        ("Min", "min_ms"),
        ("Max", "max_ms"),
    ):
        cells = []
        for tool in summary.tools:
            stats = summary.timing.get(tool)
            cells.append(f"{_fmt_ms(getattr(stats, attr)) if stats else 'n/a':>14}")
        lines.append("  " + label.ljust(10) + "".join(cells))

    lines.extend(["", "  Total findings"])
    for tool in summary.tools:
        lines.append(f"    {tool:<16} {summary.finding_totals.get(tool, 0):,}")

    if concordance:
        lines.extend(_render_concordance(summary.tools, concordance))

    if output_path is not None:
        lines.extend(["", f"  Results written to: {output_path}"])
    lines.append(RULE)
    return lines


def _render_concordance(
    tools: Sequence[str],
    concordance: dict[str, ConcordanceTable],
) -> list[str]:
    first_table = next(iter(concordance.values()))
    pair_labels = [f"{a.first}~{a.second}" for a in first_table.pairs]
    bucket_labels = [f"{k}/{len(tools)}" for k in range(len(tools), -1, -1)]

    header = (
        "  "
        + "Category".ljust(12)
        + "".join(f"{label:>7}" for label in bucket_labels)
        + "".join(f"{label:>22}" for label in pair_labels)
    )
    lines = ["", "  Concordance by category", header, "  " + "-" * (len(header) - 2)]

    ordered = sorted(concordance.values(), key=lambda t: (-t.found_by_any, t.category))
    for table in ordered:
        buckets = "".join(f"{table.found_by[k]:>7}" for k in range(len(tools), -1, -1))
        kappas = "".join(f"{agreement.kappa:>22.2f}" for agreement in table.pairs)
        lines.append("  " + table.category.ljust(12) + buckets + kappas)

    means = mean_kappa(concordance.values())
    lines.append("")
    lines.append(
        "  Mean kappa: "
        + "   ".join(f"{first}~{second} {value:.2f}" for (first, second), value in means.items()),
    )
    return lines


def _fmt_ms(value: float) -> str:
    if value < 1:
        return f"{value * 1000:.0f}us"
    return f"{value:.0f}ms"


def _fmt_key_value(values: dict[str, int]) -> str:
    return " ".join(f"{key}={values[key]}" for key in sorted(values))


def _percentile(values: list[float], percentile: float) -> float:
    if not values:
        return 0.0
    sorted_values = sorted(values)
    if len(sorted_values) == 1:
        return sorted_values[0]
    rank = (len(sorted_values) - 1) * percentile
    lower = int(rank)
    upper = min(lower + 1, len(sorted_values) - 1)
    weight = rank - lower
    return sorted_values[lower] * (1.0 - weight) + sorted_values[upper] * weight
