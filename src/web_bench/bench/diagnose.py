"""Per-category disagreement diagnostics over stored results."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from web_bench.bench.models import AuditResult, CriterionDetail, ToolCategoryDetail
from web_bench.bench.wcag import criterion_label

DEFAULT_EXAMPLE_LIMIT = 20
TOP_RULES_LIMIT = 10


@dataclass(frozen=True, slots=True)
class BucketSite:
    """One target in a finder-subset bucket."""

    origin: str
    rank: int
    detail: CriterionDetail | None

    def rule_ids(self, tool: str) -> tuple[str, ...]:
        tool_detail = self._tool_detail(tool)
        return tool_detail.rule_ids if tool_detail else ()

    def finding_count(self, tool: str) -> int | None:
        tool_detail = self._tool_detail(tool)
        return tool_detail.finding_count if tool_detail else None

    def _tool_detail(self, tool: str) -> ToolCategoryDetail | None:
        if self.detail is None:
            return None
        return self.detail.per_tool.get(tool)


@dataclass(slots=True)
class FinderBucket:
    """Targets where exactly ``finders`` reported the category."""

    finders: tuple[str, ...]
    sites: list[BucketSite] = field(default_factory=list)


@dataclass(slots=True)
class CategoryDiagnosis:
    category: str
    tools: tuple[str, ...]
    total_ok: int
    buckets: list[FinderBucket]
    rule_frequencies: dict[str, list[tuple[str, int]]]


def diagnose_category(
    results: Sequence[AuditResult],
    category: str,
    tools: Sequence[str],
) -> CategoryDiagnosis:
    """Group successful targets by which subset of tools found ``category``.

    Targets found by no tool are not listed. Buckets are ordered from the
    largest finder subset down, ties by tool order.
    """

    ok_results = [result for result in results if result.ok]
    by_finders: dict[tuple[str, ...], FinderBucket] = {}
    for result in ok_results:
        finders = tuple(tool for tool in tools if result.found(tool, category))
        if not finders:
            continue
        bucket = by_finders.setdefault(finders, FinderBucket(finders=finders))
        bucket.sites.append(
            BucketSite(origin=result.origin, rank=result.rank, detail=result.detail_for(category)),
        )

    tool_order = {tool: index for index, tool in enumerate(tools)}
    buckets = sorted(
        by_finders.values(),
        key=lambda bucket: (-len(bucket.finders), [tool_order[t] for t in bucket.finders]),
    )
    all_sites = [site for bucket in buckets for site in bucket.sites]
    return CategoryDiagnosis(
        category=category,
        tools=tuple(tools),
        total_ok=len(ok_results),
        buckets=buckets,
        rule_frequencies={tool: rule_frequencies(all_sites, tool) for tool in tools},
    )


def rule_frequencies(sites: Sequence[BucketSite], tool: str) -> list[tuple[str, int]]:
    """Count targets per rule id for ``tool``, most frequent first."""

    counts = Counter[str]()
    for site in sites:
        counts.update(site.rule_ids(tool))
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


def select_examples(
    sites: Sequence[BucketSite],
    tools: Sequence[str],
    limit: int,
) -> list[BucketSite]:
    """Pick up to ``limit`` sites, round-robin across leading rule ids.

    Sites are grouped by their first rule id (tools in order), each group is
    ordered by rank, and groups take turns so one noisy rule does not crowd
    out the rest.
    """

    if len(sites) <= limit:
        return list(sites)

    groups: dict[str, list[BucketSite]] = {}
    for site in sites:
        rule_ids = [rule_id for tool in tools for rule_id in site.rule_ids(tool)]
        key = rule_ids[0] if rule_ids else "unknown"
        groups.setdefault(key, []).append(site)
    for group in groups.values():
        group.sort(key=lambda site: site.rank)

    selected: list[BucketSite] = []
    iterators = [iter(group) for group in groups.values()]
    while len(selected) < limit:
        added = False
        for iterator in iterators:
            if len(selected) >= limit:
                break
            site = next(iterator, None)
            if site is not None:
                selected.append(site)
                added = True
        if not added:
            break
    return selected


def render_diagnosis_lines(
    diagnosis: CategoryDiagnosis,
    *,
    limit: int = DEFAULT_EXAMPLE_LIMIT,
) -> list[str]:
    lines = [
        f"Diagnostics for {criterion_label(diagnosis.category)}",
        f"Total OK targets: {diagnosis.total_ok}",
        "",
    ]
    if not diagnosis.buckets:
        lines.append("No tool reported this category.")
        return lines

    for bucket in diagnosis.buckets:
        label = _bucket_label(bucket, diagnosis.tools)
        lines.append(f"--- {label}: {len(bucket.sites)} targets ---")
        examples = select_examples(bucket.sites, diagnosis.tools, limit)
        for site in examples:
            parts = [f"  {site.origin} (rank {site.rank})"]
            for tool in diagnosis.tools:
                count = site.finding_count(tool)
                ids = ",".join(site.rule_ids(tool))
                parts.append(f"{tool}:[{ids}] n={'?' if count is None else count}")
            lines.append("  ".join(parts))
        if len(bucket.sites) > len(examples):
            lines.append(f"  ... and {len(bucket.sites) - len(examples)} more")
        lines.append("")

    lines.append("Top rules")
    for tool in diagnosis.tools:
        frequencies = diagnosis.rule_frequencies.get(tool, [])[:TOP_RULES_LIMIT]
        rendered = ", ".join(f"{rule_id}={count}" for rule_id, count in frequencies) or "-"
        lines.append(f"  {tool}: {rendered}")
    return lines


def _bucket_label(bucket: FinderBucket, tools: Sequence[str]) -> str:
    if len(bucket.finders) == len(tools) and len(tools) > 1:
        return "All tools found"
    if len(bucket.finders) == 1:
        return f"{bucket.finders[0]} only"
    return " + ".join(bucket.finders)
