"""Domain models for benchmark targets, audit results and findings."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

TOOL_FAILED_TIME_MS = -1.0


class AuditStatus(str, Enum):
    """Task-level outcome of auditing one target."""

    OK = "ok"
    ERROR = "error"


class ToolStatus(str, Enum):
    """Outcome of one analyzer within a task."""

    OK = "ok"
    ERROR = "error"


class ErrorCategory(str, Enum):
    """Normalized task error classes used by run summaries."""

    TIMEOUT = "timeout"
    HARD_TIMEOUT = "hard_timeout"
    DNS = "dns"
    TLS = "tls"
    CONNECTION = "connection"
    NAVIGATION = "navigation"
    HTTP = "http"
    RESOURCE = "resource"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Target:
    """One origin to audit, with its popularity rank."""

    origin: str
    rank: int


@dataclass(frozen=True, slots=True)
class RuleFinding:
    """Violations of one tool rule, mapped to the categories it covers."""

    rule_id: str
    categories: tuple[str, ...]
    count: int
    impact: str | None = None


@dataclass(frozen=True, slots=True)
class AnalyzerResult:
    """What one analyzer reports for one loaded target."""

    time_ms: float
    findings: tuple[RuleFinding, ...] = ()

    @property
    def categories_found(self) -> tuple[str, ...]:
        return tuple(sorted({c for finding in self.findings for c in finding.categories}))

    @property
    def finding_count(self) -> int:
        return sum(finding.count for finding in self.findings)


@dataclass(frozen=True, slots=True)
class PageInfo:
    """Facts about a loaded target reported by the provider."""

    dom_element_count: int | None = None


@dataclass(frozen=True, slots=True)
class ToolOutcome:
    """Per-tool slice of an audit result."""

    time_ms: float
    status: ToolStatus
    error: str | None = None
    categories_found: tuple[str, ...] = ()
    finding_count: int = 0

    @classmethod
    def failed(cls, error: str) -> ToolOutcome:
        return cls(time_ms=TOOL_FAILED_TIME_MS, status=ToolStatus.ERROR, error=error)


@dataclass(frozen=True, slots=True)
class ToolCategoryDetail:
    """What one tool reported for one category on one target."""

    found: bool
    rule_ids: tuple[str, ...] = ()
    finding_count: int = 0


@dataclass(frozen=True, slots=True)
class CriterionDetail:
    """Per-category breakdown of which tools found it and through which rules."""

    category: str
    per_tool: Mapping[str, ToolCategoryDetail] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "per_tool", MappingProxyType(dict(self.per_tool)))

    def found_by(self) -> tuple[str, ...]:
        return tuple(tool for tool, detail in self.per_tool.items() if detail.found)


@dataclass(frozen=True, slots=True)
class AuditResult:
    """Immutable record of one completed target task."""

    origin: str
    rank: int
    status: AuditStatus
    timestamp: str
    tools: Mapping[str, ToolOutcome] = field(hash=False)
    error: str | None = None
    error_category: ErrorCategory | None = None
    dom_element_count: int | None = None
    category_detail: tuple[CriterionDetail, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tools", MappingProxyType(dict(self.tools)))

    @property
    def ok(self) -> bool:
        return self.status == AuditStatus.OK

    @property
    def tool_names(self) -> tuple[str, ...]:
        return tuple(self.tools)

    def found(self, tool: str, category: str) -> bool:
        """Whether ``tool`` reported ``category`` on this target."""

        outcome = self.tools.get(tool)
        return outcome is not None and category in outcome.categories_found

    def detail_for(self, category: str) -> CriterionDetail | None:
        for detail in self.category_detail:
            if detail.category == category:
                return detail
        return None


def build_category_detail(
    tool_results: dict[str, AnalyzerResult | None],
) -> tuple[CriterionDetail, ...]:
    """Derive per-category detail from raw analyzer results.

    Tools that failed are passed as ``None`` and count as not having found
    anything.
    """

    rules: dict[str, dict[str, list[str]]] = {}
    counts: dict[str, dict[str, int]] = {}
    for tool, result in tool_results.items():
        if result is None:
            continue
        for finding in result.findings:
            for category in finding.categories:
                rules.setdefault(category, {}).setdefault(tool, []).append(finding.rule_id)
                per_tool_counts = counts.setdefault(category, {})
                per_tool_counts[tool] = per_tool_counts.get(tool, 0) + finding.count

    details: list[CriterionDetail] = []
    for category in sorted(rules):
        per_tool: dict[str, ToolCategoryDetail] = {}
        for tool in tool_results:
            rule_ids = rules[category].get(tool, [])
            per_tool[tool] = ToolCategoryDetail(
                found=bool(rule_ids),
                rule_ids=tuple(sorted(set(rule_ids))),
                finding_count=counts[category].get(tool, 0),
            )
        details.append(CriterionDetail(category=category, per_tool=per_tool))
    return tuple(details)
