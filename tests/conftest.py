"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence

import pytest

from web_bench.bench.contracts import CancellationToken
from web_bench.bench.models import (
    AnalyzerResult,
    AuditResult,
    AuditStatus,
    ErrorCategory,
    PageInfo,
    RuleFinding,
    Target,
    ToolOutcome,
    ToolStatus,
    build_category_detail,
)

TOOLS = ("axe", "accesslint")


async def hang_forever() -> None:
    """A hang that still honours task cancellation."""

    await asyncio.Event().wait()


class FakeProvider:
    """In-memory target provider with optional hooks per lifecycle step."""

    def __init__(
        self,
        *,
        on_acquire: Callable[[], Awaitable[None]] | None = None,
        on_load: Callable[[Target], Awaitable[None]] | None = None,
        on_release: Callable[[], Awaitable[None]] | None = None,
        dom_element_count: int | None = 42,
    ) -> None:
        self.on_acquire = on_acquire
        self.on_load = on_load
        self.on_release = on_release
        self.dom_element_count = dom_element_count
        self.acquired = 0
        self.released: list[str] = []
        self.force_released: list[str] = []

    async def acquire(self) -> str:
        if self.on_acquire is not None:
            await self.on_acquire()
        self.acquired += 1
        return f"page-{self.acquired}"

    async def load(self, handle: str, target: Target, cancel: CancellationToken) -> PageInfo:
        if self.on_load is not None:
            await self.on_load(target)
        return PageInfo(dom_element_count=self.dom_element_count)

    async def release(self, handle: str) -> None:
        if self.on_release is not None:
            await self.on_release()
        self.released.append(handle)

    async def force_release(self, handle: str) -> None:
        self.force_released.append(handle)


class FakeAnalyzer:
    """Analyzer returning fixed findings, or running a custom coroutine."""

    def __init__(
        self,
        name: str,
        *,
        findings: Sequence[RuleFinding] = (),
        time_ms: float = 5.0,
        behavior: Callable[[], Awaitable[AnalyzerResult]] | None = None,
    ) -> None:
        self.name = name
        self.findings = tuple(findings)
        self.time_ms = time_ms
        self.behavior = behavior
        self.calls = 0

    async def analyze(self, handle: str, cancel: CancellationToken) -> AnalyzerResult:
        self.calls += 1
        cancel.raise_if_cancelled()
        if self.behavior is not None:
            return await self.behavior()
        return AnalyzerResult(time_ms=self.time_ms, findings=self.findings)


def make_result(  # noqa: PLR0913
    origin: str = "https://site.example",
    rank: int = 1,
    *,
    found: Mapping[str, Sequence[str]] | None = None,
    tools: Sequence[str] = TOOLS,
    failed_tools: Sequence[str] = (),
    status: AuditStatus = AuditStatus.OK,
    error: str | None = None,
    error_category: ErrorCategory | None = None,
    time_ms: float = 10.0,
    dom_element_count: int | None = 100,
) -> AuditResult:
    """Build a result where each found category comes from rule ``<tool>-<category>``."""

    if status == AuditStatus.ERROR:
        return AuditResult(
            origin=origin,
            rank=rank,
            status=status,
            timestamp="2026-01-01T00:00:00.000+00:00",
            tools={
                tool: ToolOutcome(time_ms=0.0, status=ToolStatus.ERROR, error="not run")
                for tool in tools
            },
            error=error or "boom",
            error_category=error_category or ErrorCategory.UNKNOWN,
        )

    found = found or {}
    raw: dict[str, AnalyzerResult | None] = {}
    outcomes: dict[str, ToolOutcome] = {}
    for tool in tools:
        if tool in failed_tools:
            raw[tool] = None
            outcomes[tool] = ToolOutcome.failed("tool crashed")
            continue
        analyzer_result = AnalyzerResult(
            time_ms=time_ms,
            findings=tuple(
                RuleFinding(rule_id=f"{tool}-{category}", categories=(category,), count=1)
                for category in found.get(tool, ())
            ),
        )
        raw[tool] = analyzer_result
        outcomes[tool] = ToolOutcome(
            time_ms=time_ms,
            status=ToolStatus.OK,
            categories_found=analyzer_result.categories_found,
            finding_count=analyzer_result.finding_count,
        )
    return AuditResult(
        origin=origin,
        rank=rank,
        status=AuditStatus.OK,
        timestamp="2026-01-01T00:00:00.000+00:00",
        tools=outcomes,
        dom_element_count=dom_element_count,
        category_detail=build_category_detail(raw),
    )


@pytest.fixture()
def targets() -> list[Target]:
    return [Target(origin=f"https://site{i}.example", rank=i) for i in range(1, 21)]
