"""Controllers for benchmark CLI commands."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from web_bench.bench.concordance import compute_concordance
from web_bench.bench.diagnose import diagnose_category, render_diagnosis_lines
from web_bench.bench.errors import FatalSetupError
from web_bench.bench.executor import ExecutorTimeouts, TaskExecutor
from web_bench.bench.models import AuditResult
from web_bench.bench.runner import BenchRunner, ExecutorFactory, RunPlan
from web_bench.bench.sampling import validate_shard
from web_bench.bench.sources import DenylistSource, PopulationSource, TextSource
from web_bench.bench.store import read_results
from web_bench.bench.summary import build_run_summary, render_summary_lines
from web_bench.browser.analyzers import ScriptAnalyzer, build_analyzers
from web_bench.browser.provider import PageHandle, PlaywrightPageProvider
from web_bench.browser.session import BrowserSession
from web_bench.config import Settings


@dataclass(slots=True)
class RunCommand:
    """CLI inputs for a benchmark run; ``None`` keeps the environment value."""

    size: int | None = None
    concurrency: int | None = None
    timeout_ms: int | None = None
    output: Path | None = None
    seed: int | None = None
    shard_index: int | None = None
    shard_total: int | None = None
    tools: tuple[str, ...] = ()
    population: str | None = None
    denylist: str | None = None
    append: bool = False


@dataclass(slots=True)
class SummaryCommand:
    """CLI inputs for recomputing a summary from stored results."""

    paths: tuple[Path, ...]
    tools: tuple[str, ...] = ()


@dataclass(slots=True)
class DiagnoseCommand:
    """CLI inputs for per-category diagnostics."""

    category: str
    paths: tuple[Path, ...]
    tools: tuple[str, ...] = ()
    limit: int = 20


class BenchCliController:
    """Coordinates run, summary and diagnose command execution."""

    def run(self, command: RunCommand) -> list[str]:
        settings = resolve_run_settings(command)
        # Shard config must fail before any download or browser launch.
        validate_shard(settings.sampling.shard_index, settings.sampling.shard_total)
        analyzers = build_analyzers(settings.execution.tools, settings.browser)

        runner = BenchRunner(
            population=PopulationSource(_text_source(settings.sources.population, settings)),
            denylist=DenylistSource(_text_source(settings.sources.denylist, settings)),
            executor_factory=_playwright_executor_factory(settings, analyzers),
        )
        outcome = runner.run(
            RunPlan(
                size=settings.sampling.size,
                concurrency=settings.execution.concurrency,
                timeouts=ExecutorTimeouts(
                    timeout_seconds=settings.execution.timeout_ms / 1000,
                    soft_timeout_ratio=settings.execution.soft_timeout_ratio,
                    hard_deadline_multiplier=settings.execution.hard_deadline_multiplier,
                    release_timeout_seconds=settings.execution.release_timeout_seconds,
                ),
                tools=settings.execution.tools,
                output_path=settings.output_path,
                seed=settings.sampling.seed,
                shard_index=settings.sampling.shard_index,
                shard_total=settings.sampling.shard_total,
                append=command.append,
            ),
        )
        return render_summary_lines(
            summary=outcome.summary,
            concordance=outcome.concordance,
            output_path=outcome.output_path,
            seed=outcome.seed,
        )

    def summary(self, command: SummaryCommand) -> list[str]:
        results = read_results(command.paths)
        tools = command.tools or _tools_in(results)
        return render_summary_lines(
            summary=build_run_summary(results, tools),
            concordance=compute_concordance(results, tools),
        )

    def diagnose(self, command: DiagnoseCommand) -> list[str]:
        results = read_results(command.paths)
        tools = command.tools or _tools_in(results)
        diagnosis = diagnose_category(results, command.category, tools)
        return render_diagnosis_lines(diagnosis, limit=command.limit)


def resolve_run_settings(command: RunCommand) -> Settings:
    """Environment settings with CLI overrides applied, then validated."""

    settings = Settings.from_env(output_path=command.output)
    if command.size is not None:
        settings.sampling.size = command.size
    if command.seed is not None:
        settings.sampling.seed = command.seed
    if command.shard_index is not None or command.shard_total is not None:
        settings.sampling.shard_index = command.shard_index
        settings.sampling.shard_total = command.shard_total
    if command.concurrency is not None:
        settings.execution.concurrency = command.concurrency
    if command.timeout_ms is not None:
        settings.execution.timeout_ms = command.timeout_ms
    if command.tools:
        settings.execution.tools = command.tools
    if command.population is not None:
        settings.sources.population = command.population
    if command.denylist is not None:
        settings.sources.denylist = command.denylist
    try:
        settings.validate()
    except ValueError as error:
        raise FatalSetupError(str(error)) from error
    return settings


def _text_source(location: str, settings: Settings) -> TextSource:
    return TextSource(
        location,
        timeout_seconds=settings.sources.request_timeout_seconds,
        max_retries=settings.sources.max_retries,
    )


def _playwright_executor_factory(
    settings: Settings,
    analyzers: Sequence[ScriptAnalyzer],
) -> ExecutorFactory:
    @asynccontextmanager
    async def _open(timeouts: ExecutorTimeouts) -> AsyncIterator[TaskExecutor[PageHandle]]:
        async with BrowserSession(settings.browser) as session:
            yield TaskExecutor(
                provider=PlaywrightPageProvider(
                    session,
                    navigation_timeout_ms=settings.execution.timeout_ms,
                ),
                analyzers=analyzers,
                timeouts=timeouts,
            )

    return _open


def _tools_in(results: Sequence[AuditResult]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for result in results:
        for tool in result.tool_names:
            seen.setdefault(tool, None)
    return tuple(seen)
