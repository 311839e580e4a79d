"""End-to-end coordination of one benchmark run."""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from web_bench.bench.concordance import ConcordanceTable, compute_concordance
from web_bench.bench.executor import ExecutorTimeouts, TaskExecutor
from web_bench.bench.models import AuditResult, Target
from web_bench.bench.pool import run_pool
from web_bench.bench.sampling import sample_targets, select_shard, validate_shard
from web_bench.bench.store import JsonlResultStore
from web_bench.bench.summary import RunSummary, build_run_summary

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[ExecutorTimeouts], AbstractAsyncContextManager[TaskExecutor[Any]]]


class TargetListSource(Protocol):
    def load(self) -> list[Target]: ...


class DomainSetSource(Protocol):
    def load(self) -> frozenset[str]: ...


@dataclass(slots=True)
class RunPlan:
    """Resolved inputs for one run (or one shard of it)."""

    size: int
    concurrency: int
    timeouts: ExecutorTimeouts
    tools: tuple[str, ...]
    output_path: Path
    seed: int | None = None
    shard_index: int | None = None
    shard_total: int | None = None
    append: bool = False


@dataclass(slots=True)
class RunOutcome:
    seed: int
    sampled: int
    results: list[AuditResult]
    output_path: Path
    summary: RunSummary
    concordance: dict[str, ConcordanceTable]


def generate_seed() -> int:
    return secrets.randbits(32)


class BenchRunner:
    """Sources -> sample -> shard -> worker pool -> store -> statistics."""

    def __init__(
        self,
        *,
        population: TargetListSource,
        denylist: DomainSetSource | None,
        executor_factory: ExecutorFactory,
    ) -> None:
        self.population = population
        self.denylist = denylist
        self.executor_factory = executor_factory

    def run(self, plan: RunPlan) -> RunOutcome:
        """Execute ``plan``; raises ``FatalSetupError`` or ``StoreWriteError``."""

        validate_shard(plan.shard_index, plan.shard_total)
        seed = plan.seed if plan.seed is not None else generate_seed()
        logger.info("Using seed %d", seed)

        population = self.population.load()
        denylist = self.denylist.load() if self.denylist is not None else frozenset()
        sample = sample_targets(population, plan.size, seed, denylist=denylist)
        targets = select_shard(sample, plan.shard_index, plan.shard_total)
        logger.info(
            "Auditing %d targets with concurrency %d and tools %s",
            len(targets),
            plan.concurrency,
            ", ".join(plan.tools),
        )

        results: list[AuditResult] = []
        with JsonlResultStore(plan.output_path, append=plan.append) as store:
            asyncio.run(self._dispatch(targets, plan, store, results))

        return RunOutcome(
            seed=seed,
            sampled=len(targets),
            results=results,
            output_path=plan.output_path,
            summary=build_run_summary(results, plan.tools),
            concordance=compute_concordance(results, plan.tools),
        )

    async def _dispatch(
        self,
        targets: Sequence[Target],
        plan: RunPlan,
        store: JsonlResultStore,
        results: list[AuditResult],
    ) -> None:
        total = len(targets)

        def _on_result(result: AuditResult) -> None:
            store.append(result)
            results.append(result)
            logger.info(
                "[%d/%d] %s %s%s",
                len(results),
                total,
                result.origin,
                result.status.value,
                f" ({result.error})" if result.error else "",
            )

        if not targets:
            logger.warning("No targets to audit")
            return
        async with self.executor_factory(plan.timeouts) as executor:
            await run_pool(
                targets,
                concurrency=plan.concurrency,
                task=executor.execute,
                on_result=_on_result,
            )
