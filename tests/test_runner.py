from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import allure
import pytest
from conftest import FakeAnalyzer, FakeProvider

from web_bench.bench.errors import FatalSetupError
from web_bench.bench.executor import ExecutorTimeouts, TaskExecutor
from web_bench.bench.models import RuleFinding, Target
from web_bench.bench.runner import BenchRunner, RunPlan
from web_bench.bench.sampling import sample_targets, select_shard
from web_bench.bench.store import read_results

pytestmark = [
    allure.epic("Benchmark Engine"),
    allure.feature("Run Coordination"),
]

POPULATION = [Target(f"https://site{i}.example", i) for i in range(1, 31)] + [
    Target("https://bad.example", 31),
    Target("https://www.bad.example", 32),
]
TOOLS = ("axe", "accesslint")


class _StaticPopulation:
    def __init__(self, targets: list[Target]) -> None:
        self.targets = targets
        self.loads = 0

    def load(self) -> list[Target]:
        self.loads += 1
        return list(self.targets)


class _StaticDenylist:
    def load(self) -> frozenset[str]:
        return frozenset({"bad.example"})


class _FailingPopulation:
    def load(self) -> list[Target]:
        raise FatalSetupError("Failed to fetch population: HTTP 503")


def _executor_factory(opened: list[ExecutorTimeouts]):
    @asynccontextmanager
    async def _open(timeouts: ExecutorTimeouts) -> AsyncIterator[TaskExecutor[str]]:
        opened.append(timeouts)
        yield TaskExecutor(
            provider=FakeProvider(),
            analyzers=[
                FakeAnalyzer("axe", findings=[RuleFinding("image-alt", ("1.1.1",), 2)]),
                FakeAnalyzer("accesslint", findings=[RuleFinding("img-alt", ("1.1.1",), 1)]),
            ],
            timeouts=timeouts,
        )

    return _open


def _plan(tmp_path: Path, **overrides) -> RunPlan:
    values = {
        "size": 10,
        "concurrency": 3,
        "timeouts": ExecutorTimeouts(timeout_seconds=5.0),
        "tools": TOOLS,
        "output_path": tmp_path / "results" / "web-bench.jsonl",
        "seed": 2024,
    }
    values.update(overrides)
    return RunPlan(**values)


def test_run_writes_every_sampled_target(tmp_path: Path) -> None:
    opened: list[ExecutorTimeouts] = []
    runner = BenchRunner(
        population=_StaticPopulation(POPULATION),
        denylist=_StaticDenylist(),
        executor_factory=_executor_factory(opened),
    )

    outcome = runner.run(_plan(tmp_path))

    expected = sample_targets(POPULATION, 10, 2024, denylist=frozenset({"bad.example"}))
    stored = read_results([outcome.output_path])
    assert outcome.seed == 2024
    assert outcome.sampled == 10
    assert len(opened) == 1
    assert sorted(r.origin for r in stored) == sorted(t.origin for t in expected)
    assert all("bad.example" not in r.origin for r in stored)
    assert outcome.summary.ok == 10
    assert outcome.concordance["1.1.1"].found_by == (0, 0, 10)


def test_run_generates_and_reports_a_seed_when_missing(tmp_path: Path) -> None:
    runner = BenchRunner(
        population=_StaticPopulation(POPULATION),
        denylist=None,
        executor_factory=_executor_factory([]),
    )

    outcome = runner.run(_plan(tmp_path, seed=None, size=3))

    assert 0 <= outcome.seed < 2**32
    assert outcome.sampled == 3


def test_sharded_run_only_audits_its_slice(tmp_path: Path) -> None:
    runner = BenchRunner(
        population=_StaticPopulation(POPULATION),
        denylist=_StaticDenylist(),
        executor_factory=_executor_factory([]),
    )

    outcome = runner.run(_plan(tmp_path, shard_index=2, shard_total=3))

    sample = sample_targets(POPULATION, 10, 2024, denylist=frozenset({"bad.example"}))
    expected = select_shard(sample, 2, 3)
    assert sorted(r.origin for r in outcome.results) == sorted(t.origin for t in expected)
    assert outcome.sampled == 4


def test_invalid_shard_fails_before_loading_sources(tmp_path: Path) -> None:
    population = _StaticPopulation(POPULATION)
    runner = BenchRunner(
        population=population,
        denylist=_StaticDenylist(),
        executor_factory=_executor_factory([]),
    )

    with pytest.raises(FatalSetupError, match="Shard index"):
        runner.run(_plan(tmp_path, shard_index=4, shard_total=3))

    assert population.loads == 0
    assert not (tmp_path / "results").exists()


def test_source_failure_aborts_without_dispatch(tmp_path: Path) -> None:
    opened: list[ExecutorTimeouts] = []
    runner = BenchRunner(
        population=_FailingPopulation(),
        denylist=_StaticDenylist(),
        executor_factory=_executor_factory(opened),
    )

    with pytest.raises(FatalSetupError, match="HTTP 503"):
        runner.run(_plan(tmp_path))

    assert opened == []


def test_empty_sample_skips_the_executor(tmp_path: Path) -> None:
    opened: list[ExecutorTimeouts] = []
    runner = BenchRunner(
        population=_StaticPopulation(POPULATION),
        denylist=None,
        executor_factory=_executor_factory(opened),
    )

    outcome = runner.run(_plan(tmp_path, size=0))

    assert outcome.results == []
    assert opened == []
    assert outcome.output_path.read_text(encoding="utf-8") == ""
