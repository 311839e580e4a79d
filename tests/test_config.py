from __future__ import annotations

from pathlib import Path

import allure
import pytest

from web_bench.config import (
    DEFAULT_POPULATION_URL,
    DEFAULT_TOOLS,
    ExecutionSettings,
    SamplingSettings,
    Settings,
    SourceSettings,
)

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]


def test_defaults_match_documented_run_options(monkeypatch) -> None:
    names = ("WEB_BENCH_SIZE", "WEB_BENCH_CONCURRENCY", "WEB_BENCH_TIMEOUT_MS", "WEB_BENCH_OUTPUT")
    for name in names:
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.sampling.size == 1000
    assert settings.sampling.seed is None
    assert settings.execution.concurrency == 5
    assert settings.execution.timeout_ms == 30_000
    assert settings.execution.tools == DEFAULT_TOOLS == ("axe", "accesslint", "ibm")
    assert settings.output_path == Path("results/web-bench.jsonl")
    assert settings.sources.population == DEFAULT_POPULATION_URL
    settings.validate()


def test_environment_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("WEB_BENCH_SIZE", "50")
    monkeypatch.setenv("WEB_BENCH_SEED", "77")
    monkeypatch.setenv("WEB_BENCH_SHARD_INDEX", "2")
    monkeypatch.setenv("WEB_BENCH_SHARD_TOTAL", "4")
    monkeypatch.setenv("WEB_BENCH_TOOLS", "accesslint, axe")
    monkeypatch.setenv("WEB_BENCH_HEADLESS", "no")
    monkeypatch.setenv("WEB_BENCH_IBM_SCRIPT", str(tmp_path / "ace.js"))
    monkeypatch.setenv("WEB_BENCH_OUTPUT", str(tmp_path / "env.jsonl"))

    settings = Settings.from_env()

    assert settings.sampling.size == 50
    assert settings.sampling.seed == 77
    assert (settings.sampling.shard_index, settings.sampling.shard_total) == (2, 4)
    assert settings.execution.tools == ("accesslint", "axe")
    assert settings.browser.headless is False
    assert settings.browser.ibm_script == tmp_path / "ace.js"
    assert settings.output_path == tmp_path / "env.jsonl"


def test_explicit_output_path_wins_over_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("WEB_BENCH_OUTPUT", str(tmp_path / "env.jsonl"))

    assert Settings.from_env(output_path=tmp_path / "cli.jsonl").output_path == (
        tmp_path / "cli.jsonl"
    )


def test_invalid_integer_names_the_variable(monkeypatch) -> None:
    monkeypatch.setenv("WEB_BENCH_CONCURRENCY", "many")

    with pytest.raises(ValueError, match="WEB_BENCH_CONCURRENCY"):
        Settings.from_env()


def test_invalid_boolean_names_the_variable(monkeypatch) -> None:
    monkeypatch.setenv("WEB_BENCH_HEADLESS", "sometimes")

    with pytest.raises(ValueError, match="WEB_BENCH_HEADLESS"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (Settings(sampling=SamplingSettings(size=-1)), "WEB_BENCH_SIZE"),
        (Settings(execution=ExecutionSettings(concurrency=0)), "WEB_BENCH_CONCURRENCY"),
        (Settings(execution=ExecutionSettings(timeout_ms=0)), "WEB_BENCH_TIMEOUT_MS"),
        (
            Settings(execution=ExecutionSettings(soft_timeout_ratio=1.2)),
            "WEB_BENCH_SOFT_TIMEOUT_RATIO",
        ),
        (
            Settings(execution=ExecutionSettings(hard_deadline_multiplier=0.5)),
            "WEB_BENCH_HARD_DEADLINE_MULTIPLIER",
        ),
        (Settings(execution=ExecutionSettings(tools=())), "At least one tool"),
        (Settings(execution=ExecutionSettings(tools=("axe", "axe"))), "Duplicate tools"),
        (Settings(sources=SourceSettings(population="ftp://x.example/list")), "POPULATION"),
        (Settings(sources=SourceSettings(denylist="  ")), "WEB_BENCH_DENYLIST"),
    ],
)
def test_validate_rejects_bad_values(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_local_paths_are_valid_sources(tmp_path: Path) -> None:
    settings = Settings(
        sources=SourceSettings(
            population=str(tmp_path / "crux.csv.gz"),
            denylist=str(tmp_path / "hosts"),
        ),
    )

    settings.validate()
