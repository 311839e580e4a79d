"""Runtime configuration for benchmark runs."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_POPULATION_URL = (
    "https://raw.githubusercontent.com/zakird/crux-top-lists/main/data/global/current.csv.gz"
)
DEFAULT_DENYLIST_URL = (
    "https://raw.githubusercontent.com/StevenBlack/hosts/master/alternates/porn/hosts"
)
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
DEFAULT_TOOLS = ("axe", "accesslint", "ibm")
DEFAULT_AXE_SCRIPT = Path("node_modules/axe-core/axe.min.js")
DEFAULT_ACCESSLINT_SCRIPT = Path("node_modules/@accesslint/core/dist/index.iife.js")
DEFAULT_IBM_SCRIPT = Path("node_modules/accessibility-checker-engine/ace.js")


@dataclass(slots=True)
class SamplingSettings:
    """Sample size, seed and shard selection."""

    size: int = 1000
    seed: int | None = None
    shard_index: int | None = None
    shard_total: int | None = None


@dataclass(slots=True)
class ExecutionSettings:
    """Worker pool and per-target timeout policy."""

    concurrency: int = 5
    timeout_ms: int = 30_000
    soft_timeout_ratio: float = 0.8
    hard_deadline_multiplier: float = 2.0
    release_timeout_seconds: float = 5.0
    tools: tuple[str, ...] = DEFAULT_TOOLS


@dataclass(slots=True)
class SourceSettings:
    """Where the population and denylist come from."""

    population: str = DEFAULT_POPULATION_URL
    denylist: str = DEFAULT_DENYLIST_URL
    request_timeout_seconds: float = 60.0
    max_retries: int = 3


@dataclass(slots=True)
class BrowserSettings:
    """Headless browser launch options."""

    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    ignore_https_errors: bool = True
    axe_script: Path = DEFAULT_AXE_SCRIPT
    accesslint_script: Path = DEFAULT_ACCESSLINT_SCRIPT
    ibm_script: Path = DEFAULT_IBM_SCRIPT


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    output_path: Path = Path("results/web-bench.jsonl")
    sampling: SamplingSettings = field(default_factory=SamplingSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    sources: SourceSettings = field(default_factory=SourceSettings)
    browser: BrowserSettings = field(default_factory=BrowserSettings)

    @classmethod
    def from_env(cls, output_path: Path | None = None) -> Settings:
        """Load settings from ``WEB_BENCH_*`` environment variables."""

        return cls(
            output_path=output_path
            or Path(os.getenv("WEB_BENCH_OUTPUT", "results/web-bench.jsonl")),
            sampling=SamplingSettings(
                size=_env_int("WEB_BENCH_SIZE", 1000),
                seed=_env_optional_int("WEB_BENCH_SEED"),
                shard_index=_env_optional_int("WEB_BENCH_SHARD_INDEX"),
                shard_total=_env_optional_int("WEB_BENCH_SHARD_TOTAL"),
            ),
            execution=ExecutionSettings(
                concurrency=_env_int("WEB_BENCH_CONCURRENCY", 5),
                timeout_ms=_env_int("WEB_BENCH_TIMEOUT_MS", 30_000),
                soft_timeout_ratio=float(os.getenv("WEB_BENCH_SOFT_TIMEOUT_RATIO", "0.8")),
                hard_deadline_multiplier=float(
                    os.getenv("WEB_BENCH_HARD_DEADLINE_MULTIPLIER", "2.0"),
                ),
                release_timeout_seconds=float(
                    os.getenv("WEB_BENCH_RELEASE_TIMEOUT_SECONDS", "5.0"),
                ),
                tools=_env_tools("WEB_BENCH_TOOLS", DEFAULT_TOOLS),
            ),
            sources=SourceSettings(
                population=os.getenv("WEB_BENCH_POPULATION", DEFAULT_POPULATION_URL),
                denylist=os.getenv("WEB_BENCH_DENYLIST", DEFAULT_DENYLIST_URL),
                request_timeout_seconds=float(
                    os.getenv("WEB_BENCH_REQUEST_TIMEOUT_SECONDS", "60.0"),
                ),
                max_retries=_env_int("WEB_BENCH_MAX_RETRIES", 3),
            ),
            browser=BrowserSettings(
                headless=_env_bool("WEB_BENCH_HEADLESS", default=True),
                user_agent=os.getenv("WEB_BENCH_USER_AGENT", DEFAULT_USER_AGENT),
                ignore_https_errors=_env_bool("WEB_BENCH_IGNORE_HTTPS_ERRORS", default=True),
                axe_script=Path(os.getenv("WEB_BENCH_AXE_SCRIPT", str(DEFAULT_AXE_SCRIPT))),
                accesslint_script=Path(
                    os.getenv("WEB_BENCH_ACCESSLINT_SCRIPT", str(DEFAULT_ACCESSLINT_SCRIPT)),
                ),
                ibm_script=Path(os.getenv("WEB_BENCH_IBM_SCRIPT", str(DEFAULT_IBM_SCRIPT))),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error naming the offending variable."""

        if self.sampling.size < 0:
            raise ValueError("WEB_BENCH_SIZE must be >= 0.")
        if self.execution.concurrency < 1:
            raise ValueError("WEB_BENCH_CONCURRENCY must be >= 1.")
        if self.execution.timeout_ms <= 0:
            raise ValueError("WEB_BENCH_TIMEOUT_MS must be > 0.")
        if not 0 < self.execution.soft_timeout_ratio <= 1:
            raise ValueError("WEB_BENCH_SOFT_TIMEOUT_RATIO must be in (0, 1].")
        if self.execution.hard_deadline_multiplier < 1:
            raise ValueError("WEB_BENCH_HARD_DEADLINE_MULTIPLIER must be >= 1.")
        if self.execution.release_timeout_seconds <= 0:
            raise ValueError("WEB_BENCH_RELEASE_TIMEOUT_SECONDS must be > 0.")
        if not self.execution.tools:
            raise ValueError("At least one tool is required. Set WEB_BENCH_TOOLS or pass --tool.")
        if len(set(self.execution.tools)) != len(self.execution.tools):
            raise ValueError(f"Duplicate tools in WEB_BENCH_TOOLS: {self.execution.tools!r}")
        if self.sources.max_retries < 0:
            raise ValueError("WEB_BENCH_MAX_RETRIES must be >= 0.")
        _validate_location("WEB_BENCH_POPULATION", self.sources.population)
        _validate_location("WEB_BENCH_DENYLIST", self.sources.denylist)


def _validate_location(name: str, value: str) -> None:
    if not value.strip():
        raise ValueError(f"{name} must not be empty.")
    if "://" not in value:
        return
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected a local path or an http(s) URL.",
        )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_optional_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_tools(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
