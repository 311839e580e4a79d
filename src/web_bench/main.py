"""CLI entrypoint for web-bench."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from web_bench import __version__
from web_bench.bench.controllers import (
    BenchCliController,
    DiagnoseCommand,
    RunCommand,
    SummaryCommand,
)
from web_bench.bench.errors import BenchError
from web_bench.logging_utils import configure_logging

click.rich_click.USE_MARKDOWN = True
BENCH_CONTROLLER = BenchCliController()

_RESULT_FILES = click.Path(exists=True, dir_okay=False, path_type=Path)


@click.group()
@click.version_option(version=__version__, prog_name="web-bench")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def web_bench(verbose: bool) -> None:
    """Benchmark accessibility checkers against sampled real-world sites.

    Results are written as JSON lines; `summary` and `diagnose` work on
    stored results, so shards of one run can be merged afterwards.
    """

    configure_logging(logging.DEBUG if verbose else logging.INFO)


@web_bench.command("run")
@click.option(
    "--size",
    type=click.IntRange(min=0),
    default=None,
    help="Number of sites to sample.",
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum sites audited at once.",
)
@click.option(
    "--timeout-ms",
    type=click.IntRange(min=1),
    default=None,
    help="Per-site timeout in milliseconds.",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSONL results file.",
)
@click.option("--seed", type=int, default=None, help="Sampling seed; random when omitted.")
@click.option("--shard-index", type=int, default=None, help="1-indexed shard to run.")
@click.option("--shard-total", type=int, default=None, help="Total number of shards.")
@click.option(
    "--tool",
    "tools",
    multiple=True,
    help="Analyzer to run (axe, accesslint, ibm). Can be repeated.",
)
@click.option("--population", default=None, help="Population CSV URL or path (gzip allowed).")
@click.option("--denylist", default=None, help="Hosts-format denylist URL or path.")
@click.option(
    "--append/--no-append",
    default=False,
    show_default=True,
    help="Append to the output file instead of truncating it.",
)
def run(  # noqa: PLR0913
    size: int | None,
    concurrency: int | None,
    timeout_ms: int | None,
    output: Path | None,
    seed: int | None,
    shard_index: int | None,
    shard_total: int | None,
    tools: tuple[str, ...],
    population: str | None,
    denylist: str | None,
    append: bool,
) -> None:
    """Sample sites, audit each with every tool and print the summary."""

    _emit_lines(
        _guarded(
            lambda: BENCH_CONTROLLER.run(
                RunCommand(
                    size=size,
                    concurrency=concurrency,
                    timeout_ms=timeout_ms,
                    output=output,
                    seed=seed,
                    shard_index=shard_index,
                    shard_total=shard_total,
                    tools=tools,
                    population=population,
                    denylist=denylist,
                    append=append,
                ),
            ),
        ),
    )


@web_bench.command("summary")
@click.argument("paths", nargs=-1, required=True, type=_RESULT_FILES)
@click.option("--tool", "tools", multiple=True, help="Restrict to these tools. Can be repeated.")
def summary(paths: tuple[Path, ...], tools: tuple[str, ...]) -> None:
    """Recompute the summary and concordance from stored results."""

    command = SummaryCommand(paths=paths, tools=tools)
    _emit_lines(_guarded(lambda: BENCH_CONTROLLER.summary(command)))


@web_bench.command("diagnose")
@click.argument("category")
@click.argument("paths", nargs=-1, required=True, type=_RESULT_FILES)
@click.option("--tool", "tools", multiple=True, help="Restrict to these tools. Can be repeated.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=20,
    show_default=True,
    help="Examples to print per bucket.",
)
def diagnose(category: str, paths: tuple[Path, ...], tools: tuple[str, ...], limit: int) -> None:
    """List which sites each tool flagged for one category (e.g. 1.1.1)."""

    _emit_lines(
        _guarded(
            lambda: BENCH_CONTROLLER.diagnose(
                DiagnoseCommand(category=category, paths=paths, tools=tools, limit=limit),
            ),
        ),
    )


def _guarded(action: Callable[[], list[str]]) -> list[str]:
    try:
        return action()
    except BenchError as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    web_bench()
