"""Reproducible target sampling, exclusion filtering and shard slicing."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Sequence
from urllib.parse import urlparse

from web_bench.bench.errors import FatalSetupError
from web_bench.bench.models import Target

logger = logging.getLogger(__name__)

_UINT32_MASK = 0xFFFFFFFF
_UINT32_RANGE = 4294967296
_BLOCKING_HOST_ADDRESSES = frozenset({"0.0.0.0", "127.0.0.1"})  # noqa: S104


def mulberry32(seed: int) -> Callable[[], float]:
    """Return a seeded generator of floats in ``[0, 1)``.

    Pure 32-bit integer arithmetic, so a seed yields the same stream on every
    platform and interpreter.
    """

    state = seed & _UINT32_MASK

    def _next() -> float:
        nonlocal state
        state = (state + 0x6D2B79F5) & _UINT32_MASK
        t = _imul(state ^ (state >> 15), 1 | state)
        t = ((t + _imul(t ^ (t >> 7), 61 | t)) & _UINT32_MASK) ^ t
        return ((t ^ (t >> 14)) & _UINT32_MASK) / _UINT32_RANGE

    return _next


def seeded_shuffle(items: Sequence[Target], seed: int) -> list[Target]:
    """Fisher-Yates shuffle of a copy of ``items``."""

    shuffled = list(items)
    rng = mulberry32(seed)
    for i in range(len(shuffled) - 1, 0, -1):
        j = math.floor(rng() * (i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def hostname_from_origin(origin: str) -> str:
    """Extract the lower-cased hostname, falling back to the raw origin."""

    try:
        hostname = urlparse(origin).hostname
    except ValueError:
        hostname = None
    return (hostname or origin).lower()


def is_excluded(hostname: str, denylist: frozenset[str] | set[str]) -> bool:
    """Check hostname and its parent domains (never the bare TLD)."""

    if hostname in denylist:
        return True
    labels = hostname.split(".")
    return any(".".join(labels[i:]) in denylist for i in range(1, len(labels) - 1))


def filter_population(
    population: Iterable[Target],
    denylist: frozenset[str] | set[str],
) -> list[Target]:
    return [
        target
        for target in population
        if not is_excluded(hostname_from_origin(target.origin), denylist)
    ]


def sample_targets(
    population: Sequence[Target],
    size: int,
    seed: int,
    *,
    denylist: frozenset[str] | set[str] = frozenset(),
) -> list[Target]:
    """Filter excluded origins, shuffle with ``seed`` and keep the first ``size``."""

    if size < 0:
        raise FatalSetupError(f"Sample size must be >= 0, got {size}.")
    eligible = filter_population(population, denylist)
    removed = len(population) - len(eligible)
    logger.info(
        "Filtered out %d excluded origins (%d remaining); sampling %d with seed %d",
        removed,
        len(eligible),
        min(size, len(eligible)),
        seed,
    )
    return seeded_shuffle(eligible, seed)[: min(size, len(eligible))]


def validate_shard(shard_index: int | None, shard_total: int | None) -> tuple[int, int] | None:
    """Return ``(index, total)`` or ``None`` for an unsharded run."""

    if shard_index is None and shard_total is None:
        return None
    if shard_index is None or shard_total is None:
        raise FatalSetupError("Shard index and shard total must be given together.")
    if shard_total < 1:
        raise FatalSetupError(f"Shard total must be >= 1, got {shard_total}.")
    if shard_index < 1 or shard_index > shard_total:
        raise FatalSetupError(
            f"Shard index must be between 1 and {shard_total}, got {shard_index}.",
        )
    return shard_index, shard_total


def shard_bounds(total: int, shard_index: int, shard_total: int) -> tuple[int, int]:
    """Contiguous ``[start, end)`` slice covered by 1-indexed shard ``shard_index``."""

    validate_shard(shard_index, shard_total)
    chunk = math.ceil(total / shard_total)
    start = min(chunk * (shard_index - 1), total)
    end = min(chunk * shard_index, total)
    return start, end


def select_shard(
    targets: Sequence[Target],
    shard_index: int | None,
    shard_total: int | None,
) -> list[Target]:
    shard = validate_shard(shard_index, shard_total)
    if shard is None:
        return list(targets)
    start, end = shard_bounds(len(targets), *shard)
    logger.info("Shard %d/%d: targets %d-%d of %d", shard[0], shard[1], start, end, len(targets))
    return list(targets[start:end])


def parse_population_csv(text: str) -> list[Target]:
    """Parse ``origin,rank`` lines; the header and malformed lines are skipped."""

    targets: list[Target] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("origin"):
            continue
        origin, sep, rank_text = stripped.rpartition(",")
        if not sep or not origin:
            continue
        try:
            rank = int(rank_text)
        except ValueError:
            continue
        targets.append(Target(origin=origin, rank=rank))
    return targets


def parse_denylist_hosts(text: str) -> frozenset[str]:
    """Parse a hosts file (``0.0.0.0 domain``) into a set of blocked domains."""

    domains: set[str] = set()
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parts = stripped.split()
        if len(parts) < 2 or parts[0] not in _BLOCKING_HOST_ADDRESSES:  # noqa: PLR2004
            continue
        domain = parts[1].lower()
        if domain and domain != "localhost":
            domains.add(domain)
    return frozenset(domains)


def _imul(a: int, b: int) -> int:
    return (a * b) & _UINT32_MASK
