"""Per-category agreement statistics between analysis tools.

For every category any tool reported, each successfully audited target is a
binary found/not-found vote per tool. Targets are bucketed by how many tools
found the category, and every unordered tool pair gets a 2x2 contingency
table with observed agreement and Cohen's kappa.

Everything here is a pure function of the stored results.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from itertools import combinations

from web_bench.bench.models import AuditResult


@dataclass(frozen=True, slots=True)
class ContingencyTable:
    """Agreement counts between two tools on one category."""

    both: int = 0
    first_only: int = 0
    second_only: int = 0
    neither: int = 0

    @property
    def n(self) -> int:
        return self.both + self.first_only + self.second_only + self.neither

    @property
    def observed_agreement(self) -> float:
        if self.n == 0:
            return 1.0
        return (self.both + self.neither) / self.n

    @property
    def expected_agreement(self) -> float:
        """Agreement expected by chance from each tool's marginal rate."""

        if self.n == 0:
            return 1.0
        p1 = (self.both + self.first_only) / self.n
        p2 = (self.both + self.second_only) / self.n
        return p1 * p2 + (1 - p1) * (1 - p2)


@dataclass(frozen=True, slots=True)
class PairwiseAgreement:
    """Agreement statistics for one unordered tool pair."""

    first: str
    second: str
    table: ContingencyTable
    kappa: float

    @property
    def pair(self) -> tuple[str, str]:
        return self.first, self.second


@dataclass(frozen=True, slots=True)
class ConcordanceTable:
    """Multi-way buckets and pairwise agreement for one category."""

    category: str
    total: int
    found_by: tuple[int, ...]
    pairs: tuple[PairwiseAgreement, ...]

    @property
    def found_by_any(self) -> int:
        return self.total - self.found_by[0]

    def pair(self, first: str, second: str) -> PairwiseAgreement:
        for agreement in self.pairs:
            if {agreement.first, agreement.second} == {first, second}:
                return agreement
        raise KeyError((first, second))


def cohens_kappa(table: ContingencyTable) -> float:
    """Chance-corrected agreement for a 2x2 table.

    Defined as 1.0 when expected agreement is 1 (both tools unanimous on every
    target) and when the table is empty.
    """

    if table.n == 0:
        return 1.0
    pe = table.expected_agreement
    if pe == 1:
        return 1.0
    return (table.observed_agreement - pe) / (1 - pe)


def compute_concordance(
    results: Iterable[AuditResult],
    tools: Sequence[str],
) -> dict[str, ConcordanceTable]:
    """Build one concordance table per category found by any tool."""

    if len(set(tools)) != len(tools):
        raise ValueError(f"Tool names must be unique: {list(tools)}")

    ok_results = [result for result in results if result.ok]
    categories = sorted(
        {
            category
            for result in ok_results
            for tool in tools
            if tool in result.tools
            for category in result.tools[tool].categories_found
        },
    )

    tables: dict[str, ConcordanceTable] = {}
    for category in categories:
        votes = [tuple(result.found(tool, category) for tool in tools) for result in ok_results]

        found_by = [0] * (len(tools) + 1)
        for vote in votes:
            found_by[sum(vote)] += 1

        pairs: list[PairwiseAgreement] = []
        for i, j in combinations(range(len(tools)), 2):
            table = _contingency(votes, i, j)
            pairs.append(
                PairwiseAgreement(
                    first=tools[i],
                    second=tools[j],
                    table=table,
                    kappa=cohens_kappa(table),
                ),
            )

        tables[category] = ConcordanceTable(
            category=category,
            total=len(votes),
            found_by=tuple(found_by),
            pairs=tuple(pairs),
        )
    return tables


def mean_kappa(tables: Iterable[ConcordanceTable]) -> dict[tuple[str, str], float]:
    """Unweighted mean kappa per tool pair across categories."""

    totals: dict[tuple[str, str], list[float]] = {}
    for table in tables:
        for agreement in table.pairs:
            totals.setdefault(agreement.pair, []).append(agreement.kappa)
    return {pair: sum(values) / len(values) for pair, values in totals.items()}


def _contingency(votes: list[tuple[bool, ...]], i: int, j: int) -> ContingencyTable:
    both = first_only = second_only = neither = 0
    for vote in votes:
        if vote[i] and vote[j]:
            both += 1
        elif vote[i]:
            first_only += 1
        elif vote[j]:
            second_only += 1
        else:
            neither += 1
    return ContingencyTable(
        both=both,
        first_only=first_only,
        second_only=second_only,
        neither=neither,
    )
