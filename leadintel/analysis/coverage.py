"""
Coverage calculator — how many canonical categories a market has any leads in.

Presence only: one lead covers a category as fully as a thousand.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Mapping

from leadintel.analysis.aggregator import MarketAggregate, MarketKey
from leadintel.analysis.taxonomy import ServiceTaxonomy
from leadintel.errors import ConfigurationError


@dataclass(frozen=True)
class CoverageRecord:
    core_percent: int
    core_covered: int
    core_total: int
    other_category_count: int
    uncategorized_count: int
    covered_categories: List[str] = field(default_factory=list)
    missing_categories: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'core_percent': self.core_percent,
            'core_covered': self.core_covered,
            'core_total': self.core_total,
            'other_category_count': self.other_category_count,
            'uncategorized_count': self.uncategorized_count,
            'covered_categories': list(self.covered_categories),
            'missing_categories': list(self.missing_categories),
        }


def percent_half_up(part: int, whole: int) -> int:
    """round(100 * part / whole) with halves rounded up, in exact integer math."""
    return (200 * part + whole) // (2 * whole)


def compute_coverage(market: MarketAggregate, taxonomy: ServiceTaxonomy) -> CoverageRecord:
    core_total = taxonomy.core_total
    if core_total == 0:
        raise ConfigurationError("Cannot compute coverage against an empty taxonomy")

    covered = [c for c in taxonomy.categories if market.core_counts.get(c, 0) > 0]
    missing = [c for c in taxonomy.categories if market.core_counts.get(c, 0) == 0]

    return CoverageRecord(
        core_percent=percent_half_up(len(covered), core_total),
        core_covered=len(covered),
        core_total=core_total,
        other_category_count=len(market.other_counts),
        uncategorized_count=market.uncategorized,
        covered_categories=covered,
        missing_categories=missing,
    )


def coverage_by_market(markets: Mapping[MarketKey, MarketAggregate],
                       taxonomy: ServiceTaxonomy) -> Dict[MarketKey, CoverageRecord]:
    if taxonomy.core_total == 0:
        raise ConfigurationError("Cannot compute coverage against an empty taxonomy")
    return {key: compute_coverage(market, taxonomy) for key, market in markets.items()}
