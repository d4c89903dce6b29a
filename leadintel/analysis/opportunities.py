"""
Opportunity scorer — "blue ocean" (market, category) pairs.

A pair is an opportunity when the market is big enough to matter and the
watched category holds a small share of its leads:

    coverage_pct = 100 * current / market_total      (emit only if < max)
    score        = market_total * growth_weight / (current + 1)

Pure computation over aggregated markets; re-run freely with new thresholds.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from leadintel.analysis.aggregator import MarketAggregate, MarketKey

logger = logging.getLogger('analysis.opportunities')

NO_PRESENCE = 'NO_PRESENCE'
VERY_LOW = 'VERY_LOW'
LOW = 'LOW'
MODERATE = 'MODERATE'


@dataclass(frozen=True)
class WatchedCategory:
    name: str
    growth_weight: float


@dataclass(frozen=True)
class TierThresholds:
    """Coverage-percent upper bounds (exclusive) for the VERY_LOW and LOW tiers."""
    very_low: float = 1.0
    low: float = 3.0


@dataclass(frozen=True)
class OpportunityRecord:
    market: MarketKey
    category: str
    growth_weight: float
    current: int
    market_total: int
    coverage_pct: float
    score: float
    tier: str
    is_hot: bool = False

    def to_dict(self):
        return {
            'city': self.market.city,
            'state': self.market.state,
            'market': self.market.label,
            'category': self.category,
            'growth_weight': self.growth_weight,
            'current': self.current,
            'market_total': self.market_total,
            'coverage_pct': round(self.coverage_pct, 2),
            'score': round(self.score, 2),
            'tier': self.tier,
            'is_hot': self.is_hot,
        }


def opportunity_score(market_total: int, growth_weight: float, current: int) -> float:
    """The +1 keeps zero-competition markets finite and still ranked highest."""
    return (market_total * growth_weight) / (current + 1)


def assign_tier(current: int, coverage_pct: float, tiers: TierThresholds = TierThresholds()) -> str:
    if current == 0:
        return NO_PRESENCE
    if coverage_pct < tiers.very_low:
        return VERY_LOW
    if coverage_pct < tiers.low:
        return LOW
    return MODERATE


def score_opportunities(
    markets: Iterable[MarketAggregate],
    watched: Sequence[WatchedCategory],
    min_market_size: int,
    max_coverage_percent: float,
    tiers: TierThresholds = TierThresholds(),
    hot_categories: Iterable[str] = (),
    prioritize_emerging: bool = False,
) -> List[OpportunityRecord]:
    """
    Score every qualifying market x watched category and return them ranked.

    Ranking: hot categories first when prioritize_emerging is set, then score
    descending, then market total descending. Market label and category name
    settle any remaining tie so output order is reproducible.
    """
    hot = set(hot_categories)
    records = []
    considered = 0

    for market in markets:
        if market.total < min_market_size:
            continue
        considered += 1
        for category in watched:
            current = market.count_for(category.name)
            coverage_pct = 100.0 * current / market.total
            if coverage_pct >= max_coverage_percent:
                continue
            records.append(OpportunityRecord(
                market=market.key,
                category=category.name,
                growth_weight=category.growth_weight,
                current=current,
                market_total=market.total,
                coverage_pct=coverage_pct,
                score=opportunity_score(market.total, category.growth_weight, current),
                tier=assign_tier(current, coverage_pct, tiers),
                is_hot=category.name in hot,
            ))

    records.sort(key=lambda r: (
        0 if (prioritize_emerging and r.is_hot) else 1,
        -r.score,
        -r.market_total,
        r.market.label,
        r.category,
    ))
    logger.info("Scored %d opportunities across %d qualifying markets", len(records), considered)
    return records


def group_by_category(records: Iterable[OpportunityRecord],
                      per_category: Optional[int] = None) -> Dict[str, List[OpportunityRecord]]:
    """Best markets per watched category, keeping the input ranking."""
    grouped: Dict[str, List[OpportunityRecord]] = {}
    for record in records:
        bucket = grouped.setdefault(record.category, [])
        if per_category is None or len(bucket) < per_category:
            bucket.append(record)
    return grouped


def group_by_region(records: Iterable[OpportunityRecord],
                    state_to_region: Mapping[str, str],
                    per_region: Optional[int] = None,
                    other_region: str = 'Other') -> Dict[str, List[OpportunityRecord]]:
    """Top opportunities per region, keeping the input ranking."""
    grouped: Dict[str, List[OpportunityRecord]] = {}
    for record in records:
        region = state_to_region.get(record.market.state, other_region)
        bucket = grouped.setdefault(region, [])
        if per_region is None or len(bucket) < per_region:
            bucket.append(record)
    return grouped


def markets_without_watched(markets: Iterable[MarketAggregate],
                            watched: Sequence[WatchedCategory],
                            min_market_size: int) -> List[MarketAggregate]:
    """Large markets with zero leads in every watched category, largest first."""
    found = [
        m for m in markets
        if m.total >= min_market_size and all(m.count_for(c.name) == 0 for c in watched)
    ]
    return sorted(found, key=lambda m: (-m.total, m.key.label))
