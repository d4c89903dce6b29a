"""
Regional roll-up — markets grouped by a static state -> region table.

States missing from the table land in the "Other" region instead of being
dropped, so region totals always add up to the market totals.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from leadintel.analysis.aggregator import MarketAggregate, MarketKey, count_case_insensitive
from leadintel.analysis.opportunities import WatchedCategory

OTHER_REGION = 'Other'


@dataclass
class RegionAggregate:
    name: str
    total: int = 0
    states: Set[str] = field(default_factory=set)
    market_keys: Set[MarketKey] = field(default_factory=set)
    category_counts: Dict[str, int] = field(default_factory=dict)
    uncategorized: int = 0

    def add_market(self, market: MarketAggregate):
        self.total += market.total
        self.uncategorized += market.uncategorized
        self.states.add(market.state)
        self.market_keys.add(market.key)
        for category, count in market.category_counts().items():
            self.category_counts[category] = self.category_counts.get(category, 0) + count

    def share_percent(self, category: str) -> float:
        if self.total == 0:
            return 0.0
        return 100.0 * count_case_insensitive(self.category_counts, category) / self.total

    def top_categories(self, limit: int = 3) -> List[Tuple[str, int]]:
        ranked = sorted(self.category_counts.items(), key=lambda item: (-item[1], item[0]))
        return ranked[:limit]

    def top_markets(self, markets: Mapping[MarketKey, MarketAggregate], limit: int = 3) -> List[MarketAggregate]:
        members = [markets[key] for key in self.market_keys if key in markets]
        members.sort(key=lambda m: (-m.total, m.key.label))
        return members[:limit]


@dataclass(frozen=True)
class RegionSummary:
    """Region row for consumers, including the watched categories it lacks."""
    name: str
    total: int
    state_count: int
    market_count: int
    top_categories: List[Tuple[str, int]]
    top_markets: List[Tuple[str, int]]
    missing_watched: List[str]

    def to_dict(self):
        return {
            'region': self.name,
            'total': self.total,
            'states': self.state_count,
            'markets': self.market_count,
            'top_categories': [{'category': c, 'count': n} for c, n in self.top_categories],
            'top_markets': [{'market': m, 'total': n} for m, n in self.top_markets],
            'missing_watched': list(self.missing_watched),
        }


def region_for(state: str, state_to_region: Mapping[str, str], other_region: str = OTHER_REGION) -> str:
    return state_to_region.get(state, other_region)


def rollup(markets: Iterable[MarketAggregate],
           state_to_region: Mapping[str, str],
           other_region: str = OTHER_REGION) -> Dict[str, RegionAggregate]:
    regions: Dict[str, RegionAggregate] = {}
    for market in markets:
        name = region_for(market.state, state_to_region, other_region)
        region = regions.get(name)
        if region is None:
            region = regions[name] = RegionAggregate(name=name)
        region.add_market(market)
    return regions


def regional_gaps(region: RegionAggregate,
                  watched: Sequence[WatchedCategory],
                  max_share_percent: float) -> List[str]:
    """Watched categories holding less than max_share_percent of the region's leads."""
    return [c.name for c in watched if region.share_percent(c.name) < max_share_percent]


def summarize_regions(regions: Mapping[str, RegionAggregate],
                      markets: Mapping[MarketKey, MarketAggregate],
                      watched: Sequence[WatchedCategory],
                      max_share_percent: float,
                      top_n: Optional[int] = 3) -> List[RegionSummary]:
    """Region summaries, largest region first."""
    summaries = []
    for region in sorted(regions.values(), key=lambda r: (-r.total, r.name)):
        summaries.append(RegionSummary(
            name=region.name,
            total=region.total,
            state_count=len(region.states),
            market_count=len(region.market_keys),
            top_categories=region.top_categories(top_n),
            top_markets=[(m.key.label, m.total) for m in region.top_markets(markets, top_n)],
            missing_watched=regional_gaps(region, watched, max_share_percent),
        ))
    return summaries
