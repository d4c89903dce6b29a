"""
Market aggregator — single pass over lead rows, grouped by (city, state) and,
within each market, by resolved category.

Pages can be folded in as they arrive (add_many per page), so a full-table scan
never needs the whole lead set in memory. Rows without a location are skipped;
malformed rows are tallied and skipped, never raised.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

from leadintel.analysis.resolver import CategoryResolver

logger = logging.getLogger('analysis.aggregator')


class MarketKey(NamedTuple):
    city: str
    state: str

    @property
    def label(self) -> str:
        return f'{self.city}, {self.state}'


@dataclass
class MarketAggregate:
    """Lead counts for one market. total == core + other + uncategorized."""
    key: MarketKey
    total: int = 0
    core_counts: Dict[str, int] = field(default_factory=dict)
    other_counts: Dict[str, int] = field(default_factory=dict)
    uncategorized: int = 0

    @property
    def city(self) -> str:
        return self.key.city

    @property
    def state(self) -> str:
        return self.key.state

    @property
    def distinct_categories(self) -> int:
        return len(self.core_counts) + len(self.other_counts)

    def count_for(self, category: str) -> int:
        """
        Leads in this market for a category name (canonical first, then other).

        Names that are neither canonical nor an other group live in raw
        buckets keyed by whatever spelling the scraper stored, so those are
        matched case-insensitively and summed.
        """
        if category in self.core_counts:
            return self.core_counts[category]
        return count_case_insensitive(self.category_counts(), category)

    def category_counts(self) -> Dict[str, int]:
        merged = dict(self.other_counts)
        merged.update(self.core_counts)
        return merged

    def to_dict(self):
        return {
            'city': self.city,
            'state': self.state,
            'market': self.key.label,
            'total': self.total,
            'core_counts': dict(self.core_counts),
            'other_counts': dict(self.other_counts),
            'uncategorized': self.uncategorized,
            'distinct_categories': self.distinct_categories,
        }


@dataclass
class AggregationDiagnostics:
    rows_seen: int = 0
    rows_aggregated: int = 0
    skipped_no_location: int = 0
    malformed_rows: int = 0

    def to_dict(self):
        return {
            'rows_seen': self.rows_seen,
            'rows_aggregated': self.rows_aggregated,
            'skipped_no_location': self.skipped_no_location,
            'malformed_rows': self.malformed_rows,
        }


@dataclass
class StateAggregate:
    state: str
    total: int = 0
    market_keys: Set[MarketKey] = field(default_factory=set)
    category_counts: Dict[str, int] = field(default_factory=dict)
    uncategorized: int = 0


@dataclass
class CategorySummary:
    category: str
    is_core: bool
    total: int = 0
    market_keys: Set[MarketKey] = field(default_factory=set)
    states: Set[str] = field(default_factory=set)

    def to_dict(self):
        return {
            'category': self.category,
            'is_core': self.is_core,
            'total': self.total,
            'markets_present': len(self.market_keys),
            'states_present': len(self.states),
        }


@dataclass(frozen=True)
class MarketSummary:
    """One row of the ranked "top markets" table."""
    key: MarketKey
    total: int
    distinct_categories: int

    def to_dict(self):
        return {
            'city': self.key.city,
            'state': self.key.state,
            'market': self.key.label,
            'total': self.total,
            'distinct_categories': self.distinct_categories,
        }


class MarketAggregation:
    """
    Incremental (city, state) -> MarketAggregate map.

    normalize_keys=True trims and collapses whitespace in city names, groups
    cities case-insensitively (first-seen spelling is kept for display) and
    upper-cases the state. With normalize_keys=False the key is the exact
    stored (city, state) pair.
    """

    def __init__(self, resolver: CategoryResolver, normalize_keys: bool = True):
        self.resolver = resolver
        self.normalize_keys = normalize_keys
        self.markets: Dict[MarketKey, MarketAggregate] = {}
        self.diagnostics = AggregationDiagnostics()
        self._index: Dict[Tuple[str, str], MarketKey] = {}

    # ── Folding ──────────────────────────────────────────────────────────

    def add(self, lead) -> bool:
        """Fold one lead row in. Returns True if it was counted toward a market."""
        self.diagnostics.rows_seen += 1

        if not isinstance(lead, Mapping):
            self.diagnostics.malformed_rows += 1
            return False

        city = lead.get('city')
        state = lead.get('state')
        raw_category = lead.get('service_type')

        if not _is_optional_str(city) or not _is_optional_str(state) or not _is_optional_str(raw_category):
            self.diagnostics.malformed_rows += 1
            logger.debug("Skipping malformed lead %s", lead.get('id'))
            return False

        if not city or not city.strip() or not state or not state.strip():
            self.diagnostics.skipped_no_location += 1
            return False

        market = self._market_for(city, state)
        market.total += 1

        resolution = self.resolver.resolve(raw_category)
        if resolution.is_core:
            market.core_counts[resolution.canonical] = market.core_counts.get(resolution.canonical, 0) + 1
        elif resolution.canonical is not None:
            market.other_counts[resolution.canonical] = market.other_counts.get(resolution.canonical, 0) + 1
        else:
            market.uncategorized += 1

        self.diagnostics.rows_aggregated += 1
        return True

    def add_many(self, leads: Iterable) -> int:
        counted = 0
        for lead in leads:
            if self.add(lead):
                counted += 1
        return counted

    def _market_for(self, city: str, state: str) -> MarketAggregate:
        if self.normalize_keys:
            city = ' '.join(city.split())
            state = state.strip().upper()
            index_key = (city.casefold(), state)
        else:
            index_key = (city, state)

        key = self._index.get(index_key)
        if key is None:
            key = MarketKey(city, state)
            self._index[index_key] = key
            self.markets[key] = MarketAggregate(key=key)
        return self.markets[key]

    # ── Derived views ────────────────────────────────────────────────────

    @property
    def total_leads(self) -> int:
        return sum(m.total for m in self.markets.values())

    def get(self, city: str, state: str) -> Optional[MarketAggregate]:
        """Look up a market using the same key rules as aggregation."""
        if self.normalize_keys:
            index_key = (' '.join(city.split()).casefold(), state.strip().upper())
        else:
            index_key = (city, state)
        key = self._index.get(index_key)
        return self.markets.get(key) if key is not None else None

    def by_state(self) -> Dict[str, StateAggregate]:
        states: Dict[str, StateAggregate] = {}
        for key, market in self.markets.items():
            agg = states.get(key.state)
            if agg is None:
                agg = states[key.state] = StateAggregate(state=key.state)
            agg.total += market.total
            agg.uncategorized += market.uncategorized
            agg.market_keys.add(key)
            for category, count in market.category_counts().items():
                agg.category_counts[category] = agg.category_counts.get(category, 0) + count
        return states

    def category_matrix(self) -> Dict[Tuple[str, str, str], int]:
        """(city, state, category) -> lead count, for matrix-style reports."""
        matrix = {}
        for key, market in self.markets.items():
            for category, count in market.category_counts().items():
                matrix[(key.city, key.state, category)] = count
        return matrix

    def category_summary(self) -> List[CategorySummary]:
        """Per-category totals with market/state reach, largest first."""
        summaries: Dict[Tuple[str, bool], CategorySummary] = {}
        for key, market in self.markets.items():
            for is_core, counts in ((True, market.core_counts), (False, market.other_counts)):
                for category, count in counts.items():
                    summary = summaries.get((category, is_core))
                    if summary is None:
                        summary = summaries[(category, is_core)] = CategorySummary(category, is_core)
                    summary.total += count
                    summary.market_keys.add(key)
                    summary.states.add(key.state)
        return sorted(summaries.values(), key=lambda s: (-s.total, s.category))

    def top_markets(self, limit: Optional[int] = None) -> List[MarketSummary]:
        """Markets ranked by total leads, then distinct categories, then label."""
        ranked = sorted(
            self.markets.values(),
            key=lambda m: (-m.total, -m.distinct_categories, m.key.label),
        )
        if limit is not None:
            ranked = ranked[:limit]
        return [MarketSummary(m.key, m.total, m.distinct_categories) for m in ranked]


def aggregate(leads: Iterable, resolver: CategoryResolver, normalize_keys: bool = True) -> MarketAggregation:
    """One-shot aggregation over an in-memory lead sequence."""
    aggregation = MarketAggregation(resolver, normalize_keys=normalize_keys)
    aggregation.add_many(leads)
    logger.info(
        "Aggregated %d leads into %d markets (%d without location, %d malformed)",
        aggregation.diagnostics.rows_aggregated, len(aggregation.markets),
        aggregation.diagnostics.skipped_no_location, aggregation.diagnostics.malformed_rows,
    )
    return aggregation


def _is_optional_str(value) -> bool:
    return value is None or isinstance(value, str)


def count_case_insensitive(counts: Dict[str, int], category: str) -> int:
    """Sum of every bucket whose name matches `category` ignoring case."""
    folded = category.casefold()
    return sum(count for name, count in counts.items() if name.casefold() == folded)
