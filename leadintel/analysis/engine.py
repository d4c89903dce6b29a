"""
Analysis engine — one parameterized run from lead pages to a full report.

    source pages ─▶ MarketAggregation ─▶ coverage
                                     ├─▶ opportunities
                                     └─▶ regional roll-up + gaps

Configuration is validated before the first page is requested. Pages are folded
into the aggregation as they arrive; a fetch failure raises and the partial
aggregate goes with it.
"""
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional

from leadintel.analysis.aggregator import (
    AggregationDiagnostics, MarketAggregation, MarketKey, MarketSummary,
)
from leadintel.analysis.coverage import CoverageRecord, coverage_by_market
from leadintel.analysis.opportunities import (
    OpportunityRecord, group_by_category, group_by_region, markets_without_watched,
    score_opportunities,
)
from leadintel.analysis.regions import RegionAggregate, RegionSummary, rollup, summarize_regions
from leadintel.analysis.resolver import CategoryResolver
from leadintel.analysis.settings import AnalysisConfig
from leadintel.services.lead_filtering import filter_service_businesses
from leadintel.services.lead_source import LeadFilter, LeadSource, iter_lead_pages

logger = logging.getLogger('analysis.engine')


@dataclass
class AnalysisReport:
    aggregation: MarketAggregation
    coverage: Dict[MarketKey, CoverageRecord]
    opportunities: List[OpportunityRecord]
    regions: Dict[str, RegionAggregate]
    region_summaries: List[RegionSummary]
    top_markets: List[MarketSummary]
    untapped_markets: List[MarketKey] = field(default_factory=list)
    pages_fetched: int = 0
    excluded_leads: int = 0
    config_version: str = 'default'

    @property
    def diagnostics(self) -> AggregationDiagnostics:
        return self.aggregation.diagnostics

    @property
    def total_leads(self) -> int:
        return self.aggregation.total_leads

    def opportunities_by_category(self, per_category: Optional[int] = None):
        return group_by_category(self.opportunities, per_category)

    def opportunities_by_region(self, state_to_region, per_region: Optional[int] = None):
        return group_by_region(self.opportunities, state_to_region, per_region)

    def market_rows(self, limit: Optional[int] = None) -> List[dict]:
        """Ranked market table joined with each market's coverage."""
        rows = []
        summaries = self.top_markets if limit is None else self.top_markets[:limit]
        for summary in summaries:
            row = summary.to_dict()
            row['coverage'] = self.coverage[summary.key].to_dict()
            rows.append(row)
        return rows

    def to_dict(self, market_limit: Optional[int] = None, opportunity_limit: Optional[int] = None):
        opportunities = self.opportunities
        if opportunity_limit is not None:
            opportunities = opportunities[:opportunity_limit]
        return {
            'config_version': self.config_version,
            'total_leads': self.total_leads,
            'market_count': len(self.aggregation.markets),
            'pages_fetched': self.pages_fetched,
            'excluded_non_providers': self.excluded_leads,
            'diagnostics': self.diagnostics.to_dict(),
            'markets': self.market_rows(market_limit),
            'opportunities': [o.to_dict() for o in opportunities],
            'regions': [r.to_dict() for r in self.region_summaries],
            'untapped_markets': [key.label for key in self.untapped_markets],
        }


def build_report(aggregation: MarketAggregation, analysis_config: AnalysisConfig,
                 pages_fetched: int = 0, excluded_leads: int = 0) -> AnalysisReport:
    """Derive every view from a finished aggregation. Pure; re-run with other thresholds freely."""
    markets = aggregation.markets
    opportunities = score_opportunities(
        markets.values(),
        analysis_config.watched,
        min_market_size=analysis_config.min_market_size,
        max_coverage_percent=analysis_config.max_coverage_percent,
        tiers=analysis_config.tiers,
        hot_categories=analysis_config.hot_categories,
        prioritize_emerging=analysis_config.prioritize_emerging,
    )
    regions = rollup(markets.values(), analysis_config.state_to_region)
    untapped = markets_without_watched(
        markets.values(), analysis_config.watched, analysis_config.min_market_size,
    )

    return AnalysisReport(
        aggregation=aggregation,
        coverage=coverage_by_market(markets, analysis_config.taxonomy),
        opportunities=opportunities,
        regions=regions,
        region_summaries=summarize_regions(
            regions, markets, analysis_config.watched, analysis_config.regional_gap_percent,
        ),
        top_markets=aggregation.top_markets(),
        untapped_markets=[m.key for m in untapped],
        pages_fetched=pages_fetched,
        excluded_leads=excluded_leads,
        config_version=analysis_config.version,
    )


def _new_aggregation(analysis_config: AnalysisConfig) -> MarketAggregation:
    return MarketAggregation(
        CategoryResolver(analysis_config.taxonomy),
        normalize_keys=analysis_config.normalize_market_keys,
    )


def _fold(aggregation: MarketAggregation, leads, analysis_config: AnalysisConfig) -> int:
    """Add leads to the aggregation, dropping non-providers first if configured. Returns the number dropped."""
    if not analysis_config.exclude_non_providers:
        aggregation.add_many(leads)
        return 0
    result = filter_service_businesses(leads, analysis_config.exclusions, resolver=aggregation.resolver)
    aggregation.add_many(result.kept)
    return len(result.excluded)


def analyze_leads(leads: Iterable, analysis_config: AnalysisConfig) -> AnalysisReport:
    """Run the full analysis over an in-memory lead collection."""
    analysis_config.validate()
    aggregation = _new_aggregation(analysis_config)
    excluded = _fold(aggregation, leads, analysis_config)
    return build_report(aggregation, analysis_config, excluded_leads=excluded)


def run_analysis(source: LeadSource, analysis_config: AnalysisConfig,
                 lead_filter: Optional[LeadFilter] = None, cancel_event=None) -> AnalysisReport:
    """
    Full-table scan of `source` followed by the full report.

    Raises ConfigurationError before any fetch if the config is invalid, and
    DataSourceError (or its timeout / cancel subclasses) if paging fails.
    """
    analysis_config.validate()
    lead_filter = lead_filter or LeadFilter()
    if analysis_config.exclude_non_providers and not {'*', 'company_name'} & set(lead_filter.columns):
        lead_filter = replace(lead_filter, columns=tuple(lead_filter.columns) + ('company_name',))

    aggregation = _new_aggregation(analysis_config)

    start = time.time()
    pages = 0
    excluded = 0
    for page in iter_lead_pages(
        source,
        lead_filter,
        page_size=analysis_config.page_size,
        retry_count=analysis_config.retry_count,
        retry_backoff=analysis_config.retry_backoff,
        timeout_seconds=analysis_config.timeout_seconds,
        cancel_event=cancel_event,
    ):
        excluded += _fold(aggregation, page, analysis_config)
        pages += 1

    diag = aggregation.diagnostics
    logger.info(
        "Scanned %d leads in %d pages (%.1fs): %d markets, %d without location, %d malformed, %d excluded",
        diag.rows_seen + excluded, pages, time.time() - start, len(aggregation.markets),
        diag.skipped_no_location, diag.malformed_rows, excluded,
    )
    return build_report(aggregation, analysis_config, pages_fetched=pages, excluded_leads=excluded)
