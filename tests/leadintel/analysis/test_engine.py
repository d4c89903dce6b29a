"""Tests for the analysis engine — end-to-end over in-memory lead sources."""
import threading
from unittest.mock import MagicMock

import pytest

from leadintel.analysis.aggregator import MarketKey
from leadintel.analysis.engine import analyze_leads, build_report, run_analysis
from leadintel.errors import ConfigurationError, DataSourceError, FetchCancelled
from leadintel.services.lead_filtering import build_exclusion_rules
from leadintel.services.lead_source import LeadFilter, LeadSource


class ListLeadSource(LeadSource):
    """Pages over a Python list, recording each request."""

    name = 'list'

    def __init__(self, leads):
        self.leads = leads
        self.calls = []

    def fetch_page(self, lead_filter, offset, limit, timeout=None):
        self.calls.append((offset, limit))
        return self.leads[offset:offset + limit]


def _big_market_leads(make_lead, city, state, total, ev=0):
    leads = [make_lead(city, state, 'EV Charging Installation') for _ in range(ev)]
    leads += [make_lead(city, state, 'Roofer') for _ in range(total - ev)]
    return leads


class TestAnalyzeLeads:

    def test_full_report(self, analysis_config, sample_leads):
        report = analyze_leads(sample_leads, analysis_config)

        assert report.total_leads == 33
        assert report.diagnostics.skipped_no_location == 2
        assert report.coverage[MarketKey('Austin', 'TX')].core_covered == 2
        assert [m.key.label for m in report.top_markets] == ['Austin, TX', 'Miami, FL', 'Reno, NV']
        assert {r.name for r in report.region_summaries} == {'South', 'Other'}

    def test_opportunities_respect_min_market_size(self, analysis_config, sample_leads):
        report = analyze_leads(sample_leads, analysis_config)
        labels = {r.market.label for r in report.opportunities}
        # Reno has 3 leads, below the minimum of 10
        assert 'Reno, NV' not in labels
        assert 'Austin, TX' in labels

    def test_dallas_outranks_austin(self, analysis_config, make_lead):
        leads = _big_market_leads(make_lead, 'Austin', 'TX', 1000) + \
                _big_market_leads(make_lead, 'Dallas', 'TX', 2000)
        report = analyze_leads(leads, analysis_config)
        ev = [r for r in report.opportunities if r.category == 'EV Charging Installation']
        assert [r.market.label for r in ev] == ['Dallas, TX', 'Austin, TX']
        assert ev[1].score == pytest.approx(27110.0)

    def test_untapped_markets(self, analysis_config, make_lead):
        leads = _big_market_leads(make_lead, 'Austin', 'TX', 50) + \
                _big_market_leads(make_lead, 'Dallas', 'TX', 50, ev=1)
        report = analyze_leads(leads, analysis_config)
        assert report.untapped_markets == [MarketKey('Austin', 'TX')]

    def test_to_dict_shape(self, analysis_config, sample_leads):
        data = analyze_leads(sample_leads, analysis_config).to_dict(market_limit=1, opportunity_limit=2)
        assert data['config_version'] == 'test'
        assert data['market_count'] == 3
        assert len(data['markets']) == 1
        assert data['markets'][0]['coverage']['core_total'] == 4
        assert len(data['opportunities']) <= 2
        assert data['diagnostics']['rows_seen'] == 35

    def test_invalid_config_raises(self, analysis_config, sample_leads):
        with pytest.raises(ConfigurationError):
            analyze_leads(sample_leads, analysis_config.with_overrides(min_market_size=0))


class TestBuildReport:

    def test_rerun_with_other_thresholds(self, analysis_config, sample_leads):
        report = analyze_leads(sample_leads, analysis_config)
        strict = build_report(report.aggregation, analysis_config.with_overrides(max_coverage_percent=0.5))
        loose = build_report(report.aggregation, analysis_config.with_overrides(max_coverage_percent=100))
        assert len(strict.opportunities) < len(loose.opportunities)
        assert strict.aggregation is loose.aggregation


class TestRunAnalysis:

    def test_folds_every_page(self, analysis_config, sample_leads):
        source = ListLeadSource(sample_leads)
        report = run_analysis(source, analysis_config.with_overrides(page_size=10))

        assert report.pages_fetched == 4
        assert source.calls == [(0, 10), (10, 10), (20, 10), (30, 10)]
        assert report.total_leads == analyze_leads(sample_leads, analysis_config).total_leads

    def test_page_size_does_not_change_result(self, analysis_config, sample_leads):
        small = run_analysis(ListLeadSource(sample_leads), analysis_config.with_overrides(page_size=3))
        large = run_analysis(ListLeadSource(sample_leads), analysis_config.with_overrides(page_size=1000))
        assert small.to_dict()['markets'] == large.to_dict()['markets']
        assert small.to_dict()['opportunities'] == large.to_dict()['opportunities']

    def test_invalid_config_fails_before_fetch(self, analysis_config):
        source = MagicMock(spec=LeadSource)
        with pytest.raises(ConfigurationError):
            run_analysis(source, analysis_config.with_overrides(max_coverage_percent=120))
        source.fetch_page.assert_not_called()

    def test_fetch_failure_propagates(self, analysis_config, sample_leads):
        source = ListLeadSource(sample_leads)
        source.fetch_page = MagicMock(side_effect=[sample_leads[:10], ConnectionError('reset')])
        with pytest.raises(DataSourceError) as exc_info:
            run_analysis(source, analysis_config.with_overrides(page_size=10))
        assert exc_info.value.pages_fetched == 1
        assert exc_info.value.rows_fetched == 10

    def test_cancelled_run_raises(self, analysis_config, sample_leads):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(FetchCancelled):
            run_analysis(ListLeadSource(sample_leads), analysis_config, cancel_event=cancel)

    def test_filter_passed_to_source(self, analysis_config):
        source = MagicMock(spec=LeadSource)
        source.name = 'mock'
        source.fetch_page.return_value = []
        lead_filter = LeadFilter(city='Austin', state='TX')
        run_analysis(source, analysis_config, lead_filter)
        assert source.fetch_page.call_args[0][0] is lead_filter


class TestNonProviderExclusion:

    @pytest.fixture
    def excluding_config(self, analysis_config):
        rules = build_exclusion_rules(
            {'universal': ['home depot'], 'categories': {'Pool Builders': ['pool supply']}},
            analysis_config.taxonomy.categories,
        )
        return analysis_config.with_overrides(exclusions=rules, exclude_non_providers=True)

    def _leads(self, make_lead):
        return [
            make_lead(service_type='Roofer', company_name='Lone Star Roofing'),
            make_lead(service_type='Roofer', company_name='The Home Depot'),
            make_lead(service_type='Swimming pool contractor', company_name='Ace Pool Supply'),
            make_lead(service_type='Swimming pool contractor', company_name='Blue Haven Pools'),
        ]

    def test_excluded_leads_not_counted(self, excluding_config, make_lead):
        report = analyze_leads(self._leads(make_lead), excluding_config)
        assert report.excluded_leads == 2
        assert report.total_leads == 2
        assert report.to_dict()['excluded_non_providers'] == 2

    def test_rules_ignored_when_switched_off(self, excluding_config, make_lead):
        report = analyze_leads(self._leads(make_lead),
                               excluding_config.with_overrides(exclude_non_providers=False))
        assert report.excluded_leads == 0
        assert report.total_leads == 4

    def test_paged_run_matches_in_memory(self, excluding_config, make_lead):
        leads = self._leads(make_lead) * 3
        report = run_analysis(ListLeadSource(leads), excluding_config.with_overrides(page_size=5))
        assert report.excluded_leads == 6
        assert report.total_leads == 6

    def test_company_name_column_requested(self, excluding_config):
        source = MagicMock(spec=LeadSource)
        source.name = 'mock'
        source.fetch_page.return_value = []
        run_analysis(source, excluding_config, LeadFilter(columns=('id', 'city', 'state', 'service_type')))
        assert 'company_name' in source.fetch_page.call_args[0][0].columns

    def test_columns_untouched_when_switched_off(self, analysis_config):
        source = MagicMock(spec=LeadSource)
        source.name = 'mock'
        source.fetch_page.return_value = []
        run_analysis(source, analysis_config)
        assert 'company_name' not in source.fetch_page.call_args[0][0].columns
