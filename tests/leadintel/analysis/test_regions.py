"""Tests for the regional roll-up."""
from leadintel.analysis.aggregator import aggregate
from leadintel.analysis.opportunities import WatchedCategory
from leadintel.analysis.regions import OTHER_REGION, regional_gaps, rollup, summarize_regions

STATE_TO_REGION = {'TX': 'South', 'FL': 'South', 'CA': 'West'}


class TestRollup:

    def test_groups_markets_by_region(self, resolver, sample_leads):
        agg = aggregate(sample_leads, resolver)
        regions = rollup(agg.markets.values(), STATE_TO_REGION)

        assert set(regions) == {'South', OTHER_REGION}
        south = regions['South']
        assert south.total == 30
        assert south.states == {'TX', 'FL'}
        assert len(south.market_keys) == 2
        assert south.category_counts['Roofing Contractors'] == 12
        assert south.category_counts['Pool Builders'] == 9
        assert south.uncategorized == 1

    def test_unmapped_state_goes_to_other(self, resolver, sample_leads):
        agg = aggregate(sample_leads, resolver)
        regions = rollup(agg.markets.values(), STATE_TO_REGION)
        assert regions[OTHER_REGION].states == {'NV'}
        assert regions[OTHER_REGION].total == 3

    def test_conservation(self, resolver, sample_leads, make_lead):
        leads = sample_leads + [make_lead('Boise', 'ID', 'Roofer'), make_lead('Fresno', 'CA', 'Painter')]
        agg = aggregate(leads, resolver)
        regions = rollup(agg.markets.values(), STATE_TO_REGION)
        assert sum(r.total for r in regions.values()) == sum(m.total for m in agg.markets.values())

    def test_top_categories_and_markets(self, resolver, sample_leads):
        agg = aggregate(sample_leads, resolver)
        south = rollup(agg.markets.values(), STATE_TO_REGION)['South']
        assert south.top_categories(2) == [('Roofing Contractors', 12), ('Pool Builders', 9)]
        assert [m.key.label for m in south.top_markets(agg.markets, 1)] == ['Austin, TX']


class TestRegionalGaps:

    def test_lists_watched_categories_under_threshold(self, resolver, sample_leads):
        agg = aggregate(sample_leads, resolver)
        south = rollup(agg.markets.values(), STATE_TO_REGION)['South']
        watched = [
            WatchedCategory('EV Charging Installation', 27.11),   # 1 of 30 = 3.3%
            WatchedCategory('Smart Home Installation', 23.4),     # 0%
            WatchedCategory('Pool Builders', 3.0),                # 30%
        ]
        assert regional_gaps(south, watched, max_share_percent=5.0) == [
            'EV Charging Installation', 'Smart Home Installation',
        ]
        assert regional_gaps(south, watched, max_share_percent=1.0) == ['Smart Home Installation']

    def test_summaries_largest_first(self, resolver, sample_leads, watched):
        agg = aggregate(sample_leads, resolver)
        regions = rollup(agg.markets.values(), STATE_TO_REGION)
        summaries = summarize_regions(regions, agg.markets, watched, max_share_percent=1.0)

        assert [s.name for s in summaries] == ['South', OTHER_REGION]
        data = summaries[0].to_dict()
        assert data['region'] == 'South'
        assert data['states'] == 2
        assert data['top_markets'][0] == {'market': 'Austin, TX', 'total': 20}
        assert summaries[1].missing_watched == ['EV Charging Installation', 'Pool Builders']


class TestShare:

    def test_raw_buckets_counted_ignoring_case(self, resolver, make_lead):
        leads = [make_lead('Austin', 'TX', 'Roofer') for _ in range(98)]
        leads += [make_lead('Austin', 'TX', 'foundation repair'), make_lead('Austin', 'TX', 'Foundation repair')]
        regions = rollup(aggregate(leads, resolver).markets.values(), STATE_TO_REGION)
        assert regions['South'].share_percent('Foundation Repair') == 2.0
        assert regional_gaps(regions['South'], [WatchedCategory('Foundation Repair', 5.0)], 1.0) == []

    def test_empty_region_share_is_zero(self):
        from leadintel.analysis.regions import RegionAggregate
        assert RegionAggregate(name='Empty').share_percent('Pool Builders') == 0.0
