"""Tests for the classify_leads audit script."""
from unittest.mock import patch

import pytest

from leadintel.errors import DataSourceError
from leadintel.services.classifier import Classification, ClassificationResult
from scripts import classify_leads


def _leads():
    return [
        {'id': 'a', 'company_name': 'Blue Haven Pools', 'city': 'Austin', 'state': 'TX',
         'service_type': 'Pool Builders'},
        {'id': 'b', 'company_name': 'Leslie Pool Supplies', 'city': 'Austin', 'state': 'TX',
         'service_type': 'Pool Builders'},
        {'id': 'c', 'company_name': 'Aqua Dreams Texas', 'city': 'Austin', 'state': 'TX',
         'service_type': 'Pool Builders'},
        {'id': 'd', 'company_name': 'Lone Star Roofing', 'city': 'Austin', 'state': 'TX',
         'service_type': 'Roofing Contractors'},
    ]


@pytest.fixture
def classify():
    result = ClassificationResult(kept=[_leads()[0]])
    result.rejected.append((_leads()[2], Classification(False, 0.9, 'Pool supply reseller')))
    with patch('scripts.classify_leads.get_lead_source'), \
         patch('scripts.classify_leads.fetch_leads', return_value=_leads()), \
         patch('scripts.classify_leads.filter_service_providers', return_value=result) as mock_filter:
        yield mock_filter


class TestClassifyLeads:

    def test_name_rules_run_before_model(self, classify, capsys):
        assert classify_leads.main(['--category', 'Pool Builders']) == 0

        batch = classify.call_args[0][0]
        assert [lead['id'] for lead in batch] == ['a', 'c']
        assert classify.call_args[0][1] == 'Pool Builders'
        out = capsys.readouterr().out
        assert '3 Pool Builders leads out of 4 fetched' in out
        assert '1 dropped by name rules' in out
        assert 'Aqua Dreams Texas (0.90): Pool supply reseller' in out

    def test_skip_exclusions_sends_everything(self, classify):
        classify_leads.main(['--category', 'Pool Builders', '--skip-exclusions'])
        assert [lead['id'] for lead in classify.call_args[0][0]] == ['a', 'b', 'c']

    def test_limit_caps_batch(self, classify):
        classify_leads.main(['--category', 'Pool Builders', '--limit', '1', '--min-confidence', '0.8'])
        assert len(classify.call_args[0][0]) == 1
        assert classify.call_args[1]['min_confidence'] == 0.8

    def test_unknown_category_fails(self, classify, capsys):
        assert classify_leads.main(['--category', 'Pool Cleaners']) == 1
        assert 'Unknown category' in capsys.readouterr().err
        classify.assert_not_called()

    def test_non_positive_limit_fails(self, classify):
        assert classify_leads.main(['--category', 'Pool Builders', '--limit', '0']) == 1
        classify.assert_not_called()

    def test_fetch_failure_fails(self, classify, capsys):
        with patch('scripts.classify_leads.fetch_leads', side_effect=DataSourceError('down')):
            assert classify_leads.main(['--category', 'Pool Builders']) == 1
        assert 'down' in capsys.readouterr().err
