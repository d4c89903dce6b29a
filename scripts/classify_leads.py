#!/usr/bin/env python3
"""
Audit leads of one category with the OpenAI legitimacy classifier.

Runs the cheap name-based exclusion rules first, then asks the model about
what is left and prints the listings it confidently rejects. Read-only: the
lead store is never modified.

Usage:
    python scripts/classify_leads.py --category "Pool Builders" --state TX
    python scripts/classify_leads.py --category "Painting Companies" --limit 50 --min-confidence 0.8

Requires: OPENAI_API_KEY, plus SUPABASE_URL/SUPABASE_KEY or DATABASE_URL.
"""
import sys
import os
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from leadintel import create_app
from leadintel.analysis.resolver import CategoryResolver
from leadintel.analysis.settings import load_analysis_config
from leadintel.errors import ConfigurationError, DataSourceError
from leadintel.services.classifier import filter_service_providers
from leadintel.services.lead_filtering import filter_service_businesses
from leadintel.services.lead_source import LeadFilter, fetch_leads, get_lead_source

COLUMNS = ('id', 'company_name', 'website', 'city', 'state', 'service_type')


def build_parser():
    parser = argparse.ArgumentParser(description='Classify leads of one category as real providers or not')
    parser.add_argument('--category', required=True, help='Canonical category, e.g. "Pool Builders"')
    parser.add_argument('--city', help='Only leads in this city')
    parser.add_argument('--state', help='Only leads in this state')
    parser.add_argument('--limit', type=int, default=100, help='Classify at most this many leads (API cost)')
    parser.add_argument('--min-confidence', type=float, default=0.7,
                        help='Reject only when the model is at least this sure')
    parser.add_argument('--skip-exclusions', action='store_true', help='Send every lead to the model')
    parser.add_argument('--model', help='Override OPENAI_MODEL')
    return parser


def leads_in_category(leads, resolver, category):
    """Leads whose raw service_type resolves to `category` (aliases included)."""
    return [lead for lead in leads if resolver.resolve(lead.get('service_type')).canonical == category]


def run(args):
    analysis_config = load_analysis_config()
    if args.category not in analysis_config.taxonomy.categories:
        raise ConfigurationError(f"Unknown category: {args.category!r}")
    if args.limit <= 0:
        raise ConfigurationError(f"--limit must be positive, got {args.limit}")

    resolver = CategoryResolver(analysis_config.taxonomy)
    leads = fetch_leads(
        get_lead_source(),
        LeadFilter(city=args.city, state=args.state, service_type_not_null=True, columns=COLUMNS),
        page_size=analysis_config.page_size,
        retry_count=analysis_config.retry_count,
        retry_backoff=analysis_config.retry_backoff,
        timeout_seconds=analysis_config.timeout_seconds,
    )
    candidates = leads_in_category(leads, resolver, args.category)
    print(f'{len(candidates)} {args.category} leads out of {len(leads)} fetched')

    if not args.skip_exclusions:
        screened = filter_service_businesses(candidates, analysis_config.exclusions, category=args.category)
        print(f'  {len(screened.excluded)} dropped by name rules')
        for entry in screened.excluded:
            print(f'    - {entry["name"]} ({entry["city"]}, {entry["state"]}): {entry["reason"]}')
        candidates = screened.kept

    batch = candidates[:args.limit]
    result = filter_service_providers(batch, args.category, min_confidence=args.min_confidence, model=args.model)
    summary = result.summary()
    print(f'  Classified {len(batch)}: {summary["kept"]} kept, {summary["rejected"]} rejected, '
          f'{summary["errors"]} errors')
    for lead, classification in result.rejected:
        print(f'    x {lead.get("company_name")} ({classification.confidence:.2f}): {classification.reason}')
    return result


def main(argv=None):
    args = build_parser().parse_args(argv)

    app = create_app()
    with app.app_context():
        try:
            run(args)
        except (ConfigurationError, DataSourceError) as e:
            print(f'Error: {e}', file=sys.stderr)
            return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
