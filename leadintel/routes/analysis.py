"""
Analysis routes — health check plus JSON views over a fresh scan of the lead store.

Every request scans the lead store and rebuilds its view; thresholds can be
overridden per request through query parameters. Besides the market report
there are two data-quality views: duplicate listings and the listings the
name-based exclusion rules would drop.
"""
import logging
from flask import Blueprint, jsonify, request

from leadintel import config
from leadintel.analysis.engine import run_analysis
from leadintel.analysis.resolver import CategoryResolver
from leadintel.analysis.settings import load_analysis_config
from leadintel.errors import ConfigurationError, DataSourceError, DataSourceTimeout
from leadintel.services.dedupe import duplicate_summary, find_duplicate_groups
from leadintel.services.lead_filtering import exclusion_summary, filter_service_businesses
from leadintel.services.lead_source import LeadFilter, fetch_leads, get_lead_source

logger = logging.getLogger('routes.analysis')

bp = Blueprint('analysis', __name__)

DUPLICATE_COLUMNS = ('id', 'company_name', 'phone', 'city', 'state', 'service_type')


# ── Error mapping ────────────────────────────────────────────────────────────

@bp.errorhandler(ConfigurationError)
def handle_configuration_error(e):
    return jsonify({'error_kind': 'configuration_error', 'message': str(e)}), 400


@bp.errorhandler(DataSourceError)
def handle_data_source_error(e):
    status = 504 if isinstance(e, DataSourceTimeout) else 502
    logger.error("Lead fetch failed (%s): %s", e.kind, e)
    return jsonify(e.to_dict()), status


# ── Query parsing ────────────────────────────────────────────────────────────

def _arg(name, cast):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return None
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}")


def _bool(raw):
    value = raw.strip().lower()
    if value in ('1', 'true', 'yes', 'on'):
        return True
    if value in ('0', 'false', 'no', 'off'):
        return False
    raise ValueError(raw)


def _analysis_config():
    return load_analysis_config().with_overrides(
        min_market_size=_arg('min_market_size', int),
        max_coverage_percent=_arg('max_coverage_percent', float),
        prioritize_emerging=_arg('prioritize_emerging', _bool),
        exclude_non_providers=_arg('exclude_non_providers', _bool),
    )


def _limit(default):
    limit = _arg('limit', int)
    if limit is None:
        return default
    if limit <= 0:
        raise ConfigurationError(f"limit must be a positive integer, got {limit}")
    return limit


def _lead_filter():
    return LeadFilter(city=_arg('city', str), state=_arg('state', str))


def _fetch_all(lead_filter, analysis_config):
    analysis_config.validate()
    return fetch_leads(
        get_lead_source(),
        lead_filter,
        page_size=analysis_config.page_size,
        retry_count=analysis_config.retry_count,
        retry_backoff=analysis_config.retry_backoff,
        timeout_seconds=analysis_config.timeout_seconds,
    )


# ── Endpoints ────────────────────────────────────────────────────────────────

@bp.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/markets')
def list_markets():
    """Markets ranked by lead volume, each with its coverage record."""
    limit = _limit(config.TOP_MARKETS_LIMIT)
    analysis_config = _analysis_config()
    report = run_analysis(get_lead_source(), analysis_config, _lead_filter())

    return jsonify({
        'config_version': report.config_version,
        'total_leads': report.total_leads,
        'market_count': len(report.aggregation.markets),
        'diagnostics': report.diagnostics.to_dict(),
        'markets': report.market_rows(limit),
    })


@bp.route('/api/opportunities')
def list_opportunities():
    """Ranked blue-ocean opportunities, optionally grouped by category or region."""
    limit = _limit(config.OPPORTUNITIES_LIMIT)
    group_by = request.args.get('group_by')
    if group_by not in (None, '', 'category', 'region'):
        raise ConfigurationError(f"group_by must be 'category' or 'region', got {group_by!r}")

    analysis_config = _analysis_config()
    report = run_analysis(get_lead_source(), analysis_config, _lead_filter())

    body = {
        'config_version': report.config_version,
        'total_leads': report.total_leads,
        'opportunity_count': len(report.opportunities),
        'diagnostics': report.diagnostics.to_dict(),
    }
    if group_by == 'category':
        grouped = report.opportunities_by_category(per_category=config.PER_GROUP_LIMIT)
        body['groups'] = {name: [o.to_dict() for o in records] for name, records in grouped.items()}
    elif group_by == 'region':
        grouped = report.opportunities_by_region(
            analysis_config.state_to_region, per_region=config.PER_GROUP_LIMIT,
        )
        body['groups'] = {name: [o.to_dict() for o in records] for name, records in grouped.items()}
    else:
        body['opportunities'] = [o.to_dict() for o in report.opportunities[:limit]]
    return jsonify(body)


@bp.route('/api/regions')
def list_regions():
    """Regional roll-up with the watched categories each region is missing."""
    analysis_config = _analysis_config()
    report = run_analysis(get_lead_source(), analysis_config)

    return jsonify({
        'config_version': report.config_version,
        'total_leads': report.total_leads,
        'regions': [r.to_dict() for r in report.region_summaries],
        'untapped_markets': [key.label for key in report.untapped_markets],
    })


@bp.route('/api/duplicates')
def list_duplicates():
    """Leads that look like the same business (shared phone or near-identical name)."""
    limit = _limit(config.DUPLICATE_GROUPS_LIMIT)
    threshold = _arg('name_threshold', float)
    if threshold is None:
        threshold = config.DUPLICATE_NAME_THRESHOLD
    if not 0 < threshold <= 1:
        raise ConfigurationError(f"name_threshold must be in (0, 1], got {threshold}")

    analysis_config = _analysis_config()
    lead_filter = LeadFilter(
        city=_arg('city', str),
        state=_arg('state', str),
        service_type=_arg('service_type', str),
        columns=DUPLICATE_COLUMNS,
    )
    leads = _fetch_all(lead_filter, analysis_config)
    groups = find_duplicate_groups(leads, name_threshold=threshold)
    groups.sort(key=lambda g: (-len(g.leads), g.reason, g.key))

    return jsonify({
        'leads_scanned': len(leads),
        'summary': duplicate_summary(groups),
        'groups': [g.to_dict() for g in groups[:limit]],
    })


@bp.route('/api/exclusions')
def list_exclusions():
    """Leads the name-based rules would drop as non-providers, with the matching rule."""
    limit = _limit(config.EXCLUSIONS_LIMIT)
    analysis_config = _analysis_config()
    category = _arg('category', str)
    if category is not None and category not in analysis_config.taxonomy.categories:
        raise ConfigurationError(f"Unknown category: {category!r}")

    lead_filter = LeadFilter(
        city=_arg('city', str),
        state=_arg('state', str),
        columns=('id', 'company_name', 'city', 'state', 'service_type'),
    )
    leads = _fetch_all(lead_filter, analysis_config)
    result = filter_service_businesses(
        leads, analysis_config.exclusions, resolver=CategoryResolver(analysis_config.taxonomy),
    )
    excluded = result.excluded
    if category is not None:
        excluded = [e for e in excluded if e['category'] == category]

    return jsonify({
        'enabled': analysis_config.exclude_non_providers,
        'leads_scanned': len(leads),
        'excluded_count': len(excluded),
        'rules': exclusion_summary(analysis_config.exclusions, category),
        'excluded': excluded[:limit],
    })
