"""Shared test fixtures."""
import pytest
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from leadintel.database import Base
from leadintel.analysis.opportunities import TierThresholds, WatchedCategory
from leadintel.analysis.resolver import CategoryResolver
from leadintel.analysis.settings import AnalysisConfig
from leadintel.analysis.taxonomy import ServiceTaxonomy


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = create_engine('sqlite:///:memory:')
    import leadintel.models.lead
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route all get_session() calls to the test session.

    close() is disabled so that code closing its session in a finally block
    doesn't invalidate the shared test session.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    with patch('leadintel.database.get_session', return_value=db_session):
        yield db_session
    db_session.close = _real_close


@pytest.fixture(autouse=True)
def _reset_analysis_config():
    """Every test starts with an empty analysis-config cache."""
    from leadintel.analysis.settings import reset_analysis_config
    reset_analysis_config()
    yield
    reset_analysis_config()


@pytest.fixture
def app():
    """Flask test app."""
    from leadintel import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


# ── Analysis fixtures ────────────────────────────────────────────────────────

@pytest.fixture
def taxonomy():
    """Small taxonomy: four core categories, a few aliases, one other group."""
    return ServiceTaxonomy(
        categories=(
            'Roofing Contractors',
            'Pool Builders',
            'Painting Companies',
            'EV Charging Installation',
        ),
        aliases={
            'Roofing Contractors': ('Roofer', 'Roofing contractor'),
            'Pool Builders': ('Swimming pool contractor', 'Pool cleaning service'),
            'Painting Companies': ('Painter', 'House painter'),
        },
        other_groups={
            'Plumbing Services': ('Plumber', 'Plumbing contractor'),
        },
    )


@pytest.fixture
def resolver(taxonomy):
    return CategoryResolver(taxonomy)


@pytest.fixture
def watched():
    return (
        WatchedCategory('EV Charging Installation', 27.11),
        WatchedCategory('Pool Builders', 3.0),
    )


@pytest.fixture
def analysis_config(taxonomy, watched):
    return AnalysisConfig(
        taxonomy=taxonomy,
        watched=watched,
        hot_categories=('EV Charging Installation',),
        state_to_region={'TX': 'South', 'FL': 'South', 'CA': 'West'},
        min_market_size=10,
        max_coverage_percent=5.0,
        tiers=TierThresholds(very_low=1.0, low=3.0),
        regional_gap_percent=1.0,
        page_size=50,
        retry_count=0,
        retry_backoff=0.0,
        timeout_seconds=60,
        version='test',
    )


@pytest.fixture
def make_lead():
    """Factory fixture — builds a lead dict shaped like a REST row."""
    counter = {'n': 0}

    def _make(city='Austin', state='TX', service_type='Roofer', **overrides):
        counter['n'] += 1
        lead = {
            'id': f'lead-{counter["n"]:05d}',
            'company_name': f'Company {counter["n"]}',
            'phone': None,
            'city': city,
            'state': state,
            'service_type': service_type,
        }
        lead.update(overrides)
        return lead
    return _make


@pytest.fixture
def sample_leads(make_lead):
    """
    Austin, TX: 20 leads (12 roofing, 6 painting, 1 plumber, 1 uncategorized).
    Miami, FL: 10 leads (9 pool, 1 EV).
    Reno, NV: 3 leads, state not in any region.
    Plus two rows without a location.
    """
    leads = []
    leads += [make_lead('Austin', 'TX', 'Roofer') for _ in range(12)]
    leads += [make_lead('Austin', 'TX', 'Painting Companies') for _ in range(6)]
    leads.append(make_lead('Austin', 'TX', 'Plumber'))
    leads.append(make_lead('Austin', 'TX', None))
    leads += [make_lead('Miami', 'FL', 'Swimming pool contractor') for _ in range(9)]
    leads.append(make_lead('Miami', 'FL', 'ev charging installation'))
    leads += [make_lead('Reno', 'NV', 'Roofing Contractors') for _ in range(3)]
    leads.append(make_lead(None, 'TX', 'Roofer'))
    leads.append(make_lead('Dallas', '', 'Roofer'))
    return leads
