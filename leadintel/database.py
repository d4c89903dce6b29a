"""
SQLAlchemy engine and sessions for the local lead store.

The hosted store is read over REST; this SQL mirror of the `leads` table backs
local development, the seed script and the test suite.
"""
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from leadintel.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


def _engine_for(database_url):
    # SQLAlchemy 2.x only accepts the postgresql:// scheme
    database_url = database_url.replace('postgres://', 'postgresql://', 1)
    if database_url.startswith('sqlite'):
        return create_engine(database_url, connect_args={'check_same_thread': False})
    return create_engine(database_url, pool_pre_ping=True, pool_size=5, max_overflow=10)


engine = _engine_for(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()


@contextmanager
def session_scope():
    """Session that is rolled back on error and always closed."""
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db():
    """Create missing tables (SQLite dev databases have no migrations)."""
    import leadintel.models.lead  # noqa: F401  registers the table on Base.metadata
    Base.metadata.create_all(engine)
