"""
Centralized configuration — env vars for the store, ingestion and logging.

Analysis data (taxonomy, watched categories, regions, thresholds) lives in
YAML and is loaded by leadintel.analysis.settings.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Flask ────────────────────────────────────────────────────────────────────
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-change-me')

# ── Local SQL store (dev / tests) ────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Hosted lead store (Supabase REST) ────────────────────────────────────────
SUPABASE_URL = os.getenv('SUPABASE_URL')
SUPABASE_KEY = os.getenv('SUPABASE_KEY')
LEADS_TABLE = os.getenv('LEADS_TABLE', 'leads')

# ── Ingestion ────────────────────────────────────────────────────────────────
# The hosted store caps a single response at 1000 rows.
INGEST_PAGE_SIZE = int(os.getenv('INGEST_PAGE_SIZE', '1000'))
INGEST_RETRY_COUNT = int(os.getenv('INGEST_RETRY_COUNT', '2'))
INGEST_RETRY_BACKOFF = float(os.getenv('INGEST_RETRY_BACKOFF', '1.0'))
INGEST_TIMEOUT_SECONDS = float(os.getenv('INGEST_TIMEOUT_SECONDS', '300'))
INGEST_REQUEST_TIMEOUT = float(os.getenv('INGEST_REQUEST_TIMEOUT', '30'))

# ── Analysis config file ─────────────────────────────────────────────────────
ANALYSIS_CONFIG_PATH = os.getenv('ANALYSIS_CONFIG_PATH')

# ── OpenAI (business legitimacy classification) ──────────────────────────────
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')

# ── Report defaults ──────────────────────────────────────────────────────────
TOP_MARKETS_LIMIT = 50
OPPORTUNITIES_LIMIT = 100
PER_GROUP_LIMIT = 10
DUPLICATE_GROUPS_LIMIT = 100
DUPLICATE_NAME_THRESHOLD = 0.8
EXCLUSIONS_LIMIT = 200
