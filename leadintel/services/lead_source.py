"""
Lead ingestion — pagination-safe reads from the lead store.

The hosted store (Supabase / PostgREST) caps every response at 1000 rows, so
a full-table scan is a loop of offset/limit requests with a stable order
(`created_at desc, id desc`) until a short page comes back. The same contract
is implemented over SQLAlchemy for local development and tests.
"""
import logging
import time
from abc import ABC, abstractmethod
from contextlib import closing
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import requests
from sqlalchemy import select

from leadintel import config
from leadintel import database
from leadintel.errors import DataSourceError, DataSourceTimeout, FetchCancelled

logger = logging.getLogger('services.lead_source')

DEFAULT_COLUMNS = ('id', 'city', 'state', 'service_type')


@dataclass(frozen=True)
class LeadFilter:
    """Equality filters plus a stable sort. `id` is always the final tie-breaker."""
    city: Optional[str] = None
    state: Optional[str] = None
    service_type: Optional[str] = None
    service_type_not_null: bool = False
    columns: Tuple[str, ...] = DEFAULT_COLUMNS
    order_by: str = 'created_at'
    descending: bool = True

    def equality_filters(self):
        return [
            (name, value)
            for name, value in (('city', self.city), ('state', self.state), ('service_type', self.service_type))
            if value is not None
        ]

    def order_columns(self) -> List[str]:
        if self.order_by == 'id':
            return ['id']
        return [self.order_by, 'id']


class LeadSource(ABC):
    """Anything that can return one page of lead rows as plain dicts."""

    name = 'lead_source'

    @abstractmethod
    def fetch_page(self, lead_filter: LeadFilter, offset: int, limit: int,
                   timeout: Optional[float] = None) -> List[dict]:
        ...


class SupabaseLeadSource(LeadSource):
    """PostgREST `GET /rest/v1/{table}` with offset/limit paging."""

    name = 'supabase'

    def __init__(self, url, api_key, table='leads', session=None, request_timeout=None):
        if not url or not api_key:
            raise ValueError("SupabaseLeadSource needs both a URL and an API key")
        self.endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self.request_timeout = request_timeout or config.INGEST_REQUEST_TIMEOUT
        self.session = session or requests.Session()
        self.session.headers.update({
            'apikey': api_key,
            'Authorization': f'Bearer {api_key}',
            'Accept': 'application/json',
        })

    def build_params(self, lead_filter: LeadFilter, offset: int, limit: int) -> List[Tuple[str, str]]:
        direction = 'desc' if lead_filter.descending else 'asc'
        params = [('select', ','.join(lead_filter.columns))]
        for column, value in lead_filter.equality_filters():
            params.append((column, f'eq.{value}'))
        if lead_filter.service_type_not_null:
            params.append(('service_type', 'not.is.null'))
        params.append(('order', ','.join(f'{col}.{direction}' for col in lead_filter.order_columns())))
        params.append(('offset', str(offset)))
        params.append(('limit', str(limit)))
        return params

    def fetch_page(self, lead_filter, offset, limit, timeout=None):
        request_timeout = self.request_timeout
        if timeout is not None:
            request_timeout = min(request_timeout, timeout)

        response = self.session.get(
            self.endpoint,
            params=self.build_params(lead_filter, offset, limit),
            timeout=request_timeout,
        )
        response.raise_for_status()
        rows = response.json()
        if not isinstance(rows, list):
            raise ValueError(f"Expected a JSON array of leads, got {type(rows).__name__}")
        return rows


class SqlLeadSource(LeadSource):
    """Same paging contract over the local SQLAlchemy `leads` table."""

    name = 'sql'

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def _scope(self):
        if self.session_factory is None:
            return database.session_scope()
        return closing(self.session_factory())

    def fetch_page(self, lead_filter, offset, limit, timeout=None):
        from leadintel.models.lead import Lead

        stmt = select(Lead)
        for column, value in lead_filter.equality_filters():
            stmt = stmt.where(getattr(Lead, column) == value)
        if lead_filter.service_type_not_null:
            stmt = stmt.where(Lead.service_type.isnot(None))
        for column in lead_filter.order_columns():
            attr = getattr(Lead, column)
            stmt = stmt.order_by(attr.desc() if lead_filter.descending else attr.asc())
        stmt = stmt.offset(offset).limit(limit)

        with self._scope() as session:
            leads = session.execute(stmt).scalars().all()
            return [lead.to_dict(columns=lead_filter.columns) for lead in leads]


# ── Paging ──────────────────────────────────────────────────────────────────

def _fetch_with_retry(source, lead_filter, offset, limit, retry_count, retry_backoff,
                      deadline, clock, sleep, pages_fetched, rows_fetched):
    attempt = 0
    while True:
        timeout = None
        if deadline is not None:
            timeout = deadline - clock()
        try:
            return source.fetch_page(lead_filter, offset, limit, timeout=timeout)
        except Exception as e:
            if deadline is not None and clock() >= deadline:
                raise DataSourceTimeout(
                    f"Time budget exhausted fetching lead page at offset {offset}: {e}",
                    pages_fetched=pages_fetched, rows_fetched=rows_fetched,
                ) from e
            if attempt >= retry_count:
                raise DataSourceError(
                    f"Lead page at offset {offset} failed after {attempt + 1} attempt(s): {e}",
                    pages_fetched=pages_fetched, rows_fetched=rows_fetched,
                ) from e

            delay = retry_backoff * (2 ** attempt)
            if deadline is not None and clock() + delay >= deadline:
                raise DataSourceTimeout(
                    f"Time budget exhausted while retrying lead page at offset {offset}: {e}",
                    pages_fetched=pages_fetched, rows_fetched=rows_fetched,
                ) from e

            attempt += 1
            logger.warning(
                "Lead page at offset %d failed (%s), retry %d/%d in %.1fs",
                offset, e, attempt, retry_count, delay,
            )
            sleep(delay)


def iter_lead_pages(source: LeadSource, lead_filter: Optional[LeadFilter] = None,
                    page_size: int = config.INGEST_PAGE_SIZE,
                    retry_count: int = config.INGEST_RETRY_COUNT,
                    retry_backoff: float = config.INGEST_RETRY_BACKOFF,
                    timeout_seconds: Optional[float] = config.INGEST_TIMEOUT_SECONDS,
                    cancel_event=None, clock=time.monotonic, sleep=time.sleep) -> Iterator[List[dict]]:
    """
    Yield successive non-empty pages until the store returns a short page.

    The time budget and cancel_event are checked at every page boundary.
    Any failure raises a DataSourceError; callers should discard what they
    already folded in.
    """
    if page_size <= 0:
        raise ValueError(f"page_size must be positive, got {page_size}")

    lead_filter = lead_filter or LeadFilter()
    deadline = clock() + timeout_seconds if timeout_seconds else None
    offset = 0
    pages_fetched = 0
    rows_fetched = 0

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise FetchCancelled(
                f"Lead fetch cancelled after {pages_fetched} page(s)",
                pages_fetched=pages_fetched, rows_fetched=rows_fetched,
            )
        if deadline is not None and clock() >= deadline:
            raise DataSourceTimeout(
                f"Lead fetch exceeded {timeout_seconds}s after {pages_fetched} page(s)",
                pages_fetched=pages_fetched, rows_fetched=rows_fetched,
            )

        page = _fetch_with_retry(
            source, lead_filter, offset, page_size, retry_count, retry_backoff,
            deadline, clock, sleep, pages_fetched, rows_fetched,
        )
        pages_fetched += 1
        rows_fetched += len(page)
        logger.debug("Fetched page %d (%d rows, %d total)", pages_fetched, len(page), rows_fetched)

        if page:
            yield page
        if len(page) < page_size:
            break
        offset += page_size

    logger.info(
        "Lead fetch complete: %d rows in %d page(s) from %s", rows_fetched, pages_fetched, source.name,
        extra={'source': source.name, 'pages_fetched': pages_fetched, 'rows_fetched': rows_fetched},
    )


def fetch_leads(source: LeadSource, lead_filter: Optional[LeadFilter] = None, **kwargs) -> List[dict]:
    """Every lead matching the filter, in the filter's stable order."""
    leads = []
    for page in iter_lead_pages(source, lead_filter, **kwargs):
        leads.extend(page)
    return leads


def get_lead_source() -> LeadSource:
    """Hosted store when its credentials are configured, local SQL otherwise."""
    if config.SUPABASE_URL and config.SUPABASE_KEY:
        return SupabaseLeadSource(config.SUPABASE_URL, config.SUPABASE_KEY, table=config.LEADS_TABLE)
    logger.info("SUPABASE_URL/SUPABASE_KEY not set, reading leads from %s", config.DATABASE_URL.split('://')[0])
    return SqlLeadSource()
