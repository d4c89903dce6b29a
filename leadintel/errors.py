"""
Error kinds surfaced by an analysis run.

Configuration and data-source errors are fatal to the run and always reach the
caller. Row-level anomalies are never raised; the aggregator tallies them.
"""


class ConfigurationError(ValueError):
    """Invalid taxonomy or thresholds. Raised before any data is fetched."""


class DataSourceError(Exception):
    """A lead page could not be fetched. Partial results are discarded."""

    kind = 'data_source_error'

    def __init__(self, message, pages_fetched=0, rows_fetched=0):
        self.pages_fetched = pages_fetched
        self.rows_fetched = rows_fetched
        super().__init__(message)

    def to_dict(self):
        return {
            'error_kind': self.kind,
            'message': str(self),
            'pages_fetched': self.pages_fetched,
            'rows_fetched': self.rows_fetched,
        }


class DataSourceTimeout(DataSourceError):
    """Retrieval exceeded the configured wall-clock budget."""

    kind = 'data_source_timeout'


class FetchCancelled(DataSourceError):
    """The caller cancelled a multi-page fetch between pages."""

    kind = 'fetch_cancelled'
