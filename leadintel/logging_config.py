"""
Structured logging configuration.

Called once from create_app() and by scripts/seed_leads.py. Text or
single-line JSON to stderr; level and format come from LOG_LEVEL / LOG_FORMAT
unless passed explicitly.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

# Attributes every LogRecord has; anything else was passed through `extra=`.
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}

# Third-party loggers that are noisy at INFO
_NOISY_LOGGERS = [
    'urllib3',
    'openai',
    'httpcore',
    'httpx',
    'sqlalchemy.engine',
]


class JSONFormatter(logging.Formatter):
    """Single-line JSON for log aggregators. `extra=` fields become top-level keys."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in entry:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _resolve_level(name):
    level = getattr(logging, str(name).upper(), None)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(app=None, level=None, fmt=None):
    """
    Point the root logger at stderr and quiet chatty libraries.

    Safe to call repeatedly; existing root handlers are replaced. When a Flask
    app is given its own logger defers to the root handler.
    """
    level = _resolve_level(level or os.getenv('LOG_LEVEL', 'INFO'))
    fmt = (fmt or os.getenv('LOG_FORMAT', 'text')).lower()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if fmt == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.handlers.clear()
        app.logger.propagate = True
