"""
Logging setup for the scoring service.

configure_logging() runs once from create_app(). LOG_LEVEL picks the level
(INFO when unset or unknown); LOG_FORMAT switches between plain text and
one-JSON-object-per-line output for log shippers.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry)


# Libraries that chatter at INFO (SQL echo, request lines, migrations)
_NOISY_LOGGERS = [
    'sqlalchemy.engine',
    'sqlalchemy.pool',
    'werkzeug',
    'alembic',
    'urllib3',
]


def configure_logging(app=None):
    """
    Install one stderr handler on the root logger.

    Reads LOG_LEVEL and LOG_FORMAT ("text" or "json") at call time, so
    tests can flip them with patch.dict(os.environ).
    """
    level = getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if os.getenv('LOG_FORMAT', 'text').lower() == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))

    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.propagate = True
