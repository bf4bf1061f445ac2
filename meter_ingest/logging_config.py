"""
Structured JSON logging for the meter ingest service.

Everything the service reports goes through the root logger as one JSON
line per record (``timestamp``, ``level``, ``logger``, ``message``, plus
``exc_info`` when an exception is attached):

- startup progress and fatal startup failures (``meter_ingest.main``,
  ``meter_ingest.db.store``), including each failed connection attempt;
- every stored or dropped feed message and broker link changes
  (``meter_ingest.feed.subscriber``);
- API store failures with full tracebacks (``meter_ingest.api``);
- uvicorn's own server and access logs, which propagate here because the
  server is started with ``log_config=None``.

Library loggers that narrate routine internals (the SQLAlchemy engine,
the aiomqtt client, asyncio) are held at WARNING unless the service runs
at DEBUG.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-001)
- 2026-10-16: Include exception text, accept level names (STORY-009)
- 2026-10-18: Quiet library loggers below DEBUG (STORY-011)

TODO:
- None
"""

import json
import logging
from datetime import UTC, datetime

_LIBRARY_LOGGERS = ("sqlalchemy.engine", "aiomqtt", "asyncio")


class JSONFormatter(logging.Formatter):
    """Logging formatter that outputs a single JSON object per line.

    Fields emitted:
    - ``timestamp``: ISO-8601 UTC timestamp.
    - ``level``: Log level name (INFO, WARNING, ERROR, ...).
    - ``logger``: Logger name.
    - ``message``: Formatted log message.
    - ``exc_info``: Formatted traceback, only when the record carries one.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format *record* as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            A single-line JSON string.
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger with structured JSON output.

    Removes any existing handlers on the root logger and installs
    a single ``StreamHandler`` using :class:`JSONFormatter`. Library
    loggers are capped at WARNING unless *level* is DEBUG.

    Args:
        level: Logging level (int or name such as ``"DEBUG"``) for the
            root logger. Defaults to ``logging.INFO``.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicate output.
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    library_level = logging.NOTSET if level <= logging.DEBUG else logging.WARNING
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
