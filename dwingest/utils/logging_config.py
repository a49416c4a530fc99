"""Logging configuration for ingestion runs.

Console output is plain text or JSON lines; an optional run log appends
plain timestamped lines to a file so scheduled runs leave a trail.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

RUN_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(message)s"

_RUN_FIELDS = ("source", "destination")


class JSONFormatter(logging.Formatter):
    """Log formatter that outputs JSON-structured log lines."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in _RUN_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """Configure logging for an ingestion run.

    Safe to call more than once: handlers installed by an earlier call are
    replaced.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional path of the append-only run log.
        json_format: Emit JSON lines on the console instead of plain text.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        if getattr(handler, "_dwingest", False):
            root_logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(CONSOLE_FORMAT))
    console_handler._dwingest = True
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(RUN_LOG_FORMAT))
        file_handler._dwingest = True
        root_logger.addHandler(file_handler)


@contextmanager
def run_logging_context(source: str, destination: str):
    """Context manager that adds run context to all log records.

    Args:
        source: Source file path.
        destination: Destination table name.

    Usage:
        with run_logging_context("orders.csv", "srv.db.dbo.orders"):
            log.info("This record carries source and destination")
    """
    old_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        record = old_factory(*args, **kwargs)
        record.source = source
        record.destination = destination
        return record

    logging.setLogRecordFactory(record_factory)
    try:
        yield
    finally:
        logging.setLogRecordFactory(old_factory)
