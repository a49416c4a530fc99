"""Shared utility functions for ingestion runs."""

from dwingest.utils.db_client import (
    DestinationName,
    build_connection_url,
    bulk_write,
    connect,
    get_engine,
    parse_destination,
    table_exists,
)
from dwingest.utils.logging_config import run_logging_context, setup_logging

__all__ = [
    "DestinationName",
    "build_connection_url",
    "bulk_write",
    "connect",
    "get_engine",
    "parse_destination",
    "table_exists",
    "run_logging_context",
    "setup_logging",
]
