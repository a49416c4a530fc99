"""Pytest configuration and shared fixtures for ingestion tests."""

import logging
import os
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Ensure the package is importable without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dwingest.config.ingest_config import DestinationConfig, IngestConfig  # noqa: E402
from dwingest.utils.db_client import DestinationName  # noqa: E402


@pytest.fixture
def config():
    """Default run configuration with no environment-derived connection URL."""
    return IngestConfig(destination=DestinationConfig(connection_url="sqlite://"))


@pytest.fixture
def sqlite_engine():
    """In-memory SQLite engine shared across connections of one test."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    engine.dispose()


@pytest.fixture
def destination():
    return DestinationName(table="orders", schema="main")


@pytest.fixture
def write_csv(tmp_path):
    """Write text (or bytes) to a CSV file under tmp_path and return its path."""

    def _write(content, name="source.csv"):
        path = tmp_path / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8", newline="")
        return str(path)

    return _write


@pytest.fixture
def sample_csv_file(write_csv):
    """A small CSV with a decimal, a date, and a text column."""
    return write_csv(
        "Amount,SignupDate,Notes\n"
        "19.99,2024-03-01,ok\n"
        ",2024-03-02,\n"
    )


@pytest.fixture
def sample_xlsx_file(tmp_path):
    """A workbook with a data sheet and an empty sheet."""
    from datetime import datetime

    from openpyxl import Workbook

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Orders"
    sheet.append(["OrderId", "OrderDate", "Customer", None])
    sheet.append([1, datetime(2024, 1, 15), "Alice"])
    sheet.append([2.5, datetime(2024, 1, 16, 13, 30, 0), None])
    sheet.append([None, None, None])
    sheet.append([3, datetime(2024, 1, 17), "Carol"])
    workbook.create_sheet("Empty")
    path = tmp_path / "orders.xlsx"
    workbook.save(path)
    return str(path)


@pytest.fixture
def restore_logging():
    """Put the root logger back the way the test found it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
