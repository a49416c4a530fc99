"""Schema detection for tabular sources.

Assigns one SQL type per column from a bounded sample of raw text rows.
Inference is a pure function of the sample: rows beyond the sample bound are
never examined, which keeps detection cheap on multi-gigabyte files at the
cost of type errors surfacing later, at load time.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from itertools import islice
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy import types as sqltypes

from dwingest.config.ingest_config import IngestConfig
from dwingest.errors import InvalidHeader
from dwingest.utils.db_client import DestinationName

log = logging.getLogger(__name__)

DECIMAL = "decimal"
DATETIME = "datetime"
TEXT = "text"

# Plain signed decimal literal: no exponent, no thousands separators
_DECIMAL_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")

# Accepted date/time layouts, tried in order. The pattern fixes the digit
# widths of the layout; strptime then checks the calendar. Only the
# ``stamp`` group (or the whole value) is handed to strptime, since %f
# takes at most six fractional digits.
DATETIME_FORMATS = (
    (r"\d{4}-\d{2}-\d{2}", "%Y-%m-%d"),                                   # yyyy-MM-dd
    (r"\d{2}/\d{2}/\d{4}", "%m/%d/%Y"),                                   # MM/dd/yyyy
    (r"\d{1,2}/\d{1,2}/\d{4}", "%m/%d/%Y"),                               # M/d/yyyy
    (r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}", "%Y-%m-%d %H:%M:%S"),        # yyyy-MM-dd HH:mm:ss
    (r"\d{2}/\d{2}/\d{4} \d{2}:\d{2}:\d{2}", "%m/%d/%Y %H:%M:%S"),        # MM/dd/yyyy HH:mm:ss
    (r"\d{1,2}/\d{1,2}/\d{4} \d{1,2}:\d{2}:\d{2} [AaPp][Mm]", "%m/%d/%Y %I:%M:%S %p"),  # M/d/yyyy h:mm:ss tt
    (r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}", "%Y-%m-%dT%H:%M:%S"),
    (r"(?P<stamp>\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})\.\d{1,7}", "%Y-%m-%d %H:%M:%S"),
)
_DATETIME_LAYOUTS = [(re.compile(pattern), fmt) for pattern, fmt in DATETIME_FORMATS]


@dataclass(frozen=True)
class ColumnType:
    """Inferred storage type of one column."""

    kind: str
    precision: Optional[int] = None
    scale: Optional[int] = None
    # Text only; None means max
    length: Optional[int] = None

    def __str__(self) -> str:
        if self.kind == DECIMAL:
            return f"decimal({self.precision},{self.scale})"
        if self.kind == TEXT:
            return f"text({self.length if self.length is not None else 'max'})"
        return self.kind

    def to_sqlalchemy(self) -> sqltypes.TypeEngine:
        if self.kind == DECIMAL:
            return sqltypes.DECIMAL(self.precision, self.scale)
        if self.kind == DATETIME:
            return sqltypes.DATETIME()
        return sqltypes.VARCHAR(self.length)


@dataclass(frozen=True)
class ColumnProfile:
    """What the sample revealed about one source column."""

    ordinal: int
    name: str
    raw_header: str
    column_type: ColumnType
    nullable: bool
    max_length: int = 0


@dataclass(frozen=True)
class TargetTableSchema:
    """Ordered destination columns plus the destination identifier.

    Column order is the source column order; rows bind to it by position.
    """

    destination: DestinationName
    columns: tuple
    created: bool = False

    @property
    def column_names(self) -> List[str]:
        return [name for name, _ in self.columns]

    def describe(self) -> str:
        return ", ".join(f"{name}: {sql_type}" for name, sql_type in self.columns)


def is_decimal(value: str) -> bool:
    """Return True if ``value`` parses as a plain decimal number."""
    return _DECIMAL_PATTERN.fullmatch(value.strip()) is not None


def is_datetime(value: str) -> bool:
    """Return True if ``value`` exactly matches an accepted date/time layout."""
    text = value.strip()
    for pattern, fmt in _DATETIME_LAYOUTS:
        match = pattern.fullmatch(text)
        if match is None:
            continue
        try:
            datetime.strptime(match.groupdict().get("stamp", text), fmt)
        except ValueError:
            continue
        return True
    return False


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def infer_column_type(values: Iterable[Optional[str]], config: IngestConfig) -> ColumnType:
    """Infer the type of one column from its sampled values.

    A value that fails the decimal test clears the numeric candidate, one
    that fails every date layout clears the temporal candidate; blanks clear
    neither. Numeric wins over temporal, temporal over text, so an all-blank
    column is decimal. Integers are never inferred: decimal cannot truncate.
    """
    numeric = True
    temporal = True
    for value in values:
        if _is_blank(value):
            continue
        if numeric and not is_decimal(value):
            numeric = False
        if temporal and not is_datetime(value):
            temporal = False
        if not numeric and not temporal:
            break

    if numeric:
        return ColumnType(DECIMAL, precision=config.decimal_precision, scale=config.decimal_scale)
    if temporal:
        return ColumnType(DATETIME)
    return ColumnType(TEXT, length=config.varchar_length)


def infer_column_types(
    headers: Sequence[str],
    sample_rows: Iterable[Sequence[Optional[str]]],
    config: IngestConfig,
    raw_headers: Optional[Sequence[str]] = None,
) -> List[ColumnProfile]:
    """Infer one ColumnProfile per column from at most ``sample_size`` rows.

    Args:
        headers: Cleaned column headers, in source order.
        sample_rows: Rows of raw text values; only the first
            ``config.sample_size`` are consumed.
        config: Run configuration (sample bound, decimal and text sizing).
        raw_headers: Header cells before cleaning; defaults to ``headers``.

    Returns:
        Profiles in source column order.

    Raises:
        InvalidHeader: If two headers are equal after cleaning
            (case-insensitively, as SQL Server compares column names).
    """
    seen = {}
    for ordinal, name in enumerate(headers, start=1):
        key = name.lower()
        if key in seen:
            raise InvalidHeader(
                f"Column {ordinal} header '{name}' duplicates column {seen[key]}"
            )
        seen[key] = ordinal

    sample = [tuple(row) for row in islice(sample_rows, config.sample_size)]
    profiles: List[ColumnProfile] = []
    for index, name in enumerate(headers):
        values = [row[index] if index < len(row) else None for row in sample]
        column_type = infer_column_type(values, config)
        lengths = [len(v) for v in values if not _is_blank(v)]
        max_length = max(lengths) if lengths else 0
        if (
            column_type.kind == TEXT
            and column_type.length is not None
            and max_length > column_type.length
        ):
            log.warning(
                "Column '%s' has sampled values of %d characters, longer than text(%d)",
                name, max_length, column_type.length,
            )
        profiles.append(ColumnProfile(
            ordinal=index + 1,
            name=name,
            raw_header=raw_headers[index] if raw_headers else name,
            column_type=column_type,
            nullable=len(lengths) < len(values),
            max_length=max_length,
        ))

    log.debug("Inferred %d column types from %d sample rows", len(profiles), len(sample))
    return profiles


def detect_source_schema(reader, config: IngestConfig) -> List[ColumnProfile]:
    """Detect column profiles for a source from its leading rows.

    Args:
        reader: A ``RowStreamReader`` for the source.
        config: Run configuration.

    Returns:
        Profiles in source column order.
    """
    headers = reader.headers
    sample = reader.preview(config.sample_size)
    profiles = infer_column_types(headers, sample, config, raw_headers=reader.raw_headers)
    log.info(
        "Detected schema for '%s': %d columns from %d sample rows (%s)",
        reader.source.path,
        len(profiles),
        len(sample),
        ", ".join(f"{p.name}: {p.column_type}" for p in profiles),
    )
    return profiles


def build_target_schema(
    destination: DestinationName,
    profiles: Sequence[ColumnProfile],
) -> TargetTableSchema:
    """Turn column profiles into the candidate destination schema."""
    columns = tuple((p.name, p.column_type.to_sqlalchemy()) for p in profiles)
    return TargetTableSchema(destination=destination, columns=columns)
