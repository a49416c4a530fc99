"""Row stream reader for delimited text and spreadsheet sources.

Reduces a source file to a lazy sequence of positional row tuples. Every
call to ``rows()`` starts a fresh pass from the beginning of the file and
releases its read handle when the pass ends, fails, or is abandoned.
"""

import logging
import os
from contextlib import closing
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from itertools import islice
from typing import Any, Iterator, List, Optional, Tuple
from zipfile import BadZipFile

import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from dwingest.config.ingest_config import IngestConfig
from dwingest.errors import EmptySource, MalformedSource, SourceUnavailable

log = logging.getLogger(__name__)

Row = Tuple[Optional[str], ...]

# A UTF-8 byte-order mark, as decoded and as mis-decoded through cp1252/latin-1
_BOM_MARKERS = ("﻿", "ï»¿")

_SPREADSHEET_SUFFIXES = (".xlsx", ".xlsm")


class SourceFormat(Enum):
    """Source container formats."""

    DELIMITED_TEXT = "delimited-text"
    SPREADSHEET_SHEET = "spreadsheet-sheet"


@dataclass(frozen=True)
class SourceFile:
    """An on-disk source file. Never written to."""

    path: str
    format: SourceFormat = SourceFormat.DELIMITED_TEXT
    encoding: str = "utf-8-sig"
    delimiter: str = ","
    sheet_name: Optional[str] = None

    @classmethod
    def from_path(cls, path: str, config: IngestConfig) -> "SourceFile":
        """Build a SourceFile, detecting the format from the file suffix."""
        suffix = os.path.splitext(path)[1].lower()
        fmt = SourceFormat.SPREADSHEET_SHEET if suffix in _SPREADSHEET_SUFFIXES else SourceFormat.DELIMITED_TEXT
        return cls(
            path=path,
            format=fmt,
            encoding=config.encoding,
            delimiter=config.delimiter,
            sheet_name=config.sheet_name,
        )


def clean_header(raw: Any, ordinal: int) -> str:
    """Strip byte-order-mark noise and whitespace from a header cell.

    Args:
        raw: Header cell value as read.
        ordinal: 1-based column position, used to name blank headers.

    Returns:
        Cleaned header text.
    """
    text = "" if raw is None else str(raw)
    for marker in _BOM_MARKERS:
        if text.startswith(marker):
            text = text[len(marker):]
    text = text.strip()
    return text or f"Column{ordinal}"


def _field(value: Any) -> Optional[str]:
    """Normalize a delimited-text field; blanks become null."""
    if not isinstance(value, str):
        return None
    return value if value.strip() else None


def _cell_text(value: Any) -> Optional[str]:
    """Render a spreadsheet cell as the text a delimited export would carry."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.strftime("%Y-%m-%d")
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return _field(str(value))


class RowStreamReader:
    """Lazy, restartable reader of one source file.

    Args:
        source: The file to read.
        config: Run configuration; ``batch_size`` bounds the rows held in
            memory per parse chunk and ``skip_bad_lines`` controls handling
            of malformed delimited lines.
    """

    def __init__(self, source: SourceFile, config: IngestConfig):
        self.source = source
        self.chunk_size = config.batch_size
        self.skip_bad_lines = config.skip_bad_lines
        self._headers: Optional[List[str]] = None
        self._raw_headers: List[str] = []

    @property
    def headers(self) -> List[str]:
        """Cleaned column headers, read on first access.

        Raises:
            SourceUnavailable: If the file cannot be opened.
            EmptySource: If no header row or zero columns are found.
        """
        if self._headers is None:
            self._load_headers()
        return self._headers

    @property
    def raw_headers(self) -> List[str]:
        """Header cells exactly as read, before cleaning."""
        if self._headers is None:
            self._load_headers()
        return self._raw_headers

    def _load_headers(self) -> None:
        with closing(self._raw_rows()) as raw:
            header = next(raw, None)
        if not header:
            raise EmptySource(f"No header row found in '{self.source.path}'")
        self._raw_headers = ["" if h is None else str(h) for h in header]
        self._headers = [clean_header(h, i) for i, h in enumerate(header, start=1)]
        log.info("Read %d column headers from '%s'", len(self._headers), self.source.path)

    def rows(self) -> Iterator[Row]:
        """Yield data rows from a fresh pass over the file.

        Every row has exactly ``len(headers)`` fields.
        """
        width = len(self.headers)
        with closing(self._raw_rows()) as raw:
            next(raw, None)
            for line_no, values in enumerate(raw, start=2):
                if len(values) < width:
                    values = tuple(values) + (None,) * (width - len(values))
                elif len(values) > width:
                    if any(v is not None for v in values[width:]):
                        raise MalformedSource(
                            f"Row {line_no} of '{self.source.path}' has more fields "
                            f"than the {width} header columns"
                        )
                    values = values[:width]
                yield tuple(values)

    __iter__ = rows

    def preview(self, limit: int) -> List[Row]:
        """Return the first ``limit`` data rows and release the file."""
        with closing(self.rows()) as rows:
            return list(islice(rows, limit))

    def _raw_rows(self) -> Iterator[Tuple[Optional[str], ...]]:
        if not os.path.isfile(self.source.path):
            raise SourceUnavailable(f"Source file '{self.source.path}' does not exist")
        if self.source.format is SourceFormat.SPREADSHEET_SHEET:
            return self._sheet_rows()
        return self._delimited_rows()

    def _delimited_rows(self) -> Iterator[Tuple[Optional[str], ...]]:
        try:
            chunks = pd.read_csv(
                self.source.path,
                sep=self.source.delimiter,
                header=None,
                dtype=str,
                na_filter=False,
                encoding=self.source.encoding,
                encoding_errors="replace",
                **self._bad_line_options(),
                chunksize=self.chunk_size,
            )
        except pd.errors.EmptyDataError as exc:
            raise EmptySource(f"No columns found in '{self.source.path}'") from exc
        except (OSError, LookupError) as exc:
            raise SourceUnavailable(f"Cannot open '{self.source.path}': {exc}") from exc

        with chunks:
            try:
                for chunk in chunks:
                    for values in chunk.itertuples(index=False, name=None):
                        yield tuple(_field(v) for v in values)
            except pd.errors.ParserError as exc:
                raise MalformedSource(f"Cannot parse '{self.source.path}': {exc}") from exc
            except OSError as exc:
                raise SourceUnavailable(f"Error reading '{self.source.path}': {exc}") from exc

    def _bad_line_options(self) -> dict:
        if not self.skip_bad_lines:
            return {"on_bad_lines": "error"}
        # Callable handlers require the python parser engine
        return {"on_bad_lines": self._skip_bad_line, "engine": "python"}

    def _skip_bad_line(self, fields: List[str]) -> None:
        log.warning(
            "Skipping malformed line in '%s' (%d fields): %s",
            self.source.path, len(fields), self.source.delimiter.join(fields)[:200],
        )
        return None

    def _sheet_rows(self) -> Iterator[Tuple[Optional[str], ...]]:
        try:
            workbook = load_workbook(self.source.path, read_only=True, data_only=True)
        except (OSError, InvalidFileException, BadZipFile, KeyError) as exc:
            raise SourceUnavailable(f"Cannot open workbook '{self.source.path}': {exc}") from exc

        try:
            if self.source.sheet_name is None:
                sheet = workbook.active
            elif self.source.sheet_name in workbook.sheetnames:
                sheet = workbook[self.source.sheet_name]
            else:
                raise SourceUnavailable(
                    f"Sheet '{self.source.sheet_name}' not found in '{self.source.path}'"
                )

            width: Optional[int] = None
            for cells in sheet.iter_rows(values_only=True):
                values = tuple(_cell_text(c) for c in cells)
                if all(v is None for v in values):
                    continue
                if width is None:
                    # Header row: trailing empty cells are formatting, not columns
                    width = len(values)
                    while values[width - 1] is None:
                        width -= 1
                    values = values[:width]
                yield values
        finally:
            workbook.close()
