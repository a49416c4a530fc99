"""Bounded-memory batch loading into the destination table.

Rows are buffered into a fixed-capacity batch; each full batch is written
in one bulk round trip and committed on its own, so a failure leaves every
earlier batch in place. Values are passed through positionally with no
per-row type validation: the destination reports conversion errors.
"""

import logging
import time
from contextlib import closing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from dwingest.config.ingest_config import IngestConfig
from dwingest.errors import BatchWriteFailed, IngestionError
from dwingest.ingestion.schema_detector import TargetTableSchema
from dwingest.ingestion.schema_reconciler import to_table
from dwingest.utils.db_client import bulk_write, connect

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class LoadStatus(Enum):
    """Terminal (and in-flight) states of a load."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially-failed"
    FAILED = "failed"


@dataclass
class LoadResult:
    """Outcome of one ingestion run."""

    destination: str = ""
    rows_written: int = 0
    batches: int = 0
    elapsed_seconds: float = 0.0
    status: LoadStatus = LoadStatus.RUNNING
    error: Optional[IngestionError] = None
    _started: float = field(default_factory=time.monotonic, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.status is LoadStatus.SUCCEEDED

    def record_batch(self, row_count: int) -> None:
        self.rows_written += row_count
        self.batches += 1
        self.elapsed_seconds = time.monotonic() - self._started

    def finish(self) -> "LoadResult":
        self.status = LoadStatus.SUCCEEDED
        self.elapsed_seconds = time.monotonic() - self._started
        return self

    def fail(self, error: IngestionError, status: LoadStatus = LoadStatus.FAILED) -> "LoadResult":
        error.rows_committed = self.rows_written
        self.error = error
        self.status = status
        self.elapsed_seconds = time.monotonic() - self._started
        return self

    def as_dict(self) -> Dict[str, Any]:
        result = {
            "destination": self.destination,
            "status": self.status.value,
            "rows": self.rows_written,
            "batches": self.batches,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }
        if self.error is not None:
            result["error"] = str(self.error)
            result["component"] = self.error.component
        return result


class Batch:
    """Fixed-capacity row buffer."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("Batch capacity must be at least 1")
        self.capacity = capacity
        self._rows: List[tuple] = []

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def is_full(self) -> bool:
        return len(self._rows) >= self.capacity

    def append(self, row: tuple) -> None:
        if self.is_full:
            raise OverflowError(f"Batch is full ({self.capacity} rows)")
        self._rows.append(row)

    def drain(self) -> List[tuple]:
        """Hand back the buffered rows and start empty."""
        rows, self._rows = self._rows, []
        return rows


def log_progress(rows_written: int, batch_index: int) -> None:
    log.info("Batch %d committed, %d rows written so far", batch_index, rows_written)


def _stream(rows: Iterable[tuple]) -> Iterator[tuple]:
    # Closing this generator also closes `rows` when it is a generator
    yield from rows


class BatchLoader:
    """Write a row stream into a finalized table in bounded batches.

    Args:
        engine: Destination engine.
        schema: Finalized schema from the reconciler.
        config: Run configuration; ``batch_size`` caps each batch and
            ``timeout_seconds`` bounds each write (0 = unbounded).
        progress_callback: Called as ``(rows_written, batch_index)`` after
            every committed batch.
    """

    def __init__(
        self,
        engine: Engine,
        schema: TargetTableSchema,
        config: IngestConfig,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.engine = engine
        self.schema = schema
        self.batch_size = config.batch_size
        self.timeout_seconds = config.timeout_seconds
        self.progress_callback = progress_callback
        self.table = to_table(schema)

    def load(self, rows: Iterable[tuple], result: Optional[LoadResult] = None) -> LoadResult:
        """Consume ``rows`` and write them all.

        Never raises for ingestion errors: the returned result carries the
        status and the error. A failed write ends the run as ``failed``; a
        source error after at least one committed batch ends it as
        ``partially-failed``.

        Args:
            rows: Positional row tuples in schema column order. The stream
                is closed when loading ends, whether or not it was drained.
            result: Result to update; a new one is created if omitted.

        Returns:
            The finalized LoadResult.
        """
        result = result or LoadResult(destination=str(self.schema.destination))
        batch = Batch(self.batch_size)

        try:
            with closing(_stream(rows)) as stream, connect(self.engine) as conn:
                for row in stream:
                    batch.append(row)
                    if batch.is_full:
                        self._flush(conn, batch, result)
                if len(batch):
                    self._flush(conn, batch, result)
        except BatchWriteFailed as exc:
            log.error("%s; %d rows committed in %d batches", exc, result.rows_written, result.batches)
            return result.fail(exc)
        except IngestionError as exc:
            status = LoadStatus.PARTIALLY_FAILED if result.rows_written else LoadStatus.FAILED
            log.error("%s; %d rows committed in %d batches", exc, result.rows_written, result.batches)
            return result.fail(exc, status)

        result.finish()
        log.info(
            "Loaded %d rows into %s in %d batches (%.1fs)",
            result.rows_written, self.schema.destination, result.batches, result.elapsed_seconds,
        )
        return result

    def _flush(self, conn, batch: Batch, result: LoadResult) -> None:
        batch_index = result.batches + 1
        rows = batch.drain()
        try:
            bulk_write(conn, self.table, rows, self.timeout_seconds)
            conn.commit()
        except SQLAlchemyError as exc:
            conn.rollback()
            raise BatchWriteFailed(
                f"Batch {batch_index} ({len(rows)} rows) rejected by {self.schema.destination}: {exc}"
            ) from exc

        result.record_batch(len(rows))
        log_progress(result.rows_written, batch_index)
        if self.progress_callback is not None:
            self.progress_callback(result.rows_written, batch_index)
