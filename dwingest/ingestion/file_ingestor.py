"""File ingestion into a destination table.

Runs the full pipeline for one source file: read headers, infer column types
from the leading rows, reconcile the destination table, and stream every row
into it in bounded batches. Phases run strictly one after another.
"""

import logging
from typing import Optional, Union

from sqlalchemy.engine import Engine

from dwingest.config.ingest_config import IngestConfig
from dwingest.errors import DestinationUnreachable, IngestionError
from dwingest.ingestion.batch_loader import BatchLoader, LoadResult, ProgressCallback
from dwingest.ingestion.row_reader import RowStreamReader, SourceFile
from dwingest.ingestion.schema_detector import build_target_schema, detect_source_schema
from dwingest.ingestion.schema_reconciler import SchemaReconciler
from dwingest.utils.db_client import (
    DestinationName,
    build_connection_url,
    get_engine,
    parse_destination,
)

log = logging.getLogger(__name__)


def ingest_file(
    source_path: str,
    destination: Union[str, DestinationName],
    config: IngestConfig,
    engine: Optional[Engine] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> LoadResult:
    """Ingest a single CSV or spreadsheet file into a destination table.

    Args:
        source_path: Path to the source file.
        destination: ``server.database.schema.table`` (or a subset) or a
            parsed DestinationName.
        config: Run configuration.
        engine: Destination engine; built from the destination name and
            ``config.destination`` when omitted.
        progress_callback: Called as ``(rows_written, batch_index)`` after
            each committed batch.

    Returns:
        The finalized LoadResult. Errors from any phase are recorded on it
        rather than raised.
    """
    if isinstance(destination, str):
        destination = parse_destination(destination)
    result = LoadResult(destination=str(destination))
    log.info("Ingesting '%s' into %s", source_path, destination)

    owns_engine = engine is None
    try:
        reader = RowStreamReader(SourceFile.from_path(source_path, config), config)
        profiles = detect_source_schema(reader, config)
        candidate = build_target_schema(destination, profiles)

        if engine is None:
            try:
                engine = get_engine(build_connection_url(destination, config.destination))
            except (ValueError, ImportError) as exc:
                raise DestinationUnreachable(str(exc)) from exc

        schema = SchemaReconciler(engine, config).reconcile(candidate)
    except IngestionError as exc:
        log.error("Ingestion of '%s' failed before loading: %s", source_path, exc)
        if owns_engine and engine is not None:
            engine.dispose()
        return result.fail(exc)

    try:
        return BatchLoader(engine, schema, config, progress_callback).load(reader.rows(), result)
    finally:
        if owns_engine:
            engine.dispose()
