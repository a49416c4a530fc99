"""Ingestion components for loading tabular files into SQL Server.

Modules:
    row_reader: Lazy, restartable row streams from CSV and spreadsheet files.
    schema_detector: Infer column types from a bounded sample of rows.
    schema_reconciler: Create, recreate, or reuse the destination table.
    batch_loader: Write rows in bounded, individually committed batches.
    file_ingestor: Run the whole pipeline for one source file.
"""

from dwingest.errors import (
    BatchWriteFailed,
    DdlRejected,
    DestinationUnreachable,
    EmptySource,
    IngestionError,
    InvalidHeader,
    MalformedSource,
    SourceUnavailable,
)
from .row_reader import RowStreamReader, SourceFile, SourceFormat, clean_header
from .schema_detector import (
    ColumnProfile,
    ColumnType,
    TargetTableSchema,
    build_target_schema,
    detect_source_schema,
    infer_column_types,
)
from .schema_reconciler import ReconcileState, SchemaReconciler
from .batch_loader import Batch, BatchLoader, LoadResult, LoadStatus
from .file_ingestor import ingest_file

__all__ = [
    # Errors
    "IngestionError",
    "SourceUnavailable",
    "EmptySource",
    "MalformedSource",
    "InvalidHeader",
    "DdlRejected",
    "BatchWriteFailed",
    "DestinationUnreachable",
    # Row stream
    "RowStreamReader",
    "SourceFile",
    "SourceFormat",
    "clean_header",
    # Type inference
    "ColumnProfile",
    "ColumnType",
    "TargetTableSchema",
    "build_target_schema",
    "detect_source_schema",
    "infer_column_types",
    # Reconciliation
    "ReconcileState",
    "SchemaReconciler",
    # Loading
    "Batch",
    "BatchLoader",
    "LoadResult",
    "LoadStatus",
    "ingest_file",
]
