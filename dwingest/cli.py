"""Command-line entry point for file ingestion.

Usage:
    ingest --source data/orders.csv --destination SQL01.Sales.dbo.Orders
    ingest --source export.xlsx --sheet Q1 --destination SQL01.Sales.dbo.Q1 \
        --varchar-length max --force --log-file ingest.log

Exit codes: 0 succeeded, 1 failed, 3 partially failed (2 is a usage error).
"""

import argparse
import json
import sys
from typing import List, Optional

from dwingest.config.ingest_config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_SAMPLE_SIZE,
    DEFAULT_VARCHAR_LENGTH,
    DestinationConfig,
    get_config,
)
from dwingest.ingestion.batch_loader import LoadStatus
from dwingest.ingestion.file_ingestor import ingest_file
from dwingest.utils.db_client import parse_destination
from dwingest.utils.logging_config import run_logging_context, setup_logging

EXIT_CODES = {
    LoadStatus.SUCCEEDED: 0,
    LoadStatus.FAILED: 1,
    LoadStatus.PARTIALLY_FAILED: 3,
}


def varchar_length(value: str) -> Optional[int]:
    """Parse ``--varchar-length``: a positive integer or ``max``."""
    if value.strip().lower() == "max":
        return None
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number or 'max', got '{value}'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ingest",
        description="Bulk load a CSV file or spreadsheet sheet into a SQL Server table",
    )
    parser.add_argument("--source", required=True, help="Path to the .csv or .xlsx file")
    parser.add_argument(
        "--destination",
        required=True,
        help="Destination table as server.database.schema.table",
    )
    parser.add_argument(
        "--batch-size", type=int, default=DEFAULT_BATCH_SIZE,
        help=f"Rows per bulk write (default: {DEFAULT_BATCH_SIZE})",
    )
    parser.add_argument(
        "--varchar-length", type=varchar_length, default=DEFAULT_VARCHAR_LENGTH,
        help=f"Length of text columns, or 'max' (default: {DEFAULT_VARCHAR_LENGTH})",
    )
    parser.add_argument(
        "--timeout-seconds", type=int, default=0,
        help="Timeout for each destination statement; 0 means none (default: 0)",
    )
    parser.add_argument(
        "--force", action="store_true",
        help="Drop and recreate the destination table if it exists (default: append)",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging, including DDL")
    parser.add_argument(
        "--sample-size", type=int, default=DEFAULT_SAMPLE_SIZE,
        help=f"Rows sampled for type inference (default: {DEFAULT_SAMPLE_SIZE})",
    )
    parser.add_argument("--sheet", default=None, help="Sheet name for spreadsheets (default: active sheet)")
    parser.add_argument("--encoding", default="utf-8-sig", help="Text encoding (default: utf-8-sig)")
    parser.add_argument("--delimiter", default=",", help="Field delimiter (default: ',')")
    parser.add_argument(
        "--skip-bad-lines", action="store_true",
        help="Skip malformed CSV lines with a warning instead of failing",
    )
    parser.add_argument(
        "--connection-url", default="",
        help="SQLAlchemy URL overriding the server and database of the destination",
    )
    parser.add_argument("--log-file", default=None, help="Append a plain-text run log to this file")
    parser.add_argument(
        "--log-format", choices=["text", "json"], default="text",
        help="Console log format (default: text)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = get_config(
            batch_size=args.batch_size,
            sample_size=args.sample_size,
            varchar_length=args.varchar_length,
            timeout_seconds=args.timeout_seconds,
            force=args.force,
            encoding=args.encoding,
            delimiter=args.delimiter,
            sheet_name=args.sheet,
            skip_bad_lines=args.skip_bad_lines,
            log_file=args.log_file,
            destination=DestinationConfig(connection_url=args.connection_url),
        )
        destination = parse_destination(args.destination)
    except ValueError as exc:
        parser.error(str(exc))

    setup_logging(
        "DEBUG" if args.debug else "INFO",
        log_file=config.log_file,
        json_format=args.log_format == "json",
    )

    with run_logging_context(args.source, str(destination)):
        result = ingest_file(args.source, destination, config)

    print(json.dumps(result.as_dict()))
    return EXIT_CODES.get(result.status, 1)


if __name__ == "__main__":
    sys.exit(main())
