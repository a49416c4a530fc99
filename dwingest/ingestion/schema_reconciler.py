"""Destination table reconciliation.

Decides whether the destination table is created, recreated, or reused, and
issues the DDL. This is the only component that changes destination schema.

States::

    unknown -> absent                 create from candidate       -> ready
    unknown -> present (force=False)  reuse existing columns      -> ready
    unknown -> present (force=True)   drop, then create           -> ready
    any DDL error                                                  -> failed
"""

import logging
from enum import Enum

from sqlalchemy import Column, MetaData, Table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateTable

from dwingest.config.ingest_config import IngestConfig
from dwingest.errors import DdlRejected, IngestionError
from dwingest.ingestion.schema_detector import TargetTableSchema
from dwingest.utils.db_client import (
    apply_timeout,
    connect,
    create_table,
    drop_table,
    get_table_columns,
    table_exists,
)

log = logging.getLogger(__name__)


class ReconcileState(Enum):
    UNKNOWN = "unknown"
    ABSENT = "absent"
    PRESENT = "present"
    READY = "ready"
    FAILED = "failed"


def to_table(schema: TargetTableSchema, metadata: MetaData = None) -> Table:
    """Build a SQLAlchemy Table for a target schema. All columns are nullable."""
    destination = schema.destination
    return Table(
        destination.table,
        metadata if metadata is not None else MetaData(),
        *[Column(name, sql_type, nullable=True) for name, sql_type in schema.columns],
        schema=destination.schema,
    )


class SchemaReconciler:
    """Bring the destination table into a loadable state.

    Args:
        engine: Destination engine.
        config: Run configuration; ``force`` requests drop-and-recreate of an
            existing table, ``timeout_seconds`` bounds each DDL statement.
    """

    def __init__(self, engine: Engine, config: IngestConfig):
        self.engine = engine
        self.force = config.force
        self.timeout_seconds = config.timeout_seconds
        self.state = ReconcileState.UNKNOWN

    def reconcile(self, candidate: TargetTableSchema) -> TargetTableSchema:
        """Finalize the schema the loader will write against.

        Args:
            candidate: Schema inferred from the source.

        Returns:
            The candidate (table created) or the existing table's columns
            (table reused). Never modified afterwards.

        Raises:
            DdlRejected: If a CREATE or DROP statement fails.
            DestinationUnreachable: If the destination cannot be reached.
        """
        destination = candidate.destination
        try:
            with connect(self.engine) as conn:
                apply_timeout(conn, self.timeout_seconds)
                exists = table_exists(conn, destination.schema, destination.table)
                self.state = ReconcileState.PRESENT if exists else ReconcileState.ABSENT
                log.info("Destination table %s is %s", destination, self.state.value)

                if exists and not self.force:
                    existing = get_table_columns(conn, destination.schema, destination.table)
                    if len(existing) != len(candidate.columns):
                        log.warning(
                            "Existing table %s has %d columns but the source has %d; "
                            "appending positionally anyway",
                            destination, len(existing), len(candidate.columns),
                        )
                    self.state = ReconcileState.READY
                    return TargetTableSchema(destination=destination, columns=tuple(existing))

                table = to_table(candidate)
                if exists:
                    log.warning("Dropping existing table %s (force)", destination)
                    self._run_ddl(drop_table, conn, table, "drop")
                    self.state = ReconcileState.ABSENT

                log.debug("DDL: %s", CreateTable(table).compile(dialect=conn.dialect))
                self._run_ddl(create_table, conn, table, "create")
        except IngestionError:
            self.state = ReconcileState.FAILED
            raise
        except SQLAlchemyError as exc:
            self.state = ReconcileState.FAILED
            raise DdlRejected(f"Could not inspect destination table {destination}: {exc}") from exc

        self.state = ReconcileState.READY
        log.info("Schema ready for %s (%s)", destination, candidate.describe())
        return TargetTableSchema(destination=destination, columns=candidate.columns, created=True)

    def _run_ddl(self, operation, conn, table: Table, verb: str) -> None:
        try:
            operation(conn, table)
        except SQLAlchemyError as exc:
            conn.rollback()
            raise DdlRejected(f"Could not {verb} table {table.fullname}: {exc}") from exc
