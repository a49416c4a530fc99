"""Destination database client utilities.

Thin wrappers over SQLAlchemy for the handful of operations the ingestion
engine needs from the destination store: an existence check, DDL, and
positional bulk writes with a caller-supplied timeout.
"""

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import Table, create_engine, inspect
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from dwingest.config.ingest_config import DestinationConfig
from dwingest.errors import DestinationUnreachable

log = logging.getLogger(__name__)

# One part of a dotted name: [bracketed]]name], "quoted""name", or bare
_NAME_PART = re.compile(r'\[((?:[^\]]|\]\])*)\]|"((?:[^"]|"")*)"|([^.\[\]"]+)')

# DBAPI paramstyle -> positional placeholder
_PLACEHOLDERS = {
    "qmark": "?",
    "format": "%s",
    "pyformat": "%s",
}


@dataclass(frozen=True)
class DestinationName:
    """A destination table identifier, up to four-part naming."""

    table: str
    schema: str = "dbo"
    database: Optional[str] = None
    server: Optional[str] = None

    def __str__(self) -> str:
        parts = [self.server, self.database, self.schema, self.table]
        return ".".join(p for p in parts if p)


def parse_destination(value: str, default_schema: str = "dbo") -> DestinationName:
    """Parse ``server.database.schema.table`` or any right-hand subset of it.

    Parts may be wrapped in ``[...]`` or ``"..."`` when they contain dots.

    Args:
        value: Destination identifier text.
        default_schema: Schema used when only a table name is given.

    Returns:
        Parsed DestinationName.

    Raises:
        ValueError: If the identifier is empty or has more than four parts.
    """
    parts: List[str] = []
    pos = 0
    text = value.strip()
    while pos < len(text):
        match = _NAME_PART.match(text, pos)
        if match is None:
            raise ValueError(f"Invalid destination name '{value}'")
        bracketed, quoted, bare = match.groups()
        if bracketed is not None:
            parts.append(bracketed.replace("]]", "]"))
        elif quoted is not None:
            parts.append(quoted.replace('""', '"'))
        else:
            parts.append(bare.strip())
        pos = match.end()
        if pos < len(text):
            if text[pos] != ".":
                raise ValueError(f"Invalid destination name '{value}'")
            pos += 1
            if pos == len(text):
                raise ValueError(f"Invalid destination name '{value}': trailing dot")

    if not parts or len(parts) > 4 or not all(parts):
        raise ValueError(
            f"Invalid destination name '{value}': expected server.database.schema.table"
        )

    padded: List[Optional[str]] = [None] * (4 - len(parts)) + parts
    server, database, schema, table = padded
    return DestinationName(
        table=table,
        schema=schema or default_schema,
        database=database,
        server=server,
    )


def build_connection_url(destination: DestinationName, config: DestinationConfig) -> Any:
    """Build the SQLAlchemy URL for the destination's server and database.

    Args:
        destination: Parsed destination name.
        config: Connection settings. ``connection_url`` wins when set.

    Returns:
        A URL string or ``sqlalchemy.engine.URL``.

    Raises:
        ValueError: If no server is known for the destination.
    """
    if config.connection_url:
        return config.connection_url
    if not destination.server:
        raise ValueError(
            f"Destination '{destination}' has no server; use four-part naming "
            "or set a connection URL"
        )

    query: Dict[str, str] = {"driver": config.odbc_driver}
    if config.trusted_connection:
        query["trusted_connection"] = "yes"
    if config.trust_server_certificate:
        query["TrustServerCertificate"] = "yes"

    return URL.create(
        "mssql+pyodbc",
        username=config.username or None,
        password=config.password or None,
        host=destination.server,
        database=destination.database,
        query=query,
    )


def get_engine(url: Any) -> Engine:
    """Create a SQLAlchemy engine for the destination.

    Args:
        url: Connection URL (string or URL object).

    Returns:
        SQLAlchemy Engine instance.
    """
    kwargs: Dict[str, Any] = {"pool_pre_ping": True}
    drivername = url.drivername if isinstance(url, URL) else str(url).split(":", 1)[0]
    if drivername == "mssql+pyodbc":
        kwargs["fast_executemany"] = True

    engine = create_engine(url, **kwargs)
    log.info("Destination engine created (%s)", engine.url.render_as_string(hide_password=True))
    return engine


@contextmanager
def connect(engine: Engine):
    """Context manager for a destination connection with automatic cleanup.

    Raises:
        DestinationUnreachable: If the connection cannot be established.
    """
    try:
        conn = engine.connect()
    except SQLAlchemyError as exc:
        raise DestinationUnreachable(
            f"Could not connect to '{engine.url.render_as_string(hide_password=True)}': {exc}"
        ) from exc
    try:
        yield conn
    finally:
        conn.close()


def apply_timeout(conn: Connection, timeout_seconds: int) -> None:
    """Set the per-statement timeout on the DBAPI connection.

    pyodbc exposes a ``timeout`` attribute (0 = no timeout). Drivers without
    one run unbounded.
    """
    dbapi_conn = conn.connection.dbapi_connection
    if hasattr(dbapi_conn, "timeout"):
        dbapi_conn.timeout = timeout_seconds
    elif timeout_seconds:
        log.debug("Driver %s has no statement timeout; running unbounded", conn.dialect.driver)


def table_exists(conn: Connection, schema: str, table: str) -> bool:
    """Check the destination catalog for a table."""
    return inspect(conn).has_table(table, schema=schema)


def get_table_columns(conn: Connection, schema: str, table: str) -> List[Tuple[str, Any]]:
    """Return ``(name, type)`` pairs of an existing table in ordinal order."""
    columns = inspect(conn).get_columns(table, schema=schema)
    return [(c["name"], c["type"]) for c in columns]


def create_table(conn: Connection, table: Table) -> None:
    table.create(conn)
    conn.commit()
    log.info("Created table %s", qualified_name(conn, table))


def drop_table(conn: Connection, table: Table) -> None:
    table.drop(conn)
    conn.commit()
    log.info("Dropped table %s", qualified_name(conn, table))


def qualified_name(conn: Connection, table: Table) -> str:
    return conn.dialect.identifier_preparer.format_table(table)


def bulk_write(
    conn: Connection,
    table: Table,
    rows: Sequence[Sequence[Any]],
    timeout_seconds: int = 0,
) -> int:
    """Insert rows positionally in a single executemany round trip.

    The statement carries no column list, so values bind to the table's
    columns by ordinal position and any arity mismatch is reported by the
    destination. The caller owns commit and rollback.

    Args:
        conn: Open destination connection.
        table: Target table.
        rows: Row tuples, all of the same arity.
        timeout_seconds: Statement timeout, 0 for none.

    Returns:
        Number of rows sent.
    """
    if not rows:
        return 0
    placeholder = _PLACEHOLDERS.get(conn.dialect.paramstyle)
    if placeholder is None:
        raise ValueError(f"Unsupported DBAPI paramstyle '{conn.dialect.paramstyle}'")

    arity = len(rows[0])
    sql = "INSERT INTO {} VALUES ({})".format(
        qualified_name(conn, table), ", ".join([placeholder] * arity)
    )
    apply_timeout(conn, timeout_seconds)
    conn.exec_driver_sql(sql, [tuple(r) for r in rows])
    log.debug("Inserted %d rows into %s", len(rows), qualified_name(conn, table))
    return len(rows)
