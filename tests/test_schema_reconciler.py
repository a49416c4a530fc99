"""Tests for the schema reconciler."""

from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy import types as sqltypes
from sqlalchemy.exc import OperationalError

from dwingest.config.ingest_config import IngestConfig
from dwingest.errors import DdlRejected, DestinationUnreachable
from dwingest.ingestion.schema_detector import TargetTableSchema
from dwingest.ingestion.schema_reconciler import ReconcileState, SchemaReconciler, to_table
from dwingest.utils.db_client import DestinationName


@pytest.fixture
def candidate(destination):
    return TargetTableSchema(
        destination=destination,
        columns=(
            ("Amount", sqltypes.DECIMAL(18, 2)),
            ("SignupDate", sqltypes.DATETIME()),
            ("Notes", sqltypes.VARCHAR(255)),
        ),
    )


def column_names(engine, schema="main", table="orders"):
    return [c["name"] for c in inspect(engine).get_columns(table, schema=schema)]


def row_count(engine):
    with engine.connect() as conn:
        return conn.execute(text("SELECT COUNT(*) FROM main.orders")).scalar()


class TestToTable:
    """Tests for to_table."""

    def test_builds_nullable_columns_in_order(self, candidate):
        table = to_table(candidate)
        assert table.name == "orders"
        assert table.schema == "main"
        assert [c.name for c in table.columns] == ["Amount", "SignupDate", "Notes"]
        assert all(c.nullable for c in table.columns)


class TestReconcile:
    """Tests for SchemaReconciler.reconcile."""

    def test_creates_absent_table(self, sqlite_engine, candidate):
        reconciler = SchemaReconciler(sqlite_engine, IngestConfig())
        assert reconciler.state is ReconcileState.UNKNOWN

        schema = reconciler.reconcile(candidate)

        assert reconciler.state is ReconcileState.READY
        assert schema.created is True
        assert schema.columns == candidate.columns
        assert column_names(sqlite_engine) == ["Amount", "SignupDate", "Notes"]

    def test_reuses_existing_table_without_force(self, sqlite_engine, candidate):
        with sqlite_engine.begin() as conn:
            conn.execute(text("CREATE TABLE main.orders (a NUMERIC, b TEXT, c TEXT)"))
            conn.execute(text("INSERT INTO main.orders VALUES (1, 'x', 'y')"))

        reconciler = SchemaReconciler(sqlite_engine, IngestConfig())
        schema = reconciler.reconcile(candidate)

        assert reconciler.state is ReconcileState.READY
        assert schema.created is False
        assert schema.column_names == ["a", "b", "c"]
        assert row_count(sqlite_engine) == 1

    def test_existing_column_mismatch_is_only_logged(self, sqlite_engine, candidate, caplog):
        with sqlite_engine.begin() as conn:
            conn.execute(text("CREATE TABLE main.orders (only_one TEXT)"))

        with caplog.at_level("WARNING"):
            schema = SchemaReconciler(sqlite_engine, IngestConfig()).reconcile(candidate)

        assert schema.column_names == ["only_one"]
        assert "has 1 columns but the source has 3" in caplog.text

    def test_force_drops_and_recreates(self, sqlite_engine, candidate):
        with sqlite_engine.begin() as conn:
            conn.execute(text("CREATE TABLE main.orders (a NUMERIC)"))
            conn.execute(text("INSERT INTO main.orders VALUES (1)"))

        reconciler = SchemaReconciler(sqlite_engine, IngestConfig(force=True))
        schema = reconciler.reconcile(candidate)

        assert reconciler.state is ReconcileState.READY
        assert schema.created is True
        assert column_names(sqlite_engine) == ["Amount", "SignupDate", "Notes"]
        assert row_count(sqlite_engine) == 0

    def test_force_on_absent_table_just_creates(self, sqlite_engine, candidate):
        schema = SchemaReconciler(sqlite_engine, IngestConfig(force=True)).reconcile(candidate)
        assert schema.created is True

    def test_rejected_create_raises_ddl_rejected(self, sqlite_engine, candidate):
        reconciler = SchemaReconciler(sqlite_engine, IngestConfig())
        with patch(
            "dwingest.ingestion.schema_reconciler.create_table",
            side_effect=OperationalError("CREATE TABLE", {}, Exception("permission denied")),
        ):
            with pytest.raises(DdlRejected, match="permission denied") as excinfo:
                reconciler.reconcile(candidate)

        assert excinfo.value.component == "schema-reconciler"
        assert reconciler.state is ReconcileState.FAILED

    def test_rejected_drop_raises_ddl_rejected(self, sqlite_engine, candidate):
        with sqlite_engine.begin() as conn:
            conn.execute(text("CREATE TABLE main.orders (a NUMERIC)"))

        reconciler = SchemaReconciler(sqlite_engine, IngestConfig(force=True))
        with patch(
            "dwingest.ingestion.schema_reconciler.drop_table",
            side_effect=OperationalError("DROP TABLE", {}, Exception("in use")),
        ):
            with pytest.raises(DdlRejected, match="Could not drop"):
                reconciler.reconcile(candidate)

        assert reconciler.state is ReconcileState.FAILED
        assert column_names(sqlite_engine) == ["a"]

    def test_invalid_schema_name_is_rejected(self, sqlite_engine, candidate):
        bad = TargetTableSchema(
            destination=DestinationName(table="orders", schema="no_such_db"),
            columns=candidate.columns,
        )
        with pytest.raises(DdlRejected):
            SchemaReconciler(sqlite_engine, IngestConfig()).reconcile(bad)

    def test_unreachable_destination(self, tmp_path, candidate):
        engine = create_engine(f"sqlite:///{tmp_path}/missing/dir/db.sqlite")
        reconciler = SchemaReconciler(engine, IngestConfig())

        with pytest.raises(DestinationUnreachable):
            reconciler.reconcile(candidate)

        assert reconciler.state is ReconcileState.FAILED
