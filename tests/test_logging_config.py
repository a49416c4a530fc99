"""Tests for logging configuration."""

import json
import logging

from dwingest.utils.logging_config import JSONFormatter, run_logging_context, setup_logging


def own_handlers(root):
    return [h for h in root.handlers if getattr(h, "_dwingest", False)]


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_sets_level(self, restore_logging):
        setup_logging("DEBUG")
        assert restore_logging.level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self, restore_logging):
        setup_logging("CHATTY")
        assert restore_logging.level == logging.INFO

    def test_repeated_calls_do_not_stack_handlers(self, restore_logging, tmp_path):
        setup_logging(log_file=str(tmp_path / "run.log"))
        setup_logging(log_file=str(tmp_path / "run.log"))
        assert len(own_handlers(restore_logging)) == 2

    def test_run_log_is_appended(self, restore_logging, tmp_path):
        path = tmp_path / "run.log"
        path.write_text("earlier run\n")

        setup_logging(log_file=str(path))
        logging.getLogger("dwingest.test").info("Loaded %d rows", 42)
        for handler in own_handlers(restore_logging):
            handler.flush()

        content = path.read_text()
        assert content.startswith("earlier run\n")
        assert "INFO" in content
        assert "dwingest.test: Loaded 42 rows" in content

    def test_json_console(self, restore_logging):
        setup_logging(json_format=True)
        console = own_handlers(restore_logging)[0]
        assert isinstance(console.formatter, JSONFormatter)


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def make_record(self, **extra):
        record = logging.LogRecord("dwingest.test", logging.WARNING, __file__, 10, "Row %d skipped", (7,), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_formats_basic_fields(self):
        entry = json.loads(JSONFormatter().format(self.make_record()))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "dwingest.test"
        assert entry["message"] == "Row 7 skipped"
        assert "source" not in entry

    def test_includes_run_fields(self):
        record = self.make_record(source="orders.csv", destination="SQL01.Sales.dbo.Orders")
        entry = json.loads(JSONFormatter().format(record))
        assert entry["source"] == "orders.csv"
        assert entry["destination"] == "SQL01.Sales.dbo.Orders"


class TestRunLoggingContext:
    """Tests for run_logging_context."""

    def test_records_carry_run_fields(self, caplog):
        with caplog.at_level(logging.INFO):
            with run_logging_context("orders.csv", "dbo.Orders"):
                logging.getLogger("dwingest.test").info("inside")
            logging.getLogger("dwingest.test").info("outside")

        inside, outside = caplog.records
        assert inside.source == "orders.csv"
        assert inside.destination == "dbo.Orders"
        assert not hasattr(outside, "source")

    def test_factory_is_restored(self):
        factory = logging.getLogRecordFactory()
        with run_logging_context("a.csv", "dbo.t"):
            assert logging.getLogRecordFactory() is not factory
        assert logging.getLogRecordFactory() is factory
