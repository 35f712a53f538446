"""Unit tests for pricematch.utils.logging."""

import io
import logging

from pricematch.utils.logging import ROOT_LOGGER, SafeStreamHandler, get_logger, set_level, setup_logging


class TestGetLogger:
    def test_returns_logger(self):
        logger = get_logger("pricematch.test_module")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "pricematch.test_module"

    def test_consistent_logger(self):
        assert get_logger("pricematch.same") is get_logger("pricematch.same")

    def test_setup_logging_idempotent(self):
        """Calling setup_logging multiple times should not add duplicate handlers."""
        setup_logging()
        before = len(logging.getLogger(ROOT_LOGGER).handlers)
        setup_logging()
        assert len(logging.getLogger(ROOT_LOGGER).handlers) == before
        assert before >= 1

    def test_children_propagate_to_namespace(self):
        assert get_logger("pricematch.storage.ledger").parent.name in ("pricematch.storage", "pricematch")


class TestSetLevel:
    def test_debug_then_back(self):
        root = logging.getLogger(ROOT_LOGGER)
        previous = root.level
        try:
            set_level(logging.DEBUG)
            assert root.level == logging.DEBUG
            consoles = [h for h in root.handlers if isinstance(h, SafeStreamHandler)]
            assert all(h.level == logging.DEBUG for h in consoles)
        finally:
            set_level(previous)


class TestSafeStreamHandler:
    def test_writes_message(self):
        stream = io.StringIO()
        handler = SafeStreamHandler(stream)
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="test.py",
            lineno=1, msg="Price moved %s", args=("-15.00%",), exc_info=None,
        )
        handler.emit(record)
        assert "Price moved -15.00%" in stream.getvalue()

    def test_unencodable_character_escaped(self):
        raw = io.BytesIO()
        stream = io.TextIOWrapper(raw, encoding="ascii")
        handler = SafeStreamHandler(stream)
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="test.py",
            lineno=1, msg="Fiyat 1.299 \u20ba", args=(), exc_info=None,
        )
        handler.emit(record)
        stream.flush()
        assert raw.getvalue().decode("ascii") == "Fiyat 1.299 \\u20ba\n"
