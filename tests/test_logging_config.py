"""Tests for log output setup."""

import io
import json
import logging
import sys

import structlog
from rich.logging import RichHandler

from image_builder.logging_config import configure_logging, json_formatter


def render(record: logging.LogRecord) -> dict:
    return json.loads(json_formatter().format(record))


class TestJsonFormatter:

    def test_record_fields(self):
        record = logging.LogRecord("image_builder.pipeline", logging.DEBUG, __file__, 1, "Pushed %s", ("a1",), None)
        record.layer = "a1b2c3"

        payload = render(record)

        assert payload["level"] == "debug"
        assert payload["logger"] == "image_builder.pipeline"
        assert payload["event"] == "Pushed a1"
        assert payload["layer"] == "a1b2c3"
        assert "timestamp" in payload

    def test_missing_extras_are_left_out(self):
        record = logging.LogRecord("image_builder", logging.INFO, __file__, 1, "hello", (), None)

        assert "layer" not in render(record)

    def test_exception_is_rendered(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "image_builder", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )

        payload = render(record)

        assert "RuntimeError: boom" in payload["exception"]


class TestConfigureLogging:

    def test_json_and_debug(self):
        configure_logging(debug=True, json_logs=True)
        logger = logging.getLogger("image_builder")

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_json_output_carries_layer(self):
        configure_logging(debug=True, json_logs=True)
        logger = logging.getLogger("image_builder")
        out = io.StringIO()
        logger.handlers[0].setStream(out)

        logging.getLogger("image_builder.pipeline").debug("Pushed", extra={"layer": "a1"})

        payload = json.loads(out.getvalue())
        assert payload["event"] == "Pushed"
        assert payload["layer"] == "a1"

    def test_rich_by_default(self):
        configure_logging()
        logger = logging.getLogger("image_builder")

        assert logger.level == logging.INFO
        assert isinstance(logger.handlers[0], RichHandler)
