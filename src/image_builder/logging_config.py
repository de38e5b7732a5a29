"""Logging setup for the command line."""

import logging
import sys

import structlog
from rich.console import Console
from rich.logging import RichHandler

# Extra record attributes carried into JSON output when present
_EXTRA_FIELDS = ("layer",)


def json_formatter() -> structlog.stdlib.ProcessorFormatter:
    """Formatter rendering stdlib log records as one JSON object per line."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ExtraAdder(allow=_EXTRA_FIELDS),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
    )


def configure_logging(debug: bool = False, json_logs: bool = False) -> None:
    """Route the package's log records to stderr.

    Args:
        debug: Log at DEBUG instead of INFO
        json_logs: Emit JSON lines instead of rich console output
    """
    if json_logs:
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(json_formatter())
    else:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=debug,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))

    package_logger = logging.getLogger("image_builder")
    package_logger.handlers[:] = [handler]
    package_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    package_logger.propagate = False
