"""
Logging setup and processing finding capture.

This module implements:
- structlog configuration on top of the standard library logger
- ProcessingLogger, which also records located findings in a data source
"""

import logging
import sys
from typing import TYPE_CHECKING, Optional

import structlog
from shapely.geometry.base import BaseGeometry

if TYPE_CHECKING:
    from ..datasource.base import FlowpathDataSource

logger = structlog.get_logger()


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """
    Configure structlog to render through the standard library.

    Args:
        level: Log level name
        fmt: "json" for JSON lines, anything else for console output
    """
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level.upper(), force=True)

    renderer = structlog.processors.JSONRenderer() if fmt == "json" else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class ProcessingLogger:
    """
    Logs processing findings and mirrors located ones to a data source.

    Findings with a geometry are written to the data source's processing
    errors layer so they can be inspected next to the data.
    """

    def __init__(self, data_source: Optional["FlowpathDataSource"] = None):
        self.data_source = data_source
        self.errors = 0
        self.warnings = 0

    def error(self, message: str, location: Optional[BaseGeometry] = None, **fields) -> None:
        self.errors += 1
        if location is not None:
            fields["location"] = location.wkt
        logger.error(message, **fields)
        if self.data_source is not None and location is not None:
            self.data_source.log_error(message, location)

    def warning(self, message: str, location: Optional[BaseGeometry] = None, **fields) -> None:
        self.warnings += 1
        if location is not None:
            fields["location"] = location.wkt
        logger.warning(message, **fields)
        if self.data_source is not None and location is not None:
            self.data_source.log_warning(message, location)
