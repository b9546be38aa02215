"""Logging configuration for mvre-hub.

structlog over the standard logging module, rendered for humans on stderr.
Stdout is reserved for command output.
"""

import logging
import sys

import structlog

# -v count -> log level
VERBOSITY_LEVELS = {0: "warning", 1: "info", 2: "debug"}


def level_for_verbosity(verbose: int) -> str:
    """Map the -v count to a log level name."""
    return VERBOSITY_LEVELS.get(verbose, "debug")


def configure_logging(level: str = "warning") -> None:
    """Configure logging for the application.

    Called once per invocation by the CLI group. Configures both standard
    logging and structlog; calling it again replaces the previous setup.

    Args:
        level: Log level (debug, info, warning, error, critical)
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    logging.basicConfig(level=log_level, handlers=[handler], format="%(message)s", force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
