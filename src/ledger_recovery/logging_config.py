"""structlog configuration for hosts and the command line.

Library modules only call ``structlog.get_logger()`` and log snake_case
events with keyword context. They never configure output themselves; an
entry point (the CLI, a web host, a test) calls ``configure_logging`` once.
"""

import logging
import sys
from typing import IO, Optional, Union

import structlog

from .exceptions import ConfigurationError


# make_filtering_bound_logger only has filters for the standard levels
STANDARD_LEVELS = frozenset(
    {logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL}
)


def _parse_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        numeric = level
    else:
        name = level.strip().upper()
        numeric = int(name) if name.isdigit() else logging.getLevelName(name)
    if numeric not in STANDARD_LEVELS:
        raise ConfigurationError(
            f"Unknown log level: {level}",
            config_key="log_level",
            expected="DEBUG, INFO, WARNING, ERROR or CRITICAL",
            actual=level,
        )
    return numeric


def configure_logging(
    level: Union[int, str] = "INFO",
    *,
    json_output: bool = False,
    stream: Optional[IO[str]] = None,
) -> None:
    """Configure structlog for the current process.

    Args:
        level: Minimum level as a name (``"DEBUG"``) or ``logging`` constant.
        json_output: Render one JSON object per line instead of console text.
        stream: Destination stream, stderr by default so stdout stays free
            for command output.
    """
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # ConsoleRenderer formats exc_info itself
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_parse_level(level)),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )
