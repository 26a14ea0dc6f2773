from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog

LOGGER_NAME = "file_lister"

_LOGGING_CONFIGURED = False
_HANDLER: logging.Handler | None = None


def _select_handler(filename: str | Path | None) -> logging.Handler:
    global _HANDLER  # noqa: PLW0603
    if filename:
        target = str(Path(filename).resolve())
        if isinstance(_HANDLER, logging.FileHandler) and _HANDLER.baseFilename == target:
            return _HANDLER
        handler: logging.Handler = logging.FileHandler(target, encoding="utf-8")
    else:
        if _HANDLER is not None and not isinstance(_HANDLER, logging.FileHandler):
            return _HANDLER
        handler = logging.StreamHandler(sys.stderr)

    stdlib_logger = logging.getLogger(LOGGER_NAME)
    if _HANDLER is not None:
        stdlib_logger.removeHandler(_HANDLER)
        _HANDLER.close()
    stdlib_logger.addHandler(handler)
    _HANDLER = handler
    return handler


def setup_logging(
    filename: str | Path | None = None,
    *,
    quiet: bool = False,
) -> structlog.BoundLogger:
    """Set up structured logging for the file_lister module.

    Logs never go to stdout, which is reserved for the generated document.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        quiet: Only let errors through; skipped entries are then silent.

    Returns:
        A structlog logger instance configured for the file_lister module.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if not _LOGGING_CONFIGURED:
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_CONFIGURED = True

    _select_handler(filename)
    logging.getLogger(LOGGER_NAME).setLevel(logging.ERROR if quiet else logging.INFO)
    return structlog.get_logger(LOGGER_NAME)


logger = setup_logging()
