"""Logging setup for the page integrity analyzers.

All modules log through named standard-library loggers. Page-scoped
messages go through :class:`PageLoggerAdapter` so degraded pages can be
told apart from clean ones in the log stream.
"""

import logging
import sys
from pathlib import Path
from typing import Any

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty at DEBUG level.
_QUIET_LOGGERS = ("PIL", "multipart", "python_multipart")


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure the root logger with a standard format.

    Calling this more than once is a no-op so the API and CLI entry
    points can both invoke it safely.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional file that receives a copy of every record.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    if root.handlers:
        return

    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(numeric_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get a named logger instance.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.

    Returns:
        Configured logger instance.
    """
    return logging.getLogger(name)


class PageLoggerAdapter(logging.LoggerAdapter):
    """Prefix log messages with the document and page being analyzed."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        document_id = self.extra.get("document_id") or "-"
        page_number = self.extra.get("page_number")
        return f"[{document_id} p{page_number}] {msg}", kwargs


def get_page_logger(
    logger: logging.Logger, page_number: int | None, document_id: str | None = None
) -> PageLoggerAdapter:
    """Wrap a module logger so every message carries the page context.

    Args:
        logger: Module-level logger.
        page_number: 1-based page number under analysis.
        document_id: Owning document identifier, if known.

    Returns:
        Adapter that prefixes messages with ``[document pN]``.
    """
    return PageLoggerAdapter(
        logger, {"page_number": page_number, "document_id": document_id}
    )
