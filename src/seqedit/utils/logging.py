"""Structured logging setup for seqedit."""

import structlog
from pathlib import Path
from typing import Any, Optional, TextIO
import os


VALID_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

# Log files stay open for the life of the process; loggers cached on first use
# keep writing to the stream they were bound to.
_streams: dict[Path, TextIO] = {}


def default_log_file() -> Path:
    """Return the default log file location (~/.cache/seqedit/logs/seqedit.log)."""
    return Path.home() / ".cache" / "seqedit" / "logs" / "seqedit.log"


def configure_logging(level: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """
    Configure structlog for JSON logging to ~/.cache/seqedit/logs/seqedit.log.

    Log level can be controlled via SEQEDIT_LOG_LEVEL environment variable,
    which takes precedence over the ``level`` argument (usually taken from
    config.yaml):
    - Set to "DEBUG" to see every path resolution miss and delta
    - Defaults to "INFO" if not set

    Log levels:
    - DEBUG: Path misses, shift bookkeeping, queued saves
    - INFO: Page loads, navigation, structural edits, saves
    - WARNING: Stale responses, reverted edits, reload fallbacks
    - ERROR: Page Store failures

    Example:
        # Enable debug logging
        export SEQEDIT_LOG_LEVEL=DEBUG
        seqedit outline page.md

        # View logs with jq for readability:
        tail -f ~/.cache/seqedit/logs/seqedit.log | jq .
    """
    log_file = log_file or default_log_file()

    log_level = os.environ.get("SEQEDIT_LOG_LEVEL", level or "INFO").upper()
    if log_level not in VALID_LEVELS:
        log_level = "INFO"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=_open_log(log_file)),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of calling module)

    Returns:
        Structured logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("block_split", path=[0, 1], offset=4)
    """
    return structlog.get_logger(name)


def _open_log(log_file: Path) -> TextIO:
    """Open log_file for appending, reusing the stream if it is already open."""
    stream = _streams.get(log_file)
    if stream is None or stream.closed:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        stream = open(log_file, "a")
        _streams[log_file] = stream
    return stream
