"""Structured logging configuration with file rotation."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Dedicated files: logger name -> file name
_CHANNEL_LOGS = {
    "tools.agent_sdk_client": "generation.log",
    "workflow.engine": "workflow_trace.log",
}


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        str(path),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str | Path] = None,
    console_enabled: bool = True,
) -> None:
    """Configure application-wide logging.

    The root logger writes to ``novel_director.log`` (and the console when
    enabled). Generation calls and per-step engine traces additionally go
    to their own files at DEBUG, whatever the root level is.

    Args:
        level: Root logging level (e.g., logging.DEBUG, logging.INFO).
        log_dir: Directory for log files. Defaults to ./data/logs.
        console_enabled: Whether to output to console.
    """
    log_dir = Path(log_dir or "./data/logs")
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates on re-init
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    root_logger.addHandler(_rotating_handler(log_dir / "novel_director.log", level, formatter))

    for name, filename in _CHANNEL_LOGS.items():
        channel = logging.getLogger(name)
        for handler in list(channel.handlers):
            if isinstance(handler, RotatingFileHandler):
                channel.removeHandler(handler)
                handler.close()
        channel.setLevel(logging.DEBUG)
        channel.addHandler(_rotating_handler(log_dir / filename, logging.DEBUG, formatter))

    # Checkpoint traffic is noisy; keep it at WARNING unless debugging
    if level > logging.DEBUG:
        logging.getLogger("workflow.checkpoint").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging initialized: level=%s, dir=%s", level, log_dir)
