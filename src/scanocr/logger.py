# src/scanocr/logger.py

import logging
import sys
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue
from typing import List, Optional, Union

LOGGER_NAME = "scanocr"

# Page completion events sit between INFO and WARNING
PROGRESS = 25
logging.addLevelName(PROGRESS, "PROGRESS")

_EVENT_FIELDS = ("phase", "page", "status", "current", "total")


def _log_progress(self: logging.Logger, msg, *args, **kwargs):
    if self.isEnabledFor(PROGRESS):
        self._log(PROGRESS, msg, args, **kwargs)


logging.Logger.progress = _log_progress


class ProgressEventHandler(logging.Handler):
    """Turns PROGRESS records into plain dicts on a queue, for progress displays."""

    def __init__(self, q: Queue):
        super().__init__(level=PROGRESS)
        self.q = q
        self.addFilter(OnlyLevelFilter(PROGRESS))

    def emit(self, record: logging.LogRecord):
        try:
            event = {"level": record.levelname, "msg": record.getMessage()}
            event.update({name: getattr(record, name, None) for name in _EVENT_FIELDS})
            self.q.put(event)
        except Exception:
            self.handleError(record)


class OnlyLevelFilter(logging.Filter):
    """Passes records of exactly one level."""

    def __init__(self, levelno: int):
        super().__init__()
        self.levelno = levelno

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno == self.levelno


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-8s | %(message)s", "%H:%M:%S"))
    return handler


def _file_handler(path: Union[str, Path], level: int) -> logging.Handler:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=2, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s | %(threadName)-22s | %(levelname)-8s | %(message)s"))
    return handler


def setup_logging(
    log_queue: Queue,
    *,
    event_queue: Optional[Queue] = None,
    level: int = logging.INFO,
    file_path: Optional[Union[str, Path]] = None,
    file_level: Optional[int] = None,
    console: bool = True,
) -> QueueListener:
    """
    Build the handlers that drain `log_queue` and return an unstarted listener.

    Args:
        log_queue: The queue the "scanocr" logger writes to (see configure_queue_logging).
        event_queue: Optional queue receiving structured PROGRESS events only.
        level: Console level.
        file_path: Rotating log file, 5 MiB with two backups.
        file_level: File level, defaults to `level`.
        console: Whether to echo records to stderr.

    Returns:
        A QueueListener. Call .start() before logging and .stop() to flush.
    """
    handlers: List[logging.Handler] = []
    if console:
        handlers.append(_console_handler(level))
    if file_path:
        handlers.append(_file_handler(file_path, level if file_level is None else file_level))
    if event_queue is not None:
        handlers.append(ProgressEventHandler(event_queue))
    return QueueListener(log_queue, *handlers, respect_handler_level=True)


def configure_queue_logging(log_queue: Queue, level: int = logging.DEBUG) -> logging.Logger:
    """
    Routes the "scanocr" logger through a QueueHandler so OCR worker threads
    never block on slow handlers. Existing handlers are replaced.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(QueueHandler(log_queue))
    logger.propagate = False
    return logger
