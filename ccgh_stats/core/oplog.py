"""
Operational sync log.

Human-readable, size-capped line log at ~/.claude-stats/sync.log. Purely
diagnostic: a logging failure must never fail a sync.
"""

import logging
import time
from pathlib import Path

SYNC_LOGGER_NAME = "ccgh_stats.sync"


class SyncLogFormatter(logging.Formatter):
    """Formats records as ``[YYYY-MM-DD HH:MM:SS] message`` in UTC."""

    converter = time.gmtime

    def __init__(self):
        super().__init__("[%(asctime)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record):
        line = super().format(record)
        if record.levelno >= logging.ERROR:
            stamp, _, message = line.partition("] ")
            line = f"{stamp}] ERROR: {message}"
        return line


class CappedFileHandler(logging.FileHandler):
    """Append-only file handler that empties the file once it passes a cap.

    After truncation a rotation marker line is written before the record.
    """

    def __init__(self, filename: Path, max_bytes: int):
        Path(filename).parent.mkdir(parents=True, exist_ok=True)
        super().__init__(filename, mode="a", encoding="utf-8", delay=True)
        self.max_bytes = max_bytes

    def emit(self, record):
        try:
            if self._over_cap():
                self._truncate()
        except OSError:
            self.handleError(record)
            return
        super().emit(record)

    def _over_cap(self) -> bool:
        path = Path(self.baseFilename)
        return path.exists() and path.stat().st_size > self.max_bytes

    def _truncate(self) -> None:
        if self.stream is not None:
            self.stream.close()
            self.stream = None
        with open(self.baseFilename, "w", encoding="utf-8"):
            pass
        marker = logging.LogRecord(
            SYNC_LOGGER_NAME, logging.INFO, __file__, 0,
            f"Log rotated (exceeded {self.max_bytes // 1024}KB)", None, None
        )
        super().emit(marker)

    def handleError(self, record):
        # Best effort: the sync result matters more than its diagnostics
        pass


def configure_sync_logger(log_file: Path, max_bytes: int) -> logging.Logger:
    """Attach the capped file handler to the sync logger.

    Replaces any handler installed by an earlier call, so the logger always
    writes to exactly one file.
    """
    logger = logging.getLogger(SYNC_LOGGER_NAME)
    logger.setLevel(logging.INFO)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    try:
        handler = CappedFileHandler(log_file, max_bytes)
    except OSError:
        logger.addHandler(logging.NullHandler())
        return logger

    handler.setFormatter(SyncLogFormatter())
    logger.addHandler(handler)
    return logger
