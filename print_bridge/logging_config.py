# Logging configuration - rotating log file for the print bridge, error alert hook
# ERROR records (dead printers, server outages) are also handed to the running agent

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, List, Optional

LOG_FILE = Path(__file__).resolve().parent.parent / "logs" / "print_bridge.log"
LOG_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
LOG_BACKUP_COUNT = 5
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# requests/urllib3 log every connection at DEBUG; one poll every few seconds is noise
QUIET_LOGGERS = ("urllib3",)

AlertCallback = Callable[[str, str], None]

_error_alert_callback: Optional[AlertCallback] = None


def set_error_alert_callback(callback: Optional[AlertCallback]):
    """Register callback(message, level) for ERROR and above. None clears it."""
    global _error_alert_callback
    _error_alert_callback = callback


class ErrorAlertHandler(logging.Handler):
    """Forwards ERROR and CRITICAL records to the registered alert callback."""

    def __init__(self):
        super().__init__(level=logging.ERROR)

    def emit(self, record: logging.LogRecord):
        callback = _error_alert_callback
        if callback is None:
            return
        try:
            callback(self.format(record), record.levelname)
        except Exception:
            self.handleError(record)


def _build_handlers(log_path: Path, max_bytes: int, backup_count: int, console: bool) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [
        RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"),
    ]
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))
    handlers.append(ErrorAlertHandler())
    return handlers


def setup_logging(
    log_path: Optional[Path] = None,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
    console: bool = True,
    level: int = logging.INFO,
) -> Path:
    """
    Point the root logger at the bridge's rotating log file.

    Calling it again replaces the previous handlers, so a changed log path
    never leaves two files being written. Returns the log file path.
    """
    log_path = Path(log_path or LOG_FILE)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for handler in _build_handlers(log_path, max_bytes, backup_count, console):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_path
