"""
Logging for SkinBet.

Every module logs through a child of the "skinbet" logger. Structured fields
go in `extra=` (user_id, game_id, event, ...) and are rendered by whichever
formatter is configured: key=value pairs for terminals and files, one JSON
object per line for log shippers.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

import orjson

ROOT_LOGGER = "skinbet"
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 3


# ANSI color codes for console output
class Colors:
    RESET = "\033[0m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"


_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def structured_fields(record: logging.LogRecord) -> Dict:
    """Fields that came in through `extra=`."""
    return {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}


class KeyValueFormatter(logging.Formatter):
    """`time | LEVEL | logger | message key=value ...`, optionally colored."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GRAY,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.MAGENTA,
    }

    def __init__(self, color: bool = False):
        super().__init__()
        self.color = color

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{Colors.RESET}" if self.color else text

    def format(self, record):
        message = record.getMessage()
        fields = structured_fields(record)
        if fields:
            pairs = " ".join(f"{k}={v}" for k, v in fields.items())
            message = f"{message} {self._paint(pairs, Colors.GRAY)}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        level_color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
        return " | ".join(
            [
                self._paint(self.formatTime(record, "%Y-%m-%d %H:%M:%S"), Colors.GRAY),
                self._paint(f"{record.levelname:<8}", level_color),
                self._paint(record.name, Colors.CYAN),
                message,
            ]
        )


class JsonFormatter(logging.Formatter):
    def format(self, record):
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(structured_fields(record))
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        # Decimals and datetimes in extras fall back to str
        return orjson.dumps(entry, default=str).decode()


FORMATTERS = {
    "color": lambda: KeyValueFormatter(color=True),
    "plain": KeyValueFormatter,
    "json": JsonFormatter,
}


def _file_handler(path: Path) -> Optional[logging.Handler]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=MAX_FILE_SIZE, backupCount=BACKUP_COUNT)
    except OSError as e:
        sys.stderr.write(f"WARNING: Could not set up file logging: {e}\n")
        sys.stderr.write("Continuing with console logging only.\n")
        return None
    handler.setFormatter(KeyValueFormatter())
    return handler


def configure_logging(
    level: str = "INFO",
    formatter: str = "color",
    log_to_file: bool = False,
    log_file_path: Optional[Path] = None,
) -> logging.Logger:
    """
    (Re)configure the "skinbet" logger tree.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        formatter: "color", "plain" or "json" for the console handler
        log_to_file: Whether to also write a rotating plain-text log file
        log_file_path: Where the log file goes

    Returns:
        The "skinbet" logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(FORMATTERS.get(formatter, FORMATTERS["color"])())
    logger.addHandler(console)

    if log_to_file and log_file_path is not None:
        file_handler = _file_handler(Path(log_file_path))
        if file_handler is not None:
            logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def get_logger(name: str = None) -> logging.Logger:
    """Child of the "skinbet" logger, e.g. get_logger("settlement")."""
    logger = logging.getLogger(ROOT_LOGGER)
    if not logger.handlers:
        configure_logging()
    return logger.getChild(name) if name else logger


def init_logging(
    level: str = "INFO",
    log_to_file: bool = False,
    formatter: str = "color",
    log_file_path: Optional[Path] = None,
):
    """Apply the configured logging settings. Called once at startup."""
    logger = configure_logging(
        level=level, formatter=formatter, log_to_file=log_to_file, log_file_path=log_file_path
    )
    logger.info(f"Logging initialized at {level} level")
