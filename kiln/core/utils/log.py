import logging
import sys
from collections import deque

MAX_NAME_LENGTH = 18
MAX_HISTORY = 100

_TAGS = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "LOG  ",
    logging.WARNING: "WARN ",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "FATAL",
}

_COLORS = {
    logging.DEBUG: "\x1b[36m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[31m",
}

_RESET = "\x1b[0m"


class ConsoleFormatter(logging.Formatter):
    """
    Renders ``[LOG  ]server            :: message [2024-01-01 12:00:00]``.

    The module column is the last dotted part of the logger name, padded so
    messages line up.
    """

    def __init__(self, colored: bool = False) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")
        self._colored = colored

    def format(self, record: logging.LogRecord) -> str:
        tag = _TAGS.get(record.levelno, record.levelname[:5].ljust(5))
        module = record.name.rsplit(".", 1)[-1].ljust(MAX_NAME_LENGTH)
        timestamp = self.formatTime(record, self.datefmt)
        line = f"[{tag}]{module}:: {record.getMessage()} [{timestamp}]"

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"

        if self._colored:
            color = _COLORS.get(record.levelno, "")
            return f"{color}{line}{_RESET}"
        return line


class HistoryHandler(logging.Handler):
    def __init__(self, capacity: int = MAX_HISTORY) -> None:
        super().__init__()
        self._history: deque[str] = deque(maxlen=capacity)
        self.setFormatter(ConsoleFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._history.append(self.format(record))
        except Exception:
            self.handleError(record)

    def get_history(self) -> list[str]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()


history = HistoryHandler()


def setup_logging(level: str = "INFO") -> None:
    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(ConsoleFormatter(colored=sys.stderr.isatty()))

    logging.basicConfig(level=level, handlers=[stream, history], force=True)


def get_history() -> list[str]:
    return history.get_history()


def clear_history() -> None:
    history.clear_history()
