import logging
import sys
from typing import Any

LOGGER_NAME = "hls_worker"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


class ContextFormatter(logging.Formatter):
    """Appends the record's key=value context after the message."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context: dict[str, Any] = getattr(record, "context", None) or {}
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items() if value is not None)
        return f"{line} {pairs}" if pairs else line


class Log:
    """Process-wide logger for the worker.

    Keyword arguments passed to any level become key=value context on the
    line. Fields bound at configure time (the worker id) go on every line so
    output from several workers sharing a log sink can be told apart.
    """

    _logger: logging.Logger = logging.getLogger(LOGGER_NAME)
    _bound: dict[str, object] = {}

    @classmethod
    def configure(cls, log_level: str, **bound: object) -> None:
        """Set the level, install the stdout handler once, and bind context fields."""
        cls._logger.setLevel(log_level.upper())
        cls._bound = dict(bound)
        if not cls._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(ContextFormatter(LOG_FORMAT))
            cls._logger.addHandler(handler)

    @classmethod
    def _log(cls, level: int, message: str, context: dict[str, object], **kwargs: Any) -> None:
        cls._logger.log(
            level,
            message,
            extra={"context": {**cls._bound, **context}},
            stacklevel=3,
            **kwargs,
        )

    @classmethod
    def info(cls, message: str, **context: object) -> None:
        cls._log(logging.INFO, message, context)

    @classmethod
    def error(cls, message: str, **context: object) -> None:
        cls._log(logging.ERROR, message, context)

    @classmethod
    def exception(cls, message: str, **context: object) -> None:
        """Log at ERROR with the active exception's traceback."""
        cls._log(logging.ERROR, message, context, exc_info=True)

    @classmethod
    def warning(cls, message: str, **context: object) -> None:
        cls._log(logging.WARNING, message, context)

    @classmethod
    def debug(cls, message: str, **context: object) -> None:
        cls._log(logging.DEBUG, message, context)
