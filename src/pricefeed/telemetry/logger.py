"""
Logging for the price feed.

Records from the `pricefeed` logger tree are queued and written by a
background listener thread, so console or file I/O never stalls the event
loop that polls prices and serves subscribers.

Lines name the component that emitted them (`market.candles` rather than
`pricefeed.market.candles`) and end with any asset or subscriber context the
call site passed through `extra`:

    logger.warning("Upstream OHLC failed", extra={"symbol": "BTC", "interval": "24H"})
"""

import logging
import sys
from datetime import datetime
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from queue import Queue

from pricefeed.config.constants import (
    LOG_COMPONENTS,
    LOG_CONTEXT_FIELDS,
    LOG_DATE_FORMAT,
    LOG_FORMAT,
    LOG_ROOT,
    MAX_LOG_QUEUE_SIZE,
)


def component_name(logger_name: str) -> str:
    """Strip the package prefix from a service logger name."""
    prefix = f"{LOG_ROOT}."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix):]
    return logger_name


class FeedFormatter(logging.Formatter):
    """Microsecond timestamps, short component names and trailing context."""

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: str = LOG_DATE_FORMAT) -> None:
        super().__init__(fmt, datefmt)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        ct = datetime.fromtimestamp(record.created)
        s = ct.strftime(datefmt or LOG_DATE_FORMAT)
        return f"{s}.{int(record.msecs * 1000):06d}"

    def format(self, record: logging.LogRecord) -> str:
        record.component = component_name(record.name)

        parts = [
            f"{field}={getattr(record, field)}"
            for field in LOG_CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        ]
        record.context = f" [{' '.join(parts)}]" if parts else ""

        return super().format(record)


class LogPipeline:
    """
    Queue-backed output for the service logger tree.

    The `pricefeed` logger gets a QueueHandler; a QueueListener drains it into
    the console (and optionally a file). Per-component levels let one area,
    say `upstream`, run at DEBUG while the rest stays at INFO.
    """

    def __init__(
        self,
        level: int = logging.INFO,
        log_file: Path | None = None,
        component_levels: dict[str, str] | None = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            level: Level of the service logger tree.
            log_file: Optional file receiving the same records as the console.
            component_levels: Level overrides keyed by component name.

        Raises:
            ValueError: If a component is not part of the service.
        """
        unknown = set(component_levels or {}) - set(LOG_COMPONENTS)
        if unknown:
            raise ValueError(f"Unknown log components: {', '.join(sorted(unknown))}")

        self._level = level
        self._log_file = log_file
        self._component_levels = {
            component: logging.getLevelName(name.upper())
            for component, name in (component_levels or {}).items()
        }
        self._queue: Queue[logging.LogRecord] = Queue(maxsize=MAX_LOG_QUEUE_SIZE)
        self._queue_handler: QueueHandler | None = None
        self._listener: QueueListener | None = None
        self._handlers: list[logging.Handler] = []
        self._logger = logging.getLogger(LOG_ROOT)
        self._previous_level = self._logger.level

    def start(self) -> None:
        """Attach the queue handler and start the listener thread."""
        if self._listener is not None:
            return

        formatter = FeedFormatter()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        self._handlers = [console_handler]

        if self._log_file:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self._log_file)
            file_handler.setFormatter(formatter)
            self._handlers.append(file_handler)

        self._queue_handler = QueueHandler(self._queue)
        self._logger.addHandler(self._queue_handler)
        self._previous_level = self._logger.level
        self._logger.setLevel(self._level)

        for component, level in self._component_levels.items():
            logging.getLogger(f"{LOG_ROOT}.{component}").setLevel(level)

        # Filtering happens on the loggers; handlers write whatever is queued
        self._listener = QueueListener(
            self._queue,
            *self._handlers,
            respect_handler_level=False,
        )
        self._listener.start()

    def stop(self) -> None:
        """Flush queued records and detach from the logger tree."""
        if self._listener is not None:
            self._listener.stop()
            self._listener = None

        if self._queue_handler is not None:
            self._logger.removeHandler(self._queue_handler)
            self._queue_handler = None
            self._logger.setLevel(self._previous_level)

        for handler in self._handlers:
            handler.close()
        self._handlers = []

        for component in self._component_levels:
            logging.getLogger(f"{LOG_ROOT}.{component}").setLevel(logging.NOTSET)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def is_running(self) -> bool:
        return self._listener is not None

    def __enter__(self) -> "LogPipeline":
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    component_levels: dict[str, str] | None = None,
) -> LogPipeline:
    """
    Set up logging for the service process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file path.
        component_levels: Level overrides such as `{"upstream": "DEBUG"}`.

    Returns:
        The started pipeline; call `stop()` on shutdown to flush it.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    pipeline = LogPipeline(
        level=numeric_level,
        log_file=log_file,
        component_levels=component_levels,
    )
    pipeline.start()

    # Suppress noisy third-party loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return pipeline
