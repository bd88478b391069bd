"""Logging configuration for ThinkTank."""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "thinktank"

LOG_FORMAT = "%(message)s"
LOG_DATE_FORMAT = "[%X]"
FILE_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Provider SDKs log every HTTP request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "openai")


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    verbose: bool = False,
) -> logging.Logger:
    """Set up logging with a Rich handler on the ``thinktank`` logger.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional path to a log file (always written at DEBUG)
        verbose: Enable debug output, source paths and locals in tracebacks

    Returns:
        The configured package logger
    """
    if verbose:
        level = logging.DEBUG

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if log_file else level)
    logger.handlers.clear()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=verbose,
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        markup=False,
    )
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(FILE_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger under the ``thinktank`` namespace.

    Args:
        name: Logger name (will be prefixed with 'thinktank.')
    """
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)


class LogCapture:
    """Context manager that records log messages, for tests.

    Example:
        with LogCapture() as logs:
            await service.determine_speaker(...)
        assert logs.has_message("falling back", level=logging.WARNING)
    """

    def __init__(self, logger_name: str = ROOT_LOGGER, level: int = logging.DEBUG):
        self.logger_name = logger_name
        self.level = level
        self.records: list[logging.LogRecord] = []
        self._handler: Optional[logging.Handler] = None
        self._previous_level: Optional[int] = None

    def __enter__(self) -> "LogCapture":
        logger = logging.getLogger(self.logger_name)
        self._handler = _CaptureHandler(self.records)
        self._handler.setLevel(self.level)
        self._previous_level = logger.level
        if logger.level == logging.NOTSET or logger.level > self.level:
            logger.setLevel(self.level)
        logger.addHandler(self._handler)
        return self

    def __exit__(self, *args) -> None:
        logger = logging.getLogger(self.logger_name)
        if self._handler:
            logger.removeHandler(self._handler)
        if self._previous_level is not None:
            logger.setLevel(self._previous_level)

    @property
    def messages(self) -> list[str]:
        """Captured log messages."""
        return [record.getMessage() for record in self.records]

    def has_message(self, substring: str, level: Optional[int] = None) -> bool:
        """Check if any captured message (optionally at ``level``) contains substring."""
        return any(
            substring in record.getMessage()
            for record in self.records
            if level is None or record.levelno == level
        )


class _CaptureHandler(logging.Handler):
    def __init__(self, records: list[logging.LogRecord]):
        super().__init__()
        self.records = records

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)
