"""Logging setup: rich console output plus an optional plain-text log file."""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "chatgateway"

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    """Configure the ``chatgateway`` logger tree.

    Console output goes to stderr so it never mixes with command output.
    The log file, when given, always receives DEBUG records.
    """
    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.DEBUG if log_file else level)

    console = RichHandler(
        console=Console(stderr=True),
        level=level,
        show_path=verbose,
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        markup=False,
        log_time_format="[%X]",
    )
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        to_file = logging.FileHandler(log_file, encoding="utf-8")
        to_file.setLevel(logging.DEBUG)
        to_file.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(to_file)

    return root


class LogCapture(logging.Handler):
    """Collect records from a logger inside a ``with`` block.

    Example:
        >>> with LogCapture() as capture:
        ...     limiter.check("chat:u1")
        >>> capture.has_message("Rate limit exceeded", level=logging.WARNING)
    """

    def __init__(self, logger_name: str = ROOT_LOGGER, level: int = logging.DEBUG):
        super().__init__(level)
        self.logger = logging.getLogger(logger_name)
        self.records: list[logging.LogRecord] = []
        self._saved_level = self.logger.level

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    def __enter__(self) -> "LogCapture":
        self._saved_level = self.logger.level
        self.logger.setLevel(self.level)
        self.logger.addHandler(self)
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.logger.removeHandler(self)
        self.logger.setLevel(self._saved_level)

    @property
    def messages(self) -> list[str]:
        return [r.getMessage() for r in self.records]

    def has_message(self, substring: str, level: Optional[int] = None) -> bool:
        """True if a captured record contains ``substring`` at ``level`` (any if None)."""
        return any(
            substring in r.getMessage() and (level is None or r.levelno == level)
            for r in self.records
        )
