"""
valuefarm Logging

Every module logs through ``get_logger(__name__)``.  The root logger is set
up once, on first import: a ``rich`` console handler that colours
addresses, transaction hashes and pool ids, plus an optional rotating log
file.  Levels, formats and the file toggle come from ``.env`` (see
``valuefarm.constants``).

    >>> from valuefarm.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Pool #0 added")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Tuple

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_FILE_OUTPUT,
)


LOG_FILE_PATH = Path(__file__).parent.parent / "logs" / "valuefarm.log"

THEME = Theme(
    {
        "valuefarm.address":        "cyan",
        "valuefarm.tx_hash":        "magenta",
        "valuefarm.pool":           "bold yellow",
        "valuefarm.arrow":          "bold yellow",
        "valuefarm.level_critical": "bold red reverse",
        "valuefarm.level_debug":    "bold dim",
        "valuefarm.level_error":    "bold red",
        "valuefarm.level_info":     "bold green",
        "valuefarm.level_warning":  "bold yellow",
        "valuefarm.timestamp":      "bold cyan",
    }
)


def checked_formats(log_format: str, date_format: str) -> Tuple[str, str]:
    """
    Return ``(log_format, date_format)``, swapping either for its default
    when it cannot format a sample record.
    """
    record = logging.LogRecord("valuefarm", logging.INFO, "", 0, "check", (), None)
    try:
        logging.Formatter(fmt=str(log_format or "")).format(record)
        if not log_format or "%(message)s" not in str(log_format):
            raise ValueError("log format must contain %(message)s")
    except (ValueError, KeyError, TypeError) as e:
        print(f"valuefarm.logger: bad LOG_FORMAT ({e}), using default", file=sys.stderr)
        log_format = LOG_FORMAT.default()
    try:
        if not date_format or "%" not in str(date_format):
            raise ValueError("date format has no directives")
        time.strftime(str(date_format))
    except (ValueError, TypeError) as e:
        print(f"valuefarm.logger: bad LOG_DATE_FORMAT ({e}), using default", file=sys.stderr)
        date_format = LOG_DATE_FORMAT.default()
    return str(log_format), str(date_format)


class TerminalSafeFormatter(logging.Formatter):
    """Formatter that strips ANSI escapes and control characters.

    Token names and call signatures are user-supplied and end up in log
    lines verbatim.
    """

    _unsafe_re = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]|[\x00-\x08\x0B-\x1F\x7F]"
    )

    @classmethod
    def sanitize(cls, text: str) -> str:
        return cls._unsafe_re.sub("", text) if text else text

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class ValueFarmLogHighlighter(RegexHighlighter):
    """Rich highlighter for contract addresses, tx hashes and pool ids."""

    base_style = "valuefarm."
    highlights = [
        r"(?P<tx_hash>\b0x[0-9a-fA-F]{64}\b)",
        r"(?P<address>\b0x[0-9a-fA-F]{40}\b)",
        r"(?P<pool>Pool #\d+)",
        r"(?P<arrow>→)",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<timestamp>^(.*?)UTC)",
    ]


class LogManager:
    """Process-wide owner of the root logger configuration (singleton)."""

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._configured = False
        return cls._instance

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install handlers on the root logger.  Later calls are no-ops.

        Args:
            log_level: Level name; defaults to ``LOG_LEVEL``.
            log_file: Rotating log path; defaults to ``logs/valuefarm.log``.
            console_output: Attach the console handler.
            file_output: Attach the file handler; defaults to ``LOG_FILE_OUTPUT``.
        """
        with self._lock:
            if self._configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            root = logging.getLogger()
            root.setLevel(level)
            root.handlers.clear()

            log_format, date_format = checked_formats(LOG_FORMAT, LOG_DATE_FORMAT)
            formatter = TerminalSafeFormatter(fmt=log_format, datefmt=date_format + " UTC")
            formatter.converter = time.gmtime

            handlers = []
            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    handlers.append(RichHandler(
                        console=Console(theme=THEME, highlight=False),
                        highlighter=ValueFarmLogHighlighter(),
                        keywords=[],
                        rich_tracebacks=True,
                        show_path=False,
                        show_time=False,
                        show_level=False,
                        markup=False,
                    ))
                else:
                    handlers.append(logging.StreamHandler(sys.stdout))

            if file_output if file_output is not None else bool(LOG_FILE_OUTPUT):
                path = log_file or LOG_FILE_PATH
                path.parent.mkdir(parents=True, exist_ok=True)
                handlers.append(logging.handlers.RotatingFileHandler(
                    filename=str(path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                ))

            for handler in handlers:
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            self._configured = True

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    @property
    def is_configured(self) -> bool:
        return self._configured


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` with the valuefarm handlers installed."""
    return _manager.get_logger(name)


_manager.configure()
