"""
Logging Setup Test Suite
"""

import logging
import os
import sys

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from valuefarm.constants import LOG_DATE_FORMAT, LOG_FORMAT
from valuefarm.logger import (
    LogManager,
    TerminalSafeFormatter,
    checked_formats,
    get_logger,
)


class TestFormats:

    def test_valid_formats_kept(self):
        assert checked_formats("%(levelname)s %(message)s", "%H:%M") == (
            "%(levelname)s %(message)s", "%H:%M"
        )

    def test_malformed_log_format_falls_back(self, capsys):
        log_format, _ = checked_formats("%(asctime - (message)s", "%H:%M")
        assert log_format == LOG_FORMAT.default()
        assert "bad LOG_FORMAT" in capsys.readouterr().err

    def test_format_without_message_falls_back(self):
        log_format, _ = checked_formats("%(levelname)s", "%H:%M")
        assert log_format == LOG_FORMAT.default()

    def test_date_format_without_directives_falls_back(self):
        _, date_format = checked_formats("%(message)s", "today")
        assert date_format == LOG_DATE_FORMAT.default()


class TestSanitize:

    def test_strips_ansi_and_control_chars(self):
        raw = "\x1b[31mred\x1b[0m token\r\x07 name"
        assert TerminalSafeFormatter.sanitize(raw) == "red token name"

    def test_keeps_tabs_and_newlines(self):
        assert TerminalSafeFormatter.sanitize("a\tb\nc") == "a\tb\nc"

    def test_formatter_sanitizes_message(self):
        formatter = TerminalSafeFormatter(fmt="%(message)s")
        record = logging.LogRecord("x", logging.INFO, "", 0, "Fake\x1b[2J", (), None)
        assert formatter.format(record) == "Fake"


class TestManager:

    def test_singleton_configured_on_import(self):
        assert LogManager() is LogManager()
        assert LogManager().is_configured

    def test_get_logger(self):
        logger = get_logger("valuefarm.rewards")
        assert logger.name == "valuefarm.rewards"
        assert logging.getLogger().handlers
