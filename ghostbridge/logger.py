"""
Ghost Bridge Logging
====================

Root logger setup for keepers and tooling. Console output goes through a
``rich`` handler with engine-specific highlighting; an optional rotating file
handler keeps a UTC-stamped copy. Every formatted line is stripped of
terminal control sequences, since log arguments routinely include
caller-supplied bytes such as sealed payloads and feed data.

Usage:
    >>> from ghostbridge.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Keeper started")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    DEFAULT_LOG_DATE_FORMAT,
    DEFAULT_LOG_FORMAT,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_DATE_FORMAT,
    LOG_FILE_OUTPUT,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_MAX_FILE_SIZE,
)

LOG_FILE_PATH = Path(__file__).parent.parent / "logs" / "ghostbridge.log"

GHOST_THEME = Theme({
    "ghost.level_critical": "bold red reverse",
    "ghost.level_error":    "bold red",
    "ghost.level_warning":  "bold yellow",
    "ghost.level_info":     "bold green",
    "ghost.level_debug":    "bold dim",
    "ghost.logger_name":    "magenta",
    "ghost.hash":           "cyan",
    "ghost.status":         "bold white",
    "ghost.timestamp":      "bold cyan",
})


class SanitizingFormatter(logging.Formatter):
    """Formatter that drops ANSI escapes, carriage returns and other control characters."""

    _escape_re = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
    _control_re = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        return cls._control_re.sub("", cls._escape_re.sub("", text))

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class GhostLogHighlighter(RegexHighlighter):
    """Highlights levels, hex identities and order statuses."""

    base_style = "ghost."
    highlights = [
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>ghostbridge[\w.]*)(?=\s-\s)",
        r"(?P<hash>\b0x[0-9a-f]{8,64}\b)",
        r"(?P<status>\b(PENDING|ACTIVE|TRIGGERED|READY_TO_EXECUTE|EXECUTED|CANCELLED|EXPIRED)\b)",
        r"(?P<timestamp>^(.*?)UTC)",
    ]


def _checked_format(log_format: str) -> str:
    """Fall back to the default format when ``log_format`` cannot render a record."""
    record = logging.LogRecord("check", logging.INFO, "", 0, "message", (), None)
    try:
        rendered = logging.Formatter(fmt=log_format).format(record)
    except (ValueError, KeyError, TypeError) as e:
        print(f"ghostbridge.logger - invalid LOG_FORMAT ({e}), using default", file=sys.stderr)
        return DEFAULT_LOG_FORMAT
    if "message" not in rendered:
        return DEFAULT_LOG_FORMAT
    return log_format


def _checked_date_format(date_format: str) -> str:
    if not date_format or "%" not in date_format:
        return DEFAULT_LOG_DATE_FORMAT
    try:
        time.strftime(date_format)
    except ValueError:
        return DEFAULT_LOG_DATE_FORMAT
    return date_format


class LogManager:
    """Configures the root logger exactly once per process."""

    _lock = threading.Lock()

    def __init__(self) -> None:
        self.configured = False

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        with self._lock:
            if self.configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            root = logging.getLogger()
            root.setLevel(level)

            formatter = SanitizingFormatter(
                fmt=_checked_format(str(LOG_FORMAT)),
                datefmt=_checked_date_format(str(LOG_DATE_FORMAT)) + " UTC",
            )
            formatter.converter = time.gmtime

            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    handler = RichHandler(
                        console=Console(theme=GHOST_THEME, highlight=False, stderr=True),
                        highlighter=GhostLogHighlighter(),
                        keywords=[],
                        rich_tracebacks=True,
                        show_path=False,
                        show_time=False,
                        show_level=False,
                        markup=False,
                    )
                else:
                    handler = logging.StreamHandler(sys.stderr)
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            if LOG_FILE_OUTPUT if file_output is None else file_output:
                path = log_file or LOG_FILE_PATH
                path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setLevel(level)
                file_handler.setFormatter(formatter)
                root.addHandler(file_handler)

            self.configured = True

    def get_logger(self, name: str) -> logging.Logger:
        if not self.configured:
            self.configure()
        return logging.getLogger(name)


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    return _manager.get_logger(name)
