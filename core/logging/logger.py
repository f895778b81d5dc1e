"""
Centralized logging configuration for TickerFeed.

Uses rotating file handler with logs stored in logs/ directory.
Includes colored console output for debug mode.
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


_VERBOSE: bool = False
# Base directory for logs. Defaults to the project root; TICKERFEED_LOG_DIR
# overrides it so installed copies do not write into site-packages.
_BASE_DIR: Path = Path(__file__).parent.parent.parent

_env_log_dir = os.getenv("TICKERFEED_LOG_DIR")
if _env_log_dir:
    _BASE_DIR = Path(_env_log_dir).expanduser()


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',       # Cyan
        'INFO': '\033[32m',        # Green
        'WARNING': '\033[33m',     # Yellow
        'ERROR': '\033[31m',       # Red
        'CRITICAL': '\033[35m',    # Magenta
    }
    FALLBACK_COLOR = '\033[38;5;208m'
    RESET = '\033[0m'
    BOLD = '\033[1m'

    def format(self, record):
        original_levelname = record.levelname
        original_msg = record.msg

        # Sequential relay fallback gets its own colour so degraded fetches
        # stand out regardless of level.
        is_fallback = '[FALLBACK]' in str(record.msg)

        color = None
        if is_fallback:
            color = self.FALLBACK_COLOR
        elif record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]

        if color is not None:
            record.levelname = f"{self.BOLD}{color}{record.levelname}{self.RESET}"
            message = super().format(record)
            colored_message = f"{color}{message}{self.RESET}"
            record.levelname = original_levelname
            record.msg = original_msg
            return colored_message

        record.levelname = original_levelname
        record.msg = original_msg
        return super().format(record)


class SuppressingStreamHandler(logging.StreamHandler):
    """Stream handler that suppresses consecutive duplicate sources.

    Repeated DEBUG/INFO lines from the same logger/level are collapsed into a
    single summary line like "[N Suppressed: CHECK LOG]" while file logs
    remain unaffected. Retry storms against a dead relay are the usual cause.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._last_name: str | None = None
        self._last_level: int | None = None
        self._suppress_count: int = 0
        self._last_record: logging.LogRecord | None = None

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._emit_with_suppression(record)
        except Exception:
            self.handleError(record)

    def _emit_with_suppression(self, record: logging.LogRecord) -> None:
        if record.levelno >= logging.WARNING:
            self._flush_summary()
            self._emit_record(record)
            self._reset(None, None, None)
            return

        if self._last_name is None:
            self._emit_record(record)
            self._reset(record.name, record.levelno, record)
            return

        if record.name == self._last_name and record.levelno == self._last_level:
            self._suppress_count += 1
            self._last_record = record
            return

        self._flush_summary()
        self._emit_record(record)
        self._reset(record.name, record.levelno, record)

    def _reset(self, name, level, record) -> None:
        self._last_name = name
        self._last_level = level
        self._suppress_count = 0
        self._last_record = record

    def _emit_record(self, record: logging.LogRecord) -> None:
        """Emit a single record with a Unicode-safe fallback.

        Feed titles routinely carry characters the console encoding cannot
        represent; the console line is degraded with replacement characters
        while the file log keeps the original text.
        """
        try:
            msg = self.format(record)
            stream = self.stream
            if stream is None:
                return
            text = msg + self.terminator
            try:
                stream.write(text)
            except UnicodeEncodeError:
                encoding = getattr(stream, "encoding", None) or "ascii"
                stream.write(
                    text.encode(encoding, errors="replace").decode(encoding, errors="replace")
                )
            self.flush()
        except Exception:
            self.handleError(record)

    def _flush_summary(self) -> None:
        if self._suppress_count <= 0 or self._last_record is None:
            self._suppress_count = 0
            self._last_record = None
            return

        last = self._last_record
        summary = logging.LogRecord(
            last.name,
            last.levelno,
            last.pathname,
            last.lineno,
            f"[{self._suppress_count} Suppressed: CHECK LOG]",
            args=None,
            exc_info=None,
        )
        summary.created = last.created
        summary.msecs = last.msecs
        summary.relativeCreated = last.relativeCreated
        self._emit_record(summary)

        self._suppress_count = 0
        self._last_record = None

    def close(self) -> None:
        try:
            self._flush_summary()
        finally:
            super().close()


def get_log_dir() -> Path:
    """Return the directory used for log files."""
    return _BASE_DIR / "logs"


def setup_logging(debug: bool = False, verbose: bool = False) -> None:
    """
    Configure application logging with file rotation.

    Args:
        debug: If True, set log level to DEBUG and enable console output.
        verbose: When True, also lets the HTTP client and asyncio internals
            log at DEBUG. Verbose mode implies debug-level logging.
    """
    global _VERBOSE

    debug_enabled = debug or verbose

    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "tickerfeed.log"

    level = logging.DEBUG if debug_enabled else logging.INFO

    formatter = logging.Formatter(
        '%(asctime)s - %(name)-24s - %(levelname)-8s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # File handler with rotation (1MB max, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)

    console_handler = SuppressingStreamHandler(sys.stderr)
    console_format = '%(asctime)s - %(name)-24s - %(levelname)-8s - %(message)s'
    if debug_enabled and sys.stderr.isatty():
        console_handler.setFormatter(ColoredFormatter(console_format, datefmt='%H:%M:%S'))
    else:
        console_handler.setFormatter(logging.Formatter(console_format, datefmt='%H:%M:%S'))
    console_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)

    if debug_enabled:
        root_logger.addHandler(console_handler)

    # HTTP client and event loop chatter only shows up when explicitly
    # asked for.
    noisy_level = logging.DEBUG if verbose else logging.INFO
    for name in ("aiohttp", "aiohttp.client", "asyncio", "chardet"):
        logging.getLogger(name).setLevel(noisy_level)

    _VERBOSE = bool(verbose)

    root_logger.info("=" * 60)
    root_logger.info(
        "TickerFeed logging initialized (debug=%s, verbose=%s)",
        debug_enabled,
        _VERBOSE,
    )
    root_logger.info("=" * 60)


_SHORT_NAME_OVERRIDES = {
    "feeds.coordinator": "feeds.coord",
    "core.settings.settings_manager": "SettingsManager",
}


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with optional short-name overrides for noisy modules."""
    actual = _SHORT_NAME_OVERRIDES.get(name, name)
    return logging.getLogger(actual)


def is_verbose_logging() -> bool:
    """Return True when verbose debug logging is enabled globally."""

    return _VERBOSE
