import logging
import time
from pathlib import Path
from typing import Optional, Union

from loguru import logger
from rich.console import Console

# Report lines contain "[StopWatch]" and must not be read as rich markup
_console = Console(markup=False, highlight=False, soft_wrap=True)

# Half-width katakana block (U+FF61..U+FF9F) renders one cell wide
_HALFWIDTH_KATAKANA_START = 0xFF61
_HALFWIDTH_KATAKANA_END = 0xFF9F


def setup_logging(log_level: str = "INFO", log_file: Optional[Union[str, Path]] = None):
    """
    Configure loguru sinks for the profiler.

    - Optional file sink with rotation (all levels from log_level)
    - Console sink through rich: WARNING and above when a file sink is set,
      otherwise from log_level
    """
    log_level = (log_level or "INFO").upper()
    if log_level == "WARN":
        log_level = "WARNING"

    logger.remove()

    try:
        if log_file:
            log_file_path = Path(log_file).resolve()
            logger.add(
                log_file_path,
                level=log_level,
                format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
                enqueue=True,
                backtrace=True,
                diagnose=False,
                rotation="10 MB",
                retention="3 days",
            )

        logger.add(
            lambda msg: _console.print(msg, end=""),
            level="WARNING" if log_file else log_level,
            format="{time:HH:mm:ss} | {level: <8} | {message}",
            colorize=False,
        )

        logger.debug(f"Logging initialized (level={log_level}, file={log_file})")
    except Exception as e:
        logger.error(f"Failed to configure logging: {e}")

    # Profiled scripts often use stdlib logging; keep it quiet below WARNING
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def char_width(ch: str) -> int:
    """Display width of one character: 1 for narrow, 2 for everything else."""
    code = ord(ch)
    if code < 256 or _HALFWIDTH_KATAKANA_START <= code <= _HALFWIDTH_KATAKANA_END:
        return 1
    return 2


def display_width(text: Optional[str]) -> int:
    """
    Width of text in monospace cells.

    ASCII/Latin-1 and half-width katakana count as 1, all other characters as 2.
    """
    if not text:
        return 0
    return sum(char_width(ch) for ch in text)


def format_number(value: int) -> str:
    """Integer with thousands separators, e.g. 1234567 -> '1,234,567'."""
    return f"{int(value):,}"


def qualified_label(owner_label: Optional[str], callable_label: str) -> str:
    """'owner.callable' when an owner label is present, else just the callable label."""
    if owner_label:
        return f"{owner_label}.{callable_label}"
    return callable_label


def monotonic_ms() -> int:
    """Monotonic clock in whole milliseconds."""
    return time.perf_counter_ns() // 1_000_000


def print_text(text: str) -> None:
    """Print plain text to the console (no markup or highlighting)."""
    _console.print(text)
