"""
Leveled logger with "{}" placeholders.

Messages are formatted by substituting each "{}" in order, either from the
positional arguments or from a single list/tuple argument:

    log = CompatibleLogger("profiler")
    log.error("StopWatch({})#stop is called without start.", "db")
    log.info("{} calls, {} ms", [3, 12])

Without an explicit sink the lines go to loguru at the matching level.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, Sequence

from loguru import logger

from .logging_context import get_current_path

LEVELS = ("TRACE", "DEBUG", "INFO", "WARN", "ERROR")

_LEVEL_ORDER: Dict[str, int] = {name: idx for idx, name in enumerate(LEVELS)}

# loguru has no "WARN" level name
_LOGURU_LEVELS = {
    "TRACE": "TRACE",
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "WARN": "WARNING",
    "ERROR": "ERROR",
}

PLACEHOLDER = "{}"


def normalize_level(level: str) -> str:
    """Map a level name (any case, WARNING/CRITICAL aliases) to one of LEVELS."""
    lvl = (level or "INFO").upper()
    if lvl == "WARNING":
        return "WARN"
    if lvl == "CRITICAL":
        return "ERROR"
    if lvl not in _LEVEL_ORDER:
        raise ValueError(f"Unknown log level: {level}")
    return lvl


def substitute(message: str, args: Sequence) -> str:
    """
    Replace "{}" placeholders left to right with str(arg).

    A single list/tuple argument supplies the values. Extra placeholders are
    left as-is, extra arguments are ignored.
    """
    message = str(message)
    if not args:
        return message
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        args = args[0]

    parts = []
    pos = 0
    for arg in args:
        idx = message.find(PLACEHOLDER, pos)
        if idx < 0:
            break
        parts.append(message[pos:idx])
        parts.append(str(arg))
        pos = idx + len(PLACEHOLDER)
    parts.append(message[pos:])
    return "".join(parts)


class CompatibleLogger:
    """
    Logger exposing log/trace/debug/info/warn/error and is_*_enabled().

    Args:
        name: Logger name. Defaults to the current execution path.
        sink: Callable receiving each formatted line "[LEVEL] name - message".
              When None, messages are forwarded to loguru.
        level: Minimum enabled level.
    """

    def __init__(
        self,
        name: Optional[str] = None,
        sink: Optional[Callable[[str], None]] = None,
        level: str = "TRACE",
    ):
        self.name = name if name is not None else get_current_path()
        self.sink = sink
        self.level = normalize_level(level)

    def set_level(self, level: str) -> None:
        self.level = normalize_level(level)

    def is_enabled(self, level: str) -> bool:
        return _LEVEL_ORDER[normalize_level(level)] >= _LEVEL_ORDER[self.level]

    def log(self, level: str, message: str, *args) -> None:
        lvl = normalize_level(level)
        if not self.is_enabled(lvl):
            return
        text = substitute(message, args)
        if self.sink is None:
            logger.log(_LOGURU_LEVELS[lvl], f"{self.name} - {text}")
        else:
            self.sink(f"[{lvl}] {self.name} - {text}")

    def trace(self, message: str, *args) -> None:
        self.log("TRACE", message, *args)

    def debug(self, message: str, *args) -> None:
        self.log("DEBUG", message, *args)

    def info(self, message: str, *args) -> None:
        self.log("INFO", message, *args)

    def warn(self, message: str, *args) -> None:
        self.log("WARN", message, *args)

    warning = warn

    def error(self, message: str, *args) -> None:
        self.log("ERROR", message, *args)

    def is_trace_enabled(self) -> bool:
        return self.is_enabled("TRACE")

    def is_debug_enabled(self) -> bool:
        return self.is_enabled("DEBUG")

    def is_info_enabled(self) -> bool:
        return self.is_enabled("INFO")

    def is_warn_enabled(self) -> bool:
        return self.is_enabled("WARN")

    def is_error_enabled(self) -> bool:
        return self.is_enabled("ERROR")


def get_logger(name: Optional[str] = None, level: str = "TRACE") -> CompatibleLogger:
    """Logger for the given name (default: current execution path) forwarding to loguru."""
    return CompatibleLogger(name=name, level=level)
