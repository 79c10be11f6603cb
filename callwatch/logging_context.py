"""
Context variables for the current execution path.

The execution path identifies the script or handler being profiled (the
default profiler and logger name). It is bound per async task / thread
context so concurrent requests keep their own value.
"""
import contextvars
from contextlib import contextmanager
from typing import Iterator, Optional

DEFAULT_PATH = "__main__"

current_path: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "current_path", default=None
)


def get_current_path() -> str:
    """Return the execution path of this context, or DEFAULT_PATH when unset."""
    path = current_path.get()
    return path if path is not None else DEFAULT_PATH


@contextmanager
def path_override(path: str) -> Iterator[str]:
    """
    Temporarily report a different execution path.

    Used by forward() so the forwarded script sees its own path.
    """
    token = current_path.set(path)
    try:
        yield path
    finally:
        current_path.reset(token)


def get_context_prefix() -> str:
    """
    Build a context prefix string for logs, e.g. "[app/index] ".
    """
    path = current_path.get()
    if path:
        return f"[{path}] "
    return ""
