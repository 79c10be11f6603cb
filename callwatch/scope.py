"""
Execution scopes and the per-scope statistics store.

An execution scope is one logical unit of work (one request, one script
run). Its ambient storage is a ScopeAttributes object bound to a context
variable, so concurrent threads/tasks that enter their own scope never see
each other's statistics.

Usage:
    with execution_scope("app/index") as scope:
        store = get_scope_store()
        ...
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from .logging_context import current_path

DEFAULT_CONTENT_ID = "profiler"


class ScopeAttributes:
    """Key/value storage owned by one execution scope."""

    def __init__(self, name: Optional[str] = None):
        self.name = name
        self._attributes: Dict[str, Any] = {}

    def get_attribute(self, key: str) -> Any:
        return self._attributes.get(key)

    def set_attribute(self, key: str, value: Any) -> None:
        self._attributes[key] = value

    def remove_attribute(self, key: str) -> None:
        self._attributes.pop(key, None)

    def keys(self):
        return list(self._attributes.keys())


# Used when code runs outside any explicit scope
_process_scope = ScopeAttributes("<process>")

_active_scope: contextvars.ContextVar[Optional[ScopeAttributes]] = contextvars.ContextVar(
    "active_scope", default=None
)


def get_active_scope() -> ScopeAttributes:
    """Ambient storage of the current scope (process-level fallback when none is active)."""
    scope = _active_scope.get()
    return scope if scope is not None else _process_scope


@contextmanager
def execution_scope(name: Optional[str] = None) -> Iterator[ScopeAttributes]:
    """
    Open a fresh execution scope.

    The scope's storage (and every ScopeStore in it) is dropped on exit. When
    a name is given it also becomes the current execution path.
    """
    scope = ScopeAttributes(name)
    scope_token = _active_scope.set(scope)
    path_token = current_path.set(name) if name is not None else None
    try:
        yield scope
    finally:
        if path_token is not None:
            current_path.reset(path_token)
        _active_scope.reset(scope_token)


class ScopeStore:
    """
    Statistics of one execution scope.

    function_stats: id(original callable) -> CallableStat, insertion ordered
    stopwatches:    stopwatch name -> StopWatch, insertion ordered

    Both maps live in the scope's attributes under "<content_id>.functionStats"
    and "<content_id>.stopWatches" and are created on first access.
    """

    def __init__(self, attributes: ScopeAttributes, content_id: str = DEFAULT_CONTENT_ID):
        self.attributes = attributes
        self.content_id = content_id

    @property
    def function_stats_key(self) -> str:
        return f"{self.content_id}.functionStats"

    @property
    def stopwatches_key(self) -> str:
        return f"{self.content_id}.stopWatches"

    def _get_or_create(self, key: str) -> dict:
        value = self.attributes.get_attribute(key)
        if value is None:
            value = {}
            self.attributes.set_attribute(key, value)
        return value

    @property
    def function_stats(self) -> dict:
        return self._get_or_create(self.function_stats_key)

    @property
    def stopwatches(self) -> dict:
        return self._get_or_create(self.stopwatches_key)

    def has_entries(self) -> bool:
        return bool(self.attributes.get_attribute(self.function_stats_key)) or bool(
            self.attributes.get_attribute(self.stopwatches_key)
        )


def get_scope_store(
    content_id: str = DEFAULT_CONTENT_ID, scope: Optional[ScopeAttributes] = None
) -> ScopeStore:
    """ScopeStore view over the given scope, or the active one."""
    return ScopeStore(scope if scope is not None else get_active_scope(), content_id)
