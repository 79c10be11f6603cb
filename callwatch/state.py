"""
Process-wide instrumentation state.

Holds the interception registry (which callables are wrapped, and by what)
and the init-once latches (library sweep). This state is shared by every
execution scope on purpose: a receiver is wrapped once for the process and
all later scopes reuse the wrapper.

First-touch initialisation is serialised by a single re-entrant lock.
"""

from __future__ import annotations

import threading
import weakref
from typing import Callable, Dict, Optional, Set, Tuple


class InterceptionRegistry:
    """
    Side table of installed wrappers keyed by identity.

    original id -> (original, wrapper)
    wrapper id  -> (wrapper, original)

    Both sides are held through weak references where the type allows it, and
    an entry is dropped as soon as either side is collected. An instrumented
    instance (whose bound methods are the originals) can therefore be freed
    once nothing else refers to it. Objects without weakref support are held
    strongly.
    """

    def __init__(self):
        self._by_original: Dict[int, Tuple[Callable, Callable]] = {}
        self._by_wrapper: Dict[int, Tuple[Callable, Callable]] = {}

    def register(self, original: Callable, wrapper: Callable) -> None:
        original_key = id(original)
        wrapper_key = id(wrapper)

        def _drop(_ref):
            if self._by_original.get(original_key) is forward:
                del self._by_original[original_key]
            if self._by_wrapper.get(wrapper_key) is backward:
                del self._by_wrapper[wrapper_key]

        original_ref = _reference(original, _drop)
        wrapper_ref = _reference(wrapper, _drop)
        forward = (original_ref, wrapper_ref)
        backward = (wrapper_ref, original_ref)
        self._by_original[original_key] = forward
        self._by_wrapper[wrapper_key] = backward

    def is_wrapper(self, value) -> bool:
        entry = self._by_wrapper.get(id(value))
        return entry is not None and entry[0]() is value

    def wrapper_for(self, original) -> Optional[Callable]:
        entry = self._by_original.get(id(original))
        if entry is not None and entry[0]() is original:
            return entry[1]()
        return None

    def original_of(self, wrapper) -> Optional[Callable]:
        entry = self._by_wrapper.get(id(wrapper))
        if entry is not None and entry[0]() is wrapper:
            return entry[1]()
        return None

    def __len__(self) -> int:
        return len(self._by_original)


class _StrongRef:
    """Same call interface as weakref.ref for objects that reject weak references."""

    __slots__ = ("_value",)

    def __init__(self, value):
        self._value = value

    def __call__(self):
        return self._value


def _reference(value, callback) -> Callable[[], Callable]:
    try:
        return weakref.ref(value, callback)
    except TypeError:
        return _StrongRef(value)


class InstrumentationState:
    """Singleton service: interception registry + init-once latches."""

    def __init__(self):
        self.lock = threading.RLock()
        self.registry = InterceptionRegistry()
        self._done: Set[str] = set()

    def is_done(self, key: str) -> bool:
        return key in self._done

    def run_once(self, key: str, func: Callable[[], None]) -> bool:
        """
        Run func the first time key is seen in this process.

        The latch is set before func runs, so a failing or re-entrant call
        never triggers a second run. Returns True when func was executed.
        """
        with self.lock:
            if key in self._done:
                return False
            self._done.add(key)
        func()
        return True


_state: Optional[InstrumentationState] = None
_state_lock = threading.Lock()


def get_instrumentation_state() -> InstrumentationState:
    """Get the process-wide instrumentation state (lazy initialization)."""
    global _state
    if _state is None:
        with _state_lock:
            if _state is None:
                _state = InstrumentationState()
    return _state


def reset_instrumentation_state() -> None:
    """
    Forget all wrappers and latches.

    Already installed wrappers stay in place; only the bookkeeping is dropped.
    Intended for tests.
    """
    global _state
    with _state_lock:
        _state = None
