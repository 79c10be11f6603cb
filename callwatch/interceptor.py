"""
Call interception: timing shims around existing callables.

A wrapper forwards its arguments unchanged, returns the original result and
re-raises the original exception; on the way out (``finally``) it adds one
invocation and the elapsed milliseconds to the CallableStat of the original
callable in the active scope's store.

Wrappers are recorded in the process-wide InterceptionRegistry, so:
- the same original always gets the same wrapper,
- a wrapper is never wrapped again,
- re-running a registration is a no-op.
"""

from __future__ import annotations

import functools
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .compat_logger import CompatibleLogger
from .exceptions import UsageError
from .scope import DEFAULT_CONTENT_ID, get_scope_store
from .state import InstrumentationState, get_instrumentation_state
from .utils import monotonic_ms, qualified_label

# Names of the session's dispatch trampoline; it manages its own profiling
RESERVED_NAMES = frozenset({"forward", "__original_forward"})

# Set on classes created at runtime (Python classes); unset on static C types
_TPFLAGS_HEAPTYPE = 1 << 9


@dataclass
class CallableStat:
    """Aggregated statistics of one callable within one scope."""

    owner_label: Optional[str]
    callable_label: str
    count: int = 0
    elapsed_ms: int = 0
    target: Any = field(default=None, repr=False, compare=False)

    @property
    def label(self) -> str:
        return qualified_label(self.owner_label, self.callable_label)

    @property
    def avg_ms(self) -> float:
        return self.elapsed_ms / self.count if self.count > 0 else 0.0


def is_opaque(value: Any) -> bool:
    """
    True for values that are not locally introspectable.

    Classes implemented in C (static, non-heap types) are treated as foreign:
    they are never wrapped, and enumeration of a receiver stops when one is met.
    """
    if not isinstance(value, type):
        return False
    try:
        return not (value.__flags__ & _TPFLAGS_HEAPTYPE)
    except Exception:
        return True


def record_invocation(
    func: Callable,
    elapsed_ms: int,
    owner_label: Optional[str] = None,
    callable_label: Optional[str] = None,
    content_id: str = DEFAULT_CONTENT_ID,
) -> CallableStat:
    """
    Add one invocation of func to the active scope's statistics.

    The stat is created on first use; func's identity is the key.
    """
    stats = get_scope_store(content_id).function_stats
    key = id(func)
    stat = stats.get(key)
    if stat is None or stat.target is not func:
        label = callable_label or getattr(func, "__name__", None) or repr(func)
        stat = CallableStat(owner_label=owner_label, callable_label=label, target=func)
        stats[key] = stat
    stat.count += 1
    stat.elapsed_ms += max(0, int(elapsed_ms))
    return stat


class CallInterceptor:
    """
    Installs timing wrappers.

    Args:
        logger: Receives usage errors. Defaults to a "profiler" logger.
        content_id: Key prefix of the ScopeStore the wrappers write to.
        state: Process-wide registry; defaults to the singleton.
        clock: Millisecond clock.
    """

    def __init__(
        self,
        logger: Optional[CompatibleLogger] = None,
        content_id: str = DEFAULT_CONTENT_ID,
        state: Optional[InstrumentationState] = None,
        clock: Callable[[], int] = monotonic_ms,
    ):
        self.logger = logger or CompatibleLogger("profiler")
        self.content_id = content_id
        self._state = state
        self._clock = clock

    @property
    def state(self) -> InstrumentationState:
        return self._state if self._state is not None else get_instrumentation_state()

    def is_wrapped(self, value: Any) -> bool:
        return self.state.registry.is_wrapper(value)

    def wrap(
        self,
        owner: Any,
        func: Any,
        owner_label: Optional[str] = None,
        callable_label: Optional[str] = None,
    ) -> Optional[Callable]:
        """
        Replace owner.<label> with a timing wrapper around func.

        Returns the wrapper (new or already installed), or None when nothing
        was wrapped. Never raises on bad input: problems are logged.
        """
        if func is None:
            self._usage_error("An argument 'func' of Profiler#add is invalid.", owner_label)
            return None

        target = func
        descriptor = None
        if isinstance(func, (staticmethod, classmethod)):
            descriptor = type(func)
            target = func.__func__

        if not callable(target):
            self._usage_error("An argument 'func' of Profiler#add is not a function.", owner_label)
            return None

        if is_opaque(target):
            return None

        label = callable_label or getattr(target, "__name__", None)
        if not label or not isinstance(label, str):
            self._usage_error(
                "An argument 'functionName' of Profiler#add is required for anonymous functions.",
                owner_label,
            )
            return None

        if label in RESERVED_NAMES:
            return None

        if isinstance(owner, type) and descriptor is None:
            descriptor, target = _class_descriptor(owner, label, target)

        with self.state.lock:
            registry = self.state.registry

            if _already_wrapped(registry, target):
                return target

            if owner is not None:
                current = _installed_member(owner, label)
                if _already_wrapped(registry, current):
                    return current

            wrapper = registry.wrapper_for(target)
            if wrapper is None:
                wrapper = self._make_wrapper(target, owner_label, label)
                registry.register(target, wrapper)

            if owner is not None:
                installed = descriptor(wrapper) if descriptor is not None else wrapper
                try:
                    setattr(owner, label, installed)
                except (AttributeError, TypeError) as e:
                    self._usage_error(f"Cannot install wrapper for '{label}': {e}", owner_label)
                    return None

        return wrapper

    def _make_wrapper(self, target: Callable, owner_label: Optional[str], label: str) -> Callable:
        interceptor = self

        if inspect.iscoroutinefunction(target):

            @functools.wraps(target)
            async def async_wrapper(*args, **kwargs):
                start = interceptor._clock()
                try:
                    return await target(*args, **kwargs)
                finally:
                    interceptor._record(target, start, owner_label, label)

            return async_wrapper

        @functools.wraps(target)
        def wrapper(*args, **kwargs):
            start = interceptor._clock()
            try:
                return target(*args, **kwargs)
            finally:
                interceptor._record(target, start, owner_label, label)

        return wrapper

    def _record(self, target: Callable, start: int, owner_label: Optional[str], label: str) -> None:
        try:
            record_invocation(
                target,
                self._clock() - start,
                owner_label=owner_label,
                callable_label=label,
                content_id=self.content_id,
            )
        except Exception as e:
            # Bookkeeping must not break the instrumented call
            self.logger.error("Failed to record invocation of {}: {}", label, e)

    def _usage_error(self, message: str, owner_label: Optional[str]) -> None:
        self.logger.error(str(UsageError(message, operation="add", argument=owner_label)))


def _already_wrapped(registry, value: Any) -> bool:
    """A registered wrapper, or a method bound to one."""
    if value is None:
        return False
    if registry.is_wrapper(value):
        return True
    return inspect.ismethod(value) and registry.is_wrapper(value.__func__)


def _installed_member(owner: Any, label: str) -> Any:
    """Value currently stored under label, unwrapping static/class method descriptors."""
    try:
        if isinstance(owner, type) and label in vars(owner):
            value = vars(owner)[label]
        else:
            value = getattr(owner, label, None)
    except Exception:
        return None
    if isinstance(value, (staticmethod, classmethod)):
        return value.__func__
    return value


def _class_descriptor(owner: type, label: str, target: Callable):
    """
    Match target against a staticmethod/classmethod defined on owner.

    getattr() on a class hands out the bare function (staticmethod) or a bound
    method (classmethod); the wrapper must be installed in the same descriptor
    type and wrap the underlying function.
    """
    raw = vars(owner).get(label)
    if isinstance(raw, staticmethod) and raw.__func__ is target:
        return staticmethod, target
    if isinstance(raw, classmethod) and getattr(target, "__func__", None) is raw.__func__:
        return classmethod, raw.__func__
    return None, target


def instrument(
    func: Optional[Callable] = None,
    *,
    owner_label: Optional[str] = None,
    label: Optional[str] = None,
):
    """
    Decorator form of CallInterceptor.wrap for free functions.

        @instrument
        def load(): ...

        @instrument(owner_label="repo", label="fetch")
        def fetch_rows(): ...

    Falls back to the undecorated function when it cannot be wrapped.
    """

    def decorator(f: Callable) -> Callable:
        wrapped = CallInterceptor().wrap(None, f, owner_label, label)
        return wrapped if wrapped is not None else f

    if func is not None:
        return decorator(func)
    return decorator
