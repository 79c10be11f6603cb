"""
Instrumentation facade.

A Profiler is cheap to construct: create one per execution scope (or per
script) and use it to register callables, time regions and emit the report.
Statistics live in the active execution scope, not in the Profiler, so any
Profiler built inside the same scope sees the same numbers.

    profiler = Profiler("app/index")
    profiler.add_all(repository, "repo")
    with profiler.stopwatch("render"):
        render()
    profiler.report()
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

from .compat_logger import CompatibleLogger
from .config import ProfilerConfig
from .enumerator import SWEEP_LATCH_KEY, RootRegistry, TargetEnumerator
from .interceptor import CallInterceptor
from .logging_context import get_current_path
from .report import render_report
from .rules import RuleSet
from .scope import ScopeStore, get_scope_store
from .stopwatch import StopWatch


class Profiler:
    """
    Args:
        name: Profiler name shown in the report title. Defaults to the
              current execution path.
        logger: Receives the report (INFO) and usage errors (ERROR). Every
                operation except stopwatch() is a no-op unless INFO is
                enabled on it.
        config: Content id, line separator and default delimiter.
        roots: Named namespaces the library sweep may resolve.
    """

    def __init__(
        self,
        name: Optional[str] = None,
        logger: Optional[CompatibleLogger] = None,
        config: Optional[ProfilerConfig] = None,
        roots: Optional[RootRegistry] = None,
    ):
        self.config = config or ProfilerConfig()
        self.content_id = self.config.content_id
        self.name = name or get_current_path()
        self.logger = logger or self.config.make_logger(self.content_id)
        self.interceptor = CallInterceptor(logger=self.logger, content_id=self.content_id)
        self.enumerator = TargetEnumerator(self.interceptor, self.logger, roots)

    @property
    def store(self) -> ScopeStore:
        """Statistics of the active execution scope."""
        return get_scope_store(self.content_id)

    def add_all(self, receiver: Any, owner_label: Optional[str] = None) -> "Profiler":
        """Instrument every enumerable routine of receiver."""
        if not self.logger.is_info_enabled():
            return self
        self.enumerator.wrap_all(receiver, owner_label)
        return self

    def add_all_exclude(
        self,
        receiver: Any,
        exclusions: Optional[Iterable[Any]] = None,
        owner_label: Optional[str] = None,
    ) -> "Profiler":
        """Instrument receiver's routines except those named or listed in exclusions."""
        if not self.logger.is_info_enabled():
            return self
        self.enumerator.wrap_all_except(receiver, exclusions, owner_label)
        return self

    def add(
        self,
        receiver: Any,
        func: Any,
        owner_label: Optional[str] = None,
        callable_label: Optional[str] = None,
    ) -> "Profiler":
        """Instrument one callable, installing the wrapper on receiver."""
        if not self.logger.is_info_enabled():
            return self
        if receiver is None:
            self.logger.error("An argument 'receiver' of Profiler#add is invalid. ({})", owner_label)
            return self
        self.interceptor.wrap(receiver, func, owner_label, callable_label)
        return self

    def stopwatch(self, name: str, body: Optional[Callable[[], Any]] = None) -> StopWatch:
        """
        Get (or create) the stopwatch called name in the active scope.

        With a body, the body runs between start() and stop(); stop() runs
        even when the body raises. An empty name is a usage error and yields
        a detached watch that never shows up in the report.
        """
        if not name or not isinstance(name, str):
            self.logger.error("An argument of stopWatch is invalid.")
            return StopWatch(str(name), logger=self.logger)

        stopwatches = self.store.stopwatches
        watch = stopwatches.get(name)
        if watch is None:
            watch = StopWatch(name, logger=self.logger)
            stopwatches[name] = watch

        if callable(body):
            watch.start()
            try:
                body()
            finally:
                watch.stop()

        return watch

    sw = stopwatch

    def render(self, delimiter: Optional[str] = None) -> str:
        """Report text for the active scope, without logging it."""
        store = self.store
        return render_report(
            self.name,
            store.function_stats,
            store.stopwatches,
            delimiter=delimiter if delimiter is not None else self.config.delimiter,
            line_separator=self.config.line_separator,
        )

    def report(self, delimiter: Optional[str] = None) -> Optional[str]:
        """
        Log the report at INFO and return its text.

        delimiter selects the delimited layout (e.g. "," for CSV); the
        column-aligned layout is used otherwise.
        """
        if not self.logger.is_info_enabled():
            return None
        text = self.render(delimiter)
        self.logger.info(text)
        return text

    def has_report(self) -> bool:
        if not self.logger.is_info_enabled():
            return False
        return self.store.has_entries()

    def report_on_close(self, receiver: Any, delimiter: Optional[str] = None) -> "Profiler":
        """
        Emit the report when receiver.close() is called.

        An existing close() still runs first, with the same arguments, and
        its return value is kept.
        """
        if not self.logger.is_info_enabled():
            return self
        if receiver is None:
            self.logger.error("An argument of reportOnClose is invalid.")
            return self

        previous = getattr(receiver, "close", None)
        profiler = self

        if callable(previous):

            def close(*args, **kwargs):
                try:
                    return previous(*args, **kwargs)
                finally:
                    profiler.report(delimiter)

        else:

            def close(*args, **kwargs):
                profiler.report(delimiter)

        try:
            setattr(receiver, "close", close)
        except (AttributeError, TypeError) as e:
            self.logger.error("Cannot install close hook on {}: {}", type(receiver).__name__, e)
        return self

    def profile_libraries(self, rules: Optional[RuleSet] = None) -> "Profiler":
        """
        Sweep the configured library roots and wrap the declared APIs.

        Runs at most once per process; later calls return immediately.
        """
        if not self.logger.is_info_enabled():
            return self
        rules = rules or RuleSet()

        def _profile():
            swept = self.enumerator.sweep(rules.sweep_roots, rules)
            declared = self.enumerator.wrap_declared(rules.declared_apis)
            self.logger.debug("Library instrumentation done: {} swept, {} declared", swept, declared)

        self.interceptor.state.run_once(SWEEP_LATCH_KEY, _profile)
        return self
