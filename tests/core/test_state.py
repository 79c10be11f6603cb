"""
Tests for process-wide instrumentation state (callwatch/state.py).
"""

import gc

import pytest

from callwatch.state import (
    InstrumentationState,
    InterceptionRegistry,
    get_instrumentation_state,
    reset_instrumentation_state,
)


def original():
    pass


def wrapper():
    pass


class TestInterceptionRegistry:
    def test_lookup_both_ways(self):
        registry = InterceptionRegistry()
        registry.register(original, wrapper)

        assert registry.wrapper_for(original) is wrapper
        assert registry.original_of(wrapper) is original
        assert registry.is_wrapper(wrapper) is True
        assert registry.is_wrapper(original) is False
        assert len(registry) == 1

    def test_unknown_values(self):
        registry = InterceptionRegistry()
        assert registry.wrapper_for(original) is None
        assert registry.original_of(wrapper) is None
        assert registry.is_wrapper(None) is False

    def test_entry_is_dropped_with_the_original(self):
        registry = InterceptionRegistry()

        def short_lived():
            pass

        registry.register(short_lived, wrapper)
        assert len(registry) == 1

        del short_lived
        gc.collect()

        assert len(registry) == 0
        assert registry.is_wrapper(wrapper) is False

    def test_values_without_weakref_support_are_kept(self):
        class Slotted:
            __slots__ = ()

            def __call__(self):
                return 1

        registry = InterceptionRegistry()
        target = Slotted()
        registry.register(target, wrapper)

        assert registry.wrapper_for(target) is wrapper
        assert registry.original_of(wrapper) is target


class TestRunOnce:
    def test_runs_only_the_first_time(self):
        state = InstrumentationState()
        calls = []

        assert state.run_once("sweep", lambda: calls.append(1)) is True
        assert state.run_once("sweep", lambda: calls.append(2)) is False
        assert calls == [1]
        assert state.is_done("sweep") is True

    def test_keys_are_independent(self):
        state = InstrumentationState()
        assert state.run_once("a", lambda: None) is True
        assert state.run_once("b", lambda: None) is True

    def test_failure_still_latches(self):
        state = InstrumentationState()

        def boom():
            raise RuntimeError("fail")

        with pytest.raises(RuntimeError):
            state.run_once("sweep", boom)
        assert state.run_once("sweep", boom) is False


class TestSingleton:
    def test_same_instance_until_reset(self):
        first = get_instrumentation_state()
        assert get_instrumentation_state() is first

        reset_instrumentation_state()
        assert get_instrumentation_state() is not first
