"""
callwatch - call count and timing profiler.

Wraps functions and methods so each invocation is counted and timed,
collects the numbers per execution scope, and renders them as an aligned
or delimited report.
"""

from callwatch.compat_logger import CompatibleLogger, get_logger
from callwatch.config import ProfilerConfig
from callwatch.exceptions import (
    CallwatchError,
    ConfigError,
    IntrospectionError,
    SourceLookupError,
    UsageError,
)
from callwatch.interceptor import CallableStat, CallInterceptor, instrument
from callwatch.profiler import Profiler
from callwatch.rules import RuleSet
from callwatch.scope import execution_scope, get_scope_store
from callwatch.session import RequestSession, ScriptSource
from callwatch.stopwatch import StopWatch

__version__ = "1.0.0"

__all__ = [
    "CompatibleLogger",
    "get_logger",
    "ProfilerConfig",
    "CallwatchError",
    "ConfigError",
    "IntrospectionError",
    "SourceLookupError",
    "UsageError",
    "CallableStat",
    "CallInterceptor",
    "instrument",
    "Profiler",
    "RuleSet",
    "execution_scope",
    "get_scope_store",
    "RequestSession",
    "ScriptSource",
    "StopWatch",
]
