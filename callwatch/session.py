"""
Request glue: run profiled scripts inside their own execution scope.

A script is a Python file under the scripts directory, addressed by its path
without extension ("app/index" -> <scripts_dir>/app/index.py). It may define:

    def init(request): ...     # called for every request
    def close(request): ...    # called after init, even when init raises
    def <action>(request): ... # called when request["action"] names it

Before init runs, every function of the script is instrumented (minus the
names excluded for its path by the rules). Scripts can hand over to another
script with forward(path, args); the forwarded script is instrumented too
and reports under the same scope.
"""

from __future__ import annotations

import importlib.util
import sys
import threading
import types
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .compat_logger import CompatibleLogger
from .config import ProfilerConfig
from .enumerator import LookupStatus
from .exceptions import SourceLookupError
from .logging_context import get_current_path, path_override
from .profiler import Profiler
from .rules import RuleSet
from .scope import execution_scope

SCRIPT_SUFFIX = ".py"
MODULE_PREFIX = "callwatch_scripts"

# Request keys
ACTION_KEY = "action"
ACTIVE_KEY = "active"


@dataclass
class SourceLookup:
    """Whether a script exists: FOUND, NOT_FOUND, or ERROR (with the cause)."""

    status: LookupStatus
    path: str
    file: Optional[Path] = None
    error: Optional[BaseException] = None

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.FOUND


def decode_active_path(value: Optional[str]) -> Optional[str]:
    """Undo the "(2f)" -> "/" and "(5f)" -> "_" escaping used in request values."""
    if not value:
        return None
    return value.replace("(2f)", "/").replace("(5f)", "_")


class ScriptSource:
    """
    Maps script paths to files and loads them as modules.

    A script is compiled once per process; later loads return the same
    module so its functions are wrapped only once.
    """

    def __init__(self, scripts_dir: Path):
        self.scripts_dir = Path(scripts_dir)
        self._modules: Dict[str, types.ModuleType] = {}
        self._lock = threading.Lock()

    def file_for(self, path: str) -> Path:
        relative = Path(path + SCRIPT_SUFFIX)
        if relative.is_absolute() or ".." in relative.parts:
            raise SourceLookupError("Script path must stay inside the scripts directory", path=path)
        return self.scripts_dir / relative

    def lookup(self, path: str) -> SourceLookup:
        try:
            file = self.file_for(path)
            exists = file.is_file()
        except (SourceLookupError, OSError) as e:
            return SourceLookup(LookupStatus.ERROR, path, error=e)
        if not exists:
            return SourceLookup(LookupStatus.NOT_FOUND, path, file=file)
        return SourceLookup(LookupStatus.FOUND, path, file=file)

    def load(self, path: str, reload: bool = False) -> types.ModuleType:
        """
        Module object of the script at path.

        Raises:
            SourceLookupError: the script is missing, unreadable or does not compile.
        """
        with self._lock:
            module = self._modules.get(path)
            if module is not None and not reload:
                return module

            file = self.file_for(path)
            module_name = f"{MODULE_PREFIX}.{path.replace('/', '.')}"
            spec = importlib.util.spec_from_file_location(module_name, file)
            if spec is None or spec.loader is None:
                raise SourceLookupError("Cannot load script", path=path)

            module = importlib.util.module_from_spec(spec)
            sys.modules[module_name] = module
            try:
                spec.loader.exec_module(module)
            except (OSError, SyntaxError) as e:
                sys.modules.pop(module_name, None)
                raise SourceLookupError(f"Cannot load script: {e}", path=path) from e
            except Exception:
                sys.modules.pop(module_name, None)
                raise

            self._modules[path] = module
            return module


class RequestSession:
    """
    Runs scripts for incoming requests and reports their profile.

    Args:
        config: Profiler settings; defaults to ProfilerConfig().
        rules: Which paths are profiled and which functions are skipped;
               defaults to config.load_rules().
        source: Script loader; defaults to ScriptSource(config.scripts_dir).
        logger: Report logger; defaults to config.make_logger().
    """

    def __init__(
        self,
        config: Optional[ProfilerConfig] = None,
        rules: Optional[RuleSet] = None,
        source: Optional[ScriptSource] = None,
        logger: Optional[CompatibleLogger] = None,
    ):
        self.config = config or ProfilerConfig()
        self.rules = rules or self.config.load_rules()
        self.source = source or ScriptSource(self.config.scripts_dir)
        self.logger = logger or self.config.make_logger(self.config.content_id)

    def profiler(self, name: Optional[str] = None) -> Profiler:
        return Profiler(name or get_current_path(), logger=self.logger, config=self.config)

    def handle(self, path: str, request: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Run the script at path for one request, in a fresh execution scope.

        When the path is profiled: library instrumentation is ensured, the
        requested action (if any) is dispatched, init(request) runs, and the
        report is logged once close(request) has run. Returns init's result.
        """
        request = request if request is not None else {}
        with execution_scope(path):
            profiler = self.profiler(path)
            profiler.profile_libraries(self.rules)

            if not self.rules.is_profiled(path):
                return self._execute(None, path, request)

            try:
                action = request.get(ACTION_KEY)
                if action:
                    self._dispatch(profiler, action, decode_active_path(request.get(ACTIVE_KEY)) or path, request)
                return self._execute(profiler, path, request)
            finally:
                if profiler.has_report():
                    profiler.report()

    def forward(self, path: str, args: Any = None) -> Any:
        """Run another script within the current scope, as if it were the current path."""
        if not self.rules.is_profiled(path):
            return self._original_forward(path, args)
        with path_override(path):
            return self._execute(self.profiler(), path, args)

    def _original_forward(self, path: str, args: Any = None) -> Any:
        with path_override(path):
            return self._execute(None, path, args)

    def _load(self, path: str) -> types.ModuleType:
        module = self.source.load(path)
        # Exposed to scripts; never instrumented
        setattr(module, "forward", self.forward)
        setattr(module, "__original_forward", self._original_forward)
        return module

    def _instrumented(self, profiler: Profiler, path: str) -> types.ModuleType:
        module = self._load(path)
        profiler.add_all_exclude(module, self.rules.excluded_functions(path), path)
        return module

    def _dispatch(self, profiler: Profiler, action: str, path: str, request: Mapping[str, Any]) -> None:
        lookup = self.source.lookup(path)
        if lookup.status is LookupStatus.ERROR:
            raise SourceLookupError(f"Cannot look up script: {lookup.error}", path=path) from lookup.error
        if not lookup.found:
            self.logger.warn("Action {} requested for missing script {}", action, path)
            return

        module = self._instrumented(profiler, path)
        handler = getattr(module, action, None)
        if not callable(handler):
            self.logger.warn("Script {} has no action {}", path, action)
            return
        handler(request)

    def _execute(self, profiler: Optional[Profiler], path: str, args: Any) -> Any:
        """Instrument (when a profiler is given) and run the script's init/close pair."""
        lookup = self.source.lookup(path)
        if lookup.status is LookupStatus.ERROR:
            raise SourceLookupError(f"Cannot look up script: {lookup.error}", path=path) from lookup.error
        if not lookup.found:
            self.logger.debug("No script for {}", path)
            return None

        module = self._instrumented(profiler, path) if profiler is not None else self._load(path)

        try:
            init = getattr(module, "init", None)
            return init(args) if callable(init) else None
        finally:
            close = getattr(module, "close", None)
            if callable(close):
                close(args)
