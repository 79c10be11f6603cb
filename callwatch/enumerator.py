"""
Target discovery: decide which callables of a receiver get wrapped.

Receivers are modules, classes, plain namespaces or object instances. Their
enumerable members are the attributes whose names are not dunders; a member
whose lookup raises is treated as absent. Only routines (functions, methods,
builtins, static/class method descriptors) are replaced; classes are left in
place so ``isinstance`` keeps working, but the sweep descends into them.
"""

from __future__ import annotations

import importlib
import importlib.util
import inspect
import types
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .compat_logger import CompatibleLogger
from .exceptions import IntrospectionError, UsageError
from .interceptor import CallInterceptor, is_opaque
from .rules import RuleSet

SWEEP_LATCH_KEY = "enumerator.sweep"


class LookupStatus(Enum):
    """Outcome of resolving a dotted name."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass
class Resolution:
    status: LookupStatus
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.FOUND


class RootRegistry:
    """Explicitly declared instrumentable root namespaces, by name."""

    def __init__(self, roots: Optional[Dict[str, Any]] = None):
        self._roots: Dict[str, Any] = dict(roots or {})

    def register(self, name: str, namespace: Any) -> None:
        self._roots[name] = namespace

    def get(self, name: str) -> Optional[Any]:
        return self._roots.get(name)

    def names(self) -> List[str]:
        return list(self._roots)

    def __contains__(self, name: str) -> bool:
        return name in self._roots


def _getattr_chain(value: Any, parts: Sequence[str]) -> Resolution:
    for part in parts:
        try:
            value = getattr(value, part)
        except AttributeError:
            return Resolution(LookupStatus.NOT_FOUND)
        except Exception as e:
            return Resolution(LookupStatus.ERROR, error=e)
    return Resolution(LookupStatus.FOUND, value)


def resolve(name: str, roots: Optional[RootRegistry] = None) -> Resolution:
    """
    Resolve a dotted name to an object.

    Registered roots win over importable modules. The longest importable
    module prefix is imported and the rest is looked up with getattr.
    """
    parts = name.split(".")

    if roots is not None:
        for i in range(len(parts), 0, -1):
            root = roots.get(".".join(parts[:i]))
            if root is not None:
                return _getattr_chain(root, parts[i:])

    for i in range(len(parts), 0, -1):
        module_name = ".".join(parts[:i])
        try:
            spec = importlib.util.find_spec(module_name)
        except (ImportError, ValueError):
            continue
        except Exception as e:
            return Resolution(LookupStatus.ERROR, error=e)
        if spec is None:
            continue
        try:
            module = importlib.import_module(module_name)
        except Exception as e:
            return Resolution(LookupStatus.ERROR, error=e)
        return _getattr_chain(module, parts[i:])

    return Resolution(LookupStatus.NOT_FOUND)


def _is_dunder(name: str) -> bool:
    return name.startswith("__") and name.endswith("__")


def iter_members(receiver: Any) -> Iterator[Tuple[str, Any]]:
    """Enumerable (name, value) pairs of receiver; failing lookups are skipped."""
    if isinstance(receiver, (types.ModuleType, type, types.SimpleNamespace)):
        try:
            items = list(vars(receiver).items())
        except TypeError:
            items = []
        for name, value in items:
            if not _is_dunder(name):
                yield name, value
        return

    try:
        names = dir(receiver)
    except Exception:
        return
    for name in names:
        if _is_dunder(name):
            continue
        try:
            value = getattr(receiver, name)
        except Exception:
            continue
        yield name, value


def is_wrappable(value: Any) -> bool:
    return inspect.isroutine(value) or isinstance(value, (staticmethod, classmethod))


def _underlying(value: Any) -> Any:
    if isinstance(value, (staticmethod, classmethod)):
        return value.__func__
    return value


def _is_excluded(name: str, value: Any, exclusions: Iterable[Any]) -> bool:
    func = _underlying(value)
    func_name = getattr(func, "__name__", None)
    for entry in exclusions:
        if isinstance(entry, str):
            if entry == name or entry == func_name:
                return True
        elif callable(entry) and (entry is value or entry is func):
            return True
    return False


class TargetEnumerator:
    """Drives a CallInterceptor over the qualifying callables of receivers."""

    def __init__(
        self,
        interceptor: Optional[CallInterceptor] = None,
        logger: Optional[CompatibleLogger] = None,
        roots: Optional[RootRegistry] = None,
    ):
        self.logger = logger or CompatibleLogger("profiler")
        self.interceptor = interceptor or CallInterceptor(logger=self.logger)
        self.roots = roots or RootRegistry()

    def wrap_all(self, receiver: Any, owner_label: Optional[str] = None) -> int:
        """Wrap every enumerable routine of receiver. Returns the number wrapped."""
        if receiver is None:
            self.logger.error(str(UsageError(
                "An argument 'receiver' of Profiler#addAll is invalid.",
                operation="addAll", argument=owner_label,
            )))
            return 0
        return self.wrap_all_except(receiver, [], owner_label)

    def wrap_all_except(
        self,
        receiver: Any,
        exclusions: Optional[Iterable[Any]] = None,
        owner_label: Optional[str] = None,
    ) -> int:
        """
        Wrap every enumerable routine of receiver except the excluded ones.

        exclusions holds callables (matched by identity) and names (matched
        against the attribute name and the function's __name__). Opaque callables
        are never wrapped. With a non-empty exclusion list, an opaque callable
        that is not itself the first exclusion stops the enumeration of this
        receiver.
        """
        if receiver is None:
            self.logger.error(str(UsageError(
                "An argument 'receiver' of Profiler#addAllExclude is invalid.",
                operation="addAllExclude", argument=owner_label,
            )))
            return 0

        exclusions = list(exclusions or [])
        wrapped = 0
        for name, value in iter_members(receiver):
            if is_opaque(value):
                if _stops_enumeration(value, exclusions):
                    self.logger.debug(str(IntrospectionError(
                        "Opaque callable found, enumeration stopped", receiver=owner_label, member=name,
                    )))
                    break
                continue
            if not is_wrappable(value):
                continue
            if _is_excluded(name, value, exclusions):
                continue
            if self.interceptor.wrap(receiver, value, owner_label, name) is not None:
                wrapped += 1
        return wrapped

    def wrap_declared(self, apis: Dict[str, List[str]]) -> int:
        """
        Wrap explicitly listed members: {"pkg.mod.Class": ["method", ...]}.

        Receivers or members that do not exist are skipped silently.
        """
        wrapped = 0
        for receiver_path, names in apis.items():
            res = resolve(receiver_path, self.roots)
            if res.status is LookupStatus.ERROR:
                self.logger.error("Cannot resolve declared API receiver {}: {}", receiver_path, res.error)
                continue
            if not res.found or res.value is None:
                continue
            receiver = res.value
            for name in names:
                value = _lookup_member(receiver, name)
                if value is None:
                    continue
                if self.interceptor.wrap(receiver, value, receiver_path, name) is not None:
                    wrapped += 1
        return wrapped

    def sweep(self, root_names: Iterable[str], rules: Optional[RuleSet] = None) -> int:
        """
        Recursively wrap the routines reachable from the named roots.

        Unknown roots are skipped. Dotted paths listed in the rules' sweep
        exclusions are skipped with their whole subtree; names returned by
        rules.excluded_functions(namespace_path) are not wrapped. Every
        namespace is visited at most once.
        """
        rules = rules or RuleSet()
        visited: Set[int] = set()
        wrapped = 0
        for root_name in root_names:
            if rules.is_sweep_excluded(root_name):
                continue
            res = resolve(root_name, self.roots)
            if res.status is LookupStatus.NOT_FOUND:
                continue
            if res.status is LookupStatus.ERROR:
                self.logger.error("Cannot resolve sweep root {}: {}", root_name, res.error)
                continue
            package = _package_of(res.value)
            try:
                wrapped += self._sweep_namespace(res.value, root_name, rules, visited, package)
            except Exception as e:
                self.logger.error("Sweep of {} aborted: {}", root_name, e)
        return wrapped

    def sweep_once(self, root_names: Iterable[str], rules: Optional[RuleSet] = None) -> bool:
        """Run sweep() at most once per process. Returns True when it ran now."""
        roots = list(root_names)
        return self.interceptor.state.run_once(SWEEP_LATCH_KEY, lambda: self.sweep(roots, rules))

    def _sweep_namespace(
        self,
        namespace: Any,
        path: str,
        rules: RuleSet,
        visited: Set[int],
        package: Optional[str],
    ) -> int:
        if id(namespace) in visited:
            return 0
        visited.add(id(namespace))

        excluded_names = rules.excluded_functions(path)
        wrapped = 0
        for name, value in iter_members(namespace):
            full_path = f"{path}.{name}"
            if rules.is_sweep_excluded(full_path):
                continue
            if is_opaque(value):
                continue
            if is_wrappable(value):
                if _is_excluded(name, value, excluded_names):
                    continue
                if self.interceptor.wrap(namespace, value, path, name) is not None:
                    wrapped += 1
            elif _should_descend(value, package):
                wrapped += self._sweep_namespace(value, full_path, rules, visited, package)
        return wrapped


def _stops_enumeration(value: Any, exclusions: List[Any]) -> bool:
    """
    Opaque check of the exclusion pass.

    Each exclusion is first compared by identity, then the opaque check runs;
    so only the first exclusion can spare an opaque member.
    """
    return bool(exclusions) and exclusions[0] is not value


def _lookup_member(receiver: Any, name: str) -> Any:
    try:
        if isinstance(receiver, type) and name in vars(receiver):
            return vars(receiver)[name]
        return getattr(receiver, name, None)
    except Exception:
        return None


def _package_of(value: Any) -> Optional[str]:
    if isinstance(value, types.ModuleType):
        return value.__name__
    module = getattr(value, "__module__", None)
    return module if isinstance(module, str) else None


def _in_package(module_name: Optional[str], package: Optional[str]) -> bool:
    if not module_name or not package:
        return False
    return module_name == package or module_name.startswith(package + ".")


def _should_descend(value: Any, package: Optional[str]) -> bool:
    """Namespaces owned by the swept package: its submodules and the classes defined there."""
    if isinstance(value, types.SimpleNamespace):
        return True
    if isinstance(value, types.ModuleType):
        return _in_package(value.__name__, package)
    if isinstance(value, type):
        return _in_package(getattr(value, "__module__", None), package)
    return False
