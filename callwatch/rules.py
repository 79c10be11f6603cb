"""
Instrumentation rules: which paths are profiled and which callables are skipped.

Rules file (JSON):

    {
      "include": {"exact": [], "patterns": [".+"]},
      "exclude": {"exact": ["health"], "patterns": ["^static/"]},
      "excluded_functions": {
        "exact": {"app/index": ["render"]},
        "patterns": {".*": ["DTFColumnConverter"]}
      },
      "sweep": {
        "roots": ["myapp.lib"],
        "exclusions": ["myapp.lib.vendor"],
        "patterns": ["\\._compat$"]
      },
      "declared_apis": {"myapp.db.Connection": ["execute", "commit"]}
    }

Patterns are regular expressions searched anywhere in the path. Exact
tables are consulted before pattern tables; pattern tables are evaluated in
declaration order and their results are additive.
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Pattern, Set, Union

from .exceptions import ConfigError

PathRule = Union[str, Pattern]


def _compile(pattern: str, field_name: str) -> Pattern:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"Invalid regular expression: {e}", field_name=field_name, field_value=pattern)


def _matches(rule: PathRule, path: str) -> bool:
    if isinstance(rule, str):
        return rule == path
    return rule.search(path) is not None


def _string_list(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ConfigError("Expected a list of strings", field_name=field_name, field_value=value)
    return list(value)


def _string_table(value: Any, field_name: str) -> Dict[str, List[str]]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError("Expected an object of string lists", field_name=field_name, field_value=value)
    return {str(k): _string_list(v, f"{field_name}.{k}") for k, v in value.items()}


def _path_rules(value: Any, field_name: str) -> List[PathRule]:
    if value is None:
        return []
    if not isinstance(value, dict):
        raise ConfigError("Expected {'exact': [...], 'patterns': [...]}", field_name=field_name, field_value=value)
    rules: List[PathRule] = list(_string_list(value.get("exact"), f"{field_name}.exact"))
    for p in _string_list(value.get("patterns"), f"{field_name}.patterns"):
        rules.append(_compile(p, f"{field_name}.patterns"))
    return rules


@dataclass
class RuleSet:
    """Read-only rule source consulted by the profiler and the session."""

    include_paths: List[PathRule] = field(default_factory=lambda: [re.compile(".+")])
    exclude_paths: List[PathRule] = field(default_factory=list)
    excluded_functions_exact: Dict[str, List[str]] = field(default_factory=dict)
    excluded_functions_patterns: Dict[str, List[str]] = field(default_factory=dict)
    sweep_roots: List[str] = field(default_factory=list)
    sweep_exclusions: Set[str] = field(default_factory=set)
    sweep_exclusion_patterns: List[str] = field(default_factory=list)
    declared_apis: Dict[str, List[str]] = field(default_factory=dict)

    def __post_init__(self):
        self._compiled_patterns = [
            (_compile(p, "excluded_functions.patterns"), names)
            for p, names in self.excluded_functions_patterns.items()
        ]
        self._compiled_sweep_patterns = [
            _compile(p, "sweep.patterns") for p in self.sweep_exclusion_patterns
        ]

    def is_profiled(self, path: str) -> bool:
        """True when path matches an include rule and no exclude rule."""
        if not any(_matches(rule, path) for rule in self.include_paths):
            return False
        return not any(_matches(rule, path) for rule in self.exclude_paths)

    def excluded_functions(self, path: str) -> List[str]:
        """Callable names to skip when instrumenting path (exact table, then patterns)."""
        result: List[str] = []
        result.extend(self.excluded_functions_exact.get(path, []))
        for pattern, names in self._compiled_patterns:
            if pattern.search(path):
                result.extend(names)
        return result

    def is_sweep_excluded(self, dotted_path: str) -> bool:
        """Exact dotted paths first, then patterns searched in the dotted path."""
        if dotted_path in self.sweep_exclusions:
            return True
        return any(pattern.search(dotted_path) for pattern in self._compiled_sweep_patterns)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuleSet":
        if not isinstance(data, dict):
            raise ConfigError("Rules must be a JSON object", field_name="rules", field_value=data)

        kwargs: Dict[str, Any] = {}
        if "include" in data:
            kwargs["include_paths"] = _path_rules(data["include"], "include")
        kwargs["exclude_paths"] = _path_rules(data.get("exclude"), "exclude")

        excluded = data.get("excluded_functions") or {}
        if not isinstance(excluded, dict):
            raise ConfigError("Expected an object", field_name="excluded_functions", field_value=excluded)
        kwargs["excluded_functions_exact"] = _string_table(excluded.get("exact"), "excluded_functions.exact")
        kwargs["excluded_functions_patterns"] = _string_table(
            excluded.get("patterns"), "excluded_functions.patterns"
        )

        sweep = data.get("sweep") or {}
        if not isinstance(sweep, dict):
            raise ConfigError("Expected an object", field_name="sweep", field_value=sweep)
        kwargs["sweep_roots"] = _string_list(sweep.get("roots"), "sweep.roots")
        kwargs["sweep_exclusions"] = set(_string_list(sweep.get("exclusions"), "sweep.exclusions"))
        kwargs["sweep_exclusion_patterns"] = _string_list(sweep.get("patterns"), "sweep.patterns")

        kwargs["declared_apis"] = _string_table(data.get("declared_apis"), "declared_apis")
        return cls(**kwargs)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "RuleSet":
        rules_path = Path(path)
        try:
            with open(rules_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigError("Rules file not found", field_name="rules_file", field_value=rules_path) from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Rules file is not valid JSON: {e}", field_name="rules_file",
                              field_value=rules_path) from e
        return cls.from_dict(data)
