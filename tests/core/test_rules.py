"""
Tests for RuleSet (callwatch/rules.py).

This module tests:
- Path include/exclude evaluation (exact strings and regexes)
- Excluded function lookup order (exact table, then patterns)
- Loading rules from dicts and JSON files
"""

import json
import re

import pytest

from callwatch.exceptions import ConfigError
from callwatch.rules import RuleSet


class TestIsProfiled:
    def test_default_profiles_every_non_empty_path(self):
        rules = RuleSet()
        assert rules.is_profiled("app/index") is True
        assert rules.is_profiled("x") is True
        assert rules.is_profiled("") is False

    def test_exact_include(self):
        rules = RuleSet(include_paths=["app/index"])
        assert rules.is_profiled("app/index") is True
        assert rules.is_profiled("app/index2") is False

    def test_exclude_wins_over_include(self):
        rules = RuleSet(exclude_paths=["health", re.compile(r"^static/")])
        assert rules.is_profiled("health") is False
        assert rules.is_profiled("static/logo") is False
        assert rules.is_profiled("app/static/page") is True

    def test_every_exclude_rule_is_checked(self):
        rules = RuleSet(
            include_paths=[re.compile("^app/"), re.compile("^admin/")],
            exclude_paths=["app/a", "admin/b"],
        )
        assert rules.is_profiled("admin/b") is False
        assert rules.is_profiled("app/a") is False
        assert rules.is_profiled("admin/c") is True


class TestExcludedFunctions:
    def test_exact_then_patterns_in_declaration_order(self):
        rules = RuleSet.from_dict({
            "excluded_functions": {
                "exact": {"app/index": ["render"]},
                "patterns": {".*": ["X"], "^app/": ["Y"], "^admin/": ["Z"]},
            }
        })
        assert rules.excluded_functions("app/index") == ["render", "X", "Y"]
        assert rules.excluded_functions("admin/users") == ["X", "Z"]

    def test_no_match_returns_empty_list(self):
        assert RuleSet().excluded_functions("anything") == []

    def test_returned_list_is_a_copy(self):
        rules = RuleSet(excluded_functions_exact={"p": ["a"]})
        rules.excluded_functions("p").append("b")
        assert rules.excluded_functions("p") == ["a"]


class TestFromDict:
    def test_full_document(self):
        rules = RuleSet.from_dict({
            "include": {"exact": ["home"], "patterns": ["^app/"]},
            "exclude": {"patterns": ["secret"]},
            "sweep": {"roots": ["mylib"], "exclusions": ["mylib.vendor"]},
            "declared_apis": {"mylib.db.Connection": ["execute"]},
        })

        assert rules.is_profiled("home") is True
        assert rules.is_profiled("app/secret") is False
        assert rules.is_profiled("other") is False
        assert rules.sweep_roots == ["mylib"]
        assert rules.is_sweep_excluded("mylib.vendor") is True
        assert rules.declared_apis == {"mylib.db.Connection": ["execute"]}

    def test_sweep_exclusion_patterns(self):
        rules = RuleSet.from_dict({
            "sweep": {"exclusions": ["mylib.vendor"], "patterns": [r"\._compat$", r"^mylib\.tests\b"]},
        })

        assert rules.is_sweep_excluded("mylib.vendor") is True
        assert rules.is_sweep_excluded("mylib.io._compat") is True
        assert rules.is_sweep_excluded("mylib.tests.unit") is True
        assert rules.is_sweep_excluded("mylib.io") is False

    def test_invalid_sweep_pattern_raises_config_error(self):
        with pytest.raises(ConfigError) as exc_info:
            RuleSet.from_dict({"sweep": {"patterns": ["("]}})
        assert exc_info.value.context["field"] == "sweep.patterns"

    def test_missing_include_keeps_default(self):
        assert RuleSet.from_dict({}).is_profiled("anything") is True

    def test_invalid_regex_raises_config_error(self):
        with pytest.raises(ConfigError) as exc_info:
            RuleSet.from_dict({"exclude": {"patterns": ["("]}})
        assert exc_info.value.context["field"] == "exclude.patterns"

    def test_invalid_function_pattern_raises_config_error(self):
        with pytest.raises(ConfigError):
            RuleSet.from_dict({"excluded_functions": {"patterns": {"[": ["x"]}}})

    def test_wrong_types_raise_config_error(self):
        with pytest.raises(ConfigError):
            RuleSet.from_dict([])
        with pytest.raises(ConfigError):
            RuleSet.from_dict({"sweep": {"roots": "mylib"}})
        with pytest.raises(ConfigError):
            RuleSet.from_dict({"excluded_functions": {"exact": {"p": [1]}}})


class TestFromJson:
    def test_load_file(self, tmp_path):
        rules_file = tmp_path / "rules.json"
        rules_file.write_text(json.dumps({"exclude": {"exact": ["health"]}}), encoding="utf-8")

        rules = RuleSet.from_json(rules_file)
        assert rules.is_profiled("health") is False

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Rules file not found"):
            RuleSet.from_json(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        rules_file = tmp_path / "rules.json"
        rules_file.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="not valid JSON"):
            RuleSet.from_json(rules_file)
