"""
Tests for TargetEnumerator (callwatch/enumerator.py).

Covers:
- wrap_all / wrap_all_except over namespaces and classes
- Opaque callables: skipped by wrap_all, stop rule of wrap_all_except
- Name resolution (registered roots, importable modules)
- Recursive sweep with exclusions, cycles and the once-per-process latch
- Declared API wrapping
"""

import json
import types

import pytest

from callwatch.enumerator import (
    LookupStatus,
    RootRegistry,
    TargetEnumerator,
    iter_members,
    resolve,
)
from callwatch.interceptor import CallInterceptor
from callwatch.rules import RuleSet
from callwatch.scope import get_scope_store


def fn(name):
    def f(*args):
        return name

    f.__name__ = name
    return f


@pytest.fixture
def enumerator(recording_logger):
    interceptor = CallInterceptor(logger=recording_logger)
    return TargetEnumerator(interceptor, recording_logger)


def labels():
    return sorted(s.label for s in get_scope_store().function_stats.values())


class TestIterMembers:
    def test_dunder_names_are_skipped(self):
        ns = types.SimpleNamespace(a=1, __hidden__=2, _private=3)
        assert dict(iter_members(ns)) == {"a": 1, "_private": 3}

    def test_failing_attribute_is_treated_as_absent(self):
        class Flaky:
            @property
            def broken(self):
                raise RuntimeError("no")

            def ok(self):
                return 1

        names = [name for name, _ in iter_members(Flaky())]
        assert "ok" in names
        assert "broken" not in names


class TestWrapAll:
    def test_wraps_only_routines(self, enumerator):
        class Helper:
            pass

        ns = types.SimpleNamespace(load=fn("load"), save=fn("save"), limit=10, Helper=Helper)
        assert enumerator.wrap_all(ns, "repo") == 2

        ns.load()
        ns.save()
        assert ns.Helper is Helper
        assert labels() == ["repo.load", "repo.save"]

    def test_class_methods_of_all_kinds(self, enumerator):
        class Service:
            @staticmethod
            def ping():
                return "pong"

            @classmethod
            def build(cls):
                return cls()

            def run(self):
                return "ran"

        assert enumerator.wrap_all(Service, "Service") == 3
        assert Service.ping() == "pong"
        assert Service.build().run() == "ran"
        assert labels() == ["Service.build", "Service.ping", "Service.run"]

    def test_exclusions_by_name_and_identity(self, enumerator):
        skip_me = fn("skip_me")
        ns = types.SimpleNamespace(a=fn("a"), b=fn("b"), c=skip_me)

        assert enumerator.wrap_all_except(ns, ["b", skip_me], "ns") == 1
        assert enumerator.interceptor.is_wrapped(ns.a)
        assert not enumerator.interceptor.is_wrapped(ns.b)
        assert ns.c is skip_me

    def test_rule_filtering(self, enumerator):
        rules = RuleSet(excluded_functions_patterns={".*": ["X"]})
        ns = types.SimpleNamespace(X=fn("X"), Y=fn("Y"))

        enumerator.wrap_all_except(ns, rules.excluded_functions("any/path"), "r")
        ns.X()
        ns.Y()

        assert labels() == ["r.Y"]

    def test_opaque_callable_is_skipped(self, enumerator, log_lines):
        ns = types.SimpleNamespace(first=fn("first"), mapping=dict, last=fn("last"))

        assert enumerator.wrap_all(ns, "ns") == 2
        assert enumerator.interceptor.is_wrapped(ns.first)
        assert enumerator.interceptor.is_wrapped(ns.last)
        assert ns.mapping is dict
        assert not any(line.startswith("[ERROR]") for line in log_lines)

    def test_opaque_callable_stops_enumeration_with_exclusions(self, enumerator, log_lines):
        ns = types.SimpleNamespace(first=fn("first"), mapping=dict, last=fn("last"), skip=fn("skip"))

        assert enumerator.wrap_all_except(ns, ["skip"], "ns") == 1
        assert enumerator.interceptor.is_wrapped(ns.first)
        assert not enumerator.interceptor.is_wrapped(ns.last)
        assert not any(line.startswith("[ERROR]") for line in log_lines)

    def test_first_exclusion_spares_the_opaque_callable(self, enumerator):
        ns = types.SimpleNamespace(mapping=dict, last=fn("last"))

        assert enumerator.wrap_all_except(ns, [dict, "other"], "ns") == 1
        assert enumerator.interceptor.is_wrapped(ns.last)

    def test_empty_exclusions_never_stop(self, enumerator):
        ns = types.SimpleNamespace(mapping=dict, last=fn("last"))
        assert enumerator.wrap_all_except(ns, [], "ns") == 1

    def test_missing_receiver_is_a_usage_error(self, enumerator, log_lines):
        assert enumerator.wrap_all(None, "ghost") == 0
        assert log_lines[0].startswith(
            "[ERROR] profiler - An argument 'receiver' of Profiler#addAll is invalid."
        )

    def test_second_pass_wraps_nothing_new(self, enumerator):
        ns = types.SimpleNamespace(a=fn("a"))
        enumerator.wrap_all(ns, "ns")
        wrapper = ns.a
        enumerator.wrap_all(ns, "ns")
        assert ns.a is wrapper


class TestResolve:
    def test_registered_root(self):
        lib = types.SimpleNamespace(db=types.SimpleNamespace(query=fn("query")))
        res = resolve("lib.db.query", RootRegistry({"lib": lib}))

        assert res.status is LookupStatus.FOUND
        assert res.value is lib.db.query

    def test_importable_module(self):
        res = resolve("json.dumps")
        assert res.found
        assert res.value is json.dumps

    def test_not_found(self):
        assert resolve("callwatch_no_such_module_xyz").status is LookupStatus.NOT_FOUND
        assert resolve("json.no_such_attribute").status is LookupStatus.NOT_FOUND

    def test_error(self):
        class Boom:
            @property
            def bad(self):
                raise RuntimeError("exploded")

        res = resolve("boom.bad", RootRegistry({"boom": Boom()}))
        assert res.status is LookupStatus.ERROR
        assert isinstance(res.error, RuntimeError)

    def test_root_registry(self):
        roots = RootRegistry()
        roots.register("lib", object())
        assert "lib" in roots
        assert roots.names() == ["lib"]
        assert roots.get("other") is None


class TestSweep:
    @pytest.fixture
    def tree(self):
        util = types.SimpleNamespace(helper=fn("helper"), skip=fn("skip"), quiet=fn("quiet"))
        vendor = types.SimpleNamespace(external=fn("external"))
        root = types.SimpleNamespace(run=fn("run"), util=util, vendor=vendor)
        util.back = root  # cycle
        return root

    def test_recursive_sweep(self, recording_logger, tree):
        enumerator = TargetEnumerator(
            CallInterceptor(logger=recording_logger), recording_logger, RootRegistry({"lib": tree})
        )
        rules = RuleSet(
            excluded_functions_exact={"lib.util": ["quiet"]},
            sweep_exclusions={"lib.util.skip", "lib.vendor"},
        )

        assert enumerator.sweep(["lib"], rules) == 2

        tree.run()
        tree.util.helper()
        tree.util.skip()
        tree.util.quiet()
        tree.vendor.external()
        assert labels() == ["lib.run", "lib.util.helper"]

    def test_sweep_exclusion_patterns_skip_subtrees(self, recording_logger, tree):
        enumerator = TargetEnumerator(
            CallInterceptor(logger=recording_logger), recording_logger, RootRegistry({"lib": tree})
        )
        rules = RuleSet(sweep_exclusion_patterns=[r"\.vendor$", r"\.s\w+$"])

        assert enumerator.sweep(["lib"], rules) == 3
        assert enumerator.interceptor.is_wrapped(tree.util.helper)
        assert enumerator.interceptor.is_wrapped(tree.util.quiet)
        assert not enumerator.interceptor.is_wrapped(tree.util.skip)
        assert not enumerator.interceptor.is_wrapped(tree.vendor.external)

    def test_unknown_root_is_skipped_silently(self, enumerator, log_lines):
        assert enumerator.sweep(["callwatch_no_such_module_xyz"]) == 0
        assert log_lines == []

    def test_resolution_error_is_logged(self, recording_logger, log_lines):
        class Boom:
            @property
            def bad(self):
                raise RuntimeError("exploded")

        enumerator = TargetEnumerator(
            CallInterceptor(logger=recording_logger), recording_logger, RootRegistry({"boom": Boom()})
        )
        assert enumerator.sweep(["boom.bad"]) == 0
        assert log_lines == ["[ERROR] profiler - Cannot resolve sweep root boom.bad: exploded"]

    def test_excluded_root_is_not_resolved(self, recording_logger, tree):
        enumerator = TargetEnumerator(
            CallInterceptor(logger=recording_logger), recording_logger, RootRegistry({"lib": tree})
        )
        assert enumerator.sweep(["lib"], RuleSet(sweep_exclusions={"lib"})) == 0

    def test_sweep_once(self, recording_logger, tree):
        enumerator = TargetEnumerator(
            CallInterceptor(logger=recording_logger), recording_logger, RootRegistry({"lib": tree})
        )
        assert enumerator.sweep_once(["lib"]) is True

        tree.late = fn("late")
        assert enumerator.sweep_once(["lib"]) is False
        assert not enumerator.interceptor.is_wrapped(tree.late)

    def test_module_sweep_descends_into_own_classes_only(self, enumerator):
        module = types.ModuleType("fakepkg")

        class Owned:
            def work(self):
                return 1

        Owned.__module__ = "fakepkg.models"

        class Foreign:
            def work(self):
                return 2

        Foreign.__module__ = "otherpkg"

        module.Owned = Owned
        module.Foreign = Foreign
        enumerator.roots.register("fakepkg", module)

        assert enumerator.sweep(["fakepkg"]) == 1
        Owned().work()
        Foreign().work()
        assert labels() == ["fakepkg.Owned.work"]


class TestWrapDeclared:
    def test_listed_members_only(self, recording_logger):
        db = types.SimpleNamespace(execute=fn("execute"), commit=fn("commit"), close=fn("close"))
        enumerator = TargetEnumerator(
            CallInterceptor(logger=recording_logger), recording_logger,
            RootRegistry({"lib": types.SimpleNamespace(db=db)}),
        )

        wrapped = enumerator.wrap_declared({
            "lib.db": ["execute", "commit", "missing"],
            "lib.nothing": ["x"],
        })

        assert wrapped == 2
        db.execute()
        db.close()
        assert labels() == ["lib.db.execute"]
