"""Unit tests for derived values.

Tests cover:
- Expression, function and static derivations
- Conditional derivations
- Dependency ordering and cycle fallback
- Per-item derivations inside arrays
- Failure isolation
"""

from dynaform.config import FormConfig, LogicRule, field_from_dict
from dynaform.derivations import (
    Derivation,
    DerivationOrchestrator,
    build_plan,
    order_derivations,
    rule_dependencies,
)
from dynaform.form import FormTree
from dynaform.registry import FunctionRegistry
from dynaform.signals import Effect
from dynaform.types import LogicType


def derived(key, **rule):
    return {"key": key, "type": "input", "logic": [{"type": "derivation", "targetField": key, **rule}]}


def build(*fields, functions=None, value=None):
    config = FormConfig.from_dict({"fields": list(fields)})
    tree = FormTree(config.fields, value, functions=functions)
    return tree, DerivationOrchestrator(tree, functions)


class TestDerivedValues:
    """Test applying derivations."""

    def test_full_name_follows_inputs(self):
        """Should recompute when either input changes."""
        tree, _ = build(
            {"key": "firstName", "type": "input"},
            {"key": "lastName", "type": "input"},
            derived("fullName", expression="formValue.firstName + ' ' + formValue.lastName"),
        )
        tree.write("firstName", "Ada")
        tree.write("lastName", "Lovelace")
        assert tree.value()["fullName"] == "Ada Lovelace"
        tree.write("firstName", "Augusta Ada")
        assert tree.value()["fullName"] == "Augusta Ada Lovelace"

    def test_function_derivation(self):
        """Should call the registered function with the context."""
        functions = FunctionRegistry({"total": lambda ctx: ctx.form_value["qty"] * ctx.form_value["price"]})
        tree, _ = build(
            {"key": "qty", "type": "slider", "value": 2},
            {"key": "price", "type": "slider", "value": 5},
            derived("total", functionName="total"),
            functions=functions,
        )
        assert tree.value()["total"] == 10

    def test_conditional_static_value(self):
        """Should only write while the condition holds."""
        tree, _ = build(
            {"key": "country", "type": "select"},
            derived(
                "currency",
                value="EUR",
                condition={"type": "fieldValue", "fieldPath": "country", "operator": "equals", "value": "NL"},
            ),
        )
        assert tree.value()["currency"] == ""
        tree.write("country", "NL")
        assert tree.value()["currency"] == "EUR"
        tree.write("currency", "USD")
        assert tree.value()["currency"] == "EUR"

    def test_chained_derivations_settle_in_one_pass(self):
        """Should apply derivations after the ones they read."""
        tree, orchestrator = build(
            derived("c", expression="formValue.b + 1"),
            derived("b", expression="formValue.a * 2"),
            {"key": "a", "type": "slider", "value": 1},
        )
        assert [d.path for d in orchestrator.plan.derivations] == ["b", "c"]
        assert tree.value()["b"] == 2
        assert tree.value()["c"] == 3
        tree.write("a", 5)
        assert (tree.value()["b"], tree.value()["c"]) == (10, 11)

    def test_single_write_per_change(self):
        """Should write the root once for all derived fields."""
        tree, _ = build(
            {"key": "a", "type": "input"},
            derived("upper", expression="formValue.a.toUpperCase()"),
            derived("size", expression="formValue.a.length"),
        )
        versions = []
        Effect(lambda: versions.append(tree.value()))
        tree.write("a", "ab")
        assert versions[-1] == {"a": "ab", "upper": "AB", "size": 2}
        assert len(versions) == 2

    def test_failing_expression_is_skipped(self, caplog):
        """Should log and keep the current value when an expression fails."""
        tree, _ = build(
            {"key": "a", "type": "slider", "value": 0},
            derived("ratio", expression="10 / formValue.a"),
        )
        assert tree.value()["ratio"] == ""
        assert "Derivation of 'ratio' failed" in caplog.text
        tree.write("a", 2)
        assert tree.value()["ratio"] == 5

    def test_unknown_function(self, caplog):
        """Should log a missing function and leave the field alone."""
        tree, _ = build(derived("x", functionName="missing"))
        assert tree.value()["x"] == ""
        assert "unknown function 'missing'" in caplog.text

    def test_destroy_stops_updates(self):
        """Should stop deriving after destroy()."""
        tree, orchestrator = build(
            {"key": "a", "type": "input"},
            derived("b", expression="formValue.a"),
        )
        orchestrator.destroy()
        tree.write("a", "x")
        assert tree.value()["b"] == ""


class TestArrayItems:
    """Test derivations inside array templates."""

    def test_per_item_derivation(self):
        """Should derive each item from its own values and the root."""
        tree, _ = build(
            {"key": "rate", "type": "slider", "value": 2},
            {
                "key": "lines",
                "type": "array",
                "template": [
                    {"key": "qty", "type": "slider"},
                    derived("amount", expression="formValue.qty * rootFormValue.rate"),
                ],
            },
            value={"rate": 2, "lines": [{"qty": 1, "amount": None}, {"qty": 4, "amount": None}]},
        )
        assert [line["amount"] for line in tree.value()["lines"]] == [2, 8]
        tree.write("rate", 3)
        assert [line["amount"] for line in tree.value()["lines"]] == [3, 12]
        tree.write("lines[1].qty", 10)
        assert tree.value()["lines"][1]["amount"] == 30


class TestPlanning:
    """Test dependency inference and ordering."""

    def test_rule_dependencies(self):
        """Should union condition and expression reads."""
        rule = LogicRule.from_dict(
            {
                "type": "derivation",
                "expression": "formValue.a + formValue.b.c",
                "condition": {"type": "fieldValue", "fieldPath": "d", "operator": "equals", "value": 1},
            }
        )
        assert rule_dependencies(rule) == {"a", "b.c", "d"}

    def test_unparsable_expression_has_no_dependencies(self, caplog):
        """Should log and return no dependencies for broken expressions."""
        rule = LogicRule(LogicType.DERIVATION, expression="formValue.")
        assert rule_dependencies(rule) == set()
        assert "Cannot infer dependencies" in caplog.text

    def test_cycle_falls_back_to_configuration_order(self, caplog):
        """Should warn and keep configuration order for cycles."""
        rule_a = LogicRule(LogicType.DERIVATION, expression="formValue.b")
        rule_b = LogicRule(LogicType.DERIVATION, expression="formValue.a")
        a = Derivation("a", field_from_dict({"key": "a", "type": "input"}), rule_a, {"b"})
        b = Derivation("b", field_from_dict({"key": "b", "type": "input"}), rule_b, {"a"})
        assert [d.path for d in order_derivations([a, b])] == ["a", "b"]
        assert "Cyclic derivations between a, b" in caplog.text

    def test_group_paths(self):
        """Should address derivations inside groups by their full path."""
        config = FormConfig.from_dict(
            {
                "fields": [
                    {"key": "address", "type": "group", "fields": [derived("label", expression="formValue.x")]},
                ]
            }
        )
        plan = build_plan(config.fields)
        assert [d.path for d in plan.derivations] == ["address.label"]

    def test_array_plans(self):
        """Should plan template derivations per array."""
        config = FormConfig.from_dict(
            {
                "fields": [
                    {"key": "tags", "type": "array", "template": derived("tag", expression="'x'")},
                    {"key": "plain", "type": "array", "template": {"key": "p", "type": "input"}},
                ]
            }
        )
        plan = build_plan(config.fields)
        assert list(plan.arrays) == ["tags"]
        assert plan.arrays["tags"].derivations[0].path == ""
