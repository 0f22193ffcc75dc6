"""Unit tests for FormTree and FieldNode.

Tests cover:
- Node creation for value fields, groups and flattened containers
- Two-way value cells writing through the root
- Reactive hidden/required/readonly/disabled states
- Field errors, validity, touched and dirty state
- On-demand nodes for array items
"""

from dynaform.config import FormConfig
from dynaform.form import FormTree, relative_path, scope_path_of
from dynaform.signals import Effect
from dynaform.types import FieldErrorCode


def build_tree(*fields, value=None):
    config = FormConfig.from_dict({"fields": list(fields)})
    return FormTree(config.fields, value)


ACCOUNT_FIELDS = (
    {"key": "accountType", "type": "radio", "value": "personal"},
    {
        "key": "companyName",
        "type": "input",
        "required": True,
        "logic": [
            {
                "type": "hidden",
                "condition": {
                    "type": "fieldValue",
                    "fieldPath": "accountType",
                    "operator": "notEquals",
                    "value": "business",
                },
            }
        ],
    },
)


class TestNodes:
    """Test node creation and lookup."""

    def test_default_value(self):
        """Should build the root value from field defaults."""
        tree = build_tree({"key": "name", "type": "input"}, {"key": "terms", "type": "checkbox"})
        assert tree.value() == {"name": "", "terms": False}

    def test_group_and_row_paths(self):
        """Should address group children by prefix and flatten rows."""
        tree = build_tree(
            {"key": "address", "type": "group", "fields": [{"key": "city", "type": "input"}]},
            {"key": "r", "type": "row", "fields": [{"key": "first", "type": "input"}]},
            {"key": "intro", "type": "text"},
        )
        assert tree.get("address.city") is not None
        assert tree.get("first") is not None
        assert tree.get("r") is None
        assert tree.get("intro") is None
        assert "address" in tree

    def test_array_item_nodes_on_demand(self):
        """Should create item nodes when resolved."""
        tree = build_tree(
            {"key": "contacts", "type": "array", "template": [{"key": "name", "type": "input"}]},
            value={"contacts": [{"name": "Ada"}]},
        )
        assert tree.get("contacts[0].name") is None
        node = tree.resolve("contacts[0].name")
        assert node.value() == "Ada"
        assert node.scope_path == "contacts[0]"
        assert tree.resolve("contacts[0].missing") is None

    def test_forget(self):
        """Should drop nodes below a prefix."""
        tree = build_tree(
            {"key": "contacts", "type": "array", "template": [{"key": "name", "type": "input"}]},
            value={"contacts": [{"name": "Ada"}, {"name": "Grace"}]},
        )
        tree.resolve("contacts[0].name")
        tree.resolve("contacts[1].name")
        tree.forget("contacts[1]")
        assert tree.get("contacts[0].name") is not None
        assert tree.get("contacts[1].name") is None

    def test_path_helpers(self):
        """Should split item scopes from item-relative paths."""
        assert scope_path_of("a[0].b[2].c") == "a[0].b[2]"
        assert relative_path("a[0].b", "a[0]") == "b"
        assert relative_path("x", "") == "x"


class TestValues:
    """Test reading and writing values."""

    def test_node_writes_through_root(self):
        """Should write node values into the root cell."""
        tree = build_tree({"key": "address", "type": "group", "fields": [{"key": "city", "type": "input"}]})
        tree.get("address.city").value.set("Delft")
        assert tree.value() == {"address": {"city": "Delft"}}

    def test_root_writes_reach_nodes(self):
        """Should update node values when the root changes."""
        tree = build_tree({"key": "name", "type": "input"})
        seen = []
        Effect(lambda: seen.append(tree.get("name").value()))
        tree.write("name", "Ada")
        assert seen == ["", "Ada"]

    def test_write_equal_value_is_ignored(self):
        """Should keep the root value object when nothing changes."""
        tree = build_tree({"key": "name", "type": "input", "value": "Ada"})
        before = tree.value.peek()
        tree.write("name", "Ada")
        assert tree.value.peek() is before

    def test_writes_do_not_mutate_previous_values(self):
        """Should produce a new root value on each write."""
        tree = build_tree({"key": "name", "type": "input"})
        before = tree.value.peek()
        tree.write("name", "Ada")
        assert before == {"name": ""}


class TestLogic:
    """Test reactive logic states."""

    def test_hidden_follows_condition(self):
        """Should re-evaluate hidden when the data it reads changes."""
        tree = build_tree(*ACCOUNT_FIELDS)
        company = tree.get("companyName")
        assert company.hidden() is True
        tree.write("accountType", "business")
        assert company.hidden() is False
        tree.write("accountType", "personal")
        assert company.hidden() is True

    def test_hidden_field_has_no_errors(self):
        """Should not report errors while hidden."""
        tree = build_tree(*ACCOUNT_FIELDS)
        company = tree.get("companyName")
        assert company.errors() == []
        assert tree.valid() is True
        tree.write("accountType", "business")
        assert company.errors()[0].code == FieldErrorCode.REQUIRED
        assert tree.valid() is False

    def test_hidden_container_hides_children(self):
        """Should hide children of a hidden group."""
        tree = build_tree(
            {"key": "show", "type": "checkbox"},
            {
                "key": "extra",
                "type": "group",
                "logic": [{"type": "hidden", "condition": {"type": "javascript", "expression": "!formValue.show"}}],
                "fields": [{"key": "note", "type": "input", "required": True}],
            },
        )
        assert tree.get("extra.note").hidden() is True
        tree.write("show", True)
        assert tree.get("extra.note").hidden() is False
        assert tree.get("extra.note").valid() is False

    def test_required_readonly_disabled(self):
        """Should combine static flags with logic rules."""
        tree = build_tree(
            {"key": "locked", "type": "toggle"},
            {
                "key": "name",
                "type": "input",
                "readonly": True,
                "logic": [
                    {"type": "disabled", "condition": {"type": "fieldValue", "fieldPath": "locked", "operator": "equals", "value": True}},
                    {"type": "required", "condition": {"type": "javascript", "expression": "formValue.locked"}},
                ],
            },
        )
        node = tree.get("name")
        assert node.readonly() is True
        assert node.disabled() is False
        assert node.required() is False
        tree.write("locked", True)
        assert node.disabled() is True
        assert node.required() is True

    def test_item_conditions_use_item_scope(self):
        """Should evaluate item fields against their own item."""
        tree = build_tree(
            {
                "key": "contacts",
                "type": "array",
                "template": [
                    {"key": "kind", "type": "select"},
                    {
                        "key": "phone",
                        "type": "input",
                        "logic": [{"type": "hidden", "condition": {"type": "fieldValue", "fieldPath": "kind", "operator": "notEquals", "value": "phone"}}],
                    },
                ],
            },
            value={"contacts": [{"kind": "phone", "phone": ""}, {"kind": "email", "phone": ""}]},
        )
        assert tree.resolve("contacts[0].phone").hidden() is False
        assert tree.resolve("contacts[1].phone").hidden() is True


class TestInteractionState:
    """Test touched and dirty tracking."""

    def test_touched(self):
        """Should mark nodes touched individually or all at once."""
        tree = build_tree({"key": "a", "type": "input"}, {"key": "b", "type": "input"})
        tree.get("a").mark_as_touched()
        assert tree.get("a").touched() is True
        assert tree.get("b").touched() is False
        tree.mark_all_as_touched()
        assert tree.get("b").touched() is True

    def test_dirty(self):
        """Should compare the value with the pristine value."""
        tree = build_tree({"key": "a", "type": "input", "value": "x"})
        node = tree.get("a")
        assert node.dirty() is False
        node.value.set("y")
        assert node.dirty() is True
        node.value.set("x")
        assert node.dirty() is False

    def test_reset_state(self):
        """Should clear touched and take the current value as pristine."""
        tree = build_tree({"key": "a", "type": "input"})
        node = tree.get("a")
        node.value.set("y")
        node.mark_as_touched()
        tree.reset_state()
        assert node.touched() is False
        assert node.dirty() is False

    def test_snapshot(self):
        """Should serialize every node."""
        tree = build_tree({"key": "a", "type": "input", "required": True})
        snapshot = tree.snapshot()
        assert snapshot["a"]["valid"] is False
        assert snapshot["a"]["errors"][0]["code"] == "required"


class TestPartialValidation:
    """Test validating a subset of fields."""

    def test_validate_fields(self):
        """Should only report errors of the given fields."""
        config = FormConfig.from_dict(
            {
                "fields": [
                    {"key": "p1", "type": "page", "fields": [{"key": "a", "type": "input", "required": True}]},
                    {"key": "p2", "type": "page", "fields": [{"key": "b", "type": "input", "required": True}]},
                ]
            }
        )
        tree = FormTree(config.fields)
        result = tree.validate_fields(config.fields[1].children)
        assert [e.path for e in result.errors] == ["b"]
