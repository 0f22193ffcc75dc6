"""Unit tests for array fields.

Tests cover:
- Initial item handles and their bindings
- Add, append, prepend and insert (with index clamping)
- Remove, pop and shift, including on empty arrays
- Renumbering and stable item ids
- Item-scoped buttons and the array key filter
- Reconciling external writes (reset, programmatic set)
- Leaf templates and template overrides
"""

import pytest

from dynaform.events import (
    AddArrayItemEvent,
    AppendArrayItemEvent,
    ComponentInitializedEvent,
    EventBus,
    InsertArrayItemEvent,
    PopArrayItemEvent,
    PrependArrayItemEvent,
    RemoveAtIndexEvent,
    ShiftArrayItemEvent,
)
from dynaform.runtime import FormRuntime


CONTACT_TEMPLATE = [
    {"key": "name", "type": "input", "required": True},
    {"key": "email", "type": "input", "email": True},
    {"key": "remove", "type": "removeArrayItem"},
]


def contacts_form(value=None, bus=None):
    config = {
        "fields": [
            {"key": "contacts", "type": "array", "template": CONTACT_TEMPLATE},
            {"key": "addContact", "type": "addArrayItem", "arrayKey": "contacts"},
        ]
    }
    if value is not None:
        config["defaultValue"] = {"contacts": value}
    return FormRuntime.from_dict(config, bus=bus)


def names(runtime):
    return [item["name"] for item in runtime.value()["contacts"]]


@pytest.fixture
def runtime():
    return contacts_form([{"name": "Ada", "email": ""}, {"name": "Grace", "email": ""}, {"name": "Linus", "email": ""}])


@pytest.fixture
def controller(runtime):
    return runtime.find_bindings("contacts").array


class TestInitialItems:
    """Test handles built from the initial value."""

    def test_one_handle_per_value(self, controller):
        """Should build a handle for each initial item."""
        assert controller.count() == 3
        assert [item.index() for item in controller.items()] == [0, 1, 2]
        assert [item.key for item in controller.items()] == ["contacts[0]", "contacts[1]", "contacts[2]"]

    def test_item_bindings_scope(self, runtime, controller):
        """Should bind item fields to their own item."""
        second = controller.items()[1]
        name = second.bindings[0]
        assert name.value() == "Grace"
        name.value.set("Grace Hopper")
        assert names(runtime) == ["Ada", "Grace Hopper", "Linus"]
        assert second.value()["name"] == "Grace Hopper"

    def test_item_field_nodes(self, controller):
        """Should expose the item's FieldNode through a cell."""
        node = controller.items()[0].bindings[0].field()
        assert node.path == "contacts[0].name"
        assert node.valid() is True

    def test_component_initialized_once(self):
        """Should announce the array once when it is built."""
        bus = EventBus()
        seen = []
        bus.on(ComponentInitializedEvent, seen.append)
        runtime = contacts_form(bus=bus)
        runtime.find_bindings("addContact").trigger()
        assert seen == [ComponentInitializedEvent("array", "contacts")]


class TestAdding:
    """Test item insertion."""

    def test_add_button_appends(self, runtime, controller):
        """Should append a default item when the add button is clicked."""
        runtime.find_bindings("addContact").trigger()
        assert controller.count() == 4
        assert runtime.value()["contacts"][3] == {"name": "", "email": ""}

    def test_prepend(self, runtime, controller):
        """Should insert at the front and renumber."""
        first = controller.items()[0]
        runtime.bus.dispatch(PrependArrayItemEvent, "contacts")
        assert names(runtime) == ["", "Ada", "Grace", "Linus"]
        assert first.index() == 1
        assert controller.items()[1] is first

    def test_insert_in_the_middle(self, runtime, controller):
        """Should insert at the index and keep the existing handles."""
        ids = [item.id for item in controller.items()]
        runtime.bus.dispatch(InsertArrayItemEvent, "contacts", 1)
        assert names(runtime) == ["Ada", "", "Grace", "Linus"]
        assert [item.id for item in controller.items()][::3] == [ids[0], ids[2]]
        assert controller.items()[2].bindings[0].value() == "Grace"

    @pytest.mark.parametrize("index,expected", [(-5, 0), (99, 3)])
    def test_add_clamps_index(self, runtime, controller, index, expected):
        """Should clamp out-of-range insertion indices."""
        runtime.bus.dispatch(AddArrayItemEvent, "contacts", index)
        assert runtime.value()["contacts"][expected] == {"name": "", "email": ""}
        assert controller.count() == 4

    def test_template_override(self, runtime):
        """Should build the item from the event's template."""
        runtime.bus.dispatch(AppendArrayItemEvent, "contacts", [{"key": "name", "type": "input", "value": "New"}])
        assert runtime.value()["contacts"][3] == {"name": "New"}

    def test_other_array_key_is_ignored(self, runtime, controller):
        """Should ignore events for other arrays."""
        runtime.bus.dispatch(AppendArrayItemEvent, "tags")
        assert controller.count() == 3

    def test_added_item_shifts_nodes(self, runtime, controller):
        """Should rebuild item nodes so paths follow the new positions."""
        controller.items()[0].bindings[0].field()
        controller.prepend()
        node = controller.items()[1].bindings[0].field()
        assert node.path == "contacts[1].name"
        assert node.value() == "Ada"


class TestRemoving:
    """Test item removal."""

    def test_item_remove_button(self, runtime, controller):
        """Should remove the button's own item and renumber the rest."""
        last = controller.items()[2]
        remove = controller.items()[1].bindings[2]
        assert remove.event_args() == ("contacts", 1)
        remove.trigger()
        assert names(runtime) == ["Ada", "Linus"]
        assert last.index() == 1
        assert controller.items()[1].bindings[2].event_args() == ("contacts", 1)

    def test_remove_at_clamps(self, runtime):
        """Should clamp the removal index."""
        runtime.bus.dispatch(RemoveAtIndexEvent, "contacts", 10)
        assert names(runtime) == ["Ada", "Grace"]

    def test_pop_and_shift(self, runtime):
        """Should remove from either end."""
        runtime.bus.dispatch(PopArrayItemEvent, "contacts")
        runtime.bus.dispatch(ShiftArrayItemEvent, "contacts")
        assert names(runtime) == ["Grace"]

    def test_remove_from_empty_array(self):
        """Should ignore removals on an empty array."""
        runtime = contacts_form()
        controller = runtime.find_bindings("contacts").array
        assert controller.pop() is None
        assert controller.shift() is None
        assert runtime.value() == {"contacts": []}

    def test_removed_item_values_follow(self, runtime, controller):
        """Should read the right values through handles after removal."""
        controller.shift()
        assert [item.bindings[0].value() for item in controller.items()] == ["Grace", "Linus"]
        assert [item.bindings[0].field().path for item in controller.items()] == [
            "contacts[0].name",
            "contacts[1].name",
        ]

    def test_move(self, runtime, controller):
        """Should move an item and keep its handle."""
        moved = controller.items()[0]
        controller.move(0, 2)
        assert names(runtime) == ["Grace", "Linus", "Ada"]
        assert controller.items()[2] is moved
        assert moved.index() == 2


class TestReconcile:
    """Test handle reconciliation with external writes."""

    def test_programmatic_set(self, runtime, controller):
        """Should grow and shrink handles to match the value."""
        runtime.set_value("contacts", [{"name": "Solo", "email": ""}])
        assert controller.count() == 1
        assert controller.items()[0].bindings[0].value() == "Solo"

        runtime.set_value("contacts", [{"name": "a", "email": ""}, {"name": "b", "email": ""}])
        assert controller.count() == 2
        assert controller.items()[1].bindings[0].value() == "b"

    def test_reset_restores_items(self, runtime, controller):
        """Should rebuild handles when the form is reset."""
        controller.pop()
        controller.pop()
        runtime.reset()
        assert controller.count() == 3
        assert names(runtime) == ["Ada", "Grace", "Linus"]

    def test_validation_follows_items(self, runtime, controller):
        """Should validate items by their current paths."""
        runtime.bus.dispatch(AppendArrayItemEvent, "contacts")
        assert runtime.valid() is False
        assert [e.path for e in runtime.validate().errors] == ["contacts[3].name"]
        controller.pop()
        assert runtime.valid() is True


class TestLeafTemplate:
    """Test arrays of primitive values."""

    def test_item_value_is_the_item(self):
        """Should bind a leaf template to the item itself."""
        runtime = FormRuntime.from_dict(
            {"fields": [{"key": "tags", "type": "array", "template": {"key": "tag", "type": "input"}, "value": ["a", "b"]}]}
        )
        controller = runtime.find_bindings("tags").array
        tag = controller.items()[1].bindings[0]
        tag.value.set("B")
        assert runtime.value() == {"tags": ["a", "B"]}
        assert tag.field().path == "tags[1]"
        controller.append()
        assert runtime.value() == {"tags": ["a", "B", ""]}
