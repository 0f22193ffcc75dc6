"""Array field controller: repeating items addressed by index.

An array field keeps an ordered list of item values at its key in the root
form value. ArrayFieldController mirrors that list with ArrayItem handles.
Each handle has a stable id and a reactive index, and owns the bindings
built from the item template. Mutations arrive as events on the form's bus,
filtered on the array key:

    add-array-item      append, or insert when an index is given
    append-array-item   append
    prepend-array-item  insert at 0
    insert-array-item   insert at index
    remove-array-item   remove at index, or the last item
    remove-at-index     remove at index
    pop-array-item      remove the last item
    shift-array-item    remove the first item

Indices are clamped into range and items are renumbered 0..n-1 after every
mutation. Writes made to the array value from elsewhere (form reset, a
programmatic set) are reconciled into the handle list.

Usage:
    >>> from dynaform.runtime import FormRuntime
    >>> runtime = FormRuntime.from_dict({"fields": [
    ...     {"key": "tags", "type": "array", "template": {"key": "tag", "type": "input"}, "value": ["a"]},
    ... ]})
    >>> _ = runtime.bus.dispatch(AppendArrayItemEvent, "tags")
    >>> runtime.value()
    {'tags': ['a', '']}
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Optional

from dynaform.config import ArrayField, ArrayTemplate, ContainerField, field_from_dict
from dynaform.events import (
    ARRAY_EVENT_TYPES,
    AddArrayItemEvent,
    AppendArrayItemEvent,
    ComponentInitializedEvent,
    FormEvent,
    InsertArrayItemEvent,
    PopArrayItemEvent,
    PrependArrayItemEvent,
    RemoveArrayItemEvent,
    RemoveAtIndexEvent,
    ShiftArrayItemEvent,
)
from dynaform.mapping import (
    ArrayContext,
    FieldBindings,
    FieldSignalContext,
    base_field_mapper,
    map_field_to_bindings,
    map_fields,
)
from dynaform.paths import get_path
from dynaform.signals import Computed, Effect, Signal, batch, untracked
from dynaform.values import build_item_value

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ArrayItem:
    """Handle for one array item.

    Attributes:
        id: Stable identity, unchanged by renumbering
        index: Reactive 0-based position
        context: Binding context scoped to the item
        template: Template the item was built from
        bindings: Bindings of the item's fields
    """
    id: str
    index: Signal
    context: FieldSignalContext
    template: ArrayTemplate
    bindings: List[FieldBindings] = field(default_factory=list)

    @property
    def key(self) -> str:
        """Display key, e.g. ``contacts[2]``."""
        return self.context.scope_path()

    def value(self) -> Any:
        return get_path(self.context.tree.value(), self.context.scope_path())


def _normalize_template(template: Any) -> ArrayTemplate:
    if template is None:
        return None
    if isinstance(template, dict):
        return field_from_dict(template)
    if isinstance(template, list):
        template = tuple(template)
    if isinstance(template, tuple):
        return tuple(field_from_dict(t) if isinstance(t, dict) else t for t in template)
    return template


class ArrayFieldController:
    """Keeps ArrayItem handles in step with an array value.

    Attributes:
        definition: The array field
        context: Binding context the array field lives in
        key: The array's key, matched against event ``array_key``
    """

    def __init__(self, definition: ArrayField, context: FieldSignalContext) -> None:
        self.definition = definition
        self.context = context
        self.key = definition.key
        self._items: Signal[List[ArrayItem]] = Signal([], equal=lambda a, b: a is b, name=f"{self.key}:items")
        self._destroyed = False
        with batch():
            for index in range(len(self._current_value())):
                self._insert_handle(index, definition.template)
        self._subscription = context.bus.on(ARRAY_EVENT_TYPES, self._handle_event)
        self._sync = Effect(self._reconcile, name=f"{self.key}:reconcile")
        context.bus.dispatch(ComponentInitializedEvent, "array", self.key)

    # -- state ----------------------------------------------------------------

    def path(self) -> str:
        """Root-relative path of the array value."""
        return self.context.path_of(self.key)

    def items(self) -> List[ArrayItem]:
        return self._items()

    def count(self) -> int:
        return len(self._items())

    def value(self) -> List[Any]:
        return list(self._current_value())

    def _current_value(self) -> List[Any]:
        current = untracked(lambda: get_path(self.context.tree.value(), self.path()))
        return list(current) if isinstance(current, (list, tuple)) else []

    # -- events ---------------------------------------------------------------

    def _handle_event(self, event: FormEvent) -> None:
        if getattr(event, "array_key", None) not in (self.key, untracked(self.path)):
            return
        if isinstance(event, (AddArrayItemEvent, InsertArrayItemEvent)):
            self.add(event.index, event.template)
        elif isinstance(event, AppendArrayItemEvent):
            self.add(None, event.template)
        elif isinstance(event, PrependArrayItemEvent):
            self.add(0, event.template)
        elif isinstance(event, (RemoveArrayItemEvent, RemoveAtIndexEvent)):
            self.remove(event.index)
        elif isinstance(event, PopArrayItemEvent):
            self.remove(None)
        elif isinstance(event, ShiftArrayItemEvent):
            self.remove(0)

    # -- mutations ------------------------------------------------------------

    def add(self, index: Optional[int] = None, template: Any = None) -> ArrayItem:
        """Insert a new item at index (clamped), or append when index is None.

        Args:
            index: Insertion position
            template: Template override for this item (field definition,
                tuple of definitions, or their dict form)

        Returns:
            The new item's handle
        """
        template = _normalize_template(template) or self.definition.template
        values = self._current_value()
        count = len(values)
        index = count if index is None else max(0, min(int(index), count))
        values.insert(index, build_item_value(template, self.context.registry))
        with batch():
            self._forget_from(index)
            item = self._insert_handle(index, template)
            self.context.tree.write(untracked(self.path), values)
        logger.debug("Added item %d to array '%s'", index, self.key)
        return item

    def append(self, template: Any = None) -> ArrayItem:
        return self.add(None, template)

    def prepend(self, template: Any = None) -> ArrayItem:
        return self.add(0, template)

    def insert(self, index: int, template: Any = None) -> ArrayItem:
        return self.add(index, template)

    def remove(self, index: Optional[int] = None) -> Optional[ArrayItem]:
        """Remove the item at index (clamped), or the last item.

        Returns:
            The removed handle, or None when the array is empty
        """
        values = self._current_value()
        count = len(values)
        if count == 0:
            logger.debug("Ignoring remove on empty array '%s'", self.key)
            return None
        index = count - 1 if index is None else max(0, min(int(index), count - 1))
        del values[index]
        with batch():
            self._forget_from(index)
            items = list(self._items.peek())
            removed = items.pop(index) if index < len(items) else None
            if removed is not None:
                _dispose(removed)
            self._renumber(items)
            self.context.tree.write(untracked(self.path), values)
        logger.debug("Removed item %d from array '%s'", index, self.key)
        return removed

    def remove_at(self, index: int) -> Optional[ArrayItem]:
        return self.remove(index)

    def pop(self) -> Optional[ArrayItem]:
        return self.remove(None)

    def shift(self) -> Optional[ArrayItem]:
        return self.remove(0)

    def move(self, from_index: int, to_index: int) -> None:
        """Move one item, keeping its handle (and so its id)."""
        values = self._current_value()
        count = len(values)
        if count == 0:
            return
        from_index = max(0, min(from_index, count - 1))
        to_index = max(0, min(to_index, count - 1))
        if from_index == to_index:
            return
        values.insert(to_index, values.pop(from_index))
        with batch():
            self._forget_from(min(from_index, to_index))
            items = list(self._items.peek())
            items.insert(to_index, items.pop(from_index))
            self._renumber(items)
            self.context.tree.write(untracked(self.path), values)

    # -- handles --------------------------------------------------------------

    def _insert_handle(self, index: int, template: ArrayTemplate) -> ArrayItem:
        items = list(self._items.peek())
        item = self._build_item(index, template)
        items.insert(index, item)
        self._renumber(items)
        return item

    def _renumber(self, items: List[ArrayItem]) -> None:
        for position, item in enumerate(items):
            item.index.set(position)
        self._items.set(items)

    def _forget_from(self, index: int) -> None:
        path = untracked(self.path)
        for position in range(index, len(self._items.peek()) + 1):
            self.context.tree.forget(f"{path}[{position}]")

    def _build_item(self, index: int, template: ArrayTemplate) -> ArrayItem:
        array = ArrayContext(
            array_key=self.key,
            index=Signal(index),
            array_path=self.path,
            template=template,
            item_id=uuid.uuid4().hex,
        )
        item_context = self.context.for_array_item(array)
        item = ArrayItem(id=array.item_id, index=array.index, context=item_context, template=template)
        item.bindings = self._item_bindings(template, item_context)
        return item

    def _item_bindings(self, template: ArrayTemplate, context: FieldSignalContext) -> List[FieldBindings]:
        if template is None:
            logger.warning("Array '%s' has no item template", self.key)
            return []
        if isinstance(template, tuple):
            return map_fields(template, context)
        if isinstance(template, ContainerField):
            return map_fields(template.children, context)
        bindings = map_field_to_bindings(template, context)
        if bindings is None:
            return []
        # A leaf template's value is the item itself
        bindings.value = context.item_value_cell()
        tree = context.tree
        bindings.field = Computed(lambda: tree.resolve(context.scope_path()), name=f"{self.key}:item")
        return [bindings]

    def _reconcile(self) -> None:
        current = get_path(self.context.tree.value(), self.path())
        target = len(current) if isinstance(current, (list, tuple)) else 0
        items = untracked(self._items)
        if target == len(items):
            return
        logger.debug("Reconciling array '%s': %d handles, %d values", self.key, len(items), target)
        untracked(lambda: self._resize(list(items), target))

    def _resize(self, items: List[ArrayItem], target: int) -> None:
        with batch():
            if target < len(items):
                self._forget_from(target)
                for stale in items[target:]:
                    _dispose(stale)
                del items[target:]
            while len(items) < target:
                items.append(self._build_item(len(items), self.definition.template))
            self._renumber(items)

    def destroy(self) -> None:
        """Stop listening for events and external writes."""
        if self._destroyed:
            return
        self._destroyed = True
        self._subscription.unsubscribe()
        self._sync.destroy()
        for item in self._items.peek():
            _dispose(item)


def _dispose(item: ArrayItem) -> None:
    """Destroy controllers of arrays nested inside an item."""
    pending = list(item.bindings)
    while pending:
        bindings = pending.pop()
        if bindings.array is not None:
            bindings.array.destroy()
        pending.extend(bindings.children)


def array_field_mapper(definition: Any, context: FieldSignalContext) -> FieldBindings:
    """Arrays: the list value cell plus a controller owning the items."""
    if not isinstance(definition, ArrayField):
        raise TypeError(f"Field '{definition.key}' is not an array definition")
    bindings = base_field_mapper(definition, context)
    bindings.value = context.value_cell(definition.key, [])
    bindings.validation_messages = {**context.default_validation_messages, **definition.validation_messages}
    bindings.array = ArrayFieldController(definition, context)
    tree = context.tree
    bindings.field = Computed(lambda: tree.resolve(context.path_of(definition.key)), name=f"{definition.key}:node")
    return bindings


__all__ = [
    "ArrayItem",
    "ArrayFieldController",
    "array_field_mapper",
]
