"""Field binding layer: definitions in, live renderer inputs out.

A mapper projects one FieldDefinition, in a FieldSignalContext, into a
FieldBindings object: the value cell, the static or reactive hidden/
disabled/readonly/required states, merged validation messages, the live
FieldNode and, for containers, the bindings of their children. Renderers only
ever read bindings; they never evaluate conditions themselves.

Mappers are looked up in a FieldTypeRegistry, once per field. A field whose
type is unknown or whose mapper fails is logged and left out, and the rest of
the form still builds.

Usage:
    >>> from dynaform.config import FormConfig
    >>> from dynaform.events import EventBus
    >>> from dynaform.form import FormTree
    >>> config = FormConfig.from_dict({"fields": [{"key": "name", "type": "input", "label": "Name"}]})
    >>> context = FieldSignalContext(FormTree(config.fields), EventBus(), create_default_registry())
    >>> bindings = map_fields(config.fields, context)
    >>> bindings[0].value.set("Ada")
    >>> context.tree.value()
    {'name': 'Ada'}
"""

import logging
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, Union

from dynaform.conditions import EvaluationContext, evaluate_logic
from dynaform.config import ArrayTemplate, ButtonField, FieldDefinition, FormConfig, ValueField
from dynaform.errors import UnknownFieldTypeError
from dynaform.events import (
    AppendArrayItemEvent,
    EventBus,
    FormEvent,
    InsertArrayItemEvent,
    NextPageEvent,
    PopArrayItemEvent,
    PrependArrayItemEvent,
    PreviousPageEvent,
    RemoveAtIndexEvent,
    ShiftArrayItemEvent,
    SubmitEvent,
)
from dynaform.form import FormTree, relative_path, scope_path_of
from dynaform.paths import MISSING, get_path
from dynaform.registry import FieldTypeDefinition, FieldTypeRegistry
from dynaform.signals import Computed, DerivedSignal, Signal, unwrap
from dynaform.types import FieldType, LogicType, ValueHandling
from dynaform.values import build_default_value, build_item_value, type_empty_value

logger = logging.getLogger(__name__)

Reactive = Union[bool, Computed]


@dataclass
class ArrayContext:
    """Position of a subtree inside one array item.

    Attributes:
        array_key: Key of the array field, as carried by array events
        index: Reactive position of the item; renumbered on every mutation
        array_path: Returns the root-relative path of the array
        template: The item template
        item_id: Stable identity of the item across renumbering
    """
    array_key: str
    index: Signal
    array_path: Callable[[], str]
    template: ArrayTemplate = None
    item_id: str = ""

    def item_path(self) -> str:
        return f"{self.array_path()}[{self.index()}]"


class FieldSignalContext:
    """Everything a mapper needs to build bindings for one scope.

    The root context covers the whole form; child() scopes a context to a
    group's sub-object and for_array_item() to one array item. Every context
    shares the same FormTree (and so the same root cell), bus and registries.

    Attributes:
        tree: The live form tree (root value cell and field nodes)
        bus: Event bus the form's buttons dispatch on
        registry: Field type registry used to resolve mappers
        functions: Optional FunctionRegistry
        default_validation_messages: Form-level messages per error code
        options: FormConfig carrying form-level options
        array: Set inside array items
        pages: Optional page orchestrator (drives next button state)
    """

    def __init__(
        self,
        tree: FormTree,
        bus: EventBus,
        registry: FieldTypeRegistry,
        functions: Any = None,
        default_values: Optional[Dict[str, Any]] = None,
        default_validation_messages: Optional[Dict[str, str]] = None,
        options: Optional[FormConfig] = None,
        array: Optional[ArrayContext] = None,
        pages: Any = None,
        scope: Optional[Callable[[], str]] = None,
    ) -> None:
        self.tree = tree
        self.bus = bus
        self.registry = registry
        self.functions = functions
        self.default_values = (
            default_values if default_values is not None else build_default_value(tree.fields, registry)
        )
        self.default_validation_messages = dict(default_validation_messages or {})
        self.options = options or FormConfig()
        self.array = array
        self.pages = pages
        self._scope = scope or (lambda: "")
        self._cells: Dict[str, DerivedSignal] = {}

    # -- scoping --------------------------------------------------------------

    def scope_path(self) -> str:
        """Root-relative path of this context's scope ("" at the root)."""
        return self._scope()

    def path_of(self, key: str) -> str:
        scope = self.scope_path()
        return f"{scope}.{key}" if scope else key

    def _derive(self, **overrides: Any) -> "FieldSignalContext":
        params = dict(
            tree=self.tree,
            bus=self.bus,
            registry=self.registry,
            functions=self.functions,
            default_values=self.default_values,
            default_validation_messages=self.default_validation_messages,
            options=self.options,
            array=self.array,
            pages=self.pages,
            scope=self._scope,
        )
        params.update(overrides)
        return FieldSignalContext(**params)

    def child(self, key: str) -> "FieldSignalContext":
        """Context scoped to a group's sub-object."""
        defaults = self.default_values.get(key) if isinstance(self.default_values, dict) else None
        return self._derive(
            default_values=defaults if isinstance(defaults, dict) else {},
            scope=lambda: self.path_of(key),
        )

    def for_array_item(self, array: ArrayContext) -> "FieldSignalContext":
        """Context scoped to one array item."""
        item_default = build_item_value(array.template, self.registry)
        return self._derive(
            default_values=item_default if isinstance(item_default, dict) else {},
            array=array,
            scope=array.item_path,
        )

    # -- values ---------------------------------------------------------------

    def value_cell(self, key: str, empty: Any = None) -> DerivedSignal:
        """Two-way value cell for key, created once per context.

        Reads fall back to the scope's default when the root value has no
        entry at the path; writes go through the root cell and are dropped
        when equal to the current value.
        """
        cell = self._cells.get(key)
        if cell is None:
            cell = DerivedSignal(
                lambda: self._read(key, empty),
                lambda value: self.tree.write(self.path_of(key), value),
                name=key,
            )
            self._cells[key] = cell
        return cell

    def _read(self, key: str, empty: Any) -> Any:
        value = get_path(self.tree.value(), self.path_of(key), MISSING)
        if value is MISSING:
            value = get_path(self.default_values, key, empty)
        return value

    def item_value_cell(self) -> DerivedSignal:
        """Value cell of the current array item itself (leaf templates)."""
        cell = self._cells.get("")
        if cell is None:
            cell = DerivedSignal(
                lambda: get_path(self.tree.value(), self.scope_path()),
                lambda value: self.tree.write(self.scope_path(), value),
                name=self.array.array_key if self.array else "item",
            )
            self._cells[""] = cell
        return cell

    def evaluation_context(self, key: Optional[str]) -> EvaluationContext:
        """Context for evaluating the logic of the field at key (tracked)."""
        path = self.path_of(key) if key else self.scope_path()
        scope = scope_path_of(path) if self.array is not None else ""
        value = get_path(self.tree.value(), path) if path else None
        return self.tree.context(scope).with_field(relative_path(path, scope), value)


@dataclass
class FieldBindings:
    """Live inputs a renderer consumes for one field.

    Attributes that may be reactive hold either a plain value or a cell;
    read them with ``dynaform.signals.unwrap``.
    """
    key: str
    type: str
    label: Optional[str] = None
    class_name: Optional[str] = None
    tab_index: Optional[int] = None
    props: Dict[str, Any] = dataclass_field(default_factory=dict)
    value: Optional[Any] = None
    hidden: Reactive = False
    disabled: Reactive = False
    readonly: Reactive = False
    required: Reactive = False
    validation_messages: Dict[str, str] = dataclass_field(default_factory=dict)
    field: Optional[Any] = None
    options: Tuple[Dict[str, Any], ...] = ()
    placeholder: Optional[str] = None
    children: List["FieldBindings"] = dataclass_field(default_factory=list)
    event: Optional[Type[FormEvent]] = None
    event_args: Any = ()
    trigger: Optional[Callable[[], Optional[FormEvent]]] = None
    page_index: Optional[int] = None
    active: Reactive = True
    array: Optional[Any] = None
    loader: Optional[Callable[[], Any]] = None

    def component(self) -> Any:
        """Resolve the renderer component registered for this type."""
        return self.loader() if self.loader is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot with every cell read once; callables are left out."""
        result: Dict[str, Any] = {"key": self.key, "type": self.type}
        for name in ("label", "class_name", "tab_index", "placeholder", "page_index"):
            value = getattr(self, name)
            if value is not None:
                result[_camel(name)] = value
        if self.props:
            result["props"] = dict(self.props)
        if self.value is not None:
            result["value"] = unwrap(self.value)
        for name in ("hidden", "disabled", "readonly", "required"):
            result[name] = bool(unwrap(getattr(self, name)))
        if self.page_index is not None:
            result["active"] = bool(unwrap(self.active))
        if self.validation_messages:
            result["validationMessages"] = dict(self.validation_messages)
        if self.options:
            result["options"] = [dict(o) for o in self.options]
        if self.event is not None:
            result["event"] = self.event.type
            result["eventArgs"] = list(unwrap(self.event_args))
        node = unwrap(self.field)
        if node is not None:
            result["valid"] = node.valid.peek()
            result["errors"] = [e.to_dict() for e in node.errors.peek()]
        if self.array is not None:
            result["items"] = [
                [child.to_dict() for child in item.bindings] for item in self.array.items()
            ]
        elif self.children:
            result["fields"] = [child.to_dict() for child in self.children]
        return result


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def map_field_to_bindings(definition: FieldDefinition, context: FieldSignalContext) -> Optional[FieldBindings]:
    """Resolve the field's mapper and build its bindings.

    Returns None (after logging) when the type is unregistered or the mapper
    raises.
    """
    try:
        type_definition = context.registry.get(definition.type)
    except UnknownFieldTypeError:
        logger.warning("Skipping field '%s': no field type registered for '%s'", definition.key, definition.type)
        return None
    try:
        bindings = type_definition.mapper(definition, context)
    except Exception:
        logger.exception("Mapper for field '%s' (type '%s') failed", definition.key, definition.type)
        return None
    if bindings is not None and bindings.loader is None:
        bindings.loader = type_definition.loader
    return bindings


def map_fields(fields: Sequence[FieldDefinition], context: FieldSignalContext) -> List[FieldBindings]:
    """Map sibling fields, leaving out the ones that fail."""
    result = []
    for definition in fields:
        bindings = map_field_to_bindings(definition, context)
        if bindings is not None:
            result.append(bindings)
    return result


# ---------------------------------------------------------------------------
# Mappers
# ---------------------------------------------------------------------------


def logic_binding(definition: FieldDefinition, logic_type: LogicType, context: FieldSignalContext) -> Reactive:
    """Static flag when the field has no rules of this type, else a Computed."""
    static = getattr(definition, logic_type.value, False) is True
    if static or not definition.rules_of(logic_type):
        return static
    key = definition.key if _owns_value(definition, context) else None
    return Computed(
        lambda: evaluate_logic(definition, logic_type, context.evaluation_context(key)),
        name=f"{definition.key}:{logic_type.value}",
    )


def _owns_value(definition: FieldDefinition, context: FieldSignalContext) -> bool:
    return context.registry.value_handling(definition.type) == ValueHandling.INCLUDE


def _node_binding(definition: FieldDefinition, context: FieldSignalContext) -> Optional[Any]:
    if context.array is None:
        return context.tree.resolve(context.path_of(definition.key))
    return Computed(lambda: context.tree.resolve(context.path_of(definition.key)), name=f"{definition.key}:node")


def base_field_mapper(definition: FieldDefinition, context: FieldSignalContext) -> FieldBindings:
    """Inputs shared by every field type."""
    return FieldBindings(
        key=definition.key,
        type=definition.type,
        label=definition.label,
        class_name=definition.class_name,
        tab_index=definition.tab_index,
        props=dict(definition.props),
        hidden=logic_binding(definition, LogicType.HIDDEN, context),
        disabled=logic_binding(definition, LogicType.DISABLED, context),
    )


def value_field_mapper(definition: FieldDefinition, context: FieldSignalContext) -> FieldBindings:
    """Leaf fields: a two-way value cell plus validation-related inputs."""
    bindings = base_field_mapper(definition, context)
    empty = type_empty_value(definition.type, context.registry)
    bindings.value = context.value_cell(definition.key, empty)
    bindings.readonly = logic_binding(definition, LogicType.READONLY, context)
    bindings.required = logic_binding(definition, LogicType.REQUIRED, context)
    bindings.validation_messages = {**context.default_validation_messages, **definition.validation_messages}
    bindings.field = _node_binding(definition, context)
    if isinstance(definition, ValueField):
        bindings.options = definition.options
        bindings.placeholder = definition.placeholder
    return bindings


def checkbox_field_mapper(definition: FieldDefinition, context: FieldSignalContext) -> FieldBindings:
    """Checkbox and toggle: the value cell always reads as a bool."""
    bindings = value_field_mapper(definition, context)
    raw = bindings.value
    bindings.value = DerivedSignal(lambda: bool(raw()), lambda v: raw.set(bool(v)), name=definition.key)
    return bindings


def text_field_mapper(definition: FieldDefinition, context: FieldSignalContext) -> FieldBindings:
    """Display-only text: no value, no validation."""
    return base_field_mapper(definition, context)


def row_field_mapper(definition: FieldDefinition, context: FieldSignalContext) -> FieldBindings:
    """Rows lay out children horizontally; children share the parent scope."""
    bindings = base_field_mapper(definition, context)
    bindings.children = map_fields(definition.children, context)
    return bindings


def group_field_mapper(definition: FieldDefinition, context: FieldSignalContext) -> FieldBindings:
    """Groups scope their children to the group's sub-object."""
    bindings = base_field_mapper(definition, context)
    bindings.value = context.value_cell(definition.key, {})
    bindings.field = _node_binding(definition, context)
    bindings.children = map_fields(definition.children, context.child(definition.key))
    return bindings


def page_field_mapper(definition: FieldDefinition, context: FieldSignalContext) -> FieldBindings:
    """Pages flatten into the root scope; ``active`` follows the orchestrator."""
    bindings = base_field_mapper(definition, context)
    bindings.children = map_fields(definition.children, context)
    pages = context.pages
    if pages is not None:
        index = pages.index_of(definition)
        bindings.page_index = index
        hidden = bindings.hidden
        bindings.active = Computed(
            lambda: pages.current_page_index() == index and not unwrap(hidden),
            name=f"{definition.key}:active",
        )
    return bindings


# ---------------------------------------------------------------------------
# Buttons
# ---------------------------------------------------------------------------

_BUTTON_EVENTS: Dict[str, Tuple[Type[FormEvent], Tuple[Any, ...]]] = {
    FieldType.SUBMIT.value: (SubmitEvent, ()),
    FieldType.NEXT.value: (NextPageEvent, ()),
    FieldType.PREVIOUS.value: (PreviousPageEvent, ()),
    FieldType.ADD_ARRAY_ITEM.value: (AppendArrayItemEvent, ("$arrayKey", "$template")),
    FieldType.PREPEND_ARRAY_ITEM.value: (PrependArrayItemEvent, ("$arrayKey", "$template")),
    FieldType.POP_ARRAY_ITEM.value: (PopArrayItemEvent, ("$arrayKey",)),
    FieldType.SHIFT_ARRAY_ITEM.value: (ShiftArrayItemEvent, ("$arrayKey",)),
}


def _button_event(definition: ButtonField, context: FieldSignalContext) -> Tuple[Type[FormEvent], Tuple[Any, ...]]:
    if definition.type == FieldType.INSERT_ARRAY_ITEM.value:
        return InsertArrayItemEvent, ("$arrayKey", definition.index, "$template")
    if definition.type == FieldType.REMOVE_ARRAY_ITEM.value:
        # Inside an item the button removes its own item, outside the last one
        if context.array is not None:
            return RemoveAtIndexEvent, ("$arrayKey", "$index")
        return PopArrayItemEvent, ("$arrayKey",)
    return _BUTTON_EVENTS[definition.type]


def resolve_event_args(
    args: Sequence[Any],
    definition: ButtonField,
    context: FieldSignalContext,
) -> Tuple[Any, ...]:
    """Replace ``$arrayKey``, ``$index`` and ``$template`` placeholders.

    An explicit ``arrayKey`` on the button wins over the enclosing array.
    """
    array = context.array
    resolved = []
    for arg in args:
        if arg == "$arrayKey":
            arg = definition.array_key or (array.array_key if array is not None else None)
        elif arg == "$index":
            arg = array.index() if array is not None else None
        elif arg == "$template":
            arg = definition.template
        resolved.append(arg)
    return tuple(resolved)


def button_field_mapper(definition: FieldDefinition, context: FieldSignalContext) -> FieldBindings:
    """Buttons expose their event, resolved arguments and a trigger()."""
    if not isinstance(definition, ButtonField):
        raise TypeError(f"Field '{definition.key}' is not a button definition")
    bindings = base_field_mapper(definition, context)
    event_class, default_args = _button_event(definition, context)
    raw_args = definition.event_args if definition.event_args is not None else default_args
    is_array_button = definition.type not in (FieldType.SUBMIT.value, FieldType.NEXT.value, FieldType.PREVIOUS.value)
    inert = is_array_button and context.array is None and not definition.array_key and definition.event_args is None
    if inert:
        logger.warning(
            "Array button '%s' is outside an array and has no arrayKey; it will not do anything",
            definition.key,
        )

    bindings.event = event_class
    bindings.event_args = Computed(lambda: resolve_event_args(raw_args, definition, context), name=f"{definition.key}:args")
    bindings.disabled = _button_disabled(definition, context, bindings.disabled)

    def trigger() -> Optional[FormEvent]:
        if inert or unwrap(bindings.disabled):
            return None
        return context.bus.dispatch(event_class, *bindings.event_args.peek())

    bindings.trigger = trigger
    return bindings


def _button_disabled(definition: ButtonField, context: FieldSignalContext, base: Reactive) -> Reactive:
    options = context.options
    if definition.type == FieldType.SUBMIT.value and options.submit_disabled_when_invalid:
        return Computed(lambda: bool(unwrap(base)) or not context.tree.valid(), name=f"{definition.key}:disabled")
    if definition.type == FieldType.NEXT.value and options.next_disabled_when_page_invalid and context.pages is not None:
        pages = context.pages
        return Computed(
            lambda: bool(unwrap(base)) or not pages.current_page_valid(),
            name=f"{definition.key}:disabled",
        )
    return base


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_VALUE_TYPES = (
    FieldType.INPUT,
    FieldType.SELECT,
    FieldType.RADIO,
    FieldType.SLIDER,
    FieldType.TEXTAREA,
    FieldType.DATEPICKER,
    FieldType.HIDDEN,
    FieldType.MULTI_CHECKBOX,
)


def create_default_registry() -> FieldTypeRegistry:
    """Registry with every built-in field type."""
    from dynaform.arrays import array_field_mapper

    registry = FieldTypeRegistry()
    for field_type in _VALUE_TYPES:
        registry.register(
            FieldTypeDefinition(
                name=field_type.value,
                mapper=value_field_mapper,
                empty_value=type_empty_value(field_type.value),
            )
        )
    for field_type in (FieldType.CHECKBOX, FieldType.TOGGLE):
        registry.register(FieldTypeDefinition(name=field_type.value, mapper=checkbox_field_mapper, empty_value=False))
    registry.register(FieldTypeDefinition(FieldType.TEXT.value, text_field_mapper, ValueHandling.EXCLUDE))
    registry.register(FieldTypeDefinition(FieldType.ROW.value, row_field_mapper, ValueHandling.FLATTEN))
    registry.register(FieldTypeDefinition(FieldType.PAGE.value, page_field_mapper, ValueHandling.FLATTEN))
    registry.register(FieldTypeDefinition(FieldType.GROUP.value, group_field_mapper, empty_value={}))
    registry.register(FieldTypeDefinition(FieldType.ARRAY.value, array_field_mapper, empty_value=[]))
    for field_type in (
        FieldType.SUBMIT,
        FieldType.NEXT,
        FieldType.PREVIOUS,
        FieldType.ADD_ARRAY_ITEM,
        FieldType.PREPEND_ARRAY_ITEM,
        FieldType.INSERT_ARRAY_ITEM,
        FieldType.REMOVE_ARRAY_ITEM,
        FieldType.POP_ARRAY_ITEM,
        FieldType.SHIFT_ARRAY_ITEM,
    ):
        registry.register(FieldTypeDefinition(field_type.value, button_field_mapper, ValueHandling.EXCLUDE))
    return registry


__all__ = [
    "ArrayContext",
    "FieldSignalContext",
    "FieldBindings",
    "map_field_to_bindings",
    "map_fields",
    "logic_binding",
    "resolve_event_args",
    "base_field_mapper",
    "value_field_mapper",
    "checkbox_field_mapper",
    "text_field_mapper",
    "row_field_mapper",
    "group_field_mapper",
    "page_field_mapper",
    "button_field_mapper",
    "create_default_registry",
]
