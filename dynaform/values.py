"""Default, empty and item values derived from field definitions.

How a field contributes to the form value depends on its type's
ValueHandling: value fields own a key, rows and pages are flattened into
their parent, buttons and text never appear.

Usage:
    >>> from dynaform.config import FormConfig
    >>> config = FormConfig.from_dict({"fields": [
    ...     {"key": "name", "type": "input"},
    ...     {"key": "terms", "type": "checkbox"},
    ...     {"key": "address", "type": "group", "fields": [{"key": "city", "type": "input", "value": "Delft"}]},
    ... ]})
    >>> build_default_value(config.fields)
    {'name': '', 'terms': False, 'address': {'city': 'Delft'}}
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

from dynaform.config import ArrayField, ArrayTemplate, ContainerField, FieldDefinition
from dynaform.types import BUTTON_TYPES, FieldType, ValueHandling

EMPTY_VALUES: Dict[str, Any] = {
    FieldType.CHECKBOX.value: False,
    FieldType.TOGGLE.value: False,
    FieldType.MULTI_CHECKBOX.value: [],
    FieldType.SLIDER.value: None,
    FieldType.DATEPICKER.value: None,
    FieldType.ARRAY.value: [],
}


def type_empty_value(field_type: str, registry: Any = None) -> Any:
    """Value a field of this type takes when it has no default or is cleared.

    Registered types use their definition's empty_value; built-in types fall
    back to EMPTY_VALUES and then to the empty string.
    """
    if registry is not None and registry.has(field_type):
        return copy.deepcopy(registry.empty_value(field_type))
    return copy.deepcopy(EMPTY_VALUES.get(field_type, ""))


def value_handling_of(definition: FieldDefinition, registry: Any = None) -> ValueHandling:
    """Resolve how a field contributes to the form value."""
    if registry is not None and registry.has(definition.type):
        return registry.value_handling(definition.type)
    if definition.type in (FieldType.ROW.value, FieldType.PAGE.value):
        return ValueHandling.FLATTEN
    if definition.type == FieldType.TEXT.value or definition.type in {t.value for t in BUTTON_TYPES}:
        return ValueHandling.EXCLUDE
    return ValueHandling.INCLUDE


def get_field_default_value(definition: FieldDefinition, registry: Any = None, use_configured: bool = True) -> Any:
    """Default value of one value-owning field.

    Groups yield a dict of their children, arrays their initial items, leaf
    fields their configured ``value`` or the type's empty value. A configured
    None also falls back to the type's empty value.
    """
    if isinstance(definition, ArrayField):
        if use_configured and definition.value is not None:
            return copy.deepcopy(list(definition.value))
        return []
    if isinstance(definition, ContainerField):
        return _collect(definition.fields, registry, use_configured)
    configured = getattr(definition, "value", None)
    if use_configured and configured is not None:
        return copy.deepcopy(configured)
    return type_empty_value(definition.type, registry)


def _collect(fields: Sequence[FieldDefinition], registry: Any, use_configured: bool) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for definition in fields:
        handling = value_handling_of(definition, registry)
        if handling == ValueHandling.EXCLUDE:
            continue
        if handling == ValueHandling.FLATTEN:
            result.update(_collect(definition.children, registry, use_configured))
            continue
        result[definition.key] = get_field_default_value(definition, registry, use_configured)
    return result


def build_default_value(fields: Sequence[FieldDefinition], registry: Any = None) -> Dict[str, Any]:
    """Form value made of every field's default."""
    return _collect(fields, registry, use_configured=True)


def build_empty_value(fields: Sequence[FieldDefinition], registry: Any = None) -> Dict[str, Any]:
    """Form value made of every field's type-empty value (configured defaults ignored)."""
    return _collect(fields, registry, use_configured=False)


def build_item_value(template: ArrayTemplate, registry: Any = None) -> Any:
    """Default value of a new array item.

    A tuple template, a group or a row yields a dict; a single leaf template
    yields a scalar.

    Examples:
        >>> from dynaform.config import field_from_dict
        >>> build_item_value(field_from_dict({"key": "tag", "type": "input"}))
        ''
    """
    if template is None:
        return None
    if isinstance(template, tuple):
        return _collect(template, registry, use_configured=True)
    if value_handling_of(template, registry) == ValueHandling.FLATTEN:
        return _collect(template.children, registry, use_configured=True)
    return get_field_default_value(template, registry)


def iter_value_fields(
    fields: Sequence[FieldDefinition],
    registry: Any = None,
    prefix: str = "",
) -> Iterator[Tuple[str, FieldDefinition]]:
    """Yield (path, definition) for every field that owns a value.

    Groups are yielded and then descended into with their key as prefix;
    arrays are yielded but not descended into, their items are managed by
    the array controller.
    """
    for definition in fields:
        handling = value_handling_of(definition, registry)
        if handling == ValueHandling.EXCLUDE:
            continue
        if handling == ValueHandling.FLATTEN:
            yield from iter_value_fields(definition.children, registry, prefix)
            continue
        path = f"{prefix}.{definition.key}" if prefix else definition.key
        yield path, definition
        if isinstance(definition, ContainerField):
            yield from iter_value_fields(definition.fields, registry, path)


def is_empty_value(value: Any) -> bool:
    """Emptiness as understood by the required validator."""
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


@dataclass(frozen=True)
class ValueExclusion:
    """Which field states leave a field out of the submitted value.

    Attributes:
        hidden: Drop hidden fields
        disabled: Drop disabled fields
        readonly: Drop readonly fields
    """
    hidden: bool = True
    disabled: bool = True
    readonly: bool = True

    @classmethod
    def resolve(cls, form: Any = None, definition: Optional[FieldDefinition] = None) -> "ValueExclusion":
        """Resolve each setting: the field's override, then the form's, then the default.

        Examples:
            >>> from dynaform.config import FormConfig, field_from_dict
            >>> form = FormConfig(exclude_value_if_hidden=False)
            >>> name = field_from_dict({"key": "name", "type": "input", "excludeValueIfReadonly": False})
            >>> ValueExclusion.resolve(form, name)
            ValueExclusion(hidden=False, disabled=True, readonly=False)
        """
        resolved = {}
        for state in ("hidden", "disabled", "readonly"):
            attribute = f"exclude_value_if_{state}"
            setting = getattr(definition, attribute, None)
            if setting is None:
                setting = getattr(form, attribute, None)
            resolved[state] = True if setting is None else bool(setting)
        return cls(**resolved)

    def excludes(self, node: Any) -> bool:
        """True when the node's current state is one this policy drops."""
        return (
            (self.hidden and node.hidden.peek())
            or (self.disabled and node.disabled.peek())
            or (self.readonly and node.readonly.peek())
        )


def filter_form_value(
    value: Any,
    fields: Sequence[FieldDefinition],
    tree: Any,
    registry: Any = None,
    form: Any = None,
    prefix: str = "",
) -> Dict[str, Any]:
    """Copy of value without the fields excluded by their current state.

    Args:
        value: The raw form value (or a group's sub-object)
        fields: Definitions describing value
        tree: Source of field nodes by path (``tree.get(path)``); fields
            without a node are kept as they are
        registry: Optional FieldTypeRegistry for value handling
        form: FormConfig carrying the form-level exclusion settings

    Groups are filtered recursively. Arrays are kept or dropped as a whole.
    Keys missing from value are skipped.
    """
    result: Dict[str, Any] = {}
    if not isinstance(value, dict):
        return result
    for definition in fields:
        handling = value_handling_of(definition, registry)
        if handling == ValueHandling.EXCLUDE:
            continue
        if handling == ValueHandling.FLATTEN:
            result.update(filter_form_value(value, definition.children, tree, registry, form, prefix))
            continue
        if not definition.key or definition.key not in value:
            continue
        path = f"{prefix}.{definition.key}" if prefix else definition.key
        node = tree.get(path) if tree is not None else None
        if node is not None and ValueExclusion.resolve(form, definition).excludes(node):
            continue
        raw = value[definition.key]
        if isinstance(definition, ContainerField) and isinstance(raw, dict):
            result[definition.key] = filter_form_value(raw, definition.fields, tree, registry, form, path)
        else:
            result[definition.key] = copy.deepcopy(raw)
    return result


__all__ = [
    "EMPTY_VALUES",
    "type_empty_value",
    "value_handling_of",
    "get_field_default_value",
    "build_default_value",
    "build_empty_value",
    "build_item_value",
    "iter_value_fields",
    "is_empty_value",
    "ValueExclusion",
    "filter_form_value",
]
