"""Core type definitions for the dynaform runtime.

This module defines the fundamental enumerations used throughout the engine:
- FieldType: Type tags for every field definition variant
- LogicType: Kinds of logic rules a field can carry
- ConditionType: Variants of condition expressions
- ConditionOperator: Comparison operators for fieldValue/formValue conditions
- ValueHandling: How a field type contributes to the form value
- FormMode: Whether a configuration is paged, non-paged, or invalid
- FieldErrorCode: Validation error codes for individual fields

These types form the contract between configuration authors, the runtime and
renderers, so they are all plain string enums that serialize to their value.
"""

from enum import Enum
from typing import FrozenSet


class FieldType(str, Enum):
    """Field definition type tags.

    Leaf types carry a value, container types carry children, button types
    dispatch events, and TEXT is display only.
    """
    INPUT = "input"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    SLIDER = "slider"
    TEXTAREA = "textarea"
    DATEPICKER = "datepicker"
    TOGGLE = "toggle"
    HIDDEN = "hidden"
    MULTI_CHECKBOX = "multi-checkbox"
    TEXT = "text"

    ROW = "row"
    GROUP = "group"
    PAGE = "page"
    ARRAY = "array"

    SUBMIT = "submit"
    NEXT = "next"
    PREVIOUS = "previous"
    ADD_ARRAY_ITEM = "addArrayItem"
    PREPEND_ARRAY_ITEM = "prependArrayItem"
    INSERT_ARRAY_ITEM = "insertArrayItem"
    REMOVE_ARRAY_ITEM = "removeArrayItem"
    POP_ARRAY_ITEM = "popArrayItem"
    SHIFT_ARRAY_ITEM = "shiftArrayItem"


LEAF_TYPES: FrozenSet[FieldType] = frozenset({
    FieldType.INPUT,
    FieldType.SELECT,
    FieldType.CHECKBOX,
    FieldType.RADIO,
    FieldType.SLIDER,
    FieldType.TEXTAREA,
    FieldType.DATEPICKER,
    FieldType.TOGGLE,
    FieldType.HIDDEN,
    FieldType.MULTI_CHECKBOX,
})

CONTAINER_TYPES: FrozenSet[FieldType] = frozenset({
    FieldType.ROW,
    FieldType.GROUP,
    FieldType.PAGE,
    FieldType.ARRAY,
})

ARRAY_BUTTON_TYPES: FrozenSet[FieldType] = frozenset({
    FieldType.ADD_ARRAY_ITEM,
    FieldType.PREPEND_ARRAY_ITEM,
    FieldType.INSERT_ARRAY_ITEM,
    FieldType.REMOVE_ARRAY_ITEM,
    FieldType.POP_ARRAY_ITEM,
    FieldType.SHIFT_ARRAY_ITEM,
})

BUTTON_TYPES: FrozenSet[FieldType] = frozenset({
    FieldType.SUBMIT,
    FieldType.NEXT,
    FieldType.PREVIOUS,
}) | ARRAY_BUTTON_TYPES


class LogicType(str, Enum):
    """Logic rule types.

    HIDDEN, REQUIRED, READONLY and DISABLED gate a boolean field state;
    DERIVATION writes a computed value into the owning field.
    """
    HIDDEN = "hidden"
    REQUIRED = "required"
    READONLY = "readonly"
    DISABLED = "disabled"
    DERIVATION = "derivation"


class ConditionType(str, Enum):
    """Condition expression variants."""
    FIELD_VALUE = "fieldValue"
    FORM_VALUE = "formValue"
    JAVASCRIPT = "javascript"
    CUSTOM = "custom"
    AND = "and"
    OR = "or"


class ConditionOperator(str, Enum):
    """Comparison operators for fieldValue and formValue conditions."""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER = "greater"
    LESS = "less"
    GREATER_OR_EQUAL = "greaterOrEqual"
    LESS_OR_EQUAL = "lessOrEqual"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    MATCHES = "matches"


class ValueHandling(str, Enum):
    """How a field type contributes to the form value.

    INCLUDE: the field owns a value at its key
    EXCLUDE: the field never appears in the form value (buttons, text)
    FLATTEN: the field's children are lifted into the parent (rows, pages)
    """
    INCLUDE = "include"
    EXCLUDE = "exclude"
    FLATTEN = "flatten"


class FormMode(str, Enum):
    """Detected layout mode of a form configuration."""
    PAGED = "paged"
    NON_PAGED = "non-paged"
    INVALID = "invalid"


class FieldErrorCode(str, Enum):
    """Validation error codes for individual field failures.

    Used in FieldError objects; the value doubles as the lookup key into
    validationMessages.
    """
    REQUIRED = "required"
    EMAIL = "email"
    MIN = "min"
    MAX = "max"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    PATTERN = "pattern"
    INVALID_TYPE = "invalidType"
    CUSTOM = "custom"


__all__ = [
    "FieldType",
    "LEAF_TYPES",
    "CONTAINER_TYPES",
    "ARRAY_BUTTON_TYPES",
    "BUTTON_TYPES",
    "LogicType",
    "ConditionType",
    "ConditionOperator",
    "ValueHandling",
    "FormMode",
    "FieldErrorCode",
]
