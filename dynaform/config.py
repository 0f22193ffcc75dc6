"""Form configuration model for the dynaform runtime.

A form is described by a JSON-compatible tree of field definitions. This
module turns that tree into immutable dataclasses:

- FieldDefinition and its closed set of variants (ValueField, TextField,
  RowField, GroupField, PageField, ArrayField, ButtonField), discriminated by
  ``type``
- LogicRule: hidden/required/readonly/disabled/derivation rules
- Condition variants: FieldValueCondition, FormValueCondition,
  ExpressionCondition, CustomCondition, AndCondition, OrCondition, or a
  literal bool
- ValidatorConfig: one entry of a field's ``validators`` list
- FormConfig: the root, with form-level options

Raw dicts are checked against FORM_CONFIG_SCHEMA with jsonschema before they
are parsed, so parse errors point at the offending node. Keys are camelCase in
the dict form and snake_case on the dataclasses.

Usage:
    >>> config = FormConfig.from_dict({
    ...     "fields": [
    ...         {"key": "name", "type": "input", "label": "Name", "required": True},
    ...     ]
    ... })
    >>> config.fields[0].label
    'Name'
"""

from dataclasses import dataclass, field, fields as dataclass_fields
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from jsonschema import Draft7Validator
from typing_extensions import Literal

from dynaform.errors import InvalidConfigError
from dynaform.types import ConditionOperator, ConditionType, FieldType, LogicType


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldValueCondition:
    """Compare the value at field_path with value using operator."""
    field_path: str
    operator: ConditionOperator
    value: Any = None
    type: Literal["fieldValue"] = "fieldValue"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "fieldPath": self.field_path,
            "operator": self.operator.value,
            "value": self.value,
        }


@dataclass(frozen=True)
class FormValueCondition:
    """Compare the whole (scoped) form value with value using operator."""
    operator: ConditionOperator
    value: Any = None
    type: Literal["formValue"] = "formValue"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "operator": self.operator.value, "value": self.value}


@dataclass(frozen=True)
class ExpressionCondition:
    """Free-form expression evaluated by the restricted expression evaluator."""
    expression: str
    type: Literal["javascript"] = "javascript"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "expression": self.expression}


@dataclass(frozen=True)
class CustomCondition:
    """Call a function registered under function_name with the context."""
    function_name: str
    type: Literal["custom"] = "custom"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "functionName": self.function_name}


@dataclass(frozen=True)
class AndCondition:
    """True when every nested condition is true (short-circuits)."""
    conditions: Tuple["Condition", ...] = ()
    type: Literal["and"] = "and"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "conditions": [condition_to_dict(c) for c in self.conditions]}


@dataclass(frozen=True)
class OrCondition:
    """True when any nested condition is true (short-circuits)."""
    conditions: Tuple["Condition", ...] = ()
    type: Literal["or"] = "or"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "conditions": [condition_to_dict(c) for c in self.conditions]}


Condition = Union[
    bool,
    FieldValueCondition,
    FormValueCondition,
    ExpressionCondition,
    CustomCondition,
    AndCondition,
    OrCondition,
]


def parse_condition(data: Any) -> Condition:
    """Parse a condition from its dict form (or a literal bool).

    Raises:
        InvalidConfigError: If the condition type is unknown or incomplete
    """
    if isinstance(data, bool):
        return data
    if not isinstance(data, dict) or "type" not in data:
        raise InvalidConfigError(f"Invalid condition: {data!r}")
    try:
        condition_type = ConditionType(data["type"])
    except ValueError:
        raise InvalidConfigError(f"Unknown condition type '{data['type']}'") from None

    if condition_type == ConditionType.FIELD_VALUE:
        return FieldValueCondition(
            field_path=data.get("fieldPath", ""),
            operator=_parse_operator(data),
            value=data.get("value"),
        )
    if condition_type == ConditionType.FORM_VALUE:
        return FormValueCondition(operator=_parse_operator(data), value=data.get("value"))
    if condition_type == ConditionType.JAVASCRIPT:
        return ExpressionCondition(expression=data.get("expression", ""))
    if condition_type == ConditionType.CUSTOM:
        return CustomCondition(function_name=data.get("functionName") or data.get("expression", ""))
    nested = tuple(parse_condition(c) for c in data.get("conditions", []))
    if condition_type == ConditionType.AND:
        return AndCondition(conditions=nested)
    return OrCondition(conditions=nested)


def _parse_operator(data: Dict[str, Any]) -> ConditionOperator:
    try:
        return ConditionOperator(data.get("operator"))
    except ValueError:
        raise InvalidConfigError(f"Unknown condition operator '{data.get('operator')}'") from None


def condition_to_dict(condition: Condition) -> Any:
    """Serialize a condition back to its dict form."""
    if isinstance(condition, bool):
        return condition
    return condition.to_dict()


# ---------------------------------------------------------------------------
# Logic and validators
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LogicRule:
    """A conditional rule attached to a field.

    Attributes:
        type: Which field state the rule drives
        condition: Gate for the rule (True when omitted)
        target_field: For derivations, the field written to; must equal the
            owning field's key
        expression: For derivations, the expression computing the value
        value: For derivations, a static value to write instead
        function_name: For derivations, a registered function computing the value
    """
    type: LogicType
    condition: Condition = True
    target_field: Optional[str] = None
    expression: Optional[str] = None
    value: Any = None
    function_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogicRule":
        try:
            rule_type = LogicType(data["type"])
        except ValueError:
            raise InvalidConfigError(f"Unknown logic type '{data['type']}'") from None
        return cls(
            type=rule_type,
            condition=parse_condition(data.get("condition", True)),
            target_field=data.get("targetField"),
            expression=data.get("expression"),
            value=data.get("value"),
            function_name=data.get("functionName"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": self.type.value,
            "condition": condition_to_dict(self.condition),
        }
        if self.target_field is not None:
            result["targetField"] = self.target_field
        if self.expression is not None:
            result["expression"] = self.expression
        if self.value is not None:
            result["value"] = self.value
        if self.function_name is not None:
            result["functionName"] = self.function_name
        return result


@dataclass(frozen=True)
class ValidatorConfig:
    """One entry of a field's validators list.

    Attributes:
        type: required, email, min, max, minLength, maxLength, pattern or custom
        value: Validator parameter (bound, length, regex)
        function_name: For custom validators, the registered function name
        kind: Message key used to look up validationMessages for custom errors
        when: Optional condition; the validator only applies while it is true
    """
    type: str
    value: Any = None
    function_name: Optional[str] = None
    kind: Optional[str] = None
    when: Condition = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidatorConfig":
        return cls(
            type=data["type"],
            value=data.get("value"),
            function_name=data.get("functionName"),
            kind=data.get("kind"),
            when=parse_condition(data.get("when", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type}
        if self.value is not None:
            result["value"] = self.value
        if self.function_name is not None:
            result["functionName"] = self.function_name
        if self.kind is not None:
            result["kind"] = self.kind
        if self.when is not True:
            result["when"] = condition_to_dict(self.when)
        return result


# ---------------------------------------------------------------------------
# Field definitions
# ---------------------------------------------------------------------------

_CAMEL_OVERRIDES = {
    "class_name": "className",
    "tab_index": "tabIndex",
    "validation_messages": "validationMessages",
    "min_length": "minLength",
    "max_length": "maxLength",
    "array_key": "arrayKey",
    "event_args": "eventArgs",
    "exclude_value_if_hidden": "excludeValueIfHidden",
    "exclude_value_if_disabled": "excludeValueIfDisabled",
    "exclude_value_if_readonly": "excludeValueIfReadonly",
}

# Explicit False overrides a form-level setting, so it survives to_dict()
_KEEP_FALSE = {"value", "exclude_value_if_hidden", "exclude_value_if_disabled", "exclude_value_if_readonly"}


@dataclass(frozen=True)
class FieldDefinition:
    """Base of every field definition variant.

    Attributes:
        key: Unique key within the field's container
        type: Type tag (a FieldType value or a custom registered type)
        label: Display label
        class_name: CSS class(es) for the renderer
        tab_index: Tab order hint
        props: Renderer-specific configuration bag
        logic: Ordered logic rules
        validators: Explicit validator list
        validation_messages: Per-error-code message overrides
        required, email, min, max, min_length, max_length, pattern:
            Validation shorthands
        disabled, readonly, hidden: Static state flags
        exclude_value_if_hidden, exclude_value_if_disabled,
        exclude_value_if_readonly: Per-field overrides of the form-level
            submit value exclusion (None inherits the form setting)
    """
    key: str
    type: str
    label: Optional[str] = None
    class_name: Optional[str] = None
    tab_index: Optional[int] = None
    props: Dict[str, Any] = field(default_factory=dict)
    logic: Tuple[LogicRule, ...] = ()
    validators: Tuple[ValidatorConfig, ...] = ()
    validation_messages: Dict[str, str] = field(default_factory=dict)
    required: bool = False
    email: bool = False
    min: Optional[float] = None
    max: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    disabled: bool = False
    readonly: bool = False
    hidden: bool = False
    exclude_value_if_hidden: Optional[bool] = None
    exclude_value_if_disabled: Optional[bool] = None
    exclude_value_if_readonly: Optional[bool] = None

    def rules_of(self, logic_type: LogicType) -> List[LogicRule]:
        """Return the logic rules of one type, in configuration order."""
        return [rule for rule in self.logic if rule.type == logic_type]

    @property
    def children(self) -> Tuple["FieldDefinition", ...]:
        return ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization (defaults are omitted)."""
        result: Dict[str, Any] = {}
        for spec in dataclass_fields(self):
            value = getattr(self, spec.name)
            if value is None or (value is False and spec.name not in _KEEP_FALSE) or value == () or value == {}:
                continue
            name = _CAMEL_OVERRIDES.get(spec.name, spec.name)
            if spec.name in ("logic", "validators"):
                result[name] = [item.to_dict() for item in value]
            elif spec.name == "fields":
                result[name] = [child.to_dict() for child in value]
            elif spec.name == "template":
                result[name] = _template_to_dict(value)
            else:
                result[name] = value
        return result


@dataclass(frozen=True)
class ValueField(FieldDefinition):
    """A leaf field that owns a value (input, select, checkbox, ...).

    Attributes:
        value: Default value; the type default is used when omitted
        options: Choices for select, radio and multi-checkbox fields
        placeholder: Placeholder text
    """
    value: Any = None
    options: Tuple[Dict[str, Any], ...] = ()
    placeholder: Optional[str] = None


@dataclass(frozen=True)
class TextField(FieldDefinition):
    """Display-only text; never part of the form value."""


@dataclass(frozen=True)
class ContainerField(FieldDefinition):
    """Base for fields that hold an ordered list of children."""
    fields: Tuple[FieldDefinition, ...] = ()

    @property
    def children(self) -> Tuple[FieldDefinition, ...]:
        return self.fields


@dataclass(frozen=True)
class RowField(ContainerField):
    """Horizontal layout; children are flattened into the parent value."""


@dataclass(frozen=True)
class GroupField(ContainerField):
    """Nested object; children live under the group's key."""


@dataclass(frozen=True)
class PageField(ContainerField):
    """One step of a multi-page form; only allowed at the root."""


ArrayTemplate = Union[FieldDefinition, Tuple[FieldDefinition, ...], None]


@dataclass(frozen=True)
class ArrayField(FieldDefinition):
    """Repeating items built from a shared template.

    Attributes:
        template: A single field (primitive items) or a tuple of fields
            (object items)
        value: Initial items
    """
    template: ArrayTemplate = None
    value: Optional[Tuple[Any, ...]] = None

    @property
    def children(self) -> Tuple[FieldDefinition, ...]:
        if self.template is None:
            return ()
        if isinstance(self.template, tuple):
            return self.template
        return (self.template,)


@dataclass(frozen=True)
class ButtonField(FieldDefinition):
    """A button dispatching an event on click.

    Attributes:
        event_args: Positional event arguments; ``$arrayKey``, ``$index`` and
            ``$template`` are resolved from the button's array context
        array_key: Target array for array buttons placed outside the array
        index: Target index for insertArrayItem buttons
        template: Item template override for add buttons
    """
    event_args: Optional[Tuple[Any, ...]] = None
    array_key: Optional[str] = None
    index: Optional[int] = None
    template: ArrayTemplate = None


FIELD_CLASSES = {
    FieldType.TEXT.value: TextField,
    FieldType.ROW.value: RowField,
    FieldType.GROUP.value: GroupField,
    FieldType.PAGE.value: PageField,
    FieldType.ARRAY.value: ArrayField,
    FieldType.SUBMIT.value: ButtonField,
    FieldType.NEXT.value: ButtonField,
    FieldType.PREVIOUS.value: ButtonField,
    FieldType.ADD_ARRAY_ITEM.value: ButtonField,
    FieldType.PREPEND_ARRAY_ITEM.value: ButtonField,
    FieldType.INSERT_ARRAY_ITEM.value: ButtonField,
    FieldType.REMOVE_ARRAY_ITEM.value: ButtonField,
    FieldType.POP_ARRAY_ITEM.value: ButtonField,
    FieldType.SHIFT_ARRAY_ITEM.value: ButtonField,
}


def _template_to_dict(template: ArrayTemplate) -> Any:
    if isinstance(template, tuple):
        return [child.to_dict() for child in template]
    return template.to_dict() if template is not None else None


def _parse_template(data: Any) -> ArrayTemplate:
    if data is None:
        return None
    if isinstance(data, (list, tuple)):
        return tuple(field_from_dict(child) for child in data)
    return field_from_dict(data)


def field_from_dict(data: Dict[str, Any]) -> FieldDefinition:
    """Parse one field definition (and its children) from a dict.

    Unregistered custom types parse as ValueField so that a registry can still
    resolve them later.
    """
    field_type = data.get("type")
    if not isinstance(field_type, str):
        raise InvalidConfigError(f"Field {data.get('key')!r} has no type")
    cls = FIELD_CLASSES.get(field_type, ValueField)
    kwargs: Dict[str, Any] = {
        "key": data.get("key", ""),
        "type": field_type,
        "label": data.get("label"),
        "class_name": data.get("className"),
        "tab_index": data.get("tabIndex"),
        "props": dict(data.get("props") or {}),
        "logic": tuple(LogicRule.from_dict(rule) for rule in data.get("logic", [])),
        "validators": tuple(ValidatorConfig.from_dict(v) for v in data.get("validators", [])),
        "validation_messages": dict(data.get("validationMessages") or {}),
        "required": bool(data.get("required", False)),
        "email": bool(data.get("email", False)),
        "min": data.get("min"),
        "max": data.get("max"),
        "min_length": data.get("minLength"),
        "max_length": data.get("maxLength"),
        "pattern": data.get("pattern"),
        "disabled": bool(data.get("disabled", False)),
        "readonly": bool(data.get("readonly", False)),
        "hidden": bool(data.get("hidden", False)),
        "exclude_value_if_hidden": data.get("excludeValueIfHidden"),
        "exclude_value_if_disabled": data.get("excludeValueIfDisabled"),
        "exclude_value_if_readonly": data.get("excludeValueIfReadonly"),
    }

    if cls is ValueField:
        kwargs["value"] = data.get("value")
        kwargs["options"] = tuple(data.get("options") or ())
        kwargs["placeholder"] = data.get("placeholder")
    elif issubclass(cls, ContainerField):
        kwargs["fields"] = tuple(field_from_dict(child) for child in data.get("fields", []))
    elif cls is ArrayField:
        if "template" in data:
            template = _parse_template(data["template"])
        else:
            # Legacy shape: the first entry of "fields" is the item template
            legacy = data.get("fields") or []
            template = _parse_template(legacy[0] if len(legacy) == 1 else legacy) if legacy else None
        kwargs["template"] = template
        initial = data.get("value")
        kwargs["value"] = tuple(initial) if initial is not None else None
    elif cls is ButtonField:
        event_args = data.get("eventArgs")
        kwargs["event_args"] = tuple(event_args) if event_args is not None else None
        kwargs["array_key"] = data.get("arrayKey")
        kwargs["index"] = data.get("index")
        kwargs["template"] = _parse_template(data.get("template"))
    return cls(**kwargs)


def walk_fields(fields: Sequence[FieldDefinition], include_array_templates: bool = False):
    """Yield every field definition depth-first, in configuration order."""
    for definition in fields:
        yield definition
        if isinstance(definition, ArrayField) and not include_array_templates:
            continue
        yield from walk_fields(definition.children, include_array_templates)


# ---------------------------------------------------------------------------
# Root configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FormConfig:
    """Root of a form configuration.

    Attributes:
        fields: Root field definitions (all pages, or no pages)
        default_validation_messages: Form-level messages per error code
        initial_page_index: Starting page for paged forms (clamped)
        defaults: Initial form value merged over field defaults
        submit_disabled_when_invalid: Disable submit buttons while invalid
        next_disabled_when_page_invalid: Disable next buttons while the
            current page has invalid fields
        external_data: Host data exposed to expressions as ``externalData``
        exclude_value_if_hidden: Leave hidden fields out of the submitted value
        exclude_value_if_disabled: Leave disabled fields out of the submitted value
        exclude_value_if_readonly: Leave readonly fields out of the submitted value
    """
    fields: Tuple[FieldDefinition, ...] = ()
    default_validation_messages: Dict[str, str] = field(default_factory=dict)
    initial_page_index: int = 0
    defaults: Dict[str, Any] = field(default_factory=dict)
    submit_disabled_when_invalid: bool = True
    next_disabled_when_page_invalid: bool = True
    external_data: Dict[str, Any] = field(default_factory=dict)
    exclude_value_if_hidden: bool = True
    exclude_value_if_disabled: bool = True
    exclude_value_if_readonly: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormConfig":
        """Validate a raw configuration against FORM_CONFIG_SCHEMA and parse it.

        Raises:
            InvalidConfigError: If the dict does not match the schema
        """
        validate_config_schema(data)
        options = data.get("options", {})
        return cls(
            fields=tuple(field_from_dict(f) for f in data.get("fields", [])),
            default_validation_messages=dict(data.get("defaultValidationMessages") or {}),
            initial_page_index=int(options.get("initialPageIndex", data.get("initialPageIndex", 0))),
            defaults=dict(data.get("defaultValue") or data.get("defaults") or {}),
            submit_disabled_when_invalid=options.get("submitDisabledWhenInvalid", True),
            next_disabled_when_page_invalid=options.get("nextDisabledWhenPageInvalid", True),
            external_data=dict(data.get("externalData") or {}),
            exclude_value_if_hidden=options.get("excludeValueIfHidden", True),
            exclude_value_if_disabled=options.get("excludeValueIfDisabled", True),
            exclude_value_if_readonly=options.get("excludeValueIfReadonly", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "fields": [f.to_dict() for f in self.fields],
            "options": {
                "initialPageIndex": self.initial_page_index,
                "submitDisabledWhenInvalid": self.submit_disabled_when_invalid,
                "nextDisabledWhenPageInvalid": self.next_disabled_when_page_invalid,
                "excludeValueIfHidden": self.exclude_value_if_hidden,
                "excludeValueIfDisabled": self.exclude_value_if_disabled,
                "excludeValueIfReadonly": self.exclude_value_if_readonly,
            },
        }
        if self.default_validation_messages:
            result["defaultValidationMessages"] = dict(self.default_validation_messages)
        if self.defaults:
            result["defaultValue"] = dict(self.defaults)
        if self.external_data:
            result["externalData"] = dict(self.external_data)
        return result


_CONDITION_TYPES = [t.value for t in ConditionType]
_OPERATORS = [o.value for o in ConditionOperator]
_LOGIC_TYPES = [t.value for t in LogicType]

FORM_CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "fields": {"type": "array", "items": {"$ref": "#/definitions/field"}},
        "defaultValidationMessages": {"type": "object", "additionalProperties": {"type": "string"}},
        "defaultValue": {"type": "object"},
        "externalData": {"type": "object"},
        "options": {
            "type": "object",
            "properties": {
                "initialPageIndex": {"type": "integer", "minimum": 0},
                "submitDisabledWhenInvalid": {"type": "boolean"},
                "nextDisabledWhenPageInvalid": {"type": "boolean"},
                "excludeValueIfHidden": {"type": "boolean"},
                "excludeValueIfDisabled": {"type": "boolean"},
                "excludeValueIfReadonly": {"type": "boolean"},
            },
        },
    },
    "required": ["fields"],
    "definitions": {
        "condition": {
            "oneOf": [
                {"type": "boolean"},
                {
                    "type": "object",
                    "properties": {
                        "type": {"enum": _CONDITION_TYPES},
                        "fieldPath": {"type": "string"},
                        "operator": {"enum": _OPERATORS},
                        "expression": {"type": "string"},
                        "functionName": {"type": "string"},
                        "conditions": {"type": "array", "items": {"$ref": "#/definitions/condition"}},
                    },
                    "required": ["type"],
                },
            ]
        },
        "logic": {
            "type": "object",
            "properties": {
                "type": {"enum": _LOGIC_TYPES},
                "condition": {"$ref": "#/definitions/condition"},
                "targetField": {"type": "string"},
                "expression": {"type": "string"},
                "functionName": {"type": "string"},
            },
            "required": ["type"],
        },
        "field": {
            "type": "object",
            "properties": {
                "key": {"type": "string"},
                "type": {"type": "string", "minLength": 1},
                "label": {"type": "string"},
                "className": {"type": "string"},
                "tabIndex": {"type": "integer"},
                "props": {"type": "object"},
                "logic": {"type": "array", "items": {"$ref": "#/definitions/logic"}},
                "validators": {
                    "type": "array",
                    "items": {"type": "object", "required": ["type"]},
                },
                "validationMessages": {"type": "object", "additionalProperties": {"type": "string"}},
                "required": {"type": "boolean"},
                "email": {"type": "boolean"},
                "min": {"type": "number"},
                "max": {"type": "number"},
                "minLength": {"type": "integer", "minimum": 0},
                "maxLength": {"type": "integer", "minimum": 0},
                "pattern": {"type": "string"},
                "fields": {"type": "array", "items": {"$ref": "#/definitions/field"}},
                "template": {
                    "oneOf": [
                        {"$ref": "#/definitions/field"},
                        {"type": "array", "items": {"$ref": "#/definitions/field"}},
                    ]
                },
                "arrayKey": {"type": "string"},
                "index": {"type": "integer"},
                "eventArgs": {"type": "array"},
                "excludeValueIfHidden": {"type": "boolean"},
                "excludeValueIfDisabled": {"type": "boolean"},
                "excludeValueIfReadonly": {"type": "boolean"},
            },
            "required": ["key", "type"],
        },
    },
}

_SCHEMA_VALIDATOR = Draft7Validator(FORM_CONFIG_SCHEMA)


def validate_config_schema(data: Dict[str, Any]) -> None:
    """Check a raw configuration dict against FORM_CONFIG_SCHEMA.

    Raises:
        InvalidConfigError: Listing every schema violation, with the path of
            the first one
    """
    errors = sorted(_SCHEMA_VALIDATOR.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    if not errors:
        return
    messages = []
    for error in errors:
        location = ".".join(str(p) for p in error.absolute_path) or "<root>"
        messages.append(f"{location}: {error.message}")
    first = ".".join(str(p) for p in errors[0].absolute_path)
    raise InvalidConfigError(
        "Invalid form configuration:\n" + "\n".join(f"  - {m}" for m in messages),
        path=first,
        errors=messages,
    )


__all__ = [
    "FieldValueCondition",
    "FormValueCondition",
    "ExpressionCondition",
    "CustomCondition",
    "AndCondition",
    "OrCondition",
    "Condition",
    "parse_condition",
    "condition_to_dict",
    "LogicRule",
    "ValidatorConfig",
    "FieldDefinition",
    "ValueField",
    "TextField",
    "ContainerField",
    "RowField",
    "GroupField",
    "PageField",
    "ArrayField",
    "ButtonField",
    "FIELD_CLASSES",
    "field_from_dict",
    "walk_fields",
    "FormConfig",
    "FORM_CONFIG_SCHEMA",
    "validate_config_schema",
]
