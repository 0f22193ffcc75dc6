"""Unit tests for the configuration model.

Tests cover:
- Parsing field variants from dicts
- Logic rules, conditions and validators
- Schema validation of raw configurations
- Serialization back to camelCase dicts
- Submit value exclusion settings and their resolution order
"""

import pytest

from dynaform.config import (
    AndCondition,
    ArrayField,
    ButtonField,
    FieldValueCondition,
    FormConfig,
    GroupField,
    RowField,
    TextField,
    ValueField,
    field_from_dict,
    parse_condition,
    walk_fields,
)
from dynaform.errors import InvalidConfigError
from dynaform.types import ConditionOperator, LogicType
from dynaform.values import ValueExclusion


class TestFieldParsing:
    """Test field_from_dict()."""

    def test_value_field(self):
        """Should parse leaf fields with shorthands."""
        definition = field_from_dict(
            {"key": "age", "type": "input", "label": "Age", "min": 18, "required": True, "value": 30}
        )
        assert isinstance(definition, ValueField)
        assert definition.min == 18
        assert definition.required is True
        assert definition.value == 30

    def test_container_fields(self):
        """Should parse rows and groups with their children."""
        row = field_from_dict({"key": "r", "type": "row", "fields": [{"key": "a", "type": "input"}]})
        group = field_from_dict({"key": "g", "type": "group", "fields": [{"key": "b", "type": "input"}]})
        assert isinstance(row, RowField)
        assert isinstance(group, GroupField)
        assert [child.key for child in group.children] == ["b"]

    def test_text_and_button(self):
        """Should parse display-only and button variants."""
        assert isinstance(field_from_dict({"key": "intro", "type": "text"}), TextField)
        button = field_from_dict({"key": "add", "type": "addArrayItem", "arrayKey": "contacts"})
        assert isinstance(button, ButtonField)
        assert button.array_key == "contacts"

    def test_array_templates(self):
        """Should parse object and primitive templates."""
        contacts = field_from_dict(
            {
                "key": "contacts",
                "type": "array",
                "template": [{"key": "name", "type": "input"}, {"key": "email", "type": "input"}],
            }
        )
        tags = field_from_dict({"key": "tags", "type": "array", "template": {"key": "tag", "type": "input"}})
        assert isinstance(contacts, ArrayField)
        assert isinstance(contacts.template, tuple)
        assert [c.key for c in contacts.children] == ["name", "email"]
        assert isinstance(tags.template, ValueField)

    def test_legacy_array_fields(self):
        """Should read the template from fields when template is absent."""
        array = field_from_dict(
            {"key": "tags", "type": "array", "fields": [{"key": "tag", "type": "input"}]}
        )
        assert array.template.key == "tag"

    def test_unknown_type_parses_as_value_field(self):
        """Should keep custom types as value fields."""
        definition = field_from_dict({"key": "stars", "type": "rating", "value": 3})
        assert isinstance(definition, ValueField)
        assert definition.type == "rating"

    def test_missing_type_raises(self):
        """Should raise InvalidConfigError without a type."""
        with pytest.raises(InvalidConfigError):
            field_from_dict({"key": "x"})

    def test_logic_and_validators(self):
        """Should parse logic rules and validator entries."""
        definition = field_from_dict(
            {
                "key": "companyName",
                "type": "input",
                "logic": [
                    {
                        "type": "required",
                        "condition": {
                            "type": "fieldValue",
                            "fieldPath": "accountType",
                            "operator": "equals",
                            "value": "business",
                        },
                    }
                ],
                "validators": [{"type": "minLength", "value": 2}],
            }
        )
        rule = definition.rules_of(LogicType.REQUIRED)[0]
        assert rule.condition == FieldValueCondition("accountType", ConditionOperator.EQUALS, "business")
        assert definition.validators[0].value == 2
        assert definition.validators[0].when is True

    def test_walk_fields(self):
        """Should walk depth-first and skip array templates unless asked."""
        config = FormConfig.from_dict(
            {
                "fields": [
                    {"key": "g", "type": "group", "fields": [{"key": "a", "type": "input"}]},
                    {"key": "list", "type": "array", "template": {"key": "item", "type": "input"}},
                ]
            }
        )
        assert [f.key for f in walk_fields(config.fields)] == ["g", "a", "list"]
        assert [f.key for f in walk_fields(config.fields, include_array_templates=True)] == ["g", "a", "list", "item"]


class TestConditions:
    """Test parse_condition()."""

    def test_literal_bool(self):
        """Should keep literal booleans."""
        assert parse_condition(True) is True

    def test_nested_condition(self):
        """Should parse and/or trees."""
        condition = parse_condition(
            {
                "type": "and",
                "conditions": [True, {"type": "javascript", "expression": "formValue.a"}],
            }
        )
        assert isinstance(condition, AndCondition)
        assert len(condition.conditions) == 2

    def test_unknown_condition_type(self):
        """Should raise InvalidConfigError for unknown types."""
        with pytest.raises(InvalidConfigError):
            parse_condition({"type": "sql"})


class TestFormConfig:
    """Test FormConfig.from_dict() and to_dict()."""

    def test_options(self):
        """Should read form-level options."""
        config = FormConfig.from_dict(
            {
                "fields": [],
                "options": {"initialPageIndex": 2, "submitDisabledWhenInvalid": False},
                "defaultValidationMessages": {"required": "Needed"},
                "defaultValue": {"a": 1},
            }
        )
        assert config.initial_page_index == 2
        assert config.submit_disabled_when_invalid is False
        assert config.default_validation_messages == {"required": "Needed"}
        assert config.defaults == {"a": 1}

    def test_schema_errors(self):
        """Should reject configurations that do not match the schema."""
        with pytest.raises(InvalidConfigError) as info:
            FormConfig.from_dict({"fields": [{"key": "a"}]})
        assert info.value.path == "fields.0"
        assert info.value.errors

    def test_missing_fields_key(self):
        """Should require the fields list."""
        with pytest.raises(InvalidConfigError):
            FormConfig.from_dict({})

    def test_bad_operator(self):
        """Should reject unknown condition operators."""
        with pytest.raises(InvalidConfigError):
            FormConfig.from_dict(
                {
                    "fields": [
                        {
                            "key": "a",
                            "type": "input",
                            "logic": [
                                {
                                    "type": "hidden",
                                    "condition": {"type": "fieldValue", "fieldPath": "b", "operator": "like"},
                                }
                            ],
                        }
                    ]
                }
            )

    def test_to_dict(self):
        """Should serialize in camelCase and omit defaults."""
        config = FormConfig.from_dict(
            {
                "fields": [
                    {"key": "name", "type": "input", "minLength": 2, "validationMessages": {"minLength": "Short"}},
                ]
            }
        )
        data = config.to_dict()
        assert data["fields"] == [
            {"key": "name", "type": "input", "minLength": 2, "validationMessages": {"minLength": "Short"}}
        ]
        assert data["options"]["initialPageIndex"] == 0

    def test_value_exclusion_options(self):
        """Should read form and field exclusion settings and keep explicit False."""
        config = FormConfig.from_dict(
            {
                "fields": [{"key": "a", "type": "input", "excludeValueIfHidden": False}],
                "options": {"excludeValueIfReadonly": False},
            }
        )
        assert config.exclude_value_if_hidden is True
        assert config.exclude_value_if_readonly is False
        assert config.fields[0].exclude_value_if_hidden is False
        assert config.fields[0].exclude_value_if_disabled is None
        assert config.fields[0].to_dict()["excludeValueIfHidden"] is False
        assert config.to_dict()["options"]["excludeValueIfReadonly"] is False

    def test_value_exclusion_resolution_order(self):
        """Should prefer the field setting, then the form setting, then exclusion."""
        form = FormConfig(exclude_value_if_hidden=False, exclude_value_if_disabled=False)
        field = field_from_dict({"key": "a", "type": "input", "excludeValueIfDisabled": True, "excludeValueIfReadonly": False})
        assert ValueExclusion.resolve() == ValueExclusion(hidden=True, disabled=True, readonly=True)
        assert ValueExclusion.resolve(form) == ValueExclusion(hidden=False, disabled=False, readonly=True)
        assert ValueExclusion.resolve(form, field) == ValueExclusion(hidden=False, disabled=True, readonly=False)
