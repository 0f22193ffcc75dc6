"""Unit tests for configuration checks and the validation engine.

Tests cover:
- Form mode detection
- Page nesting, duplicate key and regex checks
- Warnings (single page, empty page, stray array buttons, unknown types)
- Field validation: required, email, bounds, lengths, patterns
- Conditional required and validator conditions
- Custom validators and message resolution
- Hidden fields, groups and array items
"""

import pytest

from dynaform.config import FormConfig, field_from_dict
from dynaform.conditions import EvaluationContext
from dynaform.errors import DynamicFormError
from dynaform.registry import FieldTypeDefinition, FieldTypeRegistry, FunctionRegistry
from dynaform.types import FieldErrorCode, FormMode
from dynaform.validation import (
    MIXED_ROOTS_ERROR,
    ValidationEngine,
    detect_form_mode,
    interpolate_params,
    validate_form_config,
    validate_form_config_or_raise,
    validate_page_nesting,
)


def fields_of(*definitions):
    return FormConfig.from_dict({"fields": list(definitions)}).fields


def page(key, *children):
    return {"key": key, "type": "page", "fields": list(children)}


def field(key, field_type="input", **extra):
    return {"key": key, "type": field_type, **extra}


class TestFormMode:
    """Test detect_form_mode()."""

    def test_non_paged(self):
        """Should report non-paged when no root field is a page."""
        assert detect_form_mode(fields_of(field("a"), field("b"))) == FormMode.NON_PAGED

    def test_paged(self):
        """Should report paged when every root field is a page."""
        assert detect_form_mode(fields_of(page("p1", field("a")), page("p2", field("b")))) == FormMode.PAGED

    def test_mixed(self):
        """Should report invalid for a mix of pages and other fields."""
        result = validate_form_config(fields_of(page("p1", field("a")), field("b")))
        assert result.mode == FormMode.INVALID
        assert MIXED_ROOTS_ERROR in result.errors


class TestConfigChecks:
    """Test validate_form_config()."""

    def test_nested_pages(self):
        """Should reject pages below the root."""
        fields = fields_of(
            page("p1", field("a"), {"key": "inner", "type": "group", "fields": [page("p2", field("b"))]}),
            page("p3", field("c")),
        )
        errors = validate_page_nesting(fields)
        assert len(errors) == 1
        assert 'key: "p1"' in errors[0]

    def test_page_inside_group(self):
        """Should name the root field containing the page."""
        fields = fields_of({"key": "g", "type": "group", "fields": [page("p", field("a"))]})
        errors = validate_form_config(fields).errors
        assert any("only allowed at the root level" in e for e in errors)

    def test_duplicate_keys(self):
        """Should report keys used twice."""
        result = validate_form_config(fields_of(field("a"), {"key": "r", "type": "row", "fields": [field("a")]}))
        assert "Duplicate field keys detected: 'a'" in result.errors

    def test_sibling_groups_may_share_child_keys(self):
        """Should accept the same child key under two different groups."""
        result = validate_form_config(
            fields_of(
                field("shipping", "group", fields=[field("street")]),
                field("billing", "group", fields=[field("street")]),
            )
        )
        assert result.is_valid
        assert result.errors == []

    def test_duplicate_keys_inside_group(self):
        """Should report repeats within a group by their qualified key."""
        result = validate_form_config(
            fields_of(field("address", "group", fields=[field("city"), {"key": "r", "type": "row", "fields": [field("city")]}]))
        )
        assert "Duplicate field keys detected: 'address.city'" in result.errors

    def test_pages_share_the_root_scope(self):
        """Should report a key repeated on two pages."""
        result = validate_form_config(fields_of(page("p1", field("name")), page("p2", field("name"))))
        assert "Duplicate field keys detected: 'name'" in result.errors

    def test_array_template_keys_are_exempt(self):
        """Should allow template keys to repeat keys used elsewhere."""
        result = validate_form_config(
            fields_of(field("name"), {"key": "people", "type": "array", "template": [field("name")]})
        )
        assert result.is_valid

    def test_invalid_regex(self):
        """Should reject patterns that do not compile."""
        result = validate_form_config(fields_of(field("code", pattern="[a-")))
        assert any("Invalid regex pattern in field 'code'" in e for e in result.errors)

    def test_derivation_targeting_other_field(self):
        """Should reject derivations targeting another field."""
        result = validate_form_config(
            fields_of(field("a", logic=[{"type": "derivation", "targetField": "b", "expression": "1"}]), field("b"))
        )
        assert not result.is_valid

    def test_single_page_warning(self):
        """Should warn about single-page forms."""
        result = validate_form_config(fields_of(page("only", field("a"))))
        assert result.is_valid
        assert any("Single page form detected" in w for w in result.warnings)

    def test_empty_page_warning(self):
        """Should warn about pages without fields."""
        result = validate_form_config(fields_of(page("p1", field("a")), page("p2")))
        assert any('key: "p2"' in w for w in result.warnings)

    def test_stray_array_button_warning(self):
        """Should warn about array buttons with no target."""
        result = validate_form_config(fields_of(field("add", "addArrayItem")))
        assert any("'add'" in w for w in result.warnings)

    def test_unregistered_types_warning(self):
        """Should list unregistered types once."""
        registry = FieldTypeRegistry([FieldTypeDefinition(name="input", mapper=lambda f, c: None)])
        result = validate_form_config(fields_of(field("a"), field("b", "rating"), field("c", "rating")), registry)
        assert result.warnings == ["Unregistered field types: 'rating'"]

    def test_or_raise(self, caplog):
        """Should raise with every error and log warnings."""
        with pytest.raises(DynamicFormError) as info:
            validate_form_config_or_raise(fields_of(page("p1", field("a")), field("a")))
        assert len(info.value.errors) == 2
        assert "invalid mode" in str(info.value)

        validate_form_config_or_raise(fields_of(page("only", field("a"))))
        assert "Single page form detected" in caplog.text


class TestFieldValidation:
    """Test ValidationEngine.validate_field()."""

    def check(self, definition, value, **context):
        engine = ValidationEngine(functions=context.pop("functions", None), default_messages=context.pop("messages", None))
        return engine.validate_field(field_from_dict(definition), value, EvaluationContext(**context), path="f")

    def test_required(self):
        """Should flag empty values of required fields."""
        for empty in ("", "   ", None, [], False):
            errors = self.check(field("f", required=True), empty)
            assert [e.code for e in errors] == [FieldErrorCode.REQUIRED]
        assert self.check(field("f", required=True), 0) == []

    def test_empty_optional_value_skips_constraints(self):
        """Should not apply constraints to empty optional values."""
        assert self.check(field("f", minLength=3, email=True), "") == []

    def test_email(self):
        """Should validate email addresses."""
        assert self.check(field("f", email=True), "ada@example.com") == []
        errors = self.check(field("f", email=True), "ada@")
        assert errors[0].code == FieldErrorCode.EMAIL
        assert errors[0].message == "Please enter a valid email address"

    def test_min_max(self):
        """Should bound numbers with interpolated messages."""
        errors = self.check(field("f", "slider", min=18, max=99), 12)
        assert errors[0].code == FieldErrorCode.MIN
        assert errors[0].message == "Must be at least 18"
        assert self.check(field("f", "slider", min=18, max=99), 100)[0].code == FieldErrorCode.MAX

    def test_lengths(self):
        """Should bound string and list lengths."""
        errors = self.check(field("f", minLength=3), "ab")
        assert errors[0].code == FieldErrorCode.MIN_LENGTH
        assert errors[0].params["actualLength"] == 2
        assert errors[0].message == "Must be at least 3 characters"
        assert self.check(field("f", "multi-checkbox", maxLength=1), ["a", "b"])[0].code == FieldErrorCode.MAX_LENGTH

    def test_pattern_is_unanchored(self):
        """Should search the pattern anywhere in the value."""
        assert self.check(field("f", pattern="[0-9]"), "abc1") == []
        assert self.check(field("f", pattern="^[0-9]+$"), "abc1")[0].code == FieldErrorCode.PATTERN

    def test_message_precedence(self):
        """Should prefer field messages over form messages over defaults."""
        definition = field("f", minLength=3, validationMessages={"minLength": "At least {{requiredLength}}!"})
        assert self.check(definition, "ab")[0].message == "At least 3!"
        errors = self.check(field("f", required=True), "", messages={"required": "Needed"})
        assert errors[0].message == "Needed"

    def test_conditional_required(self):
        """Should honor required logic rules."""
        definition = field(
            "f",
            logic=[
                {
                    "type": "required",
                    "condition": {"type": "fieldValue", "fieldPath": "kind", "operator": "equals", "value": "x"},
                }
            ],
        )
        assert self.check(definition, "", form_value={"kind": "x"})[0].code == FieldErrorCode.REQUIRED
        assert self.check(definition, "", form_value={"kind": "y"}) == []

    def test_validator_when(self):
        """Should skip validators whose condition is false."""
        definition = field(
            "f",
            validators=[
                {"type": "minLength", "value": 5, "when": {"type": "javascript", "expression": "formValue.strict"}}
            ],
        )
        assert self.check(definition, "abc", form_value={"strict": False}) == []
        assert self.check(definition, "abc", form_value={"strict": True})[0].code == FieldErrorCode.MIN_LENGTH

    def test_custom_validator(self):
        """Should report a custom error when the function returns a truthy result."""
        functions = FunctionRegistry({"noAdmin": lambda ctx: "reserved" if ctx.field_value == "admin" else None})
        definition = field(
            "f",
            validators=[{"type": "custom", "functionName": "noAdmin"}],
            validationMessages={"reserved": "'{{kind}}' name"},
        )
        assert self.check(definition, "ada", functions=functions) == []
        errors = self.check(definition, "admin", functions=functions)
        assert errors[0].code == FieldErrorCode.CUSTOM
        assert errors[0].params["kind"] == "reserved"
        assert errors[0].message == "'{{kind}}' name"

    def test_custom_validator_dict_result(self):
        """Should use the message of a dict result when no override exists."""
        functions = FunctionRegistry({"check": lambda ctx: {"kind": "taken", "message": "Already taken"}})
        errors = self.check(field("f", validators=[{"type": "custom", "functionName": "check"}]), "x", functions=functions)
        assert errors[0].message == "Already taken"

    def test_unregistered_custom_validator(self, caplog):
        """Should log and pass when the function is missing."""
        errors = self.check(field("f", validators=[{"type": "custom", "functionName": "nope"}]), "x")
        assert errors == []
        assert "not registered" in caplog.text


class TestFormValidation:
    """Test ValidationEngine.validate() over whole forms."""

    def test_paths_and_result(self):
        """Should report nested paths and split missing from invalid fields."""
        fields = fields_of(
            field("name", required=True),
            {"key": "address", "type": "group", "fields": [field("city", required=True), field("zip", pattern="^\\d+$")]},
            {"key": "r", "type": "row", "fields": [field("email", email=True)]},
        )
        result = ValidationEngine(fields).validate(
            {"name": "", "address": {"city": "", "zip": "abc"}, "email": "nope"}
        )
        assert result.is_valid is False
        assert [e.path for e in result.errors] == ["name", "address.city", "address.zip", "email"]
        assert result.missing_fields == ["name", "address.city"]
        assert result.invalid_fields == ["address.zip", "email"]
        assert result.errors_for("email")[0].code == FieldErrorCode.EMAIL

    def test_hidden_fields_are_skipped(self):
        """Should not validate hidden fields or fields inside hidden containers."""
        hide = {"type": "hidden", "condition": {"type": "fieldValue", "fieldPath": "kind", "operator": "notEquals", "value": "business"}}
        fields = fields_of(
            field("kind"),
            field("companyName", required=True, logic=[hide]),
            {"key": "extra", "type": "group", "logic": [hide], "fields": [field("vat", required=True)]},
        )
        engine = ValidationEngine(fields)
        assert engine.validate({"kind": "personal", "companyName": "", "extra": {"vat": ""}}).is_valid
        result = engine.validate({"kind": "business", "companyName": "", "extra": {"vat": ""}})
        assert [e.path for e in result.errors] == ["companyName", "extra.vat"]

    def test_array_items(self):
        """Should validate every array item with item-scoped conditions."""
        fields = fields_of(
            {
                "key": "contacts",
                "type": "array",
                "template": [
                    field("name", required=True),
                    field(
                        "email",
                        logic=[{"type": "required", "condition": {"type": "javascript", "expression": "formValue.name != ''"}}],
                    ),
                ],
            }
        )
        result = ValidationEngine(fields).validate(
            {"contacts": [{"name": "Ada", "email": ""}, {"name": "", "email": ""}]}
        )
        assert [e.path for e in result.errors] == ["contacts[0].email", "contacts[1].name"]

    def test_primitive_array_items(self):
        """Should validate leaf templates against each item."""
        fields = fields_of({"key": "tags", "type": "array", "template": field("tag", minLength=2)})
        result = ValidationEngine(fields).validate({"tags": ["ok", "x"]})
        assert [e.path for e in result.errors] == ["tags[1]"]

    def test_to_dict(self):
        """Should serialize in camelCase."""
        result = ValidationEngine(fields_of(field("a", required=True))).validate({"a": ""})
        data = result.to_dict()
        assert data["isValid"] is False
        assert data["missingFields"] == ["a"]
        assert data["errors"][0]["code"] == "required"


class TestInterpolation:
    """Test message interpolation."""

    def test_unknown_placeholders_are_kept(self):
        """Should keep placeholders without a parameter."""
        assert interpolate_params("{{min}} and {{other}}", {"min": 1}) == "1 and {{other}}"
