"""Configuration checks and field value validation.

Two unrelated questions are answered here:

1. Is a form configuration usable? detect_form_mode(), validate_page_nesting()
   and validate_form_config() collect human-readable problems into a
   ConfigValidationResult; validate_form_config_or_raise() turns errors into a
   DynamicFormError and logs warnings.

2. Is the data in a field valid? ValidationEngine compiles each field's
   validation shorthands and ``validators`` list into a JSON Schema, checks
   values with jsonschema and translates failures into FieldError entries
   with codes and messages. Conditional ``required`` logic and validator
   ``when`` conditions are honored, and hidden fields are never validated.

Usage:
    >>> from dynaform.config import FormConfig
    >>> config = FormConfig.from_dict({"fields": [
    ...     {"key": "email", "type": "input", "required": True, "email": True},
    ... ]})
    >>> engine = ValidationEngine(config.fields)
    >>> result = engine.validate({"email": "not-an-email"})
    >>> result.is_valid
    False
    >>> result.errors[0].code
    <FieldErrorCode.EMAIL: 'email'>
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import jsonschema
from jsonschema import Draft7Validator, FormatChecker

from dynaform.conditions import EvaluationContext, evaluate_condition, evaluate_logic
from dynaform.config import (
    ArrayField,
    ButtonField,
    ContainerField,
    FieldDefinition,
    FormConfig,
    PageField,
    ValidatorConfig,
    walk_fields,
)
from dynaform.errors import ConfigValidationResult, DynamicFormError, FieldError
from dynaform.paths import get_path
from dynaform.types import ARRAY_BUTTON_TYPES, FieldErrorCode, FieldType, FormMode, LogicType, ValueHandling
from dynaform.values import is_empty_value, value_handling_of

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration checks
# ---------------------------------------------------------------------------

MIXED_ROOTS_ERROR = (
    'Mixed page and non-page fields at root level. '
    'In paged forms, ALL root-level fields must be of type "page".'
)

_ARRAY_BUTTON_VALUES = {t.value for t in ARRAY_BUTTON_TYPES}


def _is_page(definition: FieldDefinition) -> bool:
    return definition.type == FieldType.PAGE.value


def detect_form_mode(fields: Sequence[FieldDefinition]) -> FormMode:
    """Classify root fields as all pages, no pages, or a mix.

    Examples:
        >>> detect_form_mode([])
        <FormMode.NON_PAGED: 'non-paged'>
    """
    fields = list(fields or ())
    pages = sum(1 for f in fields if _is_page(f))
    if pages == 0:
        return FormMode.NON_PAGED
    if pages == len(fields):
        return FormMode.PAGED
    return FormMode.INVALID


def _contains_page(fields: Iterable[FieldDefinition]) -> bool:
    return any(_is_page(child) for child in walk_fields(list(fields), include_array_templates=True))


def validate_page_nesting(fields: Sequence[FieldDefinition]) -> List[str]:
    """Report every root field whose subtree contains a page field."""
    errors: List[str] = []
    for index, definition in enumerate(fields or ()):
        if not _contains_page(definition.children):
            continue
        if _is_page(definition):
            errors.append(
                f'Page field at index {index} (key: "{definition.key}") contains nested page fields. '
                "Pages cannot be nested inside pages, rows, groups or arrays."
            )
        else:
            errors.append(
                f'Field at index {index} (key: "{definition.key}") contains nested page fields. '
                "Page fields are only allowed at the root level."
            )
    return errors


def _scope_keys(fields: Iterable[FieldDefinition], registry: Any) -> Iterator[FieldDefinition]:
    # Rows and pages share their parent's value object
    for definition in fields:
        if isinstance(definition, ContainerField) and value_handling_of(definition, registry) == ValueHandling.FLATTEN:
            yield from _scope_keys(definition.children, registry)
        else:
            yield definition


def _duplicate_keys(fields: Sequence[FieldDefinition], registry: Any = None, prefix: str = "") -> List[str]:
    """Keys repeated within one value scope, qualified by the scope's path.

    Groups and array templates open a new scope, so ``shipping.street`` and
    ``billing.street`` do not collide.
    """
    members = list(_scope_keys(fields, registry))
    keys = [f.key for f in members if f.key]
    duplicates = [prefix + key for key, count in Counter(keys).items() if count > 1]
    for definition in members:
        if isinstance(definition, ArrayField):
            duplicates.extend(_duplicate_keys(definition.children, registry, f"{prefix}{definition.key}[]."))
        elif isinstance(definition, ContainerField):
            duplicates.extend(_duplicate_keys(definition.children, registry, f"{prefix}{definition.key}."))
    return duplicates


def _field_patterns(definition: FieldDefinition) -> List[str]:
    patterns = [definition.pattern] if isinstance(definition.pattern, str) else []
    for validator in definition.validators:
        if validator.type == "pattern" and isinstance(validator.value, str):
            patterns.append(validator.value)
    return patterns


def _array_button_problems(fields: Sequence[FieldDefinition], inside_array: bool = False) -> List[str]:
    warnings: List[str] = []
    for definition in fields:
        if (
            isinstance(definition, ButtonField)
            and definition.type in _ARRAY_BUTTON_VALUES
            and not inside_array
            and not definition.array_key
            and not definition.event_args
        ):
            warnings.append(
                f"Array button '{definition.key}' is outside an array and has no arrayKey; "
                "it will not do anything"
            )
        warnings.extend(
            _array_button_problems(definition.children, inside_array or isinstance(definition, ArrayField))
        )
    return warnings


def validate_form_config(
    config: Union[FormConfig, Sequence[FieldDefinition]],
    registry: Any = None,
) -> ConfigValidationResult:
    """Statically check a configuration and collect errors and warnings.

    Args:
        config: A FormConfig or its root fields
        registry: Optional FieldTypeRegistry; when it has registrations,
            unregistered types produce one warning listing them all

    Returns:
        ConfigValidationResult with the detected mode
    """
    fields = list(config.fields if isinstance(config, FormConfig) else (config or ()))
    mode = detect_form_mode(fields)
    errors: List[str] = []
    warnings: List[str] = []

    if mode == FormMode.INVALID:
        errors.append(MIXED_ROOTS_ERROR)
    errors.extend(validate_page_nesting(fields))

    if mode == FormMode.PAGED:
        if len(fields) == 1:
            warnings.append(
                "Single page form detected. Consider using a non-paged form for better performance."
            )
        for index, page in enumerate(fields):
            if not page.children:
                warnings.append(f'Page at index {index} (key: "{page.key}") contains no fields')

    duplicates = _duplicate_keys(fields, registry)
    if duplicates:
        errors.append("Duplicate field keys detected: " + ", ".join(f"'{k}'" for k in duplicates))

    all_fields = list(walk_fields(fields, include_array_templates=True))
    for definition in all_fields:
        for pattern in _field_patterns(definition):
            try:
                re.compile(pattern)
            except re.error as exc:
                errors.append(f"Invalid regex pattern in field '{definition.key}': {pattern!r} ({exc})")
        for rule in definition.rules_of(LogicType.DERIVATION):
            if rule.target_field is not None and rule.target_field != definition.key:
                errors.append(
                    f"Derivation on field '{definition.key}' targets '{rule.target_field}'; "
                    "a derivation may only target its own field"
                )

    warnings.extend(_array_button_problems(fields))

    if registry is not None and registry.types:
        unknown = sorted({f.type for f in all_fields if not registry.has(f.type)})
        if unknown:
            warnings.append("Unregistered field types: " + ", ".join(f"'{t}'" for t in unknown))

    return ConfigValidationResult(mode=mode, errors=errors, warnings=warnings)


def validate_form_config_or_raise(
    config: Union[FormConfig, Sequence[FieldDefinition]],
    registry: Any = None,
) -> ConfigValidationResult:
    """Like validate_form_config(), but raise on errors and log warnings.

    Raises:
        DynamicFormError: Listing every error as a bullet
    """
    result = validate_form_config(config, registry)
    for warning in result.warnings:
        logger.warning(warning)
    if result.errors:
        bullets = "\n".join(f"  - {error}" for error in result.errors)
        raise DynamicFormError(
            f"Invalid form configuration ({result.mode.value} mode):\n{bullets}",
            errors=result.errors,
        )
    return result


# ---------------------------------------------------------------------------
# Field value validation
# ---------------------------------------------------------------------------

EMAIL_PATTERN = re.compile(
    r"^(?=.{1,254}$)(?=.{1,64}@)[a-zA-Z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[a-zA-Z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

FORMAT_CHECKER = FormatChecker(formats=())


@FORMAT_CHECKER.checks("email")
def _is_email(instance: Any) -> bool:
    if not isinstance(instance, str):
        return True
    return EMAIL_PATTERN.match(instance) is not None


DEFAULT_MESSAGES: Dict[str, str] = {
    FieldErrorCode.REQUIRED.value: "This field is required",
    FieldErrorCode.EMAIL.value: "Please enter a valid email address",
    FieldErrorCode.MIN.value: "Must be at least {{min}}",
    FieldErrorCode.MAX.value: "Must be at most {{max}}",
    FieldErrorCode.MIN_LENGTH.value: "Must be at least {{requiredLength}} characters",
    FieldErrorCode.MAX_LENGTH.value: "Must be at most {{requiredLength}} characters",
    FieldErrorCode.PATTERN.value: "Invalid format",
    FieldErrorCode.INVALID_TYPE.value: "Invalid value",
    FieldErrorCode.CUSTOM.value: "Invalid value",
}

_PARAM_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def interpolate_params(message: str, params: Dict[str, Any]) -> str:
    """Replace ``{{name}}`` placeholders with params; ``kind`` is never replaced.

    Examples:
        >>> interpolate_params("Value must be between {{min}} and {{ max }}", {"min": 1, "max": 10})
        'Value must be between 1 and 10'
    """
    def substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name == "kind" or name not in params:
            return match.group(0)
        return str(params[name])

    return _PARAM_RE.sub(substitute, message)


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating a form value.

    Attributes:
        is_valid: Whether every visible field passed
        errors: Field-level errors, in field order
        data: The validated form value
        missing_fields: Paths that failed a required check
        invalid_fields: Paths that failed any other check
    """
    is_valid: bool
    errors: List[FieldError]
    data: Optional[Dict[str, Any]] = None
    missing_fields: Optional[List[str]] = None
    invalid_fields: Optional[List[str]] = None

    def errors_for(self, path: str) -> List[FieldError]:
        return [e for e in self.errors if e.path == path]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "isValid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
        }
        if self.data is not None:
            result["data"] = self.data
        if self.missing_fields is not None:
            result["missingFields"] = self.missing_fields
        if self.invalid_fields is not None:
            result["invalidFields"] = self.invalid_fields
        return result


# jsonschema keyword -> (error code, param name)
_KEYWORD_CODES: Dict[str, Tuple[FieldErrorCode, str]] = {
    "minimum": (FieldErrorCode.MIN, "min"),
    "maximum": (FieldErrorCode.MAX, "max"),
    "minLength": (FieldErrorCode.MIN_LENGTH, "requiredLength"),
    "minItems": (FieldErrorCode.MIN_LENGTH, "requiredLength"),
    "maxLength": (FieldErrorCode.MAX_LENGTH, "requiredLength"),
    "maxItems": (FieldErrorCode.MAX_LENGTH, "requiredLength"),
    "pattern": (FieldErrorCode.PATTERN, "requiredPattern"),
    "format": (FieldErrorCode.EMAIL, "format"),
}


class ValidationEngine:
    """Validates field values against their configured validators.

    Attributes:
        fields: Root field definitions validate() walks
        registry: Optional FieldTypeRegistry (value handling of custom types)
        functions: Optional FunctionRegistry for custom validators and
            custom conditions
        default_messages: Form-level messages per error code
        external_data: Host data exposed to conditions

    Message precedence: the field's validationMessages, then
    default_messages, then DEFAULT_MESSAGES; ``{{param}}`` placeholders are
    interpolated with the failed validator's parameters.
    """

    def __init__(
        self,
        fields: Sequence[FieldDefinition] = (),
        registry: Any = None,
        functions: Any = None,
        default_messages: Optional[Dict[str, str]] = None,
        external_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.fields = tuple(fields)
        self.registry = registry
        self.functions = functions
        self.default_messages = dict(default_messages or {})
        self.external_data = dict(external_data or {})

    # -- single field -------------------------------------------------------

    def build_schema(self, definition: FieldDefinition, context: EvaluationContext) -> Dict[str, Any]:
        """Compile a field's active constraints into a JSON Schema.

        Validators whose ``when`` condition is false are left out.
        """
        constraints: Dict[str, Any] = {}
        if definition.min is not None:
            constraints["minimum"] = definition.min
        if definition.max is not None:
            constraints["maximum"] = definition.max
        if definition.min_length is not None:
            constraints["minLength"] = constraints["minItems"] = definition.min_length
        if definition.max_length is not None:
            constraints["maxLength"] = constraints["maxItems"] = definition.max_length
        if isinstance(definition.pattern, str):
            constraints["pattern"] = definition.pattern
        if definition.email:
            constraints["format"] = "email"

        extra: List[Dict[str, Any]] = []
        for validator in self._active_validators(definition, context):
            schema = _validator_schema(validator)
            if schema:
                extra.append(schema)
        if extra:
            constraints = {**constraints, "allOf": extra} if constraints else {"allOf": extra}
        return constraints

    def validate_field(
        self,
        definition: FieldDefinition,
        value: Any,
        context: EvaluationContext,
        path: Optional[str] = None,
        required: Optional[bool] = None,
    ) -> List[FieldError]:
        """Validate one value; hidden state is the caller's concern.

        Args:
            definition: The field's definition
            value: Current value
            context: Evaluation context for conditional validators
            path: Error path (defaults to the context's field path)
            required: Pre-resolved required state; resolved from the
                definition's logic when None
        """
        path = path if path is not None else context.field_path or definition.key
        if required is None:
            required = evaluate_logic(definition, LogicType.REQUIRED, context)
        active = self._active_validators(definition, context)
        required = required or any(v.type == "required" for v in active)

        if is_empty_value(value) and not _is_number(value):
            if required:
                return [self._error(definition, path, FieldErrorCode.REQUIRED.value, {})]
            return []

        errors: List[FieldError] = []
        schema = self.build_schema(definition, context)
        if schema:
            validator = Draft7Validator(schema, format_checker=FORMAT_CHECKER)
            for error in validator.iter_errors(value):
                errors.append(self._translate_error(definition, path, error))
        for config in active:
            if config.type == "custom":
                error = self._run_custom(definition, path, config, context.with_field(path, value))
                if error is not None:
                    errors.append(error)
        return errors

    def _active_validators(self, definition: FieldDefinition, context: EvaluationContext) -> List[ValidatorConfig]:
        return [v for v in definition.validators if evaluate_condition(v.when, context)]

    def _translate_error(
        self, definition: FieldDefinition, path: str, error: jsonschema.ValidationError
    ) -> FieldError:
        code, param = _KEYWORD_CODES.get(error.validator, (FieldErrorCode.INVALID_TYPE, "expected"))
        params: Dict[str, Any] = {param: error.validator_value}
        if code in (FieldErrorCode.MIN_LENGTH, FieldErrorCode.MAX_LENGTH):
            params["actualLength"] = len(error.instance)
        else:
            params["actual"] = error.instance
        return self._error(definition, path, code.value, params)

    def _run_custom(
        self,
        definition: FieldDefinition,
        path: str,
        config: ValidatorConfig,
        context: EvaluationContext,
    ) -> Optional[FieldError]:
        fn = self.functions.get(config.function_name) if self.functions is not None else None
        if fn is None:
            logger.warning(
                "Custom validator '%s' on field '%s' is not registered", config.function_name, definition.key
            )
            return None
        try:
            outcome = fn(context)
        except Exception:
            logger.exception("Custom validator '%s' on field '%s' raised", config.function_name, definition.key)
            return None
        if not outcome:
            return None
        kind = config.kind or FieldErrorCode.CUSTOM.value
        params: Dict[str, Any] = {}
        fallback: Optional[str] = None
        if isinstance(outcome, str):
            kind = outcome
        elif isinstance(outcome, dict):
            kind = outcome.get("kind", kind)
            fallback = outcome.get("message")
            params = {k: v for k, v in outcome.items() if k not in ("kind", "message")}
        params["kind"] = kind
        return self._error(definition, path, kind, params, fallback)

    def resolve_message(
        self, definition: FieldDefinition, key: str, params: Dict[str, Any], fallback: Optional[str] = None
    ) -> str:
        template = (
            definition.validation_messages.get(key)
            or self.default_messages.get(key)
            or fallback
            or DEFAULT_MESSAGES.get(key)
            or DEFAULT_MESSAGES[FieldErrorCode.CUSTOM.value]
        )
        return interpolate_params(template, params)

    def _error(
        self,
        definition: FieldDefinition,
        path: str,
        key: str,
        params: Dict[str, Any],
        fallback: Optional[str] = None,
    ) -> FieldError:
        try:
            code = FieldErrorCode(key)
        except ValueError:
            code = FieldErrorCode.CUSTOM
        return FieldError(
            path=path,
            code=code,
            message=self.resolve_message(definition, key, params, fallback),
            params=params,
        )

    # -- whole form ---------------------------------------------------------

    def context_for(self, root_value: Any, scope_value: Any = None) -> EvaluationContext:
        functions = self.functions.custom_functions if self.functions is not None else {}
        scoped = scope_value is not None and scope_value is not root_value
        return EvaluationContext(
            form_value=scope_value if scoped else root_value,
            root_form_value=root_value if scoped else None,
            custom_functions=functions,
            external_data=self.external_data,
        )

    def validate(self, form_value: Dict[str, Any]) -> ValidationResult:
        """Validate a whole form value, walking groups, rows, pages and array items.

        Hidden fields (and everything inside a hidden container) are skipped.
        """
        errors: List[FieldError] = []
        self._walk(self.fields, form_value, form_value, "", "", False, errors)
        missing = [e.path for e in errors if e.code == FieldErrorCode.REQUIRED]
        invalid = [e.path for e in errors if e.code != FieldErrorCode.REQUIRED]
        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            data=form_value,
            missing_fields=missing,
            invalid_fields=invalid,
        )

    def _walk(
        self,
        fields: Sequence[FieldDefinition],
        root: Any,
        scope: Any,
        prefix: str,
        scope_prefix: str,
        hidden_parent: bool,
        errors: List[FieldError],
    ) -> None:
        base = self.context_for(root, scope)
        for definition in fields:
            handling = value_handling_of(definition, self.registry)
            if handling == ValueHandling.EXCLUDE:
                continue
            if handling == ValueHandling.FLATTEN:
                hidden = hidden_parent or evaluate_logic(definition, LogicType.HIDDEN, base)
                self._walk(definition.children, root, scope, prefix, scope_prefix, hidden, errors)
                continue
            path = _join(prefix, definition.key)
            local = _join(scope_prefix, definition.key)
            value = get_path(root, path)
            context = base.with_field(local, value)
            hidden = hidden_parent or evaluate_logic(definition, LogicType.HIDDEN, context)
            if not hidden:
                errors.extend(self.validate_field(definition, value, context, path=path))
            if isinstance(definition, ContainerField):
                self._walk(definition.fields, root, scope, path, local, hidden, errors)
            elif isinstance(definition, ArrayField) and isinstance(value, list):
                for index, item in enumerate(value):
                    self._walk_item(definition, item, index, root, path, hidden, errors)

    def _walk_item(
        self,
        array: ArrayField,
        item: Any,
        index: int,
        root: Any,
        array_path: str,
        hidden_parent: bool,
        errors: List[FieldError],
    ) -> None:
        item_path = f"{array_path}[{index}]"
        template = array.template
        if template is None:
            return
        if isinstance(template, tuple):
            self._walk(template, root, item, item_path, "", hidden_parent, errors)
        elif isinstance(template, ContainerField) or value_handling_of(template, self.registry) == ValueHandling.FLATTEN:
            self._walk(template.children, root, item, item_path, "", hidden_parent, errors)
        else:
            context = self.context_for(root, item).with_field(item_path, item)
            if not (hidden_parent or evaluate_logic(template, LogicType.HIDDEN, context)):
                errors.extend(self.validate_field(template, item, context, path=item_path))


def _join(prefix: str, key: str) -> str:
    return f"{prefix}.{key}" if prefix else key


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validator_schema(config: ValidatorConfig) -> Dict[str, Any]:
    kind = config.type
    if kind == "min":
        return {"minimum": config.value}
    if kind == "max":
        return {"maximum": config.value}
    if kind == "minLength":
        return {"minLength": config.value, "minItems": config.value}
    if kind == "maxLength":
        return {"maxLength": config.value, "maxItems": config.value}
    if kind == "pattern" and isinstance(config.value, str):
        return {"pattern": config.value}
    if kind == "email":
        return {"format": "email"}
    return {}


__all__ = [
    "MIXED_ROOTS_ERROR",
    "detect_form_mode",
    "validate_page_nesting",
    "validate_form_config",
    "validate_form_config_or_raise",
    "EMAIL_PATTERN",
    "DEFAULT_MESSAGES",
    "interpolate_params",
    "ValidationResult",
    "ValidationEngine",
]
