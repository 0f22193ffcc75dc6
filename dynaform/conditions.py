"""Condition evaluation for logic rules, validators and derivations.

evaluate_condition() answers the yes/no questions a field asks about the
current form data (is it hidden, required, readonly, disabled, should this
validator apply); evaluate_expression() computes arbitrary values for
derivations. Both are pure: they read the EvaluationContext and nothing else,
and they never mutate form state.

Evaluation failures (syntax errors, disallowed operations, exceptions raised
by custom functions) are logged and treated as False, so one broken rule can
never take the rest of the form down.

Usage:
    >>> from dynaform.config import FieldValueCondition
    >>> from dynaform.types import ConditionOperator, LogicType
    >>> context = EvaluationContext(form_value={"accountType": "business"})
    >>> condition = FieldValueCondition("accountType", ConditionOperator.EQUALS, "business")
    >>> evaluate_condition(condition, context)
    True
"""

import datetime
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional, Set, Tuple

from dateutil import parser as date_parser

from dynaform.config import (
    AndCondition,
    Condition,
    CustomCondition,
    ExpressionCondition,
    FieldValueCondition,
    FormValueCondition,
    OrCondition,
)
from dynaform.expressions import (
    WHOLE_FORM,
    ExpressionError,
    ExpressionEvaluator,
    collect_dependencies,
    is_truthy,
    loose_equal,
)
from dynaform.paths import get_path, has_path
from dynaform.types import ConditionOperator, LogicType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationContext:
    """The only data a condition or expression may read.

    Attributes:
        field_value: Current value of the field owning the rule
        form_value: Form value in the field's scope (the item value for
            fields inside an array item, the whole form otherwise)
        field_path: Dot-notation path of the owning field
        custom_functions: Functions callable by name
        root_form_value: Whole form value when form_value is scoped
        external_data: Host data exposed as ``externalData``
    """
    field_value: Any = None
    form_value: Any = field(default_factory=dict)
    field_path: str = ""
    custom_functions: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    root_form_value: Any = None
    external_data: Dict[str, Any] = field(default_factory=dict)

    def with_field(self, field_path: str, field_value: Any) -> "EvaluationContext":
        """Return a copy bound to another field of the same scope."""
        return replace(self, field_path=field_path, field_value=field_value)

    def resolve(self, path: str) -> Any:
        """Read path from the scoped value, falling back to the root value."""
        if has_path(self.form_value, path) or self.root_form_value is None:
            return get_path(self.form_value, path)
        return get_path(self.root_form_value, path)

    def scope(self) -> Dict[str, Any]:
        """Names visible to free-form expressions."""
        names: Dict[str, Any] = dict(self.custom_functions)
        names.update(
            fieldValue=self.field_value,
            formValue=self.form_value,
            rootFormValue=self.root_form_value if self.root_form_value is not None else self.form_value,
            externalData=self.external_data,
            fieldPath=self.field_path,
        )
        return names


def evaluate_condition(condition: Condition, context: EvaluationContext) -> bool:
    """Evaluate a condition to a boolean.

    Args:
        condition: Literal bool or one of the condition dataclasses
        context: Data the condition may read

    Returns:
        The condition's truth value; False on any evaluation error
    """
    if isinstance(condition, bool):
        return condition
    if isinstance(condition, FieldValueCondition):
        actual = context.resolve(condition.field_path)
        return compare_values(condition.operator, actual, condition.value)
    if isinstance(condition, FormValueCondition):
        return compare_values(condition.operator, context.form_value, condition.value)
    if isinstance(condition, ExpressionCondition):
        if not condition.expression.strip():
            return False
        try:
            return is_truthy(evaluate_expression(condition.expression, context))
        except ExpressionError as exc:
            logger.error("Error evaluating condition %r: %s", condition.expression, exc)
            return False
    if isinstance(condition, CustomCondition):
        return _call_custom(condition.function_name, context)
    if isinstance(condition, AndCondition):
        return all(evaluate_condition(c, context) for c in condition.conditions)
    if isinstance(condition, OrCondition):
        return any(evaluate_condition(c, context) for c in condition.conditions)
    logger.warning("Unknown condition %r evaluated as False", condition)
    return False


def evaluate_logic(definition: Any, logic_type: LogicType, context: EvaluationContext) -> bool:
    """Resolve a boolean field state from its static flag and logic rules.

    The state is on when the static flag is set or any rule of that type
    evaluates true.
    """
    if getattr(definition, logic_type.value, False) is True:
        return True
    return any(evaluate_condition(rule.condition, context) for rule in definition.rules_of(logic_type))


def evaluate_expression(expression: str, context: EvaluationContext) -> Any:
    """Evaluate a free-form expression to a value.

    Raises:
        ExpressionError: On syntax errors, disallowed operations, or when a
            custom function called by the expression raises
    """
    evaluator = ExpressionEvaluator(context.scope())
    try:
        return evaluator.evaluate(expression)
    except ExpressionError:
        raise
    except Exception as exc:
        raise ExpressionError(f"{type(exc).__name__}: {exc}", expression) from exc


def _call_custom(name: str, context: EvaluationContext) -> bool:
    fn = context.custom_functions.get(name)
    if fn is None:
        logger.warning("Custom function '%s' is not registered", name)
        return False
    try:
        return bool(fn(context))
    except Exception:
        logger.exception("Custom function '%s' raised", name)
        return False


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def compare_values(operator: ConditionOperator, actual: Any, expected: Any) -> bool:
    """Apply a condition operator.

    None (missing) values never raise: equals matches only an expected None,
    notEquals matches anything but an expected None, every other operator is
    False.

    Examples:
        >>> compare_values(ConditionOperator.GREATER, 21, 18)
        True
        >>> compare_values(ConditionOperator.LESS, "2024-01-31", "2024-02-01")
        True
        >>> compare_values(ConditionOperator.NOT_EQUALS, None, "business")
        True
    """
    if operator == ConditionOperator.EQUALS:
        return loose_equal(actual, expected)
    if operator == ConditionOperator.NOT_EQUALS:
        return not loose_equal(actual, expected)
    if actual is None:
        return False
    if operator in _ORDERING:
        pair = _comparable(actual, expected)
        if pair is None:
            return False
        return _ORDERING[operator](*pair)
    if operator == ConditionOperator.CONTAINS:
        if isinstance(actual, str):
            return expected is not None and str(expected) in actual
        if isinstance(actual, (list, tuple, set)):
            return any(loose_equal(item, expected) for item in actual)
        if isinstance(actual, dict):
            return expected in actual
        return False
    if not isinstance(actual, str) or expected is None:
        return False
    if operator == ConditionOperator.STARTS_WITH:
        return actual.startswith(str(expected))
    if operator == ConditionOperator.ENDS_WITH:
        return actual.endswith(str(expected))
    if operator == ConditionOperator.MATCHES:
        try:
            return re.search(str(expected), actual) is not None
        except re.error as exc:
            logger.error("Invalid pattern %r in condition: %s", expected, exc)
            return False
    logger.warning("Unknown operator %r evaluated as False", operator)
    return False


_ORDERING = {
    ConditionOperator.GREATER: lambda a, b: a > b,
    ConditionOperator.LESS: lambda a, b: a < b,
    ConditionOperator.GREATER_OR_EQUAL: lambda a, b: a >= b,
    ConditionOperator.LESS_OR_EQUAL: lambda a, b: a <= b,
}

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_datetime(value: Any) -> Optional[datetime.datetime]:
    if isinstance(value, datetime.datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, datetime.date):
        return datetime.datetime(value.year, value.month, value.day)
    if isinstance(value, str) and _DATE_RE.match(value):
        try:
            return date_parser.isoparse(value).replace(tzinfo=None)
        except (ValueError, OverflowError):
            return None
    return None


def _comparable(actual: Any, expected: Any) -> Optional[Tuple[Any, Any]]:
    """Coerce both operands to a common ordered type, or None if impossible."""
    if _is_number(actual) and _is_number(expected):
        return actual, expected
    left, right = _as_datetime(actual), _as_datetime(expected)
    if left is not None and right is not None:
        return left, right
    if _is_number(actual) and isinstance(expected, str):
        try:
            return actual, float(expected)
        except ValueError:
            return None
    if isinstance(actual, str) and _is_number(expected):
        try:
            return float(actual), expected
        except ValueError:
            return None
    if isinstance(actual, str) and isinstance(expected, str):
        return actual, expected
    return None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def collect_condition_dependencies(condition: Condition) -> Set[str]:
    """Return the form paths a condition reads.

    ``formValue`` and ``custom`` conditions may read anything and report
    WHOLE_FORM.

    Examples:
        >>> from dynaform.config import ExpressionCondition
        >>> sorted(collect_condition_dependencies(ExpressionCondition("formValue.a && formValue.b.c")))
        ['a', 'b.c']
    """
    if isinstance(condition, bool):
        return set()
    if isinstance(condition, FieldValueCondition):
        return {condition.field_path}
    if isinstance(condition, ExpressionCondition):
        return collect_dependencies(condition.expression)
    if isinstance(condition, (AndCondition, OrCondition)):
        found: Set[str] = set()
        for nested in condition.conditions:
            found |= collect_condition_dependencies(nested)
        return found
    return {WHOLE_FORM}


__all__ = [
    "EvaluationContext",
    "evaluate_condition",
    "evaluate_expression",
    "evaluate_logic",
    "compare_values",
    "collect_condition_dependencies",
    "collect_dependencies",
    "WHOLE_FORM",
]
