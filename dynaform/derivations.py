"""Derived values: fields whose value is computed from the rest of the form.

A field carrying a ``derivation`` logic rule has its value overwritten every
time the form value changes and the rule's condition holds. The new value
comes from the rule's ``expression``, a registered ``functionName`` or a
static ``value``.

Derivations are applied in dependency order. The paths each rule reads are
inferred statically from its expression and condition; a derivation runs
after every derivation whose target it reads, with configuration order as
the tie-breaker. Cyclic rules are logged and fall back to configuration
order. Each pass applies all rules to a working copy and writes the root
value once, only when something changed, so the orchestrator settles on the
pass after its own write.

Derivations inside an array template are applied per item, with the item as
``formValue`` and the whole form as ``rootFormValue``.

Usage:
    >>> from dynaform.config import FormConfig
    >>> from dynaform.form import FormTree
    >>> config = FormConfig.from_dict({"fields": [
    ...     {"key": "first", "type": "input", "value": "Ada"},
    ...     {"key": "last", "type": "input", "value": "Lovelace"},
    ...     {"key": "full", "type": "input", "logic": [{
    ...         "type": "derivation", "targetField": "full",
    ...         "expression": "formValue.first + ' ' + formValue.last"}]},
    ... ]})
    >>> tree = FormTree(config.fields)
    >>> orchestrator = DerivationOrchestrator(tree)
    >>> tree.value()["full"]
    'Ada Lovelace'
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from dynaform.conditions import (
    EvaluationContext,
    collect_condition_dependencies,
    evaluate_condition,
    evaluate_expression,
)
from dynaform.config import ArrayField, ContainerField, FieldDefinition, LogicRule
from dynaform.expressions import WHOLE_FORM, ExpressionError, collect_dependencies
from dynaform.paths import MISSING, get_path, set_path
from dynaform.signals import Effect, default_equal
from dynaform.types import LogicType
from dynaform.values import iter_value_fields

logger = logging.getLogger(__name__)

_SKIP: Any = object()


@dataclass
class Derivation:
    """One derivation rule bound to the path of its field.

    Attributes:
        path: Path of the derived field, relative to its scope
        definition: The owning field
        rule: The derivation rule
        dependencies: Scope-relative paths the rule reads
    """
    path: str
    definition: FieldDefinition
    rule: LogicRule
    dependencies: Set[str] = field(default_factory=set)

    def reads(self, path: str) -> bool:
        """True when one of the dependencies overlaps path."""
        return any(_overlaps(dependency, path) for dependency in self.dependencies)


@dataclass
class DerivationPlan:
    """Ordered derivations of one scope plus the arrays nested in it."""
    derivations: List[Derivation] = field(default_factory=list)
    arrays: Dict[str, "DerivationPlan"] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.derivations) or any(self.arrays.values())


def _overlaps(a: str, b: str) -> bool:
    if a == b:
        return True
    return a.startswith(b + ".") or a.startswith(b + "[") or b.startswith(a + ".") or b.startswith(a + "[")


def rule_dependencies(rule: LogicRule) -> Set[str]:
    """Paths a derivation rule reads (WHOLE_FORM entries are dropped)."""
    found: Set[str] = set()
    try:
        found |= collect_condition_dependencies(rule.condition)
        if rule.expression:
            found |= collect_dependencies(rule.expression)
    except ExpressionError as e:
        logger.error("Cannot infer dependencies of %r: %s", e.expression, e)
    found.discard(WHOLE_FORM)
    return found


def order_derivations(derivations: Sequence[Derivation]) -> List[Derivation]:
    """Topological order over read dependencies, configuration order breaking ties.

    Examples:
        >>> from dynaform.config import field_from_dict
        >>> rule = LogicRule(LogicType.DERIVATION, expression="formValue.b")
        >>> a = Derivation("a", field_from_dict({"key": "a", "type": "input"}), rule, {"b"})
        >>> b = Derivation("b", field_from_dict({"key": "b", "type": "input"}), rule, set())
        >>> [d.path for d in order_derivations([a, b])]
        ['b', 'a']
    """
    remaining = list(derivations)
    ordered: List[Derivation] = []
    while remaining:
        for candidate in remaining:
            blocked = any(
                other is not candidate and other.path != candidate.path and candidate.reads(other.path)
                for other in remaining
            )
            if not blocked:
                ordered.append(candidate)
                remaining.remove(candidate)
                break
        else:
            logger.warning(
                "Cyclic derivations between %s; applying them in configuration order",
                ", ".join(sorted({d.path for d in remaining})),
            )
            ordered.extend(remaining)
            break
    return ordered


def build_plan(fields: Sequence[FieldDefinition], registry: Any = None) -> DerivationPlan:
    """Collect and order the derivations found under fields."""
    plan = DerivationPlan()
    found: List[Derivation] = []
    for path, definition in iter_value_fields(fields, registry):
        for rule in definition.rules_of(LogicType.DERIVATION):
            found.append(Derivation(path, definition, rule, rule_dependencies(rule)))
        if isinstance(definition, ArrayField) and definition.template is not None:
            item_plan = _template_plan(definition, registry)
            if item_plan:
                plan.arrays[path] = item_plan
    plan.derivations = order_derivations(found)
    return plan


def _template_plan(definition: ArrayField, registry: Any) -> DerivationPlan:
    template = definition.template
    if isinstance(template, tuple):
        return build_plan(template, registry)
    if isinstance(template, ContainerField):
        return build_plan(template.fields, registry)
    plan = DerivationPlan()
    # A leaf template derives the item itself
    plan.derivations = [
        Derivation("", template, rule, rule_dependencies(rule))
        for rule in template.rules_of(LogicType.DERIVATION)
    ]
    return plan


class DerivationOrchestrator:
    """Effect that keeps derived fields in step with the form value.

    Attributes:
        tree: The FormTree whose root value is derived into
        functions: Optional FunctionRegistry for ``functionName`` rules
        plan: The ordered derivations
    """

    def __init__(self, tree: Any, functions: Any = None, registry: Any = None) -> None:
        self.tree = tree
        self.functions = functions
        self.plan = build_plan(tree.fields, registry if registry is not None else tree.registry)
        self._effect: Optional[Effect] = None
        if self.plan:
            logger.debug("Applying %d root derivations", len(self.plan.derivations))
            self._effect = Effect(self._apply, name="derivations")

    def _apply(self) -> None:
        root = self.tree.value()
        updated = self.apply(root)
        if updated is not root:
            self.tree.value.set(updated)

    def apply(self, root: Dict[str, Any]) -> Dict[str, Any]:
        """Return root with every derivation applied (root itself if nothing changed)."""
        return self._apply_scope(self.plan, root, root, "")

    def _apply_scope(self, plan: DerivationPlan, root: Any, scope_value: Any, scope_path: str) -> Any:
        for derivation in plan.derivations:
            context = self._context(root, scope_value, scope_path, derivation.path)
            value = self._evaluate(derivation, context)
            if value is _SKIP:
                continue
            current = get_path(scope_value, derivation.path, MISSING) if derivation.path else scope_value
            if current is not MISSING and default_equal(current, value):
                continue
            logger.debug("Derived %r for '%s'", value, _join(scope_path, derivation.path))
            root = set_path(root, _join(scope_path, derivation.path), value)
            scope_value = get_path(root, scope_path) if scope_path else root
        for array_path, item_plan in plan.arrays.items():
            full_path = _join(scope_path, array_path)
            items = get_path(root, full_path)
            if not isinstance(items, list):
                continue
            for index in range(len(items)):
                item_path = f"{full_path}[{index}]"
                root = self._apply_scope(item_plan, root, get_path(root, item_path), item_path)
        return root

    def _context(self, root: Any, scope_value: Any, scope_path: str, path: str) -> EvaluationContext:
        functions = self.functions.custom_functions if self.functions is not None else {}
        field_value = get_path(scope_value, path) if path else scope_value
        return EvaluationContext(
            field_value=field_value,
            form_value=scope_value,
            field_path=path,
            custom_functions=functions,
            root_form_value=root if scope_path else None,
            external_data=self.tree.external_data,
        )

    def _evaluate(self, derivation: Derivation, context: EvaluationContext) -> Any:
        rule = derivation.rule
        if not evaluate_condition(rule.condition, context):
            return _SKIP
        if rule.expression:
            try:
                return evaluate_expression(rule.expression, context)
            except ExpressionError as e:
                logger.error("Derivation of '%s' failed: %s", derivation.definition.key, e)
                return _SKIP
        if rule.function_name:
            fn = context.custom_functions.get(rule.function_name)
            if fn is None:
                logger.warning(
                    "Derivation of '%s' uses unknown function '%s'", derivation.definition.key, rule.function_name
                )
                return _SKIP
            try:
                return fn(context)
            except Exception:
                logger.exception("Derivation function '%s' raised", rule.function_name)
                return _SKIP
        return copy.deepcopy(rule.value)

    def destroy(self) -> None:
        if self._effect is not None:
            self._effect.destroy()
            self._effect = None


def _join(scope: str, path: str) -> str:
    if not path:
        return scope
    return f"{scope}.{path}" if scope else path


__all__ = [
    "Derivation",
    "DerivationPlan",
    "DerivationOrchestrator",
    "rule_dependencies",
    "order_derivations",
    "build_plan",
]
