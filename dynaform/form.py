"""Live form state: the root value cell and one FieldNode per value path.

FormTree owns the single mutable source of truth, a Signal holding the whole
form value. Every value-owning field gets a FieldNode addressed by its
dot-notation path (``address.city``, ``contacts[0].email``). A node's value
cell derives from the root and writes back through it; its hidden, required,
readonly, disabled, errors and valid states are Computed cells re-evaluated
from the field's logic rules whenever the data they read changes.

Nodes for array items are created on demand by resolve(), since items come
and go at runtime.

Usage:
    >>> from dynaform.config import FormConfig
    >>> config = FormConfig.from_dict({"fields": [{"key": "name", "type": "input", "required": True}]})
    >>> tree = FormTree(config.fields)
    >>> tree.resolve("name").valid()
    False
    >>> tree.resolve("name").value.set("Ada")
    >>> tree.value()
    {'name': 'Ada'}
"""

import copy
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from dynaform.conditions import EvaluationContext, evaluate_logic
from dynaform.config import ArrayField, ContainerField, FieldDefinition
from dynaform.errors import FieldError
from dynaform.paths import format_path, get_path, parse_path, set_path
from dynaform.signals import Computed, DerivedSignal, Signal, default_equal, untracked
from dynaform.types import LogicType, ValueHandling
from dynaform.validation import ValidationEngine, ValidationResult
from dynaform.values import build_default_value, value_handling_of


def scope_path_of(path: str) -> str:
    """Path of the innermost array item containing path ("" at the root).

    Examples:
        >>> scope_path_of("contacts[1].email")
        'contacts[1]'
        >>> scope_path_of("address.city")
        ''
    """
    segments = parse_path(path)
    for position in range(len(segments) - 1, -1, -1):
        if isinstance(segments[position], int):
            return format_path(segments[: position + 1])
    return ""


def relative_path(path: str, scope_path: str) -> str:
    if not scope_path:
        return path
    return format_path(parse_path(path)[len(parse_path(scope_path)):])


class FieldNode:
    """Reactive state of one value-owning field.

    Attributes:
        path: Root-relative path of the field
        definition: The field's definition
        value: Two-way cell; writes go through the root cell
        hidden, required, readonly, disabled: Computed logic states
        errors: Computed validation errors (empty while hidden)
        valid: Computed ``not errors``
        touched: Set once the user has interacted with the field
        dirty: Computed ``value != initial value``
    """

    def __init__(
        self,
        tree: "FormTree",
        path: str,
        definition: FieldDefinition,
        ancestors: Tuple[FieldDefinition, ...] = (),
    ) -> None:
        self.tree = tree
        self.path = path
        self.definition = definition
        self.ancestors = ancestors
        self.scope_path = scope_path_of(path)
        self.local_path = relative_path(path, self.scope_path)

        self.value: DerivedSignal[Any] = DerivedSignal(
            lambda: get_path(tree.value(), path),
            lambda v: tree.write(path, v),
            name=path,
        )
        self.hidden = Computed(self._compute_hidden, name=f"{path}:hidden")
        self.required = Computed(lambda: self._logic(LogicType.REQUIRED), name=f"{path}:required")
        self.readonly = Computed(lambda: self._logic(LogicType.READONLY), name=f"{path}:readonly")
        self.disabled = Computed(lambda: self._logic(LogicType.DISABLED), name=f"{path}:disabled")
        self.errors: Computed[List[FieldError]] = Computed(self._compute_errors, name=f"{path}:errors")
        self.valid = Computed(lambda: not self.errors(), name=f"{path}:valid")
        self.touched = Signal(False, name=f"{path}:touched")
        self._initial = Signal(copy.deepcopy(untracked(self.value)), name=f"{path}:initial")
        self.dirty = Computed(lambda: self.value() != self._initial(), name=f"{path}:dirty")

    def context(self) -> EvaluationContext:
        """Evaluation context of this field (reads, and so tracks, the root)."""
        return self.tree.context(self.scope_path).with_field(self.local_path, self.value())

    def _logic(self, logic_type: LogicType) -> bool:
        return evaluate_logic(self.definition, logic_type, self.context())

    def _compute_hidden(self) -> bool:
        context = self.context()
        if any(evaluate_logic(a, LogicType.HIDDEN, context) for a in self.ancestors):
            return True
        return evaluate_logic(self.definition, LogicType.HIDDEN, context)

    def _compute_errors(self) -> List[FieldError]:
        if self.hidden():
            return []
        return self.tree.engine.validate_field(
            self.definition,
            self.value(),
            self.context(),
            path=self.path,
            required=self.required(),
        )

    def mark_as_touched(self) -> None:
        self.touched.set(True)

    def reset_state(self) -> None:
        """Forget interaction state and take the current value as pristine."""
        self.touched.set(False)
        self._initial.set(copy.deepcopy(self.value.peek()))

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot of the node's current state."""
        return {
            "path": self.path,
            "value": self.value.peek(),
            "hidden": self.hidden.peek(),
            "required": self.required.peek(),
            "readonly": self.readonly.peek(),
            "disabled": self.disabled.peek(),
            "valid": self.valid.peek(),
            "touched": self.touched.peek(),
            "dirty": self.dirty.peek(),
            "errors": [e.to_dict() for e in self.errors.peek()],
        }

    def __repr__(self) -> str:
        return f"<FieldNode {self.path!r}>"


class FormTree:
    """Root value cell plus the FieldNodes addressing into it.

    Attributes:
        fields: Root field definitions
        value: Root Signal holding the whole form value
        engine: ValidationEngine used by every node
        valid: Computed validity of the whole form (hidden fields excluded)
    """

    def __init__(
        self,
        fields: Sequence[FieldDefinition],
        initial_value: Optional[Dict[str, Any]] = None,
        registry: Any = None,
        functions: Any = None,
        default_messages: Optional[Dict[str, str]] = None,
        external_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.fields = tuple(fields)
        self.registry = registry
        self.functions = functions
        self.external_data = dict(external_data or {})
        if initial_value is None:
            initial_value = build_default_value(self.fields, registry)
        self.value: Signal[Dict[str, Any]] = Signal(initial_value, name="form")
        self.engine = ValidationEngine(
            self.fields,
            registry=registry,
            functions=functions,
            default_messages=default_messages,
            external_data=self.external_data,
        )
        self._nodes: Dict[str, FieldNode] = {}
        self._build(self.fields, "", ())
        self.validation: Computed[ValidationResult] = Computed(
            lambda: self.engine.validate(self.value()), name="form:validation"
        )
        self.valid = Computed(lambda: self.validation().is_valid, name="form:valid")
        self.errors = Computed(lambda: self.validation().errors, name="form:errors")

    def _build(self, fields: Sequence[FieldDefinition], prefix: str, ancestors: Tuple[FieldDefinition, ...]) -> None:
        for definition in fields:
            handling = value_handling_of(definition, self.registry)
            if handling == ValueHandling.EXCLUDE:
                continue
            if handling == ValueHandling.FLATTEN:
                self._build(definition.children, prefix, ancestors + (definition,))
                continue
            path = f"{prefix}.{definition.key}" if prefix else definition.key
            self._nodes[path] = FieldNode(self, path, definition, ancestors)
            if isinstance(definition, ContainerField):
                self._build(definition.fields, path, ancestors + (definition,))

    # -- values ---------------------------------------------------------------

    def write(self, path: str, value: Any) -> None:
        """Write value at path through the root cell; equal values are ignored."""
        current = self.value.peek()
        if default_equal(get_path(current, path), value):
            return
        self.value.set(set_path(current, path, value))

    def context(self, scope_path: str = "") -> EvaluationContext:
        """Evaluation context for fields at the root or inside an array item."""
        root = self.value()
        functions = self.functions.custom_functions if self.functions is not None else {}
        if not scope_path:
            return EvaluationContext(form_value=root, custom_functions=functions, external_data=self.external_data)
        return EvaluationContext(
            form_value=get_path(root, scope_path),
            root_form_value=root,
            custom_functions=functions,
            external_data=self.external_data,
        )

    # -- nodes ----------------------------------------------------------------

    def __contains__(self, path: str) -> bool:
        return self.resolve(path) is not None

    def __iter__(self) -> Iterator[FieldNode]:
        return iter(list(self._nodes.values()))

    def get(self, path: str) -> Optional[FieldNode]:
        """Return an existing node without creating array item nodes."""
        return self._nodes.get(path)

    def resolve(self, path: str) -> Optional[FieldNode]:
        """Return the node at path, creating array item nodes on demand.

        Returns None when no field definition exists at path.
        """
        node = self._nodes.get(path)
        if node is not None:
            return node
        found = self._find_definition(path)
        if found is None:
            return None
        definition, ancestors = found
        node = FieldNode(self, path, definition, ancestors)
        self._nodes[path] = node
        if isinstance(definition, ContainerField):
            self._build(definition.fields, path, ancestors + (definition,))
        return node

    def forget(self, prefix: str) -> None:
        """Drop nodes at prefix and below (used when array items go away)."""
        for path in [p for p in self._nodes if p == prefix or p.startswith(prefix + ".") or p.startswith(prefix + "[")]:
            del self._nodes[path]

    def _find_definition(self, path: str) -> Optional[Tuple[FieldDefinition, Tuple[FieldDefinition, ...]]]:
        candidates: Sequence[FieldDefinition] = self.fields
        current: Optional[FieldDefinition] = None
        ancestors: Tuple[FieldDefinition, ...] = ()
        for segment in parse_path(path):
            if isinstance(segment, int):
                if not isinstance(current, ArrayField) or current.template is None:
                    return None
                ancestors = ancestors + (current,)
                template = current.template
                if isinstance(template, tuple):
                    current, candidates = None, template
                elif isinstance(template, ContainerField):
                    current, candidates = template, template.fields
                else:
                    current, candidates = template, ()
                continue
            if current is not None:
                ancestors = ancestors + (current,)
            match = self._find_key(candidates, segment, ancestors)
            if match is None:
                return None
            current, flattened = match
            ancestors = ancestors + flattened
            candidates = current.fields if isinstance(current, ContainerField) else ()
        if current is None:
            return None
        return current, ancestors

    def _find_key(
        self, fields: Sequence[FieldDefinition], key: str, ancestors: Tuple[FieldDefinition, ...]
    ) -> Optional[Tuple[FieldDefinition, Tuple[FieldDefinition, ...]]]:
        for definition in fields:
            handling = value_handling_of(definition, self.registry)
            if handling == ValueHandling.FLATTEN:
                match = self._find_key(definition.children, key, ancestors)
                if match is not None:
                    return match[0], (definition,) + match[1]
            elif handling == ValueHandling.INCLUDE and definition.key == key:
                return definition, ()
        return None

    def value_nodes(self, fields: Optional[Sequence[FieldDefinition]] = None) -> List[FieldNode]:
        """Nodes of the value fields under fields (default: the whole form)."""
        if fields is None:
            return list(self._nodes.values())
        wanted = {id(f) for f in _walk_values(fields, self.registry)}
        return [node for node in self._nodes.values() if id(node.definition) in wanted]

    def validate_fields(self, fields: Sequence[FieldDefinition]) -> ValidationResult:
        """Validate only the given subtree, e.g. one page (reads the root)."""
        engine = ValidationEngine(
            fields,
            registry=self.registry,
            functions=self.functions,
            default_messages=self.engine.default_messages,
            external_data=self.external_data,
        )
        return engine.validate(self.value())

    def mark_all_as_touched(self) -> None:
        for node in list(self._nodes.values()):
            node.mark_as_touched()

    def reset_state(self) -> None:
        for node in list(self._nodes.values()):
            node.reset_state()

    def snapshot(self) -> Dict[str, Any]:
        return {path: node.to_dict() for path, node in self._nodes.items()}


def _walk_values(fields: Sequence[FieldDefinition], registry: Any) -> Iterator[FieldDefinition]:
    for definition in fields:
        handling = value_handling_of(definition, registry)
        if handling == ValueHandling.EXCLUDE:
            continue
        if handling == ValueHandling.INCLUDE:
            yield definition
        if not isinstance(definition, ArrayField):
            yield from _walk_values(definition.children, registry)


__all__ = [
    "FieldNode",
    "FormTree",
    "scope_path_of",
    "relative_path",
]
