"""Registries for field types and host-provided functions.

FieldTypeRegistry replaces dynamic dispatch over field types: every type tag
maps to an explicit FieldTypeDefinition naming the mapper that produces the
type's bindings, an optional loader for the renderer's component, and how the
type contributes to the form value. Lookups happen once per field, when the
configuration is walked.

FunctionRegistry holds the custom functions conditions, derivations and
custom validators refer to by name.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from dynaform.errors import UnknownFieldTypeError
from dynaform.types import ValueHandling

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldTypeDefinition:
    """Registration record for one field type.

    Attributes:
        name: Type tag used in configurations
        mapper: Callable(field, context) -> FieldBindings
        value_handling: Whether the type owns a value, is flattened into its
            parent, or is excluded from the form value
        loader: Optional zero-argument callable returning the renderer's
            component for this type; opaque to the engine
        empty_value: Value the type takes when cleared or defaulted
    """
    name: str
    mapper: Callable[..., Any]
    value_handling: ValueHandling = ValueHandling.INCLUDE
    loader: Optional[Callable[[], Any]] = None
    empty_value: Any = ""

    def load_component(self) -> Any:
        """Resolve the renderer component, or None when no loader is set."""
        return self.loader() if self.loader is not None else None


class FieldTypeRegistry:
    """Mapping from type tag to FieldTypeDefinition.

    Examples:
        >>> registry = FieldTypeRegistry()
        >>> registry.register(FieldTypeDefinition(name="rating", mapper=lambda f, c: None))
        >>> registry.has("rating")
        True
    """

    def __init__(self, definitions: Iterable[FieldTypeDefinition] = ()):
        self._definitions: Dict[str, FieldTypeDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: FieldTypeDefinition) -> None:
        """Register (or replace) a field type."""
        if definition.name in self._definitions:
            logger.debug("Replacing field type registration for '%s'", definition.name)
        self._definitions[definition.name] = definition

    def get(self, name: str) -> FieldTypeDefinition:
        """Return the definition for a type tag.

        Raises:
            UnknownFieldTypeError: If the type is not registered
        """
        try:
            return self._definitions[name]
        except KeyError:
            raise UnknownFieldTypeError(name) from None

    def find(self, name: str) -> Optional[FieldTypeDefinition]:
        return self._definitions.get(name)

    def has(self, name: str) -> bool:
        return name in self._definitions

    def value_handling(self, name: str) -> ValueHandling:
        """Value handling of a type; unregistered types are treated as INCLUDE."""
        definition = self._definitions.get(name)
        return definition.value_handling if definition else ValueHandling.INCLUDE

    def empty_value(self, name: str) -> Any:
        definition = self._definitions.get(name)
        return definition.empty_value if definition else ""

    @property
    def types(self) -> List[str]:
        return list(self._definitions)

    def copy(self) -> "FieldTypeRegistry":
        return FieldTypeRegistry(self._definitions.values())


class FunctionRegistry:
    """Named functions callable from conditions, derivations and validators.

    Functions receive the EvaluationContext and return a value.

    Examples:
        >>> functions = FunctionRegistry()
        >>> functions.register("isAdult", lambda ctx: (ctx.field_value or 0) >= 18)
        >>> "isAdult" in functions.custom_functions
        True
    """

    def __init__(self, functions: Optional[Dict[str, Callable[..., Any]]] = None):
        self._functions: Dict[str, Callable[..., Any]] = dict(functions or {})

    def register(self, name: str, fn: Callable[..., Any]) -> None:
        self._functions[name] = fn

    def unregister(self, name: str) -> None:
        self._functions.pop(name, None)

    def get(self, name: str) -> Optional[Callable[..., Any]]:
        return self._functions.get(name)

    @property
    def custom_functions(self) -> Dict[str, Callable[..., Any]]:
        """Snapshot of registered functions, as exposed to evaluation contexts."""
        return dict(self._functions)

    def clear(self) -> None:
        self._functions.clear()


__all__ = [
    "FieldTypeDefinition",
    "FieldTypeRegistry",
    "FunctionRegistry",
]
