"""dynaform: declarative form runtime engine.

dynaform turns a tree-shaped form configuration into a live form:
- Two-way value bindings for every field, grouped into rows, groups,
  pages and repeating arrays
- Conditional hidden/required/readonly/disabled state and derived values,
  re-evaluated whenever the form's own data changes
- Validation with structured errors and configurable messages
- A page navigation state machine for multi-step forms
- A typed event bus connecting buttons to the parts of the form they drive

Basic usage:
    >>> from dynaform.runtime import FormRuntime
    >>> runtime = FormRuntime.from_dict({"fields": [
    ...     {"key": "accountType", "type": "select", "value": "personal"},
    ...     {"key": "companyName", "type": "input", "logic": [{
    ...         "type": "hidden",
    ...         "condition": {"type": "fieldValue", "fieldPath": "accountType",
    ...                       "operator": "notEquals", "value": "business"}}]},
    ... ]})
    >>> print(runtime.field("companyName").hidden())
    True
"""

__version__ = "0.1.0"
__author__ = "dynaform contributors"

# Version info
VERSION = (0, 1, 0)

# Core exports
from dynaform.config import FormConfig
from dynaform.errors import DynamicFormError, FieldError, InvalidConfigError, NavigationResult
from dynaform.events import EventBus
from dynaform.registry import FieldTypeRegistry, FunctionRegistry
from dynaform.runtime import FormRuntime

# Package metadata
__all__ = [
    "__version__",
    "VERSION",
    "FormRuntime",
    "FormConfig",
    "EventBus",
    "FieldTypeRegistry",
    "FunctionRegistry",
    "DynamicFormError",
    "InvalidConfigError",
    "FieldError",
    "NavigationResult",
]
