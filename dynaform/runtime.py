"""FormRuntime: one live form built from one configuration.

FormRuntime wires the engine together. It checks the configuration, creates
the FormTree holding the form value, maps every field to its bindings,
starts the derivation orchestrator and, for paged forms, the page
orchestrator. It also answers the form-level events on its bus:

    submit      mark every field touched, validate, hand a valid value to
                the registered submit handlers (hidden, disabled and
                readonly fields left out)
    form-reset  restore the configured defaults
    form-clear  set every field to the empty value of its type

Usage:
    >>> runtime = FormRuntime.from_dict({"fields": [
    ...     {"key": "email", "type": "input", "required": True, "email": True},
    ...     {"key": "send", "type": "submit"},
    ... ]})
    >>> runtime.valid()
    False
    >>> runtime.set_value("email", "ada@example.com")
    >>> submitted = []
    >>> _ = runtime.on_submit(submitted.append)
    >>> runtime.find_bindings("send").trigger().type
    'submit'
    >>> submitted
    [{'email': 'ada@example.com'}]
"""

import copy
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from dynaform.config import FormConfig
from dynaform.derivations import DerivationOrchestrator
from dynaform.events import EventBus, FormClearEvent, FormResetEvent, SubmitEvent
from dynaform.form import FieldNode, FormTree
from dynaform.mapping import FieldBindings, FieldSignalContext, create_default_registry, map_fields
from dynaform.pages import PageOrchestrator
from dynaform.paths import deep_merge
from dynaform.registry import FieldTypeRegistry, FunctionRegistry
from dynaform.signals import untracked
from dynaform.types import FormMode
from dynaform.validation import ValidationResult, validate_form_config_or_raise
from dynaform.values import build_default_value, build_empty_value, filter_form_value

logger = logging.getLogger(__name__)

SubmitHandler = Callable[[Dict[str, Any]], Any]


class FormRuntime:
    """A configured form with its live state, bindings and orchestrators.

    Attributes:
        config: The parsed FormConfig
        registry: Field type registry used for mapping
        functions: Custom function registry
        bus: The form's event bus
        mode: Paged or non-paged
        tree: FormTree holding the form value and field nodes
        pages: PageOrchestrator for paged forms, else None
        derivations: DerivationOrchestrator keeping derived fields current
        bindings: Bindings of the root fields

    Examples:
        >>> runtime = FormRuntime.from_dict({"fields": [{"key": "name", "type": "input", "value": "Ada"}]})
        >>> runtime.value()
        {'name': 'Ada'}
        >>> runtime.mode
        <FormMode.NON_PAGED: 'non-paged'>
    """

    def __init__(
        self,
        config: Union[FormConfig, Dict[str, Any]],
        registry: Optional[FieldTypeRegistry] = None,
        functions: Optional[FunctionRegistry] = None,
        bus: Optional[EventBus] = None,
        value: Optional[Dict[str, Any]] = None,
    ):
        """Build the form.

        Args:
            config: A FormConfig, or its dict form (validated against the schema)
            registry: Field types; defaults to every built-in type
            functions: Custom functions for conditions, validators and derivations
            bus: Event bus to use; a fresh one by default
            value: Initial value merged over the defaults

        Raises:
            InvalidConfigError: If a dict config does not match the schema
            DynamicFormError: If the configuration is invalid
        """
        if isinstance(config, dict):
            config = FormConfig.from_dict(config)
        self.config = config
        self.registry = registry if registry is not None else create_default_registry()
        self.functions = functions if functions is not None else FunctionRegistry()
        self.bus = bus if bus is not None else EventBus()
        self.mode = validate_form_config_or_raise(config, self.registry).mode

        self.default_value = deep_merge(build_default_value(config.fields, self.registry), config.defaults)
        initial = deep_merge(self.default_value, value) if value else copy.deepcopy(self.default_value)
        self.tree = FormTree(
            config.fields,
            initial,
            registry=self.registry,
            functions=self.functions,
            default_messages=config.default_validation_messages,
            external_data=config.external_data,
        )
        self.pages: Optional[PageOrchestrator] = None
        if self.mode == FormMode.PAGED:
            self.pages = PageOrchestrator(config.fields, self.bus, self.tree, config.initial_page_index)
        self.derivations = DerivationOrchestrator(self.tree, self.functions, self.registry)
        self.context = FieldSignalContext(
            self.tree,
            self.bus,
            self.registry,
            functions=self.functions,
            default_values=self.default_value,
            default_validation_messages=config.default_validation_messages,
            options=config,
            pages=self.pages,
        )
        self.bindings: List[FieldBindings] = map_fields(config.fields, self.context)
        self.tree.reset_state()

        self._submit_handlers: List[SubmitHandler] = []
        self._subscriptions = [
            self.bus.on(SubmitEvent, lambda event: self.submit()),
            self.bus.on(FormResetEvent, lambda event: self.reset()),
            self.bus.on(FormClearEvent, lambda event: self.clear()),
        ]
        logger.debug("Form built in %s mode with %d root fields", self.mode.value, len(config.fields))

    @classmethod
    def from_dict(cls, data: Dict[str, Any], **kwargs: Any) -> "FormRuntime":
        """Build a runtime from a raw configuration dict."""
        return cls(FormConfig.from_dict(data), **kwargs)

    # -- values ---------------------------------------------------------------

    def value(self) -> Dict[str, Any]:
        """Current form value (tracked when read inside a Computed or Effect)."""
        return self.tree.value()

    def set_value(self, path: str, value: Any) -> None:
        """Write value at a dot-notation path."""
        self.tree.write(path, value)

    def submission_value(self) -> Dict[str, Any]:
        """Copy of the value without hidden, disabled or readonly fields.

        Which states exclude a field follows the form options and the
        field's own excludeValueIf* overrides.
        """
        return filter_form_value(self.tree.value.peek(), self.config.fields, self.tree, self.registry, self.config)

    def patch_value(self, partial: Dict[str, Any]) -> None:
        """Deep-merge partial into the current value."""
        self.tree.value.set(deep_merge(self.tree.value.peek(), partial))

    def field(self, path: str) -> Optional[FieldNode]:
        """Live node of the field at path, or None."""
        return self.tree.resolve(path)

    def valid(self) -> bool:
        return self.tree.valid()

    def validate(self) -> ValidationResult:
        return untracked(self.tree.validation)

    # -- bindings -------------------------------------------------------------

    def iter_bindings(self) -> Iterator[FieldBindings]:
        """Every binding, depth first, including those of array items."""
        pending = list(reversed(self.bindings))
        while pending:
            bindings = pending.pop()
            yield bindings
            nested: List[FieldBindings] = list(bindings.children)
            if bindings.array is not None:
                for item in bindings.array.items():
                    nested.extend(item.bindings)
            pending.extend(reversed(nested))

    def find_bindings(self, key: str) -> Optional[FieldBindings]:
        """First binding with this key, depth first."""
        for bindings in self.iter_bindings():
            if bindings.key == key:
                return bindings
        return None

    # -- form actions ---------------------------------------------------------

    def on_submit(self, handler: SubmitHandler) -> Callable[[], None]:
        """Register a submit handler; returns a callable removing it."""
        self._submit_handlers.append(handler)
        return lambda: self._submit_handlers.remove(handler) if handler in self._submit_handlers else None

    def submit(self) -> ValidationResult:
        """Mark every field touched, validate, and pass a valid value to the handlers.

        Handlers receive submission_value(), so excluded fields are left out.

        Returns:
            The validation result; handlers only run when it is valid
        """
        self.tree.mark_all_as_touched()
        result = self.validate()
        if not result.is_valid:
            logger.debug("Submit blocked by %d validation errors", len(result.errors))
            return result
        value = self.submission_value()
        for handler in list(self._submit_handlers):
            try:
                handler(value)
            except Exception:
                logger.exception("Submit handler %r raised", handler)
        return result

    def reset(self) -> None:
        """Restore the configured defaults and forget interaction state."""
        self.tree.value.set(copy.deepcopy(self.default_value))
        self.tree.reset_state()

    def clear(self) -> None:
        """Set every field to the empty value of its type."""
        self.tree.value.set(build_empty_value(self.config.fields, self.registry))

    # -- serialization --------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot of the form: value, validity, page state and bindings."""
        result: Dict[str, Any] = {
            "mode": self.mode.value,
            "value": copy.deepcopy(self.tree.value.peek()),
            "valid": self.tree.valid.peek(),
            "fields": [bindings.to_dict() for bindings in self.bindings],
        }
        if self.pages is not None:
            result["navigation"] = dict(self.pages.state.peek())
        return result

    def destroy(self) -> None:
        """Stop every subscription and effect owned by the form."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        for bindings in list(self.iter_bindings()):
            if bindings.array is not None:
                bindings.array.destroy()
        self.derivations.destroy()
        if self.pages is not None:
            self.pages.destroy()
        self._submit_handlers.clear()


__all__ = [
    "FormRuntime",
    "SubmitHandler",
]
