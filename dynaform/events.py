"""Event system for the dynaform runtime.

This module provides the form event data structures and the EventBus that
carries them. Events are discrete actions (button clicks, navigation, array
mutations) that are decoupled from the components reacting to them: a button
binding dispatches an event class, the page orchestrator or an array
controller subscribed to that event's type handles it.

Every event is a small frozen dataclass with a class-level ``type`` tag and
only the payload its consumers need. Each EventBus instance is an isolated
channel; a form owns one and hands it to every subtree it builds.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Deque, Dict, Iterable, Iterator, List, Optional, Type, TypeVar, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormEvent:
    """Base class for all events carried by the EventBus.

    Subclasses set ``type`` as a class variable; it is the key subscribers
    filter on.
    """
    type: ClassVar[str] = "form-event"

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        result: Dict[str, Any] = {"type": self.type}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if value is not None:
                result[_camel(name)] = value.to_dict() if hasattr(value, "to_dict") else value
        return result


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


E = TypeVar("E", bound=FormEvent)


@dataclass(frozen=True)
class NextPageEvent(FormEvent):
    """Request navigation to the next page."""
    type: ClassVar[str] = "next-page"


@dataclass(frozen=True)
class PreviousPageEvent(FormEvent):
    """Request navigation to the previous page."""
    type: ClassVar[str] = "previous-page"


@dataclass(frozen=True)
class PageChangeEvent(FormEvent):
    """Emitted after a successful page transition.

    Attributes:
        current_page_index: Page index after the transition
        total_pages: Number of pages in the form
        previous_page_index: Page index before the transition
    """
    type: ClassVar[str] = "page-change"
    current_page_index: int
    total_pages: int
    previous_page_index: Optional[int] = None


@dataclass(frozen=True)
class PageNavigationStateChangeEvent(FormEvent):
    """Carries the full derived orchestrator state after every change."""
    type: ClassVar[str] = "page-navigation-state-change"
    state: Any


@dataclass(frozen=True)
class SubmitEvent(FormEvent):
    """Request form submission."""
    type: ClassVar[str] = "submit"


@dataclass(frozen=True)
class FormResetEvent(FormEvent):
    """Restore every field to its configured default."""
    type: ClassVar[str] = "form-reset"


@dataclass(frozen=True)
class FormClearEvent(FormEvent):
    """Set every field to the empty value of its type."""
    type: ClassVar[str] = "form-clear"


@dataclass(frozen=True)
class AddArrayItemEvent(FormEvent):
    """Add an item to an array, at index or at the end.

    Attributes:
        array_key: Key of the target array field
        index: Optional insertion index (default: append)
        template: Optional field definition overriding the array's template
    """
    type: ClassVar[str] = "add-array-item"
    array_key: str
    index: Optional[int] = None
    template: Any = None


@dataclass(frozen=True)
class AppendArrayItemEvent(FormEvent):
    """Append an item at the end of an array."""
    type: ClassVar[str] = "append-array-item"
    array_key: str
    template: Any = None


@dataclass(frozen=True)
class PrependArrayItemEvent(FormEvent):
    """Insert an item at index 0."""
    type: ClassVar[str] = "prepend-array-item"
    array_key: str
    template: Any = None


@dataclass(frozen=True)
class InsertArrayItemEvent(FormEvent):
    """Insert an item at a specific index."""
    type: ClassVar[str] = "insert-array-item"
    array_key: str
    index: int
    template: Any = None


@dataclass(frozen=True)
class RemoveArrayItemEvent(FormEvent):
    """Remove the item at index, or the last item when index is omitted."""
    type: ClassVar[str] = "remove-array-item"
    array_key: str
    index: Optional[int] = None


@dataclass(frozen=True)
class RemoveAtIndexEvent(FormEvent):
    """Remove the item at a specific index."""
    type: ClassVar[str] = "remove-at-index"
    array_key: str
    index: int


@dataclass(frozen=True)
class PopArrayItemEvent(FormEvent):
    """Remove the last item."""
    type: ClassVar[str] = "pop-array-item"
    array_key: str


@dataclass(frozen=True)
class ShiftArrayItemEvent(FormEvent):
    """Remove the first item."""
    type: ClassVar[str] = "shift-array-item"
    array_key: str


@dataclass(frozen=True)
class ComponentInitializedEvent(FormEvent):
    """Emitted once a container has built its children."""
    type: ClassVar[str] = "component-initialized"
    component_type: str
    component_id: str


ARRAY_EVENT_TYPES = (
    AddArrayItemEvent.type,
    AppendArrayItemEvent.type,
    PrependArrayItemEvent.type,
    InsertArrayItemEvent.type,
    RemoveArrayItemEvent.type,
    RemoveAtIndexEvent.type,
    PopArrayItemEvent.type,
    ShiftArrayItemEvent.type,
)

EVENT_CLASSES: Dict[str, Type[FormEvent]] = {
    cls.type: cls
    for cls in (
        NextPageEvent,
        PreviousPageEvent,
        PageChangeEvent,
        PageNavigationStateChangeEvent,
        SubmitEvent,
        FormResetEvent,
        FormClearEvent,
        AddArrayItemEvent,
        AppendArrayItemEvent,
        PrependArrayItemEvent,
        InsertArrayItemEvent,
        RemoveArrayItemEvent,
        RemoveAtIndexEvent,
        PopArrayItemEvent,
        ShiftArrayItemEvent,
        ComponentInitializedEvent,
    )
}


EventListener = Callable[[FormEvent], None]
"""Type alias for event listener callbacks.

Listeners are called synchronously, in subscription order, on the thread
that dispatched the event.
"""

EventTypes = Union[str, Type[FormEvent], Iterable[Union[str, Type[FormEvent]]], None]


def _normalize_types(event_types: EventTypes) -> Optional[frozenset]:
    if event_types is None:
        return None
    if isinstance(event_types, (str, type)):
        event_types = [event_types]
    names = set()
    for item in event_types:
        names.add(item if isinstance(item, str) else item.type)
    return frozenset(names)


@dataclass(eq=False)
class Subscription:
    """Handle returned by EventBus.on(); call unsubscribe() to stop delivery.

    Attributes:
        types: Event type names this subscription receives (None for all)
        listener: The callback
        active: False once unsubscribed
    """
    types: Optional[frozenset]
    listener: EventListener
    _bus: Optional["EventBus"] = field(default=None, repr=False)
    active: bool = True

    def matches(self, event: FormEvent) -> bool:
        return self.types is None or event.type in self.types

    def unsubscribe(self) -> None:
        if self.active and self._bus is not None:
            self._bus._remove(self)
        self.active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()


class EventStream:
    """Buffered, type-filtered view of a bus returned by EventBus.subscribe().

    Matching events are queued as they are dispatched; iterating the stream
    yields the queued events in dispatch order and consumes them.

    Examples:
        >>> bus = EventBus()
        >>> stream = bus.subscribe(["next-page", "previous-page"])
        >>> _ = bus.dispatch(NextPageEvent)
        >>> _ = bus.dispatch(SubmitEvent)
        >>> [event.type for event in stream]
        ['next-page']
        >>> stream.close()
    """

    def __init__(self, bus: "EventBus", event_types: EventTypes):
        self._pending: Deque[FormEvent] = deque()
        self.subscription = bus.on(event_types, self._pending.append)

    @property
    def closed(self) -> bool:
        return not self.subscription.active

    def __iter__(self) -> Iterator[FormEvent]:
        while self._pending:
            yield self._pending.popleft()

    def __len__(self) -> int:
        return len(self._pending)

    def drain(self) -> List[FormEvent]:
        """Return and consume every queued event."""
        return list(self)

    def close(self) -> None:
        """Stop receiving events; already queued events stay readable."""
        self.subscription.unsubscribe()

    def __enter__(self) -> "EventStream":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class EventBus:
    """In-process broadcast channel for form events.

    Features:
    - Type-filtered subscriptions (one type or a list of types)
    - Wildcard subscriptions (listen to all events)
    - Buffered event streams via subscribe()
    - Synchronous dispatch (listeners called in subscription order)
    - Error isolation (listener exceptions are logged, not propagated)
    - Full isolation between bus instances

    Examples:
        >>> bus = EventBus()
        >>> seen = []
        >>> sub = bus.on("page-change", lambda e: seen.append(e.current_page_index))
        >>> _ = bus.dispatch(PageChangeEvent, 1, 3, 0)
        >>> seen
        [1]
        >>> sub.unsubscribe()
        >>> _ = bus.dispatch(PageChangeEvent, 2, 3, 1)
        >>> seen
        [1]
    """

    def __init__(self, name: Optional[str] = None):
        """Initialize the bus with an empty subscriber list."""
        self.name = name
        self._subscriptions: List[Subscription] = []

    def on(self, event_types: EventTypes, listener: EventListener) -> Subscription:
        """Subscribe to one or more event types.

        Args:
            event_types: Type name, event class, or an iterable of either
            listener: Callback invoked with each matching event

        Returns:
            Subscription handle
        """
        subscription = Subscription(types=_normalize_types(event_types), listener=listener, _bus=self)
        self._subscriptions.append(subscription)
        return subscription

    def subscribe(self, event_types: EventTypes) -> EventStream:
        """Open a buffered stream of the events matching event_types.

        Use on() to be called back instead; close the stream to unsubscribe.
        """
        return EventStream(self, event_types)

    def on_any(self, listener: EventListener) -> Subscription:
        """Subscribe to every event (wildcard subscription)."""
        return self.on(None, listener)

    def off(self, subscription: Subscription) -> None:
        """Cancel a subscription; cancelling twice is a no-op."""
        subscription.unsubscribe()

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass  # Already removed

    def dispatch(self, event_class: Type[E], *args: Any, **kwargs: Any) -> E:
        """Construct one event instance and broadcast it.

        A constructor that raises propagates to the caller before anything is
        delivered, leaving the bus untouched.

        Args:
            event_class: FormEvent subclass to instantiate
            *args, **kwargs: Constructor arguments

        Returns:
            The dispatched event instance
        """
        event = event_class(*args, **kwargs)
        self.emit(event)
        return event

    def emit(self, event: FormEvent) -> None:
        """Deliver an already constructed event to all matching subscribers.

        The subscriber list is snapshotted, so listeners added during delivery
        only see later events, and listeners removed during delivery do not
        receive this one if they had not yet been reached.
        """
        logger.debug("Dispatching %s on bus %s", event.type, self.name or id(self))
        for subscription in list(self._subscriptions):
            if not subscription.active or not subscription.matches(event):
                continue
            try:
                subscription.listener(event)
            except Exception:
                logger.exception("Listener for %r raised", event.type)

    def clear(self) -> None:
        """Remove all subscriptions."""
        for subscription in list(self._subscriptions):
            subscription.active = False
        self._subscriptions.clear()

    def listener_count(self, event_type: Optional[str] = None) -> int:
        """Get count of registered listeners.

        Args:
            event_type: If provided, count listeners that would receive this
                type (including wildcard listeners). If None, count all.
        """
        if event_type is None:
            return len(self._subscriptions)
        return sum(
            1 for s in self._subscriptions if s.types is None or event_type in s.types
        )


__all__ = [
    "FormEvent",
    "NextPageEvent",
    "PreviousPageEvent",
    "PageChangeEvent",
    "PageNavigationStateChangeEvent",
    "SubmitEvent",
    "FormResetEvent",
    "FormClearEvent",
    "AddArrayItemEvent",
    "AppendArrayItemEvent",
    "PrependArrayItemEvent",
    "InsertArrayItemEvent",
    "RemoveArrayItemEvent",
    "RemoveAtIndexEvent",
    "PopArrayItemEvent",
    "ShiftArrayItemEvent",
    "ComponentInitializedEvent",
    "ARRAY_EVENT_TYPES",
    "EVENT_CLASSES",
    "EventListener",
    "EventBus",
    "EventStream",
    "Subscription",
]
