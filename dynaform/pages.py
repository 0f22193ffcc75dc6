"""Page navigation state machine for multi-step forms.

PageOrchestrator tracks which page of a paged form is current. The current
page index is the single piece of settable state; the rest of the
navigation state is derived from it:

    currentPageIndex    0 <= index < totalPages (0 when there are no pages)
    totalPages          number of page fields
    isFirstPage         index == 0
    isLastPage          index == totalPages - 1
    navigationDisabled  set by the host

Navigation never raises. Every request returns a NavigationResult; only a
transition that moves the index dispatches a PageChangeEvent. Every change of
the derived state is published as a PageNavigationStateChangeEvent.

Pages whose ``hidden`` logic holds are skipped by next/previous navigation.
Direct navigation with navigate_to_page() may land on them.

Usage:
    >>> from dynaform.config import FormConfig
    >>> from dynaform.events import EventBus
    >>> config = FormConfig.from_dict({"fields": [
    ...     {"key": "one", "type": "page", "fields": []},
    ...     {"key": "two", "type": "page", "fields": []},
    ... ]})
    >>> pages = PageOrchestrator(config.fields, EventBus())
    >>> pages.navigate_to_next_page().new_page_index
    1
    >>> pages.navigate_to_next_page().error
    'Already on the last page'
"""

import logging
from typing import Any, Dict, FrozenSet, Optional, Sequence, Tuple

from dynaform.conditions import EvaluationContext, evaluate_logic
from dynaform.config import FieldDefinition
from dynaform.errors import NavigationResult
from dynaform.events import (
    EventBus,
    NextPageEvent,
    PageChangeEvent,
    PageNavigationStateChangeEvent,
    PreviousPageEvent,
)
from dynaform.signals import Computed, Effect, Signal, batch, untracked
from dynaform.types import LogicType

logger = logging.getLogger(__name__)

# Pages this far from the current one mount immediately; the rest wait for idle
ADJACENT_PAGES = 1


def clamp_page_index(index: int, total_pages: int) -> int:
    """Clamp index into [0, total_pages - 1] (0 when there are no pages).

    Examples:
        >>> clamp_page_index(2, 2)
        1
        >>> clamp_page_index(-3, 4)
        0
        >>> clamp_page_index(5, 0)
        0
    """
    if total_pages <= 0:
        return 0
    return max(0, min(int(index), total_pages - 1))


class PageOrchestrator:
    """State machine over the page index of a paged form.

    Attributes:
        bus: Event bus carrying navigation commands and notifications
        tree: Optional FormTree; drives hidden pages and page validity
        page_fields: Signal holding the page field definitions
        current_page_index: Signal holding the current page index
        total_pages: Computed page count
        navigation_disabled: Signal set by the host
        state: Computed navigation state dict
        current_page_valid: Computed validity of the current page's fields
        mounted_pages: Signal holding the indices of mounted pages
    """

    def __init__(
        self,
        page_fields: Sequence[FieldDefinition],
        bus: EventBus,
        tree: Any = None,
        initial_page_index: int = 0,
    ) -> None:
        self.bus = bus
        self.tree = tree
        self.page_fields: Signal[Tuple[FieldDefinition, ...]] = Signal(tuple(page_fields), name="pages")
        self.total_pages = Computed(lambda: len(self.page_fields()), name="pages:total")
        self.current_page_index = Signal(
            clamp_page_index(initial_page_index, len(self.page_fields.peek())), name="pages:current"
        )
        self.navigation_disabled = Signal(False, name="pages:navigationDisabled")
        self.state: Computed[Dict[str, Any]] = Computed(self._compute_state, name="pages:state")
        self.page_hidden = Computed(
            lambda: tuple(self._is_hidden(page) for page in self.page_fields()), name="pages:hidden"
        )
        self.current_page_valid = Computed(self._compute_current_page_valid, name="pages:valid")
        self.mounted_pages: Signal[FrozenSet[int]] = Signal(frozenset(), name="pages:mounted")

        self._subscriptions = [
            bus.on(NextPageEvent.type, lambda event: self.navigate_to_next_page()),
            bus.on(PreviousPageEvent.type, lambda event: self.navigate_to_previous_page()),
        ]
        self._effects = [
            Effect(self._publish_state, name="pages:publish"),
            Effect(self._mount_adjacent, name="pages:mount"),
        ]
        logger.debug(
            "Page orchestrator started on page %d of %d",
            self.current_page_index.peek(),
            self.total_pages.peek(),
        )

    # -- derived state --------------------------------------------------------

    def _compute_state(self) -> Dict[str, Any]:
        index = self.current_page_index()
        total = self.total_pages()
        return {
            "currentPageIndex": index,
            "totalPages": total,
            "isFirstPage": index == 0,
            "isLastPage": index == total - 1 or total == 0,
            "navigationDisabled": self.navigation_disabled(),
        }

    def _evaluation_context(self) -> EvaluationContext:
        if self.tree is None:
            return EvaluationContext()
        return self.tree.context()

    def _is_hidden(self, page: FieldDefinition) -> bool:
        return evaluate_logic(page, LogicType.HIDDEN, self._evaluation_context())

    def _compute_current_page_valid(self) -> bool:
        pages = self.page_fields()
        index = self.current_page_index()
        if self.tree is None or index >= len(pages):
            return True
        return self.tree.validate_fields(pages[index].children).is_valid

    def index_of(self, page: FieldDefinition) -> Optional[int]:
        """Position of a page definition (by identity), or None."""
        for index, candidate in enumerate(self.page_fields.peek()):
            if candidate is page:
                return index
        return None

    # -- navigation -----------------------------------------------------------

    def navigate_to_next_page(self) -> NavigationResult:
        """Move to the next visible page."""
        state = untracked(self.state)
        current = state["currentPageIndex"]
        if state["isLastPage"]:
            return NavigationResult(False, current, "Already on the last page")
        if state["navigationDisabled"]:
            return NavigationResult(False, current, "Navigation is currently disabled")
        hidden = untracked(self.page_hidden)
        for index in range(current + 1, state["totalPages"]):
            if not hidden[index]:
                return self.navigate_to_page(index)
        return NavigationResult(False, current, "No next visible page available")

    def navigate_to_previous_page(self) -> NavigationResult:
        """Move to the previous visible page."""
        state = untracked(self.state)
        current = state["currentPageIndex"]
        if state["isFirstPage"]:
            return NavigationResult(False, current, "Already on the first page")
        if state["navigationDisabled"]:
            return NavigationResult(False, current, "Navigation is currently disabled")
        hidden = untracked(self.page_hidden)
        for index in range(current - 1, -1, -1):
            if not hidden[index]:
                return self.navigate_to_page(index)
        return NavigationResult(False, current, "No previous visible page available")

    def navigate_to_page(self, page_index: int) -> NavigationResult:
        """Move to page_index, dispatching a PageChangeEvent when it moves.

        Args:
            page_index: Target page, 0-based

        Returns:
            NavigationResult; success is False when page_index is out of range
        """
        current = self.current_page_index.peek()
        total = self.total_pages.peek()
        if not 0 <= page_index < total:
            return NavigationResult(
                False, current, f"Invalid page index: {page_index}. Valid range is 0 to {total - 1}"
            )
        if page_index == current:
            return NavigationResult(True, page_index)
        with batch():
            self.current_page_index.set(page_index)
            self.bus.dispatch(PageChangeEvent, page_index, total, current)
        logger.debug("Navigated from page %d to page %d", current, page_index)
        return NavigationResult(True, page_index)

    def set_navigation_disabled(self, disabled: bool) -> None:
        self.navigation_disabled.set(bool(disabled))

    def set_page_fields(self, page_fields: Sequence[FieldDefinition]) -> None:
        """Replace the pages, clamping the current index without a PageChangeEvent."""
        pages = tuple(page_fields)
        with batch():
            self.page_fields.set(pages)
            self.current_page_index.set(clamp_page_index(self.current_page_index.peek(), len(pages)))
            self.mounted_pages.set(frozenset(i for i in self.mounted_pages.peek() if i < len(pages)))

    # -- mounting -------------------------------------------------------------

    def _publish_state(self) -> None:
        state = self.state()
        untracked(lambda: self.bus.dispatch(PageNavigationStateChangeEvent, dict(state)))

    def _mount_adjacent(self) -> None:
        index = self.current_page_index()
        total = self.total_pages()
        nearby = {i for i in range(index - ADJACENT_PAGES, index + ADJACENT_PAGES + 1) if 0 <= i < total}
        mounted = untracked(self.mounted_pages)
        if not nearby <= mounted:
            self.mounted_pages.set(mounted | nearby)

    def mount_deferred_pages(self) -> None:
        """Mount every remaining page; call when the host is idle."""
        self.mounted_pages.set(frozenset(range(self.total_pages.peek())))

    def is_mounted(self, page_index: int) -> bool:
        return page_index in self.mounted_pages()

    def destroy(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        for effect in self._effects:
            effect.destroy()
        self._subscriptions = []
        self._effects = []


__all__ = [
    "ADJACENT_PAGES",
    "PageOrchestrator",
    "clamp_page_index",
]
