"""Dependency-tracked reactive cells for the dynaform runtime.

This module is the reactive primitive every other part of the engine is built
on. It provides:
- Signal: a writable cell holding one value
- Computed: a memoized, read-only cell derived from other cells
- DerivedSignal: a Computed with an explicit write path (two-way bindings)
- Effect: a side-effecting reaction that re-runs when its inputs change
- batch(): groups several writes into one externally triggered change
- untracked(): reads cells without recording a dependency

Propagation is push/pull. A write pushes a dirty mark through every dependant
and queues affected effects; computed cells only recompute when read and only
if one of their sources actually changed version. Queued effects run after the
outermost write or batch finishes and keep running until no effect is dirty,
so every externally triggered change settles to a fixed point before the next
one starts.

The graph is single-threaded by contract; all state lives in this module.

Usage:
    >>> name = Signal("Ada")
    >>> greeting = Computed(lambda: f"Hello {name()}")
    >>> greeting()
    'Hello Ada'
    >>> seen = []
    >>> effect = Effect(lambda: seen.append(greeting()))
    >>> name.set("Grace")
    >>> seen
    ['Hello Ada', 'Hello Grace']
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generic, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Runs of a single effect within one flush before the graph is declared cyclic
MAX_EFFECT_RUNS_PER_FLUSH = 100


class ReactiveCycleError(RuntimeError):
    """Raised when reactive cells do not settle.

    Either a computed cell read itself while computing, or an effect kept
    invalidating itself for more than MAX_EFFECT_RUNS_PER_FLUSH runs within
    one flush.
    """


_UNSET: Any = object()

_active_consumer: Optional["_Consumer"] = None
_batch_depth = 0
_flushing = False
_pending_effects: Dict["Effect", None] = {}


def default_equal(a: Any, b: Any) -> bool:
    """Structural equality used to suppress redundant change notifications."""
    if a is b:
        return True
    if type(a) is not type(b):
        return False
    try:
        return bool(a == b)
    except Exception:
        return False


class _Producer:
    """Something a consumer can depend on."""

    def __init__(self) -> None:
        self._version = 0
        self._consumers: Dict["_Consumer", None] = {}

    def _track(self) -> None:
        if _active_consumer is not None:
            _active_consumer._record(self)

    def _refresh(self) -> None:
        """Bring the producer's value up to date (no-op for plain signals)."""

    def _notify(self) -> None:
        for consumer in list(self._consumers):
            consumer._mark_dirty()


class _Consumer:
    """Something that reads producers and reacts to their changes."""

    def __init__(self) -> None:
        self._sources: Dict[_Producer, int] = {}

    def _record(self, producer: _Producer) -> None:
        if producer not in self._sources:
            self._sources[producer] = producer._version
            producer._consumers[self] = None

    def _clear_sources(self) -> None:
        for producer in self._sources:
            producer._consumers.pop(self, None)
        self._sources = {}

    def _sources_changed(self) -> bool:
        for producer, seen_version in list(self._sources.items()):
            producer._refresh()
            if producer._version != seen_version:
                return True
        return False

    def _mark_dirty(self) -> None:
        raise NotImplementedError


class Signal(_Producer, Generic[T]):
    """A writable reactive cell.

    Reading the signal (calling it) inside a Computed or Effect records a
    dependency. Writing a value equal to the current one is ignored.

    Attributes:
        name: Optional debug name used in log output

    Examples:
        >>> count = Signal(1)
        >>> count()
        1
        >>> count.update(lambda c: c + 1)
        >>> count()
        2
    """

    def __init__(
        self,
        value: T,
        *,
        equal: Callable[[Any, Any], bool] = default_equal,
        name: Optional[str] = None,
    ) -> None:
        super().__init__()
        self._value = value
        self._equal = equal
        self.name = name

    def __call__(self) -> T:
        self._track()
        return self._value

    def get(self) -> T:
        return self()

    def peek(self) -> T:
        """Return the current value without recording a dependency."""
        return self._value

    def set(self, value: T) -> None:
        if self._equal(self._value, value):
            return
        self._value = value
        self._version += 1
        self._notify()
        _flush_if_idle()

    def update(self, fn: Callable[[T], T]) -> None:
        self.set(fn(self._value))

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"<Signal{label} value={self._value!r}>"


class Computed(_Producer, _Consumer, Generic[T]):
    """A memoized cell derived from other cells.

    The function is re-run lazily, on the first read after one of the cells
    it read last time changed. If the new result equals the previous one the
    version is not bumped, so dependants downstream do not re-run.

    Examples:
        >>> a = Signal(2)
        >>> doubled = Computed(lambda: a() * 2)
        >>> doubled()
        4
        >>> a.set(5)
        >>> doubled()
        10
    """

    def __init__(
        self,
        fn: Callable[[], T],
        *,
        equal: Callable[[Any, Any], bool] = default_equal,
        name: Optional[str] = None,
    ) -> None:
        _Producer.__init__(self)
        _Consumer.__init__(self)
        self._fn = fn
        self._equal = equal
        self._value: Any = _UNSET
        self._dirty = True
        self._computing = False
        self.name = name

    def __call__(self) -> T:
        self._refresh()
        self._track()
        return self._value

    def get(self) -> T:
        return self()

    def peek(self) -> T:
        self._refresh()
        return self._value

    def _mark_dirty(self) -> None:
        if self._dirty:
            return
        self._dirty = True
        self._notify()

    def _refresh(self) -> None:
        if not self._dirty:
            return
        if self._value is not _UNSET and not self._sources_changed():
            self._dirty = False
            return
        self._recompute()

    def _recompute(self) -> None:
        global _active_consumer
        if self._computing:
            raise ReactiveCycleError(
                f"Computed {self.name or self._fn!r} depends on itself"
            )
        self._computing = True
        self._clear_sources()
        previous = _active_consumer
        _active_consumer = self
        try:
            value = self._fn()
        finally:
            _active_consumer = previous
            self._computing = False
        self._dirty = False
        if self._value is _UNSET or not self._equal(self._value, value):
            self._value = value
            self._version += 1

    def dispose(self) -> None:
        """Detach from all sources; the cell recomputes if read again."""
        self._clear_sources()
        self._dirty = True

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        state = "dirty" if self._dirty else repr(self._value)
        return f"<Computed{label} {state}>"


class DerivedSignal(Computed[T]):
    """A computed cell with an explicit write path.

    Reads derive from the getter; writes are forwarded to the setter, which is
    expected to write into the cell(s) the getter reads. This is how per-field
    value cells funnel writes back into the single root form cell.

    Examples:
        >>> root = Signal({"name": "Ada"})
        >>> name = DerivedSignal(
        ...     lambda: root()["name"],
        ...     lambda v: root.set({**root.peek(), "name": v}),
        ... )
        >>> name.set("Grace")
        >>> root()
        {'name': 'Grace'}
    """

    def __init__(
        self,
        getter: Callable[[], T],
        setter: Callable[[T], None],
        *,
        equal: Callable[[Any, Any], bool] = default_equal,
        name: Optional[str] = None,
    ) -> None:
        super().__init__(getter, equal=equal, name=name)
        self._setter = setter

    def set(self, value: T) -> None:
        self._setter(value)

    def update(self, fn: Callable[[T], T]) -> None:
        self.set(fn(self.peek()))


class Effect(_Consumer):
    """A reaction that re-runs whenever the cells it read change.

    The function runs once immediately. If it returns a callable, that callable
    is used as a cleanup and invoked before the next run and on destroy.
    Exceptions raised by the function are logged, never propagated to the
    writer that triggered the run.

    Examples:
        >>> source = Signal(1)
        >>> log = []
        >>> effect = Effect(lambda: log.append(source()))
        >>> source.set(2)
        >>> effect.destroy()
        >>> source.set(3)
        >>> log
        [1, 2]
    """

    def __init__(self, fn: Callable[[], Any], *, name: Optional[str] = None) -> None:
        super().__init__()
        self._fn = fn
        self._cleanup: Optional[Callable[[], Any]] = None
        self._dirty = False
        self._destroyed = False
        self.name = name
        with batch():
            self._run()

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def _mark_dirty(self) -> None:
        if self._destroyed or self._dirty:
            return
        self._dirty = True
        _pending_effects[self] = None

    def _run(self) -> None:
        global _active_consumer
        self._dirty = False
        self._run_cleanup()
        self._clear_sources()
        previous = _active_consumer
        _active_consumer = self
        try:
            result = self._fn()
        except ReactiveCycleError:
            raise
        except Exception:
            logger.exception("Effect %s raised", self.name or self._fn)
            result = None
        finally:
            _active_consumer = previous
        if callable(result):
            self._cleanup = result

    def _run_cleanup(self) -> None:
        cleanup, self._cleanup = self._cleanup, None
        if cleanup is not None:
            try:
                cleanup()
            except Exception:
                logger.exception("Cleanup of effect %s raised", self.name or self._fn)

    def destroy(self) -> None:
        """Stop reacting and release all dependencies."""
        if self._destroyed:
            return
        self._destroyed = True
        _pending_effects.pop(self, None)
        self._clear_sources()
        self._run_cleanup()


def _flush_if_idle() -> None:
    if _batch_depth == 0 and not _flushing:
        _flush()


def _flush() -> None:
    global _flushing
    _flushing = True
    runs: Dict[Effect, int] = {}
    try:
        while _pending_effects:
            effect = next(iter(_pending_effects))
            del _pending_effects[effect]
            if effect._destroyed:
                continue
            runs[effect] = runs.get(effect, 0) + 1
            if runs[effect] > MAX_EFFECT_RUNS_PER_FLUSH:
                _pending_effects.clear()
                raise ReactiveCycleError(
                    f"Effect {effect.name or effect._fn!r} did not settle after "
                    f"{MAX_EFFECT_RUNS_PER_FLUSH} runs"
                )
            try:
                changed = not effect._sources or effect._sources_changed()
            except ReactiveCycleError:
                raise
            except Exception:
                logger.exception("Refreshing sources of effect %s raised", effect.name or effect._fn)
                changed = True
            if changed:
                effect._run()
            else:
                effect._dirty = False
    finally:
        _flushing = False


@contextmanager
def batch() -> Iterator[None]:
    """Group writes so dependent effects run once, after the block.

    Examples:
        >>> a, b = Signal(1), Signal(2)
        >>> totals = []
        >>> effect = Effect(lambda: totals.append(a() + b()))
        >>> with batch():
        ...     a.set(10)
        ...     b.set(20)
        >>> totals
        [3, 30]
    """
    global _batch_depth
    _batch_depth += 1
    try:
        yield
    finally:
        _batch_depth -= 1
        _flush_if_idle()


def untracked(fn: Callable[[], T]) -> T:
    """Call fn without recording any dependency for the active consumer."""
    global _active_consumer
    previous = _active_consumer
    _active_consumer = None
    try:
        return fn()
    finally:
        _active_consumer = previous


def is_signal(value: Any) -> bool:
    """Return True for any readable reactive cell."""
    return isinstance(value, (Signal, Computed))


def unwrap(value: Any) -> Any:
    """Read a binding that may be either a static value or a reactive cell."""
    if is_signal(value):
        return value()
    return value


__all__ = [
    "Signal",
    "Computed",
    "DerivedSignal",
    "Effect",
    "ReactiveCycleError",
    "batch",
    "untracked",
    "is_signal",
    "unwrap",
    "default_equal",
]
