"""
Edge-triggered callback queue.

A CallbackQueue holds callables until it is triggered, invokes them in FIFO
order, and then keeps invoking anything pushed to it until it is stopped.
Edge listeners are delivered through two lazily created child queues that
refire and requeue, so each listener runs once per transition.
"""

import logging
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from ..exceptions import Diagnostic, DiagnosticKind
from .options import QueueOptions, flatten, normalize_stack


logger = logging.getLogger(__name__)

MAX_DIAGNOSTICS = 100


class QueueState(str, Enum):
    """Queue state."""
    WAITING = "waiting"
    TRIGGERED = "triggered"


class CallbackQueue:
    """
    FIFO callback queue with waiting and triggered states.

    While waiting, push only appends. While triggered, push appends and
    invokes the new items before returning. Every invoked item is called
    with the queue's ``bind`` context as its only argument.

    With ``refire`` the queue returns to waiting on its own after each
    drain. With ``refire`` and ``requeue`` the items present when the drain
    started are queued again after that automatic stop.
    """

    def __init__(
        self,
        bind: Any = None,
        refire: bool = False,
        requeue: bool = False,
        prepopulated_stack: Any = None,
        trigger_callback: Optional[Callable[[Any], Any]] = None,
        stop_callback: Optional[Callable[[Any], Any]] = None,
        name: Optional[str] = None
    ):
        """
        Build the queue. Listener wiring happens in ``wire()``.

        Args:
            bind: Context passed to every invoked item
            refire: Return to waiting automatically after each drain
            requeue: Restore pre-drain items after each automatic stop
            prepopulated_stack: Item or nested group of items to queue now
            trigger_callback: Trigger edge listener attached by ``wire()``
            stop_callback: Stop edge listener attached by ``wire()``
            name: Label for log messages and diagnostics
        """
        self.bind = bind
        self.name = name
        self.diagnostics: Deque[Diagnostic] = deque(maxlen=MAX_DIAGNOSTICS)

        options = QueueOptions(
            bind=bind,
            refire=bool(refire),
            requeue=bool(requeue),
            trigger_callback=trigger_callback,
            stop_callback=stop_callback,
            name=name
        )
        for error in options.validate():
            self._report(DiagnosticKind.CONFIGURATION_ERROR, error)

        self._refire = options.refire
        # requeue without refire is neutralised, not honoured
        self._requeue = options.requeue and options.refire

        self._state = QueueState.WAITING
        self._items: Deque[Any] = deque(normalize_stack(prepopulated_stack))
        self._held: List[Any] = []
        self._draining = False

        self._trigger_edge: Optional["CallbackQueue"] = None
        self._stop_edge: Optional["CallbackQueue"] = None
        self._pending_listeners: Tuple[Any, Any] = (trigger_callback, stop_callback)
        self._wired = False

    @classmethod
    def create(cls, bind: Any = None, refire: bool = False, requeue: bool = False,
               prepopulated_stack: Any = None, **kwargs) -> "CallbackQueue":
        """Build a queue and wire its construction-time listeners."""
        queue = cls(bind, refire, requeue, prepopulated_stack, **kwargs)
        return queue.wire()

    @classmethod
    def from_options(cls, options: QueueOptions) -> "CallbackQueue":
        """Build and wire a queue from a QueueOptions record."""
        return cls.create(
            bind=options.bind,
            refire=options.refire,
            requeue=options.requeue,
            prepopulated_stack=options.prepopulated_stack,
            trigger_callback=options.trigger_callback,
            stop_callback=options.stop_callback,
            name=options.name
        )

    def wire(self) -> "CallbackQueue":
        """
        Attach the listeners given at construction.

        Safe to call more than once. A queue that was never wired explicitly
        is wired on its first trigger, before any edge can fire.

        Returns:
            The queue itself
        """
        if self._wired:
            return self
        self._wired = True

        trigger_callback, stop_callback = self._pending_listeners
        self._pending_listeners = (None, None)
        if trigger_callback is not None:
            self.add_trigger_edge_listener(trigger_callback)
        if stop_callback is not None:
            self.add_stop_edge_listener(stop_callback)
        return self

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def triggered(self) -> bool:
        return self._state is QueueState.TRIGGERED

    @property
    def refire(self) -> bool:
        return self._refire

    @property
    def requeue(self) -> bool:
        return self._requeue

    @property
    def items(self) -> Tuple[Any, ...]:
        """Snapshot of the queued items in invocation order."""
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"<CallbackQueue{label} {self._state.value} pending={len(self._items)}>"

    def push(self, *items: Any) -> "CallbackQueue":
        """
        Append items to the queue.

        Lists and tuples are flattened. If the queue is triggered the new
        items are invoked, in order, before this call returns. During a
        drain they are picked up by the running drain instead.

        Returns:
            The queue itself, for chaining
        """
        self._items.extend(flatten(items))
        if self._state is QueueState.TRIGGERED and not self._draining:
            self._drain()
        return self

    def trigger(self) -> bool:
        """
        Move to the triggered state and invoke every queued item.

        Returns:
            False if the queue was already triggered, True otherwise
        """
        if self._state is QueueState.TRIGGERED:
            return False

        self.wire()
        self._state = QueueState.TRIGGERED
        logger.debug(f"Queue {self.name or id(self)} triggered with {len(self._items)} pending")

        try:
            if not self._draining:
                self._drain()
        finally:
            # the transition has happened even if an item raised
            if self._trigger_edge is not None:
                self._fire_edge(self._trigger_edge)
        return True

    def stop(self) -> bool:
        """
        Move to the waiting state so later pushes are queued again.

        A drain that is already running is not interrupted.

        Returns:
            False if the queue was already waiting, True otherwise
        """
        if self._state is QueueState.WAITING:
            return False

        self._state = QueueState.WAITING
        logger.debug(f"Queue {self.name or id(self)} stopped")

        if self._stop_edge is not None:
            self._fire_edge(self._stop_edge)
        return True

    def remove(self, item: Any) -> bool:
        """
        Remove the first queued entry that is ``item`` itself.

        Returns:
            True if an entry was removed
        """
        for index, queued in enumerate(self._items):
            if queued is item:
                del self._items[index]
                return True
        return False

    def empty(self) -> None:
        """Drop every queued item. The state is unchanged."""
        self._items.clear()
        self._held.clear()

    def add_trigger_edge_listener(self, listener: Callable[[Any], Any]) -> bool:
        """
        Invoke ``listener`` on every waiting to triggered transition.

        Returns:
            False if ``listener`` is not callable and was ignored
        """
        if not callable(listener):
            self._report(DiagnosticKind.SILENT_SKIP, f"ignoring non-callable trigger listener {listener!r}")
            return False
        if self._trigger_edge is None:
            self._trigger_edge = self._make_edge("trigger_edge")
        self._trigger_edge._listen(listener)
        return True

    def add_stop_edge_listener(self, listener: Callable[[Any], Any]) -> bool:
        """
        Invoke ``listener`` on every triggered to waiting transition.

        Returns:
            False if ``listener`` is not callable and was ignored
        """
        if not callable(listener):
            self._report(DiagnosticKind.SILENT_SKIP, f"ignoring non-callable stop listener {listener!r}")
            return False
        if self._stop_edge is None:
            self._stop_edge = self._make_edge("stop_edge")
        self._stop_edge._listen(listener)
        return True

    def describe(self) -> Dict[str, Any]:
        """Return a snapshot of the queue and its edge queues."""
        description: Dict[str, Any] = {
            "name": self.name,
            "state": self._state.value,
            "refire": self._refire,
            "requeue": self._requeue,
            "pending": len(self._items),
        }
        if self._trigger_edge is not None:
            description["trigger_edge"] = self._trigger_edge.describe()
        if self._stop_edge is not None:
            description["stop_edge"] = self._stop_edge.describe()
        return description

    def log_state(self) -> None:
        logger.debug(f"Queue state: {self.describe()}")

    def _make_edge(self, suffix: str) -> "CallbackQueue":
        name = f"{self.name}.{suffix}" if self.name else suffix
        return CallbackQueue(bind=self.bind, refire=True, requeue=True, name=name)

    def _listen(self, listener: Callable[[Any], Any]) -> None:
        # A listener added while its edge is being delivered waits for the next edge
        if self._draining:
            self._held.append(listener)
        else:
            self.push(listener)

    def _fire_edge(self, edge: "CallbackQueue") -> None:
        edge.bind = self.bind
        edge.trigger()

    def _drain(self) -> None:
        """Invoke and remove items from the front until the queue is empty."""
        snapshot = list(self._items) if self._requeue else None
        self._draining = True
        try:
            while self._items:
                self._invoke(self._items.popleft())
        finally:
            self._draining = False
            if self._refire:
                self._end_cycle(snapshot)

    def _end_cycle(self, snapshot: Optional[List[Any]]) -> None:
        leftovers = list(self._items)
        if snapshot is not None:
            leftovers = [item for item in leftovers if not any(item is kept for kept in snapshot)]
            self._items = deque(leftovers)
        if leftovers:
            self._report(
                DiagnosticKind.STACK_CONSISTENCY,
                f"{len(leftovers)} unexecuted item(s) remain after drain; kept for the next cycle"
            )

        try:
            self.stop()
        finally:
            if snapshot is not None:
                self._items.extend(snapshot)
            if self._held:
                self._items.extend(self._held)
                self._held.clear()

    def _invoke(self, item: Any) -> None:
        if not callable(item):
            self._report(DiagnosticKind.SILENT_SKIP, f"skipping non-callable item {item!r}")
            return
        item(self.bind)

    def _report(self, kind: DiagnosticKind, message: str) -> None:
        diagnostic = Diagnostic(kind, message, self.name)
        self.diagnostics.append(diagnostic)
        if kind is DiagnosticKind.SILENT_SKIP:
            logger.debug(str(diagnostic))
        else:
            logger.warning(str(diagnostic))
