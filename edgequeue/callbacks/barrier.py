"""
Barrier combinator over callback queues.

A Barrier invokes a final callback exactly once, the first time every queue
it tracks is triggered at the same moment.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

from ..exceptions import ConfigurationError
from .callback_queue import CallbackQueue


logger = logging.getLogger(__name__)


def once(func: Callable[..., Any]) -> Callable[..., Any]:
    """Wrap ``func`` so only the first call runs it; later calls return its result."""
    called = False
    result = None

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        nonlocal called, result
        if called:
            return result
        called = True
        result = func(*args, **kwargs)
        return result

    return wrapper


@dataclass
class BarrierEntry:
    """Tracking record for one queue watched by a barrier."""
    queue: CallbackQueue
    triggered: bool = False


class Barrier:
    """
    One-shot AND-combinator over a fixed set of callback queues.

    Each entry is marked triggered by an item pushed straight into its queue
    (catching a queue that is already triggered) and by a trigger edge
    listener (catching later transitions). A stop edge listener clears the
    mark. The final callback runs with no arguments.

    Construction only builds the entry table; ``wire()`` attaches listeners.
    """

    def __init__(self, queues: Iterable[CallbackQueue], final_callback: Callable[[], Any]):
        """
        Args:
            queues: Queues to watch; shared with their owners
            final_callback: Callable invoked once when all queues are triggered

        Raises:
            ConfigurationError: If final_callback is not callable or a queue is not a CallbackQueue
        """
        if not callable(final_callback):
            raise ConfigurationError("Barrier missing a final callback function")

        self.entries: List[BarrierEntry] = []
        for queue in queues:
            if not isinstance(queue, CallbackQueue):
                raise ConfigurationError(f"Barrier can only track CallbackQueue instances, got {type(queue).__name__}")
            self.entries.append(BarrierEntry(queue))

        self._fired = False
        self._final_callback = once(final_callback)
        self._wired = False

    @classmethod
    def from_args(cls, *args: Any) -> "Barrier":
        """
        Build a barrier from queues followed by a final callback.

        Arguments are partitioned by type: CallbackQueue handles are tracked
        and the callable is the final callback. Anything else is ignored.

        Raises:
            ConfigurationError: If no callable argument is present
        """
        queues = []
        callbacks = []
        for argument in args:
            if isinstance(argument, CallbackQueue):
                queues.append(argument)
            elif callable(argument):
                callbacks.append(argument)
            else:
                logger.debug(f"Barrier ignoring argument {argument!r}")

        if not callbacks:
            raise ConfigurationError(f"Barrier missing a final callback function among {len(args)} argument(s)")
        if len(callbacks) > 1:
            logger.warning(f"Barrier received {len(callbacks)} callables; using the last one")

        return cls(queues, callbacks[-1])

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def satisfied(self) -> bool:
        """True while every tracked queue is marked triggered."""
        return all(entry.triggered for entry in self.entries)

    @property
    def pending(self) -> List[CallbackQueue]:
        """Queues not currently marked triggered."""
        return [entry.queue for entry in self.entries if not entry.triggered]

    def wire(self) -> "Barrier":
        """
        Attach the barrier's routines to every tracked queue.

        A barrier with no queues fires as soon as it is wired.

        Returns:
            The barrier itself
        """
        if self._wired:
            return self
        self._wired = True

        if not self.entries:
            self._fire()
            return self

        for entry in self.entries:
            mark = functools.partial(self._mark_triggered, entry)
            reset = functools.partial(self._mark_stopped, entry)
            entry.queue.push(mark)
            entry.queue.add_trigger_edge_listener(mark)
            entry.queue.add_stop_edge_listener(reset)
        return self

    def _mark_triggered(self, entry: BarrierEntry, _context: Any = None) -> None:
        entry.triggered = True
        if self.satisfied:
            self._fire()

    def _mark_stopped(self, entry: BarrierEntry, _context: Any = None) -> None:
        entry.triggered = False

    def _fire(self) -> None:
        if self._fired:
            return
        logger.debug(f"Barrier over {len(self.entries)} queue(s) satisfied")
        self._fired = True
        self._final_callback()


def push_all(*args: Any) -> Optional[Barrier]:
    """
    Invoke a final callback once all given queues are triggered.

    Usage: ``push_all(a, b, c, callback)``. Configuration problems are
    logged and nothing is wired.

    Returns:
        The wired Barrier, or None if the arguments were unusable
    """
    try:
        barrier = Barrier.from_args(*args)
    except ConfigurationError as e:
        logger.warning(f"push_all not wired: {e}")
        return None
    return barrier.wire()
