"""
Construction-time configuration for callback queues.

Defines the option record accepted by CallbackQueue and the helpers that
normalise a prepopulated stack into a flat item sequence.
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional


@dataclass
class QueueOptions:
    """
    Options for a CallbackQueue.

    Attributes:
        bind: Context passed to every invoked item
        refire: Return to waiting automatically after each drain
        requeue: Restore the pre-drain items after each automatic stop (needs refire)
        prepopulated_stack: Item or nested group of items queued on construction
        trigger_callback: Listener attached to the trigger edge when the queue is wired
        stop_callback: Listener attached to the stop edge when the queue is wired
        name: Label used in log messages and diagnostics
    """
    bind: Any = None
    refire: bool = False
    requeue: bool = False
    prepopulated_stack: Any = None
    trigger_callback: Optional[Callable[[Any], Any]] = None
    stop_callback: Optional[Callable[[Any], Any]] = None
    name: Optional[str] = None

    def validate(self) -> List[str]:
        """
        Validate the option combination.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if self.requeue and not self.refire:
            errors.append("refire must be enabled to use requeue")

        for field_name in ("trigger_callback", "stop_callback"):
            value = getattr(self, field_name)
            if value is not None and not callable(value):
                errors.append(f"{field_name} must be callable, got {type(value).__name__}")

        return errors


def flatten(items: Iterable[Any]) -> List[Any]:
    """Flatten nested lists and tuples, keeping every leaf in order."""
    result = []
    for item in items:
        if isinstance(item, (list, tuple)):
            result.extend(flatten(item))
        else:
            result.append(item)
    return result


def normalize_stack(prepopulated_stack: Any) -> List[Any]:
    """
    Normalise a prepopulated stack into a flat list of items.

    Accepts a single item or arbitrarily nested lists/tuples of items.
    ``None`` entries and empty groups are discarded.

    Args:
        prepopulated_stack: Item or nested group of items

    Returns:
        Flat list of queued items in their original order
    """
    if prepopulated_stack is None:
        return []
    return [item for item in flatten([prepopulated_stack]) if item is not None]
