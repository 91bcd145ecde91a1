"""
Edgequeue: edge-triggered callback queues and a barrier combinator.

Defer work until an asynchronous condition becomes true, and run a final
callback once several conditions hold at the same time.
"""

from .callbacks import (
    Barrier,
    CallbackQueue,
    QueueOptions,
    QueueState,
    once,
    push_all,
)
from .exceptions import (
    ConfigurationError,
    Diagnostic,
    DiagnosticKind,
    QueueDefinitionError,
)
from .registry import QueueRegistry
from .loader import QueueSetLoader

__all__ = [
    "Barrier",
    "CallbackQueue",
    "QueueOptions",
    "QueueState",
    "once",
    "push_all",
    "ConfigurationError",
    "Diagnostic",
    "DiagnosticKind",
    "QueueDefinitionError",
    "QueueRegistry",
    "QueueSetLoader",
]
__version__ = "0.1.0"
