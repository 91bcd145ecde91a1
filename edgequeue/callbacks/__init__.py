"""Callback queue primitives: the edge-triggered queue and the barrier combinator."""

from .options import QueueOptions
from .callback_queue import CallbackQueue, QueueState
from .barrier import Barrier, BarrierEntry, once, push_all

__all__ = [
    'QueueOptions',
    'CallbackQueue',
    'QueueState',
    'Barrier',
    'BarrierEntry',
    'once',
    'push_all'
]
