"""
Queue registry for named callback queues.

A registry is an explicitly owned set of named queues, such as the
"loaded", "connected" and "unconnected" conditions of one subsystem. It is
passed by reference to the collaborators that push into or trigger them.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from .callbacks import Barrier, CallbackQueue, push_all


logger = logging.getLogger(__name__)

QUEUE_OPTION_FIELDS = ("bind", "refire", "requeue")


class QueueRegistry:
    """
    Registry of named callback queues.

    Holds plain queues and derived queues, the latter triggered by a barrier
    over other queues in the same registry.
    """

    def __init__(self):
        """Initialize empty queue registry."""
        self._queues: Dict[str, CallbackQueue] = {}
        self._barriers: Dict[str, Barrier] = {}

    def create(self, name: str, **options: Any) -> CallbackQueue:
        """
        Create, wire and register a queue.

        Args:
            name: Queue name, unique within the registry
            **options: CallbackQueue options (bind, refire, requeue, ...)

        Returns:
            The new queue

        Raises:
            ValueError: If the name is already registered
        """
        queue = CallbackQueue.create(name=name, **options)
        self.register(name, queue)
        return queue

    def register(self, name: str, queue: CallbackQueue) -> None:
        """
        Register an existing queue under a name.

        Raises:
            ValueError: If the name is taken or queue is not a CallbackQueue
        """
        if not isinstance(queue, CallbackQueue):
            raise ValueError(f"Queue '{name}' must be a CallbackQueue, got {type(queue).__name__}")
        if name in self._queues:
            raise ValueError(f"Queue '{name}' is already registered")

        self._queues[name] = queue
        logger.debug(f"Registered queue: {name}")

    def derive(self, name: str, sources: Sequence[Union[str, CallbackQueue]], **options: Any) -> Optional[CallbackQueue]:
        """
        Create a queue that is triggered once all source queues are triggered.

        The trigger comes from a one-shot barrier, so the derived queue is
        triggered at most once by its sources.

        Args:
            name: Name of the derived queue
            sources: Names or queues the derived queue waits for
            **options: Options for the derived queue

        Returns:
            The derived queue, or None if a source could not be resolved
        """
        resolved = self._resolve(sources)
        if resolved is None:
            return None

        target = self.create(name, **options)
        barrier = push_all(*resolved, lambda: target.trigger())
        if barrier is not None:
            self._barriers[name] = barrier
        return target

    def push_all(self, *args: Any) -> Optional[Barrier]:
        """
        Wire a barrier over named or given queues followed by a final callback.

        Returns:
            The wired Barrier, or None if a name is unknown or no callback was given
        """
        queues = [arg for arg in args if isinstance(arg, (str, CallbackQueue))]
        resolved = self._resolve(queues)
        if resolved is None:
            return None
        others = [arg for arg in args if not isinstance(arg, (str, CallbackQueue))]
        return push_all(*resolved, *others)

    def register_from_definitions(self, definitions: Dict[str, Dict[str, Any]]) -> List[str]:
        """
        Register queues from a queue set definition.

        Plain queues are created first; derived queues (``all_of``) are
        created once every source they name exists.

        Args:
            definitions: Mapping of queue name to definition

        Returns:
            List of errors (empty if all queues were registered)
        """
        errors = []
        derived = {}

        for name, config in definitions.items():
            config = config or {}
            options = {key: config[key] for key in QUEUE_OPTION_FIELDS if key in config}
            if "all_of" in config:
                derived[name] = (config["all_of"], options)
                continue
            try:
                self.create(name, **options)
            except Exception as e:
                errors.append(f"Error registering queue '{name}': {e}")

        while derived:
            ready = [name for name, (sources, _) in derived.items()
                     if all(source in self._queues for source in sources)]
            if not ready:
                for name, (sources, _) in derived.items():
                    missing = [source for source in sources if source not in self._queues]
                    errors.append(f"Queue '{name}' depends on unavailable queue(s): {missing}")
                break
            for name in ready:
                sources, options = derived.pop(name)
                try:
                    self.derive(name, sources, **options)
                except Exception as e:
                    errors.append(f"Error registering queue '{name}': {e}")

        return errors

    def get(self, name: str) -> Optional[CallbackQueue]:
        """Get a queue by name, or None if not registered."""
        return self._queues.get(name)

    def barrier(self, name: str) -> Optional[Barrier]:
        """Get the barrier feeding a derived queue, or None."""
        return self._barriers.get(name)

    def exists(self, name: str) -> bool:
        return name in self._queues

    def list_queues(self) -> List[str]:
        """List queue names in registration order."""
        return list(self._queues.keys())

    def describe(self) -> Dict[str, Any]:
        """
        Snapshot every registered queue.

        Returns:
            Mapping of queue name to its description
        """
        snapshot = {}
        for name, queue in self._queues.items():
            description = queue.describe()
            barrier = self._barriers.get(name)
            if barrier is not None:
                description["waiting_for"] = [entry.queue.name for entry in barrier.entries if not entry.triggered]
            snapshot[name] = description
        return snapshot

    def log_state(self) -> None:
        for name, description in self.describe().items():
            logger.debug(f"Queue {name}: {description}")

    def __getitem__(self, name: str) -> CallbackQueue:
        return self._queues[name]

    def __contains__(self, name: object) -> bool:
        return name in self._queues

    def __iter__(self) -> Iterator[str]:
        return iter(self._queues)

    def __len__(self) -> int:
        return len(self._queues)

    def _resolve(self, queues: Sequence[Union[str, CallbackQueue]]) -> Optional[List[CallbackQueue]]:
        resolved = []
        for queue in queues:
            if isinstance(queue, CallbackQueue):
                resolved.append(queue)
            elif queue in self._queues:
                resolved.append(self._queues[queue])
            else:
                logger.warning(f"Unknown queue '{queue}'; barrier not wired")
                return None
        return resolved
