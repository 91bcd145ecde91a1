"""Queue set loader and strict validation of YAML queue definitions."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union
import yaml

from edgequeue.exceptions import QueueDefinitionError, ValidationError
from edgequeue.registry import QueueRegistry


class PreservingLoader(yaml.SafeLoader):
    """YAML loader that keeps names like 'on' and 'off' as strings instead of booleans."""
    pass


# Queue names such as 'on', 'off', 'yes', 'no' must stay strings. The
# 'true'/'false' resolvers live under 't'/'f' and are kept for option values.
PreservingLoader.yaml_implicit_resolvers = dict(PreservingLoader.yaml_implicit_resolvers)
for _first in ('o', 'O', 'y', 'Y', 'n', 'N'):
    if _first in PreservingLoader.yaml_implicit_resolvers:
        PreservingLoader.yaml_implicit_resolvers[_first] = [
            (tag, regexp) for tag, regexp in PreservingLoader.yaml_implicit_resolvers[_first]
            if tag != 'tag:yaml.org,2002:bool'
        ]


class QueueSetLoader:
    """Loads and validates queue set definitions."""

    SUPPORTED_VERSIONS = {"1"}
    TOP_LEVEL_FIELDS = {"version", "name", "queues"}
    QUEUE_FIELDS = {"bind", "refire", "requeue", "all_of"}

    def __init__(self):
        self.errors: List[ValidationError] = []

    def load(self, path: Union[str, Path]) -> Dict[str, Any]:
        """Load and validate a queue set YAML file."""
        try:
            with open(path, 'r') as f:
                text = f.read()
        except OSError as e:
            self.errors = [ValidationError(f"Failed to read queue set: {e}")]
            self._raise_validation_errors()
        return self.loads(text)

    def loads(self, text: str) -> Dict[str, Any]:
        """Parse and validate queue set YAML text."""
        self.errors = []
        definition = None
        try:
            definition = yaml.load(text, Loader=PreservingLoader)
        except yaml.YAMLError as e:
            self._add_error(f"Failed to parse queue set: {e}")
            self._raise_validation_errors()

        if definition is None or not isinstance(definition, dict):
            self._add_error("Queue set must be a YAML object/dictionary")
            self._raise_validation_errors()

        self._validate(definition)
        if self.errors:
            self._raise_validation_errors()
        return definition

    def load_registry(self, path: Union[str, Path], registry: Optional[QueueRegistry] = None) -> QueueRegistry:
        """
        Load a queue set file and register its queues.

        Args:
            path: Path to the queue set YAML
            registry: Registry to populate (a new one by default)

        Returns:
            The populated registry

        Raises:
            QueueDefinitionError: If validation or registration fails
        """
        definition = self.load(path)
        registry = registry if registry is not None else QueueRegistry()

        errors = registry.register_from_definitions(definition['queues'])
        if errors:
            self.errors = [ValidationError(message, "queues") for message in errors]
            self._raise_validation_errors()
        return registry

    def _validate(self, definition: Dict[str, Any]):
        version = definition.get('version')
        if version is None:
            self._add_error("'version' field is required")
        elif not isinstance(version, str):
            self._add_error(f"'version' field must be a string, got {type(version).__name__}")
        elif version not in self.SUPPORTED_VERSIONS:
            self._add_error(f"Unsupported version '{version}'. Supported: {sorted(self.SUPPORTED_VERSIONS)}")

        for key in definition:
            if key not in self.TOP_LEVEL_FIELDS:
                self._add_error(f"Unknown field '{key}'")

        queues = definition.get('queues')
        if not queues:
            self._add_error("'queues' field is required and must not be empty")
            return
        if not isinstance(queues, dict):
            self._add_error("'queues' must be a dictionary", "queues")
            return

        for name, config in queues.items():
            self._validate_queue(name, config, queues)

        self._check_cycles(queues)

    def _validate_queue(self, name: Any, config: Any, queues: Dict[str, Any]):
        path = f"queues.{name}"
        if not isinstance(name, str) or not name:
            self._add_error(f"Queue name must be a non-empty string, got {name!r}", "queues")
            return
        if config is None:
            return
        if not isinstance(config, dict):
            self._add_error(f"Queue '{name}' must be a dictionary", path)
            return

        for key in config:
            if key not in self.QUEUE_FIELDS:
                self._add_error(f"Queue '{name}': unknown field '{key}'", path)

        for flag in ('refire', 'requeue'):
            if flag in config and not isinstance(config[flag], bool):
                self._add_error(f"Queue '{name}': '{flag}' must be a boolean", f"{path}.{flag}")

        if config.get('requeue') is True and config.get('refire') is not True:
            self._add_error(f"Queue '{name}': refire must be enabled to use requeue", f"{path}.requeue")

        if 'all_of' in config:
            self._validate_all_of(name, config['all_of'], queues, f"{path}.all_of")

    def _validate_all_of(self, name: str, sources: Any, queues: Dict[str, Any], path: str):
        if not isinstance(sources, list) or not sources:
            self._add_error(f"Queue '{name}': 'all_of' must be a non-empty list of queue names", path)
            return
        for source in sources:
            if not isinstance(source, str):
                self._add_error(f"Queue '{name}': 'all_of' entries must be strings, got {source!r}", path)
            elif source == name:
                self._add_error(f"Queue '{name}': 'all_of' cannot reference itself", path)
            elif source not in queues:
                self._add_error(f"Queue '{name}': 'all_of' references unknown queue '{source}'", path)

    def _check_cycles(self, queues: Dict[str, Any]):
        """Reject derived queues that wait on each other in a loop."""
        edges: Dict[str, List[str]] = {}
        for name, config in queues.items():
            if isinstance(config, dict) and isinstance(config.get('all_of'), list):
                edges[name] = [s for s in config['all_of'] if isinstance(s, str) and s != name]

        visiting: Set[str] = set()
        done: Set[str] = set()
        reported: Set[str] = set()

        def visit(node: str, trail: List[str]):
            if node in done:
                return
            if node in visiting:
                cycle = trail[trail.index(node):] + [node]
                if node not in reported:
                    reported.update(cycle)
                    self._add_error(f"Cyclic 'all_of' dependency: {' -> '.join(cycle)}", "queues")
                return
            visiting.add(node)
            for source in edges.get(node, []):
                visit(source, trail + [node])
            visiting.discard(node)
            done.add(node)

        for name in edges:
            visit(name, [])

    def _add_error(self, message: str, path: str = ""):
        """Add validation error."""
        self.errors.append(ValidationError(message, path))

    def _raise_validation_errors(self):
        """Raise QueueDefinitionError with accumulated errors."""
        raise QueueDefinitionError(self.errors)
