"""Edgequeue exceptions and diagnostic records."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class DiagnosticKind(str, Enum):
    """Category of a recoverable problem reported by a queue or barrier."""
    CONFIGURATION_ERROR = "configuration_error"
    SILENT_SKIP = "silent_skip"
    STACK_CONSISTENCY = "stack_consistency"


@dataclass
class Diagnostic:
    """Single diagnostic emitted by a queue or barrier."""
    kind: DiagnosticKind
    message: str
    queue: Optional[str] = None

    def __str__(self) -> str:
        prefix = f"[{self.queue}] " if self.queue else ""
        return f"{prefix}{self.kind.value}: {self.message}"


@dataclass
class ValidationError:
    """Single queue definition validation error."""
    message: str
    path: str = ""


class ConfigurationError(Exception):
    """Raised when a queue or barrier is wired with an unusable configuration.

    Queue operations never raise this; it is only raised by strict
    constructors, and callers such as ``push_all`` log it and carry on.
    """

    def __init__(self, message: str, queue: Optional[str] = None):
        self.diagnostic = Diagnostic(DiagnosticKind.CONFIGURATION_ERROR, message, queue)
        super().__init__(message)


class QueueDefinitionError(Exception):
    """Raised when a queue set definition fails validation.

    Carries every error found so callers can report them all at once.
    """

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors

        messages = []
        for error in errors:
            if error.path:
                messages.append(f"Validation error at {error.path}: {error.message}")
            else:
                messages.append(f"Validation error: {error.message}")

        super().__init__("\n".join(messages))
