"""
Error taxonomy for Agent Orchestra.

Provides a hierarchy of exceptions for orchestration and memory errors:
- OrchestraError (base)
  - ConfigurationError
    - AgentReferenceError
  - ExecutionError
    - ProviderError
  - TaskTimeoutError
  - MemoryDegradedError
  - TaskCancelledError

Every exception carries an ErrorKind so failures can be reported on a
TaskResult without keeping the exception object around.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Stable identifiers reported in TaskResult.error.kind."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    REFERENCE_ERROR = "REFERENCE_ERROR"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    MEMORY_DEGRADED = "MEMORY_DEGRADED"
    CANCELLED = "CANCELLED"


class OrchestraError(Exception):
    """Base exception for orchestration errors.

    Attributes:
        kind: Taxonomy kind of the error.
        details: Additional error details.
    """

    kind: ErrorKind = ErrorKind.EXECUTION_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        """Initialize the error.

        Args:
            message: Human-readable error message.
            details: Additional context as key-value pairs.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"Details: {details_str}")
        return " | ".join(parts)


class ConfigurationError(OrchestraError):
    """Invalid workflow graph, duplicate registration, or bad settings.

    Raised before any task runs and never retried.
    """

    kind = ErrorKind.CONFIGURATION_ERROR


class AgentReferenceError(ConfigurationError):
    """A task is assigned to an agent that was not supplied to the engine."""

    kind = ErrorKind.REFERENCE_ERROR

    def __init__(
        self,
        message: str = "Task references an unknown agent",
        task_id: str | None = None,
        agent_id: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if task_id:
            details["task_id"] = task_id
        if agent_id:
            details["agent_id"] = agent_id
        super().__init__(message, details=details)
        self.task_id = task_id
        self.agent_id = agent_id


class ExecutionError(OrchestraError):
    """An agent or provider call failed while running a task."""

    kind = ErrorKind.EXECUTION_ERROR


class ProviderError(ExecutionError):
    """A completion or embedding provider returned an error.

    Raised when:
    - The API key is rejected (401/403)
    - The provider rate-limits the request (429)
    - The provider is unreachable or returns a server error
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status: int | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if provider:
            details["provider"] = provider
        if status is not None:
            details["status"] = status
        super().__init__(message, details=details)
        self.provider = provider
        self.status = status

    @property
    def is_auth_error(self) -> bool:
        return self.status in (401, 403)

    @property
    def is_rate_limited(self) -> bool:
        return self.status == 429


class TaskTimeoutError(OrchestraError):
    """A task exceeded its wall-clock budget."""

    kind = ErrorKind.TIMEOUT_ERROR

    def __init__(
        self,
        message: str = "Task timed out",
        task_id: str | None = None,
        timeout_seconds: float | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if task_id:
            details["task_id"] = task_id
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(message, details=details)
        self.task_id = task_id
        self.timeout_seconds = timeout_seconds


class MemoryDegradedError(OrchestraError):
    """Embedding or vector-store failure inside agent memory.

    Never escapes AgentMemory; it is logged and memory falls back to
    empty results.
    """

    kind = ErrorKind.MEMORY_DEGRADED

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        namespace: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if namespace:
            details["namespace"] = namespace
        super().__init__(message, details=details)
        self.operation = operation
        self.namespace = namespace


class TaskCancelledError(OrchestraError):
    """A running task was cancelled along with its workflow."""

    kind = ErrorKind.CANCELLED
