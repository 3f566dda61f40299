"""
Structured logging system for orchestration and memory operations.

Provides JSON-formatted logging with trace IDs for debugging and observability.
"""

import asyncio
import json
import logging
import sys
import time
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from uuid import uuid4

from agent_orchestra.config import get_settings


class EventType(str, Enum):
    """Types of events that can be logged."""

    # Workflow lifecycle
    WORKFLOW_STARTED = "workflow.started"
    WORKFLOW_COMPLETED = "workflow.completed"
    WORKFLOW_FAILED = "workflow.failed"
    WORKFLOW_CANCELLED = "workflow.cancelled"

    # Task events
    TASK_DISPATCHED = "task.dispatched"
    TASK_COMPLETED = "task.completed"
    TASK_FAILED = "task.failed"
    TASK_RETRIED = "task.retried"
    TASK_TIMEOUT = "task.timeout"
    TASK_SKIPPED = "task.skipped"

    # Agent registry
    AGENT_REGISTERED = "agent.registered"
    AGENT_DEREGISTERED = "agent.deregistered"

    # Memory events
    MEMORY_STORED = "memory.stored"
    MEMORY_RECALLED = "memory.recalled"
    MEMORY_COMPACTED = "memory.compacted"
    MEMORY_DEGRADED = "memory.degraded"

    # System events
    ERROR = "error"


@dataclass
class LogContext:
    """Context for structured logging."""

    trace_id: str = field(default_factory=lambda: str(uuid4()))
    span_id: str = field(default_factory=lambda: str(uuid4())[:8])
    parent_span_id: str | None = None
    agent_id: str | None = None
    agent_type: str | None = None
    run_id: str | None = None

    def child_span(self, **overrides) -> "LogContext":
        """Create a child span context."""
        values = {
            "trace_id": self.trace_id,
            "span_id": str(uuid4())[:8],
            "parent_span_id": self.span_id,
            "agent_id": self.agent_id,
            "agent_type": self.agent_type,
            "run_id": self.run_id,
        }
        values.update(overrides)
        return LogContext(**values)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    _EXTRA_FIELDS = (
        "event_type",
        "trace_id",
        "span_id",
        "parent_span_id",
        "agent_id",
        "agent_type",
        "run_id",
        "duration_ms",
        "data",
        "error",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in self._EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value

        if record.exc_info:
            log_data["error"] = str(record.exc_info[1])
            log_data["stack_trace"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class AgentLogger:
    """
    Structured logger for orchestration operations.

    Provides JSON-formatted logging with automatic context tracking. Calls
    made on behalf of concurrently running tasks pass their own ``context``
    so spans never leak between tasks.
    """

    def __init__(
        self,
        name: str = "agent_orchestra",
        level: str | None = None,
        json_output: bool | None = None,
    ):
        """
        Initialize the agent logger.

        Args:
            name: Logger name.
            level: Log level (defaults to settings).
            json_output: Whether to use JSON formatting (defaults to settings).
        """
        self.logger = logging.getLogger(name)
        self._context: LogContext | None = None

        settings = get_settings()
        log_level = level or settings.log_level
        self._json_output = settings.json_logs if json_output is None else json_output
        self.logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            if self._json_output:
                handler.setFormatter(JSONFormatter())
            else:
                handler.setFormatter(
                    logging.Formatter(
                        "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
                    )
                )
            self.logger.addHandler(handler)

    def set_context(self, context: LogContext) -> None:
        """Set the default logging context."""
        self._context = context

    def get_context(self) -> LogContext:
        """Get the default logging context, creating one if needed."""
        if self._context is None:
            self._context = LogContext()
        return self._context

    @contextmanager
    def span(self, name: str, event_type: EventType | None = None):
        """
        Create a logging span for tracking nested operations.

        Args:
            name: Span name.
            event_type: Optional event type for span start.

        Yields:
            Child LogContext for the span.
        """
        child_context = self.get_context().child_span()
        start_time = time.time()
        if event_type:
            self.info(f"Starting: {name}", event_type=event_type, context=child_context)
        try:
            yield child_context
        except Exception as e:
            self.error(
                f"Failed: {name}",
                event_type=EventType.ERROR,
                error=str(e),
                duration_ms=(time.time() - start_time) * 1000,
                context=child_context,
            )
            raise

    def _log(
        self,
        level: int,
        message: str,
        event_type: EventType | str | None = None,
        duration_ms: float | None = None,
        data: dict | None = None,
        error: str | None = None,
        context: LogContext | None = None,
        **kwargs,
    ) -> None:
        """
        Internal logging method.

        Args:
            level: Log level.
            message: Log message.
            event_type: Type of event.
            duration_ms: Duration in milliseconds.
            data: Additional data to log.
            error: Error message if applicable.
            context: Context overriding the logger default.
            **kwargs: Additional fields.
        """
        context = context or self.get_context()

        extra = {
            "trace_id": context.trace_id,
            "span_id": context.span_id,
            "parent_span_id": context.parent_span_id,
            "agent_id": context.agent_id,
            "agent_type": context.agent_type,
            "run_id": context.run_id,
        }

        if event_type:
            extra["event_type"] = event_type.value if isinstance(event_type, EventType) else event_type
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms
        if data:
            extra["data"] = data
        if error:
            extra["error"] = error

        extra.update(kwargs)

        self.logger.log(level, message, extra=extra)

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message."""
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message."""
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        """Log error message."""
        self._log(logging.ERROR, message, **kwargs)

    # Convenience methods for common events

    def log_task_dispatched(
        self,
        task_id: str,
        agent_id: str,
        attempt: int,
        context: LogContext | None = None,
    ) -> None:
        """Log task dispatch."""
        self.info(
            f"Task dispatched: {task_id}",
            event_type=EventType.TASK_DISPATCHED,
            data={"task_id": task_id, "agent_id": agent_id, "attempt": attempt},
            context=context,
        )

    def log_task_completed(
        self,
        task_id: str,
        duration_ms: float,
        output_summary: str,
        context: LogContext | None = None,
    ) -> None:
        """Log task completion."""
        self.info(
            f"Task completed: {task_id}",
            event_type=EventType.TASK_COMPLETED,
            duration_ms=duration_ms,
            data={"task_id": task_id, "output_summary": output_summary[:200]},
            context=context,
        )

    def log_task_failed(
        self,
        task_id: str,
        kind: str,
        error: str,
        duration_ms: float | None = None,
        context: LogContext | None = None,
    ) -> None:
        """Log task failure."""
        self.error(
            f"Task failed: {task_id} ({kind})",
            event_type=EventType.TASK_TIMEOUT if kind == "TIMEOUT_ERROR" else EventType.TASK_FAILED,
            error=error,
            duration_ms=duration_ms,
            data={"task_id": task_id, "kind": kind},
            context=context,
        )

    def log_memory_degraded(
        self,
        operation: str,
        namespace: str,
        error: str,
    ) -> None:
        """Log a swallowed memory failure."""
        self.warning(
            f"Memory degraded during {operation}",
            event_type=EventType.MEMORY_DEGRADED,
            error=error,
            data={"operation": operation, "namespace": namespace},
        )


def timed_operation(logger: AgentLogger, event_type: EventType | None = None):
    """
    Decorator for timing and logging operations.

    Args:
        logger: Logger instance.
        event_type: Event type to log on completion.
    """

    def decorator(func: Callable) -> Callable:
        def _failed(start_time: float, error: Exception) -> None:
            logger.error(
                f"Failed: {func.__name__}",
                event_type=EventType.ERROR,
                error=str(error),
                duration_ms=(time.time() - start_time) * 1000,
            )

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _failed(start_time, e)
                raise
            logger.debug(
                f"Completed: {func.__name__}",
                event_type=event_type,
                duration_ms=(time.time() - start_time) * 1000,
            )
            return result

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _failed(start_time, e)
                raise
            logger.debug(
                f"Completed: {func.__name__}",
                event_type=event_type,
                duration_ms=(time.time() - start_time) * 1000,
            )
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


# Global logger instance
_agent_logger: AgentLogger | None = None


def get_agent_logger() -> AgentLogger:
    """Get the global agent logger instance."""
    global _agent_logger
    if _agent_logger is None:
        _agent_logger = AgentLogger()
    return _agent_logger


def configure_agent_logging(
    level: str = "INFO",
    json_output: bool = True,
) -> AgentLogger:
    """
    Configure agent logging.

    Args:
        level: Log level.
        json_output: Whether to use JSON formatting.

    Returns:
        Configured AgentLogger instance.
    """
    global _agent_logger
    logger = logging.getLogger("agent_orchestra")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    _agent_logger = AgentLogger(level=level, json_output=json_output)
    return _agent_logger
