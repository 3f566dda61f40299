"""
Workflow declarations and task results.

A Workflow is an immutable set of tasks plus a dependency map. The map is
checked once, at construction: unknown task ids and cycles raise
ConfigurationError before anything can run.
"""

import heapq
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from agent_orchestra.config import ProcessMode
from agent_orchestra.exceptions import ConfigurationError, ErrorKind, OrchestraError

RESEARCH_TASK_TYPE = "research"


class TaskStatus(str, Enum):
    """Lifecycle state of a task within a run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class TaskResultStatus(str, Enum):
    """Outcome recorded on a TaskResult."""

    SUCCESS = "success"
    FAILURE = "failure"


class Task(BaseModel):
    """A unit of work assigned to one agent."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    description: str = Field(min_length=1)
    assigned_agent_id: str = Field(min_length=1)
    name: Optional[str] = None
    context: Optional[str] = None
    expected_output: Optional[str] = None
    task_type: Optional[str] = None
    labels: tuple[str, ...] = ()
    timeout_seconds: Optional[float] = Field(default=None, gt=0.0)

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def is_research(self) -> bool:
        """Whether the longer research timeout applies."""
        return self.task_type == RESEARCH_TASK_TYPE or RESEARCH_TASK_TYPE in self.labels


class Workflow(BaseModel):
    """
    An immutable declaration of tasks and their prerequisites.

    ``dependencies`` maps a task id to the ids it waits for. Tasks not
    present as keys have no prerequisites.

    Example:
        ```python
        workflow = Workflow(
            name="report",
            tasks=[research, write],
            dependencies={write.id: {research.id}},
        )
        ```
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    description: str = ""
    tasks: tuple[Task, ...] = ()
    dependencies: dict[str, frozenset[str]] = Field(default_factory=dict)
    process_mode: Optional[ProcessMode] = None

    _order: list[str] = PrivateAttr(default_factory=list)
    _index: dict[str, int] = PrivateAttr(default_factory=dict)

    @field_validator("dependencies", mode="before")
    @classmethod
    def normalize_dependencies(cls, v: Any) -> Any:
        """Accept any iterable of prerequisite ids per task."""
        if isinstance(v, dict):
            return {key: frozenset(value) for key, value in v.items()}
        return v

    def model_post_init(self, __context: Any) -> None:
        """Check ids and reject cycles."""
        index: dict[str, int] = {}
        for position, task in enumerate(self.tasks):
            if task.id in index:
                raise ConfigurationError(
                    f"Duplicate task id: {task.id}",
                    details={"workflow": self.name, "task_id": task.id},
                )
            index[task.id] = position

        for task_id, prerequisites in self.dependencies.items():
            if task_id not in index:
                raise ConfigurationError(
                    f"Dependency declared for unknown task: {task_id}",
                    details={"workflow": self.name, "task_id": task_id},
                )
            unknown = sorted(p for p in prerequisites if p not in index)
            if unknown:
                raise ConfigurationError(
                    f"Task {task_id} depends on unknown tasks: {', '.join(unknown)}",
                    details={"workflow": self.name, "task_id": task_id, "unknown": unknown},
                )

        self._index = index
        self._order = self._compute_order()

    def _compute_order(self) -> list[str]:
        """Kahn's algorithm; ties resolved by declaration order."""
        remaining = {task.id: len(self.prerequisites(task.id)) for task in self.tasks}
        heap = [self._index[task_id] for task_id, count in remaining.items() if count == 0]
        heapq.heapify(heap)

        order = []
        while heap:
            task_id = self.tasks[heapq.heappop(heap)].id
            order.append(task_id)
            for dependent in self.dependents(task_id):
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(heap, self._index[dependent])

        if len(order) != len(self.tasks):
            cyclic = [task.id for task in self.tasks if remaining[task.id] > 0]
            raise ConfigurationError(
                "Workflow dependencies contain a cycle",
                details={"workflow": self.name, "tasks": cyclic},
            )
        return order

    @property
    def task_ids(self) -> list[str]:
        """Task ids in declaration order."""
        return [task.id for task in self.tasks]

    def get_task(self, task_id: str) -> Task:
        """Get a task by id.

        Raises:
            KeyError: If no task has this id.
        """
        return self.tasks[self._index[task_id]]

    def declaration_index(self, task_id: str) -> int:
        return self._index[task_id]

    def prerequisites(self, task_id: str) -> frozenset[str]:
        """Direct prerequisites of a task."""
        return self.dependencies.get(task_id, frozenset())

    def dependents(self, task_id: str) -> list[str]:
        """Tasks that directly wait for ``task_id``, in declaration order."""
        return [task.id for task in self.tasks if task_id in self.prerequisites(task.id)]

    def transitive_dependents(self, task_id: str) -> list[str]:
        """Every task downstream of ``task_id``, in declaration order."""
        found: set[str] = set()
        frontier = [task_id]
        while frontier:
            for dependent in self.dependents(frontier.pop()):
                if dependent not in found:
                    found.add(dependent)
                    frontier.append(dependent)
        return [task.id for task in self.tasks if task.id in found]

    def topological_order(self) -> list[str]:
        """Task ids such that every task follows its prerequisites."""
        return list(self._order)

    def depth_levels(self) -> list[list[str]]:
        """Group tasks by longest distance from a root task."""
        depth: dict[str, int] = {}
        for task_id in self._order:
            prerequisites = self.prerequisites(task_id)
            depth[task_id] = 1 + max((depth[p] for p in prerequisites), default=-1)

        levels: list[list[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for task in self.tasks:
            levels[depth[task.id]].append(task.id)
        return levels


class TaskError(BaseModel):
    """Error attached to a failed TaskResult."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, error: Exception) -> "TaskError":
        """Build from an exception, keeping the taxonomy kind if it has one."""
        if isinstance(error, OrchestraError):
            return cls(kind=error.kind, message=error.message, details=dict(error.details))
        return cls(
            kind=ErrorKind.EXECUTION_ERROR,
            message=str(error) or error.__class__.__name__,
            details={"exception_type": error.__class__.__name__},
        )


class TaskMetrics(BaseModel):
    """Timing and accounting for one task."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    started_at: datetime
    ended_at: datetime
    attempts: int = Field(default=1, ge=1)
    duration_ms: float = 0.0
    usage: Optional[dict[str, Any]] = None


class TaskResult(BaseModel):
    """Outcome of one attempted task in one run."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    status: TaskResultStatus
    output: Optional[str] = None
    error: Optional[TaskError] = None
    metrics: TaskMetrics

    @property
    def succeeded(self) -> bool:
        return self.status == TaskResultStatus.SUCCESS


def create_sequential_workflow(
    name: str,
    tasks: list[Task],
    description: str = "",
    process_mode: Optional[ProcessMode] = ProcessMode.SEQUENTIAL,
) -> Workflow:
    """
    Create a workflow where each task depends on the one before it.

    Args:
        name: Workflow name.
        tasks: Tasks in execution order.
        description: Workflow description.
        process_mode: Process mode recorded on the workflow.

    Returns:
        Configured Workflow.
    """
    dependencies = {
        current.id: frozenset({previous.id})
        for previous, current in zip(tasks, tasks[1:])
    }
    return Workflow(
        name=name,
        description=description,
        tasks=tuple(tasks),
        dependencies=dependencies,
        process_mode=process_mode,
    )
