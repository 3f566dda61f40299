"""
Orchestration engine for multi-agent workflows.

Walks a workflow's dependency graph, dispatching each ready task to its
agent's executor under a per-task timeout, and aggregates the results.
"""

import asyncio
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Optional
from uuid import uuid4

from agent_orchestra.agents.agent import Agent, AgentRequest, AgentResponse
from agent_orchestra.agents.logging import EventType, LogContext, get_agent_logger
from agent_orchestra.agents.memory import EnhancedContext
from agent_orchestra.agents.workflow import (
    Task,
    TaskError,
    TaskMetrics,
    TaskResult,
    TaskResultStatus,
    TaskStatus,
    Workflow,
)
from agent_orchestra.config import OrchestrationSettings, ProcessMode, get_settings
from agent_orchestra.exceptions import (
    AgentReferenceError,
    ConfigurationError,
    ExecutionError,
    OrchestraError,
    TaskCancelledError,
    TaskTimeoutError,
)


class WorkflowStatus(str, Enum):
    """Status of a workflow run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FailureHandling:
    """What the engine does when a task fails."""

    continue_on_failure: bool = False
    max_retries: int = 0
    retry_on_timeout: bool = False

    def __post_init__(self):
        if self.max_retries < 0:
            raise ConfigurationError(
                "max_retries must not be negative",
                details={"max_retries": self.max_retries},
            )

    @classmethod
    def from_settings(cls, settings: OrchestrationSettings) -> "FailureHandling":
        return cls(
            continue_on_failure=settings.continue_on_failure,
            max_retries=settings.max_retries,
            retry_on_timeout=settings.retry_on_timeout,
        )

    def should_retry(self, error: OrchestraError, attempts: int) -> bool:
        """Whether another attempt is allowed after ``attempts`` tries."""
        if attempts > self.max_retries:
            return False
        if isinstance(error, ConfigurationError):
            return False
        if isinstance(error, TaskTimeoutError):
            return self.retry_on_timeout
        return True


class WorkflowResult(Mapping):
    """
    Read-only mapping of task id to TaskResult for one run.

    Every attempted task has an entry, failed ones included. Tasks never
    dispatched are listed in ``skipped``; results that arrived after the
    run had already failed are listed in ``discarded``.
    """

    def __init__(
        self,
        workflow_id: str,
        run_id: str,
        status: WorkflowStatus,
        results: dict[str, TaskResult],
        skipped: list[str],
        discarded: list[str],
        dispatch_order: list[str],
        started_at: datetime,
        completed_at: Optional[datetime] = None,
    ):
        self.workflow_id = workflow_id
        self.run_id = run_id
        self.status = status
        self._results = MappingProxyType(dict(results))
        self.skipped = tuple(skipped)
        self.discarded = tuple(discarded)
        self.dispatch_order = tuple(dispatch_order)
        self.started_at = started_at
        self.completed_at = completed_at

    def __getitem__(self, task_id: str) -> TaskResult:
        return self._results[task_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __repr__(self) -> str:
        return (
            f"WorkflowResult(run_id={self.run_id!r}, status={self.status.value!r}, "
            f"results={len(self._results)}, skipped={len(self.skipped)})"
        )

    @property
    def succeeded(self) -> bool:
        return self.status == WorkflowStatus.COMPLETED

    @property
    def outputs(self) -> dict[str, str]:
        """Outputs of successful tasks."""
        return {
            task_id: result.output
            for task_id, result in self._results.items()
            if result.succeeded
        }

    @property
    def failed_tasks(self) -> list[str]:
        return [task_id for task_id, result in self._results.items() if not result.succeeded]

    @property
    def duration_ms(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary."""
        return {
            "workflow_id": self.workflow_id,
            "run_id": self.run_id,
            "status": self.status.value,
            "results": {
                task_id: result.model_dump(mode="json")
                for task_id, result in self._results.items()
            },
            "skipped": list(self.skipped),
            "discarded": list(self.discarded),
            "dispatch_order": list(self.dispatch_order),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class Crew:
    """A named group of agents with a default process and failure policy."""

    name: str
    agents: list[Agent] = field(default_factory=list)
    process_mode: ProcessMode = ProcessMode.SEQUENTIAL
    failure_handling: FailureHandling = field(default_factory=FailureHandling)
    description: str = ""

    def __post_init__(self):
        ids = [agent.id for agent in self.agents]
        duplicates = sorted({agent_id for agent_id in ids if ids.count(agent_id) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Crew '{self.name}' has duplicate agents: {', '.join(duplicates)}",
                details={"crew": self.name, "agents": duplicates},
            )

    def agent_map(self) -> dict[str, Agent]:
        return {agent.id: agent for agent in self.agents}


@dataclass
class _Dispatch:
    """Bookkeeping for one in-flight task."""

    handle: asyncio.Task
    agent_id: str
    started_at: datetime


@dataclass
class _Run:
    """Mutable state of a single workflow run."""

    run_id: str
    workflow: Workflow
    agents: Mapping[str, Agent]
    process_mode: ProcessMode
    failure_handling: FailureHandling
    log_context: LogContext
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    status: WorkflowStatus = WorkflowStatus.RUNNING
    task_status: dict[str, TaskStatus] = field(default_factory=dict)
    results: dict[str, TaskResult] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    discarded: list[str] = field(default_factory=list)
    dispatch_order: list[str] = field(default_factory=list)
    running: dict[str, _Dispatch] = field(default_factory=dict)
    previous_output: Optional[str] = None
    failed: bool = False
    cancelled: bool = False

    @property
    def stopped(self) -> bool:
        return self.failed or self.cancelled

    def snapshot(self) -> WorkflowResult:
        return WorkflowResult(
            workflow_id=self.workflow.id,
            run_id=self.run_id,
            status=self.status,
            results=self.results,
            skipped=self.skipped,
            discarded=self.discarded,
            dispatch_order=self.dispatch_order,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )


class OrchestrationEngine:
    """
    Executes workflows against a set of agents.

    Example:
        ```python
        engine = OrchestrationEngine()
        result = await engine.execute_workflow(workflow, registry)
        print(result.status, result.outputs)
        ```
    """

    def __init__(self, settings: Optional[OrchestrationSettings] = None):
        """
        Initialize the engine.

        Args:
            settings: Orchestration settings (defaults to global settings).
        """
        self.settings = settings or get_settings().orchestration
        self._runs: dict[str, _Run] = {}
        self._logger = get_agent_logger()

    def resolve_timeout(self, task: Task) -> float:
        """Per-task timeout in seconds."""
        if task.timeout_seconds is not None:
            return task.timeout_seconds
        if task.is_research:
            return self.settings.research_task_timeout_seconds
        return self.settings.default_task_timeout_seconds

    def validate_references(self, workflow: Workflow, agents: Mapping[str, Agent]) -> None:
        """
        Check every task names a supplied agent.

        Raises:
            AgentReferenceError: On the first task with an unknown agent.
        """
        for task in workflow.tasks:
            if task.assigned_agent_id not in agents:
                raise AgentReferenceError(
                    f"Task {task.id} is assigned to unknown agent {task.assigned_agent_id}",
                    task_id=task.id,
                    agent_id=task.assigned_agent_id,
                )

    async def execute_workflow(
        self,
        workflow: Workflow,
        agents: Mapping[str, Agent],
        *,
        process_mode: Optional[ProcessMode] = None,
        failure_handling: Optional[FailureHandling] = None,
    ) -> WorkflowResult:
        """
        Execute a workflow.

        Args:
            workflow: Workflow to execute.
            agents: AgentRegistry or mapping of agent id to Agent.
            process_mode: Overrides the workflow's and the settings' mode.
            failure_handling: Overrides the settings' failure policy.

        Returns:
            WorkflowResult mapping task id to TaskResult.

        Raises:
            AgentReferenceError: If a task names an agent not in ``agents``.
        """
        self.validate_references(workflow, agents)

        run_id = str(uuid4())
        run = _Run(
            run_id=run_id,
            workflow=workflow,
            agents=agents,
            process_mode=process_mode or workflow.process_mode or self.settings.process_mode,
            failure_handling=failure_handling or FailureHandling.from_settings(self.settings),
            log_context=LogContext(run_id=run_id),
            task_status={task_id: TaskStatus.PENDING for task_id in workflow.task_ids},
        )
        self._runs[run_id] = run

        self._logger.info(
            f"Starting workflow: {workflow.name}",
            event_type=EventType.WORKFLOW_STARTED,
            data={
                "workflow_id": workflow.id,
                "num_tasks": len(workflow.tasks),
                "process_mode": run.process_mode.value,
            },
            context=run.log_context,
        )

        try:
            await self._drive(run)
        except asyncio.CancelledError:
            run.cancelled = True
            for dispatch in run.running.values():
                dispatch.handle.cancel()
            self._finish(run)
            raise

        self._finish(run)
        return run.snapshot()

    async def run_crew(
        self,
        crew: Crew,
        workflow: Workflow,
        registry: Optional[Mapping[str, Agent]] = None,
    ) -> WorkflowResult:
        """
        Execute a workflow with a crew's agents and defaults.

        Agents from ``registry`` are available too; crew members take
        precedence on id clashes.
        """
        agents = dict(registry or {})
        agents.update(crew.agent_map())
        return await self.execute_workflow(
            workflow,
            agents,
            process_mode=workflow.process_mode or crew.process_mode,
            failure_handling=crew.failure_handling,
        )

    async def cancel_workflow(self, run_id: str) -> bool:
        """
        Cancel a running workflow.

        Args:
            run_id: Run to cancel.

        Returns:
            True if cancelled, False if not found or not running.
        """
        run = self._runs.get(run_id)
        if run is None or run.status != WorkflowStatus.RUNNING or run.cancelled:
            return False

        run.cancelled = True
        for dispatch in run.running.values():
            dispatch.handle.cancel()

        self._logger.info(
            f"Workflow cancelled: {run.workflow.name}",
            event_type=EventType.WORKFLOW_CANCELLED,
            data={"workflow_id": run.workflow.id, "running": list(run.running)},
            context=run.log_context,
        )
        return True

    def get_run(self, run_id: str) -> Optional[WorkflowResult]:
        """Get a snapshot of a run, finished or not."""
        run = self._runs.get(run_id)
        return run.snapshot() if run else None

    def list_runs(self, status: Optional[WorkflowStatus] = None) -> list[WorkflowResult]:
        """List runs, optionally filtered by status."""
        runs = [run.snapshot() for run in self._runs.values()]
        if status:
            runs = [run for run in runs if run.status == status]
        return runs

    # Scheduling

    def _ready_tasks(self, run: _Run) -> list[str]:
        """Pending tasks whose prerequisites all completed, in declaration order."""
        workflow = run.workflow
        return [
            task_id
            for task_id in workflow.task_ids
            if run.task_status[task_id] == TaskStatus.PENDING
            and all(
                run.task_status[p] == TaskStatus.COMPLETED
                for p in workflow.prerequisites(task_id)
            )
        ]

    async def _drive(self, run: _Run) -> None:
        if run.process_mode == ProcessMode.SEQUENTIAL:
            concurrency = 1
        else:
            concurrency = self.settings.max_concurrent_tasks

        while True:
            if not run.stopped:
                for task_id in self._ready_tasks(run):
                    if len(run.running) >= concurrency:
                        break
                    self._dispatch(run, task_id)

            if not run.running:
                break

            handles = {dispatch.handle: task_id for task_id, dispatch in run.running.items()}
            done, _ = await asyncio.wait(list(handles), return_when=asyncio.FIRST_COMPLETED)

            finished = sorted(
                (handles[handle] for handle in done),
                key=run.workflow.declaration_index,
            )
            for task_id in finished:
                dispatch = run.running.pop(task_id)
                self._record(run, task_id, self._collect(run, task_id, dispatch))

        for task_id in run.workflow.task_ids:
            if run.task_status[task_id] == TaskStatus.PENDING:
                self._skip(run, task_id, "workflow stopped" if run.stopped else "unreachable")

    def _dispatch(self, run: _Run, task_id: str) -> None:
        workflow = run.workflow
        task = workflow.get_task(task_id)
        agent = run.agents[task.assigned_agent_id]

        context = task.context
        if context is None and run.process_mode == ProcessMode.SEQUENTIAL:
            context = run.previous_output

        prerequisites = sorted(workflow.prerequisites(task_id), key=workflow.declaration_index)
        prerequisite_outputs = {p: run.results[p].output for p in prerequisites}

        run.task_status[task_id] = TaskStatus.RUNNING
        run.dispatch_order.append(task_id)
        handle = asyncio.create_task(
            self._run_task(run, task, agent, context, prerequisite_outputs),
            name=f"{run.run_id}:{task_id}",
        )
        run.running[task_id] = _Dispatch(
            handle=handle,
            agent_id=agent.id,
            started_at=datetime.now(timezone.utc),
        )

    def _collect(self, run: _Run, task_id: str, dispatch: _Dispatch) -> TaskResult:
        """Turn a finished asyncio task into a TaskResult."""
        handle = dispatch.handle
        if handle.cancelled():
            error = TaskCancelledError("Task cancelled", details={"task_id": task_id})
            return self._failure(task_id, dispatch.agent_id, dispatch.started_at, 1, error)

        exception = handle.exception()
        if exception is not None:
            error = ExecutionError(str(exception), details={"task_id": task_id})
            return self._failure(task_id, dispatch.agent_id, dispatch.started_at, 1, error)

        return handle.result()

    def _record(self, run: _Run, task_id: str, result: TaskResult) -> None:
        workflow = run.workflow
        run.results[task_id] = result

        if run.stopped:
            # Late result: reported, but never unblocks dependents
            run.discarded.append(task_id)
            run.task_status[task_id] = (
                TaskStatus.COMPLETED if result.succeeded else TaskStatus.FAILED
            )
            return

        if result.succeeded:
            run.task_status[task_id] = TaskStatus.COMPLETED
            run.previous_output = result.output
            return

        run.task_status[task_id] = TaskStatus.FAILED
        run.previous_output = None
        if run.failure_handling.continue_on_failure:
            for dependent in workflow.transitive_dependents(task_id):
                if run.task_status[dependent] == TaskStatus.PENDING:
                    self._skip(run, dependent, f"prerequisite {task_id} failed")
        else:
            run.failed = True

    def _skip(self, run: _Run, task_id: str, reason: str) -> None:
        run.task_status[task_id] = TaskStatus.SKIPPED
        run.skipped.append(task_id)
        self._logger.info(
            f"Task skipped: {task_id}",
            event_type=EventType.TASK_SKIPPED,
            data={"task_id": task_id, "reason": reason},
            context=run.log_context,
        )

    def _finish(self, run: _Run) -> None:
        run.completed_at = datetime.now(timezone.utc)
        if run.cancelled:
            run.status = WorkflowStatus.CANCELLED
        elif run.failed:
            run.status = WorkflowStatus.FAILED
        elif any(not result.succeeded for result in run.results.values()):
            run.status = WorkflowStatus.COMPLETED_WITH_ERRORS
        else:
            run.status = WorkflowStatus.COMPLETED

        event_type = {
            WorkflowStatus.CANCELLED: EventType.WORKFLOW_CANCELLED,
            WorkflowStatus.FAILED: EventType.WORKFLOW_FAILED,
        }.get(run.status, EventType.WORKFLOW_COMPLETED)

        self._logger.info(
            f"Workflow finished: {run.status.value}",
            event_type=event_type,
            duration_ms=(run.completed_at - run.started_at).total_seconds() * 1000,
            data={
                "workflow_id": run.workflow.id,
                "completed": sum(1 for r in run.results.values() if r.succeeded),
                "failed": sum(1 for r in run.results.values() if not r.succeeded),
                "skipped": len(run.skipped),
                "discarded": len(run.discarded),
            },
            context=run.log_context,
        )

    # Task execution

    def _failure(
        self,
        task_id: str,
        agent_id: str,
        started_at: datetime,
        attempts: int,
        error: OrchestraError,
    ) -> TaskResult:
        ended_at = datetime.now(timezone.utc)
        return TaskResult(
            task_id=task_id,
            status=TaskResultStatus.FAILURE,
            error=TaskError.from_exception(error),
            metrics=TaskMetrics(
                agent_id=agent_id,
                started_at=started_at,
                ended_at=ended_at,
                attempts=attempts,
                duration_ms=(ended_at - started_at).total_seconds() * 1000,
            ),
        )

    async def _run_task(
        self,
        run: _Run,
        task: Task,
        agent: Agent,
        context: Optional[str],
        prerequisite_outputs: dict[str, str],
    ) -> TaskResult:
        """Run one task with retries. Failures are returned, not raised."""
        log_context = run.log_context.child_span(agent_id=agent.id, agent_type=agent.agent_type)
        started_at = datetime.now(timezone.utc)
        start = time.time()
        timeout = self.resolve_timeout(task)

        enhanced_context = None
        if self.settings.use_memory_context and agent.memory is not None:
            enhanced_context = await self._recall(agent, task, timeout)

        attempts = 0
        while True:
            attempts += 1
            request = AgentRequest(
                agent=agent,
                task=task,
                context=context,
                prerequisite_outputs=prerequisite_outputs,
                enhanced_context=enhanced_context,
                attempt=attempts,
            )
            self._logger.log_task_dispatched(task.id, agent.id, attempts, context=log_context)

            try:
                response = await asyncio.wait_for(_execute(agent, request), timeout=timeout)
                break
            except asyncio.TimeoutError:
                error = TaskTimeoutError(
                    f"Task {task.id} timed out after {timeout}s",
                    task_id=task.id,
                    timeout_seconds=timeout,
                )
            except OrchestraError as e:
                error = e
            except Exception as e:
                error = ExecutionError(
                    str(e) or e.__class__.__name__,
                    details={"exception_type": e.__class__.__name__},
                )

            self._logger.log_task_failed(
                task.id,
                error.kind.value,
                str(error),
                duration_ms=(time.time() - start) * 1000,
                context=log_context,
            )
            if not run.failure_handling.should_retry(error, attempts):
                return self._failure(task.id, agent.id, started_at, attempts, error)

            self._logger.warning(
                f"Retrying task: {task.id} (attempt {attempts + 1})",
                event_type=EventType.TASK_RETRIED,
                data={"task_id": task.id, "kind": error.kind.value},
                context=log_context,
            )

        output = response.output if isinstance(response, AgentResponse) else str(response)
        await self._record_exchange(agent, request.task_input, output, timeout)

        ended_at = datetime.now(timezone.utc)
        duration_ms = (time.time() - start) * 1000
        self._logger.log_task_completed(task.id, duration_ms, output, context=log_context)

        return TaskResult(
            task_id=task.id,
            status=TaskResultStatus.SUCCESS,
            output=output,
            metrics=TaskMetrics(
                agent_id=agent.id,
                started_at=started_at,
                ended_at=ended_at,
                attempts=attempts,
                duration_ms=duration_ms,
                usage=getattr(response, "usage", None),
            ),
        )

    async def _recall(self, agent: Agent, task: Task, timeout: float) -> Optional[EnhancedContext]:
        """Memory lookup for a task, bounded by the task timeout."""
        memory = agent.memory
        try:
            return await asyncio.wait_for(
                memory.generate_enhanced_context(task.description), timeout=timeout
            )
        except asyncio.TimeoutError:
            self._logger.log_memory_degraded(
                "enhanced_context",
                memory.namespace,
                f"Memory lookup for {task.id} exceeded {timeout}s",
            )
            return None

    async def _record_exchange(self, agent: Agent, prompt: str, output: str, timeout: float) -> None:
        """Append the task exchange to the agent's short-term memory."""
        memory = agent.memory
        if not self.settings.record_exchanges or memory is None or memory.released:
            return

        async def _append() -> None:
            await memory.add_message({"role": "user", "content": prompt})
            await memory.add_message({"role": "assistant", "content": output})

        try:
            await asyncio.wait_for(_append(), timeout=timeout)
        except asyncio.TimeoutError:
            self._logger.log_memory_degraded(
                "record_exchange", memory.namespace, f"Recording exceeded {timeout}s"
            )
        except Exception as e:
            self._logger.log_memory_degraded("record_exchange", memory.namespace, str(e))


async def _execute(agent: Agent, request: AgentRequest):
    """Run the executor; its own timeouts are execution errors, not task timeouts."""
    try:
        return await agent.executor.execute(request)
    except (asyncio.TimeoutError, TimeoutError) as e:
        raise ExecutionError(
            str(e) or e.__class__.__name__,
            details={"exception_type": e.__class__.__name__},
        ) from e


async def run_workflow(
    workflow: Workflow,
    agents: Mapping[str, Agent],
    settings: Optional[OrchestrationSettings] = None,
    **kwargs,
) -> WorkflowResult:
    """
    Quick function to execute a workflow with a fresh engine.

    Args:
        workflow: Workflow to execute.
        agents: AgentRegistry or mapping of agent id to Agent.
        settings: Optional orchestration settings.
        **kwargs: ``process_mode`` / ``failure_handling`` overrides.

    Returns:
        WorkflowResult for the run.
    """
    engine = OrchestrationEngine(settings)
    return await engine.execute_workflow(workflow, agents, **kwargs)
