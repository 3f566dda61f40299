"""
Unit tests for agents/workflow.py module.

Tests task declarations, dependency validation, and result models.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from agent_orchestra.agents.workflow import (
    Task,
    TaskError,
    TaskMetrics,
    TaskResult,
    TaskResultStatus,
    Workflow,
    create_sequential_workflow,
)
from agent_orchestra.config import ProcessMode
from agent_orchestra.exceptions import ConfigurationError, ErrorKind, TaskTimeoutError


def _task(task_id: str, agent: str = "writer", **kwargs) -> Task:
    return Task(id=task_id, description=f"do {task_id}", assigned_agent_id=agent, **kwargs)


class TestTask:
    """Tests for Task."""

    def test_generated_id(self):
        """Test tasks get unique ids by default."""
        a = Task(description="a", assigned_agent_id="writer")
        b = Task(description="b", assigned_agent_id="writer")
        assert a.id != b.id

    def test_description_required(self):
        """Test empty descriptions are rejected."""
        with pytest.raises(ValidationError):
            Task(description="", assigned_agent_id="writer")

    def test_timeout_must_be_positive(self):
        """Test per-task timeouts must be positive."""
        with pytest.raises(ValidationError):
            _task("a", timeout_seconds=0)

    def test_frozen(self):
        """Test tasks cannot be mutated."""
        task = _task("a")
        with pytest.raises(ValidationError):
            task.description = "changed"

    def test_research_detection(self):
        """Test research tasks are recognised by type or label."""
        assert _task("a", task_type="research").is_research
        assert _task("b", labels=("research", "web")).is_research
        assert not _task("c", task_type="writing").is_research

    def test_display_name(self):
        """Test the name is preferred over the id."""
        assert _task("a", name="Research").display_name == "Research"
        assert _task("a").display_name == "a"


class TestWorkflowValidation:
    """Tests for dependency checks at construction."""

    def test_cycle_rejected(self):
        """Test a two-task cycle raises ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            Workflow(
                name="loop",
                tasks=[_task("a"), _task("b")],
                dependencies={"a": {"b"}, "b": {"a"}},
            )
        assert set(exc_info.value.details["tasks"]) == {"a", "b"}

    def test_self_dependency_rejected(self):
        """Test a task cannot wait for itself."""
        with pytest.raises(ConfigurationError):
            Workflow(name="self", tasks=[_task("a")], dependencies={"a": ["a"]})

    def test_unknown_prerequisite(self):
        """Test prerequisites must be declared tasks."""
        with pytest.raises(ConfigurationError, match="unknown"):
            Workflow(name="w", tasks=[_task("a")], dependencies={"a": ["ghost"]})

    def test_unknown_dependent(self):
        """Test dependency keys must be declared tasks."""
        with pytest.raises(ConfigurationError):
            Workflow(name="w", tasks=[_task("a")], dependencies={"ghost": ["a"]})

    def test_duplicate_task_ids(self):
        """Test task ids must be unique."""
        with pytest.raises(ConfigurationError, match="Duplicate"):
            Workflow(name="w", tasks=[_task("a"), _task("a")])

    def test_empty_workflow(self):
        """Test a workflow without tasks is valid."""
        workflow = Workflow(name="empty")
        assert workflow.topological_order() == []
        assert workflow.depth_levels() == []


class TestWorkflowGraph:
    """Tests for graph queries."""

    @pytest.fixture
    def diamond(self) -> Workflow:
        """research -> (draft, figures) -> review"""
        return Workflow(
            name="diamond",
            tasks=[_task("review"), _task("figures"), _task("draft"), _task("research")],
            dependencies={
                "draft": ["research"],
                "figures": ["research"],
                "review": ["draft", "figures"],
            },
        )

    def test_topological_order(self, diamond):
        """Test prerequisites precede dependents, ties by declaration."""
        assert diamond.topological_order() == ["research", "figures", "draft", "review"]

    def test_dependents_in_declaration_order(self, diamond):
        """Test direct dependents follow declaration order."""
        assert diamond.dependents("research") == ["figures", "draft"]

    def test_transitive_dependents(self, diamond):
        """Test everything downstream is found."""
        assert diamond.transitive_dependents("research") == ["review", "figures", "draft"]
        assert diamond.transitive_dependents("review") == []

    def test_depth_levels(self, diamond):
        """Test tasks are grouped by longest path from a root."""
        assert diamond.depth_levels() == [["research"], ["figures", "draft"], ["review"]]

    def test_prerequisites_normalized(self, diamond):
        """Test prerequisite lists become frozensets."""
        assert diamond.prerequisites("review") == frozenset({"draft", "figures"})
        assert diamond.prerequisites("research") == frozenset()

    def test_get_task(self, diamond):
        """Test lookup by id."""
        assert diamond.get_task("draft").description == "do draft"
        with pytest.raises(KeyError):
            diamond.get_task("ghost")


class TestCreateSequentialWorkflow:
    """Tests for create_sequential_workflow."""

    def test_chains_tasks(self):
        """Test each task waits for the previous one."""
        workflow = create_sequential_workflow("chain", [_task("a"), _task("b"), _task("c")])

        assert workflow.prerequisites("b") == frozenset({"a"})
        assert workflow.prerequisites("c") == frozenset({"b"})
        assert workflow.process_mode == ProcessMode.SEQUENTIAL
        assert workflow.topological_order() == ["a", "b", "c"]


class TestResults:
    """Tests for result models."""

    def test_error_from_taxonomy_exception(self):
        """Test taxonomy errors keep their kind."""
        error = TaskError.from_exception(TaskTimeoutError(task_id="t1", timeout_seconds=1.0))
        assert error.kind == ErrorKind.TIMEOUT_ERROR
        assert error.details["task_id"] == "t1"

    def test_error_from_plain_exception(self):
        """Test other exceptions are execution errors."""
        error = TaskError.from_exception(KeyError("missing"))
        assert error.kind == ErrorKind.EXECUTION_ERROR
        assert error.details == {"exception_type": "KeyError"}

    def test_result_succeeded(self):
        """Test the succeeded flag follows status."""
        now = datetime.now(timezone.utc)
        metrics = TaskMetrics(agent_id="writer", started_at=now, ended_at=now)
        result = TaskResult(
            task_id="a",
            status=TaskResultStatus.SUCCESS,
            output="ok",
            metrics=metrics,
        )
        assert result.succeeded
        assert metrics.attempts == 1
