"""
End-to-end workflow scenarios.

Multiple agents with hybrid memory run realistic pipelines through the
orchestration engine, without any network access.
"""

import pytest

from agent_orchestra.agents.agent import AgentRegistry, DemoAgentExecutor, create_agent
from agent_orchestra.agents.orchestrator import (
    Crew,
    FailureHandling,
    OrchestrationEngine,
    WorkflowStatus,
)
from agent_orchestra.agents.workflow import Task, Workflow, create_sequential_workflow
from agent_orchestra.config import (
    MemorySettings,
    MemoryType,
    OrchestrationSettings,
    ProcessMode,
    RemovalStrategy,
    Settings,
)
from agent_orchestra.knowledge.vector_store import InMemoryVectorStore

pytestmark = pytest.mark.integration


@pytest.fixture
def shared_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def research_crew(embedding_provider, shared_store):
    """Researcher, writer and reviewer sharing one vector store."""

    async def research(request):
        findings = "Coating humidity near 50 percent gives even platinum prints."
        await request.agent.memory.store_memory(findings, type_tag="finding")
        return findings

    def write(request):
        recalled = [r.document.content for r in request.enhanced_context.relevant_memories]
        sources = "; ".join(request.prerequisite_outputs.values())
        return f"Report based on: {sources} | recalled {len(recalled)}"

    def review(request):
        draft = request.prerequisite_outputs["write"]
        return "approved" if draft.startswith("Report") else "rejected"

    memory_settings = MemorySettings(message_limit=4, removal_strategy=RemovalStrategy.SUMMARIZE)
    agents = [
        create_agent(
            agent_id,
            executor=func,
            embedding_provider=embedding_provider,
            vector_store=shared_store,
            memory_settings=memory_settings,
        )
        for agent_id, func in (("researcher", research), ("writer", write), ("reviewer", review))
    ]
    return AgentRegistry(agents)


def _pipeline() -> Workflow:
    return create_sequential_workflow(
        "report",
        [
            Task(id="research", description="Research coating humidity", assigned_agent_id="researcher", task_type="research"),
            Task(id="write", description="Write the report", assigned_agent_id="writer"),
            Task(id="review", description="Review the report", assigned_agent_id="reviewer"),
        ],
    )


class TestResearchPipeline:
    """A three-stage research, write, review pipeline."""

    @pytest.mark.asyncio
    async def test_pipeline_completes(self, research_crew, fast_settings):
        """Test outputs flow from research through review."""
        engine = OrchestrationEngine(fast_settings)

        result = await engine.execute_workflow(_pipeline(), research_crew)

        assert result.status == WorkflowStatus.COMPLETED
        assert result.dispatch_order == ("research", "write", "review")
        assert result["write"].output.startswith("Report based on: Coating humidity")
        assert result["review"].output == "approved"

    @pytest.mark.asyncio
    async def test_memories_stay_in_agent_namespace(self, research_crew, fast_settings, shared_store):
        """Test a finding stored by one agent is not recalled by another."""
        engine = OrchestrationEngine(fast_settings)

        result = await engine.execute_workflow(_pipeline(), research_crew)

        assert result["write"].output.endswith("recalled 0")
        assert await shared_store.count("researcher:default") == 1
        assert await shared_store.count("writer:default") == 0

        recalled = await research_crew["researcher"].memory.retrieve_relevant_memories(
            "coating humidity", type_tag="finding"
        )
        assert recalled[0].document.content.startswith("Coating humidity")

    @pytest.mark.asyncio
    async def test_repeated_runs_compact_memory(self, research_crew, fast_settings):
        """Test short-term windows stay bounded across many runs."""
        engine = OrchestrationEngine(fast_settings)

        for _ in range(4):
            result = await engine.execute_workflow(_pipeline(), research_crew)
            assert result.succeeded

        messages = research_crew["writer"].memory.get_messages()
        assert len(messages) == 4
        assert messages[0].is_summary
        assert len(engine.list_runs(WorkflowStatus.COMPLETED)) == 4


class TestFanOut:
    """Independent analyses joined by a summary task."""

    @pytest.mark.asyncio
    async def test_hierarchical_join(self, make_agent, echo):
        """Test a join task sees every branch output in declaration order."""

        def summarize(request):
            return " + ".join(request.prerequisite_outputs)

        registry = AgentRegistry([make_agent("analyst", echo), make_agent("editor", summarize)])
        branches = [
            Task(id=f"analysis-{i}", description=f"Analyze sample {i}", assigned_agent_id="analyst")
            for i in range(3)
        ]
        join = Task(id="summary", description="Combine analyses", assigned_agent_id="editor")
        workflow = Workflow(
            name="fan-out",
            tasks=[*branches, join],
            dependencies={"summary": [task.id for task in branches]},
            process_mode=ProcessMode.HIERARCHICAL,
        )

        result = await OrchestrationEngine().execute_workflow(workflow, registry)

        assert result.succeeded
        assert result["summary"].output == "analysis-0 + analysis-1 + analysis-2"

    @pytest.mark.asyncio
    async def test_branch_failure_with_continue(self, make_agent, echo):
        """Test one failing branch skips only the join."""

        def flaky(request):
            raise RuntimeError("instrument offline")

        registry = AgentRegistry([make_agent("analyst", echo), make_agent("broken", flaky)])
        workflow = Workflow(
            name="fan-out",
            tasks=[
                Task(id="good", description="Analyze", assigned_agent_id="analyst"),
                Task(id="bad", description="Analyze", assigned_agent_id="broken"),
                Task(id="join", description="Combine", assigned_agent_id="analyst"),
                Task(id="other", description="Unrelated", assigned_agent_id="analyst"),
            ],
            dependencies={"join": ["good", "bad"]},
        )
        crew = Crew(
            name="lab",
            process_mode=ProcessMode.HIERARCHICAL,
            failure_handling=FailureHandling(continue_on_failure=True),
        )

        result = await OrchestrationEngine().run_crew(crew, workflow, registry)

        assert result.status == WorkflowStatus.COMPLETED_WITH_ERRORS
        assert result.skipped == ("join",)
        assert result["other"].succeeded
        assert result["bad"].error.message == "instrument offline"


class TestDemoMode:
    """Simulated agents for demonstrations."""

    @pytest.mark.asyncio
    async def test_demo_pipeline(self):
        """Test demo executors produce deterministic chained output."""
        settings = OrchestrationSettings(demo_mode=True)
        memory_settings = MemorySettings(memory_type=MemoryType.SHORT_TERM)
        registry = AgentRegistry(
            [
                create_agent(agent_id, executor=DemoAgentExecutor(settings), memory_settings=memory_settings)
                for agent_id in ("researcher", "writer", "reviewer")
            ]
        )

        result = await OrchestrationEngine(settings).execute_workflow(_pipeline(), registry)

        assert result.outputs["write"] == "[demo:writer] write: Write the report (after research)"


class TestPersistentMemory:
    """Long-term memory surviving a process restart."""

    @pytest.mark.asyncio
    async def test_memory_survives_restart(self, tmp_path, embedding_provider, fast_settings):
        """Test findings stored in one session are recalled in the next."""
        settings = Settings(
            data_dir=tmp_path / "data",
            memory=MemorySettings(persist_to_disk=True),
        )

        async def remember(request):
            await request.agent.memory.store_memory("Use Arches Platine paper for testing")
            return "stored"

        first = create_agent("archivist", executor=remember, embedding_provider=embedding_provider, settings=settings)
        workflow = Workflow(name="remember", tasks=[Task(id="t", description="Remember", assigned_agent_id="archivist")])
        await OrchestrationEngine(fast_settings).execute_workflow(workflow, AgentRegistry([first]))
        first.memory.release()

        second = create_agent("archivist", executor=remember, embedding_provider=embedding_provider, settings=settings)
        recalled = await second.memory.retrieve_relevant_memories("Arches Platine paper")

        assert recalled[0].document.content == "Use Arches Platine paper for testing"
