"""
Unit tests for agents/agent.py module.

Tests agents, executors, and the agent registry.
"""

from typing import Optional

import pytest

from agent_orchestra.agents.agent import (
    Agent,
    AgentRegistry,
    AgentRequest,
    AgentResponse,
    CallableAgentExecutor,
    DemoAgentExecutor,
    LLMAgentExecutor,
    ToolBinding,
    create_agent,
)
from agent_orchestra.agents.memory import (
    AgentMemory,
    EnhancedContext,
    LongTermEntry,
    MemorySearchResult,
    MessageRole,
    ShortTermEntry,
)
from agent_orchestra.agents.workflow import Task
from agent_orchestra.config import (
    MemorySettings,
    MemoryType,
    OrchestrationSettings,
    Settings,
)
from agent_orchestra.exceptions import ConfigurationError, ExecutionError
from agent_orchestra.knowledge.vector_store import InMemoryVectorStore
from agent_orchestra.llm.client import Completion, LLMClient


class RecordingClient(LLMClient):
    """Completion client that records calls and returns a fixed reply."""

    def __init__(self, reply: str = "reply"):
        self.reply = reply
        self.calls: list[dict] = []

    async def complete(
        self,
        messages: list[dict],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Completion:
        self.calls.append(
            {"messages": messages, "system": system, "model": model, "temperature": temperature}
        )
        return Completion(content=self.reply, model=model or "fake", usage={"output_tokens": 3})

    @property
    def provider_name(self) -> str:
        return "Fake"

    @property
    def model_name(self) -> str:
        return "fake"


@pytest.fixture
def task() -> Task:
    return Task(
        id="write",
        description="Write the report",
        assigned_agent_id="writer",
        expected_output="Two paragraphs",
    )


class TestToolBinding:
    """Tests for ToolBinding."""

    def test_schema(self):
        """Test the tool renders an input schema."""
        tool = ToolBinding(
            name="search",
            description="Web search",
            parameters={"query": {"type": "string"}},
            required=("query",),
        )
        schema = tool.to_schema()
        assert schema["name"] == "search"
        assert schema["input_schema"]["required"] == ["query"]

    def test_required_must_be_declared(self):
        """Test required parameters must exist."""
        with pytest.raises(ConfigurationError):
            ToolBinding(name="search", required=("query",))


class TestAgentRequest:
    """Tests for AgentRequest rendering."""

    def test_task_input_sections(self, task, make_agent):
        """Test context and prerequisite outputs are rendered in order."""
        agent = make_agent("writer", lambda r: "x")
        request = AgentRequest(
            agent=agent,
            task=task,
            context="Audience: printers",
            prerequisite_outputs={"research": "Findings"},
        )

        text = request.task_input

        assert text.startswith("Write the report")
        assert text.index("Context:\nAudience: printers") < text.index("[research]\nFindings")
        assert text.endswith("Expected output: Two paragraphs")

    def test_task_input_plain(self):
        """Test a bare task renders as its description."""
        agent = Agent(id="writer", executor=CallableAgentExecutor(lambda r: "x"))
        request = AgentRequest(agent=agent, task=Task(description="Just this", assigned_agent_id="writer"))
        assert request.task_input == "Just this"


class TestAgent:
    """Tests for Agent validation."""

    def test_requires_executor_instance(self):
        """Test executors must implement AgentExecutor."""
        with pytest.raises(ConfigurationError):
            Agent(id="writer", executor=lambda r: "x")

    def test_temperature_range(self):
        """Test temperature is bounded."""
        with pytest.raises(ConfigurationError):
            Agent(id="writer", executor=CallableAgentExecutor(lambda r: "x"), temperature=3.0)

    def test_memory_must_belong_to_agent(self):
        """Test an agent cannot use another agent's memory."""
        memory = AgentMemory("critic", settings=MemorySettings(memory_type=MemoryType.SHORT_TERM))
        with pytest.raises(ConfigurationError):
            Agent(id="writer", executor=CallableAgentExecutor(lambda r: "x"), memory=memory)

    def test_to_dict(self):
        """Test the description lists tools and executor type."""
        agent = Agent(
            id="writer",
            executor=CallableAgentExecutor(lambda r: "x"),
            tool_bindings=(ToolBinding(name="search"),),
        )
        info = agent.to_dict()
        assert info["name"] == "writer"
        assert info["agent_type"] == "CallableAgentExecutor"
        assert info["tools"] == ["search"]
        assert agent.get_tool("search").name == "search"
        assert agent.get_tool("missing") is None


class TestCallableAgentExecutor:
    """Tests for CallableAgentExecutor."""

    @pytest.mark.asyncio
    async def test_sync_callable(self, task, make_agent):
        """Test plain functions are wrapped into responses."""
        agent = make_agent("writer", lambda request: request.task.id.upper())
        response = await agent.executor.execute(AgentRequest(agent=agent, task=task))
        assert response.output == "WRITE"

    @pytest.mark.asyncio
    async def test_async_callable_with_response(self, task, make_agent):
        """Test coroutines may return AgentResponse directly."""

        async def run(request):
            return AgentResponse(output="done", usage={"tokens": 1})

        agent = make_agent("writer", run)
        response = await agent.executor.execute(AgentRequest(agent=agent, task=task))
        assert response.usage == {"tokens": 1}

    @pytest.mark.asyncio
    async def test_none_is_execution_error(self, task, make_agent):
        """Test returning nothing is an execution error."""
        agent = make_agent("writer", lambda request: None)
        with pytest.raises(ExecutionError):
            await agent.executor.execute(AgentRequest(agent=agent, task=task))


class TestLLMAgentExecutor:
    """Tests for LLMAgentExecutor."""

    @pytest.mark.asyncio
    async def test_execute_passes_agent_settings(self, task):
        """Test model, temperature and system message reach the client."""
        client = RecordingClient("The report")
        agent = Agent(
            id="writer",
            executor=LLMAgentExecutor(client=client),
            model="claude-test",
            temperature=0.2,
            system_message="You write reports.",
            tool_bindings=(ToolBinding(name="search", description="Web search"),),
        )

        response = await agent.executor.execute(AgentRequest(agent=agent, task=task))

        call = client.calls[0]
        assert response.output == "The report"
        assert response.usage == {"output_tokens": 3}
        assert call["model"] == "claude-test"
        assert call["temperature"] == 0.2
        assert call["system"].startswith("You write reports.")
        assert "- search: Web search" in call["system"]
        assert call["messages"][-1]["role"] == "user"

    def test_memories_folded_into_system_prompt(self, task):
        """Test recalled memories join the system prompt, history stays in messages."""
        executor = LLMAgentExecutor(client=RecordingClient())
        agent = Agent(id="writer", executor=executor, system_message="Base.")
        context = EnhancedContext(
            query="report",
            messages=[ShortTermEntry(role=MessageRole.USER, content="earlier question")],
            relevant_memories=[
                MemorySearchResult(document=LongTermEntry(id="m1", content="use metric units"), score=0.8)
            ],
        )

        system, messages = executor.build_messages(
            AgentRequest(agent=agent, task=task, enhanced_context=context)
        )

        assert system == "Base.\n\nRelevant memories:\n- use metric units"
        assert messages[0] == {"role": "user", "content": "earlier question"}
        assert messages[-1]["content"].startswith("Write the report")

    def test_client_created_lazily(self):
        """Test no client is built until first use."""
        executor = LLMAgentExecutor()
        assert executor._client is None


class TestDemoAgentExecutor:
    """Tests for DemoAgentExecutor."""

    def test_requires_demo_mode(self):
        """Test the demo executor is refused outside demo mode."""
        with pytest.raises(ConfigurationError):
            DemoAgentExecutor(OrchestrationSettings(demo_mode=False))

    @pytest.mark.asyncio
    async def test_deterministic_output(self, task):
        """Test the simulated output names the agent and prerequisites."""
        executor = DemoAgentExecutor(OrchestrationSettings(demo_mode=True))
        agent = Agent(id="writer", executor=executor)
        request = AgentRequest(agent=agent, task=task, prerequisite_outputs={"research": "x"})

        first = await executor.execute(request)
        second = await executor.execute(request)

        assert first == second
        assert first.output == "[demo:writer] write: Write the report (after research)"


class TestAgentRegistry:
    """Tests for AgentRegistry."""

    def test_register_and_lookup(self, make_agent):
        """Test the registry behaves as a mapping."""
        registry = AgentRegistry([make_agent("writer", lambda r: "x")])
        assert "writer" in registry
        assert len(registry) == 1
        assert registry["writer"].id == "writer"

    def test_duplicate_rejected(self, make_agent):
        """Test ids are unique."""
        registry = AgentRegistry([make_agent("writer", lambda r: "x")])
        with pytest.raises(ConfigurationError):
            registry.register(make_agent("writer", lambda r: "y"))

    def test_deregister_releases_memory(self, make_agent):
        """Test removing an agent releases its memory."""
        agent = make_agent("writer", lambda r: "x")
        registry = AgentRegistry([agent])

        assert registry.deregister("writer") is True
        assert agent.memory.released
        assert registry.deregister("writer") is False

    def test_get_agent_info(self, make_agent):
        """Test info is listed in registration order."""
        registry = AgentRegistry([make_agent("a", lambda r: "x"), make_agent("b", lambda r: "y")])
        assert [info["id"] for info in registry.get_agent_info()] == ["a", "b"]


class TestCreateAgent:
    """Tests for the create_agent factory."""

    def test_callable_wrapped(self, make_agent):
        """Test callables become CallableAgentExecutor."""
        agent = make_agent("writer", lambda r: "x")
        assert isinstance(agent.executor, CallableAgentExecutor)

    def test_default_executor_is_llm(self):
        """Test the LLM executor is the default."""
        agent = create_agent(
            "writer",
            memory_settings=MemorySettings(memory_type=MemoryType.SHORT_TERM),
        )
        assert isinstance(agent.executor, LLMAgentExecutor)

    def test_hybrid_memory_uses_shared_store(self, embedding_provider):
        """Test agents sharing a store get separate namespaces."""
        store = InMemoryVectorStore()
        a = create_agent("a", executor=lambda r: "x", embedding_provider=embedding_provider, vector_store=store)
        b = create_agent("b", executor=lambda r: "x", embedding_provider=embedding_provider, vector_store=store)

        assert a.memory.vector_store is store
        assert b.memory.vector_store is store
        assert a.memory.namespace != b.memory.namespace

    @pytest.mark.asyncio
    async def test_persistent_memory(self, tmp_path, embedding_provider):
        """Test persist_to_disk builds a store that survives a new agent."""
        settings = Settings(
            data_dir=tmp_path / "data",
            memory=MemorySettings(persist_to_disk=True),
        )
        first = create_agent("writer", executor=lambda r: "x", embedding_provider=embedding_provider, settings=settings)
        await first.memory.store_memory("Arches Platine is the default paper")
        first.memory.release()

        second = create_agent("writer", executor=lambda r: "x", embedding_provider=embedding_provider, settings=settings)

        assert await second.memory.count_long_term() == 1
