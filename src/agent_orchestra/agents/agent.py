"""
Agents and the executors that produce their output.

An Agent is an identity (model, system message, tools, memory) bound to an
AgentExecutor capability. The engine never switches on agent names: it
hands an AgentRequest to the agent's executor and awaits the response.
"""

import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from agent_orchestra.agents.logging import EventType, get_agent_logger
from agent_orchestra.agents.memory import AgentMemory, EnhancedContext
from agent_orchestra.agents.workflow import Task
from agent_orchestra.config import (
    LLMSettings,
    MemorySettings,
    MemoryType,
    OrchestrationSettings,
    Settings,
    get_settings,
)
from agent_orchestra.exceptions import ConfigurationError, ExecutionError
from agent_orchestra.knowledge.embeddings import EmbeddingProvider, create_embedding_provider
from agent_orchestra.knowledge.persistence import VectorStorePersistence
from agent_orchestra.knowledge.vector_store import InMemoryVectorStore, VectorStore
from agent_orchestra.llm.client import LLMClient, create_client


@dataclass(frozen=True)
class ToolBinding:
    """A tool an agent may call, described by a JSON-schema-like parameter map."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Tool binding requires a name")
        missing = [p for p in self.required if p not in self.parameters]
        if missing:
            raise ConfigurationError(
                f"Tool '{self.name}' requires undeclared parameters: {', '.join(missing)}",
                details={"tool": self.name, "missing": missing},
            )

    def to_schema(self) -> dict:
        """Tool definition in the common ``input_schema`` shape."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": {
                "type": "object",
                "properties": self.parameters,
                "required": list(self.required),
            },
        }


@dataclass
class AgentRequest:
    """Everything an executor needs to produce one task's output."""

    agent: "Agent"
    task: Task
    context: Optional[str] = None
    prerequisite_outputs: dict[str, str] = field(default_factory=dict)
    enhanced_context: Optional[EnhancedContext] = None
    attempt: int = 1

    @property
    def task_input(self) -> str:
        """Render the task as a single prompt."""
        parts = [self.task.description]
        if self.context:
            parts.append(f"Context:\n{self.context}")
        if self.prerequisite_outputs:
            rendered = "\n\n".join(
                f"[{task_id}]\n{output}" for task_id, output in self.prerequisite_outputs.items()
            )
            parts.append(f"Results from prerequisite tasks:\n{rendered}")
        if self.task.expected_output:
            parts.append(f"Expected output: {self.task.expected_output}")
        return "\n\n".join(parts)


@dataclass(frozen=True)
class AgentResponse:
    """Output produced by an executor."""

    output: str
    usage: Optional[dict[str, Any]] = None


class AgentExecutor(ABC):
    """Capability that turns an AgentRequest into output."""

    @abstractmethod
    async def execute(self, request: AgentRequest) -> AgentResponse:
        """Produce the output for a task."""
        pass


class LLMAgentExecutor(AgentExecutor):
    """Executor backed by a completion client."""

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        settings: Optional[LLMSettings] = None,
    ):
        """
        Initialize the executor.

        Args:
            client: Completion client. Created from settings on first use if omitted.
            settings: LLM settings used to create the client.
        """
        self._client = client
        self.settings = settings

    @property
    def client(self) -> LLMClient:
        """Get or create the completion client."""
        if self._client is None:
            self._client = create_client(self.settings)
        return self._client

    def build_system_prompt(self, request: AgentRequest) -> str:
        agent = request.agent
        sections = [agent.system_message] if agent.system_message else []
        if agent.tool_bindings:
            tools = "\n".join(
                f"- {tool.name}: {tool.description}" for tool in agent.tool_bindings
            )
            sections.append(f"Available tools:\n{tools}")
        return "\n\n".join(sections)

    def build_messages(self, request: AgentRequest) -> tuple[str, list[dict]]:
        """
        Build the system prompt and message list.

        System-role entries from the enhanced context (recalled memories,
        summaries) are folded into the system prompt.
        """
        system_parts = [self.build_system_prompt(request)]
        messages = []
        if request.enhanced_context is not None:
            for message in request.enhanced_context.to_messages():
                if message["role"] == "system":
                    system_parts.append(message["content"])
                else:
                    messages.append(message)
        messages.append({"role": "user", "content": request.task_input})
        system = "\n\n".join(part for part in system_parts if part)
        return system, messages

    async def execute(self, request: AgentRequest) -> AgentResponse:
        system, messages = self.build_messages(request)
        completion = await self.client.complete(
            messages,
            system=system or None,
            model=request.agent.model,
            temperature=request.agent.temperature,
        )
        return AgentResponse(output=completion.content, usage=completion.usage)


AgentCallable = Callable[[AgentRequest], Any]


class CallableAgentExecutor(AgentExecutor):
    """
    Executor wrapping a plain function.

    The function receives the AgentRequest and returns a string or an
    AgentResponse, directly or as an awaitable.
    """

    def __init__(self, func: AgentCallable):
        if not callable(func):
            raise ConfigurationError("CallableAgentExecutor requires a callable")
        self.func = func

    async def execute(self, request: AgentRequest) -> AgentResponse:
        result = self.func(request)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, AgentResponse):
            return result
        if result is None:
            raise ExecutionError(
                "Agent callable returned no output",
                details={"agent_id": request.agent.id, "task_id": request.task.id},
            )
        return AgentResponse(output=str(result))


class DemoAgentExecutor(AgentExecutor):
    """
    Deterministic simulated output for demonstrations.

    Only available when ``demo_mode`` is enabled.
    """

    def __init__(self, settings: Optional[OrchestrationSettings] = None):
        settings = settings or get_settings().orchestration
        if not settings.demo_mode:
            raise ConfigurationError(
                "DemoAgentExecutor requires demo_mode to be enabled",
                details={"setting": "ORCHESTRA_ORCHESTRATION_DEMO_MODE"},
            )

    async def execute(self, request: AgentRequest) -> AgentResponse:
        output = f"[demo:{request.agent.id}] {request.task.display_name}: {request.task.description}"
        if request.prerequisite_outputs:
            output += f" (after {', '.join(request.prerequisite_outputs)})"
        return AgentResponse(output=output)


@dataclass(frozen=True, eq=False)
class Agent:
    """
    An identity bound to a model, a system message, tools and memory.

    Immutable once created; only the contents of ``memory`` change.
    """

    id: str
    executor: AgentExecutor
    name: str = ""
    model: Optional[str] = None
    system_message: str = ""
    temperature: Optional[float] = None
    tool_bindings: tuple[ToolBinding, ...] = ()
    description: str = ""
    memory: Optional[AgentMemory] = None

    def __post_init__(self):
        if not self.id:
            raise ConfigurationError("Agent requires an id")
        if not isinstance(self.executor, AgentExecutor):
            raise ConfigurationError(
                "Agent executor must be an AgentExecutor",
                details={"agent_id": self.id},
            )
        if self.temperature is not None and not 0.0 <= self.temperature <= 2.0:
            raise ConfigurationError(
                "Agent temperature must be between 0 and 2",
                details={"agent_id": self.id, "temperature": self.temperature},
            )
        if self.memory is not None and self.memory.agent_id != self.id:
            raise ConfigurationError(
                "Agent memory belongs to another agent",
                details={"agent_id": self.id, "memory_owner": self.memory.agent_id},
            )

    @property
    def agent_type(self) -> str:
        return self.executor.__class__.__name__

    def get_tool(self, name: str) -> Optional[ToolBinding]:
        for tool in self.tool_bindings:
            if tool.name == name:
                return tool
        return None

    def to_dict(self) -> dict:
        """Describe the agent without its memory contents."""
        return {
            "id": self.id,
            "name": self.name or self.id,
            "model": self.model,
            "agent_type": self.agent_type,
            "temperature": self.temperature,
            "tools": [tool.name for tool in self.tool_bindings],
            "has_memory": self.memory is not None,
        }


class AgentRegistry(Mapping):
    """
    Registry of agents by id.

    Behaves as a read-only mapping so it can be passed directly to the
    orchestration engine.
    """

    def __init__(self, agents: Optional[list[Agent]] = None):
        self._agents: dict[str, Agent] = {}
        self._logger = get_agent_logger()
        for agent in agents or []:
            self.register(agent)

    def __getitem__(self, agent_id: str) -> Agent:
        return self._agents[agent_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._agents)

    def __len__(self) -> int:
        return len(self._agents)

    def register(self, agent: Agent) -> Agent:
        """
        Register an agent.

        Raises:
            ConfigurationError: If an agent with the same id is registered.
        """
        if agent.id in self._agents:
            raise ConfigurationError(
                f"Agent already registered: {agent.id}",
                details={"agent_id": agent.id},
            )
        self._agents[agent.id] = agent
        self._logger.info(
            f"Registered agent: {agent.id}",
            event_type=EventType.AGENT_REGISTERED,
            data={"agent_type": agent.agent_type, "model": agent.model},
        )
        return agent

    def deregister(self, agent_id: str) -> bool:
        """
        Remove an agent and release its memory.

        Returns:
            True if removed, False if not found.
        """
        agent = self._agents.pop(agent_id, None)
        if agent is None:
            return False
        if agent.memory is not None:
            agent.memory.release()
        self._logger.info(
            f"Deregistered agent: {agent_id}",
            event_type=EventType.AGENT_DEREGISTERED,
        )
        return True

    def list_agents(self) -> list[Agent]:
        return list(self._agents.values())

    def get_agent_info(self) -> list[dict]:
        """Get information about all registered agents."""
        return [agent.to_dict() for agent in self._agents.values()]


def create_agent(
    agent_id: str,
    name: str = "",
    system_message: str = "",
    executor: Union[AgentExecutor, AgentCallable, None] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    tool_bindings: Optional[list[ToolBinding]] = None,
    description: str = "",
    memory: Optional[AgentMemory] = None,
    embedding_provider: Optional[EmbeddingProvider] = None,
    vector_store: Optional[VectorStore] = None,
    memory_settings: Optional[MemorySettings] = None,
    settings: Optional[Settings] = None,
) -> Agent:
    """
    Create an agent with its own memory.

    Args:
        agent_id: Unique agent id.
        name: Display name.
        system_message: System prompt.
        executor: AgentExecutor or callable. Defaults to an LLMAgentExecutor.
        model: Model name; the provider default if omitted.
        temperature: Sampling temperature.
        tool_bindings: Tools exposed to the executor.
        description: Free-form description.
        memory: Pre-built memory. Built from settings if omitted.
        embedding_provider: Embeddings for long-term memory.
        vector_store: Shared vector store; namespaced per agent.
        memory_settings: Overrides ``settings.memory``.
        settings: Application settings.

    Returns:
        Configured Agent.
    """
    settings = settings or get_settings()

    if executor is None:
        executor = LLMAgentExecutor(settings=settings.llm)
    elif not isinstance(executor, AgentExecutor):
        executor = CallableAgentExecutor(executor)

    if memory is None:
        memory_settings = memory_settings or settings.memory
        if memory_settings.memory_type != MemoryType.SHORT_TERM:
            embedding_provider = embedding_provider or create_embedding_provider(settings.embedding)
            if vector_store is None and memory_settings.persist_to_disk:
                vector_store = InMemoryVectorStore(
                    dimensions=embedding_provider.dimensions,
                    persistence=VectorStorePersistence(memory_settings.storage_dir, settings=settings),
                )
        memory = AgentMemory(
            agent_id,
            embedding_provider=embedding_provider,
            vector_store=vector_store,
            settings=memory_settings,
        )

    return Agent(
        id=agent_id,
        executor=executor,
        name=name,
        model=model,
        system_message=system_message,
        temperature=temperature,
        tool_bindings=tuple(tool_bindings or ()),
        description=description,
        memory=memory,
    )
