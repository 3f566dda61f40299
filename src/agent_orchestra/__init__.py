"""
Agent Orchestra - coordinate model-backed agents over a task graph.

This package provides:

- Workflows of interdependent tasks validated as a DAG
- An asyncio orchestration engine with per-task timeouts and retries
- Per-agent hybrid memory: a bounded message window plus vector recall
- Embedding providers and a namespaced in-memory vector store
- Completion clients for Anthropic, OpenAI and OpenRouter
"""

__version__ = "0.1.0"

# Configuration
from agent_orchestra.config import (
    ConfigStore,
    JSONConfigStore,
    MemoryType,
    ProcessMode,
    RemovalStrategy,
    Settings,
    configure,
    get_settings,
)

# Errors
from agent_orchestra.exceptions import (
    AgentReferenceError,
    ConfigurationError,
    ErrorKind,
    ExecutionError,
    MemoryDegradedError,
    OrchestraError,
    ProviderError,
    TaskCancelledError,
    TaskTimeoutError,
)

# Knowledge backends
from agent_orchestra.knowledge import (
    EmbeddingProvider,
    HashingEmbeddingProvider,
    InMemoryVectorStore,
    VectorStore,
    VectorStorePersistence,
)

# Agents and orchestration
from agent_orchestra.agents import (
    Agent,
    AgentExecutor,
    AgentMemory,
    AgentRegistry,
    CallableAgentExecutor,
    Crew,
    DemoAgentExecutor,
    FailureHandling,
    LLMAgentExecutor,
    OrchestrationEngine,
    Task,
    TaskResult,
    ToolBinding,
    Workflow,
    WorkflowResult,
    WorkflowStatus,
    create_agent,
    create_sequential_workflow,
)

__all__ = [
    "__version__",
    # Configuration
    "ConfigStore",
    "JSONConfigStore",
    "MemoryType",
    "ProcessMode",
    "RemovalStrategy",
    "Settings",
    "configure",
    "get_settings",
    # Errors
    "AgentReferenceError",
    "ConfigurationError",
    "ErrorKind",
    "ExecutionError",
    "MemoryDegradedError",
    "OrchestraError",
    "ProviderError",
    "TaskCancelledError",
    "TaskTimeoutError",
    # Knowledge
    "EmbeddingProvider",
    "HashingEmbeddingProvider",
    "InMemoryVectorStore",
    "VectorStore",
    "VectorStorePersistence",
    # Agents
    "Agent",
    "AgentExecutor",
    "AgentMemory",
    "AgentRegistry",
    "CallableAgentExecutor",
    "Crew",
    "DemoAgentExecutor",
    "FailureHandling",
    "LLMAgentExecutor",
    "OrchestrationEngine",
    "Task",
    "TaskResult",
    "ToolBinding",
    "Workflow",
    "WorkflowResult",
    "WorkflowStatus",
    "create_agent",
    "create_sequential_workflow",
]
