"""
Multi-agent orchestration with hybrid memory.

This module provides:
- Agents bound to executor capabilities and a registry
- Workflow declarations with validated dependency graphs
- An orchestration engine with sequential and hierarchical processes
- Per-agent memory mixing a short-term window with vector recall
- Structured JSON logging with trace context
"""

from agent_orchestra.agents.logging import (
    AgentLogger,
    EventType,
    LogContext,
    configure_agent_logging,
    get_agent_logger,
    timed_operation,
)
from agent_orchestra.agents.memory import (
    AgentMemory,
    EnhancedContext,
    LongTermEntry,
    MemorySearchResult,
    MessageRole,
    RetentionPolicy,
    ShortTermEntry,
    extractive_summary,
    make_memory_id,
)
from agent_orchestra.agents.workflow import (
    Task,
    TaskError,
    TaskMetrics,
    TaskResult,
    TaskResultStatus,
    TaskStatus,
    Workflow,
    create_sequential_workflow,
)
from agent_orchestra.agents.agent import (
    Agent,
    AgentExecutor,
    AgentRegistry,
    AgentRequest,
    AgentResponse,
    CallableAgentExecutor,
    DemoAgentExecutor,
    LLMAgentExecutor,
    ToolBinding,
    create_agent,
)
from agent_orchestra.agents.orchestrator import (
    Crew,
    FailureHandling,
    OrchestrationEngine,
    WorkflowResult,
    WorkflowStatus,
    run_workflow,
)

__all__ = [
    # Logging
    "AgentLogger",
    "EventType",
    "LogContext",
    "configure_agent_logging",
    "get_agent_logger",
    "timed_operation",
    # Memory
    "AgentMemory",
    "EnhancedContext",
    "LongTermEntry",
    "MemorySearchResult",
    "MessageRole",
    "RetentionPolicy",
    "ShortTermEntry",
    "extractive_summary",
    "make_memory_id",
    # Workflow
    "Task",
    "TaskError",
    "TaskMetrics",
    "TaskResult",
    "TaskResultStatus",
    "TaskStatus",
    "Workflow",
    "create_sequential_workflow",
    # Agents
    "Agent",
    "AgentExecutor",
    "AgentRegistry",
    "AgentRequest",
    "AgentResponse",
    "CallableAgentExecutor",
    "DemoAgentExecutor",
    "LLMAgentExecutor",
    "ToolBinding",
    "create_agent",
    # Orchestration
    "Crew",
    "FailureHandling",
    "OrchestrationEngine",
    "WorkflowResult",
    "WorkflowStatus",
    "run_workflow",
]
