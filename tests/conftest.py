"""
Shared fixtures for Agent Orchestra tests.
"""

import asyncio
import os

import pytest

from agent_orchestra.agents.agent import create_agent
from agent_orchestra.agents.memory import AgentMemory
from agent_orchestra.config import (
    MemorySettings,
    MemoryType,
    OrchestrationSettings,
    configure,
)
from agent_orchestra.knowledge.embeddings import EmbeddingProvider, HashingEmbeddingProvider
from agent_orchestra.knowledge.vector_store import InMemoryVectorStore


class FixedEmbeddingProvider(EmbeddingProvider):
    """Returns preset vectors so similarity scores are known in advance."""

    def __init__(self, vectors: dict[str, list[float]], dimensions: int = 2):
        self.vectors = vectors
        self._dimensions = dimensions
        self.calls: list[str] = []

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return self.vectors[text]


class FailingEmbeddingProvider(EmbeddingProvider):
    """Raises on every call, as an unreachable embedding service would."""

    @property
    def dimensions(self) -> int:
        return 8

    async def embed(self, text: str) -> list[float]:
        raise ConnectionError("embedding service unreachable")


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Fresh global settings per test with data kept under tmp_path."""
    for key in list(os.environ):
        if key.startswith("ORCHESTRA_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    settings = configure(data_dir=tmp_path / "data", json_logs=False)
    yield settings
    configure()


@pytest.fixture
def embedding_provider() -> HashingEmbeddingProvider:
    """Local embedding provider."""
    return HashingEmbeddingProvider(dimensions=64)


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    """Empty in-memory vector store."""
    return InMemoryVectorStore()


@pytest.fixture
def hybrid_settings() -> MemorySettings:
    """Hybrid memory with a small window."""
    return MemorySettings(memory_type=MemoryType.HYBRID, message_limit=5)


@pytest.fixture
def hybrid_memory(embedding_provider, vector_store, hybrid_settings) -> AgentMemory:
    """Hybrid memory for an agent named 'researcher'."""
    return AgentMemory(
        "researcher",
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        settings=hybrid_settings,
    )


@pytest.fixture
def fast_settings() -> OrchestrationSettings:
    """Orchestration settings with short timeouts."""
    return OrchestrationSettings(
        default_task_timeout_seconds=1.0,
        research_task_timeout_seconds=2.0,
        max_concurrent_tasks=4,
    )


@pytest.fixture
def make_agent():
    """Factory for agents with short-term memory and a callable executor."""

    def _make(agent_id: str, func, **kwargs):
        kwargs.setdefault("memory_settings", MemorySettings(memory_type=MemoryType.SHORT_TERM))
        return create_agent(agent_id, executor=func, **kwargs)

    return _make


@pytest.fixture
def echo():
    """Executor callable returning the task description."""

    async def _echo(request):
        await asyncio.sleep(0)
        return f"done: {request.task.description}"

    return _echo


@pytest.fixture
def fixed_embeddings():
    """Factory for providers with preset vectors."""
    return FixedEmbeddingProvider


@pytest.fixture
def failing_embeddings() -> FailingEmbeddingProvider:
    """Provider that always raises."""
    return FailingEmbeddingProvider()
