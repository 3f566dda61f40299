"""
Hybrid agent memory.

Each agent owns one AgentMemory combining a bounded short-term window of
recent messages with a long-term store of embedded entries that can be
recalled by semantic similarity. Long-term failures degrade to empty
results and are logged; they never reach the caller.
"""

import asyncio
import hashlib
import inspect
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union
from uuid import uuid4

from agent_orchestra.agents.logging import EventType, get_agent_logger
from agent_orchestra.config import MemorySettings, MemoryType, RemovalStrategy, get_settings
from agent_orchestra.exceptions import ConfigurationError, MemoryDegradedError
from agent_orchestra.knowledge.embeddings import EmbeddingProvider
from agent_orchestra.knowledge.vector_store import InMemoryVectorStore, VectorStore

SUMMARY_HEADER = "Summary of earlier conversation:"

# Keys reserved in vector-store metadata
_TYPE_TAG_KEY = "type_tag"
_CREATED_AT_KEY = "created_at"


class MessageRole(str, Enum):
    """Role of a short-term message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ShortTermEntry:
    """A message held in the short-term window."""

    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_summary: bool = False

    def to_message(self) -> dict:
        """Convert to a completion message."""
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict) -> "ShortTermEntry":
        """Create from a ``{"role", "content"}`` dictionary."""
        if "role" not in data or "content" not in data:
            raise ValueError("Message requires 'role' and 'content'")
        return cls(
            role=MessageRole(data["role"]),
            content=str(data["content"]),
            is_summary=bool(data.get("is_summary", False)),
        )


@dataclass(frozen=True)
class LongTermEntry:
    """An embedded, content-addressed memory."""

    id: str
    content: str
    embedding: list[float] = field(default_factory=list, repr=False)
    type_tag: str = "fact"
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class MemorySearchResult:
    """A recalled memory with its similarity score."""

    document: LongTermEntry
    score: float


@dataclass
class EnhancedContext:
    """Recent messages plus memories relevant to a query."""

    query: str
    messages: list[ShortTermEntry] = field(default_factory=list)
    relevant_memories: list[MemorySearchResult] = field(default_factory=list)

    def render_memories(self) -> str:
        """Render recalled memories as a bullet list."""
        return "\n".join(f"- {result.document.content}" for result in self.relevant_memories)

    def to_messages(self, include_memories: bool = True) -> list[dict]:
        """
        Render into completion messages.

        Recalled memories come first as a system message, followed by the
        short-term window in order.
        """
        messages = []
        if include_memories and self.relevant_memories:
            messages.append(
                {
                    "role": "system",
                    "content": f"Relevant memories:\n{self.render_memories()}",
                }
            )
        messages.extend(entry.to_message() for entry in self.messages)
        return messages


@dataclass
class RetentionPolicy:
    """Bounds the short-term window."""

    message_limit: int = 15
    strategy: RemovalStrategy = RemovalStrategy.TRUNCATE
    summary_max_chars: int = 2000

    def __post_init__(self):
        if self.message_limit < 1:
            raise ConfigurationError(
                "message_limit must be at least 1",
                details={"message_limit": self.message_limit},
            )

    @classmethod
    def from_settings(cls, settings: MemorySettings) -> "RetentionPolicy":
        return cls(
            message_limit=settings.message_limit,
            strategy=settings.removal_strategy,
            summary_max_chars=settings.summary_max_chars,
        )


Summarizer = Callable[[list[ShortTermEntry]], Union[str, Awaitable[str]]]


def _condense(text: str, limit: int = 200) -> str:
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def extractive_summary(entries: list[ShortTermEntry], max_chars: int = 2000) -> str:
    """
    Collapse messages into one summary text.

    Lines from an earlier summary are carried over; when the result is too
    long the oldest lines are dropped first.
    """
    lines = []
    for entry in entries:
        if entry.is_summary:
            carried = entry.content.splitlines()
            if carried and carried[0] == SUMMARY_HEADER:
                carried = carried[1:]
            lines.extend(line for line in carried if line.strip())
        else:
            lines.append(f"- {entry.role.value}: {_condense(entry.content)}")

    while len(lines) > 1 and len(SUMMARY_HEADER) + sum(len(line) + 1 for line in lines) > max_chars:
        lines.pop(0)

    return "\n".join([SUMMARY_HEADER, *lines])


def make_memory_id(type_tag: str, content: str) -> str:
    """Content address of a long-term entry."""
    return hashlib.sha256(f"{type_tag}\x00{content}".encode("utf-8")).hexdigest()


class AgentMemory:
    """
    Per-agent hybrid memory.

    The short-term window is compacted after every ``add_message`` so its
    length never exceeds the retention limit. Long-term entries live in a
    vector-store namespace ``"<agent_id>:<namespace>"`` claimed by this
    instance alone.

    Example:
        ```python
        memory = AgentMemory("researcher", embedding_provider=HashingEmbeddingProvider())
        await memory.store_memory("Platinum prints need humidity control")
        context = await memory.generate_enhanced_context("humidity")
        ```
    """

    def __init__(
        self,
        agent_id: str,
        embedding_provider: Optional[EmbeddingProvider] = None,
        vector_store: Optional[VectorStore] = None,
        settings: Optional[MemorySettings] = None,
        retention: Optional[RetentionPolicy] = None,
        summarizer: Optional[Summarizer] = None,
        namespace: Optional[str] = None,
    ):
        """
        Initialize agent memory.

        Args:
            agent_id: Id of the owning agent.
            embedding_provider: Embeds content for long-term storage.
            vector_store: Backing store; a private in-memory store if omitted.
            settings: Memory settings (defaults to global settings).
            retention: Short-term retention policy (defaults from settings).
            summarizer: Replaces the built-in extractive summarizer.
            namespace: Namespace suffix (defaults from settings).

        Raises:
            ConfigurationError: If long-term memory is requested without an
                embedding provider, or the namespace is already owned.
        """
        self.agent_id = agent_id
        self.settings = settings or get_settings().memory
        self.memory_type = self.settings.memory_type
        self.retention = retention or RetentionPolicy.from_settings(self.settings)
        self.summarizer = summarizer
        self.namespace = f"{agent_id}:{namespace or self.settings.namespace}"

        self.embedding_provider = embedding_provider
        self.vector_store = None
        self._owner_token = f"{agent_id}#{uuid4().hex[:8]}"
        self._messages: list[ShortTermEntry] = []
        # Serializes append and compaction of the window
        self._window_lock = asyncio.Lock()
        self._released = False
        self._logger = get_agent_logger()

        if self.memory_type != MemoryType.SHORT_TERM:
            if embedding_provider is None:
                raise ConfigurationError(
                    "Long-term memory requires an embedding provider",
                    details={"agent_id": agent_id, "memory_type": self.memory_type.value},
                )
            self.vector_store = vector_store or InMemoryVectorStore(
                dimensions=embedding_provider.dimensions
            )
            self.vector_store.claim_namespace(self.namespace, self._owner_token)

    @property
    def long_term_enabled(self) -> bool:
        return self.vector_store is not None and not self._released

    @property
    def released(self) -> bool:
        return self._released

    def _check_writable(self) -> None:
        if self._released:
            raise ConfigurationError(
                "Memory has been released",
                details={"agent_id": self.agent_id, "namespace": self.namespace},
            )

    def _degraded(self, operation: str, error: Exception) -> None:
        degraded = MemoryDegradedError(
            str(error) or error.__class__.__name__,
            operation=operation,
            namespace=self.namespace,
        )
        self._logger.log_memory_degraded(operation, self.namespace, str(degraded))

    # Short-term window

    async def add_message(self, message: Union[ShortTermEntry, dict]) -> None:
        """
        Append a message and apply the retention policy.

        Args:
            message: A ShortTermEntry or a ``{"role", "content"}`` dict.
        """
        self._check_writable()
        entry = message if isinstance(message, ShortTermEntry) else ShortTermEntry.from_dict(message)

        if self.memory_type != MemoryType.LONG_TERM:
            # The window is replaced only once compaction has finished
            async with self._window_lock:
                self._messages = await self._apply_retention([*self._messages, entry])

        index_all = self.memory_type == MemoryType.LONG_TERM
        index_reply = self.settings.auto_index and entry.role == MessageRole.ASSISTANT
        if self.long_term_enabled and not entry.is_summary and (index_all or index_reply):
            await self.store_memory(
                entry.content,
                type_tag="conversation",
                metadata={"role": entry.role.value},
            )

    async def _apply_retention(self, messages: list[ShortTermEntry]) -> list[ShortTermEntry]:
        """Return ``messages`` compacted to the retention limit."""
        limit = self.retention.message_limit
        if len(messages) <= limit:
            return messages

        if self.retention.strategy == RemovalStrategy.TRUNCATE:
            evicted = len(messages) - limit
            compacted = messages[-limit:]
        else:
            # One slot goes to the summary entry
            keep = limit - 1
            cut = len(messages) - keep
            prefix, kept = messages[:cut], messages[cut:]
            summary = await self._summarize(prefix)
            compacted = [
                ShortTermEntry(role=MessageRole.SYSTEM, content=summary, is_summary=True),
                *kept,
            ]
            evicted = len(prefix)

        self._logger.debug(
            f"Compacted short-term memory for {self.agent_id}",
            event_type=EventType.MEMORY_COMPACTED,
            data={
                "namespace": self.namespace,
                "strategy": self.retention.strategy.value,
                "evicted": evicted,
            },
        )
        return compacted

    async def _summarize(self, entries: list[ShortTermEntry]) -> str:
        if self.summarizer is None:
            return extractive_summary(entries, self.retention.summary_max_chars)
        try:
            result = self.summarizer(entries)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self._degraded("summarize", e)
            return extractive_summary(entries, self.retention.summary_max_chars)
        return str(result)

    def get_messages(self) -> list[ShortTermEntry]:
        """Get a copy of the short-term window, oldest first."""
        return list(self._messages)

    def clear_short_term_memory(self) -> None:
        """Drop the short-term window. Long-term entries are untouched."""
        self._messages = []

    # Long-term store

    async def store_memory(
        self,
        content: str,
        type_tag: str = "fact",
        metadata: Optional[dict[str, Any]] = None,
        memory_id: Optional[str] = None,
    ) -> bool:
        """
        Embed and store a long-term entry.

        Storing an existing id replaces the entry.

        Args:
            content: Text to remember.
            type_tag: Category of the entry.
            metadata: Extra metadata kept with the entry.
            memory_id: Explicit id; defaults to the content address.

        Returns:
            True if stored, False if long-term memory is disabled or degraded.
        """
        self._check_writable()
        if not self.long_term_enabled:
            return False

        memory_id = memory_id or make_memory_id(type_tag, content)
        record_metadata = dict(metadata or {})
        record_metadata[_TYPE_TAG_KEY] = type_tag
        record_metadata[_CREATED_AT_KEY] = datetime.now(timezone.utc).isoformat()

        try:
            vector = await self.embedding_provider.embed(content)
            await self.vector_store.add(
                memory_id,
                vector,
                payload=content,
                metadata=record_metadata,
                namespace=self.namespace,
            )
        except Exception as e:
            self._degraded("store", e)
            return False

        self._logger.debug(
            f"Stored memory for {self.agent_id}",
            event_type=EventType.MEMORY_STORED,
            data={"namespace": self.namespace, "memory_id": memory_id, "type_tag": type_tag},
        )
        return True

    async def retrieve_relevant_memories(
        self,
        query: str,
        limit: Optional[int] = None,
        type_tag: Optional[str] = None,
    ) -> list[MemorySearchResult]:
        """
        Recall long-term entries similar to a query.

        Args:
            query: Text to match.
            limit: Maximum results (defaults to ``max_recall_items``).
            type_tag: Only consider entries with this tag.

        Returns:
            Results in descending score order; empty when nothing is stored
            or the store is unavailable.
        """
        if not self.long_term_enabled:
            return []

        k = limit if limit is not None else self.settings.max_recall_items
        filter = {_TYPE_TAG_KEY: type_tag} if type_tag else None

        try:
            vector = await self.embedding_provider.embed(query)
            hits = await self.vector_store.search(
                vector,
                k=k,
                filter=filter,
                namespace=self.namespace,
                min_score=self.settings.relevance_threshold,
            )
            results = []
            for hit in hits:
                record = await self.vector_store.get(hit.id, namespace=self.namespace)
                embedding = record.vector.tolist() if record is not None else []
                results.append(MemorySearchResult(document=self._to_entry(hit, embedding), score=hit.score))
        except Exception as e:
            self._degraded("retrieve", e)
            return []

        self._logger.debug(
            f"Recalled {len(results)} memories for {self.agent_id}",
            event_type=EventType.MEMORY_RECALLED,
            data={"namespace": self.namespace, "count": len(results)},
        )
        return results

    @staticmethod
    def _to_entry(hit, embedding: list[float]) -> LongTermEntry:
        metadata = dict(hit.metadata)
        type_tag = metadata.pop(_TYPE_TAG_KEY, "fact")
        created_at = metadata.pop(_CREATED_AT_KEY, None)
        return LongTermEntry(
            id=hit.id,
            content=hit.payload,
            embedding=embedding,
            type_tag=type_tag,
            metadata=metadata,
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )

    async def generate_enhanced_context(self, query: str) -> EnhancedContext:
        """Combine the short-term window with memories relevant to ``query``."""
        return EnhancedContext(
            query=query,
            messages=self.get_messages(),
            relevant_memories=await self.retrieve_relevant_memories(query),
        )

    async def forget(self, memory_id: str) -> bool:
        """Remove a long-term entry. Returns False if absent or degraded."""
        self._check_writable()
        if not self.long_term_enabled:
            return False
        try:
            return await self.vector_store.delete(memory_id, namespace=self.namespace)
        except Exception as e:
            self._degraded("forget", e)
            return False

    async def count_long_term(self) -> int:
        """Number of long-term entries in this memory's namespace."""
        if not self.long_term_enabled:
            return 0
        try:
            return await self.vector_store.count(self.namespace)
        except Exception as e:
            self._degraded("count", e)
            return 0

    async def stats(self) -> dict:
        """Summary of the memory state."""
        return {
            "agent_id": self.agent_id,
            "namespace": self.namespace,
            "memory_type": self.memory_type.value,
            "short_term_messages": len(self._messages),
            "message_limit": self.retention.message_limit,
            "removal_strategy": self.retention.strategy.value,
            "long_term_entries": await self.count_long_term(),
            "released": self._released,
        }

    def release(self) -> None:
        """Drop the namespace claim and the short-term window.

        Stored long-term entries remain in the vector store; this instance
        refuses further writes.
        """
        if self._released:
            return
        if self.vector_store is not None:
            self.vector_store.release_namespace(self.namespace, self._owner_token)
        self._messages = []
        self._released = True
