"""
Vector storage for long-term agent memory.

Provides the abstract VectorStore interface and an in-memory implementation
backed by numpy. Records live in namespaces; a namespace can be claimed by a
single owner so two memories never write the same partition.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

import numpy as np

from agent_orchestra.exceptions import ConfigurationError
from agent_orchestra.knowledge.persistence import VectorStorePersistence


logger = logging.getLogger(__name__)

MetadataFilter = Union[dict[str, Any], Callable[[dict[str, Any]], bool]]

DEFAULT_NAMESPACE = "default"


class SimilarityMetric(str, Enum):
    """Similarity functions supported by the in-memory store."""

    COSINE = "cosine"
    DOT_PRODUCT = "dot_product"
    EUCLIDEAN = "euclidean"


def cosine_similarity(a, b):
    """
    Cosine similarity in [-1, 1]; 0.0 when either vector has zero norm.

    ``a`` may be a single vector or a matrix of row vectors, in which case an
    array with one score per row is returned.
    """
    matrix = np.atleast_2d(np.asarray(a, dtype=np.float64))
    query = np.asarray(b, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.clip(np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0), -1.0, 1.0)
    return _unwrap(a, scores)


def dot_product(a, b):
    scores = np.atleast_2d(np.asarray(a, dtype=np.float64)) @ np.asarray(b, dtype=np.float64)
    return _unwrap(a, scores)


def euclidean_similarity(a, b):
    """Similarity as 1 / (1 + euclidean distance)."""
    matrix = np.atleast_2d(np.asarray(a, dtype=np.float64))
    distances = np.linalg.norm(matrix - np.asarray(b, dtype=np.float64), axis=1)
    return _unwrap(a, 1.0 / (1.0 + distances))


def _unwrap(a, scores: np.ndarray):
    if np.ndim(a) == 1:
        return float(scores[0])
    return scores


_METRICS = {
    SimilarityMetric.COSINE: cosine_similarity,
    SimilarityMetric.DOT_PRODUCT: dot_product,
    SimilarityMetric.EUCLIDEAN: euclidean_similarity,
}


@dataclass(frozen=True)
class VectorRecord:
    """A stored vector with its payload."""

    id: str
    vector: np.ndarray
    payload: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    sequence: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "vector": self.vector.tolist(),
            "payload": self.payload,
            "metadata": self.metadata,
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VectorRecord":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            vector=np.asarray(data["vector"], dtype=np.float64),
            payload=data.get("payload", ""),
            metadata=data.get("metadata", {}),
            sequence=data.get("sequence", 0),
        )


@dataclass(frozen=True)
class VectorSearchResult:
    """A single search hit."""

    id: str
    payload: str
    metadata: dict[str, Any]
    score: float


class VectorStore(ABC):
    """Abstract interface for vector storage backends."""

    def __init__(self):
        self._owners: dict[str, str] = {}

    def claim_namespace(self, namespace: str, owner: str) -> None:
        """
        Reserve a namespace for a single writer.

        Raises:
            ConfigurationError: If another live owner already holds it.
        """
        current = self._owners.get(namespace)
        if current is not None and current != owner:
            raise ConfigurationError(
                f"Namespace '{namespace}' is already owned",
                details={"namespace": namespace, "owner": current, "requested_by": owner},
            )
        self._owners[namespace] = owner

    def release_namespace(self, namespace: str, owner: str) -> None:
        """Drop a claim held by ``owner``; a no-op for anyone else."""
        if self._owners.get(namespace) == owner:
            del self._owners[namespace]

    def namespace_owner(self, namespace: str) -> Optional[str]:
        return self._owners.get(namespace)

    @abstractmethod
    async def add(
        self,
        id: str,
        vector: list[float],
        payload: str = "",
        metadata: Optional[dict[str, Any]] = None,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        """Add or replace a vector."""
        pass

    @abstractmethod
    async def search(
        self,
        vector: list[float],
        k: int = 5,
        filter: Optional[MetadataFilter] = None,
        namespace: str = DEFAULT_NAMESPACE,
        min_score: Optional[float] = None,
    ) -> list[VectorSearchResult]:
        """Return up to ``k`` most similar records, best first."""
        pass

    @abstractmethod
    async def delete(self, id: str, namespace: str = DEFAULT_NAMESPACE) -> bool:
        """Delete a record. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def get(self, id: str, namespace: str = DEFAULT_NAMESPACE) -> Optional[VectorRecord]:
        """Fetch a record by id."""
        pass

    @abstractmethod
    async def count(self, namespace: Optional[str] = None) -> int:
        """Number of records in a namespace, or in all namespaces."""
        pass

    @abstractmethod
    async def clear(self, namespace: str = DEFAULT_NAMESPACE) -> int:
        """Remove every record in a namespace. Returns how many were removed."""
        pass


def _matches(metadata: dict[str, Any], filter: Optional[MetadataFilter]) -> bool:
    if filter is None:
        return True
    if callable(filter):
        return bool(filter(metadata))
    return all(metadata.get(key) == value for key, value in filter.items())


class InMemoryVectorStore(VectorStore):
    """
    Vector store held in process memory.

    Scores are computed with a single numpy matrix operation per search.
    Ties are broken by insertion order, earlier records first. When a
    persistence layer is supplied every namespace is loaded at construction
    and rewritten after each change.

    Example:
        ```python
        store = InMemoryVectorStore(dimensions=3)
        await store.add("a", [1.0, 0.0, 0.0], payload="first")
        hits = await store.search([1.0, 0.1, 0.0], k=1)
        ```
    """

    def __init__(
        self,
        dimensions: Optional[int] = None,
        metric: SimilarityMetric = SimilarityMetric.COSINE,
        persistence: Optional[VectorStorePersistence] = None,
    ):
        """
        Initialize the store.

        Args:
            dimensions: Expected vector length. Fixed by the first add if omitted.
            metric: Similarity function used by search.
            persistence: Optional durable storage for namespaces.
        """
        super().__init__()
        self.dimensions = dimensions
        self.metric = metric
        self.persistence = persistence
        self._namespaces: dict[str, dict[str, VectorRecord]] = {}
        self._sequence = 0

        if persistence is not None:
            self._load_all()

    def _load_all(self) -> None:
        for namespace in self.persistence.list_namespaces():
            records = [VectorRecord.from_dict(data) for data in self.persistence.load_namespace(namespace)]
            bucket = self._namespaces.setdefault(namespace, {})
            for record in sorted(records, key=lambda r: r.sequence):
                bucket[record.id] = record
                self._sequence = max(self._sequence, record.sequence + 1)
                if self.dimensions is None:
                    self.dimensions = len(record.vector)
        logger.debug(f"Loaded {len(self._namespaces)} namespaces from disk")

    def _persist(self, namespace: str) -> None:
        if self.persistence is None:
            return
        records = list(self._namespaces.get(namespace, {}).values())
        if records:
            self.persistence.save_namespace(namespace, [record.to_dict() for record in records])
        else:
            self.persistence.delete_namespace(namespace)

    def _validate_vector(self, vector: list[float]) -> np.ndarray:
        array = np.asarray(vector, dtype=np.float64)
        if array.ndim != 1 or array.size == 0:
            raise ValueError("Vector must be a non-empty one-dimensional sequence")
        if not np.all(np.isfinite(array)):
            raise ValueError("Vector contains non-finite values")
        if self.dimensions is not None and array.size != self.dimensions:
            raise ValueError(
                f"Vector dimension mismatch: expected {self.dimensions}, got {array.size}"
            )
        return array

    def _score(self, matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
        return _METRICS[self.metric](matrix, query)

    async def add(
        self,
        id: str,
        vector: list[float],
        payload: str = "",
        metadata: Optional[dict[str, Any]] = None,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        array = self._validate_vector(vector)
        if self.dimensions is None:
            self.dimensions = array.size

        bucket = self._namespaces.setdefault(namespace, {})
        # Re-adding an id replaces the record and moves it to the end
        bucket.pop(id, None)
        bucket[id] = VectorRecord(
            id=id,
            vector=array,
            payload=payload,
            metadata=dict(metadata or {}),
            sequence=self._sequence,
        )
        self._sequence += 1
        self._persist(namespace)

    async def search(
        self,
        vector: list[float],
        k: int = 5,
        filter: Optional[MetadataFilter] = None,
        namespace: str = DEFAULT_NAMESPACE,
        min_score: Optional[float] = None,
    ) -> list[VectorSearchResult]:
        if k <= 0:
            return []

        query = self._validate_vector(vector)
        candidates = [
            record
            for record in self._namespaces.get(namespace, {}).values()
            if _matches(record.metadata, filter)
        ]
        if not candidates:
            return []

        matrix = np.vstack([record.vector for record in candidates])
        scores = self._score(matrix, query)

        scored = [
            (float(score), record)
            for score, record in zip(scores, candidates)
            if min_score is None or score >= min_score
        ]
        scored.sort(key=lambda item: (-item[0], item[1].sequence))

        return [
            VectorSearchResult(
                id=record.id,
                payload=record.payload,
                metadata=dict(record.metadata),
                score=score,
            )
            for score, record in scored[:k]
        ]

    async def delete(self, id: str, namespace: str = DEFAULT_NAMESPACE) -> bool:
        bucket = self._namespaces.get(namespace, {})
        if id not in bucket:
            return False
        del bucket[id]
        self._persist(namespace)
        return True

    async def get(self, id: str, namespace: str = DEFAULT_NAMESPACE) -> Optional[VectorRecord]:
        return self._namespaces.get(namespace, {}).get(id)

    async def count(self, namespace: Optional[str] = None) -> int:
        if namespace is not None:
            return len(self._namespaces.get(namespace, {}))
        return sum(len(bucket) for bucket in self._namespaces.values())

    async def clear(self, namespace: str = DEFAULT_NAMESPACE) -> int:
        removed = len(self._namespaces.pop(namespace, {}))
        if removed:
            self._persist(namespace)
        return removed

    def namespaces(self) -> list[str]:
        """Namespaces holding at least one record."""
        return [name for name, bucket in self._namespaces.items() if bucket]
