"""
Embedding and vector storage backends for long-term memory.
"""

from agent_orchestra.knowledge.embeddings import (
    EmbeddingProvider,
    HashingEmbeddingProvider,
    OpenAIEmbeddingProvider,
    create_embedding_provider,
)
from agent_orchestra.knowledge.persistence import VectorStorePersistence
from agent_orchestra.knowledge.vector_store import (
    DEFAULT_NAMESPACE,
    InMemoryVectorStore,
    SimilarityMetric,
    VectorRecord,
    VectorSearchResult,
    VectorStore,
    cosine_similarity,
    dot_product,
    euclidean_similarity,
)

__all__ = [
    # Embeddings
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "HashingEmbeddingProvider",
    "create_embedding_provider",
    # Vector store
    "VectorStore",
    "InMemoryVectorStore",
    "VectorRecord",
    "VectorSearchResult",
    "SimilarityMetric",
    "DEFAULT_NAMESPACE",
    "cosine_similarity",
    "dot_product",
    "euclidean_similarity",
    # Persistence
    "VectorStorePersistence",
]
