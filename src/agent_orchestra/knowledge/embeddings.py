"""
Text embedding providers.

Providers turn text into fixed-length vectors for the vector store. The
OpenAI provider calls the embeddings endpoint; the hashing provider is a
local, dependency-free bag-of-words projection useful offline and in tests.
"""

import hashlib
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from agent_orchestra.config import EmbeddingProviderType, EmbeddingSettings, get_settings
from agent_orchestra.exceptions import ProviderError


logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Length of every vector this provider returns."""
        pass

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        pass

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts, preserving order."""
        return [await self.embed(text) for text in texts]


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from the OpenAI (or a compatible) embeddings endpoint."""

    def __init__(self, settings: Optional[EmbeddingSettings] = None):
        self.settings = settings or get_settings().embedding

        self.api_key = self.settings.api_key or get_settings().llm.openai_api_key
        if not self.api_key:
            raise ValueError(
                "OpenAI API key required for embeddings. Set ORCHESTRA_EMBEDDING_API_KEY or ORCHESTRA_LLM_OPENAI_API_KEY."
            )

    @property
    def dimensions(self) -> int:
        return self.settings.dimensions

    def _client(self):
        try:
            import openai
        except ImportError:
            raise ImportError(
                "openai package required. Install with: pip install agent-orchestra[llm]"
            )
        return openai, openai.AsyncOpenAI(api_key=self.api_key, base_url=self.settings.base_url)

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in a single request."""
        if not texts:
            return []

        openai, client = self._client()
        try:
            response = await client.embeddings.create(
                model=self.settings.model,
                input=texts,
                dimensions=self.settings.dimensions,
            )
        except openai.OpenAIError as e:
            raise ProviderError(
                str(e) or e.__class__.__name__,
                provider="OpenAI",
                status=getattr(e, "status_code", None),
            ) from e

        ordered = sorted(response.data, key=lambda item: item.index)
        logger.debug(f"Embedded {len(texts)} texts with {self.settings.model}")
        return [list(item.embedding) for item in ordered]


class HashingEmbeddingProvider(EmbeddingProvider):
    """
    Feature-hashing embeddings computed locally with numpy.

    Each lower-cased token is hashed into one of ``dimensions`` buckets with
    a signed weight; the result is L2-normalized. Texts sharing words get
    positive cosine similarity, identical texts get 1.0.
    """

    def __init__(self, dimensions: int = 256):
        if dimensions < 1:
            raise ValueError("dimensions must be positive")
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _vectorize(self, text: str) -> np.ndarray:
        vector = np.zeros(self._dimensions, dtype=np.float64)
        for token in _TOKEN_PATTERN.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:8], "big") % self._dimensions
            sign = 1.0 if digest[8] & 1 else -1.0
            vector[index] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector

    async def embed(self, text: str) -> list[float]:
        return self._vectorize(text).tolist()


def create_embedding_provider(settings: Optional[EmbeddingSettings] = None) -> EmbeddingProvider:
    """
    Create an embedding provider based on settings.

    Args:
        settings: Embedding settings. Uses global settings if not provided.

    Returns:
        EmbeddingProvider for the configured backend.
    """
    settings = settings or get_settings().embedding

    if settings.provider == EmbeddingProviderType.OPENAI:
        return OpenAIEmbeddingProvider(settings)
    elif settings.provider == EmbeddingProviderType.HASHING:
        return HashingEmbeddingProvider(settings.dimensions)
    else:
        raise ValueError(f"Unsupported embedding provider: {settings.provider}")
