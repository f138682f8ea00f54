"""
Embedding strategies for the knowledge base.

Every strategy implements `Embedder`: a model identifier, a fixed
dimensionality and an async `embed(text)`. The indexer and the retriever
only ever see this interface, so swapping the placeholder for a real
embedding model is a configuration change (EMBEDDING_PROVIDER).

Strategies:
  - placeholder: character-frequency histogram (128-dim). Deterministic and
    dependency-free, but NOT semantically meaningful. Use for tests/dev.
  - gemini:      Google Gen AI `text-embedding-004` (768-dim).
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from google import genai
from google.genai import types

from core.config import Settings
from services.exceptions import ConfigurationError, EmbeddingDimensionError, EmbeddingError

logger = logging.getLogger(__name__)

PLACEHOLDER_MODEL = "char-frequency-128"
PLACEHOLDER_DIMENSIONS = 128

GEMINI_MODEL = "text-embedding-004"
GEMINI_DIMENSIONS = 768


@dataclass(frozen=True)
class Embedding:
    """A fixed-length vector together with the model that produced it."""

    values: Tuple[float, ...]
    model: str

    @property
    def dimensions(self) -> int:
        return len(self.values)

    @property
    def is_zero(self) -> bool:
        return not any(self.values)

    def to_list(self) -> list:
        return list(self.values)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors, in [-1, 1].

    Returns 0.0 when either vector has zero norm. Raises
    EmbeddingDimensionError when the lengths differ.
    """
    if len(a) != len(b):
        raise EmbeddingDimensionError(len(a), len(b))
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    similarity = dot / (norm_a * norm_b)
    if math.isnan(similarity):
        return 0.0
    return max(-1.0, min(1.0, similarity))


class Embedder(ABC):
    """Maps text to a fixed-length vector."""

    model: str
    dimensions: int

    @abstractmethod
    async def embed(self, text: str) -> Embedding:
        """Embed `text`. Identical input must give an identical vector."""

    def _check(self, values: Sequence[float]) -> Embedding:
        if len(values) != self.dimensions:
            raise EmbeddingDimensionError(self.dimensions, len(values))
        return Embedding(values=tuple(float(v) for v in values), model=self.model)


class CharacterFrequencyEmbedder(Embedder):
    """
    Placeholder strategy: L2-normalized histogram of UTF-16 code units modulo
    128 over the lowercased text, so characters outside the BMP count as two
    surrogate units. The empty string (or any zero-norm histogram) maps to the
    all-zero vector.
    """

    def __init__(self, dimensions: int = PLACEHOLDER_DIMENSIONS) -> None:
        self.model = PLACEHOLDER_MODEL if dimensions == PLACEHOLDER_DIMENSIONS else f"char-frequency-{dimensions}"
        self.dimensions = dimensions

    def embed_sync(self, text: str) -> Embedding:
        counts = [0.0] * self.dimensions
        encoded = text.lower().encode("utf-16-le", "surrogatepass")
        for i in range(0, len(encoded), 2):
            unit = encoded[i] | (encoded[i + 1] << 8)
            counts[unit % self.dimensions] += 1.0

        magnitude = math.sqrt(sum(c * c for c in counts))
        if magnitude > 0:
            counts = [c / magnitude for c in counts]
        return self._check(counts)

    async def embed(self, text: str) -> Embedding:
        return self.embed_sync(text)


class GeminiEmbedder(Embedder):
    """Embeddings from the Google Gen AI SDK (API key or Vertex AI)."""

    def __init__(
        self,
        client: genai.Client,
        model: str = GEMINI_MODEL,
        dimensions: int = GEMINI_DIMENSIONS,
        task_type: str = "SEMANTIC_SIMILARITY",
    ) -> None:
        self.client = client
        self.model = model
        self.dimensions = dimensions
        self.task_type = task_type

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiEmbedder":
        if settings.gemini_api_key:
            logger.info("🧠 [Embeddings] Initializing Gemini embeddings via API Key")
            client = genai.Client(api_key=settings.gemini_api_key)
        elif settings.google_cloud_project:
            logger.info("🧠 [Embeddings] Initializing Gemini embeddings via Vertex AI")
            client = genai.Client(
                vertexai=True,
                project=settings.google_cloud_project,
                location=settings.google_cloud_location,
            )
        else:
            raise ConfigurationError(
                "Gemini embeddings need GEMINI_API_KEY/GOOGLE_API_KEY or GOOGLE_CLOUD_PROJECT"
            )
        return cls(
            client,
            model=settings.embedding_model or GEMINI_MODEL,
            dimensions=settings.embedding_dimensions or GEMINI_DIMENSIONS,
        )

    async def embed(self, text: str) -> Embedding:
        # The API rejects empty content; the zero vector scores 0 against everything.
        if not text.strip():
            return Embedding(values=(0.0,) * self.dimensions, model=self.model)

        try:
            response = await asyncio.to_thread(
                self.client.models.embed_content,
                model=self.model,
                contents=text,
                config=types.EmbedContentConfig(
                    task_type=self.task_type,
                    output_dimensionality=self.dimensions,
                ),
            )
        except Exception as exc:
            logger.error("❌ Gemini embedding request failed: %s", exc)
            raise EmbeddingError(f"Gemini embedding request failed: {exc}") from exc

        if not response.embeddings or response.embeddings[0].values is None:
            raise EmbeddingError("Gemini returned no embedding values")
        return self._check(response.embeddings[0].values)


def create_embedder(settings: Settings, provider: Optional[str] = None) -> Embedder:
    """Build the strategy named by `provider` (defaults to settings.embedding_provider)."""
    provider = (provider or settings.embedding_provider).lower()
    if provider == "placeholder":
        logger.info("🔤 [Embeddings] Using placeholder character-frequency embeddings (not semantic)")
        return CharacterFrequencyEmbedder()
    if provider == "gemini":
        return GeminiEmbedder.from_settings(settings)
    raise ConfigurationError(f"Unknown embedding provider: {provider!r}")
