"""
Retriever — picks the stored chunks most relevant to a query.

Ranking: embed the query, score every chunk of the agent by cosine
similarity, keep scores >= similarity_threshold, sort by score (ties keep
creation order), truncate to top_k.

Bad stored data never raises here: a missing, malformed, wrong-model or
wrong-length vector scores 0.0 and falls under the threshold. Storage
errors do propagate.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from models.knowledge import EmbeddingChunk, KnowledgeSearchResult, RagConfig
from services.embedding_service import Embedder, Embedding, cosine_similarity
from services.exceptions import EmbeddingDimensionError
from services.knowledge_store import KnowledgeStore

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n"


def score_chunk(query: Embedding, chunk: EmbeddingChunk) -> float:
    """Similarity of one stored chunk to the query, 0.0 if it can't be compared."""
    if not chunk.embedding:
        return 0.0
    if chunk.embedding_model and chunk.embedding_model != query.model:
        logger.debug("Chunk %s was embedded with %s, query with %s", chunk.id, chunk.embedding_model, query.model)
        return 0.0
    try:
        return cosine_similarity(query.values, chunk.embedding)
    except EmbeddingDimensionError:
        logger.debug("Chunk %s has %d dims, query has %d", chunk.id, len(chunk.embedding), query.dimensions)
        return 0.0
    except (TypeError, ValueError):
        logger.debug("Chunk %s has a malformed embedding", chunk.id)
        return 0.0


def rank_chunks(
    query: Embedding,
    chunks: Sequence[EmbeddingChunk],
    threshold: float,
    top_k: int,
) -> List[Tuple[float, EmbeddingChunk]]:
    """Filter by threshold, then sort, then truncate. `chunks` must be in creation order."""
    scored = [(score_chunk(query, chunk), chunk) for chunk in chunks]
    kept = [item for item in scored if item[0] >= threshold]
    # sorted() is stable, so equal scores stay in creation order
    kept = sorted(kept, key=lambda item: -item[0])
    return kept[:max(top_k, 0)]


class Retriever:
    """Read-only similarity search over an agent's embedding chunks."""

    def __init__(self, store: KnowledgeStore, embedder: Embedder) -> None:
        self.store = store
        self.embedder = embedder

    async def _rank(
        self, config: RagConfig, agent_id: str, query: str, top_k: Optional[int] = None
    ) -> List[Tuple[float, EmbeddingChunk]]:
        chunks = await self.store.list_chunks_for_agent(agent_id)
        if not chunks:
            return []

        query_embedding = await self.embedder.embed(query)
        ranked = rank_chunks(
            query_embedding,
            chunks,
            threshold=config.similarity_threshold,
            top_k=config.top_k if top_k is None else top_k,
        )
        logger.debug(
            "🔎 agent=%s scored %d chunks, %d above %.2f",
            agent_id, len(chunks), len(ranked), config.similarity_threshold,
        )
        return ranked

    async def retrieve_context(self, agent_id: str, query: str) -> Optional[str]:
        """
        Context block for `query`, or None when RAG is disabled for the agent
        or nothing clears the similarity threshold.
        """
        config = await self.store.get_or_create_config(agent_id)
        if not config.enabled:
            return None

        ranked = await self._rank(config, agent_id, query)
        if not ranked:
            return None

        logger.info("📚 RAG: %d chunks selected for agent=%s", len(ranked), agent_id)
        return CONTEXT_SEPARATOR.join(chunk.content for _, chunk in ranked)

    async def search(self, agent_id: str, query: str, top_k: Optional[int] = None) -> List[KnowledgeSearchResult]:
        """
        Ranked matches for `query` with their scores.

        Applies the agent's threshold and top_k (unless overridden) but not
        the `enabled` flag, so retrieval can be previewed before turning it on.
        """
        config = await self.store.get_or_create_config(agent_id)
        ranked = await self._rank(config, agent_id, query, top_k)
        return [
            KnowledgeSearchResult(
                chunk_id=chunk.id,
                document_id=chunk.document_id,
                chunk_index=chunk.chunk_index,
                text=chunk.content,
                score=score,
            )
            for score, chunk in ranked
        ]
