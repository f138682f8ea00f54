"""
Indexer — turns a training document into stored embedding chunks.

Flow for one document:
  pending → processing → (chunk → embed → store, one chunk at a time) → completed
                                         └─ any exception ─→ failed (re-raised)

Re-processing deletes the document's previous chunks before writing new
ones. A failed run also purges whatever chunks it managed to write, so a
failed document never leaves retrievable partial content behind.

Calls for the same document id are serialized with a per-document
asyncio.Lock; different documents index concurrently.
"""

import asyncio
import logging
import time
from typing import Dict

from models.knowledge import DocumentStatus, TrainingDocument
from services.chunker import chunk_text
from services.embedding_service import Embedder
from services.exceptions import DocumentNotFoundError, DocumentProcessingError
from services.knowledge_store import KnowledgeStore

logger = logging.getLogger(__name__)


class Indexer:
    """Chunks, embeds and stores documents for an agent's knowledge base."""

    def __init__(self, store: KnowledgeStore, embedder: Embedder) -> None:
        self.store = store
        self.embedder = embedder
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def is_processing(self, document_id: str) -> bool:
        lock = self._locks.get(document_id)
        return bool(lock and lock.locked())

    async def process_document(self, document_id: str, agent_id: str, content: str) -> TrainingDocument:
        """
        Index `content` as the chunks of `document_id`.

        Returns the completed document. On failure the document is marked
        failed and DocumentProcessingError is raised from the original error.
        """
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._lock_users[document_id] = self._lock_users.get(document_id, 0) + 1
        try:
            async with lock:
                return await self._process(document_id, agent_id, content)
        finally:
            self._lock_users[document_id] -= 1
            if not self._lock_users[document_id]:
                del self._lock_users[document_id]
                self._locks.pop(document_id, None)

    async def _process(self, document_id: str, agent_id: str, content: str) -> TrainingDocument:
        config = await self.store.get_or_create_config(agent_id)
        await self.store.update_document_status(document_id, DocumentStatus.PROCESSING)
        start = time.monotonic()

        try:
            removed = await self.store.delete_chunks_for_document(document_id)
            if removed:
                logger.info("♻️  Re-processing document=%s: removed %d old chunks", document_id, removed)

            chunks = chunk_text(content, config.chunk_size, config.chunk_overlap)
            logger.info(
                "📚 Indexing document=%s agent=%s chunks=%d (size=%d overlap=%d model=%s)",
                document_id, agent_id, len(chunks), config.chunk_size, config.chunk_overlap, self.embedder.model,
            )

            for index, chunk in enumerate(chunks):
                embedding = await self.embedder.embed(chunk)
                await self.store.add_chunk(
                    document_id=document_id,
                    agent_id=agent_id,
                    chunk_index=index,
                    content=chunk,
                    embedding=embedding.to_list(),
                    embedding_model=embedding.model,
                    metadata={"chunk_size": len(chunk)},
                )

            document = await self.store.update_document_status(
                document_id, DocumentStatus.COMPLETED, chunk_count=len(chunks)
            )
        except Exception as exc:
            logger.error("❌ Processing document=%s failed: %s", document_id, exc, exc_info=True)
            await self._mark_failed(document_id, exc)
            if isinstance(exc, DocumentNotFoundError):
                raise
            raise DocumentProcessingError(document_id, str(exc) or type(exc).__name__) from exc

        logger.info(
            "✅ Document indexed: id=%s chunks=%d (%.2fs)",
            document_id, document.chunk_count, time.monotonic() - start,
        )
        return document

    async def _mark_failed(self, document_id: str, exc: Exception) -> None:
        """Purge the partial chunk set and record the failure."""
        try:
            purged = await self.store.delete_chunks_for_document(document_id)
            if purged:
                logger.info("🧹 Purged %d partial chunks of failed document=%s", purged, document_id)
            await self.store.update_document_status(
                document_id, DocumentStatus.FAILED, error_message=str(exc) or type(exc).__name__
            )
        except Exception as cleanup_exc:
            # The original error is what the caller needs to see
            logger.error("❌ Could not mark document=%s as failed: %s", document_id, cleanup_exc)

    async def reprocess_document(self, document_id: str) -> TrainingDocument:
        """Re-index a stored document from its saved content."""
        document = await self.store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return await self.process_document(document.id, document.agent_id, document.content)
