"""
KnowledgeService — agent knowledge base & RAG.

Provides:
  - Document upload: store as pending, then chunk + embed + index
  - Per-agent RAG configuration (lazily created with defaults)
  - Retrieval of context for a chat message and prompt augmentation

Architecture:
  - Embeddings: pluggable Embedder strategy (placeholder or Gemini)
  - Vector store: SQL tables via KnowledgeStore, brute-force cosine scan per agent
  - Chunking: fixed-size with overlap (per-agent, default 512 chars / 50 overlap)

Usage:
    service = KnowledgeService.create(session_factory, embedder)
    doc = await service.upload_document(agent_id, DocumentUploadRequest(...))
    prompt = await service.build_augmented_prompt(agent_id, user_message)
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.knowledge import (
    DocumentUploadRequest,
    KnowledgeSearchResult,
    RagConfig,
    RagConfigUpdateRequest,
    TrainingDocument,
)
from services.embedding_service import Embedder
from services.exceptions import DocumentProcessingError
from services.indexer import Indexer
from services.knowledge_store import KnowledgeStore
from services.prompt_augmenter import augment_prompt
from services.retriever import Retriever

logger = logging.getLogger(__name__)


class KnowledgeService:
    """Entry point used by document-upload handling and the chat flow."""

    def __init__(self, store: KnowledgeStore, indexer: Indexer, retriever: Retriever) -> None:
        self.store = store
        self.indexer = indexer
        self.retriever = retriever

    @classmethod
    def create(cls, session_factory: async_sessionmaker[AsyncSession], embedder: Embedder) -> "KnowledgeService":
        """Wire store, indexer and retriever around one embedder."""
        store = KnowledgeStore(session_factory, default_embedding_model=embedder.model)
        return cls(store, Indexer(store, embedder), Retriever(store, embedder))

    # ── Configuration ─────────────────────────────────────────────────────────

    async def get_config(self, agent_id: str) -> RagConfig:
        return await self.store.get_or_create_config(agent_id)

    async def update_config(self, agent_id: str, request: RagConfigUpdateRequest) -> RagConfig:
        return await self.store.update_config(agent_id, request)

    # ── Documents ─────────────────────────────────────────────────────────────

    async def upload_document(self, agent_id: str, request: DocumentUploadRequest) -> TrainingDocument:
        """
        Store a document and index it before returning.

        Indexing failures do not fail the upload: the returned document is in
        `failed` state with its error_message set.
        """
        document = await self.store.create_document(agent_id, request)
        try:
            return await self.indexer.process_document(document.id, agent_id, request.content)
        except DocumentProcessingError as exc:
            logger.warning("⚠️  Upload stored but indexing failed: %s", exc)
            return await self.store.get_document(document.id) or document

    async def reprocess_document(self, document_id: str) -> TrainingDocument:
        """Re-index a stored document. Raises DocumentNotFoundError / DocumentProcessingError."""
        return await self.indexer.reprocess_document(document_id)

    async def get_document(self, document_id: str) -> Optional[TrainingDocument]:
        return await self.store.get_document(document_id)

    async def list_documents(self, agent_id: str) -> List[TrainingDocument]:
        """List all documents for a given agent, newest first."""
        return await self.store.list_documents(agent_id)

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and all its chunks."""
        return await self.store.delete_document(document_id)

    # ── Retrieval ─────────────────────────────────────────────────────────────

    async def search(self, agent_id: str, query: str, top_k: Optional[int] = None) -> List[KnowledgeSearchResult]:
        return await self.retriever.search(agent_id, query, top_k)

    async def retrieve_context(self, agent_id: str, query: str) -> Optional[str]:
        return await self.retriever.retrieve_context(agent_id, query)

    async def build_augmented_prompt(self, agent_id: str, message: str) -> str:
        """
        The prompt to send to the language model for `message`.

        Retrieval errors are logged and the message is used as-is: the chat
        turn goes ahead without RAG.
        """
        try:
            context = await self.retriever.retrieve_context(agent_id, message)
        except Exception as exc:
            logger.warning("⚠️  RAG retrieval failed for agent=%s (continuing without): %s", agent_id, exc)
            return message
        return augment_prompt(message, context)

    async def build_messages(
        self, agent_id: str, message: str, system_prompt: Optional[str] = None
    ) -> List[Dict[str, str]]:
        """Ordered {role, content} messages for a completion call."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": await self.build_augmented_prompt(agent_id, message)})
        return messages

    async def stats(self, agent_id: str) -> dict:
        """Return knowledge base statistics for an agent."""
        return await self.store.stats(agent_id)
