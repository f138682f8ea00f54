"""
KnowledgeStore — persistence for RAG configuration, training documents and
embedding chunks.

Every method takes an optional AsyncSession. Without one, a session is
opened from the injected session factory for that call only. All reads and
writes are scoped by agent id or document id.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_TOP_K,
)
from models.database_models import (
    EmbeddingChunk as ChunkModel,
    RagConfiguration as RagConfigModel,
    TrainingDocument as DocumentModel,
)
from models.knowledge import (
    DocumentStatus,
    DocumentUploadRequest,
    EmbeddingChunk,
    RagConfig,
    RagConfigUpdateRequest,
    TrainingDocument,
)
from services.exceptions import DocumentNotFoundError

logger = logging.getLogger(__name__)


def _stored_vector(chunk_id: int, value) -> Optional[List[float]]:
    """The stored JSON vector as floats, or None when it is not a flat list of numbers."""
    if value is None:
        return None
    if isinstance(value, list) and all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in value
    ):
        return [float(v) for v in value]
    logger.debug("Chunk %s has a malformed stored embedding (%s)", chunk_id, type(value).__name__)
    return None


class KnowledgeStore:
    """CRUD over the knowledge tables via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], default_embedding_model: str) -> None:
        self._session_factory = session_factory
        self.default_embedding_model = default_embedding_model

    # ── Converters ────────────────────────────────────────────────────────────

    def _config_to_pydantic(self, model: RagConfigModel) -> RagConfig:
        return RagConfig(
            agent_id=model.agent_id,
            enabled=model.enabled,
            chunk_size=model.chunk_size,
            chunk_overlap=model.chunk_overlap,
            top_k=model.top_k,
            similarity_threshold=model.similarity_threshold,
            embedding_model=model.embedding_model,
        )

    def _document_to_pydantic(self, model: DocumentModel) -> TrainingDocument:
        return TrainingDocument(
            id=model.id,
            agent_id=model.agent_id,
            file_name=model.file_name,
            file_type=model.file_type,
            file_size=model.file_size,
            content=model.content,
            status=DocumentStatus(model.status),
            chunk_count=model.chunk_count,
            error_message=model.error_message,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _chunk_to_pydantic(self, model: ChunkModel) -> EmbeddingChunk:
        return EmbeddingChunk(
            id=model.id,
            document_id=model.document_id,
            agent_id=model.agent_id,
            chunk_index=model.chunk_index,
            content=model.content,
            embedding=_stored_vector(model.id, model.embedding),
            dimensions=model.dimensions,
            embedding_model=model.embedding_model,
            metadata=model.chunk_metadata if isinstance(model.chunk_metadata, dict) else None,
            created_at=model.created_at,
        )

    # ── RAG configuration ─────────────────────────────────────────────────────

    async def _select_config(self, agent_id: str, db: AsyncSession) -> Optional[RagConfigModel]:
        result = await db.execute(select(RagConfigModel).where(RagConfigModel.agent_id == agent_id))
        return result.scalar_one_or_none()

    async def _get_or_create_config_model(self, agent_id: str, db: AsyncSession) -> RagConfigModel:
        model = await self._select_config(agent_id, db)
        if model:
            return model

        model = RagConfigModel(
            agent_id=agent_id,
            enabled=True,
            chunk_size=DEFAULT_CHUNK_SIZE,
            chunk_overlap=DEFAULT_CHUNK_OVERLAP,
            top_k=DEFAULT_TOP_K,
            similarity_threshold=DEFAULT_SIMILARITY_THRESHOLD,
            embedding_model=self.default_embedding_model,
        )
        db.add(model)
        try:
            await db.commit()
        except IntegrityError:
            # Another request created it first
            await db.rollback()
            return await self._select_config(agent_id, db)
        await db.refresh(model)
        logger.info("🌱 Created default RAG config for agent=%s", agent_id)
        return model

    async def get_or_create_config(self, agent_id: str, db: Optional[AsyncSession] = None) -> RagConfig:
        """Return the agent's RagConfig, creating it with defaults on first access."""
        if db is None:
            async with self._session_factory() as session:
                return await self.get_or_create_config(agent_id, session)

        return self._config_to_pydantic(await self._get_or_create_config_model(agent_id, db))

    async def update_config(
        self, agent_id: str, request: RagConfigUpdateRequest, db: Optional[AsyncSession] = None
    ) -> RagConfig:
        """Apply only the provided fields to the agent's RagConfig."""
        if db is None:
            async with self._session_factory() as session:
                return await self.update_config(agent_id, request, session)

        model = await self._get_or_create_config_model(agent_id, db)
        data = request.model_dump(exclude_none=True)
        for key, value in data.items():
            setattr(model, key, value)

        if model.chunk_overlap >= model.chunk_size:
            logger.warning(
                "⚠️  RAG config for agent=%s has chunk_overlap (%d) >= chunk_size (%d); "
                "documents will be indexed as a single window",
                agent_id, model.chunk_overlap, model.chunk_size,
            )

        await db.commit()
        await db.refresh(model)
        logger.info("✏️ Updated RAG config for agent=%s: %s", agent_id, data)
        return self._config_to_pydantic(model)

    # ── Training documents ────────────────────────────────────────────────────

    async def create_document(
        self, agent_id: str, request: DocumentUploadRequest, db: Optional[AsyncSession] = None
    ) -> TrainingDocument:
        """Persist a new document in `pending` state."""
        if db is None:
            async with self._session_factory() as session:
                return await self.create_document(agent_id, request, session)

        file_size = request.file_size if request.file_size is not None else len(request.content.encode())
        model = DocumentModel(
            agent_id=agent_id,
            file_name=request.file_name,
            file_type=request.file_type,
            file_size=file_size,
            content=request.content,
            status=DocumentStatus.PENDING.value,
            chunk_count=0,
        )
        db.add(model)
        await db.commit()
        await db.refresh(model)
        logger.info("📄 Training document created: id=%s agent=%s file=%s", model.id, agent_id, model.file_name)
        return self._document_to_pydantic(model)

    async def get_document(self, document_id: str, db: Optional[AsyncSession] = None) -> Optional[TrainingDocument]:
        if db is None:
            async with self._session_factory() as session:
                return await self.get_document(document_id, session)

        model = await db.get(DocumentModel, document_id)
        return self._document_to_pydantic(model) if model else None

    async def list_documents(self, agent_id: str, db: Optional[AsyncSession] = None) -> List[TrainingDocument]:
        """All documents for an agent, newest first."""
        if db is None:
            async with self._session_factory() as session:
                return await self.list_documents(agent_id, session)

        result = await db.execute(
            select(DocumentModel)
            .where(DocumentModel.agent_id == agent_id)
            .order_by(DocumentModel.created_at.desc())
        )
        return [self._document_to_pydantic(m) for m in result.scalars().all()]

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        chunk_count: Optional[int] = None,
        error_message: Optional[str] = None,
        db: Optional[AsyncSession] = None,
    ) -> TrainingDocument:
        """Move a document to `status`. error_message is cleared unless given."""
        if db is None:
            async with self._session_factory() as session:
                return await self.update_document_status(document_id, status, chunk_count, error_message, session)

        model = await db.get(DocumentModel, document_id)
        if model is None:
            raise DocumentNotFoundError(document_id)

        model.status = status.value
        model.error_message = error_message[:1000] if error_message else None
        if chunk_count is not None:
            model.chunk_count = chunk_count
        model.updated_at = datetime.utcnow()
        await db.commit()
        await db.refresh(model)
        logger.debug("Document %s → %s", document_id, status.value)
        return self._document_to_pydantic(model)

    async def delete_document(self, document_id: str, db: Optional[AsyncSession] = None) -> bool:
        """Delete a document and all its chunks in one transaction."""
        if db is None:
            async with self._session_factory() as session:
                return await self.delete_document(document_id, session)

        model = await db.get(DocumentModel, document_id)
        if model is None:
            return False

        # Chunks go first so none outlive their document
        result = await db.execute(delete(ChunkModel).where(ChunkModel.document_id == document_id))
        await db.delete(model)
        await db.commit()
        logger.info("🗑️  Document deleted: id=%s (%d chunks removed)", document_id, result.rowcount or 0)
        return True

    # ── Embedding chunks ──────────────────────────────────────────────────────

    async def add_chunk(
        self,
        document_id: str,
        agent_id: str,
        chunk_index: int,
        content: str,
        embedding: List[float],
        embedding_model: str,
        metadata: Optional[Dict] = None,
        db: Optional[AsyncSession] = None,
    ) -> EmbeddingChunk:
        if db is None:
            async with self._session_factory() as session:
                return await self.add_chunk(
                    document_id, agent_id, chunk_index, content, embedding, embedding_model, metadata, session
                )

        model = ChunkModel(
            document_id=document_id,
            agent_id=agent_id,
            chunk_index=chunk_index,
            content=content,
            embedding=list(embedding),
            dimensions=len(embedding),
            embedding_model=embedding_model,
            chunk_metadata=metadata,
        )
        db.add(model)
        await db.commit()
        await db.refresh(model)
        return self._chunk_to_pydantic(model)

    async def delete_chunks_for_document(self, document_id: str, db: Optional[AsyncSession] = None) -> int:
        """Remove every chunk of a document. Returns the number removed."""
        if db is None:
            async with self._session_factory() as session:
                return await self.delete_chunks_for_document(document_id, session)

        result = await db.execute(delete(ChunkModel).where(ChunkModel.document_id == document_id))
        await db.commit()
        return result.rowcount or 0

    async def list_chunks_for_document(self, document_id: str, db: Optional[AsyncSession] = None) -> List[EmbeddingChunk]:
        if db is None:
            async with self._session_factory() as session:
                return await self.list_chunks_for_document(document_id, session)

        result = await db.execute(
            select(ChunkModel).where(ChunkModel.document_id == document_id).order_by(ChunkModel.chunk_index)
        )
        return [self._chunk_to_pydantic(m) for m in result.scalars().all()]

    async def list_chunks_for_agent(
        self, agent_id: str, completed_only: bool = True, db: Optional[AsyncSession] = None
    ) -> List[EmbeddingChunk]:
        """
        Chunks for an agent in creation order.

        With completed_only, chunks of documents that are still processing
        (or failed) are left out.
        """
        if db is None:
            async with self._session_factory() as session:
                return await self.list_chunks_for_agent(agent_id, completed_only, session)

        query = select(ChunkModel).where(ChunkModel.agent_id == agent_id)
        if completed_only:
            query = query.join(DocumentModel, ChunkModel.document_id == DocumentModel.id).where(
                DocumentModel.status == DocumentStatus.COMPLETED.value
            )
        result = await db.execute(query.order_by(ChunkModel.id))
        return [self._chunk_to_pydantic(m) for m in result.scalars().all()]

    # ── Agent-wide ────────────────────────────────────────────────────────────

    async def delete_agent_data(self, agent_id: str, db: Optional[AsyncSession] = None) -> Dict[str, int]:
        """Remove every chunk, document and the RAG config owned by an agent."""
        if db is None:
            async with self._session_factory() as session:
                return await self.delete_agent_data(agent_id, session)

        chunks = await db.execute(delete(ChunkModel).where(ChunkModel.agent_id == agent_id))
        documents = await db.execute(delete(DocumentModel).where(DocumentModel.agent_id == agent_id))
        configs = await db.execute(delete(RagConfigModel).where(RagConfigModel.agent_id == agent_id))
        await db.commit()
        removed = {
            "chunks": chunks.rowcount or 0,
            "documents": documents.rowcount or 0,
            "configs": configs.rowcount or 0,
        }
        logger.info("🗑️  Knowledge data removed for agent=%s: %s", agent_id, removed)
        return removed

    async def stats(self, agent_id: str, db: Optional[AsyncSession] = None) -> dict:
        """Document counts by status plus total chunks for an agent."""
        if db is None:
            async with self._session_factory() as session:
                return await self.stats(agent_id, session)

        rows = await db.execute(
            select(DocumentModel.status, func.count(DocumentModel.id))
            .where(DocumentModel.agent_id == agent_id)
            .group_by(DocumentModel.status)
        )
        by_status = {status.value: 0 for status in DocumentStatus}
        for status, count in rows.all():
            by_status[status] = count
        chunks = await db.scalar(select(func.count(ChunkModel.id)).where(ChunkModel.agent_id == agent_id))
        return {
            "documents": sum(by_status.values()),
            "by_status": by_status,
            "chunks": chunks or 0,
        }
