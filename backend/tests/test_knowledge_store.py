"""
Tests for backend/services/knowledge_store.py

- Lazy RagConfig creation and partial updates
- Document lifecycle and listing
- Chunk writes, per-agent scans and cascading deletes
"""

import pytest
from pydantic import ValidationError

from models.knowledge import DocumentStatus, DocumentUploadRequest, RagConfigUpdateRequest
from services.exceptions import DocumentNotFoundError


async def _document(store, agent_id="agent-1", content="hello world", file_name="notes.txt"):
    return await store.create_document(agent_id, DocumentUploadRequest(file_name=file_name, content=content))


async def _add_chunks(store, document, count=2, embedding=None):
    for i in range(count):
        await store.add_chunk(
            document_id=document.id,
            agent_id=document.agent_id,
            chunk_index=i,
            content=f"chunk {i}",
            embedding=embedding or [1.0, 0.0],
            embedding_model="test-model",
        )


class TestRagConfig:

    @pytest.mark.asyncio
    async def test_created_with_defaults(self, store):
        """Should create the config on first access with the documented defaults."""
        config = await store.get_or_create_config("agent-1")

        assert config.agent_id == "agent-1"
        assert config.enabled is True
        assert config.chunk_size == 512
        assert config.chunk_overlap == 50
        assert config.top_k == 3
        assert config.similarity_threshold == pytest.approx(0.7)
        assert config.embedding_model == "char-frequency-128"

    @pytest.mark.asyncio
    async def test_get_is_idempotent(self, store):
        await store.update_config("agent-1", RagConfigUpdateRequest(top_k=7))

        config = await store.get_or_create_config("agent-1")

        assert config.top_k == 7

    @pytest.mark.asyncio
    async def test_partial_update(self, store):
        """Should only change the fields that were provided."""
        config = await store.update_config(
            "agent-1", RagConfigUpdateRequest(enabled=False, chunk_size=1024)
        )

        assert config.enabled is False
        assert config.chunk_size == 1024
        assert config.chunk_overlap == 50
        assert config.top_k == 3

    @pytest.mark.asyncio
    async def test_embedding_model_not_updatable(self, store):
        """Should keep the active embedder's model id; updates cannot override it."""
        config = await store.update_config(
            "agent-1", RagConfigUpdateRequest(top_k=4, embedding_model="other-model")
        )

        assert "embedding_model" not in RagConfigUpdateRequest.model_fields
        assert config.embedding_model == "char-frequency-128"

    @pytest.mark.asyncio
    async def test_configs_are_per_agent(self, store):
        await store.update_config("agent-1", RagConfigUpdateRequest(top_k=9))

        other = await store.get_or_create_config("agent-2")

        assert other.top_k == 3

    @pytest.mark.asyncio
    async def test_overlap_not_below_size_is_accepted(self, store):
        """Should accept the anti-pattern rather than reject it."""
        config = await store.update_config("agent-1", RagConfigUpdateRequest(chunk_size=100, chunk_overlap=100))

        assert config.chunk_overlap == 100

    def test_update_request_validation(self):
        with pytest.raises(ValidationError):
            RagConfigUpdateRequest(similarity_threshold=1.5)
        with pytest.raises(ValidationError):
            RagConfigUpdateRequest(top_k=0)
        with pytest.raises(ValidationError):
            RagConfigUpdateRequest(chunk_overlap=-1)


class TestDocuments:

    @pytest.mark.asyncio
    async def test_create_pending(self, store):
        document = await _document(store, content="héllo")

        assert document.status == DocumentStatus.PENDING
        assert document.chunk_count == 0
        assert document.file_size == len("héllo".encode())
        assert document.created_at is not None

    @pytest.mark.asyncio
    async def test_explicit_file_size_kept(self, store):
        document = await store.create_document(
            "agent-1", DocumentUploadRequest(file_name="a.pdf", file_type="application/pdf", file_size=4096, content="x")
        )

        assert document.file_size == 4096
        assert document.file_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get_document("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_list_scoped_by_agent(self, store):
        await _document(store, "agent-1", file_name="a.txt")
        await _document(store, "agent-1", file_name="b.txt")
        await _document(store, "agent-2", file_name="c.txt")

        documents = await store.list_documents("agent-1")

        assert {d.file_name for d in documents} == {"a.txt", "b.txt"}

    @pytest.mark.asyncio
    async def test_status_update(self, store):
        document = await _document(store)

        updated = await store.update_document_status(document.id, DocumentStatus.COMPLETED, chunk_count=4)

        assert updated.status == DocumentStatus.COMPLETED
        assert updated.chunk_count == 4
        assert updated.error_message is None

    @pytest.mark.asyncio
    async def test_status_update_records_error(self, store):
        document = await _document(store)

        updated = await store.update_document_status(document.id, DocumentStatus.FAILED, error_message="boom")

        assert updated.status == DocumentStatus.FAILED
        assert updated.error_message == "boom"

    @pytest.mark.asyncio
    async def test_status_update_missing_document(self, store):
        with pytest.raises(DocumentNotFoundError):
            await store.update_document_status("missing", DocumentStatus.PROCESSING)

    @pytest.mark.asyncio
    async def test_delete_removes_chunks(self, store):
        """Should delete the document and every chunk it owns."""
        document = await _document(store)
        await _add_chunks(store, document, count=3)

        assert await store.delete_document(document.id) is True

        assert await store.get_document(document.id) is None
        assert await store.list_chunks_for_document(document.id) == []

    @pytest.mark.asyncio
    async def test_delete_missing(self, store):
        assert await store.delete_document("missing") is False


class TestChunks:

    @pytest.mark.asyncio
    async def test_add_chunk_records_dimensions(self, store):
        document = await _document(store)

        chunk = await store.add_chunk(
            document_id=document.id,
            agent_id="agent-1",
            chunk_index=0,
            content="hello",
            embedding=[0.5, 0.5, 0.0],
            embedding_model="test-model",
            metadata={"chunk_size": 5},
        )

        assert chunk.dimensions == 3
        assert chunk.embedding == [0.5, 0.5, 0.0]
        assert chunk.metadata == {"chunk_size": 5}

    @pytest.mark.asyncio
    async def test_agent_scan_skips_unfinished_documents(self, store):
        """Should only return chunks of completed documents by default."""
        done = await _document(store)
        in_flight = await _document(store)
        await _add_chunks(store, done, count=2)
        await _add_chunks(store, in_flight, count=2)
        await store.update_document_status(done.id, DocumentStatus.COMPLETED, chunk_count=2)
        await store.update_document_status(in_flight.id, DocumentStatus.PROCESSING)

        chunks = await store.list_chunks_for_agent("agent-1")
        everything = await store.list_chunks_for_agent("agent-1", completed_only=False)

        assert {c.document_id for c in chunks} == {done.id}
        assert len(everything) == 4

    @pytest.mark.asyncio
    async def test_agent_scan_in_creation_order(self, store):
        document = await _document(store)
        await _add_chunks(store, document, count=4)
        await store.update_document_status(document.id, DocumentStatus.COMPLETED, chunk_count=4)

        chunks = await store.list_chunks_for_agent("agent-1")

        ids = [c.id for c in chunks]
        assert ids == sorted(ids)
        assert [c.chunk_index for c in chunks] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_agent_scan_is_scoped(self, store):
        mine = await _document(store, "agent-1")
        theirs = await _document(store, "agent-2")
        await _add_chunks(store, mine)
        await _add_chunks(store, theirs)
        await store.update_document_status(mine.id, DocumentStatus.COMPLETED, chunk_count=2)
        await store.update_document_status(theirs.id, DocumentStatus.COMPLETED, chunk_count=2)

        chunks = await store.list_chunks_for_agent("agent-2")

        assert {c.agent_id for c in chunks} == {"agent-2"}

    @pytest.mark.asyncio
    async def test_delete_chunks_for_document(self, store):
        document = await _document(store)
        await _add_chunks(store, document, count=3)

        assert await store.delete_chunks_for_document(document.id) == 3
        assert await store.list_chunks_for_document(document.id) == []


class TestAgentData:

    @pytest.mark.asyncio
    async def test_delete_agent_data(self, store):
        """Should remove the agent's chunks, documents and config, and nothing else."""
        mine = await _document(store, "agent-1")
        theirs = await _document(store, "agent-2")
        await _add_chunks(store, mine)
        await _add_chunks(store, theirs)
        await store.get_or_create_config("agent-1")

        removed = await store.delete_agent_data("agent-1")

        assert removed == {"chunks": 2, "documents": 1, "configs": 1}
        assert await store.list_documents("agent-1") == []
        assert len(await store.list_documents("agent-2")) == 1
        assert len(await store.list_chunks_for_document(theirs.id)) == 2

    @pytest.mark.asyncio
    async def test_stats(self, store):
        done = await _document(store)
        await _document(store)
        await _add_chunks(store, done, count=3)
        await store.update_document_status(done.id, DocumentStatus.COMPLETED, chunk_count=3)

        stats = await store.stats("agent-1")

        assert stats["documents"] == 2
        assert stats["chunks"] == 3
        assert stats["by_status"]["completed"] == 1
        assert stats["by_status"]["pending"] == 1
        assert stats["by_status"]["failed"] == 0
