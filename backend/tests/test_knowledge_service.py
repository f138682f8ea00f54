"""
End-to-end tests for backend/services/knowledge_service.py

Covers the upload → index → retrieve → augment flow on a real (in-memory)
database with the placeholder embedder.
"""

from unittest.mock import AsyncMock, patch

import pytest

from models.knowledge import DocumentStatus, DocumentUploadRequest, RagConfigUpdateRequest
from services.embedding_service import CharacterFrequencyEmbedder
from services.exceptions import DocumentNotFoundError
from services.knowledge_service import KnowledgeService


def _upload(content, file_name="doc.txt"):
    return DocumentUploadRequest(file_name=file_name, content=content)


class TestEndToEnd:

    @pytest.mark.asyncio
    async def test_document_is_indexed(self, knowledge_service):
        """A short document with small windows ends up completed with several chunks."""
        await knowledge_service.update_config("agent-1", RagConfigUpdateRequest(chunk_size=20, chunk_overlap=5))

        document = await knowledge_service.upload_document(
            "agent-1", _upload("The quick brown fox. The lazy dog sleeps.")
        )

        assert document.status == DocumentStatus.COMPLETED
        assert document.chunk_count >= 2

    @pytest.mark.asyncio
    async def test_disabled_agent_gets_no_context(self, knowledge_service):
        await knowledge_service.upload_document("agent-1", _upload("Our office opens at 9am."))
        await knowledge_service.update_config("agent-1", RagConfigUpdateRequest(enabled=False))

        assert await knowledge_service.retrieve_context("agent-1", "Our office opens at 9am.") is None
        assert await knowledge_service.retrieve_context("agent-1", "anything else") is None

    @pytest.mark.asyncio
    async def test_identical_text_is_sole_context(self, knowledge_service):
        await knowledge_service.upload_document("agent-1", _upload("Refunds take five business days."))

        context = await knowledge_service.retrieve_context("agent-1", "Refunds take five business days.")

        assert context == "Refunds take five business days."

    @pytest.mark.asyncio
    async def test_deleted_document_is_forgotten(self, knowledge_service, store):
        """Deleting a document removes its chunks from retrieval."""
        document = await knowledge_service.upload_document("agent-1", _upload("Parking is free after 6pm."))
        assert await knowledge_service.retrieve_context("agent-1", "Parking is free after 6pm.") is not None

        assert await knowledge_service.delete_document(document.id) is True

        assert await store.list_chunks_for_document(document.id) == []
        assert await knowledge_service.retrieve_context("agent-1", "Parking is free after 6pm.") is None

    @pytest.mark.asyncio
    async def test_delete_missing_document(self, knowledge_service):
        assert await knowledge_service.delete_document("missing") is False


class TestUploadFailure:

    @pytest.mark.asyncio
    async def test_failed_indexing_returns_failed_document(self, session_factory):
        """The upload succeeds even when indexing fails; the document shows failed."""

        class DownEmbedder(CharacterFrequencyEmbedder):
            async def embed(self, text):
                raise RuntimeError("embedding backend down")

        service = KnowledgeService.create(session_factory, DownEmbedder())

        document = await service.upload_document("agent-1", _upload("some text"))

        assert document.status == DocumentStatus.FAILED
        assert "embedding backend down" in document.error_message
        listed = await service.list_documents("agent-1")
        assert [d.status for d in listed] == [DocumentStatus.FAILED]

    @pytest.mark.asyncio
    async def test_reprocess_missing(self, knowledge_service):
        with pytest.raises(DocumentNotFoundError):
            await knowledge_service.reprocess_document("missing")


class TestAugmentation:

    @pytest.mark.asyncio
    async def test_prompt_with_context(self, knowledge_service):
        await knowledge_service.upload_document("agent-1", _upload("We ship worldwide."))

        prompt = await knowledge_service.build_augmented_prompt("agent-1", "We ship worldwide.")

        assert prompt.startswith("Context information from training documents:")
        assert "We ship worldwide.\n---" in prompt
        assert prompt.endswith("We ship worldwide.")

    @pytest.mark.asyncio
    async def test_prompt_without_context(self, knowledge_service):
        assert await knowledge_service.build_augmented_prompt("agent-1", "Hi there") == "Hi there"

    @pytest.mark.asyncio
    async def test_retrieval_failure_falls_back(self, knowledge_service):
        """A storage outage during retrieval must not fail the chat turn."""
        with patch.object(
            knowledge_service.retriever, "retrieve_context", new=AsyncMock(side_effect=ConnectionError("db down"))
        ):
            prompt = await knowledge_service.build_augmented_prompt("agent-1", "Hi there")

        assert prompt == "Hi there"

    @pytest.mark.asyncio
    async def test_build_messages(self, knowledge_service):
        await knowledge_service.upload_document("agent-1", _upload("We ship worldwide."))

        messages = await knowledge_service.build_messages("agent-1", "We ship worldwide.", system_prompt="Be brief.")

        assert [m["role"] for m in messages] == ["system", "user"]
        assert messages[0]["content"] == "Be brief."
        assert "Context information from training documents:" in messages[1]["content"]

    @pytest.mark.asyncio
    async def test_build_messages_without_system_prompt(self, knowledge_service):
        messages = await knowledge_service.build_messages("agent-1", "Hello")

        assert messages == [{"role": "user", "content": "Hello"}]


class TestStats:

    @pytest.mark.asyncio
    async def test_stats(self, knowledge_service):
        await knowledge_service.update_config("agent-1", RagConfigUpdateRequest(chunk_size=10, chunk_overlap=0))
        await knowledge_service.upload_document("agent-1", _upload("x" * 25))

        stats = await knowledge_service.stats("agent-1")

        assert stats["documents"] == 1
        assert stats["chunks"] == 3
        assert stats["by_status"]["completed"] == 1
