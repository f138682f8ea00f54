"""
Tests for backend/services/agent_service.py
"""

import pytest

from models.agent import AgentCreateRequest
from models.knowledge import DocumentUploadRequest


class TestAgentService:

    @pytest.mark.asyncio
    async def test_create_and_get(self, agent_service):
        agent = await agent_service.create_agent(AgentCreateRequest(name="Support Bot", system_prompt="Be kind."))

        fetched = await agent_service.get_agent(agent.id)

        assert fetched == agent
        assert fetched.is_active is True

    @pytest.mark.asyncio
    async def test_get_missing(self, agent_service):
        assert await agent_service.get_agent("missing") is None

    @pytest.mark.asyncio
    async def test_list(self, agent_service):
        await agent_service.create_agent(AgentCreateRequest(name="One"))
        await agent_service.create_agent(AgentCreateRequest(name="Two"))

        assert {a.name for a in await agent_service.list_agents()} == {"One", "Two"}

    @pytest.mark.asyncio
    async def test_delete_removes_knowledge_base(self, agent_service, knowledge_service, store):
        """Deleting an agent removes its config, documents and chunks."""
        agent = await agent_service.create_agent(AgentCreateRequest(name="Support Bot"))
        document = await knowledge_service.upload_document(
            agent.id, DocumentUploadRequest(file_name="faq.txt", content="Returns within 30 days.")
        )

        assert await agent_service.delete_agent(agent.id) is True

        assert await agent_service.get_agent(agent.id) is None
        assert await knowledge_service.list_documents(agent.id) == []
        assert await store.list_chunks_for_document(document.id) == []

    @pytest.mark.asyncio
    async def test_delete_missing(self, agent_service):
        assert await agent_service.delete_agent("missing") is False
