import uuid
import logging
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.agent import AgentConfig, AgentCreateRequest
from models.database_models import Agent as AgentModel
from services.knowledge_store import KnowledgeStore

logger = logging.getLogger(__name__)


class AgentService:
    """
    Minimal CRUD for the agents that own knowledge bases.
    Deleting an agent also deletes its RAG config, documents and chunks.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], store: KnowledgeStore) -> None:
        self._session_factory = session_factory
        self.store = store

    def _to_pydantic(self, model: AgentModel) -> AgentConfig:
        """Helper to convert SQLAlchemy model to Pydantic AgentConfig."""
        return AgentConfig(
            id=model.id,
            name=model.name,
            system_prompt=model.system_prompt,
            is_active=model.is_active,
        )

    async def get_agent(self, agent_id: str, db: Optional[AsyncSession] = None) -> Optional[AgentConfig]:
        """Fetch a single agent by ID. Returns None if not found."""
        if db is None:
            async with self._session_factory() as session:
                return await self.get_agent(agent_id, session)

        result = await db.execute(select(AgentModel).where(AgentModel.id == agent_id))
        model = result.scalar_one_or_none()
        return self._to_pydantic(model) if model else None

    async def list_agents(self, db: Optional[AsyncSession] = None) -> List[AgentConfig]:
        """Return all agents in the database."""
        if db is None:
            async with self._session_factory() as session:
                return await self.list_agents(session)

        result = await db.execute(select(AgentModel).order_by(AgentModel.created_at.desc()))
        return [self._to_pydantic(m) for m in result.scalars().all()]

    async def create_agent(self, request: AgentCreateRequest, db: Optional[AsyncSession] = None) -> AgentConfig:
        """Create a new agent and persist it to the database."""
        if db is None:
            async with self._session_factory() as session:
                return await self.create_agent(request, session)

        model = AgentModel(
            id=str(uuid.uuid4()),
            name=request.name,
            system_prompt=request.system_prompt,
        )
        db.add(model)
        await db.commit()
        await db.refresh(model)
        logger.info("✅ Created agent in DB: %s (%s)", model.name, model.id)
        return self._to_pydantic(model)

    async def delete_agent(self, agent_id: str, db: Optional[AsyncSession] = None) -> bool:
        """Delete an agent and everything in its knowledge base."""
        if db is None:
            async with self._session_factory() as session:
                return await self.delete_agent(agent_id, session)

        result = await db.execute(select(AgentModel).where(AgentModel.id == agent_id))
        model = result.scalar_one_or_none()
        if not model:
            return False

        await self.store.delete_agent_data(agent_id, db)
        await db.delete(model)
        await db.commit()
        logger.info("🗑️ Deleted agent from DB: %s", agent_id)
        return True
