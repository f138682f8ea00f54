"""
Pytest configuration and fixtures for backend tests.

Environment variables are set at module import time, before any project
module (and so core.config) is imported. Every test that touches storage
gets its own in-memory SQLite database.
"""

import os

import pytest
import pytest_asyncio

os.environ.update({
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "EMBEDDING_PROVIDER": "placeholder",
    "GEMINI_API_KEY": "",
    "GOOGLE_API_KEY": "",
    "GOOGLE_CLOUD_PROJECT": "",
})

from core.database import create_engine, create_session_factory, init_db  # noqa: E402
from services.agent_service import AgentService  # noqa: E402
from services.embedding_service import CharacterFrequencyEmbedder  # noqa: E402
from services.indexer import Indexer  # noqa: E402
from services.knowledge_service import KnowledgeService  # noqa: E402
from services.knowledge_store import KnowledgeStore  # noqa: E402
from services.retriever import Retriever  # noqa: E402


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database with all tables created."""
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def embedder():
    return CharacterFrequencyEmbedder()


@pytest.fixture
def store(session_factory, embedder):
    return KnowledgeStore(session_factory, default_embedding_model=embedder.model)


@pytest.fixture
def indexer(store, embedder):
    return Indexer(store, embedder)


@pytest.fixture
def retriever(store, embedder):
    return Retriever(store, embedder)


@pytest.fixture
def knowledge_service(store, indexer, retriever):
    return KnowledgeService(store, indexer, retriever)


@pytest.fixture
def agent_service(session_factory, store):
    return AgentService(session_factory, store)
