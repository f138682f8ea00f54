"""
Pydantic models for the agent knowledge base (RAG).

These are the shapes services hand back to callers; SQLAlchemy rows never
leave the services layer.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RagConfig(BaseModel):
    """Retrieval settings for one agent."""

    agent_id: str
    enabled: bool = Field(default=True, description="Whether retrieval runs for this agent")
    chunk_size: int = Field(default=512, gt=0, description="Characters per chunk")
    chunk_overlap: int = Field(default=50, ge=0, description="Characters shared by consecutive chunks")
    top_k: int = Field(default=3, gt=0, description="Maximum chunks injected into a prompt")
    similarity_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Minimum cosine similarity for a chunk to be used"
    )
    embedding_model: str = Field(
        ..., description="Identifier of the model that produced stored vectors; set from the active embedder"
    )


class RagConfigUpdateRequest(BaseModel):
    """Partial update for an agent's RagConfig. Omitted fields are left as-is."""

    enabled: Optional[bool] = None
    chunk_size: Optional[int] = Field(default=None, ge=1, le=8192)
    chunk_overlap: Optional[int] = Field(default=None, ge=0)
    top_k: Optional[int] = Field(default=None, ge=1, le=50)
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class DocumentUploadRequest(BaseModel):
    """Already-extracted text of an uploaded file."""

    file_name: str
    file_type: str = Field(default="text/plain", description="MIME type of the uploaded file")
    file_size: Optional[int] = Field(default=None, ge=0, description="Defaults to the UTF-8 size of content")
    content: str


class TrainingDocument(BaseModel):
    """A document uploaded to an agent's knowledge base."""

    id: str
    agent_id: str
    file_name: str
    file_type: str = "text/plain"
    file_size: int = 0
    content: str = ""
    status: DocumentStatus = DocumentStatus.PENDING
    chunk_count: int = Field(default=0, description="Number of text chunks indexed")
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EmbeddingChunk(BaseModel):
    """A single searchable chunk of a document with its embedding."""

    id: int
    document_id: str
    agent_id: str
    chunk_index: int
    content: str
    embedding: Optional[List[float]] = None
    dimensions: int = 0
    embedding_model: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class KnowledgeSearchResult(BaseModel):
    """A ranked chunk returned by the retriever."""

    chunk_id: int
    document_id: str
    chunk_index: int
    text: str
    score: float = Field(description="Cosine similarity score (-1 to 1)")
