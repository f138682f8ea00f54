"""
Pydantic models for the agents that own knowledge bases.
"""

from typing import Optional
from pydantic import BaseModel, Field


class AgentConfig(BaseModel):
    """Represents an agent record."""

    id: str = Field(..., description="Unique agent UUID")
    name: str = Field(..., description="Human-readable agent name")
    system_prompt: Optional[str] = Field(default=None, description="The LLM system instruction")
    is_active: bool = Field(default=True, description="Whether the agent is active")


class AgentCreateRequest(BaseModel):
    """Request body for creating a new agent."""

    name: str = Field(..., min_length=1)
    system_prompt: Optional[str] = None
