"""Pydantic models describing registry entities."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class AgentDefinition(BaseModel):
    """An agent installed by a user and available to workflows."""

    id: str
    name: str
    system_prompt: str = ""
    default_config: Dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = None
    capabilities: List[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _ensure_id(cls, v: str) -> str:
        if not v:
            raise ValueError("id must be a non-empty string")
        return v


class AgentCatalog(BaseModel):
    """Root document of an agents file."""

    agents: List[AgentDefinition] = Field(default_factory=list)
    schema_version: str = "1"
