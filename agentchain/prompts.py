"""Prompt assembly and the default agent response contract."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_INSTRUCTIONS
from .contracts import ProjectRef
from .registry import AgentDefinition


class Recommendation(BaseModel):
    title: str = ""
    description: str = ""
    impact: Optional[str] = None
    priority: Optional[str] = None


class ResponseMetrics(BaseModel):
    score: Optional[float] = None
    confidence: Optional[float] = None


class AgentResponse(BaseModel):
    """Structured payload every agent step is expected to return.

    Unknown keys are kept so conditions can reference agent specific fields.
    """

    model_config = ConfigDict(extra="allow")

    recommendations: List[Recommendation] = Field(default_factory=list)
    metrics: Optional[ResponseMetrics] = None
    next_action: Optional[str] = None


def response_schema(model: type[BaseModel] = AgentResponse) -> Dict[str, Any]:
    """JSON schema handed to the invocation service."""
    return model.model_json_schema()


def empty_output(model: type[BaseModel] = AgentResponse) -> Dict[str, Any]:
    """Typed empty success payload used by the ``fallback`` error policy."""
    return model().model_dump(mode="json")


def build_prompt(
    agent: AgentDefinition,
    project: ProjectRef,
    config: Mapping[str, Any],
    previous_outputs: List[Dict[str, Any]],
    instructions: Optional[str] = None,
) -> str:
    """Compose the system prompt, run context and task for one agent call."""
    context = {
        "project": {"name": project.name, "description": project.description},
        "config": dict(config),
        "previousOutputs": previous_outputs,
    }
    return (
        f"{agent.system_prompt}\n\n"
        f"Context: {json.dumps(context, default=str)}\n\n"
        f"Task: {instructions or DEFAULT_INSTRUCTIONS}"
    )
