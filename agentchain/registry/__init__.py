"""Read-only lookup of installed agent definitions."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional

import yaml

from .models import AgentCatalog, AgentDefinition

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Maps agent ids to their definitions.

    The registry is populated once and treated as read-only while workflows
    execute. Duplicate ids are rejected so lookups stay unambiguous.
    """

    def __init__(self, agents: Iterable[AgentDefinition] = ()) -> None:
        self._agents: Dict[str, AgentDefinition] = {}
        for agent in agents:
            if agent.id in self._agents:
                raise ValueError(f"Duplicate agent id: {agent.id}")
            self._agents[agent.id] = agent

    def get(self, agent_id: str) -> Optional[AgentDefinition]:
        return self._agents.get(agent_id)

    def __getitem__(self, agent_id: str) -> AgentDefinition:
        return self._agents[agent_id]

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __iter__(self) -> Iterator[AgentDefinition]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    @classmethod
    def from_catalog(cls, catalog: AgentCatalog) -> "AgentRegistry":
        return cls(catalog.agents)


def load_registry(path: str | Path) -> AgentRegistry:
    """Load agent definitions from a YAML file with a top-level ``agents`` list."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    catalog = AgentCatalog.model_validate(data)
    logger.info(f"Loaded {len(catalog.agents)} agents from {path}")
    return AgentRegistry.from_catalog(catalog)


__all__ = [
    "AgentCatalog",
    "AgentDefinition",
    "AgentRegistry",
    "load_registry",
]
