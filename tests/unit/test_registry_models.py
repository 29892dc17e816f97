"""Tests for the agent registry."""

import pytest
from pydantic import ValidationError

from agentchain.registry import AgentCatalog, AgentDefinition, AgentRegistry, load_registry


def test_agent_definition_defaults() -> None:
    agent = AgentDefinition(id="seo", name="SEO Optimizer")
    assert agent.system_prompt == ""
    assert agent.default_config == {}
    assert agent.capabilities == []


def test_empty_id_rejected() -> None:
    with pytest.raises(ValidationError):
        AgentDefinition(id="", name="nameless")


def test_duplicate_ids_rejected() -> None:
    agent = AgentDefinition(id="seo", name="SEO")
    with pytest.raises(ValueError):
        AgentRegistry([agent, agent])


def test_registry_lookup(registry) -> None:
    assert "a" in registry
    assert "zzz" not in registry
    assert registry.get("zzz") is None
    assert registry["b"].name == "B Agent"
    assert len(registry) == 6
    with pytest.raises(KeyError):
        registry["zzz"]


def test_load_registry_from_yaml(tmp_path) -> None:
    path = tmp_path / "agents.yaml"
    path.write_text(
        """
agents:
  - id: analyzer
    name: Code Analyzer
    system_prompt: You review code.
    default_config:
      depth: standard
    capabilities: [review]
  - id: auditor
    name: Security Auditor
"""
    )
    registry = load_registry(path)

    assert [agent.id for agent in registry] == ["analyzer", "auditor"]
    assert registry["analyzer"].default_config == {"depth": "standard"}
    assert AgentCatalog().schema_version == "1"
