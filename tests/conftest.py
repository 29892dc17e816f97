"""Shared fixtures: a scripted invoker and a small agent registry."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Dict, List, Tuple

import pytest

from agentchain.config import AgentChainConfig, EngineConfig, RetryConfig
from agentchain.invocation import BaseInvoker, InvocationOptions
from agentchain.orchestrator import WorkflowOrchestrator
from agentchain.persistence import InMemoryExecutionRepository
from agentchain.contracts import ProjectRef
from agentchain.registry import AgentDefinition, AgentRegistry


class ScriptedInvoker(BaseInvoker):
    """Replays scripted responses per agent.

    The agent is identified by the first line of the prompt, which is the
    agent's system prompt (set to the agent id in the fixtures). Script items
    may be payloads, exceptions to raise, or ``asyncio.Event`` objects to
    wait on before answering ``{}``. The last item repeats once exhausted.
    """

    def __init__(self, script: Dict[str, List[Any]] | None = None) -> None:
        self.script = script or {}
        self.calls: List[Tuple[str, str, InvocationOptions]] = []
        self.counts: Dict[str, int] = defaultdict(int)
        self.active = 0
        self.max_active = 0

    def calls_for(self, agent_id: str) -> int:
        return self.counts[agent_id]

    async def invoke(self, prompt, response_schema, options):
        agent_id = prompt.split("\n", 1)[0]
        self.calls.append((agent_id, prompt, options))
        index = self.counts[agent_id]
        self.counts[agent_id] += 1
        items = self.script.get(agent_id, [{"next_action": "done"}])
        item = items[min(index, len(items) - 1)]

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if isinstance(item, asyncio.Event):
                await item.wait()
                return {}
            if isinstance(item, BaseException):
                raise item
            return item
        finally:
            self.active -= 1


@pytest.fixture
def registry() -> AgentRegistry:
    return AgentRegistry(
        AgentDefinition(
            id=agent_id,
            name=f"{agent_id.title()} Agent",
            system_prompt=agent_id,
            default_config={"depth": "standard", "language": "en"},
        )
        for agent_id in ("a", "b", "c", "d", "e", "backup")
    )


@pytest.fixture
def project() -> ProjectRef:
    return ProjectRef(id="proj-1", name="Web Shop", description="An online store")


@pytest.fixture
def config() -> AgentChainConfig:
    return AgentChainConfig(
        engine=EngineConfig(step_timeout_seconds=2, cancel_grace_period=0, max_parallel=4),
        retry=RetryConfig(initial_delay=0),
    )


@pytest.fixture
def repository() -> InMemoryExecutionRepository:
    return InMemoryExecutionRepository()


@pytest.fixture
def make_orchestrator(registry, config, repository):
    def _make(invoker: BaseInvoker, **kwargs) -> WorkflowOrchestrator:
        kwargs.setdefault("config", config)
        kwargs.setdefault("repository", repository)
        return WorkflowOrchestrator(registry, invoker, **kwargs)

    return _make


@pytest.fixture
def make_invoker():
    return ScriptedInvoker
