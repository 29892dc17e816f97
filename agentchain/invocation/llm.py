"""Invoker backed by a pydantic-ai agent."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional, Union

from pydantic_ai import Agent
from pydantic_ai.builtin_tools import WebSearchTool
from pydantic_ai.models import Model

from ..errors import InvocationError, MalformedResponseError
from .base import BaseInvoker, InvocationOptions

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _schema_instructions(response_schema: Dict[str, Any]) -> str:
    return (
        "Respond only with a single JSON object that conforms to this JSON schema:\n"
        f"{json.dumps(response_schema)}"
    )


def parse_json_payload(text: str) -> Any:
    """Parse a model's text answer as JSON, tolerating a markdown code fence."""
    candidate = text.strip()
    match = _FENCE.match(candidate)
    if match:
        candidate = match.group(1)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"Response is not valid JSON: {exc}") from exc


class LLMInvoker(BaseInvoker):
    """Calls a language model through ``pydantic_ai.Agent``.

    Agents are built lazily so constructing the invoker never needs provider
    credentials. ``use_internet_context`` switches to an agent carrying the
    web search builtin tool.
    """

    def __init__(self, model: Union[str, Model]) -> None:
        self.model = model
        self._agent: Optional[Agent] = None
        self._search_agent: Optional[Agent] = None

    def _get_agent(self, use_internet_context: bool) -> Agent:
        if use_internet_context:
            if self._search_agent is None:
                self._search_agent = Agent(self.model, builtin_tools=[WebSearchTool()])
            return self._search_agent
        if self._agent is None:
            self._agent = Agent(self.model)
        return self._agent

    async def invoke(
        self,
        prompt: str,
        response_schema: Dict[str, Any],
        options: InvocationOptions,
    ) -> Any:
        agent = self._get_agent(options.use_internet_context)
        full_prompt = f"{prompt}\n\n{_schema_instructions(response_schema)}"
        try:
            result = await agent.run(full_prompt)
        except Exception as exc:
            logger.debug(f"Model call failed: {exc}")
            raise InvocationError(str(exc)) from exc
        return parse_json_payload(str(result.output))
